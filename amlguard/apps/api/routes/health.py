from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from amlguard.apps.api.deps import get_context
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import success_response
from amlguard.services.context import AppContext

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    backend: str


@router.get("/health")
async def health(request: Request, context: AppContext = Depends(get_context)) -> dict:
    # Public liveness probe; never touches the database.
    payload = HealthResponse(status="ok", backend=context.store.backend)
    return success_response(request=request, data=payload.model_dump())
