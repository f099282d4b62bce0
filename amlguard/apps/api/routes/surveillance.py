from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from amlguard.apps.api.deps import Principal, get_store, require_role
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import record_data, success_response
from amlguard.core.errors import NotFoundError
from amlguard.domain.types import Severity, SurveillanceType
from amlguard.persistence.store import Store


router = APIRouter(prefix="/surveillance", tags=["surveillance"], responses=DEFAULT_ERROR_RESPONSES)


class SurveillanceLogRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    institution_id: str = Field(alias="institutionId", min_length=1)
    type: SurveillanceType
    severity: Severity
    description: str = Field(min_length=1, max_length=4000)
    occurred_at: datetime | None = Field(default=None, alias="occurredAt")


@router.get("")
async def list_surveillance_logs(
    request: Request,
    institution_id: str = Query(alias="institutionId", min_length=1),
    principal: Principal = Depends(require_role("Entity")),
    store: Store = Depends(get_store),
) -> dict:
    logs = await store.list_surveillance_logs(institution_id=institution_id)
    return success_response(request=request, data=[record_data(item) for item in logs])


@router.post("", status_code=201)
async def create_surveillance_log(
    payload: SurveillanceLogRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    store: Store = Depends(get_store),
) -> dict:
    # Observations are append-only; there is no update or delete route.
    if await store.get_institution(payload.institution_id) is None:
        raise NotFoundError("Institution not found")
    log = await store.create_surveillance_log(
        institution_id=payload.institution_id,
        type=payload.type,
        severity=payload.severity,
        description=payload.description,
        occurred_at=payload.occurred_at,
    )
    return success_response(request=request, data=record_data(log))
