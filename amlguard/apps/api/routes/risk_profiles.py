from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from amlguard.apps.api.deps import Principal, get_store, require_role
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import record_data, success_response
from amlguard.core.errors import NotFoundError
from amlguard.domain.types import RiskLevel
from amlguard.persistence.store import Store


router = APIRouter(prefix="/risk-profiles", tags=["risk-profiles"], responses=DEFAULT_ERROR_RESPONSES)


class RiskProfileCreateRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    institution_id: str = Field(alias="institutionId", min_length=1)
    overall_risk_level: RiskLevel = Field(alias="overallRiskLevel")
    overall_risk_score: float = Field(alias="overallRiskScore", ge=0, le=100)
    assessed_at: datetime | None = Field(default=None, alias="assessedAt")


class RiskProfileUpdateRequest(BaseModel):
    # Corrections only; omitted fields keep their stored values.
    model_config = {"extra": "forbid", "populate_by_name": True}

    overall_risk_level: RiskLevel | None = Field(default=None, alias="overallRiskLevel")
    overall_risk_score: float | None = Field(default=None, alias="overallRiskScore", ge=0, le=100)


@router.get("")
async def list_risk_profiles(
    request: Request,
    institution_id: str = Query(alias="institutionId", min_length=1),
    principal: Principal = Depends(require_role("Entity")),
    store: Store = Depends(get_store),
) -> dict:
    profiles = await store.list_risk_profiles(institution_id=institution_id)
    return success_response(request=request, data=[record_data(item) for item in profiles])


@router.post("", status_code=201)
async def create_risk_profile(
    payload: RiskProfileCreateRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    store: Store = Depends(get_store),
) -> dict:
    if await store.get_institution(payload.institution_id) is None:
        raise NotFoundError("Institution not found")
    profile = await store.create_risk_profile(
        institution_id=payload.institution_id,
        overall_risk_level=payload.overall_risk_level,
        overall_risk_score=payload.overall_risk_score,
        assessed_at=payload.assessed_at,
    )
    return success_response(request=request, data=record_data(profile))


@router.put("/{profile_id}")
async def update_risk_profile(
    profile_id: str,
    payload: RiskProfileUpdateRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    store: Store = Depends(get_store),
) -> dict:
    profile = await store.update_risk_profile(
        profile_id,
        overall_risk_level=payload.overall_risk_level,
        overall_risk_score=payload.overall_risk_score,
    )
    if profile is None:
        raise NotFoundError("Risk profile not found")
    return success_response(request=request, data=record_data(profile))
