from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from amlguard.apps.api.deps import Principal, get_store, require_role
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import success_response
from amlguard.core.errors import NotFoundError
from amlguard.persistence.store import Store
from amlguard.services.risk_scoring import compute_risk_score


router = APIRouter(prefix="/risk-assessment", tags=["risk-assessment"], responses=DEFAULT_ERROR_RESPONSES)


class RiskAssessmentRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    # Left optional here so a missing id surfaces the scoring engine's own error.
    institution_id: str | None = Field(default=None, alias="institutionId")


@router.post("")
async def assess_risk(
    payload: RiskAssessmentRequest,
    request: Request,
    principal: Principal = Depends(require_role("Entity")),
    store: Store = Depends(get_store),
) -> dict:
    if payload.institution_id and await store.get_institution(payload.institution_id) is None:
        raise NotFoundError("Institution not found")
    # Computed on demand and never stored.
    result = await compute_risk_score(store, payload.institution_id)
    return success_response(request=request, data=result.to_dict())
