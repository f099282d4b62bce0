from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from amlguard.apps.api.deps import Principal, get_store, require_role
from amlguard.apps.api.openapi import CONFLICT_RESPONSES, DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import record_data, success_response
from amlguard.core.errors import NotFoundError
from amlguard.domain.lifecycle import finding_transition
from amlguard.domain.types import FindingCategory, FindingStatus, Severity
from amlguard.persistence.store import Store


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inspections", tags=["inspections"], responses=DEFAULT_ERROR_RESPONSES)


class FindingCreateRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    institution_id: str = Field(alias="institutionId", min_length=1)
    category: FindingCategory
    severity: Severity
    description: str = Field(min_length=1, max_length=4000)
    recommendation: str | None = Field(default=None, max_length=4000)
    due_date: datetime | None = Field(default=None, alias="dueDate")


class FindingStatusRequest(BaseModel):
    model_config = {"extra": "forbid"}

    status: FindingStatus


@router.get("")
async def list_findings(
    request: Request,
    institution_id: str = Query(alias="institutionId", min_length=1),
    principal: Principal = Depends(require_role("Entity")),
    store: Store = Depends(get_store),
) -> dict:
    findings = await store.list_findings(institution_id=institution_id)
    return success_response(request=request, data=[record_data(item) for item in findings])


@router.post("", status_code=201)
async def create_finding(
    payload: FindingCreateRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    store: Store = Depends(get_store),
) -> dict:
    if await store.get_institution(payload.institution_id) is None:
        raise NotFoundError("Institution not found")
    finding = await store.create_finding(
        institution_id=payload.institution_id,
        category=payload.category,
        severity=payload.severity,
        description=payload.description,
        recommendation=payload.recommendation,
        due_date=payload.due_date,
    )
    return success_response(request=request, data=record_data(finding))


@router.patch("/{finding_id}/status", responses=CONFLICT_RESPONSES)
async def update_finding_status(
    finding_id: str,
    payload: FindingStatusRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    store: Store = Depends(get_store),
) -> dict:
    finding = await store.get_finding(finding_id)
    if finding is None:
        raise NotFoundError("Finding not found")
    next_status = finding_transition(finding.status, payload.status)
    updated = await store.update_finding_status(finding_id, next_status)
    if updated is None:
        raise NotFoundError("Finding not found")
    logger.info("finding_status_changed id=%s from=%s to=%s", finding_id, finding.status, next_status)
    return success_response(request=request, data=record_data(updated))
