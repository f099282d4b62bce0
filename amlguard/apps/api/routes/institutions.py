from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from amlguard.apps.api.deps import Principal, get_context, get_store, require_role
from amlguard.apps.api.openapi import CONFLICT_RESPONSES, DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import record_data, success_response
from amlguard.core.errors import ConflictError, NotFoundError, ValidationError
from amlguard.domain.lifecycle import license_action_status
from amlguard.domain.records import Institution
from amlguard.domain.types import InstitutionStatus, RiskLevel
from amlguard.persistence.store import INSTITUTION_SORT_FIELDS, DEFAULT_INSTITUTION_SORT, Store
from amlguard.services.context import AppContext
from amlguard.services.query import parse_sort
from amlguard.services.risk_scoring import level_for_score


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/institutions", tags=["institutions"], responses=DEFAULT_ERROR_RESPONSES)


class InstitutionCreateRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    name: str = Field(min_length=1, max_length=200)
    license_number: str = Field(alias="licenseNumber", min_length=1, max_length=64)
    category: str | None = Field(default=None, max_length=100)
    status: InstitutionStatus = "Active"
    risk_level: RiskLevel = Field(default="Medium", alias="riskLevel")
    risk_score: int | None = Field(default=None, alias="riskScore", ge=0, le=100)


class InstitutionUpdateRequest(BaseModel):
    # Omitted or null fields keep their stored values.
    model_config = {"extra": "forbid", "populate_by_name": True}

    name: str | None = Field(default=None, min_length=1, max_length=200)
    license_number: str | None = Field(default=None, alias="licenseNumber", min_length=1, max_length=64)
    category: str | None = Field(default=None, max_length=100)
    status: InstitutionStatus | None = None
    risk_level: RiskLevel | None = Field(default=None, alias="riskLevel")
    risk_score: int | None = Field(default=None, alias="riskScore", ge=0, le=100)


class LicenseActionRequest(BaseModel):
    model_config = {"extra": "forbid"}

    action: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=1000)


def _institution_data(item: Institution) -> dict[str, Any]:
    return record_data(item)


async def _require_institution(store: Store, institution_id: str) -> Institution:
    institution = await store.get_institution(institution_id)
    if institution is None:
        raise NotFoundError("Institution not found")
    return institution


async def _ensure_unique_license(store: Store, license_number: str, *, exclude_id: str | None = None) -> None:
    existing = await store.get_institution_by_license(license_number)
    if existing is not None and existing.id != exclude_id:
        raise ConflictError("License number already registered")


@router.get("")
async def list_institutions(
    request: Request,
    search: str | None = None,
    status: InstitutionStatus | None = None,
    risk_level: RiskLevel | None = Query(default=None, alias="riskLevel"),
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    sort: str | None = None,
    principal: Principal = Depends(require_role("Entity")),
    context: AppContext = Depends(get_context),
) -> dict:
    settings = context.settings
    size = min(page_size or settings.institutions_default_page_size, settings.institutions_max_page_size)
    sort_fields = parse_sort(sort=sort, allowed=INSTITUTION_SORT_FIELDS, default=DEFAULT_INSTITUTION_SORT)
    result = await context.store.list_institutions(
        search=search or None,
        status=status,
        risk_level=risk_level,
        page=page,
        page_size=size,
        sort=sort_fields,
    )
    return success_response(request=request, data=result.to_dict(_institution_data))


@router.get("/{institution_id}")
async def get_institution(
    institution_id: str,
    request: Request,
    principal: Principal = Depends(require_role("Entity")),
    store: Store = Depends(get_store),
) -> dict:
    institution = await _require_institution(store, institution_id)
    return success_response(request=request, data=_institution_data(institution))


@router.post("", status_code=201, responses=CONFLICT_RESPONSES)
async def create_institution(
    payload: InstitutionCreateRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    store: Store = Depends(get_store),
) -> dict:
    await _ensure_unique_license(store, payload.license_number)
    # A supplied score decides the level so the two never disagree.
    risk_level = level_for_score(payload.risk_score) if payload.risk_score is not None else payload.risk_level
    institution = await store.create_institution(
        name=payload.name,
        license_number=payload.license_number,
        category=payload.category,
        status=payload.status,
        risk_level=risk_level,
        risk_score=payload.risk_score,
    )
    logger.info("institution_created id=%s by=%s", institution.id, principal.user_id)
    return success_response(request=request, data=_institution_data(institution))


@router.put("/{institution_id}", responses=CONFLICT_RESPONSES)
async def update_institution(
    institution_id: str,
    payload: InstitutionUpdateRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    store: Store = Depends(get_store),
) -> dict:
    institution = await _require_institution(store, institution_id)
    if payload.license_number is not None:
        await _ensure_unique_license(store, payload.license_number, exclude_id=institution_id)
    risk_level = payload.risk_level
    if payload.risk_score is not None:
        risk_level = level_for_score(payload.risk_score)
    elif (
        risk_level is not None
        and institution.risk_score is not None
        and risk_level != level_for_score(institution.risk_score)
    ):
        # A scored institution only changes level through a new score.
        raise ValidationError(
            "riskLevel contradicts the stored risk score; send riskScore instead",
            details={"riskScore": institution.risk_score, "riskLevel": risk_level},
        )
    updated = await store.update_institution(
        institution_id,
        name=payload.name,
        license_number=payload.license_number,
        category=payload.category,
        status=payload.status,
        risk_level=risk_level,
        risk_score=payload.risk_score,
    )
    if updated is None:
        raise NotFoundError("Institution not found")
    return success_response(request=request, data=_institution_data(updated))


@router.delete("/{institution_id}")
async def delete_institution(
    institution_id: str,
    request: Request,
    principal: Principal = Depends(require_role("Administrator")),
    store: Store = Depends(get_store),
) -> dict:
    # Institutions are never hard-deleted; removal revokes the licence.
    institution = await _require_institution(store, institution_id)
    if institution.status != "Revoked":
        institution = await store.update_institution(institution_id, status="Revoked") or institution
        logger.info("institution_revoked id=%s by=%s", institution_id, principal.user_id)
    return success_response(request=request, data=_institution_data(institution))


@router.post("/{institution_id}/license-actions", responses=CONFLICT_RESPONSES)
async def perform_license_action(
    institution_id: str,
    payload: LicenseActionRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    store: Store = Depends(get_store),
) -> dict:
    institution = await _require_institution(store, institution_id)
    next_status = license_action_status(institution.status, payload.action)
    updated = await store.update_institution(institution_id, status=next_status)
    if updated is None:
        raise NotFoundError("Institution not found")
    logger.info(
        "license_action id=%s action=%s from=%s to=%s by=%s",
        institution_id,
        payload.action,
        institution.status,
        next_status,
        principal.user_id,
    )
    return success_response(
        request=request,
        data={"institution": _institution_data(updated), "action": payload.action, "reason": payload.reason},
    )
