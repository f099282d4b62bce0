from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from amlguard.apps.api.deps import Principal, get_entity_registry, require_role
from amlguard.apps.api.openapi import CONFLICT_RESPONSES, DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import success_response
from amlguard.core.errors import NotFoundError, ValidationError
from amlguard.domain.entities import RegistryEntity
from amlguard.domain.lifecycle import license_action_status
from amlguard.services.registry import EntityFilters, EntityRegistry


router = APIRouter(prefix="/registry", tags=["registry"], responses=DEFAULT_ERROR_RESPONSES)


class NoteRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    content: str = Field(min_length=1, max_length=4000)
    category: str = "General"
    is_confidential: bool = Field(default=False, alias="isConfidential")


class RegistryLicenseActionRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    action: str = Field(min_length=1)
    reason: str = Field(min_length=1, max_length=1000)
    effective_date: date | None = Field(default=None, alias="effectiveDate")


def _require_entity(registry: EntityRegistry, entity_id: str) -> RegistryEntity:
    entity = registry.get(entity_id)
    if entity is None:
        raise NotFoundError("Entity not found")
    return entity


@router.get("/entities")
async def list_entities(
    request: Request,
    search: str = "",
    type: list[str] | None = Query(default=None),
    status: list[str] | None = Query(default=None),
    risk_level: list[str] | None = Query(default=None, alias="riskLevel"),
    expiring_within_days: int | None = Query(default=None, alias="expiringWithinDays", ge=1),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, alias="pageSize", ge=1, le=100),
    principal: Principal = Depends(require_role("Supervisor")),
    registry: EntityRegistry = Depends(get_entity_registry),
) -> dict:
    filters = EntityFilters(
        search=search,
        types=type or [],
        statuses=status or [],
        risk_levels=risk_level or [],
        expiring_within_days=expiring_within_days,
    )
    result = registry.page(page, page_size, filters)
    return success_response(request=request, data=result.to_dict())


@router.get("/statistics")
async def registry_statistics(
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    registry: EntityRegistry = Depends(get_entity_registry),
) -> dict:
    return success_response(request=request, data=registry.statistics)


@router.get("/entities/{entity_id}")
async def get_entity(
    entity_id: str,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    registry: EntityRegistry = Depends(get_entity_registry),
) -> dict:
    entity = _require_entity(registry, entity_id)
    return success_response(request=request, data=entity.to_dict())


@router.post("/entities/{entity_id}/notes", status_code=201)
async def add_note(
    entity_id: str,
    payload: NoteRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    registry: EntityRegistry = Depends(get_entity_registry),
) -> dict:
    _require_entity(registry, entity_id)
    if not registry.add_note(
        entity_id,
        payload.content,
        category=payload.category,
        is_confidential=payload.is_confidential,
        actor=principal.user_id,
    ):
        raise ValidationError(registry.error or "Note rejected")
    entity = _require_entity(registry, entity_id)
    return success_response(request=request, data=entity.to_dict()["notes"][0])


@router.post("/entities/{entity_id}/license-actions", responses=CONFLICT_RESPONSES)
async def registry_license_action(
    entity_id: str,
    payload: RegistryLicenseActionRequest,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    registry: EntityRegistry = Depends(get_entity_registry),
) -> dict:
    entity = _require_entity(registry, entity_id)
    # Raises the typed rejection; the registry applies the same rule.
    license_action_status(entity.status, payload.action)
    if not registry.perform_license_action(
        entity_id,
        payload.action,
        reason=payload.reason,
        authorized_by=principal.user_id,
        effective_date=payload.effective_date,
    ):
        raise ValidationError(registry.error or "License action rejected")
    return success_response(request=request, data=_require_entity(registry, entity_id).to_dict())
