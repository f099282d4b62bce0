from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from amlguard.apps.api.deps import Principal, get_audit_trail, require_role
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import success_response
from amlguard.core.errors import NotFoundError, ValidationError
from amlguard.domain.trail import TIME_RANGES
from amlguard.services.audit_trail import AuditTrail, TrailFilters, TrailPagination


router = APIRouter(prefix="/audit-trail", tags=["audit-trail"], responses=DEFAULT_ERROR_RESPONSES)

_EXPORT_MEDIA_TYPES = {"CSV": "text/csv", "JSON": "application/json"}


def _filters(
    search: str = "",
    category: list[str] | None = Query(default=None),
    action: list[str] | None = Query(default=None),
    entity_type: list[str] | None = Query(default=None, alias="entityType"),
    user_id: list[str] | None = Query(default=None, alias="userId"),
    log_level: list[str] | None = Query(default=None, alias="logLevel"),
    result: list[str] | None = Query(default=None),
    entity_id: str | None = Query(default=None, alias="entityId"),
    session_id: str | None = Query(default=None, alias="sessionId"),
    time_range: str | None = Query(default=None, alias="timeRange"),
    start: datetime | None = None,
    end: datetime | None = None,
) -> TrailFilters:
    if time_range is not None and time_range not in TIME_RANGES and time_range != "CUSTOM":
        raise ValidationError(f"Unsupported time range: {time_range}")
    return TrailFilters(
        search=search,
        categories=category or [],
        actions=action or [],
        entity_types=entity_type or [],
        user_ids=user_id or [],
        log_levels=log_level or [],
        results=result or [],
        entity_id=entity_id,
        session_id=session_id,
        time_range=time_range,
        start=start,
        end=end,
    )


@router.get("")
async def list_trail(
    request: Request,
    filters: TrailFilters = Depends(_filters),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, alias="pageSize", ge=1, le=200),
    sort_by: str = Query(default="timestamp", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query(default="desc", alias="sortOrder"),
    principal: Principal = Depends(require_role("Administrator")),
    trail: AuditTrail = Depends(get_audit_trail),
) -> dict:
    pagination = TrailPagination(page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order)
    try:
        result = trail.page(filters, pagination)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return success_response(request=request, data=result.to_dict(lambda record: record.to_dict()))


@router.get("/statistics")
async def trail_statistics(
    request: Request,
    principal: Principal = Depends(require_role("Administrator")),
    trail: AuditTrail = Depends(get_audit_trail),
) -> dict:
    return success_response(request=request, data=trail.statistics)


@router.get("/export")
async def export_trail(
    filters: TrailFilters = Depends(_filters),
    format: Literal["CSV", "JSON"] = "CSV",
    include_metadata: bool = Query(default=False, alias="includeMetadata"),
    principal: Principal = Depends(require_role("Administrator")),
    trail: AuditTrail = Depends(get_audit_trail),
) -> Response:
    # Exports are file downloads, not enveloped JSON.
    body = trail.export(format, filters=filters, include_metadata=include_metadata)
    extension = format.lower()
    return Response(
        content=body,
        media_type=_EXPORT_MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="audit-trail.{extension}"'},
    )


@router.get("/verify")
async def verify_trail(
    request: Request,
    principal: Principal = Depends(require_role("Administrator")),
    trail: AuditTrail = Depends(get_audit_trail),
) -> dict:
    return success_response(request=request, data=trail.verify_chain().to_dict())


@router.get("/retention-policies")
async def list_retention_policies(
    request: Request,
    principal: Principal = Depends(require_role("Administrator")),
    trail: AuditTrail = Depends(get_audit_trail),
) -> dict:
    return success_response(request=request, data=[policy.to_dict() for policy in trail.retention_policies])


@router.post("/retention/apply")
async def apply_retention(
    request: Request,
    principal: Principal = Depends(require_role("Administrator")),
    trail: AuditTrail = Depends(get_audit_trail),
) -> dict:
    return success_response(request=request, data=trail.apply_retention())


@router.get("/{record_id}")
async def get_trail_record(
    record_id: str,
    request: Request,
    principal: Principal = Depends(require_role("Administrator")),
    trail: AuditTrail = Depends(get_audit_trail),
) -> dict:
    record = trail.get(record_id)
    if record is None:
        raise NotFoundError("Audit record not found")
    data = record.to_dict()
    data["related"] = [item.id for item in trail.related(record_id)]
    return success_response(request=request, data=data)
