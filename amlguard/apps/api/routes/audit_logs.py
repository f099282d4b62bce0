from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from amlguard.apps.api.deps import Principal, get_context, require_role
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import record_data, success_response
from amlguard.domain.records import AuditLogEntry
from amlguard.services.audit import verify_chain
from amlguard.services.context import AppContext


router = APIRouter(prefix="/audit-logs", tags=["audit-logs"], responses=DEFAULT_ERROR_RESPONSES)


class AuditLogRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    user_id: str | None = Field(default=None, alias="userId", max_length=200)
    path: str = Field(min_length=1, max_length=2000)
    method: str = Field(default="CUSTOM", min_length=1, max_length=16)


def resolve_limit(limit: int | None, *, default: int, maximum: int) -> int:
    # Missing or non-positive limits fall back to the default; large ones clamp.
    if limit is None or limit < 1:
        return default
    return min(limit, maximum)


@router.get("")
async def list_audit_logs(
    request: Request,
    limit: int | None = None,
    principal: Principal = Depends(require_role("Administrator")),
    context: AppContext = Depends(get_context),
) -> dict:
    settings = context.settings
    resolved = resolve_limit(
        limit,
        default=settings.audit_list_default_limit,
        maximum=settings.audit_list_max_limit,
    )
    entries = await context.store.list_audit_logs(limit=resolved)
    return success_response(request=request, data=[record_data(entry) for entry in entries])


@router.post("", status_code=201)
async def create_audit_log(
    payload: AuditLogRequest,
    request: Request,
    principal: Principal = Depends(require_role("Entity")),
    context: AppContext = Depends(get_context),
) -> dict:
    # Explicit writes go through the chained writer synchronously so the caller sees the stored row.
    stored = await context.audit.write(
        AuditLogEntry(user_id=payload.user_id, path=payload.path, method=payload.method.upper())
    )
    return success_response(request=request, data=record_data(stored))


@router.get("/verify")
async def verify_audit_logs(
    request: Request,
    principal: Principal = Depends(require_role("Administrator")),
    context: AppContext = Depends(get_context),
) -> dict:
    result = verify_chain(await context.store.audit_chain())
    return success_response(request=request, data=result.to_dict())
