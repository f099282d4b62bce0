from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from amlguard.apps.api.deps import Principal, get_context, require_role
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import success_response
from amlguard.persistence.db import pool_stats
from amlguard.services.context import AppContext
from amlguard.services.telemetry import (
    audit_drop_rate,
    availability,
    counters_snapshot,
    gauges_snapshot,
    p95_latency,
)


router = APIRouter(prefix="/ops", tags=["ops"], responses=DEFAULT_ERROR_RESPONSES)


@router.get("/metrics")
async def metrics(
    request: Request,
    window_s: int = Query(default=300, alias="windowS", ge=1, le=86400),
    principal: Principal = Depends(require_role("Administrator")),
    context: AppContext = Depends(get_context),
) -> dict:
    # Expose request and audit-pipeline counters for operators.
    engine = getattr(context.store, "engine", None)
    return success_response(
        request=request,
        data={
            "windowS": window_s,
            "availability": availability(window_s),
            "p95LatencyMs": p95_latency(window_s),
            "auditDropRate": audit_drop_rate(),
            "counters": counters_snapshot(),
            "gauges": gauges_snapshot(),
            "activeSessions": len(context.sessions),
            "backend": context.store.backend,
            "dbPool": pool_stats(engine) if engine is not None else None,
        },
    )
