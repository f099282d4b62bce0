from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, Request

from amlguard.apps.api.deps import Principal, get_supervisor_monitor, require_role
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import success_response
from amlguard.core.errors import NotFoundError, ValidationError
from amlguard.domain.supervision import Supervisor
from amlguard.services.supervisors import Pagination, SupervisorFilters, SupervisorMonitor


router = APIRouter(prefix="/supervisors", tags=["supervisors"], responses=DEFAULT_ERROR_RESPONSES)


def _supervisor_data(item: Supervisor) -> dict[str, Any]:
    data = item.to_dict()
    data["full_name"] = item.full_name
    return data


@router.get("")
async def list_supervisors(
    request: Request,
    search: str = "",
    role: list[str] | None = Query(default=None),
    department: list[str] | None = Query(default=None),
    min_quality_score: float | None = Query(default=None, alias="minQualityScore", ge=0, le=100),
    has_anomalies: bool | None = Query(default=None, alias="hasAnomalies"),
    is_overloaded: bool | None = Query(default=None, alias="isOverloaded"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, alias="pageSize", ge=1, le=100),
    sort_by: str = Query(default="last_name", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query(default="asc", alias="sortOrder"),
    principal: Principal = Depends(require_role("Supervisor")),
    monitor: SupervisorMonitor = Depends(get_supervisor_monitor),
) -> dict:
    filters = SupervisorFilters(
        search=search,
        roles=role or [],
        departments=department or [],
        min_quality_score=min_quality_score,
        has_anomalies=has_anomalies,
        is_overloaded=is_overloaded,
    )
    pagination = Pagination(page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order)
    try:
        result = monitor.page(filters, pagination)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return success_response(request=request, data=result.to_dict(_supervisor_data))


@router.get("/summary")
async def supervisor_summary(
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    monitor: SupervisorMonitor = Depends(get_supervisor_monitor),
) -> dict:
    return success_response(request=request, data=monitor.dashboard_summary)


@router.get("/anomalies")
async def supervisor_anomalies(
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    monitor: SupervisorMonitor = Depends(get_supervisor_monitor),
) -> dict:
    # Detection only merges pairs it has not seen, so repeated reads are stable.
    monitor.detect_all_anomalies()
    return success_response(
        request=request,
        data={
            "active": [item.to_dict() for item in monitor.active_anomalies],
            "critical": len(monitor.critical_anomalies),
        },
    )


@router.get("/case-load")
async def case_load(
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    monitor: SupervisorMonitor = Depends(get_supervisor_monitor),
) -> dict:
    distributions = monitor.calculate_case_load_distributions()
    return success_response(
        request=request,
        data={
            "distributions": [item.to_dict() for item in distributions],
            "histogram": monitor.case_load_histogram(distributions),
            "suggestions": [item.to_dict() for item in monitor.generate_rebalancing_suggestions()],
        },
    )


@router.get("/{supervisor_id}")
async def get_supervisor(
    supervisor_id: str,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    monitor: SupervisorMonitor = Depends(get_supervisor_monitor),
) -> dict:
    supervisor = monitor.get(supervisor_id)
    if supervisor is None:
        raise NotFoundError("Supervisor not found")
    data = _supervisor_data(supervisor)
    data["cases"] = [item.to_dict() for item in monitor.cases_for(supervisor_id)]
    return success_response(request=request, data=data)


@router.get("/{supervisor_id}/quality-score")
async def quality_score(
    supervisor_id: str,
    request: Request,
    principal: Principal = Depends(require_role("Supervisor")),
    monitor: SupervisorMonitor = Depends(get_supervisor_monitor),
) -> dict:
    if monitor.get(supervisor_id) is None:
        raise NotFoundError("Supervisor not found")
    return success_response(request=request, data=monitor.calculate_quality_score(supervisor_id).to_dict())
