from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from amlguard.domain.records import utc_now
from amlguard.domain.supervision import (
    DECISION_CASE_STATUS,
    PENDING_CASE_STATUSES,
    ActivityLog,
    CaseLoadDistribution,
    DecisionRequest,
    PerformanceAnomaly,
    PerformanceMetrics,
    PerformanceTarget,
    QualityComponent,
    QualityScoreBreakdown,
    RebalanceRequest,
    RebalancingSuggestion,
    Supervisor,
    SupervisorCase,
    SupervisorDecision,
)
from amlguard.persistence.fixtures import SupervisorDataset, build_supervisor_dataset
from amlguard.services.query import Page, filter_by_exact_fields, paginate, search, sort_by
from amlguard.services.risk_scoring import round_half_up
from amlguard.services.state import StateContainer


logger = logging.getLogger(__name__)

TARGET_RESPONSE_HOURS = 120
DEFAULT_SATISFACTION = 80
OVERLOADED_UTILIZATION = 85
UNDERLOADED_UTILIZATION = 50
REBALANCE_TARGET_UTILIZATION = 70
MAX_CASES_PER_MOVE = 5
RESPONSE_SPIKE_PCT = 40
RESPONSE_SPIKE_HIGH_PCT = 60
QUALITY_DROP_PCT = 10
QUALITY_DROP_HIGH_PCT = 20
INACTIVITY_HOURS = 48
INACTIVITY_HIGH_HOURS = 72
EXPECTED_ACTIVITY_HOURS = 24
CASE_LOAD_BUCKETS: tuple[tuple[str, int, int | None], ...] = (
    ("0-5", 0, 5),
    ("6-10", 6, 10),
    ("11-15", 11, 15),
    ("16-20", 16, 20),
    ("21+", 21, None),
)

_SORTABLE_FIELDS = {"last_name", "first_name", "role", "department", "max_case_load", "id"}


@dataclass
class SupervisorFilters:
    search: str = ""
    roles: list[str] = field(default_factory=list)
    departments: list[str] = field(default_factory=list)
    min_quality_score: float | None = None
    has_anomalies: bool | None = None
    is_overloaded: bool | None = None


@dataclass
class Pagination:
    page: int = 1
    page_size: int = 10
    sort_by: str = "last_name"
    sort_order: str = "asc"


async def _fixture_loader() -> SupervisorDataset:
    return build_supervisor_dataset()


def _pct_change(current: float, previous: float) -> float:
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


class SupervisorMonitor(StateContainer[Supervisor]):
    """Supervisor performance monitor over a static roster.

    Quality scores, anomalies and case-load distributions are derived from the
    loaded cases and metric periods each time they are requested.
    """

    name = "supervisors"

    def __init__(
        self,
        loader: Callable[[], Awaitable[SupervisorDataset]] | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(self._load_dataset)
        self._dataset_loader = loader or _fixture_loader
        self._clock = clock
        self.cases: list[SupervisorCase] = []
        self.metrics: list[PerformanceMetrics] = []
        self.targets: list[PerformanceTarget] = []
        self.activity: list[ActivityLog] = []
        self.anomalies: list[PerformanceAnomaly] = []
        self.decisions: list[SupervisorDecision] = []
        self.filters = SupervisorFilters()
        self.pagination = Pagination()
        self.selected: Supervisor | None = None

    async def _load_dataset(self) -> list[Supervisor]:
        dataset = await self._dataset_loader()
        self.cases = list(dataset.cases)
        self.metrics = list(dataset.metrics)
        self.targets = list(dataset.targets)
        self.activity = list(dataset.activity)
        self.anomalies = list(dataset.anomalies)
        self.decisions = []
        return list(dataset.supervisors)

    def _on_loaded(self) -> None:
        if self.selected is not None:
            self.selected = self.get(self.selected.id)

    def get(self, supervisor_id: str) -> Supervisor | None:
        return next((item for item in self._items if item.id == supervisor_id), None)

    def cases_for(self, supervisor_id: str) -> list[SupervisorCase]:
        return [item for item in self.cases if item.supervisor_id == supervisor_id]

    def _metric_periods(self, supervisor_id: str) -> tuple[PerformanceMetrics | None, PerformanceMetrics | None]:
        periods = sort_by(
            [item for item in self.metrics if item.supervisor_id == supervisor_id],
            "period_end",
            "desc",
        )
        current = periods[0] if periods else None
        previous = next(
            (item for item in periods[1:] if current and item.period_end < current.period_end),
            None,
        )
        return current, previous

    def _target(self, metric: str) -> PerformanceTarget | None:
        return next((item for item in self.targets if item.metric == metric and item.is_active), None)

    # Quality scoring

    def calculate_quality_score(self, supervisor_id: str) -> QualityScoreBreakdown:
        metrics, _ = self._metric_periods(supervisor_id)
        now = self._clock()
        if metrics is None:
            return QualityScoreBreakdown(supervisor_id, 0, {}, now)
        turnaround = (
            min(100.0, TARGET_RESPONSE_HOURS / metrics.avg_response_hours * 100)
            if metrics.avg_response_hours > 0
            else 100.0
        )
        satisfaction = (
            metrics.avg_entity_feedback_score * 20
            if metrics.avg_entity_feedback_score
            else DEFAULT_SATISFACTION
        )
        components = {
            "decisionConsistency": QualityComponent(
                metrics.decision_consistency_score, 0.25,
                "Consistency in applying decision criteria across similar cases",
            ),
            "turnaroundTime": QualityComponent(turnaround, 0.20, "Speed of case processing compared to targets"),
            "accuracyRate": QualityComponent(metrics.accuracy_score, 0.30, "Accuracy of risk assessments and decisions"),
            "entitySatisfaction": QualityComponent(satisfaction, 0.15, "Entity feedback on supervisor interactions"),
            "complianceAdherence": QualityComponent(
                metrics.inspection_completion_rate, 0.10, "Adherence to procedures and deadlines"
            ),
        }
        weighted = sum(item.score * item.weight for item in components.values())
        overall = max(0, min(100, round_half_up(weighted)))
        return QualityScoreBreakdown(supervisor_id, overall, components, now)

    def calculate_all_quality_scores(self) -> list[QualityScoreBreakdown]:
        return [self.calculate_quality_score(item.id) for item in self._items]

    # Anomaly detection

    def _anomaly(self, supervisor: Supervisor, anomaly_type: str, severity: str, description: str, *,
                 current: float, expected: float, threshold: float, deviation: float,
                 recommendations: list[str]) -> PerformanceAnomaly:
        return PerformanceAnomaly(
            id=f"ANOM-{uuid4().hex[:12]}",
            supervisor_id=supervisor.id,
            supervisor_name=supervisor.full_name,
            anomaly_type=anomaly_type,
            severity=severity,
            detected_at=self._clock(),
            description=description,
            current_value=current,
            expected_value=expected,
            threshold=threshold,
            deviation=deviation,
            recommendations=recommendations,
        )

    def detect_anomalies(self, supervisor_id: str) -> list[PerformanceAnomaly]:
        """Run every detector for one supervisor without touching tracked state."""
        supervisor = self.get(supervisor_id)
        metrics, previous = self._metric_periods(supervisor_id)
        if supervisor is None or metrics is None:
            return []
        found: list[PerformanceAnomaly] = []

        overdue = self._target("overdueCases")
        if overdue and metrics.overdue_cases > overdue.warning_threshold:
            found.append(
                self._anomaly(
                    supervisor,
                    "OVERDUE_CASES_THRESHOLD",
                    "CRITICAL" if metrics.overdue_cases > overdue.critical_threshold else "HIGH",
                    f"Supervisor has {metrics.overdue_cases} overdue cases exceeding threshold of "
                    f"{overdue.warning_threshold:g}",
                    current=metrics.overdue_cases,
                    expected=overdue.target_value,
                    threshold=overdue.warning_threshold,
                    deviation=_pct_change(metrics.overdue_cases, overdue.target_value) if overdue.target_value else 100.0,
                    recommendations=[
                        "Review case assignments and priorities",
                        "Consider workload rebalancing",
                        "Schedule meeting to identify bottlenecks",
                    ],
                )
            )

        if previous is not None:
            increase = _pct_change(metrics.avg_response_hours, previous.avg_response_hours)
            if increase > RESPONSE_SPIKE_PCT:
                found.append(
                    self._anomaly(
                        supervisor,
                        "RESPONSE_TIME_SPIKE",
                        "HIGH" if increase > RESPONSE_SPIKE_HIGH_PCT else "MEDIUM",
                        f"Average response time increased by {increase:.1f}% compared to previous period",
                        current=metrics.avg_response_hours,
                        expected=previous.avg_response_hours,
                        threshold=previous.avg_response_hours * (1 + RESPONSE_SPIKE_PCT / 100),
                        deviation=increase,
                        recommendations=[
                            "Investigate causes of delays",
                            "Review case complexity distribution",
                            "Provide additional support if needed",
                        ],
                    )
                )
            if metrics.quality_score < previous.quality_score:
                decrease = -_pct_change(metrics.quality_score, previous.quality_score)
                if decrease > QUALITY_DROP_PCT:
                    found.append(
                        self._anomaly(
                            supervisor,
                            "QUALITY_SCORE_DROP",
                            "HIGH" if decrease > QUALITY_DROP_HIGH_PCT else "MEDIUM",
                            f"Quality score dropped from {previous.quality_score:g} to "
                            f"{metrics.quality_score:g} ({decrease:.1f}% decrease)",
                            current=metrics.quality_score,
                            expected=previous.quality_score,
                            threshold=previous.quality_score * (1 - QUALITY_DROP_PCT / 100),
                            deviation=-decrease,
                            recommendations=[
                                "Review recent decisions for quality issues",
                                "Schedule quality assurance review",
                                "Provide refresher training if necessary",
                            ],
                        )
                    )

        last_activity = max(
            (item.occurred_at for item in self.activity if item.supervisor_id == supervisor_id),
            default=None,
        )
        if last_activity is not None:
            idle_hours = (self._clock() - last_activity).total_seconds() / 3600
            if idle_hours > INACTIVITY_HOURS:
                found.append(
                    self._anomaly(
                        supervisor,
                        "INACTIVITY_PERIOD",
                        "HIGH" if idle_hours > INACTIVITY_HIGH_HOURS else "MEDIUM",
                        f"No activity recorded for {math.floor(idle_hours)} hours",
                        current=idle_hours,
                        expected=EXPECTED_ACTIVITY_HOURS,
                        threshold=INACTIVITY_HOURS,
                        deviation=_pct_change(idle_hours, EXPECTED_ACTIVITY_HOURS),
                        recommendations=[
                            "Contact supervisor to check availability",
                            "Review workload and capacity",
                            "Reassign urgent cases if necessary",
                        ],
                    )
                )

        productivity = self._target("completedCases")
        if productivity and metrics.completed_cases < productivity.warning_threshold:
            found.append(
                self._anomaly(
                    supervisor,
                    "LOW_PRODUCTIVITY",
                    "HIGH" if metrics.completed_cases < productivity.critical_threshold else "MEDIUM",
                    f"Completed only {metrics.completed_cases} cases, below target of "
                    f"{productivity.target_value:g}",
                    current=metrics.completed_cases,
                    expected=productivity.target_value,
                    threshold=productivity.warning_threshold,
                    deviation=-_pct_change(metrics.completed_cases, productivity.target_value),
                    recommendations=[
                        "Investigate reasons for low productivity",
                        "Review case complexity and assignments",
                        "Provide training or support as needed",
                    ],
                )
            )
        return found

    def detect_all_anomalies(self) -> list[PerformanceAnomaly]:
        # Only (supervisor, type) pairs not already tracked are merged in.
        tracked = {(item.supervisor_id, item.anomaly_type) for item in self.anomalies}
        fresh: list[PerformanceAnomaly] = []
        for supervisor in self._items:
            for anomaly in self.detect_anomalies(supervisor.id):
                key = (anomaly.supervisor_id, anomaly.anomaly_type)
                if key in tracked:
                    continue
                tracked.add(key)
                fresh.append(anomaly)
        if fresh:
            self.anomalies.extend(fresh)
            logger.info("supervisor_anomalies_detected count=%s", len(fresh))
            self._notify("anomalies", len(fresh))
        return fresh

    @property
    def active_anomalies(self) -> list[PerformanceAnomaly]:
        return [item for item in self.anomalies if not item.is_resolved]

    @property
    def critical_anomalies(self) -> list[PerformanceAnomaly]:
        return [item for item in self.active_anomalies if item.severity == "CRITICAL"]

    def resolve_anomaly(self, anomaly_id: str, *, resolved_by: str, notes: str = "") -> bool:
        for index, item in enumerate(self.anomalies):
            if item.id != anomaly_id:
                continue
            if item.is_resolved:
                return self._fail("Anomaly already resolved")
            self.anomalies[index] = replace(
                item,
                is_resolved=True,
                resolved_at=self._clock(),
                resolved_by=resolved_by,
                resolution_notes=notes or None,
            )
            return self._succeed("anomaly.resolved", anomaly_id)
        return self._fail("Anomaly not found")

    # Workload

    def calculate_case_load_distributions(self) -> list[CaseLoadDistribution]:
        all_cases = len(self.cases)
        distributions = []
        for supervisor in self._items:
            owned = self.cases_for(supervisor.id)
            active = [item for item in owned if item.is_active]
            utilization = len(active) / supervisor.max_case_load * 100 if supervisor.max_case_load else 0.0
            distributions.append(
                CaseLoadDistribution(
                    supervisor_id=supervisor.id,
                    supervisor_name=supervisor.full_name,
                    total_cases=len(owned),
                    active_cases=len(active),
                    pending_cases=sum(1 for item in owned if item.status in PENDING_CASE_STATUSES),
                    completed_cases=len(owned) - len(active),
                    percentage=len(owned) / all_cases * 100 if all_cases else 0.0,
                    max_capacity=supervisor.max_case_load,
                    utilization_rate=utilization,
                    is_overloaded=utilization > OVERLOADED_UTILIZATION,
                    is_underloaded=utilization < UNDERLOADED_UTILIZATION,
                )
            )
        return distributions

    def case_load_histogram(self, distributions: list[CaseLoadDistribution] | None = None) -> dict[str, int]:
        distributions = distributions if distributions is not None else self.calculate_case_load_distributions()
        histogram = {label: 0 for label, _, _ in CASE_LOAD_BUCKETS}
        for item in distributions:
            for label, low, high in CASE_LOAD_BUCKETS:
                if item.active_cases >= low and (high is None or item.active_cases <= high):
                    histogram[label] += 1
                    break
        return histogram

    def generate_rebalancing_suggestions(self) -> list[RebalancingSuggestion]:
        distributions = self.calculate_case_load_distributions()
        overloaded = [item for item in distributions if item.is_overloaded]
        underloaded = [item for item in distributions if item.is_underloaded]
        suggestions = []
        for source in overloaded:
            source_specs = set(self.get(source.supervisor_id).specializations)
            for target in underloaded:
                shared = source_specs & set(self.get(target.supervisor_id).specializations)
                if not shared:
                    continue
                movable = [
                    item
                    for item in self.cases_for(source.supervisor_id)
                    if item.status == "ASSIGNED" and item.case_type in shared
                ]
                if not movable:
                    continue
                excess = math.ceil(
                    (source.utilization_rate - REBALANCE_TARGET_UTILIZATION) / 100 * source.max_capacity
                )
                capacity = math.floor(
                    (REBALANCE_TARGET_UTILIZATION - target.utilization_rate) / 100 * target.max_capacity
                )
                count = min(excess, capacity, len(movable), MAX_CASES_PER_MOVE)
                if count <= 0:
                    continue
                suggestions.append(
                    RebalancingSuggestion(
                        from_supervisor_id=source.supervisor_id,
                        from_supervisor_name=source.supervisor_name,
                        to_supervisor_id=target.supervisor_id,
                        to_supervisor_name=target.supervisor_name,
                        cases_to_move=count,
                        case_ids=[item.id for item in movable[:count]],
                        reason=(
                            f"Rebalance workload from {source.utilization_rate:.0f}% "
                            f"to {target.utilization_rate:.0f}% utilization"
                        ),
                        expected_from_utilization=source.utilization_rate - count / source.max_capacity * 100,
                        expected_to_utilization=target.utilization_rate + count / target.max_capacity * 100,
                    )
                )
        return suggestions

    def execute_rebalancing(self, payload: dict[str, Any]) -> bool:
        try:
            request = RebalanceRequest.model_validate(payload)
        except PydanticValidationError as exc:
            return self._fail(f"Invalid rebalancing request: {exc.errors()[0]['msg']}")
        target = self.get(request.to_supervisor_id)
        if target is None or not target.is_active:
            return self._fail("Target supervisor not found")
        owned = {item.id for item in self.cases_for(request.from_supervisor_id)}
        missing = [case_id for case_id in request.case_ids if case_id not in owned]
        if missing:
            return self._fail(f"Cases not assigned to source supervisor: {', '.join(missing)}")
        now = self._clock()
        moving = set(request.case_ids)
        self.cases = [
            replace(item, supervisor_id=target.id, updated_at=now) if item.id in moving else item
            for item in self.cases
        ]
        self.activity.append(
            ActivityLog(
                id=f"ACT-{uuid4().hex[:12]}",
                supervisor_id=target.id,
                activity_type="CASE_ASSIGNED",
                occurred_at=now,
                description=f"{len(moving)} cases rebalanced from another supervisor",
                outcome=request.reason,
            )
        )
        logger.info(
            "supervisor_cases_rebalanced from=%s to=%s count=%s",
            request.from_supervisor_id,
            target.id,
            len(moving),
        )
        return self._succeed("rebalanced", sorted(moving))

    def make_decision(self, payload: dict[str, Any]) -> bool:
        try:
            request = DecisionRequest.model_validate(payload)
        except PydanticValidationError as exc:
            return self._fail(f"Invalid decision: {exc.errors()[0]['msg']}")
        index = next((i for i, item in enumerate(self.cases) if item.id == request.case_id), None)
        if index is None:
            return self._fail("Case not found")
        case = self.cases[index]
        if not case.is_active:
            return self._fail("Case already decided")
        now = self._clock()
        self.decisions.append(
            SupervisorDecision(
                id=f"DEC-{len(self.decisions) + 1:03d}",
                supervisor_id=case.supervisor_id,
                case_id=case.id,
                case_number=case.case_number,
                entity_name=case.entity_name,
                decision_type=request.decision_type,
                decided_at=now,
                response_hours=(now - case.assigned_at).total_seconds() / 3600,
                notes=request.notes,
                attachments=list(request.attachments),
            )
        )
        self.cases[index] = replace(
            case,
            status=DECISION_CASE_STATUS[request.decision_type],
            decision_type=request.decision_type,
            decision_notes=request.notes,
            completed_at=now,
            updated_at=now,
        )
        return self._succeed("decision", case.id)

    # Views

    @property
    def dashboard_summary(self) -> dict[str, Any]:
        current = [period for period in (self._metric_periods(item.id)[0] for item in self._items) if period]
        avg_response = sum(item.avg_response_hours for item in current) / len(current) if current else 0
        avg_quality = sum(item.quality_score for item in current) / len(current) if current else 0
        return {
            "totalSupervisors": len(self._items),
            "activeSupervisors": sum(1 for item in self._items if item.is_active),
            "totalCases": len(self.cases),
            "pendingCases": sum(1 for item in self.cases if item.status in PENDING_CASE_STATUSES),
            "overdueCases": sum(1 for item in self.cases if item.is_active and item.due_at < self._clock()),
            "avgResponseTime": round_half_up(avg_response),
            "avgQualityScore": round_half_up(avg_quality),
            "activeAnomalies": len(self.active_anomalies),
            "lastUpdated": self._clock().isoformat(),
        }

    def update_filters(self, **criteria: Any) -> None:
        known = {item.name for item in fields(SupervisorFilters)}
        unknown = set(criteria) - known
        if unknown:
            raise ValueError(f"Unsupported supervisor filters: {sorted(unknown)}")
        self.filters = replace(self.filters, **criteria)
        self.pagination = replace(self.pagination, page=1)
        self._notify("filters", self.filters)

    def clear_filters(self) -> None:
        self.filters = SupervisorFilters()
        self.pagination = replace(self.pagination, page=1)
        self._notify("filters", self.filters)

    def update_pagination(self, **changes: Any) -> None:
        pagination = replace(self.pagination, **changes)
        if pagination.sort_by not in _SORTABLE_FIELDS:
            raise ValueError(f"Unsupported sort field: {pagination.sort_by}")
        self.pagination = pagination
        self._notify("pagination", self.pagination)

    @property
    def filtered_supervisors(self) -> list[Supervisor]:
        return self.apply_filters(self.filters)

    def apply_filters(self, criteria: SupervisorFilters) -> list[Supervisor]:
        rows = search(self._items, criteria.search, ("first_name", "last_name", "email"))
        rows = filter_by_exact_fields(rows, {"role": criteria.roles, "department": criteria.departments})
        if criteria.min_quality_score is not None:
            rows = [
                row
                for row in rows
                if (metrics := self._metric_periods(row.id)[0]) is not None
                and metrics.quality_score >= criteria.min_quality_score
            ]
        if criteria.has_anomalies is not None:
            flagged = {item.supervisor_id for item in self.active_anomalies}
            rows = [row for row in rows if (row.id in flagged) == criteria.has_anomalies]
        if criteria.is_overloaded is not None:
            overloaded = {
                item.supervisor_id for item in self.calculate_case_load_distributions() if item.is_overloaded
            }
            rows = [row for row in rows if (row.id in overloaded) == criteria.is_overloaded]
        return rows

    @property
    def paginated_supervisors(self) -> list[Supervisor]:
        ordered = sort_by(self.filtered_supervisors, self.pagination.sort_by, self.pagination.sort_order)
        return paginate(ordered, self.pagination.page, self.pagination.page_size)

    @property
    def total_pages(self) -> int:
        return math.ceil(len(self.filtered_supervisors) / self.pagination.page_size)

    def page(
        self,
        filters: SupervisorFilters | None = None,
        pagination: Pagination | None = None,
    ) -> Page[Supervisor]:
        """Page through supervisors; explicit arguments leave the held view untouched."""
        pagination = pagination or self.pagination
        if pagination.sort_by not in _SORTABLE_FIELDS:
            raise ValueError(f"Unsupported sort field: {pagination.sort_by}")
        rows = self.apply_filters(filters or self.filters)
        ordered = sort_by(rows, pagination.sort_by, pagination.sort_order)
        return Page(
            items=paginate(ordered, pagination.page, pagination.page_size),
            total=len(rows),
            page=pagination.page,
            page_size=pagination.page_size,
        )

    def select_supervisor(self, supervisor_id: str) -> bool:
        supervisor = self.get(supervisor_id)
        if supervisor is None:
            return self._fail("Supervisor not found")
        self.selected = supervisor
        return self._succeed("selected", supervisor_id)

    def clear_selected_supervisor(self) -> None:
        self.selected = None
        self._notify("selected", None)
