from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field, model_validator

from amlguard.domain.entities import to_jsonable


SupervisorRank = Literal["SENIOR_SUPERVISOR", "SUPERVISOR", "JUNIOR_SUPERVISOR", "TEAM_LEAD"]
CaseStatus = Literal[
    "PENDING_ASSIGNMENT",
    "ASSIGNED",
    "IN_REVIEW",
    "PENDING_DECISION",
    "APPROVED",
    "REJECTED",
    "DEFERRED",
    "ESCALATED",
    "CLOSED",
]
CaseType = Literal[
    "LICENSE_APPLICATION",
    "LICENSE_RENEWAL",
    "ONSITE_INSPECTION",
    "DESK_REVIEW",
    "COMPLAINT_INVESTIGATION",
    "STR_REVIEW",
    "COMPLIANCE_ASSESSMENT",
    "RISK_ASSESSMENT",
    "ENFORCEMENT_ACTION",
]
CasePriority = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW"]
DecisionType = Literal["APPROVE", "REJECT", "DEFER", "REQUEST_MORE_INFO", "ESCALATE", "CLOSE"]
AnomalyType = Literal[
    "SUDDEN_APPROVAL_RATE_CHANGE",
    "RESPONSE_TIME_SPIKE",
    "INACTIVITY_PERIOD",
    "QUALITY_SCORE_DROP",
    "OVERDUE_CASES_THRESHOLD",
    "UNUSUAL_DECISION_PATTERN",
    "LOW_PRODUCTIVITY",
]
AlertSeverity = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW", "INFO"]

CASE_TYPES: tuple[str, ...] = get_args(CaseType)
DECISION_TYPES: tuple[str, ...] = get_args(DecisionType)
TERMINAL_CASE_STATUSES = frozenset({"APPROVED", "REJECTED", "CLOSED"})
PENDING_CASE_STATUSES = frozenset({"ASSIGNED", "PENDING_DECISION"})

DECISION_CASE_STATUS: dict[str, str] = {
    "APPROVE": "APPROVED",
    "REJECT": "REJECTED",
    "DEFER": "DEFERRED",
    "ESCALATE": "ESCALATED",
    "REQUEST_MORE_INFO": "CLOSED",
    "CLOSE": "CLOSED",
}


class _Serializable:
    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(asdict(self))


@dataclass
class Supervisor(_Serializable):
    id: str
    first_name: str
    last_name: str
    email: str
    role: str
    department: str
    specializations: list[str]
    max_case_load: int
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class SupervisorCase(_Serializable):
    id: str
    case_number: str
    supervisor_id: str
    entity_name: str
    case_type: str
    status: str
    priority: str
    assigned_at: datetime
    due_at: datetime
    completed_at: datetime | None = None
    decision_type: str | None = None
    decision_notes: str | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_CASE_STATUSES


@dataclass
class PerformanceMetrics(_Serializable):
    supervisor_id: str
    period_start: datetime
    period_end: datetime
    total_cases: int
    pending_cases: int
    completed_cases: int
    overdue_cases: int
    approval_rate: float
    avg_response_hours: float
    quality_score: float
    decision_consistency_score: float
    accuracy_score: float
    inspection_completion_rate: float
    avg_entity_feedback_score: float | None = None


@dataclass
class PerformanceTarget(_Serializable):
    id: str
    metric: str
    target_value: float
    warning_threshold: float
    critical_threshold: float
    unit: str
    is_active: bool = True


@dataclass
class ActivityLog(_Serializable):
    id: str
    supervisor_id: str
    activity_type: str
    occurred_at: datetime
    description: str
    case_id: str | None = None
    outcome: str | None = None


@dataclass
class PerformanceAnomaly(_Serializable):
    id: str
    supervisor_id: str
    supervisor_name: str
    anomaly_type: str
    severity: str
    detected_at: datetime
    description: str
    current_value: float
    expected_value: float
    threshold: float
    deviation: float
    recommendations: list[str] = field(default_factory=list)
    is_resolved: bool = False
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_notes: str | None = None


@dataclass
class SupervisorDecision(_Serializable):
    id: str
    supervisor_id: str
    case_id: str
    case_number: str
    entity_name: str
    decision_type: str
    decided_at: datetime
    response_hours: float
    notes: str
    attachments: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class QualityComponent:
    score: float
    weight: float
    description: str


@dataclass(frozen=True)
class QualityScoreBreakdown:
    supervisor_id: str
    overall_score: int
    components: dict[str, QualityComponent]
    calculated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "supervisorId": self.supervisor_id,
            "overallScore": self.overall_score,
            "components": {
                name: {"score": round(item.score, 2), "weight": item.weight, "description": item.description}
                for name, item in self.components.items()
            },
            "calculatedAt": self.calculated_at.isoformat(),
        }


@dataclass(frozen=True)
class CaseLoadDistribution(_Serializable):
    supervisor_id: str
    supervisor_name: str
    total_cases: int
    active_cases: int
    pending_cases: int
    completed_cases: int
    percentage: float
    max_capacity: int
    utilization_rate: float
    is_overloaded: bool
    is_underloaded: bool


@dataclass(frozen=True)
class RebalancingSuggestion(_Serializable):
    from_supervisor_id: str
    from_supervisor_name: str
    to_supervisor_id: str
    to_supervisor_name: str
    cases_to_move: int
    case_ids: list[str]
    reason: str
    expected_from_utilization: float
    expected_to_utilization: float


class DecisionRequest(BaseModel):
    model_config = {"extra": "forbid"}

    case_id: str = Field(min_length=1)
    decision_type: DecisionType
    notes: str = Field(min_length=10, max_length=2000)
    attachments: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _detailed_notes(self) -> "DecisionRequest":
        if self.decision_type in {"ESCALATE", "REJECT"} and len(self.notes) < 50:
            raise ValueError("Escalations and rejections require detailed notes (minimum 50 characters)")
        return self


class RebalanceRequest(BaseModel):
    model_config = {"extra": "forbid"}

    from_supervisor_id: str = Field(min_length=1)
    to_supervisor_id: str = Field(min_length=1)
    case_ids: list[str] = Field(min_length=1, max_length=20)
    reason: str = Field(min_length=20, max_length=500)

    @model_validator(mode="after")
    def _distinct_supervisors(self) -> "RebalanceRequest":
        if self.from_supervisor_id == self.to_supervisor_id:
            raise ValueError("Source and target supervisors must be different")
        return self
