from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

from amlguard.domain.records import utc_now


ENTITY_TYPES: tuple[str, ...] = (
    "Stockbroker",
    "Investment Manager",
    "Custodian",
    "Market Operator",
    "Investment Advisor",
    "Portfolio Manager",
)
ENTITY_STATUSES: tuple[str, ...] = ("Active", "Pending", "Suspended", "Revoked", "Expired")
REGISTRY_RISK_LEVELS: tuple[str, ...] = ("High", "Medium", "Low", "Unrated")
NOTE_CATEGORIES: tuple[str, ...] = ("General", "Compliance", "Risk", "Inspection", "Internal")


@dataclass
class License:
    license_number: str
    issue_date: date
    expiry_date: date
    status: str = "Pending"
    conditions: list[str] = field(default_factory=list)
    renewal_count: int = 0
    last_renewal_date: date | None = None
    suspension_reason: str | None = None
    suspension_date: date | None = None
    revocation_reason: str | None = None
    revocation_date: date | None = None
    authorized_by: str | None = None


@dataclass
class HistoryEvent:
    id: str
    type: str
    title: str
    description: str
    occurred_on: date
    performed_by: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class EntityNote:
    id: str
    content: str
    category: str
    created_at: datetime
    created_by: str
    is_confidential: bool = False


@dataclass
class RegistryEntity:
    id: str
    name: str
    type: str
    status: str
    license: License
    registration_number: str
    primary_contact_name: str
    compliance_score: int | None = None
    risk_level: str | None = None
    notes: list[EntityNote] = field(default_factory=list)
    history: list[HistoryEvent] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    updated_by: str | None = None

    @property
    def effective_risk_level(self) -> str:
        return self.risk_level or "Unrated"

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(asdict(self))


def to_jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_jsonable(item) for item in value]
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value
