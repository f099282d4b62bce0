from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite returns naive datetimes; treat them as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def months_before(moment: datetime, months: int) -> datetime:
    """Calendar month shift; the day clamps to the end of a shorter month."""
    year, month = shift_month(moment.year, moment.month, -months)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@dataclass
class Institution:
    id: str
    name: str
    license_number: str
    category: str | None = None
    status: str = "Active"
    risk_level: str = "Medium"
    risk_score: int | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class RiskProfile:
    id: str
    institution_id: str
    overall_risk_level: str
    overall_risk_score: float
    assessed_at: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class SurveillanceLog:
    id: str
    institution_id: str
    type: str
    severity: str
    description: str
    occurred_at: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class InspectionFinding:
    id: str
    institution_id: str
    category: str
    severity: str
    description: str
    recommendation: str | None = None
    due_date: datetime | None = None
    status: str = "Open"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None


@dataclass
class ComplianceStatusRecord:
    institution_id: str
    status: str
    compliant: int = 0
    non_compliant: int = 0
    partial: int = 0


@dataclass
class Intervention:
    id: str
    institution_id: str
    type: str
    intensity: int
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass
class AuditLogEntry:
    user_id: str | None
    path: str
    method: str
    created_at: datetime = field(default_factory=utc_now)
    id: int | None = None
    prev_hash: str | None = None
    entry_hash: str | None = None


@dataclass(frozen=True)
class RiskScore:
    institution_id: str
    score: int
    level: str
    computed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["computed_at"] = self.computed_at.isoformat()
        return payload
