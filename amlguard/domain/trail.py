from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from amlguard.domain.entities import to_jsonable
from amlguard.domain.records import utc_now


ActivityCategory = Literal[
    "AUTHENTICATION",
    "AUTHORIZATION",
    "DATA_ACCESS",
    "DATA_MODIFICATION",
    "ENTITY_MANAGEMENT",
    "USER_MANAGEMENT",
    "RISK_ASSESSMENT",
    "CASE_MANAGEMENT",
    "REPORT_GENERATION",
    "SYSTEM_CONFIGURATION",
    "EXPORT",
    "IMPORT",
    "COMPLIANCE",
    "SUPERVISION",
]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
ActionResult = Literal["SUCCESS", "FAILURE", "PARTIAL", "PENDING"]
ExportFormat = Literal["CSV", "JSON"]

TIME_RANGES: dict[str, timedelta] = {
    "LAST_HOUR": timedelta(hours=1),
    "LAST_24_HOURS": timedelta(hours=24),
    "LAST_7_DAYS": timedelta(days=7),
    "LAST_30_DAYS": timedelta(days=30),
    "LAST_90_DAYS": timedelta(days=90),
    "LAST_6_MONTHS": timedelta(days=180),
    "LAST_YEAR": timedelta(days=365),
}

# -1 keeps records forever.
RETENTION_DAYS: dict[str, int] = {
    "DAYS_30": 30,
    "DAYS_90": 90,
    "MONTHS_6": 180,
    "YEAR_1": 365,
    "YEARS_2": 730,
    "YEARS_5": 1825,
    "YEARS_7": 2555,
    "YEARS_10": 3650,
    "PERMANENT": -1,
}


@dataclass
class TrailRecord:
    id: str
    timestamp: datetime
    category: str
    action: str
    entity_type: str
    entity_id: str | None
    entity_name: str | None
    user_id: str
    user_name: str
    user_role: str
    ip_address: str
    result: str
    log_level: str
    description: str
    session_id: str
    duration_ms: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    prev_hash: str = ""
    hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(asdict(self))


@dataclass
class RetentionPolicy:
    id: str
    category: str
    retention_period: str
    retention_days: int
    entity_type: str | None = None
    log_level: str | None = None
    auto_archive: bool = False
    auto_delete: bool = False
    is_active: bool = True
    created_by: str = "system"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(asdict(self))
