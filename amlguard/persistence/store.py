from __future__ import annotations

from datetime import datetime
from typing import Protocol

from amlguard.domain.records import (
    AuditLogEntry,
    ComplianceStatusRecord,
    InspectionFinding,
    Institution,
    Intervention,
    RiskProfile,
    SurveillanceLog,
)
from amlguard.services.query import Page, SortField


INSTITUTION_SORT_FIELDS: tuple[str, ...] = (
    "name",
    "license_number",
    "status",
    "risk_level",
    "risk_score",
    "created_at",
    "updated_at",
)
DEFAULT_INSTITUTION_SORT: list[SortField] = [SortField(name="updated_at", direction="desc")]


class Store(Protocol):
    """Storage interface shared by the in-memory and relational backends.

    Lists come back most-recent-first on the record's natural timestamp.
    Updates follow COALESCE semantics: ``None`` keeps the stored value.
    """

    backend: str

    async def list_institutions(
        self,
        *,
        search: str | None = None,
        status: str | None = None,
        risk_level: str | None = None,
        page: int = 1,
        page_size: int = 10,
        sort: list[SortField] | None = None,
    ) -> Page[Institution]:
        ...

    async def list_all_institutions(self) -> list[Institution]:
        ...

    async def get_institution(self, institution_id: str) -> Institution | None:
        ...

    async def get_institution_by_license(self, license_number: str) -> Institution | None:
        ...

    async def create_institution(
        self,
        *,
        name: str,
        license_number: str,
        category: str | None,
        status: str,
        risk_level: str,
        risk_score: int | None = None,
    ) -> Institution:
        ...

    async def update_institution(
        self,
        institution_id: str,
        *,
        name: str | None = None,
        license_number: str | None = None,
        category: str | None = None,
        status: str | None = None,
        risk_level: str | None = None,
        risk_score: int | None = None,
    ) -> Institution | None:
        ...

    async def list_risk_profiles(
        self,
        *,
        institution_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[RiskProfile]:
        ...

    async def create_risk_profile(
        self,
        *,
        institution_id: str,
        overall_risk_level: str,
        overall_risk_score: float,
        assessed_at: datetime | None = None,
    ) -> RiskProfile:
        ...

    async def update_risk_profile(
        self,
        profile_id: str,
        *,
        overall_risk_level: str | None = None,
        overall_risk_score: float | None = None,
    ) -> RiskProfile | None:
        ...

    async def list_surveillance_logs(
        self,
        *,
        institution_id: str | None = None,
        since: datetime | None = None,
    ) -> list[SurveillanceLog]:
        ...

    async def create_surveillance_log(
        self,
        *,
        institution_id: str,
        type: str,
        severity: str,
        description: str,
        occurred_at: datetime | None = None,
    ) -> SurveillanceLog:
        ...

    async def list_findings(self, *, institution_id: str | None = None) -> list[InspectionFinding]:
        ...

    async def get_finding(self, finding_id: str) -> InspectionFinding | None:
        ...

    async def create_finding(
        self,
        *,
        institution_id: str,
        category: str,
        severity: str,
        description: str,
        recommendation: str | None = None,
        due_date: datetime | None = None,
    ) -> InspectionFinding:
        ...

    async def update_finding_status(self, finding_id: str, status: str) -> InspectionFinding | None:
        ...

    async def count_open_findings(self, institution_id: str) -> int:
        ...

    async def list_compliance_status(self) -> list[ComplianceStatusRecord]:
        ...

    async def list_interventions(self) -> list[Intervention]:
        ...

    async def append_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        ...

    async def last_audit_log(self) -> AuditLogEntry | None:
        ...

    async def list_audit_logs(self, *, limit: int) -> list[AuditLogEntry]:
        ...

    async def audit_chain(self) -> list[AuditLogEntry]:
        ...

    async def close(self) -> None:
        ...


def create_store(database_url: str | None) -> Store:
    # Select the backend once at startup so callers never branch on environment.
    if not database_url:
        from amlguard.persistence.memory import MemoryStore

        return MemoryStore.with_demo_data()
    from amlguard.persistence.sql import SqlStore

    return SqlStore.from_url(database_url)
