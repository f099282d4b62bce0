from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime
from typing import TypeVar
from uuid import uuid4

from amlguard.domain.records import (
    AuditLogEntry,
    ComplianceStatusRecord,
    InspectionFinding,
    Institution,
    Intervention,
    RiskProfile,
    SurveillanceLog,
    utc_now,
)
from amlguard.persistence.fixtures import DemoDataset, build_demo_dataset
from amlguard.persistence.store import DEFAULT_INSTITUTION_SORT
from amlguard.services.query import ListQuery, Page, SortField, apply_list_query, sort_by


T = TypeVar("T")


def _new_id() -> str:
    return f"mem-{uuid4().hex[:12]}"


def _copies(rows: list[T]) -> list[T]:
    # Hand out copies so callers cannot mutate stored rows in place.
    return [replace(row) for row in rows]


class MemoryStore:
    """Process-local store backing demo mode when no database is configured."""

    backend = "memory"

    def __init__(self, dataset: DemoDataset | None = None) -> None:
        dataset = dataset or DemoDataset()
        self._institutions: list[Institution] = list(dataset.institutions)
        self._risk_profiles: list[RiskProfile] = list(dataset.risk_profiles)
        self._surveillance: list[SurveillanceLog] = list(dataset.surveillance_logs)
        self._findings: list[InspectionFinding] = list(dataset.inspection_findings)
        self._compliance: list[ComplianceStatusRecord] = list(dataset.compliance_status)
        self._interventions: list[Intervention] = list(dataset.interventions)
        self._audit_logs: list[AuditLogEntry] = []
        self._audit_ids = itertools.count(1)

    @classmethod
    def with_demo_data(cls, now: datetime | None = None) -> "MemoryStore":
        return cls(build_demo_dataset(now))

    def _find_institution(self, institution_id: str) -> Institution | None:
        return next((row for row in self._institutions if row.id == institution_id), None)

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
        query = ListQuery(
            filters={"status": status, "risk_level": risk_level},
            search=search,
            search_fields=("name", "license_number"),
            sort=list(sort or DEFAULT_INSTITUTION_SORT),
            page=page,
            page_size=page_size,
        )
        result = apply_list_query(self._institutions, query)
        result.items = _copies(result.items)
        return result

    async def list_all_institutions(self) -> list[Institution]:
        return _copies(self._institutions)

    async def get_institution(self, institution_id: str) -> Institution | None:
        found = self._find_institution(institution_id)
        return replace(found) if found else None

    async def get_institution_by_license(self, license_number: str) -> Institution | None:
        found = next((row for row in self._institutions if row.license_number == license_number), None)
        return replace(found) if found else None

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
        now = utc_now()
        item = Institution(
            id=_new_id(),
            name=name,
            license_number=license_number,
            category=category,
            status=status,
            risk_level=risk_level,
            # Unassessed until a score is supplied.
            risk_score=risk_score,
            created_at=now,
            updated_at=now,
        )
        self._institutions.append(item)
        return replace(item)

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
        found = self._find_institution(institution_id)
        if found is None:
            return None
        updates = {
            "name": name,
            "license_number": license_number,
            "category": category,
            "status": status,
            "risk_level": risk_level,
            "risk_score": risk_score,
        }
        for key, value in updates.items():
            if value is not None:
                setattr(found, key, value)
        found.updated_at = utc_now()
        return replace(found)

    async def list_risk_profiles(
        self,
        *,
        institution_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[RiskProfile]:
        rows = [
            row
            for row in self._risk_profiles
            if (institution_id is None or row.institution_id == institution_id)
            and (since is None or row.assessed_at >= since)
        ]
        rows = sort_by(rows, "assessed_at", "desc")
        if limit is not None:
            rows = rows[:limit]
        return _copies(rows)

    async def create_risk_profile(
        self,
        *,
        institution_id: str,
        overall_risk_level: str,
        overall_risk_score: float,
        assessed_at: datetime | None = None,
    ) -> RiskProfile:
        now = utc_now()
        profile = RiskProfile(
            id=_new_id(),
            institution_id=institution_id,
            overall_risk_level=overall_risk_level,
            overall_risk_score=overall_risk_score,
            assessed_at=assessed_at or now,
            created_at=now,
            updated_at=now,
        )
        self._risk_profiles.append(profile)
        return replace(profile)

    async def update_risk_profile(
        self,
        profile_id: str,
        *,
        overall_risk_level: str | None = None,
        overall_risk_score: float | None = None,
    ) -> RiskProfile | None:
        found = next((row for row in self._risk_profiles if row.id == profile_id), None)
        if found is None:
            return None
        if overall_risk_level is not None:
            found.overall_risk_level = overall_risk_level
        if overall_risk_score is not None:
            found.overall_risk_score = overall_risk_score
        found.updated_at = utc_now()
        return replace(found)

    async def list_surveillance_logs(
        self,
        *,
        institution_id: str | None = None,
        since: datetime | None = None,
    ) -> list[SurveillanceLog]:
        rows = [
            row
            for row in self._surveillance
            if (institution_id is None or row.institution_id == institution_id)
            and (since is None or row.occurred_at >= since)
        ]
        return _copies(sort_by(rows, "occurred_at", "desc"))

    async def create_surveillance_log(
        self,
        *,
        institution_id: str,
        type: str,
        severity: str,
        description: str,
        occurred_at: datetime | None = None,
    ) -> SurveillanceLog:
        now = utc_now()
        log = SurveillanceLog(
            id=_new_id(),
            institution_id=institution_id,
            type=type,
            severity=severity,
            description=description,
            occurred_at=occurred_at or now,
            created_at=now,
        )
        self._surveillance.append(log)
        return replace(log)

    async def list_findings(self, *, institution_id: str | None = None) -> list[InspectionFinding]:
        rows = [
            row for row in self._findings if institution_id is None or row.institution_id == institution_id
        ]
        return _copies(sort_by(rows, "created_at", "desc"))

    async def get_finding(self, finding_id: str) -> InspectionFinding | None:
        found = next((row for row in self._findings if row.id == finding_id), None)
        return replace(found) if found else None

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
        finding = InspectionFinding(
            id=_new_id(),
            institution_id=institution_id,
            category=category,
            severity=severity,
            description=description,
            recommendation=recommendation,
            due_date=due_date,
            status="Open",
            created_at=utc_now(),
        )
        self._findings.append(finding)
        return replace(finding)

    async def update_finding_status(self, finding_id: str, status: str) -> InspectionFinding | None:
        found = next((row for row in self._findings if row.id == finding_id), None)
        if found is None:
            return None
        found.status = status
        found.updated_at = utc_now()
        return replace(found)

    async def count_open_findings(self, institution_id: str) -> int:
        return sum(
            1 for row in self._findings if row.institution_id == institution_id and row.status != "Closed"
        )

    async def list_compliance_status(self) -> list[ComplianceStatusRecord]:
        return _copies(self._compliance)

    async def list_interventions(self) -> list[Intervention]:
        return _copies(self._interventions)

    async def append_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        stored = replace(entry, id=next(self._audit_ids))
        self._audit_logs.append(stored)
        return replace(stored)

    async def last_audit_log(self) -> AuditLogEntry | None:
        return replace(self._audit_logs[-1]) if self._audit_logs else None

    async def list_audit_logs(self, *, limit: int) -> list[AuditLogEntry]:
        return _copies(list(reversed(self._audit_logs))[:limit])

    async def audit_chain(self) -> list[AuditLogEntry]:
        return _copies(self._audit_logs)

    async def close(self) -> None:
        return None
