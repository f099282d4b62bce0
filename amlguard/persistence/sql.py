from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from amlguard.core.errors import ConflictError, PersistenceError
from amlguard.domain.models import (
    AuditLogRow,
    ComplianceStatusRow,
    InspectionFindingRow,
    InstitutionRow,
    InterventionRow,
    RiskProfileRow,
    SurveillanceLogRow,
)
from amlguard.domain.records import (
    AuditLogEntry,
    ComplianceStatusRecord,
    InspectionFinding,
    Institution,
    Intervention,
    RiskProfile,
    SurveillanceLog,
    as_utc,
    utc_now,
)
from amlguard.persistence.db import build_engine, build_sessionmaker
from amlguard.persistence.repos import audit_logs as audit_repo
from amlguard.persistence.repos import institutions as institutions_repo
from amlguard.persistence.repos import risk_profiles as profiles_repo
from amlguard.persistence.repos import supervision as supervision_repo
from amlguard.persistence.store import DEFAULT_INSTITUTION_SORT
from amlguard.services.query import Page, SortField


logger = logging.getLogger(__name__)


def _institution(row: InstitutionRow) -> Institution:
    return Institution(
        id=row.id,
        name=row.name,
        license_number=row.license_number,
        category=row.category,
        status=row.status,
        risk_level=row.risk_level,
        risk_score=row.risk_score,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _profile(row: RiskProfileRow) -> RiskProfile:
    return RiskProfile(
        id=row.id,
        institution_id=row.institution_id,
        overall_risk_level=row.overall_risk_level,
        overall_risk_score=float(row.overall_risk_score),
        assessed_at=as_utc(row.assessed_at),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _surveillance(row: SurveillanceLogRow) -> SurveillanceLog:
    return SurveillanceLog(
        id=row.id,
        institution_id=row.institution_id,
        type=row.type,
        severity=row.severity,
        description=row.description,
        occurred_at=as_utc(row.occurred_at),
        created_at=as_utc(row.created_at),
    )


def _finding(row: InspectionFindingRow) -> InspectionFinding:
    return InspectionFinding(
        id=row.id,
        institution_id=row.institution_id,
        category=row.category,
        severity=row.severity,
        description=row.description,
        recommendation=row.recommendation,
        due_date=as_utc(row.due_date),
        status=row.status,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _compliance(row: ComplianceStatusRow) -> ComplianceStatusRecord:
    return ComplianceStatusRecord(
        institution_id=row.institution_id,
        status=row.status,
        compliant=row.compliant,
        non_compliant=row.non_compliant,
        partial=row.partial,
    )


def _intervention(row: InterventionRow) -> Intervention:
    return Intervention(
        id=row.id,
        institution_id=row.institution_id,
        type=row.type,
        intensity=row.intensity,
        occurred_at=as_utc(row.occurred_at),
    )


def _audit(row: AuditLogRow) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        user_id=row.user_id,
        path=row.path,
        method=row.method,
        created_at=as_utc(row.created_at),
        prev_hash=row.prev_hash,
        entry_hash=row.entry_hash,
    )


class SqlStore:
    """Relational store over an async SQLAlchemy engine (asyncpg or aiosqlite)."""

    backend = "sql"

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = build_sessionmaker(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlStore":
        return cls(build_engine(database_url))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def _session(self, *, commit: bool = False) -> AsyncIterator[AsyncSession]:
        # One session per store call; constraint violations surface as ConflictError,
        # other driver errors as PersistenceError.
        async with self._sessions() as session:
            try:
                yield session
                if commit:
                    await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.info("store_integrity_conflict error=%s", exc.__class__.__name__)
                raise ConflictError("Record conflicts with an existing entry") from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.warning("store_query_failed error=%s", exc.__class__.__name__)
                raise PersistenceError("Database operation failed") from exc

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
        async def _items() -> list[InstitutionRow]:
            async with self._session() as session:
                return await institutions_repo.list_institutions(
                    session,
                    search=search,
                    status=status,
                    risk_level=risk_level,
                    offset=(page - 1) * page_size,
                    limit=page_size,
                    sort=sort or DEFAULT_INSTITUTION_SORT,
                )

        async def _count() -> int:
            async with self._session() as session:
                return await institutions_repo.count_institutions(
                    session, search=search, status=status, risk_level=risk_level
                )

        # Page and total are independent reads; run them together.
        rows, total = await asyncio.gather(_items(), _count())
        return Page(
            items=[_institution(row) for row in rows],
            total=total,
            page=page,
            page_size=page_size,
        )

    async def list_all_institutions(self) -> list[Institution]:
        async with self._session() as session:
            rows = await institutions_repo.list_all(session)
            return [_institution(row) for row in rows]

    async def get_institution(self, institution_id: str) -> Institution | None:
        async with self._session() as session:
            row = await institutions_repo.get_institution(session, institution_id)
            return _institution(row) if row else None

    async def get_institution_by_license(self, license_number: str) -> Institution | None:
        async with self._session() as session:
            row = await institutions_repo.get_by_license_number(session, license_number)
            return _institution(row) if row else None

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
        async with self._session(commit=True) as session:
            row = await institutions_repo.create_institution(
                session,
                institution_id=str(uuid4()),
                name=name,
                license_number=license_number,
                category=category,
                status=status,
                risk_level=risk_level,
                risk_score=risk_score,
                now=utc_now(),
            )
            return _institution(row)

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
        async with self._session(commit=True) as session:
            row = await institutions_repo.update_fields(
                session,
                institution_id,
                now=utc_now(),
                name=name,
                license_number=license_number,
                category=category,
                status=status,
                risk_level=risk_level,
                risk_score=risk_score,
            )
            return _institution(row) if row else None

    async def list_risk_profiles(
        self,
        *,
        institution_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[RiskProfile]:
        async with self._session() as session:
            rows = await profiles_repo.list_profiles(
                session, institution_id=institution_id, since=since, limit=limit
            )
            return [_profile(row) for row in rows]

    async def create_risk_profile(
        self,
        *,
        institution_id: str,
        overall_risk_level: str,
        overall_risk_score: float,
        assessed_at: datetime | None = None,
    ) -> RiskProfile:
        now = utc_now()
        async with self._session(commit=True) as session:
            row = await profiles_repo.create_profile(
                session,
                profile_id=str(uuid4()),
                institution_id=institution_id,
                overall_risk_level=overall_risk_level,
                overall_risk_score=overall_risk_score,
                assessed_at=assessed_at or now,
                now=now,
            )
            return _profile(row)

    async def update_risk_profile(
        self,
        profile_id: str,
        *,
        overall_risk_level: str | None = None,
        overall_risk_score: float | None = None,
    ) -> RiskProfile | None:
        async with self._session(commit=True) as session:
            row = await profiles_repo.update_fields(
                session,
                profile_id,
                now=utc_now(),
                overall_risk_level=overall_risk_level,
                overall_risk_score=overall_risk_score,
            )
            return _profile(row) if row else None

    async def list_surveillance_logs(
        self,
        *,
        institution_id: str | None = None,
        since: datetime | None = None,
    ) -> list[SurveillanceLog]:
        async with self._session() as session:
            rows = await supervision_repo.list_surveillance_logs(
                session, institution_id=institution_id, since=since
            )
            return [_surveillance(row) for row in rows]

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
        async with self._session(commit=True) as session:
            row = await supervision_repo.create_surveillance_log(
                session,
                log_id=str(uuid4()),
                institution_id=institution_id,
                type=type,
                severity=severity,
                description=description,
                occurred_at=occurred_at or now,
                now=now,
            )
            return _surveillance(row)

    async def list_findings(self, *, institution_id: str | None = None) -> list[InspectionFinding]:
        async with self._session() as session:
            rows = await supervision_repo.list_findings(session, institution_id=institution_id)
            return [_finding(row) for row in rows]

    async def get_finding(self, finding_id: str) -> InspectionFinding | None:
        async with self._session() as session:
            row = await supervision_repo.get_finding(session, finding_id)
            return _finding(row) if row else None

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
        async with self._session(commit=True) as session:
            row = await supervision_repo.create_finding(
                session,
                finding_id=str(uuid4()),
                institution_id=institution_id,
                category=category,
                severity=severity,
                description=description,
                recommendation=recommendation,
                due_date=due_date,
                now=utc_now(),
            )
            return _finding(row)

    async def update_finding_status(self, finding_id: str, status: str) -> InspectionFinding | None:
        async with self._session(commit=True) as session:
            row = await supervision_repo.get_finding(session, finding_id)
            if row is None:
                return None
            row.status = status
            row.updated_at = utc_now()
            return _finding(row)

    async def count_open_findings(self, institution_id: str) -> int:
        async with self._session() as session:
            return await supervision_repo.count_open_findings(session, institution_id)

    async def list_compliance_status(self) -> list[ComplianceStatusRecord]:
        async with self._session() as session:
            rows = await supervision_repo.list_compliance_status(session)
            return [_compliance(row) for row in rows]

    async def list_interventions(self) -> list[Intervention]:
        async with self._session() as session:
            rows = await supervision_repo.list_interventions(session)
            return [_intervention(row) for row in rows]

    async def append_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self._session(commit=True) as session:
            row = await audit_repo.insert_entry(
                session,
                user_id=entry.user_id,
                path=entry.path,
                method=entry.method,
                created_at=entry.created_at,
                prev_hash=entry.prev_hash,
                entry_hash=entry.entry_hash,
            )
            return _audit(row)

    async def last_audit_log(self) -> AuditLogEntry | None:
        async with self._session() as session:
            row = await audit_repo.latest_entry(session)
            return _audit(row) if row else None

    async def list_audit_logs(self, *, limit: int) -> list[AuditLogEntry]:
        async with self._session() as session:
            rows = await audit_repo.list_recent(session, limit=limit)
            return [_audit(row) for row in rows]

    async def audit_chain(self) -> list[AuditLogEntry]:
        async with self._session() as session:
            rows = await audit_repo.list_chain(session)
            return [_audit(row) for row in rows]

    async def close(self) -> None:
        await self._engine.dispose()
