from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from amlguard.domain.models import (
    ComplianceStatusRow,
    InspectionFindingRow,
    InterventionRow,
    SurveillanceLogRow,
)


async def list_surveillance_logs(
    session: AsyncSession,
    *,
    institution_id: str | None = None,
    since: datetime | None = None,
) -> list[SurveillanceLogRow]:
    stmt = select(SurveillanceLogRow)
    if institution_id:
        stmt = stmt.where(SurveillanceLogRow.institution_id == institution_id)
    if since is not None:
        stmt = stmt.where(SurveillanceLogRow.occurred_at >= since)
    stmt = stmt.order_by(SurveillanceLogRow.occurred_at.desc(), SurveillanceLogRow.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_surveillance_log(
    session: AsyncSession,
    *,
    log_id: str,
    institution_id: str,
    type: str,
    severity: str,
    description: str,
    occurred_at: datetime,
    now: datetime,
) -> SurveillanceLogRow:
    row = SurveillanceLogRow(
        id=log_id,
        institution_id=institution_id,
        type=type,
        severity=severity,
        description=description,
        occurred_at=occurred_at,
        created_at=now,
    )
    session.add(row)
    await session.flush()
    return row


async def list_findings(
    session: AsyncSession,
    *,
    institution_id: str | None = None,
) -> list[InspectionFindingRow]:
    stmt = select(InspectionFindingRow)
    if institution_id:
        stmt = stmt.where(InspectionFindingRow.institution_id == institution_id)
    stmt = stmt.order_by(InspectionFindingRow.created_at.desc(), InspectionFindingRow.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_finding(session: AsyncSession, finding_id: str) -> InspectionFindingRow | None:
    result = await session.execute(
        select(InspectionFindingRow).where(InspectionFindingRow.id == finding_id)
    )
    return result.scalar_one_or_none()


async def create_finding(
    session: AsyncSession,
    *,
    finding_id: str,
    institution_id: str,
    category: str,
    severity: str,
    description: str,
    recommendation: str | None,
    due_date: datetime | None,
    now: datetime,
) -> InspectionFindingRow:
    row = InspectionFindingRow(
        id=finding_id,
        institution_id=institution_id,
        category=category,
        severity=severity,
        description=description,
        recommendation=recommendation,
        due_date=due_date,
        status="Open",
        created_at=now,
    )
    session.add(row)
    await session.flush()
    return row


async def count_open_findings(session: AsyncSession, institution_id: str) -> int:
    # Closed is terminal; every other status still counts toward risk.
    result = await session.execute(
        select(func.count())
        .select_from(InspectionFindingRow)
        .where(
            InspectionFindingRow.institution_id == institution_id,
            InspectionFindingRow.status != "Closed",
        )
    )
    return int(result.scalar_one())


async def list_compliance_status(session: AsyncSession) -> list[ComplianceStatusRow]:
    result = await session.execute(select(ComplianceStatusRow).order_by(ComplianceStatusRow.institution_id))
    return list(result.scalars().all())


async def list_interventions(session: AsyncSession) -> list[InterventionRow]:
    result = await session.execute(select(InterventionRow).order_by(InterventionRow.occurred_at.desc()))
    return list(result.scalars().all())
