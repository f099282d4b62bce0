from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from amlguard.domain.models import RiskProfileRow


async def list_profiles(
    session: AsyncSession,
    *,
    institution_id: str | None = None,
    since: datetime | None = None,
    limit: int | None = None,
) -> list[RiskProfileRow]:
    stmt = select(RiskProfileRow)
    if institution_id:
        stmt = stmt.where(RiskProfileRow.institution_id == institution_id)
    if since is not None:
        stmt = stmt.where(RiskProfileRow.assessed_at >= since)
    stmt = stmt.order_by(RiskProfileRow.assessed_at.desc(), RiskProfileRow.id)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_profile(session: AsyncSession, profile_id: str) -> RiskProfileRow | None:
    result = await session.execute(select(RiskProfileRow).where(RiskProfileRow.id == profile_id))
    return result.scalar_one_or_none()


async def create_profile(
    session: AsyncSession,
    *,
    profile_id: str,
    institution_id: str,
    overall_risk_level: str,
    overall_risk_score: float,
    assessed_at: datetime,
    now: datetime,
) -> RiskProfileRow:
    row = RiskProfileRow(
        id=profile_id,
        institution_id=institution_id,
        overall_risk_level=overall_risk_level,
        overall_risk_score=overall_risk_score,
        assessed_at=assessed_at,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    await session.flush()
    return row


async def update_fields(
    session: AsyncSession,
    profile_id: str,
    *,
    now: datetime,
    overall_risk_level: str | None = None,
    overall_risk_score: float | None = None,
) -> RiskProfileRow | None:
    # Corrections only touch provided fields.
    row = await get_profile(session, profile_id)
    if row is None:
        return None
    if overall_risk_level is not None:
        row.overall_risk_level = overall_risk_level
    if overall_risk_score is not None:
        row.overall_risk_score = overall_risk_score
    row.updated_at = now
    return row
