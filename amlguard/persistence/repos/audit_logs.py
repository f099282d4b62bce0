from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from amlguard.domain.models import AuditLogRow


async def insert_entry(
    session: AsyncSession,
    *,
    user_id: str | None,
    path: str,
    method: str,
    created_at: datetime,
    prev_hash: str | None,
    entry_hash: str | None,
) -> AuditLogRow:
    row = AuditLogRow(
        user_id=user_id,
        path=path,
        method=method,
        created_at=created_at,
        prev_hash=prev_hash,
        entry_hash=entry_hash,
    )
    session.add(row)
    await session.flush()
    return row


async def latest_entry(session: AsyncSession) -> AuditLogRow | None:
    result = await session.execute(select(AuditLogRow).order_by(AuditLogRow.id.desc()).limit(1))
    return result.scalar_one_or_none()


async def list_recent(session: AsyncSession, *, limit: int) -> list[AuditLogRow]:
    # Newest first by monotonic id.
    result = await session.execute(select(AuditLogRow).order_by(AuditLogRow.id.desc()).limit(limit))
    return list(result.scalars().all())


async def list_chain(session: AsyncSession) -> list[AuditLogRow]:
    result = await session.execute(select(AuditLogRow).order_by(AuditLogRow.id))
    return list(result.scalars().all())
