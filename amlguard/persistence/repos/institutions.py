from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from amlguard.domain.models import InstitutionRow
from amlguard.services.query import SortField


def escape_like(value: str) -> str:
    # Wildcards in user input match literally, as the in-memory substring search does.
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _filtered(
    stmt: Select,
    *,
    search: str | None,
    status: str | None,
    risk_level: str | None,
) -> Select:
    # Shared predicates keep the page and its total count on the same filtered set.
    needle = (search or "").strip()
    if needle:
        pattern = f"%{escape_like(needle)}%"
        stmt = stmt.where(
            or_(
                InstitutionRow.name.ilike(pattern, escape="\\"),
                InstitutionRow.license_number.ilike(pattern, escape="\\"),
            )
        )
    if status:
        stmt = stmt.where(InstitutionRow.status == status)
    if risk_level:
        stmt = stmt.where(InstitutionRow.risk_level == risk_level)
    return stmt


async def list_institutions(
    session: AsyncSession,
    *,
    search: str | None = None,
    status: str | None = None,
    risk_level: str | None = None,
    offset: int = 0,
    limit: int = 10,
    sort: Sequence[SortField] = (),
) -> list[InstitutionRow]:
    stmt = _filtered(select(InstitutionRow), search=search, status=status, risk_level=risk_level)
    order = []
    for field in sort:
        column = getattr(InstitutionRow, field.name)
        order.append(column.desc() if field.direction == "desc" else column.asc())
    # id breaks ties for stable paging.
    stmt = stmt.order_by(*order, InstitutionRow.id).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_institutions(
    session: AsyncSession,
    *,
    search: str | None = None,
    status: str | None = None,
    risk_level: str | None = None,
) -> int:
    stmt = _filtered(
        select(func.count()).select_from(InstitutionRow),
        search=search,
        status=status,
        risk_level=risk_level,
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def list_all(session: AsyncSession) -> list[InstitutionRow]:
    result = await session.execute(select(InstitutionRow).order_by(InstitutionRow.updated_at.desc()))
    return list(result.scalars().all())


async def get_institution(session: AsyncSession, institution_id: str) -> InstitutionRow | None:
    result = await session.execute(select(InstitutionRow).where(InstitutionRow.id == institution_id))
    return result.scalar_one_or_none()


async def get_by_license_number(session: AsyncSession, license_number: str) -> InstitutionRow | None:
    result = await session.execute(
        select(InstitutionRow).where(InstitutionRow.license_number == license_number)
    )
    return result.scalar_one_or_none()


async def create_institution(
    session: AsyncSession,
    *,
    institution_id: str,
    name: str,
    license_number: str,
    category: str | None,
    status: str,
    risk_level: str,
    risk_score: int | None,
    now: datetime,
) -> InstitutionRow:
    row = InstitutionRow(
        id=institution_id,
        name=name,
        license_number=license_number,
        category=category,
        status=status,
        risk_level=risk_level,
        risk_score=risk_score,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    await session.flush()
    return row


async def update_fields(
    session: AsyncSession,
    institution_id: str,
    *,
    now: datetime,
    name: str | None = None,
    license_number: str | None = None,
    category: str | None = None,
    status: str | None = None,
    risk_level: str | None = None,
    risk_score: int | None = None,
) -> InstitutionRow | None:
    # Fetch first to avoid accidental upserts; None keeps the stored value.
    row = await get_institution(session, institution_id)
    if row is None:
        return None
    if name is not None:
        row.name = name
    if license_number is not None:
        row.license_number = license_number
    if category is not None:
        row.category = category
    if status is not None:
        row.status = status
    if risk_level is not None:
        row.risk_level = risk_level
    if risk_score is not None:
        row.risk_score = risk_score
    row.updated_at = now
    return row
