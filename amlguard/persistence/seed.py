from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from amlguard.domain.models import (
    ComplianceStatusRow,
    InspectionFindingRow,
    InstitutionRow,
    InterventionRow,
    RiskProfileRow,
    SurveillanceLogRow,
)
from amlguard.persistence.fixtures import build_demo_dataset


logger = logging.getLogger(__name__)


async def seed_demo_data(
    sessions: async_sessionmaker[AsyncSession],
    *,
    now: datetime | None = None,
) -> int:
    """Insert the demo dataset into an empty schema and return the institution count.

    A database that already holds institutions is left untouched and 0 is returned.
    """
    dataset = build_demo_dataset(now)
    async with sessions() as session:
        existing = await session.execute(select(func.count()).select_from(InstitutionRow))
        if int(existing.scalar_one()) > 0:
            logger.info("seed_demo_skipped reason=institutions_present")
            return 0
        session.add_all([InstitutionRow(**asdict(item)) for item in dataset.institutions])
        # Flush parents first so child foreign keys resolve on every backend.
        await session.flush()
        session.add_all([RiskProfileRow(**asdict(item)) for item in dataset.risk_profiles])
        session.add_all([SurveillanceLogRow(**asdict(item)) for item in dataset.surveillance_logs])
        session.add_all([InspectionFindingRow(**asdict(item)) for item in dataset.inspection_findings])
        session.add_all([ComplianceStatusRow(**asdict(item)) for item in dataset.compliance_status])
        session.add_all([InterventionRow(**asdict(item)) for item in dataset.interventions])
        await session.commit()
    logger.info("seed_demo_completed institutions=%s", len(dataset.institutions))
    return len(dataset.institutions)
