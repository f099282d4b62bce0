from __future__ import annotations

import asyncio
import math
from datetime import datetime

from amlguard.core.config import get_settings
from amlguard.core.errors import ValidationError
from amlguard.domain.records import RiskScore, months_before, utc_now
from amlguard.domain.types import (
    BASELINE_PROFILE_SCORE,
    HIGH_RISK_THRESHOLD,
    MEDIUM_RISK_THRESHOLD,
    SEVERITY_WEIGHTS,
)
from amlguard.persistence.store import Store


SURVEILLANCE_WEIGHT = 2
OPEN_FINDING_WEIGHT = 3


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; scores round .5 upward.
    return int(math.floor(value + 0.5))


def level_for_score(score: float) -> str:
    if score >= HIGH_RISK_THRESHOLD:
        return "High"
    if score >= MEDIUM_RISK_THRESHOLD:
        return "Medium"
    return "Low"


def severity_weight(severity: str) -> int:
    # Unknown severities weigh as Low.
    return SEVERITY_WEIGHTS.get(severity, 1)


def combine_score(profile_scores: list[float], severities: list[str], open_findings: int) -> int:
    """Combine the three scoring inputs into a bounded 0-100 integer score."""
    if profile_scores:
        profile_avg = sum(profile_scores) / len(profile_scores)
    else:
        profile_avg = BASELINE_PROFILE_SCORE
    weighted = sum(severity_weight(severity) for severity in severities)
    raw = profile_avg + weighted * SURVEILLANCE_WEIGHT + open_findings * OPEN_FINDING_WEIGHT
    return max(0, min(100, round_half_up(min(100.0, raw))))


async def compute_risk_score(
    store: Store,
    institution_id: str | None,
    *,
    now: datetime | None = None,
) -> RiskScore:
    if not institution_id or not str(institution_id).strip():
        raise ValidationError("institutionId is required")
    settings = get_settings()
    now = now or utc_now()
    since = months_before(now, settings.risk_surveillance_window_months)

    # The three lookups are independent reads; join before combining.
    profiles, surveillance, open_findings = await asyncio.gather(
        store.list_risk_profiles(institution_id=institution_id, limit=settings.risk_profile_sample_size),
        store.list_surveillance_logs(institution_id=institution_id, since=since),
        store.count_open_findings(institution_id),
    )
    score = combine_score(
        [float(profile.overall_risk_score) for profile in profiles],
        [log.severity for log in surveillance],
        open_findings,
    )
    return RiskScore(
        institution_id=institution_id,
        score=score,
        level=level_for_score(score),
        computed_at=now,
    )
