from __future__ import annotations

import asyncio
import copy
import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Iterable

from amlguard.core.errors import PersistenceError
from amlguard.domain.records import shift_month, utc_now
from amlguard.persistence.store import Store
from amlguard.services.query import sort_by
from amlguard.services.risk_scoring import round_half_up


logger = logging.getLogger(__name__)

RANKING_SIZE = 10
TREND_MONTHS = 12
_LEVEL_ORDER = ("High", "Medium", "Low")

# Degraded-mode payload served when the backing queries fail.
DEMO_ANALYTICS: dict[str, list[dict[str, Any]]] = {
    "riskHeatmap": [
        {"level": "High", "count": 38},
        {"level": "Medium", "count": 95},
        {"level": "Low", "count": 114},
    ],
    "riskRanking": [
        {"name": "Bank A", "score": 85},
        {"name": "Bank B", "score": 72},
        {"name": "Securities C", "score": 68},
        {"name": "MFI D", "score": 61},
        {"name": "Insurance E", "score": 45},
    ],
    "supervisoryFrequency": [
        {"date": "Jan", "count": 12},
        {"date": "Feb", "count": 14},
        {"date": "Mar", "count": 16},
        {"date": "Apr", "count": 13},
        {"date": "May", "count": 18},
        {"date": "Jun", "count": 17},
    ],
    "supervisoryIntensity": [
        {"type": "On-site", "intensity": 4},
        {"type": "Off-site", "intensity": 3},
        {"type": "Meetings", "intensity": 2},
        {"type": "Data Requests", "intensity": 5},
        {"type": "Follow-ups", "intensity": 4},
    ],
    "complianceStatus": [
        {"status": "Compliant", "count": 114},
        {"status": "Needs Attention", "count": 62},
        {"status": "Non-compliant", "count": 19},
    ],
    "trendAnalysis": [
        {"period": "Jan", "current": 78, "previous": 72},
        {"period": "Feb", "current": 80, "previous": 74},
        {"period": "Mar", "current": 82, "previous": 76},
        {"period": "Apr", "current": 84, "previous": 77},
        {"period": "May", "current": 86, "previous": 79},
        {"period": "Jun", "current": 88, "previous": 81},
    ],
}

_DEGRADED_ERRORS = (PersistenceError, OSError)


def month_key(value: datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def trailing_months(now: datetime, count: int = TREND_MONTHS) -> list[str]:
    # Oldest first, ending with the current month.
    months = []
    for offset in range(count - 1, -1, -1):
        year, month = shift_month(now.year, now.month, -offset)
        months.append(f"{year:04d}-{month:02d}")
    return months


def demo_trends(now: datetime | None = None) -> list[dict[str, Any]]:
    now = now or utc_now()
    return [
        {"period": period, "current": 50 + idx * 2, "previous": 48 + idx}
        for idx, period in enumerate(trailing_months(now))
    ]


def build_risk_heatmap(institutions: list[Any]) -> list[dict[str, Any]]:
    counts = Counter(item.risk_level for item in institutions)
    levels = [level for level in _LEVEL_ORDER if counts.get(level)]
    levels.extend(sorted(level for level in counts if level not in _LEVEL_ORDER))
    return [{"level": level, "count": counts[level]} for level in levels]


def build_risk_ranking(institutions: list[Any], size: int = RANKING_SIZE) -> list[dict[str, Any]]:
    ranked = sort_by(institutions, lambda item: item.risk_score or 0, "desc")
    return [{"name": item.name, "score": item.risk_score or 0} for item in ranked[:size]]


def build_supervisory_frequency(logs: list[Any]) -> list[dict[str, Any]]:
    counts = Counter(month_key(log.occurred_at) for log in logs)
    return [{"date": period, "count": counts[period]} for period in sorted(counts)]


def build_supervisory_intensity(interventions: list[Any]) -> list[dict[str, Any]]:
    grouped: dict[str, list[int]] = defaultdict(list)
    for item in interventions:
        grouped[item.type].append(item.intensity)
    return [
        {"type": kind, "intensity": round_half_up(sum(values) / len(values))}
        for kind, values in sorted(grouped.items())
    ]


def build_compliance_status(rows: list[Any]) -> list[dict[str, Any]]:
    counts = Counter(row.status for row in rows)
    return [{"status": status, "count": counts[status]} for status in sorted(counts)]


def _monthly_average(profiles: Iterable[Any]) -> dict[str, float]:
    grouped: dict[str, list[float]] = defaultdict(list)
    for profile in profiles:
        grouped[month_key(profile.assessed_at)].append(float(profile.overall_risk_score))
    return {period: sum(values) / len(values) for period, values in grouped.items()}


def build_trend_analysis(profiles: list[Any], now: datetime) -> list[dict[str, Any]]:
    """Monthly average risk score for the trailing year against the same month a year earlier."""
    averages = _monthly_average(profiles)
    trend = []
    for period in trailing_months(now):
        year, month = (int(part) for part in period.split("-"))
        previous_key = f"{year - 1:04d}-{month:02d}"
        trend.append(
            {
                "period": period,
                "current": averages.get(period, 0.0),
                "previous": averages.get(previous_key, 0.0),
            }
        )
    return trend


async def build_analytics(store: Store, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or utc_now()
    try:
        institutions, surveillance, interventions, compliance, profiles = await asyncio.gather(
            store.list_all_institutions(),
            store.list_surveillance_logs(),
            store.list_interventions(),
            store.list_compliance_status(),
            store.list_risk_profiles(),
        )
    except _DEGRADED_ERRORS as exc:
        logger.warning("dashboard_analytics_degraded error=%s", exc.__class__.__name__)
        payload = copy.deepcopy(DEMO_ANALYTICS)
        payload["degraded"] = True
        return payload
    return {
        "riskHeatmap": build_risk_heatmap(institutions),
        "riskRanking": build_risk_ranking(institutions),
        "supervisoryFrequency": build_supervisory_frequency(surveillance),
        "supervisoryIntensity": build_supervisory_intensity(interventions),
        "complianceStatus": build_compliance_status(compliance),
        "trendAnalysis": build_trend_analysis(profiles, now),
        "degraded": False,
    }


async def build_trends(store: Store, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or utc_now()
    window = set(trailing_months(now))
    try:
        profiles = await store.list_risk_profiles()
    except _DEGRADED_ERRORS as exc:
        logger.warning("dashboard_trends_degraded error=%s", exc.__class__.__name__)
        return {"trends": demo_trends(now), "degraded": True}
    averages = _monthly_average(profile for profile in profiles if month_key(profile.assessed_at) in window)
    trends = [
        {"period": period, "current": averages[period], "previous": 0.0}
        for period in sorted(averages)
    ]
    return {"trends": trends, "degraded": False}
