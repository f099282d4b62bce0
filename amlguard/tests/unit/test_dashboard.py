from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from amlguard.core.errors import PersistenceError
from amlguard.domain.records import RiskProfile
from amlguard.persistence.fixtures import DemoDataset
from amlguard.persistence.memory import MemoryStore
from amlguard.services.dashboard import (
    DEMO_ANALYTICS,
    build_analytics,
    build_trend_analysis,
    build_trends,
    trailing_months,
)


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class BrokenStore(MemoryStore):
    async def list_all_institutions(self):
        raise PersistenceError("Database operation failed")

    async def list_risk_profiles(self, **kwargs):
        raise PersistenceError("Database operation failed")


@pytest.mark.asyncio
async def test_analytics_over_demo_data() -> None:
    payload = await build_analytics(MemoryStore.with_demo_data(NOW), now=NOW)
    assert payload["degraded"] is False
    heatmap = {row["level"]: row["count"] for row in payload["riskHeatmap"]}
    assert heatmap == {"High": 3, "Medium": 7, "Low": 4}
    assert payload["riskRanking"][0] == {"name": "XYZ Capital", "score": 82}
    assert len(payload["riskRanking"]) == 10
    intensity = {row["type"]: row["intensity"] for row in payload["supervisoryIntensity"]}
    assert intensity == {"Offsite": 2, "Onsite": 4}
    assert len(payload["trendAnalysis"]) == 12


@pytest.mark.asyncio
async def test_analytics_falls_back_to_demo_payload_when_store_fails() -> None:
    payload = await build_analytics(BrokenStore(), now=NOW)
    assert payload["degraded"] is True
    assert payload["riskHeatmap"] == DEMO_ANALYTICS["riskHeatmap"]
    # The fallback is a copy; callers cannot corrupt the shared template.
    payload["riskHeatmap"].clear()
    assert DEMO_ANALYTICS["riskHeatmap"]


@pytest.mark.asyncio
async def test_trends_fall_back_when_store_fails() -> None:
    payload = await build_trends(BrokenStore(), now=NOW)
    assert payload["degraded"] is True
    assert [row["period"] for row in payload["trends"]] == trailing_months(NOW)


@pytest.mark.asyncio
async def test_trends_average_profiles_inside_the_window() -> None:
    dataset = DemoDataset(
        risk_profiles=[
            RiskProfile("rp-1", "inst-1", "Medium", 60, NOW - timedelta(days=3)),
            RiskProfile("rp-2", "inst-2", "High", 80, NOW - timedelta(days=5)),
            RiskProfile("rp-3", "inst-1", "Low", 30, NOW - timedelta(days=500)),
        ]
    )
    payload = await build_trends(MemoryStore(dataset), now=NOW)
    assert payload == {"trends": [{"period": "2026-03", "current": 70.0, "previous": 0.0}], "degraded": False}


def test_trailing_months_cross_year_boundary() -> None:
    months = trailing_months(datetime(2026, 2, 1, tzinfo=timezone.utc), 3)
    assert months == ["2025-12", "2026-01", "2026-02"]


def test_trend_analysis_compares_with_previous_year() -> None:
    profiles = [
        RiskProfile("rp-1", "inst-1", "Medium", 60, datetime(2026, 3, 1, tzinfo=timezone.utc)),
        RiskProfile("rp-2", "inst-1", "Medium", 50, datetime(2025, 3, 1, tzinfo=timezone.utc)),
    ]
    latest = build_trend_analysis(profiles, NOW)[-1]
    assert latest == {"period": "2026-03", "current": 60.0, "previous": 50.0}
