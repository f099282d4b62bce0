from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from amlguard.core.errors import ValidationError
from amlguard.domain.records import (
    InspectionFinding,
    Institution,
    RiskProfile,
    SurveillanceLog,
    months_before,
    utc_now,
)
from amlguard.persistence.fixtures import DemoDataset
from amlguard.persistence.memory import MemoryStore
from amlguard.services.risk_scoring import (
    combine_score,
    compute_risk_score,
    level_for_score,
    round_half_up,
)


def _scored_store(now) -> MemoryStore:
    dataset = DemoDataset(
        institutions=[Institution("inst-1", "Harare Trust", "RBZ/BK/9001")],
        risk_profiles=[
            RiskProfile("rp-1", "inst-1", "Medium", 60, now - timedelta(days=90)),
            RiskProfile("rp-2", "inst-1", "High", 70, now - timedelta(days=60)),
            RiskProfile("rp-3", "inst-1", "High", 80, now - timedelta(days=30)),
            # Oldest profile falls outside the three most recent.
            RiskProfile("rp-0", "inst-1", "Low", 10, now - timedelta(days=400)),
        ],
        surveillance_logs=[
            SurveillanceLog("sv-1", "inst-1", "CDD", "High", "CDD gaps", now - timedelta(days=20)),
            SurveillanceLog("sv-2", "inst-1", "Reporting", "Low", "Late STR", now - timedelta(days=100)),
            # Outside the six month window.
            SurveillanceLog("sv-3", "inst-1", "Sanctions", "High", "Old hit", now - timedelta(days=300)),
        ],
        inspection_findings=[
            InspectionFinding("f-1", "inst-1", "Compliance", "High", "KYC gaps", status="Open"),
            InspectionFinding("f-2", "inst-1", "Operations", "Low", "Closed item", status="Closed"),
        ],
    )
    return MemoryStore(dataset)


@pytest.mark.asyncio
async def test_compute_risk_score_combines_profiles_surveillance_and_findings() -> None:
    now = utc_now()
    result = await compute_risk_score(_scored_store(now), "inst-1", now=now)
    # avg(60, 70, 80) + (3 + 1) * 2 + 1 * 3
    assert result.score == 81
    assert result.level == "High"
    assert result.computed_at == now


@pytest.mark.asyncio
async def test_compute_risk_score_is_idempotent() -> None:
    now = utc_now()
    store = _scored_store(now)
    first = await compute_risk_score(store, "inst-1", now=now)
    second = await compute_risk_score(store, "inst-1", now=now)
    assert (first.score, first.level) == (second.score, second.level)


@pytest.mark.asyncio
async def test_compute_risk_score_uses_baseline_without_profiles() -> None:
    store = MemoryStore(DemoDataset(institutions=[Institution("inst-2", "New Bank", "RBZ/BK/9002")]))
    result = await compute_risk_score(store, "inst-2")
    assert result.score == 50
    assert result.level == "Medium"


@pytest.mark.asyncio
@pytest.mark.parametrize("institution_id", [None, "", "   "])
async def test_compute_risk_score_requires_institution_id(institution_id) -> None:
    with pytest.raises(ValidationError):
        await compute_risk_score(MemoryStore(), institution_id)


@pytest.mark.asyncio
async def test_surveillance_window_is_six_calendar_months() -> None:
    now = datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc)
    dataset = DemoDataset(
        institutions=[Institution("inst-3", "Mutare Savings", "RBZ/BK/9003")],
        surveillance_logs=[
            # Exactly six months back, though more than 183 days.
            SurveillanceLog("sv-edge", "inst-3", "CDD", "High", "Edge", datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)),
            SurveillanceLog("sv-old", "inst-3", "CDD", "High", "Old", datetime(2026, 3, 1, 11, 59, tzinfo=timezone.utc)),
        ],
    )
    result = await compute_risk_score(MemoryStore(dataset), "inst-3", now=now)
    # Baseline 50 plus one High log weighted 3 * 2.
    assert result.score == 56


def test_months_before_clamps_to_month_end() -> None:
    assert months_before(datetime(2026, 8, 31, tzinfo=timezone.utc), 6) == datetime(2026, 2, 28, tzinfo=timezone.utc)
    assert months_before(datetime(2026, 3, 15, 8, 30, tzinfo=timezone.utc), 6) == datetime(
        2025, 9, 15, 8, 30, tzinfo=timezone.utc
    )


def test_level_thresholds_take_the_higher_level_at_boundaries() -> None:
    assert level_for_score(70) == "High"
    assert level_for_score(69) == "Medium"
    assert level_for_score(40) == "Medium"
    assert level_for_score(39) == "Low"


def test_level_is_monotonic_in_score() -> None:
    order = {"Low": 0, "Medium": 1, "High": 2}
    levels = [order[level_for_score(score)] for score in range(0, 101)]
    assert levels == sorted(levels)


def test_combine_score_is_bounded() -> None:
    assert combine_score([100.0], ["High"] * 10, 10) == 100
    assert combine_score([0.0], [], 0) == 0


def test_round_half_up() -> None:
    assert round_half_up(80.5) == 81
    assert round_half_up(81.49) == 81
    assert round_half_up(2.5) == 3
