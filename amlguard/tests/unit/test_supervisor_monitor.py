from __future__ import annotations

from datetime import datetime, timezone

import pytest

from amlguard.persistence.fixtures import build_supervisor_dataset
from amlguard.services.supervisors import Pagination, SupervisorFilters, SupervisorMonitor


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


async def _monitor() -> SupervisorMonitor:
    async def _loader():
        return build_supervisor_dataset(NOW)

    monitor = SupervisorMonitor(_loader, clock=lambda: NOW)
    assert await monitor.load() is True
    return monitor


@pytest.mark.asyncio
async def test_quality_scores_are_weighted_blend() -> None:
    monitor = await _monitor()
    assert monitor.calculate_quality_score("SUP-001").overall_score == 84
    assert monitor.calculate_quality_score("SUP-002").overall_score == 92
    breakdown = monitor.calculate_quality_score("SUP-001")
    assert sum(item.weight for item in breakdown.components.values()) == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_quality_score_without_metrics_is_zero() -> None:
    monitor = await _monitor()
    assert monitor.calculate_quality_score("SUP-999").overall_score == 0


@pytest.mark.asyncio
async def test_detect_all_anomalies_only_adds_new_pairs() -> None:
    monitor = await _monitor()
    fresh = monitor.detect_all_anomalies()
    pairs = {(item.supervisor_id, item.anomaly_type) for item in fresh}
    assert pairs == {
        ("SUP-003", "RESPONSE_TIME_SPIKE"),
        ("SUP-008", "RESPONSE_TIME_SPIKE"),
        ("SUP-007", "QUALITY_SCORE_DROP"),
        ("SUP-004", "INACTIVITY_PERIOD"),
        ("SUP-008", "INACTIVITY_PERIOD"),
        ("SUP-005", "LOW_PRODUCTIVITY"),
        ("SUP-008", "LOW_PRODUCTIVITY"),
    }
    # The seeded overdue anomaly for SUP-003 is already tracked.
    assert ("SUP-003", "OVERDUE_CASES_THRESHOLD") not in pairs
    assert monitor.detect_all_anomalies() == []
    assert len(monitor.active_anomalies) == 8


@pytest.mark.asyncio
async def test_anomaly_severity_tracks_magnitude() -> None:
    monitor = await _monitor()
    by_pair = {(item.supervisor_id, item.anomaly_type): item for item in monitor.detect_all_anomalies()}
    assert by_pair[("SUP-008", "RESPONSE_TIME_SPIKE")].severity == "HIGH"
    assert by_pair[("SUP-003", "RESPONSE_TIME_SPIKE")].severity == "MEDIUM"
    assert by_pair[("SUP-008", "INACTIVITY_PERIOD")].severity == "HIGH"
    assert by_pair[("SUP-004", "INACTIVITY_PERIOD")].severity == "MEDIUM"


@pytest.mark.asyncio
async def test_resolve_anomaly_once() -> None:
    monitor = await _monitor()
    assert monitor.resolve_anomaly("ANOM-001", resolved_by="usr_001", notes="Cases reassigned") is True
    assert monitor.active_anomalies == []
    assert monitor.resolve_anomaly("ANOM-001", resolved_by="usr_001") is False
    assert monitor.resolve_anomaly("ANOM-404", resolved_by="usr_001") is False


@pytest.mark.asyncio
async def test_case_load_histogram_buckets_active_cases() -> None:
    monitor = await _monitor()
    assert monitor.case_load_histogram() == {"0-5": 2, "6-10": 0, "11-15": 3, "16-20": 2, "21+": 1}
    overloaded = {item.supervisor_id for item in monitor.calculate_case_load_distributions() if item.is_overloaded}
    assert overloaded == {"SUP-001", "SUP-003"}


@pytest.mark.asyncio
async def test_rebalancing_suggestions_respect_specialisation_and_capacity() -> None:
    monitor = await _monitor()
    suggestions = {
        (item.from_supervisor_id, item.to_supervisor_id): item
        for item in monitor.generate_rebalancing_suggestions()
    }
    assert set(suggestions) == {("SUP-001", "SUP-005"), ("SUP-003", "SUP-008")}
    assert suggestions[("SUP-001", "SUP-005")].cases_to_move == 4
    assert suggestions[("SUP-003", "SUP-008")].cases_to_move == 4


@pytest.mark.asyncio
async def test_execute_rebalancing_moves_cases() -> None:
    monitor = await _monitor()
    suggestion = next(
        item for item in monitor.generate_rebalancing_suggestions() if item.from_supervisor_id == "SUP-001"
    )
    ok = monitor.execute_rebalancing(
        {
            "from_supervisor_id": "SUP-001",
            "to_supervisor_id": "SUP-005",
            "case_ids": suggestion.case_ids,
            "reason": "Quarter-end workload rebalancing",
        }
    )
    assert ok is True
    moved = {item.id for item in monitor.cases_for("SUP-005")}
    assert set(suggestion.case_ids) <= moved


@pytest.mark.asyncio
async def test_execute_rebalancing_rejects_foreign_cases() -> None:
    monitor = await _monitor()
    foreign = monitor.cases_for("SUP-002")[0].id
    ok = monitor.execute_rebalancing(
        {
            "from_supervisor_id": "SUP-001",
            "to_supervisor_id": "SUP-005",
            "case_ids": [foreign],
            "reason": "Quarter-end workload rebalancing",
        }
    )
    assert ok is False
    assert foreign in monitor.error


@pytest.mark.asyncio
async def test_decisions_need_detailed_notes_for_rejections() -> None:
    monitor = await _monitor()
    case = next(item for item in monitor.cases_for("SUP-002") if item.is_active)
    assert monitor.make_decision({"case_id": case.id, "decision_type": "REJECT", "notes": "Too short for a reject"}) is False
    assert monitor.make_decision({"case_id": case.id, "decision_type": "APPROVE", "notes": "All documents verified"}) is True
    decided = next(item for item in monitor.cases if item.id == case.id)
    assert decided.status == "APPROVED"
    assert monitor.make_decision({"case_id": case.id, "decision_type": "APPROVE", "notes": "All documents verified"}) is False


@pytest.mark.asyncio
async def test_request_more_info_closes_the_case() -> None:
    monitor = await _monitor()
    case = next(item for item in monitor.cases_for("SUP-004") if item.is_active)
    assert monitor.make_decision(
        {"case_id": case.id, "decision_type": "REQUEST_MORE_INFO", "notes": "Need audited financials"}
    )
    assert next(item for item in monitor.cases if item.id == case.id).status == "CLOSED"


@pytest.mark.asyncio
async def test_page_filters_without_touching_held_state() -> None:
    monitor = await _monitor()
    page = monitor.page(
        SupervisorFilters(departments=["Onsite Inspections"]),
        Pagination(page=1, page_size=10, sort_by="first_name", sort_order="asc"),
    )
    assert [item.id for item in page.items] == ["SUP-003", "SUP-008"]
    assert monitor.filters == SupervisorFilters()
    with pytest.raises(ValueError):
        monitor.page(pagination=Pagination(sort_by="salary"))


@pytest.mark.asyncio
async def test_update_filters_resets_page() -> None:
    monitor = await _monitor()
    monitor.update_pagination(page=2, page_size=3)
    monitor.update_filters(is_overloaded=True)
    assert monitor.pagination.page == 1
    assert {item.id for item in monitor.filtered_supervisors} == {"SUP-001", "SUP-003"}
    assert monitor.total_pages == 1


@pytest.mark.asyncio
async def test_dashboard_summary_counts() -> None:
    monitor = await _monitor()
    summary = monitor.dashboard_summary
    assert summary["totalSupervisors"] == 8
    assert summary["activeAnomalies"] == 1
    assert summary["totalCases"] == len(monitor.cases)
