from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from amlguard.persistence.fixtures import build_audit_trail_records
from amlguard.services.audit_trail import AuditTrail, TrailFilters, TrailPagination, seal_records


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


async def _trail() -> AuditTrail:
    async def _loader():
        return seal_records(build_audit_trail_records(NOW))

    trail = AuditTrail(_loader, clock=lambda: NOW)
    assert await trail.load() is True
    return trail


@pytest.mark.asyncio
async def test_sealed_fixture_chain_verifies() -> None:
    trail = await _trail()
    result = trail.verify_chain()
    assert result.valid is True
    assert result.checked == 12


@pytest.mark.asyncio
async def test_tampered_record_breaks_the_chain() -> None:
    trail = await _trail()
    trail.get("AUD-0009").result = "SUCCESS"
    result = trail.verify_chain()
    assert result.valid is False
    assert result.broken_at_id == "AUD-0009"


@pytest.mark.asyncio
async def test_statistics_over_all_records() -> None:
    trail = await _trail()
    stats = trail.statistics
    assert stats["totalActions"] == 12
    assert stats["successfulActions"] == 9
    assert stats["failedActions"] == 2
    assert stats["criticalEvents"] == 1
    assert stats["uniqueUsers"] == 5


@pytest.mark.asyncio
async def test_time_range_filter_uses_clock() -> None:
    trail = await _trail()
    trail.update_filters(time_range="LAST_24_HOURS")
    assert len(trail.filtered_records) == 5
    with pytest.raises(ValueError):
        trail.update_filters(time_range="LAST_DECADE")


@pytest.mark.asyncio
async def test_page_defaults_to_newest_first() -> None:
    trail = await _trail()
    page = trail.page(TrailFilters(categories=["AUTHENTICATION"]), TrailPagination(page_size=2))
    assert page.total == 4
    assert [item.id for item in page.items] == ["AUD-0012", "AUD-0009"]
    with pytest.raises(ValueError):
        trail.page(pagination=TrailPagination(sort_by="ip_address"))


@pytest.mark.asyncio
async def test_related_records_share_session_entity_or_user() -> None:
    trail = await _trail()
    assert {item.id for item in trail.related("AUD-0012")} == {"AUD-0011", "AUD-0004"}
    assert trail.related("AUD-404") == []


@pytest.mark.asyncio
async def test_csv_export_has_header_and_one_line_per_record() -> None:
    trail = await _trail()
    lines = trail.export("CSV").splitlines()
    assert lines[0].startswith("ID,Timestamp,Category,Action")
    assert len(lines) == 13
    assert lines[1].startswith("AUD-0012,")


@pytest.mark.asyncio
async def test_csv_export_with_metadata_column() -> None:
    trail = await _trail()
    header = trail.export("CSV", include_metadata=True).splitlines()[0]
    assert header.endswith(",Metadata")


@pytest.mark.asyncio
async def test_json_export_respects_explicit_filters() -> None:
    trail = await _trail()
    payload = json.loads(trail.export("json", filters=TrailFilters(results=["FAILURE"])))
    assert [item["id"] for item in payload] == ["AUD-0009", "AUD-0008"]
    assert all(item["hash"] for item in payload)
    assert trail.filters == TrailFilters()


@pytest.mark.asyncio
async def test_export_rejects_unknown_format() -> None:
    trail = await _trail()
    with pytest.raises(ValueError):
        trail.export("XML")


@pytest.mark.asyncio
async def test_retention_deletes_expired_records_and_keeps_chain_valid() -> None:
    trail = await _trail()
    assert trail.create_retention_policy(
        category="DATA_MODIFICATION",
        retention_period="YEAR_1",
        auto_delete=True,
        actor="usr_001",
    )
    result = trail.apply_retention()
    assert result == {"archived": 0, "deleted": 1}
    assert trail.get("AUD-0001") is None
    assert trail.verify_chain().valid is True


@pytest.mark.asyncio
async def test_retention_policy_crud() -> None:
    trail = await _trail()
    assert trail.create_retention_policy(category="EXPORT", retention_period="FOREVER") is False
    assert trail.update_retention_policy("RET-002", retention_period="YEARS_10") is True
    assert next(item for item in trail.retention_policies if item.id == "RET-002").retention_days == 3650
    assert trail.delete_retention_policy("RET-001") is True
    assert trail.delete_retention_policy("RET-001") is False
