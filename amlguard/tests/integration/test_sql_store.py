from __future__ import annotations

from datetime import datetime, timezone

import pytest

from amlguard.core.errors import ConflictError
from amlguard.domain.models import Base
from amlguard.domain.records import AuditLogEntry
from amlguard.persistence.db import build_sessionmaker
from amlguard.persistence.memory import MemoryStore
from amlguard.persistence.seed import seed_demo_data
from amlguard.persistence.sql import SqlStore
from amlguard.services.audit import AuditQueue, verify_chain
from amlguard.services.query import SortField
from amlguard.services.risk_scoring import compute_risk_score


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
async def store(tmp_path):
    # File-backed SQLite so concurrent sessions share one database.
    store = SqlStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'amlguard.db'}")
    async with store.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sql"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        yield MemoryStore()
        return
    store = SqlStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'amlguard.db'}")
    async with store.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield store
    await store.close()


async def _create(store, license_number: str, **overrides):
    fields = {"name": "Harare Trust", "category": "Bank", "status": "Active", "risk_level": "Medium"}
    fields.update(overrides)
    return await store.create_institution(license_number=license_number, **fields)


@pytest.mark.asyncio
async def test_backends_leave_unscored_institutions_unscored(any_store) -> None:
    created = await _create(any_store, "RBZ/BK/9101", risk_level="High")
    assert (created.risk_level, created.risk_score) == ("High", None)
    fetched = await any_store.get_institution(created.id)
    assert fetched.risk_score is None


@pytest.mark.asyncio
async def test_backends_look_up_licenses_exactly(any_store) -> None:
    exact = await _create(any_store, "ZW-7")
    for index in range(3):
        await _create(any_store, f"ZW-7{index:03d}", name=f"Branch {index}")
    found = await any_store.get_institution_by_license("ZW-7")
    assert found is not None
    assert found.id == exact.id
    assert await any_store.get_institution_by_license("zw-7") is None
    assert await any_store.get_institution_by_license("ZW-") is None


@pytest.mark.asyncio
async def test_backends_treat_search_wildcards_literally(any_store) -> None:
    await _create(any_store, "RBZ/BK/9201", name="Mutual_Savings Bank")
    await _create(any_store, "RBZ/BK/9202", name="Mutual Savings 100% Bank")
    page = await any_store.list_institutions(search="_")
    assert [item.name for item in page.items] == ["Mutual_Savings Bank"]
    page = await any_store.list_institutions(search="%")
    assert [item.name for item in page.items] == ["Mutual Savings 100% Bank"]
    page = await any_store.list_institutions(search="mutual")
    assert page.total == 2


@pytest.mark.asyncio
async def test_seed_is_idempotent(store) -> None:
    assert await seed_demo_data(build_sessionmaker(store.engine), now=NOW) == 14
    assert await seed_demo_data(build_sessionmaker(store.engine), now=NOW) == 0


@pytest.mark.asyncio
async def test_list_institutions_pages_filters_and_counts(store) -> None:
    await seed_demo_data(build_sessionmaker(store.engine), now=NOW)

    page = await store.list_institutions(page=1, page_size=10)
    assert page.total == 14
    assert len(page.items) == 10
    assert page.items[0].id == "mem-bancabc"

    page = await store.list_institutions(search="CBZ")
    assert [item.id for item in page.items] == ["mem-cbz"]

    page = await store.list_institutions(
        risk_level="High",
        sort=[SortField(name="risk_score", direction="desc")],
    )
    assert page.total == 3
    assert [item.risk_score for item in page.items] == [82, 81, 78]


@pytest.mark.asyncio
async def test_update_keeps_omitted_fields(store) -> None:
    await seed_demo_data(build_sessionmaker(store.engine), now=NOW)
    updated = await store.update_institution("mem-cbz", name="CBZ Holdings")
    assert updated is not None
    assert updated.name == "CBZ Holdings"
    assert updated.license_number == "RBZ/BK/0001"
    assert updated.risk_score == 68
    assert await store.update_institution("mem-missing", name="Ghost") is None


@pytest.mark.asyncio
async def test_finding_status_and_open_count(store) -> None:
    await seed_demo_data(build_sessionmaker(store.engine), now=NOW)
    before = await store.count_open_findings("mem-abc-brokers")
    finding = await store.update_finding_status("if-abc-1", "Closed")
    assert finding is not None
    assert finding.status == "Closed"
    assert await store.count_open_findings("mem-abc-brokers") == before - 1


@pytest.mark.asyncio
async def test_risk_score_matches_memory_backend(store) -> None:
    await seed_demo_data(build_sessionmaker(store.engine), now=NOW)
    result = await compute_risk_score(store, "mem-cbz", now=NOW)
    assert result.score == 67
    assert result.level == "Medium"


@pytest.mark.asyncio
async def test_audit_chain_round_trips_through_sqlite(store) -> None:
    queue = AuditQueue(store)
    try:
        for index in range(3):
            await queue.write(AuditLogEntry(user_id="usr_001", path=f"/api/institutions/{index}", method="GET"))
    finally:
        await queue.stop()

    chain = await store.audit_chain()
    assert [entry.id for entry in chain] == [1, 2, 3]
    assert verify_chain(chain).valid is True

    latest = await store.list_audit_logs(limit=2)
    assert [entry.id for entry in latest] == [3, 2]
    assert (await store.last_audit_log()).id == 3


@pytest.mark.asyncio
async def test_unique_license_violation_is_a_conflict(store) -> None:
    await _create(store, "RBZ/BK/9301")
    with pytest.raises(ConflictError):
        await _create(store, "RBZ/BK/9301", name="Copycat Bank")
    # The failed insert leaves the store usable.
    assert (await store.list_institutions()).total == 1
