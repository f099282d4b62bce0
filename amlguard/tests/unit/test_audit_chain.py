from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from amlguard.core.errors import PersistenceError
from amlguard.domain.records import AuditLogEntry, utc_now
from amlguard.persistence.memory import MemoryStore
from amlguard.services.audit import GENESIS_HASH, AuditQueue, chain_entry, verify_chain
from amlguard.services.resilience import RetryPolicy
from amlguard.services.telemetry import audit_drop_rate, counters_snapshot


FAST_POLICY = RetryPolicy(timeout_ms=500, max_attempts=2, backoff_ms=1)


def _chain(count: int) -> list[AuditLogEntry]:
    start = utc_now()
    entries = []
    prev = None
    for index in range(count):
        entry = chain_entry(
            AuditLogEntry(
                user_id="usr_001",
                path=f"/api/institutions/{index}",
                method="GET",
                created_at=start + timedelta(seconds=index),
                id=index + 1,
            ),
            prev,
        )
        entries.append(entry)
        prev = entry.entry_hash
    return entries


def test_first_entry_links_to_genesis() -> None:
    entries = _chain(1)
    assert entries[0].prev_hash == GENESIS_HASH
    assert len(entries[0].entry_hash) == 64


def test_verify_chain_accepts_untouched_chain() -> None:
    result = verify_chain(_chain(5))
    assert result.valid is True
    assert result.checked == 5


def test_verify_chain_detects_edited_entry() -> None:
    entries = _chain(5)
    entries[2] = replace(entries[2], path="/api/tampered")
    result = verify_chain(entries)
    assert result.valid is False
    assert result.to_dict()["valid"] is False


def test_verify_chain_detects_removed_entry() -> None:
    entries = _chain(5)
    del entries[1]
    assert verify_chain(entries).valid is False


@pytest.mark.asyncio
async def test_write_persists_chained_entries() -> None:
    store = MemoryStore()
    queue = AuditQueue(store, policy=FAST_POLICY)
    try:
        first = await queue.write(AuditLogEntry(user_id="usr_001", path="/api/a", method="POST"))
        second = await queue.write(AuditLogEntry(user_id=None, path="/api/b", method="CUSTOM"))
    finally:
        await queue.stop()
    assert first.id == 1
    assert second.prev_hash == first.entry_hash
    assert verify_chain(await store.audit_chain()).valid is True


@pytest.mark.asyncio
async def test_concurrent_writes_chain_without_a_running_worker() -> None:
    store = MemoryStore()
    queue = AuditQueue(store, policy=FAST_POLICY)
    await asyncio.gather(
        *(queue.write(AuditLogEntry(user_id="usr_001", path=f"/api/c/{index}", method="PUT")) for index in range(5))
    )
    chain = await store.audit_chain()
    assert len(chain) == 5
    assert verify_chain(chain).valid is True
    await queue.stop()


@pytest.mark.asyncio
async def test_queue_restarts_after_stop() -> None:
    store = MemoryStore()
    queue = AuditQueue(store, policy=FAST_POLICY)
    assert queue.enqueue(user_id="usr_002", path="/api/r/1", method="GET") is True
    await queue.stop()
    assert queue.enqueue(user_id="usr_002", path="/api/r/2", method="GET") is True
    await queue.flush()
    await queue.stop()
    chain = await store.audit_chain()
    assert [entry.path for entry in chain] == ["/api/r/1", "/api/r/2"]
    assert verify_chain(chain).valid is True


@pytest.mark.asyncio
async def test_enqueue_drains_through_worker() -> None:
    store = MemoryStore()
    queue = AuditQueue(store, policy=FAST_POLICY)
    for index in range(3):
        assert queue.enqueue(user_id="usr_002", path=f"/api/x/{index}", method="GET") is True
    await queue.flush()
    await queue.stop()
    assert len(await store.audit_chain()) == 3
    assert counters_snapshot()["audit_written_total"] == 3


@pytest.mark.asyncio
async def test_full_queue_drops_without_blocking() -> None:
    store = MemoryStore()
    queue = AuditQueue(store, max_size=1, policy=FAST_POLICY)
    accepted = [queue.enqueue(user_id="usr_002", path="/api/y", method="GET") for _ in range(5)]
    # The worker has not run yet, so only the first entry fits.
    assert accepted == [True, False, False, False, False]
    await queue.stop()
    assert counters_snapshot()["audit_rejected_total"] == 4
    assert audit_drop_rate() == pytest.approx(80.0)


class FailingStore(MemoryStore):
    async def append_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        raise PersistenceError("Database operation failed")


@pytest.mark.asyncio
async def test_worker_drops_entries_after_retry_budget() -> None:
    queue = AuditQueue(FailingStore(), policy=FAST_POLICY)
    assert queue.enqueue(user_id="usr_002", path="/api/z", method="GET") is True
    await asyncio.wait_for(queue.flush(), timeout=2)
    await queue.stop()
    counters = counters_snapshot()
    assert counters["audit_dropped_total"] == 1
    assert counters["audit_retries_total"] == 1


@pytest.mark.asyncio
async def test_write_propagates_store_errors() -> None:
    queue = AuditQueue(FailingStore(), policy=FAST_POLICY)
    try:
        with pytest.raises(PersistenceError):
            await queue.write(AuditLogEntry(user_id=None, path="/api/z", method="POST"))
    finally:
        await queue.stop()
