from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable

from amlguard.core.config import get_settings
from amlguard.domain.records import AuditLogEntry, utc_now
from amlguard.persistence.store import Store
from amlguard.services.resilience import RetryPolicy, audit_retry_policy, retry_async
from amlguard.services.telemetry import increment_counter, set_gauge


logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


def compute_entry_hash(
    *,
    prev_hash: str,
    user_id: str | None,
    path: str,
    method: str,
    created_at: datetime,
) -> str:
    # Each entry commits to its predecessor; editing any row breaks every later link.
    material = "|".join([prev_hash, user_id or "", path, method, created_at.isoformat()])
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def chain_entry(entry: AuditLogEntry, prev_hash: str | None) -> AuditLogEntry:
    prev = prev_hash or GENESIS_HASH
    return replace(
        entry,
        prev_hash=prev,
        entry_hash=compute_entry_hash(
            prev_hash=prev,
            user_id=entry.user_id,
            path=entry.path,
            method=entry.method,
            created_at=entry.created_at,
        ),
    )


@dataclass(frozen=True)
class ChainVerification:
    valid: bool
    checked: int
    broken_at_id: int | str | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "checked": self.checked,
            "broken_at_id": self.broken_at_id,
            "reason": self.reason,
        }


def verify_chain(entries: Iterable[AuditLogEntry]) -> ChainVerification:
    """Walk entries in id order and report the first broken link."""
    expected_prev = GENESIS_HASH
    checked = 0
    for entry in entries:
        if entry.prev_hash != expected_prev:
            return ChainVerification(False, checked, entry.id, "prev_hash_mismatch")
        recomputed = compute_entry_hash(
            prev_hash=expected_prev,
            user_id=entry.user_id,
            path=entry.path,
            method=entry.method,
            created_at=entry.created_at,
        )
        if entry.entry_hash != recomputed:
            return ChainVerification(False, checked, entry.id, "entry_hash_mismatch")
        expected_prev = recomputed
        checked += 1
    return ChainVerification(True, checked)


class AuditQueue:
    """Best-effort audit writer kept off the request path.

    ``enqueue`` never blocks or raises: a full queue drops the entry, and a
    write that exhausts its retry budget is dropped by the worker. Both paths
    are counted so the drop rate stays observable.
    """

    def __init__(
        self,
        store: Store,
        *,
        max_size: int | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._queue: asyncio.Queue[AuditLogEntry] | None = None
        self._max_size = max_size if max_size is not None else settings.audit_queue_max_size
        self._policy = policy or audit_retry_policy()
        self._worker: asyncio.Task | None = None
        # Serializes chaining so each entry links to the one persisted before it.
        self._lock = asyncio.Lock()
        self._last_hash: str | None = None

    def _ensure_started(self) -> asyncio.Queue[AuditLogEntry]:
        # Created lazily so the queue binds to the running loop.
        queue = self._queue
        if queue is None:
            queue = self._queue = asyncio.Queue(maxsize=max(1, self._max_size))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._worker_loop(queue))
        return queue

    async def start(self) -> None:
        self._ensure_started()

    def enqueue(
        self,
        *,
        user_id: str | None,
        path: str,
        method: str,
        created_at: datetime | None = None,
    ) -> bool:
        queue = self._ensure_started()
        entry = AuditLogEntry(user_id=user_id, path=path, method=method, created_at=created_at or utc_now())
        try:
            queue.put_nowait(entry)
        except asyncio.QueueFull:
            increment_counter("audit_rejected_total")
            logger.warning("audit_queue_full path=%s method=%s", path, method)
            return False
        increment_counter("audit_enqueued_total")
        set_gauge("audit_queue_depth", queue.qsize())
        return True

    async def write(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Chain and persist one entry now; errors propagate to the caller."""
        async with self._lock:
            if self._last_hash is None:
                last = await self._store.last_audit_log()
                self._last_hash = last.entry_hash if last and last.entry_hash else GENESIS_HASH
            chained = chain_entry(entry, self._last_hash)
            stored = await retry_async(
                lambda: self._store.append_audit_log(chained),
                policy=self._policy,
                counter="audit_retries_total",
            )
            self._last_hash = stored.entry_hash
        increment_counter("audit_written_total")
        return stored

    async def _worker_loop(self, queue: asyncio.Queue[AuditLogEntry]) -> None:
        while True:
            entry = await queue.get()
            try:
                await self.write(entry)
            except Exception:  # noqa: BLE001 - audit writes must never take the worker down.
                increment_counter("audit_dropped_total")
                logger.exception("audit_event_write_failed path=%s method=%s", entry.path, entry.method)
            finally:
                queue.task_done()
                set_gauge("audit_queue_depth", queue.qsize())

    async def flush(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        # Drain pending entries before cancelling the worker.
        if self._worker is None:
            return
        if not self._worker.done():
            await self.flush()
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._queue = None
