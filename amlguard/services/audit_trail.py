from __future__ import annotations

import csv
import hashlib
import io
import json
import logging
from collections import Counter
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable

from amlguard.domain.records import utc_now
from amlguard.domain.trail import RETENTION_DAYS, TIME_RANGES, RetentionPolicy, TrailRecord
from amlguard.persistence.fixtures import build_audit_trail_records, build_retention_policies
from amlguard.services.audit import GENESIS_HASH, ChainVerification
from amlguard.services.query import Page, filter_by_exact_fields, paginate, search, sort_by
from amlguard.services.risk_scoring import round_half_up
from amlguard.services.state import StateContainer


logger = logging.getLogger(__name__)

CSV_COLUMNS = (
    ("id", "ID"),
    ("timestamp", "Timestamp"),
    ("category", "Category"),
    ("action", "Action"),
    ("entity_type", "Entity Type"),
    ("entity_id", "Entity ID"),
    ("entity_name", "Entity Name"),
    ("user_name", "User"),
    ("user_role", "User Role"),
    ("ip_address", "IP Address"),
    ("result", "Result"),
    ("log_level", "Log Level"),
    ("duration_ms", "Duration (ms)"),
    ("description", "Description"),
)
_SORTABLE_FIELDS = {"timestamp", "category", "action", "user_name", "result", "log_level", "duration_ms"}


def compute_record_hash(record: TrailRecord, prev_hash: str) -> str:
    material = "|".join(
        [
            prev_hash,
            record.id,
            record.timestamp.isoformat(),
            record.category,
            record.action,
            record.user_id,
            record.entity_id or "",
            record.result,
        ]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def seal_records(records: Iterable[TrailRecord]) -> list[TrailRecord]:
    # Records are chained oldest first, matching the order they were written.
    sealed = []
    prev = GENESIS_HASH
    for record in sort_by(records, "timestamp", "asc"):
        digest = compute_record_hash(record, prev)
        sealed.append(replace(record, prev_hash=prev, hash=digest))
        prev = digest
    return sealed


def verify_records(records: Iterable[TrailRecord], anchor: str = GENESIS_HASH) -> ChainVerification:
    # ``anchor`` is the link the oldest retained record must point at.
    expected_prev = anchor
    checked = 0
    for record in sort_by(records, "timestamp", "asc"):
        if record.prev_hash != expected_prev:
            return ChainVerification(False, checked, record.id, "prev_hash_mismatch")
        recomputed = compute_record_hash(record, expected_prev)
        if record.hash != recomputed:
            return ChainVerification(False, checked, record.id, "entry_hash_mismatch")
        expected_prev = recomputed
        checked += 1
    return ChainVerification(True, checked)


@dataclass
class TrailFilters:
    search: str = ""
    categories: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)
    entity_types: list[str] = field(default_factory=list)
    user_ids: list[str] = field(default_factory=list)
    log_levels: list[str] = field(default_factory=list)
    results: list[str] = field(default_factory=list)
    entity_id: str | None = None
    session_id: str | None = None
    time_range: str | None = None
    start: datetime | None = None
    end: datetime | None = None


@dataclass
class TrailPagination:
    page: int = 1
    page_size: int = 20
    sort_by: str = "timestamp"
    sort_order: str = "desc"


async def _fixture_loader() -> list[TrailRecord]:
    return seal_records(build_audit_trail_records())


class AuditTrail(StateContainer[TrailRecord]):
    """Searchable view over the sealed audit trail with export and retention."""

    name = "audit_trail"

    def __init__(
        self,
        loader: Callable[[], Awaitable[list[TrailRecord]]] | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(loader or _fixture_loader)
        self._clock = clock
        self.filters = TrailFilters()
        self.pagination = TrailPagination()
        self.retention_policies: list[RetentionPolicy] = build_retention_policies()
        self.selected: TrailRecord | None = None
        self._anchor = GENESIS_HASH

    def get(self, record_id: str) -> TrailRecord | None:
        return next((item for item in self._items if item.id == record_id), None)

    def _on_loaded(self) -> None:
        self._anchor = GENESIS_HASH
        if self.selected is not None:
            self.selected = self.get(self.selected.id)

    def update_filters(self, **criteria: Any) -> None:
        known = {item.name for item in fields(TrailFilters)}
        unknown = set(criteria) - known
        if unknown:
            raise ValueError(f"Unsupported audit filters: {sorted(unknown)}")
        merged = replace(self.filters, **criteria)
        if merged.time_range is not None and merged.time_range not in TIME_RANGES and merged.time_range != "CUSTOM":
            raise ValueError(f"Unsupported time range: {merged.time_range}")
        self.filters = merged
        self.pagination = replace(self.pagination, page=1)
        self._notify("filters", self.filters)

    def clear_filters(self) -> None:
        self.filters = TrailFilters()
        self.pagination = replace(self.pagination, page=1)
        self._notify("filters", self.filters)

    def update_pagination(self, **changes: Any) -> None:
        pagination = replace(self.pagination, **changes)
        if pagination.sort_by not in _SORTABLE_FIELDS:
            raise ValueError(f"Unsupported sort field: {pagination.sort_by}")
        self.pagination = pagination
        self._notify("pagination", self.pagination)

    def _window(self, criteria: TrailFilters) -> tuple[datetime | None, datetime | None]:
        if criteria.time_range and criteria.time_range != "CUSTOM":
            now = self._clock()
            return now - TIME_RANGES[criteria.time_range], now
        if criteria.start and criteria.end:
            return criteria.start, criteria.end
        return None, None

    def apply_filters(self, criteria: TrailFilters) -> list[TrailRecord]:
        rows = search(
            self._items,
            criteria.search,
            ("description", "user_name", "entity_name", "action", "category"),
        )
        rows = filter_by_exact_fields(
            rows,
            {
                "category": criteria.categories,
                "action": criteria.actions,
                "entity_type": criteria.entity_types,
                "user_id": criteria.user_ids,
                "log_level": criteria.log_levels,
                "result": criteria.results,
                "entity_id": criteria.entity_id,
                "session_id": criteria.session_id,
            },
        )
        start, end = self._window(criteria)
        if start is not None and end is not None:
            rows = [row for row in rows if start <= row.timestamp <= end]
        return rows

    @property
    def filtered_records(self) -> list[TrailRecord]:
        return self.apply_filters(self.filters)

    def page(
        self,
        filters: TrailFilters | None = None,
        pagination: TrailPagination | None = None,
    ) -> Page[TrailRecord]:
        pagination = pagination or self.pagination
        if pagination.sort_by not in _SORTABLE_FIELDS:
            raise ValueError(f"Unsupported sort field: {pagination.sort_by}")
        rows = sort_by(self.apply_filters(filters or self.filters), pagination.sort_by, pagination.sort_order)
        return Page(
            items=paginate(rows, pagination.page, pagination.page_size),
            total=len(rows),
            page=pagination.page,
            page_size=pagination.page_size,
        )

    @property
    def statistics(self) -> dict[str, Any]:
        rows = self.filtered_records
        durations = [row.duration_ms for row in rows if row.duration_ms]
        hours = Counter(row.timestamp.hour for row in rows)
        users = Counter(row.user_id for row in rows)
        names = {row.user_id: row.user_name for row in rows}
        actions = Counter(row.action for row in rows)
        peak_hour = "N/A"
        if hours:
            hour = hours.most_common(1)[0][0]
            peak_hour = f"{hour:02d}:00 - {hour + 1:02d}:00"
        return {
            "totalActions": len(rows),
            "successfulActions": sum(1 for row in rows if row.result == "SUCCESS"),
            "failedActions": sum(1 for row in rows if row.result == "FAILURE"),
            "criticalEvents": sum(1 for row in rows if row.log_level == "CRITICAL"),
            "uniqueUsers": len(users),
            "uniqueSessions": len({row.session_id for row in rows}),
            "averageDuration": round_half_up(sum(durations) / len(durations)) if durations else 0,
            "peakHour": peak_hour,
            "mostActiveUser": names[users.most_common(1)[0][0]] if users else "N/A",
            "mostCommonAction": actions.most_common(1)[0][0] if actions else "READ",
        }

    def related(self, record_id: str) -> list[TrailRecord]:
        record = self.get(record_id)
        if record is None:
            return []
        return [
            item
            for item in self._items
            if item.id != record_id
            and (
                item.session_id == record.session_id
                or (item.entity_id and item.entity_id == record.entity_id)
                or item.user_id == record.user_id
            )
        ]

    def export(self, format: str = "CSV", *, filters: TrailFilters | None = None, include_metadata: bool = False) -> str:
        """Serialize the filtered records; the active filters are left untouched."""
        rows = sort_by(self.apply_filters(filters or self.filters), "timestamp", "desc")
        fmt = format.upper()
        if fmt == "JSON":
            return json.dumps([row.to_dict() for row in rows], indent=2)
        if fmt != "CSV":
            raise ValueError(f"Unsupported export format: {format}")
        buffer = io.StringIO()
        headers = [label for _, label in CSV_COLUMNS] + (["Metadata"] if include_metadata else [])
        writer = csv.DictWriter(buffer, fieldnames=headers, lineterminator="\n")
        writer.writeheader()
        for row in rows:
            data = row.to_dict()
            line = {label: "" if data[name] is None else data[name] for name, label in CSV_COLUMNS}
            if include_metadata:
                line["Metadata"] = json.dumps(row.metadata) if row.metadata else ""
            writer.writerow(line)
        logger.info("audit_trail_exported format=%s rows=%s", fmt, len(rows))
        return buffer.getvalue()

    def create_retention_policy(
        self,
        *,
        category: str,
        retention_period: str,
        entity_type: str | None = None,
        log_level: str | None = None,
        auto_archive: bool = False,
        auto_delete: bool = False,
        actor: str = "system",
    ) -> bool:
        if retention_period not in RETENTION_DAYS:
            return self._fail(f"Unsupported retention period: {retention_period}")
        now = self._clock()
        policy = RetentionPolicy(
            id=f"RET-{len(self.retention_policies) + 1:03d}",
            category=category,
            retention_period=retention_period,
            retention_days=RETENTION_DAYS[retention_period],
            entity_type=entity_type,
            log_level=log_level,
            auto_archive=auto_archive,
            auto_delete=auto_delete,
            created_by=actor,
            created_at=now,
            updated_at=now,
        )
        self.retention_policies.append(policy)
        return self._succeed("retention.created", policy.id)

    def update_retention_policy(self, policy_id: str, **changes: Any) -> bool:
        for index, policy in enumerate(self.retention_policies):
            if policy.id != policy_id:
                continue
            period = changes.get("retention_period")
            if period is not None:
                if period not in RETENTION_DAYS:
                    return self._fail(f"Unsupported retention period: {period}")
                changes["retention_days"] = RETENTION_DAYS[period]
            try:
                self.retention_policies[index] = replace(policy, updated_at=self._clock(), **changes)
            except TypeError as exc:
                return self._fail(str(exc))
            return self._succeed("retention.updated", policy_id)
        return self._fail("Retention policy not found")

    def delete_retention_policy(self, policy_id: str) -> bool:
        remaining = [policy for policy in self.retention_policies if policy.id != policy_id]
        if len(remaining) == len(self.retention_policies):
            return self._fail("Retention policy not found")
        self.retention_policies = remaining
        return self._succeed("retention.deleted", policy_id)

    def apply_retention(self) -> dict[str, int]:
        """Archive or delete records older than each active policy allows."""
        now = self._clock()
        archived = 0
        deleted = 0
        for policy in self.retention_policies:
            if not policy.is_active or policy.retention_days < 0:
                continue
            cutoff = now - timedelta(days=policy.retention_days)
            expired = {
                row.id
                for row in self._items
                if row.category == policy.category
                and (policy.entity_type is None or row.entity_type == policy.entity_type)
                and (policy.log_level is None or row.log_level == policy.log_level)
                and row.timestamp < cutoff
            }
            if policy.auto_archive:
                archived += len(expired)
            if policy.auto_delete and expired:
                deleted += len(expired)
                self._items = [row for row in self._items if row.id not in expired]
        if deleted:
            # Pruned records leave the chain intact from the oldest survivor onwards.
            oldest = sort_by(self._items, "timestamp", "asc")
            self._anchor = oldest[0].prev_hash if oldest else GENESIS_HASH
            logger.info("audit_trail_retention_applied archived=%s deleted=%s", archived, deleted)
        self._notify("retention", {"archived": archived, "deleted": deleted})
        return {"archived": archived, "deleted": deleted}

    def verify_chain(self) -> ChainVerification:
        return verify_records(self._items, self._anchor)

    def select_record(self, record_id: str) -> bool:
        record = self.get(record_id)
        if record is None:
            return self._fail("Audit record not found")
        self.selected = record
        return self._succeed("selected", record_id)

    def clear_selection(self) -> None:
        self.selected = None
        self._notify("selected", None)
