from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable

from amlguard.core.errors import AmlGuardError
from amlguard.domain.entities import (
    ENTITY_TYPES,
    NOTE_CATEGORIES,
    REGISTRY_RISK_LEVELS,
    EntityNote,
    HistoryEvent,
    License,
    RegistryEntity,
)
from amlguard.domain.lifecycle import license_action_status
from amlguard.domain.records import utc_now
from amlguard.persistence.fixtures import build_registry_entities
from amlguard.services.query import Page, filter_by_exact_fields, paginate, search, sort_by
from amlguard.services.risk_scoring import round_half_up
from amlguard.services.state import StateContainer


EXPIRING_SOON_DAYS = 90
RENEWAL_TERM_DAYS = 365

_HISTORY_TYPE_BY_ACTION = {
    "suspend": "License Suspended",
    "revoke": "License Revoked",
    "renew": "License Renewed",
}
_UPDATABLE_FIELDS = (
    "name",
    "type",
    "registration_number",
    "primary_contact_name",
    "compliance_score",
    "risk_level",
)


@dataclass
class EntityFilters:
    search: str = ""
    types: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)
    risk_levels: list[str] = field(default_factory=list)
    expiring_within_days: int | None = None


def days_until(expiry: date, today: date) -> int:
    return (expiry - today).days


async def _fixture_loader() -> list[RegistryEntity]:
    return build_registry_entities()


class EntityRegistry(StateContainer[RegistryEntity]):
    name = "entities"

    def __init__(
        self,
        loader: Callable[[], Awaitable[list[RegistryEntity]]] | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(loader or _fixture_loader)
        self._clock = clock
        self.filters = EntityFilters()
        self.selected: RegistryEntity | None = None

    def _today(self) -> date:
        return self._clock().date()

    def _find(self, entity_id: str) -> RegistryEntity | None:
        return next((item for item in self._items if item.id == entity_id), None)

    def get(self, entity_id: str) -> RegistryEntity | None:
        return self._find(entity_id)

    def _on_loaded(self) -> None:
        # Keep the selection pointing at the reloaded record, or drop it.
        if self.selected is not None:
            self.selected = self._find(self.selected.id)

    def set_filters(self, **criteria: Any) -> None:
        known = {item.name for item in fields(EntityFilters)}
        unknown = set(criteria) - known
        if unknown:
            raise ValueError(f"Unsupported entity filters: {sorted(unknown)}")
        self.filters = replace(self.filters, **criteria)
        self._notify("filters", self.filters)

    def reset_filters(self) -> None:
        self.filters = EntityFilters()
        self._notify("filters", self.filters)

    def filtered(self) -> list[RegistryEntity]:
        return self.apply_filters(self.filters)

    def apply_filters(self, criteria: EntityFilters) -> list[RegistryEntity]:
        rows = search(
            self._items,
            criteria.search,
            lambda item: (
                item.name,
                item.license.license_number,
                item.registration_number,
                item.primary_contact_name,
            ),
        )
        rows = filter_by_exact_fields(rows, {"type": criteria.types, "status": criteria.statuses})
        if criteria.risk_levels:
            rows = [row for row in rows if row.effective_risk_level in criteria.risk_levels]
        if criteria.expiring_within_days is not None:
            today = self._today()
            rows = [
                row
                for row in rows
                if 0 < days_until(row.license.expiry_date, today) <= criteria.expiring_within_days
            ]
        # Most recently updated first; ties keep fixture order.
        return sort_by(rows, "updated_at", "desc")

    def _list_item(self, item: RegistryEntity, today: date) -> dict[str, Any]:
        return {
            "id": item.id,
            "name": item.name,
            "licenseNumber": item.license.license_number,
            "type": item.type,
            "status": item.status,
            "riskLevel": item.effective_risk_level,
            "complianceScore": item.compliance_score or 0,
            "expiryDate": item.license.expiry_date.isoformat(),
            "daysUntilExpiry": days_until(item.license.expiry_date, today),
            "lastUpdated": item.updated_at.isoformat(),
        }

    @property
    def list_items(self) -> list[dict[str, Any]]:
        today = self._today()
        return [self._list_item(item, today) for item in self.filtered()]

    @property
    def statistics(self) -> dict[str, Any]:
        today = self._today()
        by_type = {kind: 0 for kind in ENTITY_TYPES}
        by_risk = {level: 0 for level in REGISTRY_RISK_LEVELS}
        scores = []
        for item in self._items:
            by_type[item.type] = by_type.get(item.type, 0) + 1
            by_risk[item.effective_risk_level] = by_risk.get(item.effective_risk_level, 0) + 1
            if item.compliance_score is not None:
                scores.append(item.compliance_score)
        return {
            "totalEntities": len(self._items),
            "activeLicenses": sum(1 for item in self._items if item.status == "Active"),
            "expiringSoon": sum(
                1
                for item in self._items
                if item.status == "Active"
                and 0 < days_until(item.license.expiry_date, today) <= EXPIRING_SOON_DAYS
            ),
            "suspended": sum(1 for item in self._items if item.status == "Suspended"),
            "byType": by_type,
            "byRiskLevel": by_risk,
            "averageComplianceScore": round_half_up(sum(scores) / len(scores)) if scores else 0,
        }

    def select_entity(self, entity_id: str) -> bool:
        entity = self._find(entity_id)
        if entity is None:
            return self._fail("Entity not found")
        # Single selection: a new pick replaces the previous one.
        self.selected = entity
        return self._succeed("selected", entity_id)

    def clear_selection(self) -> None:
        self.selected = None
        self._notify("selected", None)

    def _history(self, entity: RegistryEntity, *, type: str, title: str, description: str,
                 performed_by: str, occurred_on: date | None = None, **metadata: Any) -> None:
        entity.history.insert(
            0,
            HistoryEvent(
                id=f"HIST-{entity.id}-{len(entity.history) + 1}",
                type=type,
                title=title,
                description=description,
                occurred_on=occurred_on or self._today(),
                performed_by=performed_by,
                metadata=metadata,
            ),
        )

    def register(self, data: dict[str, Any], *, actor: str = "system") -> bool:
        required = ("name", "type", "license_number", "registration_number", "license_expiry_date")
        missing = [key for key in required if not data.get(key)]
        if missing:
            return self._fail(f"Missing registration fields: {', '.join(missing)}")
        if data["type"] not in ENTITY_TYPES:
            return self._fail(f"Unsupported entity type: {data['type']}")
        if any(item.license.license_number == data["license_number"] for item in self._items):
            return self._fail("License number already registered")
        now = self._clock()
        entity_id = f"ENT-{len(self._items) + 1}"
        while self._find(entity_id) is not None:
            entity_id = f"ENT-{int(entity_id.split('-')[1]) + 1}"
        entity = RegistryEntity(
            id=entity_id,
            name=data["name"],
            type=data["type"],
            status="Pending",
            license=License(
                license_number=data["license_number"],
                issue_date=data.get("license_issue_date") or now.date(),
                expiry_date=data["license_expiry_date"],
                status="Pending",
                conditions=list(data.get("license_conditions") or []),
            ),
            registration_number=data["registration_number"],
            primary_contact_name=data.get("primary_contact_name") or "",
            created_at=now,
            updated_at=now,
            updated_by=actor,
        )
        self._history(
            entity,
            type="Registration",
            title="Entity Registered",
            description="Entity registration submitted for approval",
            performed_by=actor,
        )
        self._items.insert(0, entity)
        return self._succeed("registered", entity_id)

    def update(self, entity_id: str, patch: dict[str, Any], *, actor: str = "system") -> bool:
        entity = self._find(entity_id)
        if entity is None:
            return self._fail("Entity not found")
        unknown = set(patch) - set(_UPDATABLE_FIELDS)
        if unknown:
            return self._fail(f"Unsupported update fields: {sorted(unknown)}")
        if patch.get("type") is not None and patch["type"] not in ENTITY_TYPES:
            return self._fail(f"Unsupported entity type: {patch['type']}")
        if patch.get("risk_level") is not None and patch["risk_level"] not in REGISTRY_RISK_LEVELS:
            return self._fail(f"Unsupported risk level: {patch['risk_level']}")
        changed = []
        for key in _UPDATABLE_FIELDS:
            value = patch.get(key)
            # Omitted or None keeps the stored value.
            if value is not None:
                setattr(entity, key, value)
                changed.append(key)
        entity.updated_at = self._clock()
        entity.updated_by = actor
        self._history(
            entity,
            type="Profile Updated",
            title="Entity Profile Updated",
            description="Entity information updated",
            performed_by=actor,
            fields=changed,
        )
        return self._succeed("updated", entity_id)

    def perform_license_action(
        self,
        entity_id: str,
        action: str,
        *,
        reason: str,
        authorized_by: str,
        effective_date: date | None = None,
    ) -> bool:
        entity = self._find(entity_id)
        if entity is None:
            return self._fail("Entity not found")
        try:
            next_status = license_action_status(entity.status, action)
        except AmlGuardError as exc:
            return self._fail(exc.message)
        effective = effective_date or self._today()
        license = entity.license
        entity.status = next_status
        license.status = next_status
        if action == "suspend":
            license.suspension_reason = reason
            license.suspension_date = effective
        elif action == "revoke":
            license.revocation_reason = reason
            license.revocation_date = effective
            license.authorized_by = authorized_by
        else:
            license.renewal_count += 1
            license.last_renewal_date = effective
            license.expiry_date = max(license.expiry_date, effective) + timedelta(days=RENEWAL_TERM_DAYS)
            license.suspension_reason = None
            license.suspension_date = None
        history_type = _HISTORY_TYPE_BY_ACTION[action]
        self._history(
            entity,
            type=history_type,
            title=history_type,
            description=reason,
            performed_by=authorized_by,
            occurred_on=effective,
        )
        entity.updated_at = self._clock()
        entity.updated_by = authorized_by
        return self._succeed(f"license.{action}", entity_id)

    def add_note(
        self,
        entity_id: str,
        content: str,
        *,
        category: str = "General",
        is_confidential: bool = False,
        actor: str = "system",
    ) -> bool:
        entity = self._find(entity_id)
        if entity is None:
            return self._fail("Entity not found")
        if not content.strip():
            return self._fail("Note content is required")
        if category not in NOTE_CATEGORIES:
            return self._fail(f"Unsupported note category: {category}")
        entity.notes.insert(
            0,
            EntityNote(
                id=f"NOTE-{entity_id}-{len(entity.notes) + 1}",
                content=content,
                category=category,
                created_at=self._clock(),
                created_by=actor,
                is_confidential=is_confidential,
            ),
        )
        return self._succeed("note", entity_id)

    def page(
        self,
        page: int = 1,
        page_size: int = 10,
        filters: EntityFilters | None = None,
    ) -> Page[dict[str, Any]]:
        today = self._today()
        items = [self._list_item(item, today) for item in self.apply_filters(filters or self.filters)]
        return Page(items=paginate(items, page, page_size), total=len(items), page=page, page_size=page_size)

