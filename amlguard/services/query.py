from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Mapping, Sequence, TypeVar

from amlguard.core.errors import ValidationError


T = TypeVar("T")

_MULTI_VALUE_TYPES = (list, tuple, set, frozenset)


def field_value(row: Any, name: str) -> Any:
    # Read a field from mappings and attribute-style records alike.
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def _is_empty_predicate(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, _MULTI_VALUE_TYPES):
        return len(value) == 0
    return False


def search(
    rows: Iterable[T],
    query: str | None,
    fields: Sequence[str] | Callable[[T], Iterable[Any]],
) -> list[T]:
    """Case-insensitive substring match over the selected string fields.

    ``fields`` is either a list of field names or a selector returning the
    values to match for a row. An empty query returns rows unchanged.
    """
    items = list(rows)
    needle = (query or "").strip().lower()
    if not needle:
        return items

    def _values(row: T) -> Iterable[Any]:
        if callable(fields):
            return fields(row)
        return (field_value(row, name) for name in fields)

    return [
        row
        for row in items
        if any(isinstance(value, str) and needle in value.lower() for value in _values(row))
    ]


def filter_by_exact_fields(rows: Iterable[T], predicates: Mapping[str, Any]) -> list[T]:
    # AND over non-empty predicates; collection values match by membership.
    active = {name: value for name, value in predicates.items() if not _is_empty_predicate(value)}
    if not active:
        return list(rows)

    def _matches(row: T) -> bool:
        for name, expected in active.items():
            actual = field_value(row, name)
            if isinstance(expected, _MULTI_VALUE_TYPES):
                if actual not in expected:
                    return False
            elif actual != expected:
                return False
        return True

    return [row for row in rows if _matches(row)]


def sort_by(
    rows: Iterable[T],
    key: str | Callable[[T], Any],
    direction: str = "asc",
) -> list[T]:
    """Stable single-key sort; missing values always sort last."""
    if direction not in {"asc", "desc"}:
        raise ValidationError(f"Unsupported sort direction: {direction}")
    items = list(rows)

    def _key(row: T) -> Any:
        value = key(row) if callable(key) else field_value(row, key)
        if isinstance(value, str):
            return value.lower()
        return value

    present = [row for row in items if _key(row) is not None]
    missing = [row for row in items if _key(row) is None]
    # sorted() keeps ties in input order even with reverse=True.
    ordered = sorted(present, key=_key, reverse=direction == "desc")
    return ordered + missing


def paginate(rows: Sequence[T], page: int, page_size: int) -> list[T]:
    if page < 1:
        raise ValidationError("page must be >= 1")
    if page_size < 1:
        raise ValidationError("pageSize must be >= 1")
    start = (page - 1) * page_size
    return list(rows[start : start + page_size])


@dataclass(frozen=True)
class SortField:
    # Capture the parsed sort direction for a single field.
    name: str
    direction: str


def parse_sort(
    *,
    sort: str | None,
    allowed: Iterable[str],
    default: list[SortField],
) -> list[SortField]:
    # Parse comma-delimited sort strings ("-updated_at,name") into validated fields.
    if not sort:
        return default
    allowed_names = set(allowed)
    fields: list[SortField] = []
    seen = set()
    for raw in sort.split(","):
        raw = raw.strip()
        if not raw:
            continue
        direction = "desc" if raw.startswith("-") else "asc"
        name = raw[1:] if raw.startswith("-") else raw
        if name in seen:
            continue
        if name not in allowed_names:
            raise ValidationError(f"Unsupported sort field: {name}")
        fields.append(SortField(name=name, direction=direction))
        seen.add(name)
    if not fields:
        return default
    return fields


def sort_by_fields(rows: Iterable[T], fields: Sequence[SortField]) -> list[T]:
    # Apply keys last-to-first so the first field has the highest precedence.
    items = list(rows)
    for sort_field in reversed(fields):
        items = sort_by(items, sort_field.name, sort_field.direction)
    return items


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.page_size)

    def to_dict(self, serialize: Callable[[T], Any] | None = None) -> dict[str, Any]:
        items = [serialize(item) for item in self.items] if serialize else list(self.items)
        return {
            "items": items,
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
            "totalPages": self.total_pages,
        }


@dataclass
class ListQuery:
    # Filter -> search -> sort -> paginate, in that order, so totals track the filtered set.
    filters: dict[str, Any] = field(default_factory=dict)
    search: str | None = None
    search_fields: Sequence[str] = ()
    sort: list[SortField] = field(default_factory=list)
    page: int = 1
    page_size: int = 10


def apply_list_query(rows: Iterable[T], query: ListQuery) -> Page[T]:
    filtered = filter_by_exact_fields(rows, query.filters)
    if query.search_fields:
        filtered = search(filtered, query.search, query.search_fields)
    ordered = sort_by_fields(filtered, query.sort)
    return Page(
        items=paginate(ordered, query.page, query.page_size),
        total=len(ordered),
        page=query.page,
        page_size=query.page_size,
    )
