from __future__ import annotations

import pytest

from amlguard.core.errors import ValidationError
from amlguard.services.query import (
    ListQuery,
    SortField,
    apply_list_query,
    filter_by_exact_fields,
    paginate,
    parse_sort,
    search,
    sort_by,
)


ROWS = [
    {"name": "CBZ Bank", "status": "Active", "score": 68},
    {"name": "ZB Bank", "status": "Active", "score": 64},
    {"name": "SafeCustody", "status": "Suspended", "score": None},
    {"name": "Nedbank", "status": "Active", "score": 50},
]


def test_search_is_case_insensitive_substring() -> None:
    rows = [{"name": "CBZ Bank"}, {"name": "ZB Bank"}]
    assert search(rows, "cbz", lambda row: [row["name"]]) == [{"name": "CBZ Bank"}]


def test_search_empty_query_returns_all_rows() -> None:
    assert search(ROWS, "   ", ("name",)) == ROWS
    assert search(ROWS, None, ("name",)) == ROWS


def test_search_ignores_non_string_fields() -> None:
    assert search(ROWS, "68", ("name", "score")) == []


def test_filter_skips_empty_predicates() -> None:
    assert filter_by_exact_fields(ROWS, {"status": "", "name": []}) == ROWS


def test_filter_combines_predicates_with_and() -> None:
    result = filter_by_exact_fields(ROWS, {"status": "Active", "name": ["ZB Bank", "SafeCustody"]})
    assert [row["name"] for row in result] == ["ZB Bank"]


def test_filtered_count_never_exceeds_input() -> None:
    for status in ("Active", "Suspended", "Revoked"):
        assert len(filter_by_exact_fields(ROWS, {"status": status})) <= len(ROWS)


def test_sort_missing_values_last_in_both_directions() -> None:
    ascending = sort_by(ROWS, "score", "asc")
    descending = sort_by(ROWS, "score", "desc")
    assert [row["score"] for row in ascending] == [50, 64, 68, None]
    assert [row["score"] for row in descending] == [68, 64, 50, None]


def test_sort_is_stable_for_ties() -> None:
    rows = [{"id": index, "group": "a" if index % 2 else "b"} for index in range(6)]
    ordered = sort_by(rows, "group", "desc")
    assert [row["id"] for row in ordered] == [0, 2, 4, 1, 3, 5]


def test_sort_rejects_unknown_direction() -> None:
    with pytest.raises(ValidationError):
        sort_by(ROWS, "score", "sideways")


def test_pages_tile_the_input() -> None:
    rows = list(range(23))
    pages = [paginate(rows, page, 5) for page in range(1, 6)]
    assert [item for page in pages for item in page] == rows
    assert paginate(rows, 6, 5) == []


def test_paginate_rejects_non_positive_inputs() -> None:
    with pytest.raises(ValidationError):
        paginate([1, 2, 3], 0, 10)
    with pytest.raises(ValidationError):
        paginate([1, 2, 3], 1, 0)


def test_parse_sort_validates_fields() -> None:
    default = [SortField("updated_at", "desc")]
    assert parse_sort(sort=None, allowed={"name"}, default=default) == default
    assert parse_sort(sort="-name,name", allowed={"name"}, default=default) == [SortField("name", "desc")]
    with pytest.raises(ValidationError):
        parse_sort(sort="password", allowed={"name"}, default=default)


def test_apply_list_query_totals_track_filtered_set() -> None:
    page = apply_list_query(
        ROWS,
        ListQuery(
            filters={"status": "Active"},
            search="bank",
            search_fields=("name",),
            sort=[SortField("score", "asc")],
            page=1,
            page_size=2,
        ),
    )
    assert page.total == 3
    assert page.total_pages == 2
    assert [row["name"] for row in page.items] == ["Nedbank", "ZB Bank"]
    assert page.to_dict()["pageSize"] == 2
