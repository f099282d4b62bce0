from __future__ import annotations

import pytest

from amlguard.services.state import StateContainer


class Holder(StateContainer[int]):
    name = "numbers"


@pytest.mark.asyncio
async def test_load_replaces_items_and_notifies() -> None:
    events: list[tuple[str, object]] = []

    async def _loader() -> list[int]:
        return [1, 2, 3]

    holder = Holder(_loader)
    holder.subscribe(lambda event, payload: events.append((event, payload)))
    assert await holder.load() is True
    assert holder.items == [1, 2, 3]
    assert holder.loaded is True
    assert events == [("loading", None), ("loaded", 3)]


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_items() -> None:
    calls = {"count": 0}

    async def _loader() -> list[int]:
        calls["count"] += 1
        if calls["count"] > 1:
            raise OSError("network down")
        return [7]

    holder = Holder(_loader)
    assert await holder.load() is True
    assert await holder.load() is False
    assert holder.items == [7]
    assert "network down" in holder.error
    assert holder.loading is False


@pytest.mark.asyncio
async def test_ensure_loaded_loads_once() -> None:
    calls = {"count": 0}

    async def _loader() -> list[int]:
        calls["count"] += 1
        return [calls["count"]]

    holder = Holder(_loader)
    assert await holder.ensure_loaded() is True
    assert await holder.ensure_loaded() is True
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others() -> None:
    seen: list[str] = []

    def _broken(event: str, payload: object) -> None:
        raise RuntimeError("boom")

    async def _loader() -> list[int]:
        return []

    holder = Holder(_loader)
    holder.subscribe(_broken)
    unsubscribe = holder.subscribe(lambda event, payload: seen.append(event))
    await holder.load()
    assert seen == ["loading", "loaded"]
    unsubscribe()
    await holder.load()
    assert seen == ["loading", "loaded"]


@pytest.mark.asyncio
async def test_load_without_source_fails() -> None:
    holder = Holder()
    assert await holder.load() is False
    assert holder.error == "No data source configured"
