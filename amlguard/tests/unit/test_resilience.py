from __future__ import annotations

import pytest

from amlguard.core.errors import PersistenceError, ValidationError
from amlguard.services.resilience import RetryPolicy, retry_async
from amlguard.services.telemetry import (
    availability,
    counters_snapshot,
    p95_latency,
    record_request,
)


@pytest.mark.asyncio
async def test_retry_async_retries_transient() -> None:
    calls = {"count": 0}

    async def flaky() -> str:
        calls["count"] += 1
        if calls["count"] < 2:
            raise PersistenceError("Database operation failed")
        return "ok"

    result = await retry_async(flaky, policy=RetryPolicy(timeout_ms=100, max_attempts=2, backoff_ms=1))
    assert result == "ok"
    assert calls["count"] == 2
    assert counters_snapshot()["retries_total"] == 1


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_domain_errors() -> None:
    calls = {"count": 0}

    async def invalid() -> None:
        calls["count"] += 1
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        await retry_async(invalid, policy=RetryPolicy(timeout_ms=100, max_attempts=3, backoff_ms=1))
    assert calls["count"] == 1


def test_availability_and_latency_over_window() -> None:
    assert availability(60) is None
    for latency in range(1, 20):
        record_request(path="/api/health", method="GET", status_code=200, latency_ms=float(latency))
    record_request(path="/api/institutions", method="GET", status_code=500, latency_ms=100.0)
    assert availability(60) == pytest.approx(95.0)
    assert p95_latency(60) == 19.0
