from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class RequestSample:
    ts: float
    path: str
    method: str
    status_code: int
    latency_ms: float


_request_samples: Deque[RequestSample] = deque(maxlen=20000)
_counters: dict[str, int] = defaultdict(int)
_gauges: dict[str, float] = {}


def record_request(*, path: str, method: str, status_code: int, latency_ms: float) -> None:
    # Track request latency and status for availability reporting.
    _request_samples.append(
        RequestSample(
            ts=time.time(),
            path=path,
            method=method,
            status_code=status_code,
            latency_ms=latency_ms,
        )
    )


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def set_gauge(name: str, value: float) -> None:
    _gauges[name] = value


def counters_snapshot() -> dict[str, int]:
    return dict(_counters)


def gauges_snapshot() -> dict[str, float]:
    return dict(_gauges)


def reset_metrics() -> None:
    # Test helper; production processes never reset counters.
    _request_samples.clear()
    _counters.clear()
    _gauges.clear()


def _window_samples(window_s: int) -> list[RequestSample]:
    cutoff = time.time() - window_s
    return [sample for sample in _request_samples if sample.ts >= cutoff]


def availability(window_s: int) -> float | None:
    # Calculate availability as % of non-5xx requests over the window.
    samples = _window_samples(window_s)
    if not samples:
        return None
    total = len(samples)
    failures = sum(1 for sample in samples if sample.status_code >= 500)
    return ((total - failures) / total) * 100.0


def p95_latency(window_s: int) -> float | None:
    samples = sorted(sample.latency_ms for sample in _window_samples(window_s))
    if not samples:
        return None
    index = max(0, math.ceil(0.95 * len(samples)) - 1)
    return samples[index]


def audit_drop_rate() -> float | None:
    # Share of enqueue attempts that never reached the store.
    attempted = _counters.get("audit_enqueued_total", 0) + _counters.get("audit_rejected_total", 0)
    if attempted == 0:
        return None
    dropped = _counters.get("audit_dropped_total", 0) + _counters.get("audit_rejected_total", 0)
    return (dropped / attempted) * 100.0
