from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError

from amlguard.core.config import get_settings
from amlguard.core.errors import PersistenceError
from amlguard.services.telemetry import increment_counter


TransientException = (TimeoutError, OSError, PersistenceError, SQLAlchemyError)


def _default_retryable(exc: Exception) -> bool:
    # Retry store/driver and timeout failures only.
    return isinstance(exc, TransientException)


@dataclass(frozen=True)
class RetryPolicy:
    timeout_ms: int
    max_attempts: int
    backoff_ms: int


def audit_retry_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        timeout_ms=settings.audit_write_timeout_ms,
        max_attempts=settings.audit_max_attempts,
        backoff_ms=settings.audit_retry_backoff_ms,
    )


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    *,
    policy: RetryPolicy,
    retryable: Callable[[Exception], bool] | None = None,
    counter: str = "retries_total",
) -> Any:
    # Retry helper with jittered exponential backoff for transient failures only.
    retryable = retryable or _default_retryable
    attempt = 1
    while True:
        try:
            return await asyncio.wait_for(func(), timeout=policy.timeout_ms / 1000.0)
        except Exception as exc:  # noqa: BLE001 - caller handles non-transient failures
            if attempt >= max(policy.max_attempts, 1) or not retryable(exc):
                raise
            increment_counter(counter)
            jitter = random.uniform(0.5, 1.5)
            sleep_s = (policy.backoff_ms / 1000.0) * (2 ** (attempt - 1)) * jitter
            await asyncio.sleep(sleep_s)
            attempt += 1
