"""
Bounded retry with exponential backoff for collaborator calls (store, explorer).
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import TransientFailure, VipAccessError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    name: str,
    attempts: int = 3,
    base_delay: float = 0.5,
    timeout: float | None = 10.0,
) -> T:
    """
    Await `operation()` up to `attempts` times.

    Each attempt is bounded by `timeout`. Domain errors (VipAccessError) are
    not retried and propagate unchanged; anything else is treated as a
    transient collaborator failure. When the budget is exhausted the last
    error is wrapped in TransientFailure.
    """
    last_error: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            if timeout is None:
                return await operation()
            return await asyncio.wait_for(operation(), timeout=timeout)
        except VipAccessError:
            raise
        except Exception as exc:
            last_error = exc
            if attempt >= attempts:
                break
            delay = base_delay * (2 ** (attempt - 1)) + random.uniform(0, base_delay)
            logger.warning(
                "collaborator_retry_scheduled",
                extra={
                    "operation": name,
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "delay_seconds": round(delay, 2),
                    "error": repr(exc),
                },
            )
            await asyncio.sleep(delay)

    logger.error(
        "collaborator_unavailable",
        extra={"operation": name, "attempt": attempts, "error": repr(last_error)},
    )
    raise TransientFailure(
        f"{name} failed after {attempts} attempts",
        detail={"operation": name, "error": repr(last_error)},
    ) from last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget shared by the services; built once from Settings."""

    attempts: int = 3
    base_delay: float = 0.5
    timeout: Optional[float] = 10.0

    async def run(self, operation: Callable[[], Awaitable[T]], *, name: str) -> T:
        return await call_with_retry(
            operation,
            name=name,
            attempts=self.attempts,
            base_delay=self.base_delay,
            timeout=self.timeout,
        )
