from __future__ import annotations

import asyncio

import pytest

from vip_access.errors import NoPendingPayment, TransientFailure
from vip_access.services.retry import RetryPolicy, call_with_retry


@pytest.mark.asyncio
async def test_retry_recovers_from_transient_errors():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert await call_with_retry(flaky, name="flaky", attempts=3, base_delay=0) == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_budget_exhausted_raises_transient_failure():
    async def down():
        raise ConnectionError("down")

    with pytest.raises(TransientFailure) as exc_info:
        await RetryPolicy(attempts=2, base_delay=0).run(down, name="down")

    assert exc_info.value.detail["operation"] == "down"
    assert isinstance(exc_info.value.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_domain_errors_are_not_retried():
    calls = []

    async def rejected():
        calls.append(1)
        raise NoPendingPayment("nothing to pay")

    with pytest.raises(NoPendingPayment):
        await call_with_retry(rejected, name="rejected", attempts=3, base_delay=0)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_each_attempt_is_time_boxed():
    async def hang():
        await asyncio.sleep(5)

    with pytest.raises(TransientFailure):
        await call_with_retry(hang, name="hang", attempts=2, base_delay=0, timeout=0.01)
