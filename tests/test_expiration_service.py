from __future__ import annotations

from datetime import datetime

import pytest

from vip_access.db.memory import InMemoryDBManager
from vip_access.models.user import NO_SUBSCRIPTION

NOW = datetime(2024, 6, 1, 12, 0)


async def _seed(services, gateway):
    await services.db.upsert_user(
        1, {"subscription": "1month", "expires_at": datetime(2024, 5, 31), "in_channel": True}
    )
    await services.db.upsert_user(
        2, {"subscription": "3months", "expires_at": datetime(2024, 8, 1), "in_channel": True}
    )
    await services.db.upsert_user(3, {"subscription": NO_SUBSCRIPTION, "expires_at": datetime(2024, 1, 1)})
    gateway.members.update({1, 2})


@pytest.mark.asyncio
async def test_sweep_expires_and_removes_lapsed_users(services, gateway, notifier):
    await _seed(services, gateway)

    assert await services.expiration.sweep(NOW) == 1

    lapsed = await services.db.get_user(1)
    assert lapsed.subscription == NO_SUBSCRIPTION
    assert lapsed.expires_at == datetime(2024, 5, 31)
    assert lapsed.in_channel is False
    assert gateway.calls == [("ban", 1), ("unban", 1)]
    assert gateway.members == {2}
    assert "expired" in notifier.texts_for(1)[-1]

    assert (await services.db.get_user(2)).subscription == "3months"
    assert notifier.texts_for(2) == []
    assert notifier.texts_for(3) == []


@pytest.mark.asyncio
async def test_second_sweep_is_noop(services, gateway, notifier):
    await _seed(services, gateway)

    await services.expiration.sweep(NOW)
    gateway.calls.clear()

    assert await services.expiration.sweep(NOW) == 0
    assert gateway.calls == []
    assert len(notifier.texts_for(1)) == 1


@pytest.mark.asyncio
async def test_sweep_expires_even_when_channel_removal_fails(services, gateway):
    await _seed(services, gateway)
    gateway.fail_revoke = True

    assert await services.expiration.sweep(NOW) == 1

    lapsed = await services.db.get_user(1)
    assert lapsed.subscription == NO_SUBSCRIPTION
    assert lapsed.in_channel is True


class RenewDuringSweepStore(InMemoryDBManager):
    """Returns the lapsed snapshot, then the user renews before it is processed."""

    async def find_expired_active(self, now):
        lapsed = await super().find_expired_active(now)
        for user in lapsed:
            await self.upsert_user(user.user_id, {"expires_at": datetime(2024, 7, 1)})
        return lapsed


@pytest.mark.asyncio
async def test_user_renewed_after_query_keeps_access(build, gateway, notifier):
    services = build(db=RenewDuringSweepStore())
    await _seed(services, gateway)

    assert await services.expiration.sweep(NOW) == 0

    renewed = await services.db.get_user(1)
    assert renewed.subscription == "1month"
    assert renewed.in_channel is True
    assert gateway.calls == []
    assert gateway.members == {1, 2}
    assert notifier.texts_for(1) == []
