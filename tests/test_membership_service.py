from __future__ import annotations

import asyncio

import pytest

from conftest import CHANNEL_ID
from vip_access.errors import ChannelOperationFailed
from vip_access.models.ledger import LedgerEventType
from vip_access.services.membership_service import (
    AdmissionOutcome,
    MembershipService,
    RevocationOutcome,
)


class SlowGateway:
    async def admit_member(self, channel_id, user_id):
        await asyncio.sleep(5)

    async def ban_member(self, channel_id, user_id):
        await asyncio.sleep(5)

    async def unban_member(self, channel_id, user_id):
        return None


@pytest.mark.asyncio
async def test_admit_issues_invite_and_mirrors_flag(services, gateway):
    await services.db.upsert_user(1, {})

    result = await services.membership.admit(1)

    assert result.outcome == AdmissionOutcome.ADMITTED
    assert result.invite_link == "https://t.me/+invite1"
    assert (await services.db.get_user(1)).in_channel is True
    channel_entries = [e for e in services.db.ledger_entries if e.event_type == LedgerEventType.CHANNEL]
    assert channel_entries[-1].details["outcome"] == "admitted"


@pytest.mark.asyncio
async def test_admit_is_attempted_even_when_flag_says_member(services, gateway):
    await services.db.upsert_user(1, {"in_channel": True})

    result = await services.membership.admit(1)

    assert ("admit", 1) in gateway.calls
    assert result.outcome == AdmissionOutcome.ADMITTED


@pytest.mark.asyncio
async def test_admit_failure_is_returned_not_raised(services, gateway):
    await services.db.upsert_user(1, {})
    gateway.fail_admit = True

    result = await services.membership.admit(1)

    assert result.ok is False
    assert "CHAT_ADMIN_REQUIRED" in result.reason
    assert (await services.db.get_user(1)).in_channel is False


@pytest.mark.asyncio
async def test_require_admission_raises_on_failure(services, gateway):
    gateway.fail_admit = True
    with pytest.raises(ChannelOperationFailed):
        await services.membership.require_admission(1)


@pytest.mark.asyncio
async def test_revoke_bans_then_unbans(services, gateway):
    await services.db.upsert_user(1, {"in_channel": True})
    gateway.members.add(1)

    result = await services.membership.revoke(1)

    assert result.outcome == RevocationOutcome.REVOKED
    assert gateway.calls == [("ban", 1), ("unban", 1)]
    assert 1 not in gateway.members
    assert (await services.db.get_user(1)).in_channel is False


@pytest.mark.asyncio
async def test_revoke_failure_leaves_flag(services, gateway):
    await services.db.upsert_user(1, {"in_channel": True})
    gateway.fail_revoke = True

    result = await services.membership.revoke(1)

    assert result.outcome == RevocationOutcome.FAILED
    assert (await services.db.get_user(1)).in_channel is True


@pytest.mark.asyncio
async def test_channel_calls_are_time_boxed(services):
    membership = MembershipService(
        db=services.db,
        ledger=services.ledger,
        gateway=SlowGateway(),
        channel_id=CHANNEL_ID,
        timeout=0.01,
    )

    admitted = await membership.admit(1)
    revoked = await membership.revoke(1)

    assert admitted.outcome == AdmissionOutcome.FAILED
    assert admitted.reason == "timeout"
    assert revoked.outcome == RevocationOutcome.FAILED
