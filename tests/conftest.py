from __future__ import annotations

from typing import List, Optional, Set, Tuple

import pytest

from vip_access.channel.base import ChannelGateway, ChannelGatewayError
from vip_access.config import Settings
from vip_access.container import Services, build_services
from vip_access.db.memory import InMemoryDBManager
from vip_access.notifications.base import InMemoryNotifier
from vip_access.services.verification_service import DelayedTrustStrategy, VerificationStrategy
from vip_access.verifiers.base import OnChainVerifier

CHANNEL_ID = -1001234567890
OPERATOR_CHAT_ID = 999
HASH_A = "a" * 64
HASH_B = "b" * 64


class FakeChannelGateway(ChannelGateway):
    def __init__(self) -> None:
        self.members: Set[int] = set()
        self.calls: List[Tuple[str, int]] = []
        self.fail_admit = False
        self.fail_revoke = False

    async def admit_member(self, channel_id: int, user_id: int) -> Optional[str]:
        self.calls.append(("admit", user_id))
        if self.fail_admit:
            raise ChannelGatewayError("CHAT_ADMIN_REQUIRED")
        if user_id in self.members:
            raise ChannelGatewayError("USER_ALREADY_PARTICIPANT", already_participant=True)
        self.members.add(user_id)
        return f"https://t.me/+invite{user_id}"

    async def ban_member(self, channel_id: int, user_id: int) -> None:
        self.calls.append(("ban", user_id))
        if self.fail_revoke:
            raise ChannelGatewayError("CHAT_ADMIN_REQUIRED")
        self.members.discard(user_id)

    async def unban_member(self, channel_id: int, user_id: int) -> None:
        self.calls.append(("unban", user_id))


class FakeVerifier(OnChainVerifier):
    def __init__(self, result=True) -> None:
        self.result = result
        self.calls: List[Tuple[str, float, str]] = []
        self.closed = False

    async def confirm(self, tx_hash: str, expected_amount: float, expected_destination: str) -> bool:
        self.calls.append((tx_hash, expected_amount, expected_destination))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result

    async def aclose(self) -> None:
        self.closed = True


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        bot_token="123456:TEST",
        vip_channel_id=CHANNEL_ID,
        admin_chat_id=OPERATOR_CHAT_ID,
        support_handle="@vip_support",
        wallet_usdt="TUsdtWallet",
        wallet_ton="EQTonWallet",
        wallet_btc="bc1qbtcwallet",
        ledger_file=str(tmp_path / "ledger.jsonl"),
        retry_attempts=3,
        retry_base_delay=0.0,
        collaborator_timeout=1.0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def gateway() -> FakeChannelGateway:
    return FakeChannelGateway()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def build(settings, notifier, gateway):
    """Factory for a full service graph on the in-memory store."""

    def _build(
        strategy: Optional[VerificationStrategy] = None,
        db: Optional[InMemoryDBManager] = None,
        **overrides,
    ) -> Services:
        cfg = settings.model_copy(update=overrides) if overrides else settings
        return build_services(
            cfg,
            notifier=notifier,
            gateway=gateway,
            db=db or InMemoryDBManager(),
            strategy=strategy or DelayedTrustStrategy(delay=0),
        )

    return _build


@pytest.fixture
def services(build) -> Services:
    return build()
