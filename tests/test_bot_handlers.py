from __future__ import annotations

from types import SimpleNamespace

import pytest

from conftest import HASH_A
from vip_access.bot import handlers
from vip_access.models.plan import Currency
from vip_access.notifications import messages
from vip_access.services.verification_service import DelayedTrustStrategy


class FakeCallback:
    def __init__(self, user_id: int, data: str) -> None:
        self.from_user = SimpleNamespace(id=user_id, first_name="Ann", username="ann")
        self.data = data
        self.message = None
        self.answered = False

    async def answer(self, *args, **kwargs) -> None:
        self.answered = True


def _message(user_id: int, text: str):
    return SimpleNamespace(
        from_user=SimpleNamespace(id=user_id, first_name="Ann", username="ann"),
        chat=SimpleNamespace(id=user_id),
        text=text,
    )


@pytest.mark.asyncio
async def test_start_stores_profile_and_shows_plans(services, notifier):
    await handlers.cmd_start(_message(5, "/start"), services)

    user = await services.db.get_user(5)
    assert user.display_name == "Ann"
    assert user.handle == "ann"
    chat_id, notice = notifier.messages[-1]
    assert chat_id == 5
    assert "Welcome to VIP Access, Ann" in notice.text
    callbacks = [b.callback_data for row in notice.buttons for b in row]
    assert f"{messages.CB_SUBSCRIBE}1month" in callbacks


@pytest.mark.asyncio
async def test_back_to_plans_renders_menu_directly(services, notifier):
    callback = FakeCallback(5, messages.CB_BACK_TO_PLANS)
    await handlers.back_to_plans(callback, services)

    assert callback.answered
    assert "Choose your subscription plan" in notifier.texts_for(5)[-1]


@pytest.mark.asyncio
async def test_choose_plan_offers_currencies(services, notifier):
    await handlers.choose_plan(FakeCallback(5, f"{messages.CB_SUBSCRIBE}3months"), services)

    notice = notifier.edits[5]
    callbacks = [b.callback_data for row in notice.buttons for b in row]
    assert f"{messages.CB_PAY}3months:TON" in callbacks


@pytest.mark.asyncio
async def test_choose_unknown_plan_is_reported(services, notifier):
    await handlers.choose_plan(FakeCallback(5, f"{messages.CB_SUBSCRIBE}lifetime"), services)
    assert "does not exist" in notifier.texts_for(5)[-1]


@pytest.mark.asyncio
async def test_pay_opens_payment_and_sends_instructions(services, notifier):
    await handlers.choose_currency(FakeCallback(5, f"{messages.CB_PAY}1month:TON"), services)

    attempt = await services.payments.get_pending_payment(5)
    assert attempt.currency == Currency.TON
    notice = notifier.messages[-1][1]
    assert "EQTonWallet" in notice.text
    assert attempt.payment_id in notice.text
    assert notice.photo.startswith(b"\x89PNG")


@pytest.mark.asyncio
async def test_pay_with_unsupported_currency(services, notifier):
    await handlers.choose_currency(FakeCallback(5, f"{messages.CB_PAY}1month:DOGE"), services)

    assert await services.payments.get_pending_payment(5) is None
    assert "not available" in notifier.texts_for(5)[-1]


@pytest.mark.asyncio
async def test_hash_message_is_acknowledged_and_activated(build, notifier):
    strategy = DelayedTrustStrategy(delay=0)
    services = build(strategy=strategy)
    await services.payments.open_payment(5, "1month", Currency.USDT)

    await handlers.submit_transaction(_message(5, HASH_A), services)
    assert "Transaction received" in notifier.texts_for(5)[-1]

    await strategy.drain()
    assert "Payment Verified" in notifier.texts_for(5)[-1]


@pytest.mark.asyncio
async def test_chat_text_is_ignored(services, notifier):
    await handlers.submit_transaction(_message(5, "hello"), services)
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_hash_without_payment_gets_one_reply(services, notifier):
    await handlers.submit_transaction(_message(5, HASH_A), services)
    assert notifier.texts_for(5) == [messages.no_pending_payment().text]


@pytest.mark.asyncio
async def test_rejoin_requires_active_subscription(services, notifier, gateway):
    await handlers.rejoin_channel(FakeCallback(5, messages.CB_REJOIN), services)

    assert gateway.calls == []
    assert "No active subscription" in notifier.texts_for(5)[-1]


@pytest.mark.asyncio
async def test_rejoin_failure_points_to_support(services, notifier, gateway):
    attempt = await services.payments.open_payment(5, "1month", Currency.USDT)
    await services.subscriptions.activate(5, attempt, HASH_A)
    gateway.fail_admit = True

    await handlers.rejoin_channel(FakeCallback(5, messages.CB_REJOIN), services)

    assert "@vip_support" in notifier.texts_for(5)[-1]
