"""
Telegram bot handlers (aiogram 3.x).

Handlers only translate chat events into service calls and render the
result; every state change lives in the services.
"""
from __future__ import annotations

import logging
from typing import Optional

from aiogram import Bot, Dispatcher, F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import CommandStart
from aiogram.types import CallbackQuery, ErrorEvent, Message

from ..container import Services
from ..errors import CurrencyUnavailable, UnknownPlan, VipAccessError
from ..models.plan import Currency
from ..notifications import messages
from ..services.verification_service import SubmissionState, rejection_notice

logger = logging.getLogger(__name__)

router = Router(name="vip_access")


async def render_start_menu(services: Services, chat_id: int, first_name: Optional[str]) -> None:
    await services.notifier.send(
        chat_id, messages.start_menu(first_name, services.catalog.list_plans())
    )


async def _report_failure(services: Services, chat_id: int, exc: Exception) -> None:
    if isinstance(exc, VipAccessError):
        logger.info(
            "request_rejected",
            extra={"user_id": chat_id, "error": f"{type(exc).__name__}: {exc}"},
        )
        notice = rejection_notice(exc, services.settings.support_handle)
    else:
        logger.exception("handler_failed", extra={"user_id": chat_id})
        notice = messages.try_again_later()
    await services.notifier.send(chat_id, notice)


async def _try_delete(message: Optional[Message]) -> None:
    if not isinstance(message, Message):
        return
    try:
        await message.delete()
    except TelegramAPIError:
        pass


@router.message(CommandStart())
async def cmd_start(message: Message, services: Services) -> None:
    user = message.from_user
    if user is None:
        return
    try:
        await services.db.upsert_user(
            user.id, {"display_name": user.first_name, "handle": user.username}
        )
        await render_start_menu(services, message.chat.id, user.first_name)
    except Exception as exc:
        await _report_failure(services, message.chat.id, exc)


@router.callback_query(F.data == messages.CB_BACK_TO_PLANS)
async def back_to_plans(callback: CallbackQuery, services: Services) -> None:
    await callback.answer()
    await _try_delete(callback.message)
    try:
        await render_start_menu(services, callback.from_user.id, callback.from_user.first_name)
    except Exception as exc:
        await _report_failure(services, callback.from_user.id, exc)


@router.callback_query(F.data.startswith(messages.CB_SUBSCRIBE))
async def choose_plan(callback: CallbackQuery, services: Services) -> None:
    await callback.answer()
    chat_id = callback.from_user.id
    plan_id = (callback.data or "")[len(messages.CB_SUBSCRIBE):]
    try:
        plan = services.catalog.get_plan(plan_id)
        if plan is None:
            raise UnknownPlan(f"unknown plan {plan_id!r}", detail={"plan": plan_id})
        if not plan.prices:
            raise CurrencyUnavailable("no currency configured", detail={"plan": plan_id})
        await services.notifier.edit_last(chat_id, messages.choose_currency(plan))
    except Exception as exc:
        await _report_failure(services, chat_id, exc)


@router.callback_query(F.data.startswith(messages.CB_PAY))
async def choose_currency(callback: CallbackQuery, services: Services) -> None:
    await callback.answer()
    chat_id = callback.from_user.id
    plan_id, _, code = (callback.data or "")[len(messages.CB_PAY):].rpartition(":")
    try:
        try:
            currency = Currency(code)
        except ValueError as exc:
            raise CurrencyUnavailable(f"unsupported currency {code!r}") from exc

        attempt = await services.payments.open_payment(chat_id, plan_id, currency)
        uri = services.payments.payment_uri(attempt)
        await services.notifier.send(
            chat_id,
            messages.payment_instructions(
                attempt,
                services.payments.wallet_for(currency) or "",
                uri,
                services.payments.payment_qr(attempt),
            ),
        )
    except Exception as exc:
        await _report_failure(services, chat_id, exc)


@router.callback_query(F.data == messages.CB_MY_SUBSCRIPTION)
async def my_subscription(callback: CallbackQuery, services: Services) -> None:
    await callback.answer()
    chat_id = callback.from_user.id
    try:
        status = await services.subscriptions.get_status(chat_id)
        await services.notifier.send(chat_id, messages.subscription_status(status))
    except Exception as exc:
        await _report_failure(services, chat_id, exc)


@router.callback_query(F.data == messages.CB_HOW_TO_PAY)
async def how_to_pay(callback: CallbackQuery, services: Services) -> None:
    await callback.answer()
    await services.notifier.send(
        callback.from_user.id, messages.how_to_pay(services.catalog.currencies())
    )


@router.callback_query(F.data == messages.CB_REJOIN)
async def rejoin_channel(callback: CallbackQuery, services: Services) -> None:
    await callback.answer()
    chat_id = callback.from_user.id
    try:
        status = await services.subscriptions.get_status(chat_id)
        if not status.active:
            await services.notifier.send(chat_id, messages.subscription_status(status))
            return
        result = await services.membership.require_admission(chat_id)
        await services.notifier.send(chat_id, messages.channel_invite(result.invite_link))
    except Exception as exc:
        await _report_failure(services, chat_id, exc)


@router.message(F.text)
async def submit_transaction(message: Message, services: Services) -> None:
    if message.from_user is None:
        return
    chat_id = message.chat.id
    try:
        receipt = await services.verification.submit(message.from_user.id, message.text)
    except Exception as exc:
        await _report_failure(services, chat_id, exc)
        return

    if receipt is None:
        return
    if receipt.state == SubmissionState.SCHEDULED:
        await services.notifier.send(chat_id, messages.transaction_received(receipt.tx_hash))
    elif receipt.state == SubmissionState.AWAITING_REVIEW:
        await services.notifier.send(chat_id, messages.awaiting_review())


async def on_error(event: ErrorEvent) -> None:
    """Global error handler."""
    logger.exception("Error in handler", extra={"error": str(event.exception)})


def create_dispatcher(services: Services) -> Dispatcher:
    dp = Dispatcher(services=services)
    dp.errors.register(on_error)
    dp.include_router(router)
    return dp


async def start_polling(bot: Bot, dp: Dispatcher) -> None:
    await bot.delete_webhook(drop_pending_updates=True)
    logger.info("Bot started")
    await dp.start_polling(
        bot,
        allowed_updates=["message", "callback_query"],
        handle_signals=False,
    )
