"""
User-facing texts. Every builder returns a Notice so services and bot
handlers render the same wording.
"""
from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Iterable, Optional

from ..models.payment import PaymentAttempt
from ..models.plan import Currency, Plan
from ..models.subscription import SubscriptionStatus
from .base import Button, Notice

CB_SUBSCRIBE = "subscribe:"  # subscribe:{plan_id}
CB_PAY = "pay:"  # pay:{plan_id}:{currency}
CB_MY_SUBSCRIPTION = "my_subscription"
CB_HOW_TO_PAY = "how_to_pay"
CB_BACK_TO_PLANS = "back_to_plans"
CB_REJOIN = "rejoin_channel"

NETWORKS = {
    Currency.USDT: "TRON (TRC20)",
    Currency.TON: "TON",
    Currency.BTC: "Bitcoin",
}

_BACK_ROW = [Button(text="🔙 Back to Plans", callback_data=CB_BACK_TO_PLANS)]
_RENEW_ROW = [Button(text="🔄 Renew Subscription", callback_data=CB_BACK_TO_PLANS)]


def _fmt_amount(amount: float) -> str:
    return f"{amount:.9f}".rstrip("0").rstrip(".")


def start_menu(first_name: Optional[str], plans: Iterable[Plan]) -> Notice:
    rows = []
    for plan in plans:
        if not plan.prices:
            continue
        prices = ", ".join(f"{_fmt_amount(p)} {c.value}" for c, p in plan.prices.items())
        rows.append([Button(text=f"📅 {plan.label} - {prices}", callback_data=f"{CB_SUBSCRIBE}{plan.id}")])
    rows.append(
        [
            Button(text="ℹ️ My Subscription", callback_data=CB_MY_SUBSCRIPTION),
            Button(text="💳 How to Pay", callback_data=CB_HOW_TO_PAY),
        ]
    )
    name = escape(first_name or "there")
    return Notice(
        text=f"🚀 Welcome to VIP Access, {name}!\n\nChoose your subscription plan:",
        buttons=rows,
    )


def choose_currency(plan: Plan) -> Notice:
    rows = [
        [Button(text=f"{c.value} - {_fmt_amount(p)}", callback_data=f"{CB_PAY}{plan.id}:{c.value}")]
        for c, p in plan.prices.items()
    ]
    rows.append(_BACK_ROW)
    return Notice(text=f"💳 <b>{escape(plan.label)}</b>\n\nChoose a currency:", buttons=rows)


def payment_instructions(attempt: PaymentAttempt, wallet: str, payment_uri: str, qr_png: Optional[bytes] = None) -> Notice:
    amount = _fmt_amount(attempt.amount)
    network = NETWORKS[attempt.currency]
    lines = [
        f"💳 <b>Payment Instructions for {escape(attempt.plan.upper())}</b>",
        "",
        f"📍 Send exactly <b>{amount} {attempt.currency.value}</b> ({network}) to:",
        f"<code>{escape(wallet)}</code>",
        "",
        "⚠️ <b>Important:</b>",
        f"• Send only {attempt.currency.value} on the <b>{network}</b> network",
        f"• Send exact amount: <b>{amount} {attempt.currency.value}</b>",
        "• After payment, send the transaction hash to this bot",
        "",
        f"Wallet link: <code>{escape(payment_uri)}</code>",
        f"Payment ID: <code>{attempt.payment_id}</code>",
    ]
    return Notice(text="\n".join(lines), buttons=[_BACK_ROW], photo=qr_png)


def how_to_pay(currencies: Iterable[Currency]) -> Notice:
    networks = ", ".join(f"{c.value} ({NETWORKS[c]})" for c in currencies) or "none configured"
    text = (
        "💡 <b>How to Pay</b>\n\n"
        "1. Choose a plan and a currency\n"
        "2. Open your crypto wallet and pick the matching network\n"
        "3. Send the exact amount shown to the address shown\n"
        "4. Copy the <b>Transaction Hash (TXID)</b> after sending\n"
        "5. Send the transaction hash to this bot\n\n"
        f"Accepted: {networks}"
    )
    return Notice(
        text=text,
        buttons=[[Button(text="🎫 View Subscription Plans", callback_data=CB_BACK_TO_PLANS)]],
    )


def subscription_status(status: SubscriptionStatus) -> Notice:
    if not status.active:
        return Notice(
            text="📊 <b>Your Subscription Status</b>\n\n❌ No active subscription\nChoose a plan to get VIP access!",
            buttons=[[Button(text="🎫 View Plans", callback_data=CB_BACK_TO_PLANS)]],
        )
    expires = status.expires_at.strftime("%Y-%m-%d") if status.expires_at else "-"
    access = "Active" if status.in_channel else "Pending"
    rows = [_RENEW_ROW]
    if not status.in_channel:
        rows.insert(0, [Button(text="🔓 Get Channel Access", callback_data=CB_REJOIN)])
    return Notice(
        text=(
            "📊 <b>Your Subscription Status</b>\n\n"
            f"✅ Plan: <b>{escape(status.plan.upper())}</b>\n"
            f"⏰ Expires in: <b>{status.days_remaining} days</b>\n"
            f"📅 Renewal: <b>{expires}</b>\n"
            f"🎯 VIP Access: <b>{access}</b>"
        ),
        buttons=rows,
    )


def transaction_received(tx_hash: str) -> Notice:
    return Notice(
        text=f"⏳ Transaction received! Verifying hash: <code>{tx_hash[:12]}</code>...\n\nThis may take a few minutes."
    )


def payment_verified(plan: str, expires_at: Optional[datetime], invite_link: Optional[str], admitted: bool, support: str) -> Notice:
    until = f"\n📅 Valid until: <b>{expires_at:%Y-%m-%d}</b>" if expires_at else ""
    head = f"✅ <b>Payment Verified!</b>\n\nYour {escape(plan)} VIP subscription has been activated!{until}\n\n"
    if not admitted:
        return Notice(
            text=head + f"⚠️ Could not automatically add you to the VIP channel. Please contact {escape(support)}."
        )
    if invite_link:
        return Notice(
            text=head + "🎉 Use the button below to join the private VIP channel.",
            buttons=[[Button(text="🔓 Join VIP Channel", url=invite_link)]],
        )
    return Notice(text=head + "🎉 You now have access to the private VIP channel.")


def awaiting_review() -> Notice:
    return Notice(
        text="🕵️ Transaction received and queued for manual review.\n\nYou will be notified once it is confirmed."
    )


def review_request(user_id: int, handle: Optional[str], attempt: PaymentAttempt, tx_hash: str) -> Notice:
    who = f"@{escape(handle)}" if handle else "no username"
    return Notice(
        text=(
            "🧾 <b>Payment awaiting manual check</b>\n\n"
            f"User: <code>{user_id}</code> ({who})\n"
            f"Plan: <b>{escape(attempt.plan)}</b>\n"
            f"Amount: <b>{_fmt_amount(attempt.amount)} {attempt.currency.value}</b>\n"
            f"Payment ID: <code>{attempt.payment_id}</code>\n"
            f"Hash: <code>{tx_hash}</code>"
        )
    )


def subscription_expired() -> Notice:
    return Notice(
        text=(
            "❌ Your VIP subscription has expired.\n\n"
            "To continue receiving premium signals, please renew your subscription."
        ),
        buttons=[_RENEW_ROW],
    )


def no_pending_payment() -> Notice:
    return Notice(
        text="ℹ️ No pending payment found. Please choose a plan first.",
        buttons=[[Button(text="🎫 View Plans", callback_data=CB_BACK_TO_PLANS)]],
    )


def duplicate_transaction() -> Notice:
    return Notice(text="⚠️ This transaction hash has already been used. Please check it and try again.")


def verification_failed() -> Notice:
    return Notice(
        text="❌ We could not confirm this transaction. Check the hash, amount and address, then send the correct hash."
    )


def currency_unavailable() -> Notice:
    return Notice(text="⚠️ This currency is not available right now.", buttons=[_BACK_ROW])


def unknown_plan() -> Notice:
    return Notice(text="⚠️ This plan does not exist.", buttons=[_BACK_ROW])


def contact_support(support: str) -> Notice:
    return Notice(text=f"❌ Error activating subscription. Please contact {escape(support)}.")


def try_again_later() -> Notice:
    return Notice(text="❌ An error occurred. Please try again later.")


def temporarily_unavailable(support: str) -> Notice:
    return Notice(
        text=f"⏳ The service is temporarily unavailable. Please try again later or contact {escape(support)}."
    )


def channel_invite(invite_link: Optional[str]) -> Notice:
    if invite_link:
        return Notice(
            text="🔓 Use the button below to join the private VIP channel.",
            buttons=[[Button(text="🔓 Join VIP Channel", url=invite_link)]],
        )
    return Notice(text="🎯 You already have access to the VIP channel.")


def channel_failed(support: str) -> Notice:
    return Notice(
        text=f"⚠️ Could not automatically add you to the VIP channel. Please contact {escape(support)}."
    )
