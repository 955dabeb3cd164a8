from __future__ import annotations

import io
import secrets
from decimal import Decimal
from typing import Optional

import qrcode

from ..db.base import BaseDBManager
from ..errors import CurrencyUnavailable, UnknownPlan
from ..logging.ledger_logger import LedgerLogger
from ..models.payment import PaymentAttempt
from ..models.plan import Currency
from .plan_catalog import PlanCatalog
from .retry import RetryPolicy

NANOTONS_PER_TON = Decimal(10**9)


def _decimal_str(amount: float) -> str:
    return format(Decimal(str(amount)).normalize(), "f")


def build_payment_uri(currency: Currency, address: str, amount: float, payment_id: str) -> str:
    """
    Wallet deep link for a payment. TON carries the amount as integer
    nanotons and the payment id as comment; the others take a decimal amount.
    """
    if currency == Currency.TON:
        nanotons = int(Decimal(str(amount)) * NANOTONS_PER_TON)
        return f"ton://transfer/{address}?amount={nanotons}&text={payment_id}"
    if currency == Currency.USDT:
        return f"tron:{address}?amount={_decimal_str(amount)}&token=USDT"
    if currency == Currency.BTC:
        return f"bitcoin:{address}?amount={_decimal_str(amount)}"
    raise CurrencyUnavailable(f"no payment URI scheme for {currency}")


def render_qr_png(data: str) -> bytes:
    image = qrcode.make(data)
    buf = io.BytesIO()
    image.save(buf)
    return buf.getvalue()


class PaymentService:
    """
    Opens and tracks each user's single pending payment and resolves the
    wallet a currency is paid to. Sole writer of `pending_payment`
    (apart from the ledger clearing it on a recorded transaction).
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: LedgerLogger,
        catalog: PlanCatalog,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._catalog = catalog
        self._retry = retry or RetryPolicy()

    @property
    def catalog(self) -> PlanCatalog:
        return self._catalog

    def wallet_for(self, currency: Currency) -> Optional[str]:
        return self._catalog.wallet_for(currency)

    async def open_payment(
        self, user_id: int, plan_id: str, currency: Currency
    ) -> PaymentAttempt:
        if self._catalog.get_plan(plan_id) is None:
            raise UnknownPlan(f"unknown plan {plan_id!r}", detail={"plan": plan_id})
        amount = self._catalog.price_of(plan_id, currency)
        if amount is None:
            raise CurrencyUnavailable(
                f"{currency.value} is not configured",
                detail={"plan": plan_id, "currency": currency.value},
            )

        attempt = PaymentAttempt(
            plan=plan_id,
            currency=currency,
            amount=amount,
            payment_id=secrets.token_hex(12),
        )
        await self._retry.run(
            lambda: self._db.set_pending_payment(user_id, attempt),
            name="set_pending_payment",
        )

        await self._ledger.log_payment(
            user_id=user_id,
            message="Pending payment opened",
            details={"plan": plan_id, "currency": currency.value, "amount": amount},
            correlation_id=attempt.payment_id,
        )
        return attempt

    async def get_pending_payment(self, user_id: int) -> Optional[PaymentAttempt]:
        user = await self._retry.run(lambda: self._db.get_user(user_id), name="get_user")
        return user.pending_payment if user else None

    def payment_uri(self, attempt: PaymentAttempt) -> str:
        wallet = self.wallet_for(attempt.currency)
        if wallet is None:
            raise CurrencyUnavailable(f"{attempt.currency.value} is not configured")
        return build_payment_uri(attempt.currency, wallet, attempt.amount, attempt.payment_id)

    def payment_qr(self, attempt: PaymentAttempt) -> bytes:
        return render_qr_png(self.payment_uri(attempt))
