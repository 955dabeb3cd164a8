from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from conftest import make_settings
from vip_access.config import VerificationMode
from vip_access.container import build_strategy
from vip_access.models.plan import Currency, Plan
from vip_access.services.plan_catalog import PlanCatalog
from vip_access.services.verification_service import (
    DelayedTrustStrategy,
    ManualReviewStrategy,
    OnChainStrategy,
)

PLANS = [
    Plan(id="1month", label="1 Month", months=1, prices={Currency.USDT: 24, Currency.TON: 5}),
    Plan(id="3months", label="3 Months", months=3, prices={Currency.USDT: 55, Currency.TON: 12}),
]


def test_catalog_drops_currencies_without_wallet():
    catalog = PlanCatalog(PLANS, {Currency.USDT: "TUsdtWallet", Currency.TON: ""})

    assert catalog.currencies() == [Currency.USDT]
    assert catalog.price_of("1month", Currency.USDT) == 24
    assert catalog.price_of("1month", Currency.TON) is None
    assert catalog.get_plan("3months").prices == {Currency.USDT: 55}
    assert catalog.wallet_for(Currency.TON) is None


def test_catalog_unknown_plan():
    catalog = PlanCatalog(PLANS, {Currency.USDT: "TUsdtWallet"})
    assert catalog.get_plan("lifetime") is None
    assert catalog.price_of("lifetime", Currency.USDT) is None
    assert [p.id for p in catalog.list_plans()] == ["1month", "3months"]


def test_plan_requires_positive_duration():
    with pytest.raises(ValidationError):
        Plan(id="broken", label="Broken", months=0)


def test_settings_default_plans(tmp_path):
    settings = make_settings(tmp_path, wallet_btc="")

    assert set(settings.wallets) == {Currency.USDT, Currency.TON}
    catalog = settings.to_catalog()
    assert catalog.price_of("1month", Currency.TON) == 5
    assert catalog.price_of("3months", Currency.USDT) == 55
    assert catalog.price_of("1month", Currency.BTC) is None


def test_settings_plans_from_json(tmp_path):
    plans_json = json.dumps({"6months": {"label": "6 Months", "months": 6, "prices": {"USDT": 99}}})
    settings = make_settings(tmp_path, plans_json=plans_json)

    catalog = settings.to_catalog()
    assert [p.id for p in catalog.list_plans()] == ["6months"]
    assert catalog.get_plan("6months").months == 6


def test_settings_reject_zero_retry_attempts(tmp_path):
    with pytest.raises(ValidationError):
        make_settings(tmp_path, retry_attempts=0)


@pytest.mark.parametrize(
    "mode, expected",
    [
        (VerificationMode.DELAYED_TRUST, DelayedTrustStrategy),
        (VerificationMode.ON_CHAIN, OnChainStrategy),
        (VerificationMode.MANUAL_REVIEW, ManualReviewStrategy),
    ],
)
def test_strategy_follows_verification_mode(tmp_path, mode, expected):
    strategy = build_strategy(make_settings(tmp_path, verification_mode=mode))
    assert isinstance(strategy, expected)
