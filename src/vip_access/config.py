"""
Application configuration.
All settings are loaded from environment variables (or a local .env file).
"""
from __future__ import annotations

import json
from enum import Enum
from typing import Dict, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.plan import Currency, Plan
from .services.plan_catalog import PlanCatalog


class VerificationMode(str, Enum):
    DELAYED_TRUST = "delayed_trust"
    ON_CHAIN = "on_chain"
    MANUAL_REVIEW = "manual_review"


DEFAULT_PLANS = {
    "1month": {
        "label": "1 Month",
        "months": 1,
        "prices": {"USDT": 24, "TON": 5, "BTC": 0.0004},
    },
    "3months": {
        "label": "3 Months",
        "months": 3,
        "prices": {"USDT": 55, "TON": 12, "BTC": 0.0009},
    },
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Credentials have no defaults and must be set in the environment.
    Settings are frozen: nothing mutates wallets or prices at runtime.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    # ===========================================
    # TELEGRAM
    # ===========================================
    bot_token: str  # Required, no default
    vip_channel_id: int  # Required, no default
    # Operator chat for manual review. 0 = not configured.
    admin_chat_id: int = 0
    support_handle: str = "@support"

    # ===========================================
    # DATABASE (MongoDB). Empty URI = in-memory store (local dev only).
    # ===========================================
    mongo_uri: str = ""
    mongo_db: str = "vip_access"

    # ===========================================
    # WALLETS & PLANS. Empty wallet = currency not offered.
    # ===========================================
    wallet_usdt: str = ""
    wallet_ton: str = ""
    wallet_btc: str = ""
    plans_json: str = ""

    # ===========================================
    # PAYMENT VERIFICATION
    # ===========================================
    verification_mode: VerificationMode = VerificationMode.DELAYED_TRUST
    delayed_trust_seconds: float = 10.0
    amount_tolerance: float = 0.01
    toncenter_url: str = "https://toncenter.com/api/v3"
    toncenter_api_key: str = ""

    # ===========================================
    # RETRIES & TIMEOUTS
    # ===========================================
    retry_attempts: int = 3
    retry_base_delay: float = 0.5
    collaborator_timeout: float = 10.0

    # ===========================================
    # EXPIRY SWEEPER
    # ===========================================
    sweep_interval_seconds: float = 1800.0
    sweep_initial_delay: float = 10.0

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5
    ledger_file: str = "logs/vip_ledger.jsonl"

    # ===========================================
    # HTTP
    # ===========================================
    http_host: str = "0.0.0.0"
    http_port: int = 8000

    @field_validator("retry_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("retry_attempts must be >= 1")
        return value

    @property
    def wallets(self) -> Dict[Currency, str]:
        configured = {
            Currency.USDT: self.wallet_usdt,
            Currency.TON: self.wallet_ton,
            Currency.BTC: self.wallet_btc,
        }
        return {currency: address for currency, address in configured.items() if address}

    def plans(self) -> list[Plan]:
        raw = json.loads(self.plans_json) if self.plans_json else DEFAULT_PLANS
        return [Plan(id=plan_id, **fields) for plan_id, fields in raw.items()]

    def to_catalog(self) -> PlanCatalog:
        return PlanCatalog(plans=self.plans(), wallets=self.wallets)
