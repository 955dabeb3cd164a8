"""
TON transfer verification against the toncenter v3 indexer API.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .base import OnChainVerifier

logger = logging.getLogger(__name__)

NANOTONS_PER_TON = 10**9


class TonCenterVerifier(OnChainVerifier):
    """
    Looks a transaction up by hash and checks that its inbound message paid
    the expected wallet the expected amount (within `tolerance` TON).
    """

    def __init__(
        self,
        base_url: str = "https://toncenter.com/api/v3",
        api_key: str = "",
        tolerance: float = 0.01,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"X-API-Key": api_key} if api_key else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout
        )
        self._tolerance = tolerance

    async def aclose(self) -> None:
        await self._client.aclose()

    async def confirm(
        self, tx_hash: str, expected_amount: float, expected_destination: str
    ) -> bool:
        resp = await self._client.get("/transactions", params={"hash": tx_hash, "limit": 1})
        if resp.status_code >= 500:
            # Let the retry policy see explorer outages.
            resp.raise_for_status()
        if resp.status_code != 200:
            logger.info(
                "ton_lookup_rejected",
                extra={"tx_hash": tx_hash, "error": f"http {resp.status_code}"},
            )
            return False
        try:
            payload = resp.json()
        except ValueError:
            return False
        return self._matches(payload, expected_amount, expected_destination, tx_hash)

    def _matches(
        self,
        payload: dict[str, Any],
        expected_amount: float,
        expected_destination: str,
        tx_hash: str,
    ) -> bool:
        transactions = payload.get("transactions") or []
        if len(transactions) != 1:
            return False
        tx = transactions[0]
        if (tx.get("description") or {}).get("aborted"):
            return False
        in_msg = tx.get("in_msg") or {}
        destination = in_msg.get("destination")
        if not destination:
            return False

        book = payload.get("address_book") or {}
        # raw form "0:<hex>" is case-insensitive, user-friendly base64 is not
        known_forms = {destination.lower()}
        friendly = (book.get(destination) or {}).get("user_friendly")
        if friendly:
            known_forms.add(friendly)
        wanted = expected_destination
        if ":" in wanted:
            wanted = wanted.lower()
        if wanted not in known_forms:
            logger.info("ton_destination_mismatch", extra={"tx_hash": tx_hash})
            return False

        try:
            paid = int(in_msg.get("value")) / NANOTONS_PER_TON
        except (TypeError, ValueError):
            return False
        if abs(paid - expected_amount) > self._tolerance:
            logger.info("ton_amount_mismatch", extra={"tx_hash": tx_hash, "error": f"paid {paid}"})
            return False
        return True
