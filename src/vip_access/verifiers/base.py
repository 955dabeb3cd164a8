from __future__ import annotations

from abc import ABC, abstractmethod


class OnChainVerifier(ABC):
    """
    Confirms a transaction against a public block explorer.

    `confirm` fails closed: any ambiguity (missing transaction, unknown
    destination format, amount out of tolerance) returns False. Transport
    errors are raised so the caller can retry them.
    """

    @abstractmethod
    async def confirm(
        self, tx_hash: str, expected_amount: float, expected_destination: str
    ) -> bool:
        ...
