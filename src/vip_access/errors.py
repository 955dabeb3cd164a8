from __future__ import annotations

from typing import Any, Optional


class VipAccessError(Exception):
    """Base class for every error raised by the subscription core."""

    def __init__(self, message: str, detail: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class SubmissionRejected(VipAccessError):
    """Validation-shaped error: terminal for the request, never retried."""


class UnknownPlan(SubmissionRejected):
    pass


class CurrencyUnavailable(SubmissionRejected):
    pass


class NoPendingPayment(SubmissionRejected):
    pass


class DuplicateTransaction(SubmissionRejected):
    pass


class VerificationFailed(SubmissionRejected):
    pass


class TransientFailure(VipAccessError):
    """A collaborator stayed unavailable after the bounded retry policy."""


class ChannelOperationFailed(VipAccessError):
    """Channel admit/revoke failed; never rolls back the ledger."""
