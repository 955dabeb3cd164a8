from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..channel.base import ChannelGateway, ChannelGatewayError
from ..db.base import BaseDBManager
from ..errors import ChannelOperationFailed
from ..logging.ledger_logger import LedgerLogger

logger = logging.getLogger(__name__)


class AdmissionOutcome(str, Enum):
    ADMITTED = "admitted"
    ALREADY_MEMBER = "already_member"
    FAILED = "failed"


class RevocationOutcome(str, Enum):
    REVOKED = "revoked"
    FAILED = "failed"


@dataclass(frozen=True)
class AdmissionResult:
    outcome: AdmissionOutcome
    invite_link: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome != AdmissionOutcome.FAILED


@dataclass(frozen=True)
class RevocationResult:
    outcome: RevocationOutcome
    reason: Optional[str] = None


class MembershipService:
    """
    Keeps channel membership in line with subscription state.

    Admit and revoke are always attempted; the stored `in_channel` flag is
    only a cache and is never used to skip a call. `admit` and `revoke`
    return channel errors as results, so they cannot roll back a ledger
    write or abort a sweep.
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: LedgerLogger,
        gateway: ChannelGateway,
        channel_id: int,
        timeout: float = 10.0,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._gateway = gateway
        self._channel_id = channel_id
        self._timeout = timeout

    async def admit(self, user_id: int) -> AdmissionResult:
        try:
            link = await asyncio.wait_for(
                self._gateway.admit_member(self._channel_id, user_id), timeout=self._timeout
            )
            result = AdmissionResult(AdmissionOutcome.ADMITTED, invite_link=link)
        except ChannelGatewayError as exc:
            if exc.already_participant:
                logger.info("channel_already_member", extra={"user_id": user_id})
                result = AdmissionResult(AdmissionOutcome.ALREADY_MEMBER)
            else:
                result = AdmissionResult(AdmissionOutcome.FAILED, reason=str(exc))
        except asyncio.TimeoutError:
            result = AdmissionResult(AdmissionOutcome.FAILED, reason="timeout")

        if result.ok:
            await self._mirror(user_id, True)
        else:
            logger.warning("channel_admit_failed", extra={"user_id": user_id, "error": result.reason})
        await self._ledger.log_channel(
            user_id=user_id,
            message="Channel admission",
            details={"outcome": result.outcome.value, "reason": result.reason},
        )
        return result

    async def require_admission(self, user_id: int) -> AdmissionResult:
        """Admit, raising ChannelOperationFailed instead of returning a failure."""
        result = await self.admit(user_id)
        if not result.ok:
            raise ChannelOperationFailed(
                "channel admission failed", detail={"user_id": user_id, "reason": result.reason}
            )
        return result

    async def revoke(self, user_id: int) -> RevocationResult:
        """Ban then immediately unban, so the user may rejoin after paying again."""
        try:
            await asyncio.wait_for(
                self._gateway.ban_member(self._channel_id, user_id), timeout=self._timeout
            )
            await asyncio.wait_for(
                self._gateway.unban_member(self._channel_id, user_id), timeout=self._timeout
            )
            result = RevocationResult(RevocationOutcome.REVOKED)
        except ChannelGatewayError as exc:
            result = RevocationResult(RevocationOutcome.FAILED, reason=str(exc))
        except asyncio.TimeoutError:
            result = RevocationResult(RevocationOutcome.FAILED, reason="timeout")

        if result.outcome == RevocationOutcome.REVOKED:
            await self._mirror(user_id, False)
        else:
            logger.warning("channel_revoke_failed", extra={"user_id": user_id, "error": result.reason})
        await self._ledger.log_channel(
            user_id=user_id,
            message="Channel revocation",
            details={"outcome": result.outcome.value, "reason": result.reason},
        )
        return result

    async def _mirror(self, user_id: int, in_channel: bool) -> None:
        try:
            await self._db.set_in_channel(user_id, in_channel)
        except Exception:
            logger.exception("in_channel_mirror_failed", extra={"user_id": user_id})
