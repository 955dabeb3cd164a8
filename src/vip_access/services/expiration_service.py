from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from ..db.base import BaseDBManager
from ..notifications import messages
from ..notifications.base import Notifier
from ..utils import utcnow
from .membership_service import MembershipService
from .retry import RetryPolicy
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


class ExpirationService:
    """
    Periodic sweep that demotes expired subscriptions and removes the
    users from the channel.

    Per user: expire, then revoke and notify only when the expiry applied,
    so a user who renewed after the query keeps access. A failure for one
    user is logged and the sweep moves on. Overlapping sweeps are harmless:
    an already-expired user is skipped before any channel call.
    """

    def __init__(
        self,
        db: BaseDBManager,
        subscriptions: SubscriptionService,
        membership: MembershipService,
        notifier: Notifier,
        interval_seconds: float = 1800.0,
        initial_delay: float = 10.0,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self._db = db
        self._subscriptions = subscriptions
        self._membership = membership
        self._notifier = notifier
        self._interval = interval_seconds
        self._initial_delay = initial_delay
        self._retry = retry or RetryPolicy()

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Run one sweep; returns the number of subscriptions expired.
        """
        now = now or utcnow()
        users = await self._retry.run(
            lambda: self._db.find_expired_active(now), name="find_expired_active"
        )
        logger.info("expiry_sweep_started", extra={"count": len(users)})

        expired_total = 0
        for user in users:
            try:
                if not await self._subscriptions.expire(user.user_id, now):
                    continue
                expired_total += 1
                await self._membership.revoke(user.user_id)
                try:
                    await self._notifier.send(user.user_id, messages.subscription_expired())
                except Exception:
                    logger.warning("expiry_notice_failed", extra={"user_id": user.user_id})
            except Exception:
                logger.exception("expiry_sweep_user_failed", extra={"user_id": user.user_id})

        logger.info("expiry_sweep_finished", extra={"count": expired_total})
        return expired_total

    async def run_forever(self) -> None:
        """Sweep shortly after start, then every `interval_seconds`."""
        await asyncio.sleep(self._initial_delay)
        while True:
            try:
                await self.sweep()
            except Exception:
                logger.exception("expiry_sweep_failed")
            await asyncio.sleep(self._interval)
