from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..db.base import BaseDBManager
from ..models.ledger import LedgerEntry, LedgerEventType

logger = logging.getLogger(__name__)


class LedgerLogger:
    """
    Structured audit ledger that writes to a file and the database.

    File logging is append-only, line-delimited JSON for easier ingestion
    by log aggregators. DB logging uses the `LedgerEntry` model and the
    configured `BaseDBManager`.
    """

    def __init__(self, db: BaseDBManager, file_path: Path) -> None:
        self._db = db
        self._file_path = file_path
        self._file_path.parent.mkdir(parents=True, exist_ok=True)

    async def log_payment(
        self,
        user_id: int,
        message: str,
        details: dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> None:
        await self._log(LedgerEventType.PAYMENT, user_id, message, details, correlation_id)

    async def log_subscription(
        self,
        user_id: int,
        message: str,
        details: dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> None:
        await self._log(LedgerEventType.SUBSCRIPTION, user_id, message, details, correlation_id)

    async def log_channel(
        self,
        user_id: int,
        message: str,
        details: dict[str, Any],
    ) -> None:
        await self._log(LedgerEventType.CHANNEL, user_id, message, details, None)

    async def log_error(
        self,
        message: str,
        details: dict[str, Any],
        user_id: Optional[int] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        await self._log(LedgerEventType.ERROR, user_id, message, details, correlation_id)

    async def _log(
        self,
        event_type: LedgerEventType,
        user_id: Optional[int],
        message: str,
        details: dict[str, Any],
        correlation_id: Optional[str],
    ) -> None:
        entry = LedgerEntry(
            event_type=event_type,
            user_id=user_id,
            message=message,
            details=details,
            correlation_id=correlation_id,
        )

        # The audit trail never breaks the flow it records.
        try:
            await self._db.add_ledger_entry(entry)
        except Exception:
            logger.exception("ledger_db_write_failed", extra={"user_id": user_id})
        try:
            line = json.dumps(entry.serialize_for_db(), default=str)
            with self._file_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError:
            logger.warning("ledger_file_write_failed", extra={"error": str(self._file_path)})
