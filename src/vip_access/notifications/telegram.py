"""
Notifier backed by an aiogram Bot.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import BufferedInputFile, InlineKeyboardButton, InlineKeyboardMarkup

from .base import Notice, Notifier

logger = logging.getLogger(__name__)


def build_markup(notice: Notice) -> Optional[InlineKeyboardMarkup]:
    if not notice.buttons:
        return None
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text=b.text, callback_data=b.callback_data, url=b.url)
                for b in row
            ]
            for row in notice.buttons
        ]
    )


class TelegramNotifier(Notifier):
    """
    Sends notices through the Bot API and remembers the last message id per
    chat so it can be edited in place.
    """

    def __init__(self, bot: Bot) -> None:
        self._bot = bot
        self._last_message: Dict[int, int] = {}

    async def send(self, chat_id: int, notice: Notice) -> None:
        try:
            if notice.photo is not None:
                message = await self._bot.send_photo(
                    chat_id,
                    BufferedInputFile(notice.photo, filename="payment.png"),
                    caption=notice.text,
                    reply_markup=build_markup(notice),
                    parse_mode=notice.parse_mode,
                )
            else:
                message = await self._bot.send_message(
                    chat_id,
                    notice.text,
                    reply_markup=build_markup(notice),
                    parse_mode=notice.parse_mode,
                )
        except TelegramAPIError as exc:
            logger.warning("notify_failed", extra={"user_id": chat_id, "error": str(exc)})
            return
        self._last_message[chat_id] = message.message_id

    async def edit_last(self, chat_id: int, notice: Notice) -> None:
        message_id = self._last_message.get(chat_id)
        if message_id is None or notice.photo is not None:
            await self.send(chat_id, notice)
            return
        try:
            await self._bot.edit_message_text(
                text=notice.text,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=build_markup(notice),
                parse_mode=notice.parse_mode,
            )
        except TelegramBadRequest as exc:
            # Message too old or deleted: fall back to a fresh one.
            logger.info("notify_edit_fallback", extra={"user_id": chat_id, "error": str(exc)})
            await self.send(chat_id, notice)
        except TelegramAPIError as exc:
            logger.warning("notify_failed", extra={"user_id": chat_id, "error": str(exc)})
