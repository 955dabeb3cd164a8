"""
Channel gateway backed by an aiogram Bot (the bot must be a channel admin).

The Bot API cannot add a user to a channel directly, so admission lifts any
stale ban and issues a single-use invite link for that user.
"""
from __future__ import annotations

from typing import Optional

from aiogram import Bot
from aiogram.enums import ChatMemberStatus
from aiogram.exceptions import TelegramAPIError

from .base import ChannelGateway, ChannelGatewayError


MEMBER_STATUSES = {
    ChatMemberStatus.MEMBER,
    ChatMemberStatus.ADMINISTRATOR,
    ChatMemberStatus.CREATOR,
}


class TelegramChannelGateway(ChannelGateway):
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def admit_member(self, channel_id: int, user_id: int) -> Optional[str]:
        try:
            member = await self._bot.get_chat_member(channel_id, user_id)
            if member.status in MEMBER_STATUSES:
                raise ChannelGatewayError("USER_ALREADY_PARTICIPANT", already_participant=True)
            if member.status == ChatMemberStatus.KICKED:
                await self._bot.unban_chat_member(channel_id, user_id, only_if_banned=True)
            link = await self._bot.create_chat_invite_link(
                channel_id, name=f"vip-{user_id}", member_limit=1
            )
        except TelegramAPIError as exc:
            raise ChannelGatewayError(str(exc)) from exc
        return link.invite_link

    async def ban_member(self, channel_id: int, user_id: int) -> None:
        try:
            await self._bot.ban_chat_member(channel_id, user_id)
        except TelegramAPIError as exc:
            raise ChannelGatewayError(str(exc)) from exc

    async def unban_member(self, channel_id: int, user_id: int) -> None:
        try:
            await self._bot.unban_chat_member(channel_id, user_id, only_if_banned=True)
        except TelegramAPIError as exc:
            raise ChannelGatewayError(str(exc)) from exc
