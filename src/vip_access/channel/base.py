from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class ChannelGatewayError(Exception):
    """
    Provider-specific channel failure. `already_participant` marks the one
    condition callers treat as success on admission.
    """

    def __init__(self, message: str, already_participant: bool = False) -> None:
        super().__init__(message)
        self.already_participant = already_participant


class ChannelGateway(ABC):
    """Channel membership operations against the messaging provider."""

    @abstractmethod
    async def admit_member(self, channel_id: int, user_id: int) -> Optional[str]:
        """
        Grant the user access to the channel.

        Returns an invite link the user must follow, or None when access was
        granted directly. Raises ChannelGatewayError(already_participant=True)
        when the user is already a member.
        """
        ...

    @abstractmethod
    async def ban_member(self, channel_id: int, user_id: int) -> None: ...

    @abstractmethod
    async def unban_member(self, channel_id: int, user_id: int) -> None: ...
