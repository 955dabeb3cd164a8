from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class Button(BaseModel):
    text: str
    callback_data: Optional[str] = None
    url: Optional[str] = None


class Notice(BaseModel):
    """Transport-neutral chat message: text plus optional inline keyboard rows."""

    text: str
    buttons: List[List[Button]] = Field(default_factory=list)
    parse_mode: Optional[str] = "HTML"
    photo: Optional[bytes] = None


class Notifier(ABC):
    """
    Outbound user messaging. Fire-and-forget from the caller's perspective:
    implementations log delivery failures and never raise them.
    """

    @abstractmethod
    async def send(self, chat_id: int, notice: Notice) -> None:
        ...

    @abstractmethod
    async def edit_last(self, chat_id: int, notice: Notice) -> None:
        """Replace the last message sent to `chat_id`, or send a new one."""
        ...


class InMemoryNotifier(Notifier):
    """
    In-memory notifier used for tests and as a reference implementation.
    """

    def __init__(self) -> None:
        self.messages: List[Tuple[int, Notice]] = []
        self.edits: Dict[int, Notice] = {}

    async def send(self, chat_id: int, notice: Notice) -> None:
        self.messages.append((chat_id, notice))

    async def edit_last(self, chat_id: int, notice: Notice) -> None:
        self.edits[chat_id] = notice

    def texts_for(self, chat_id: int) -> List[str]:
        return [n.text for c, n in self.messages if c == chat_id]
