"""Abstract bot connection interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from vaste_bot.messenger.models import IncomingMessage, OutgoingMessage
from vaste_bot.protocol import ActiveBotConfig


def split_message(text: str, max_length: int) -> list[str]:
    """Split text into chunks of at most *max_length*, preferring newline boundaries."""
    if len(text) <= max_length:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break
        split_at = text.rfind("\n", 0, max_length)
        if split_at <= 0:
            split_at = max_length
        chunks.append(text[:split_at])
        text = text[split_at:].lstrip("\n")
    return chunks


class BotConnection(ABC):
    """One live connection to a chat platform, bound to a single bot config.

    To add a new platform, subclass this and implement all abstract methods.
    """

    def __init__(self, config: ActiveBotConfig):
        self.config = config
        self._message_callback: Callable[[IncomingMessage], Awaitable[None]] | None = None

    @abstractmethod
    async def start(self) -> None:
        """Log in and begin receiving messages. Raises LoginFailedError on rejected credentials."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect. Safe to call more than once."""
        ...

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> None:
        ...

    @abstractmethod
    async def send_typing_indicator(self, chat_id: str) -> None:
        ...

    def on_message(self, callback: Callable[[IncomingMessage], Awaitable[None]]) -> None:
        """Register the callback invoked for every message addressed to the bot."""
        self._message_callback = callback

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        ...

    @property
    def connection_id(self) -> str:
        """Identity used to scope message dedup keys."""
        return self.config.client_id or self.config.id

    @property
    @abstractmethod
    def platform_name(self) -> str:
        ...
