"""Unified message models for bot connections."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from vaste_bot.core.types import Platform


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    platform: Platform
    config_id: str
    connection_id: str
    chat_id: str
    message_id: str
    user_id: str
    user_display_name: str
    text: str
    timestamp: datetime
    is_direct: bool = False


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    chat_id: str
    text: str
    reply_to_message_id: Optional[str] = None
