"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Agent:
    id: str
    owner_id: str
    name: str
    welcome_message: str
    system_prompt: str
    temperature: float
    header_color: Optional[str] = None
    accent_color: Optional[str] = None
    background_color: Optional[str] = None
    profile_image: Optional[str] = None
    collect_user_info: bool = False
    form_fields: list[dict[str, Any]] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0


@dataclass
class ChatSession:
    id: str
    agent_id: str
    user_id: str  # authenticated user id or the "widget-user" sentinel
    last_active: int
    created_at: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatMessage:
    id: str
    session_id: str
    role: str  # "user" | "assistant" | "system"
    content: str
    created_at: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class KnowledgeEntry:
    id: str
    agent_id: str
    user_id: str
    input: str  # label, e.g. "url:<url>" or "file:<name>"
    output: str
    created_at: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class BotConfig:
    id: str
    agent_id: str
    bot_token: str
    client_id: str
    guild_id: Optional[str]
    is_active: bool
    status: str
    created_at: int
    updated_at: int
    last_seen: Optional[int] = None
    lock_holder: Optional[str] = None
    lock_expires_at: Optional[int] = None
    lock_version: int = 0
