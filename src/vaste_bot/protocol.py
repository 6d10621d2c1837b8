"""Wire shapes for the widget and bot-runner HTTP protocols.

Shared by the API routers (parsing requests) and the runner's backend client
(parsing responses), so both ends reject shape mismatches at the boundary.
JSON keys are camelCase; Python attributes are snake_case.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- widget session/chat ---


class SessionRequest(WireModel):
    agent_id: str = Field(min_length=1)


class AgentPublic(WireModel):
    id: str
    name: str
    welcome_message: str
    system_prompt: str
    temperature: float
    header_color: Optional[str] = None
    accent_color: Optional[str] = None
    background_color: Optional[str] = None
    profile_image: Optional[str] = None


class SessionResponse(WireModel):
    session_id: str
    agent: AgentPublic


class HistoryItem(WireModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(WireModel):
    session_id: str = Field(min_length=1)
    agent_id: str = Field(min_length=1)
    message: str = Field(min_length=1)
    history: list[HistoryItem] = Field(default_factory=list)


class ChatResponse(WireModel):
    reply: str
    session_id: str


# --- bot-runner coordination ---


class ActiveBotConfig(WireModel):
    id: str = Field(alias="_id")
    agent_id: str
    bot_token: str
    client_id: str
    guild_id: Optional[str] = None
    updated_at: int


class LockRequest(WireModel):
    config_id: str = Field(min_length=1)
    instance_id: str = Field(min_length=1)
    ttl_ms: int = Field(gt=0)


class ReleaseRequest(WireModel):
    config_id: str = Field(min_length=1)
    instance_id: str = Field(min_length=1)


class LockResponse(WireModel):
    ok: bool
    reason: str
    holder: Optional[str] = None
    expires_at: Optional[int] = None
    fencing_token: Optional[int] = None


class StatusRequest(WireModel):
    config_id: str = Field(min_length=1)
    status: str = Field(min_length=1)
    last_seen: Optional[int] = None


class Ack(WireModel):
    ok: bool = True
