"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Platform(StrEnum):
    DISCORD = "discord"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class BotStatus(StrEnum):
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    LOGIN_FAILED = "login_failed"
    LEASE_LOST = "lease_lost"


WIDGET_USER_ID = "widget-user"
