"""Identifier generation and validation (32 lowercase alphanumerics)."""

from __future__ import annotations

import re
import time
import uuid

from vaste_bot.errors import InvalidIdError

_ID_PATTERN = re.compile(r"^[a-z0-9]{32}$")


def new_id() -> str:
    return uuid.uuid4().hex


def is_valid_id(value: object) -> bool:
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def parse_id(value: object, kind: str) -> str:
    """Normalize and validate an identifier, raising InvalidIdError when malformed.

    Some embeds JSON-stringify the id twice, so one layer of wrapping quotes is stripped.
    """
    if not isinstance(value, str):
        raise InvalidIdError(kind, value)
    candidate = value.strip()
    if len(candidate) >= 2 and candidate.startswith('"') and candidate.endswith('"'):
        candidate = candidate[1:-1]
    if not is_valid_id(candidate):
        raise InvalidIdError(kind, value)
    return candidate


def now_ms() -> int:
    return int(time.time() * 1000)
