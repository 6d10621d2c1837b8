"""In-memory message dedup keyed on (connection identity, message id)."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable

from vaste_bot.log import get_logger

logger = get_logger(__name__)


class MessageDeduplicator:
    """TTL set of recently handled messages.

    Best-effort: it only guards against redelivery to this process. Entries
    expire after *window_seconds*; once *max_entries* is reached the oldest
    entries are evicted first.
    """

    def __init__(
        self,
        window_seconds: float = 300.0,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._window = window_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._seen: OrderedDict[tuple[str, str], float] = OrderedDict()

    def check_and_remember(self, connection_id: str, message_id: str) -> bool:
        """Return True the first time a message is seen within the window, False for duplicates."""
        now = self._clock()
        self._sweep(now)
        key = (connection_id, message_id)
        if key in self._seen:
            logger.debug("duplicate_message_dropped", connection_id=connection_id, message_id=message_id)
            return False
        self._seen[key] = now
        while len(self._seen) > self._max_entries:
            self._seen.popitem(last=False)
        return True

    def _sweep(self, now: float) -> None:
        # insertion order is timestamp order
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if now - seen_at <= self._window:
                break
            del self._seen[key]

    def __len__(self) -> int:
        return len(self._seen)
