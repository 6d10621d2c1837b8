"""Channel session map: (config_id, channel_id) to a widget session and its recent turns."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from vaste_bot.core.types import Role
from vaste_bot.log import get_logger

logger = get_logger(__name__)


@dataclass
class ChannelSession:
    session_id: str
    history: deque[dict[str, str]] = field(default_factory=deque)


class ChannelSessions:
    """Manages one backend chat session per (config_id, channel_id) pair.

    History is kept locally so each chat call can carry the channel's recent
    turns; it is bounded to the last *history_limit* messages.
    """

    def __init__(self, history_limit: int = 20):
        self._history_limit = max(history_limit, 0)
        self._sessions: dict[tuple[str, str], ChannelSession] = {}

    def get(self, config_id: str, channel_id: str) -> ChannelSession | None:
        return self._sessions.get((config_id, channel_id))

    def bind(self, config_id: str, channel_id: str, session_id: str) -> ChannelSession:
        session = ChannelSession(session_id, deque(maxlen=self._history_limit))
        self._sessions[(config_id, channel_id)] = session
        logger.info("channel_session_bound", config_id=config_id, channel_id=channel_id, session_id=session_id)
        return session

    def history(self, config_id: str, channel_id: str) -> list[dict[str, str]]:
        session = self.get(config_id, channel_id)
        return list(session.history) if session else []

    def record_turn(self, config_id: str, channel_id: str, user_text: str, reply: str) -> None:
        session = self.get(config_id, channel_id)
        if session is None:
            return
        session.history.append({"role": Role.USER.value, "content": user_text})
        session.history.append({"role": Role.ASSISTANT.value, "content": reply})

    def reset(self, config_id: str, channel_id: str) -> None:
        self._sessions.pop((config_id, channel_id), None)

    def drop_config(self, config_id: str) -> int:
        """Forget every channel session of a config. Returns how many were dropped."""
        keys = [key for key in self._sessions if key[0] == config_id]
        for key in keys:
            del self._sessions[key]
        return len(keys)

    def __len__(self) -> int:
        return len(self._sessions)
