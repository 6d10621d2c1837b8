"""Registry of bot connections running in this runner instance."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from vaste_bot.log import get_logger

if TYPE_CHECKING:
    from vaste_bot.messenger.base import BotConnection
    from vaste_bot.protocol import ActiveBotConfig

logger = get_logger(__name__)


@dataclass
class RunningBot:
    config: ActiveBotConfig
    connection: BotConnection
    heartbeat_job: Optional[str] = None
    lease_expires_at: int = 0
    fencing_token: Optional[int] = None


class ConnectionRegistry:
    """Tracks running connections by config id and by bot token.

    At most one entry exists per config id and per token. Entries are only
    added after the connection logged in, and removed before it is torn down.
    """

    def __init__(self) -> None:
        self._bots: dict[str, RunningBot] = {}
        self._tokens: dict[str, str] = {}

    async def start(
        self,
        config: ActiveBotConfig,
        connection: BotConnection,
        lease_expires_at: int = 0,
        fencing_token: int | None = None,
    ) -> RunningBot:
        """Start *connection* and register it. Raises LoginFailedError without registering."""
        if config.id in self._bots:
            raise ValueError(f"Config '{config.id}' is already running")
        if config.bot_token in self._tokens:
            raise ValueError(f"Token of config '{config.id}' is already in use")

        await connection.start()
        entry = RunningBot(
            config=config,
            connection=connection,
            lease_expires_at=lease_expires_at,
            fencing_token=fencing_token,
        )
        self._bots[config.id] = entry
        self._tokens[config.bot_token] = config.id
        return entry

    def attach_heartbeat(self, config_id: str, job_id: str) -> None:
        entry = self._bots.get(config_id)
        if entry is not None:
            entry.heartbeat_job = job_id

    def extend_lease(self, config_id: str, expires_at: int) -> None:
        entry = self._bots.get(config_id)
        if entry is not None:
            entry.lease_expires_at = expires_at

    def refresh(self, config: ActiveBotConfig) -> None:
        """Swap in a newer version of a running config that kept its token."""
        entry = self._bots.get(config.id)
        if entry is None or entry.config.bot_token != config.bot_token:
            return
        entry.config = config
        entry.connection.config = config

    def remove(self, config_id: str) -> RunningBot | None:
        """Unregister a config without touching its connection."""
        entry = self._bots.pop(config_id, None)
        if entry is not None and self._tokens.get(entry.config.bot_token) == config_id:
            del self._tokens[entry.config.bot_token]
        return entry

    async def stop(self, config_id: str) -> RunningBot | None:
        """Unregister and disconnect. Disconnect errors are logged, not raised."""
        entry = self.remove(config_id)
        if entry is None:
            return None
        try:
            await entry.connection.stop()
        except Exception as e:
            logger.warning("connection_stop_error", config_id=config_id, error=str(e))
        return entry

    def get(self, config_id: str) -> RunningBot | None:
        return self._bots.get(config_id)

    def is_running_for_token(self, token: str) -> bool:
        return token in self._tokens

    def config_ids(self) -> list[str]:
        return list(self._bots.keys())

    def __contains__(self, config_id: object) -> bool:
        return config_id in self._bots

    def __len__(self) -> int:
        return len(self._bots)
