"""Discord bot config management and runner-reported status."""

from __future__ import annotations

from typing import Optional

from vaste_bot.core.ids import parse_id
from vaste_bot.errors import InvalidInputError, NotFoundError
from vaste_bot.log import get_logger
from vaste_bot.storage.agent_repo import AgentRepository
from vaste_bot.storage.bot_config_repo import BotConfigRepository
from vaste_bot.storage.models import BotConfig

logger = get_logger(__name__)


class BotConfigService:
    def __init__(self, agents: AgentRepository, configs: BotConfigRepository):
        self._agents = agents
        self._configs = configs

    async def connect(
        self,
        agent_id: str,
        bot_token: str,
        client_id: str,
        guild_id: Optional[str] = None,
    ) -> BotConfig:
        """Register an active Discord bot for an agent."""
        agent_id = parse_id(agent_id, "agentId")
        if not bot_token or not client_id:
            raise InvalidInputError("bot token and client id are required")
        if await self._agents.get(agent_id) is None:
            raise NotFoundError("Agent", agent_id)
        config = await self._configs.create(agent_id, bot_token, client_id, guild_id or None)
        logger.info("bot_config_created", config_id=config.id, agent_id=agent_id)
        return config

    async def set_active(self, config_id: str, active: bool) -> None:
        config_id = parse_id(config_id, "configId")
        if not await self._configs.set_active(config_id, active):
            raise NotFoundError("Bot config", config_id)
        logger.info("bot_config_toggled", config_id=config_id, active=active)

    async def active_configs(self) -> list[BotConfig]:
        return await self._configs.list_active()

    async def update_status(self, config_id: str, status: str, last_seen: Optional[int] = None) -> None:
        if not await self._configs.update_status(config_id, status, last_seen):
            raise NotFoundError("Bot config", config_id)
