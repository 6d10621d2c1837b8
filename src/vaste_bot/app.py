"""Application orchestrator - wires storage, AI client and services and manages their lifecycle."""

from __future__ import annotations

from pathlib import Path

from vaste_bot.ai.client import AIClient, create_ai_client
from vaste_bot.config import AppConfig
from vaste_bot.log import get_logger
from vaste_bot.services.agents import AgentService
from vaste_bot.services.bot_configs import BotConfigService
from vaste_bot.services.knowledge import KnowledgeService
from vaste_bot.services.lock import DistributedLockService
from vaste_bot.services.widget_session import WidgetSessionService
from vaste_bot.storage.agent_repo import AgentRepository
from vaste_bot.storage.bot_config_repo import BotConfigRepository
from vaste_bot.storage.database import Database
from vaste_bot.storage.knowledge_repo import KnowledgeRepository
from vaste_bot.storage.session_repo import SessionRepository

logger = get_logger(__name__)


class VasteApp:
    """Top-level orchestrator for the API server and the management CLI."""

    def __init__(self, config: AppConfig, ai_client: AIClient | None = None):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.agent_repo = AgentRepository(self.db)
        self.session_repo = SessionRepository(self.db)
        self.knowledge_repo = KnowledgeRepository(self.db)
        self.bot_config_repo = BotConfigRepository(self.db)
        self.ai_client = ai_client or create_ai_client(config.ai)

        self.agents = AgentService(self.agent_repo)
        self.knowledge = KnowledgeService(self.agent_repo, self.knowledge_repo)
        self.bot_configs = BotConfigService(self.agent_repo, self.bot_config_repo)
        self.locks = DistributedLockService(self.bot_config_repo)
        self.widget = WidgetSessionService(
            agents=self.agent_repo,
            sessions=self.session_repo,
            knowledge=self.knowledge_repo,
            ai_client=self.ai_client,
            model=config.ai.model,
            knowledge_limit=config.widget.knowledge_limit,
            history_limit=config.widget.history_limit,
            fallback_reply=config.widget.fallback_reply,
        )
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        Path(self.config.data_dir).mkdir(parents=True, exist_ok=True)
        await self.db.initialize()
        self._started = True
        logger.info(
            "vaste_app_started",
            db_path=self.config.storage.db_path,
            ai_backend=self.ai_client.backend_name,
        )

    async def stop(self) -> None:
        if not self._started:
            return
        try:
            await self.ai_client.close()
        except Exception as e:
            logger.error("ai_client_close_error", error=str(e))
        await self.db.close()
        self._started = False
        logger.info("vaste_app_stopped")
