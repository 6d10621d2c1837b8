"""Bot runner orchestrator - one stateless instance of the Discord bot fleet."""

from __future__ import annotations

from vaste_bot.config import AppConfig
from vaste_bot.log import get_logger
from vaste_bot.runner.backend import BackendClient
from vaste_bot.runner.reconciler import BotRunnerReconciler, ConnectionFactory
from vaste_bot.services.base import stop_services
from vaste_bot.services.scheduler import SchedulerService

logger = get_logger(__name__)


class RunnerApp:
    def __init__(
        self,
        config: AppConfig,
        backend: BackendClient | None = None,
        connection_factory: ConnectionFactory | None = None,
    ):
        config.runner.require_backend()
        self.config = config
        self.backend = backend or BackendClient(config.runner)
        self.scheduler = SchedulerService()
        self.reconciler = BotRunnerReconciler(
            config.runner,
            self.backend,
            self.scheduler,
            connection_factory=connection_factory,
        )

    async def start(self) -> None:
        logger.info(
            "runner_starting",
            instance_id=self.config.runner.instance_id,
            base_url=self.config.runner.base_url,
        )
        await self.reconciler.start()
        logger.info(
            "runner_ready",
            instance_id=self.config.runner.instance_id,
            jobs=[job["id"] for job in self.scheduler.list_jobs()],
        )

    async def stop(self) -> None:
        # reconciler first: its teardown still needs the scheduler and the backend
        try:
            await stop_services([self.reconciler, self.scheduler])
        finally:
            await self.backend.aclose()
        logger.info("runner_exited", instance_id=self.config.runner.instance_id)
