"""Bot-runner reconciliation loop.

Each runner instance periodically compares the active bot configs with the
connections it runs locally, stops what is no longer wanted and tries to
start what nobody runs yet. A lease in the coordination store guarantees that
at most one instance runs a config at a time; the lease is renewed by a
per-config heartbeat job and the connection is torn down as soon as the lease
cannot be confirmed.

Per-config state: Idle -> Claiming -> Running -> Stopping -> Idle.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Iterable

from vaste_bot.config import RunnerConfig
from vaste_bot.core.connection_registry import ConnectionRegistry, RunningBot
from vaste_bot.core.ids import now_ms
from vaste_bot.core.session import ChannelSessions
from vaste_bot.core.types import BotStatus
from vaste_bot.errors import LoginFailedError, NotFoundError, VasteError
from vaste_bot.log import get_logger
from vaste_bot.messenger.base import BotConnection
from vaste_bot.protocol import ActiveBotConfig
from vaste_bot.runner.backend import BackendClient
from vaste_bot.runner.dedup import MessageDeduplicator
from vaste_bot.runner.handler import BotMessageHandler
from vaste_bot.services.base import Service
from vaste_bot.services.scheduler import SchedulerService

logger = get_logger(__name__)

RECONCILE_JOB_ID = "reconcile"

ConnectionFactory = Callable[[ActiveBotConfig], BotConnection]


def dedupe_by_token(configs: Iterable[ActiveBotConfig]) -> list[ActiveBotConfig]:
    """Keep one config per bot token: highest updated_at, then the greater id."""
    winners: dict[str, ActiveBotConfig] = {}
    for config in configs:
        if not config.bot_token:
            continue
        current = winners.get(config.bot_token)
        if current is None or (config.updated_at, config.id) > (current.updated_at, current.id):
            winners[config.bot_token] = config
    return list(winners.values())


def _discord_connection(config: ActiveBotConfig) -> BotConnection:
    from vaste_bot.messenger.discord_adapter import DiscordConnection

    return DiscordConnection(config)


def _heartbeat_job_id(config_id: str) -> str:
    return f"heartbeat:{config_id}"


class BotRunnerReconciler(Service):
    """Runs the reconcile cycle and the lease heartbeats for one runner instance."""

    def __init__(
        self,
        config: RunnerConfig,
        backend: BackendClient,
        scheduler: SchedulerService,
        registry: ConnectionRegistry | None = None,
        sessions: ChannelSessions | None = None,
        dedup: MessageDeduplicator | None = None,
        connection_factory: ConnectionFactory | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._config = config
        self._backend = backend
        self._scheduler = scheduler
        self._registry = registry or ConnectionRegistry()
        self._sessions = sessions or ChannelSessions(config.history_limit)
        self._dedup = dedup or MessageDeduplicator(config.dedup_window)
        self._connection_factory = connection_factory or _discord_connection
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self._stopping = False

    @property
    def service_name(self) -> str:
        return "bot_runner"

    @property
    def instance_id(self) -> str:
        return self._config.instance_id

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    async def start(self) -> None:
        self._stopping = False
        await self._scheduler.start()
        await self.reconcile()
        self._scheduler.add_interval_job(self.reconcile, self._config.poll_interval, RECONCILE_JOB_ID)
        logger.info(
            "runner_started",
            instance_id=self.instance_id,
            poll_interval=self._config.poll_interval,
            running=len(self._registry),
        )

    async def stop(self) -> None:
        """Stop polling and every running bot, bounded by the shutdown timeout."""
        self._stopping = True
        self._scheduler.remove_job(RECONCILE_JOB_ID)
        try:
            async with asyncio.timeout(self._config.shutdown_timeout):
                async with self._cycle_lock:
                    await asyncio.gather(
                        *(
                            self._stop_bot(config_id, BotStatus.STOPPED, "shutdown")
                            for config_id in self._registry.config_ids()
                        )
                    )
        except TimeoutError:
            logger.warning(
                "shutdown_timeout",
                instance_id=self.instance_id,
                remaining=self._registry.config_ids(),
            )
        await self._scheduler.stop()
        logger.info("runner_stopped", instance_id=self.instance_id)

    async def health_check(self) -> bool:
        return not self._stopping and await self._scheduler.health_check()

    async def reconcile(self) -> None:
        """One poll cycle: fetch, dedupe, stop stale connections, then start missing ones."""
        if self._stopping:
            return
        async with self._cycle_lock:
            if self._stopping:
                return
            try:
                configs = await self._backend.active_configs()
            except VasteError as e:
                # running bots stay protected by their own heartbeats
                logger.warning("active_configs_fetch_failed", instance_id=self.instance_id, error=e.message)
                return

            eligible = {config.id: config for config in dedupe_by_token(configs)}
            await self._stop_stale(eligible)

            to_start = [
                config
                for config in eligible.values()
                if config.id not in self._registry
                and not self._registry.is_running_for_token(config.bot_token)
            ]
            if to_start:
                results = await asyncio.gather(
                    *(self._start_bot(config) for config in to_start), return_exceptions=True
                )
                for config, result in zip(to_start, results):
                    if isinstance(result, BaseException):
                        logger.error("bot_start_crashed", config_id=config.id, error=str(result))

            logger.debug(
                "reconcile_completed",
                instance_id=self.instance_id,
                active=len(configs),
                eligible=len(eligible),
                running=len(self._registry),
            )

    async def _stop_stale(self, eligible: dict[str, ActiveBotConfig]) -> None:
        for config_id in self._registry.config_ids():
            entry = self._registry.get(config_id)
            if entry is None:
                continue
            wanted = eligible.get(config_id)
            if wanted is None:
                await self._stop_bot(config_id, BotStatus.STOPPED, "inactive")
            elif wanted.bot_token != entry.config.bot_token:
                await self._stop_bot(config_id, BotStatus.STOPPED, "token_changed")
            elif not entry.connection.is_alive:
                await self._stop_bot(config_id, BotStatus.ERROR, "connection_dead")
            elif wanted != entry.config:
                if wanted.agent_id != entry.config.agent_id:
                    self._sessions.drop_config(config_id)
                self._registry.refresh(wanted)
                logger.info("bot_config_refreshed", config_id=config_id, agent_id=wanted.agent_id)

    async def _start_bot(self, config: ActiveBotConfig) -> None:
        claim_sent_at = self._clock()
        try:
            claim = await self._backend.claim(config.id, self.instance_id, self._config.lock_ttl_ms)
        except VasteError as e:
            logger.warning("claim_failed", config_id=config.id, error=e.message)
            return
        if not claim.ok:
            logger.info("lock_denied", config_id=config.id, holder=claim.holder, reason=claim.reason)
            return

        connection = self._connection_factory(config)
        handler = BotMessageHandler(connection, self._backend, self._sessions, self._dedup)
        connection.on_message(handler.handle)
        try:
            await self._registry.start(
                config,
                connection,
                lease_expires_at=claim_sent_at + self._config.lock_ttl_ms,
                fencing_token=claim.fencing_token,
            )
        except LoginFailedError as e:
            logger.warning("login_failed", config_id=config.id, error=e.message)
            await self._record_status(config.id, BotStatus.LOGIN_FAILED)
            await self._release(config.id)
            return
        except Exception as e:
            logger.error("bot_start_failed", config_id=config.id, error=str(e))
            try:
                await connection.stop()
            except Exception as stop_error:
                logger.debug("connection_cleanup_failed", config_id=config.id, error=str(stop_error))
            await self._record_status(config.id, BotStatus.ERROR)
            await self._release(config.id)
            return

        job_id = self._scheduler.add_interval_job(
            self._heartbeat,
            self._config.heartbeat_interval,
            _heartbeat_job_id(config.id),
            config_id=config.id,
        )
        self._registry.attach_heartbeat(config.id, job_id)
        await self._record_status(config.id, BotStatus.RUNNING)
        logger.info(
            "bot_started",
            config_id=config.id,
            agent_id=config.agent_id,
            instance_id=self.instance_id,
            fencing_token=claim.fencing_token,
        )

    async def _heartbeat(self, config_id: str) -> None:
        entry = self._registry.get(config_id)
        if entry is None:
            self._scheduler.remove_job(_heartbeat_job_id(config_id))
            return

        sent_at = self._clock()
        try:
            renewal = await self._backend.renew(config_id, self.instance_id, self._config.lock_ttl_ms)
        except NotFoundError:
            logger.error("lease_lost", config_id=config_id, reason="not_found")
            await self._lose_lease(entry, "not_found")
            return
        except VasteError as e:
            remaining_ms = entry.lease_expires_at - self._clock()
            if remaining_ms > self._config.heartbeat_interval * 1000:
                logger.warning(
                    "heartbeat_failed", config_id=config_id, error=e.message, remaining_ms=remaining_ms
                )
                return
            logger.error("lease_lost", config_id=config_id, reason="unverifiable", error=e.message)
            await self._lose_lease(entry, "unverifiable")
            return

        if not renewal.ok:
            logger.error("lease_lost", config_id=config_id, reason=renewal.reason, holder=renewal.holder)
            await self._lose_lease(entry, renewal.reason)
            return

        self._registry.extend_lease(config_id, sent_at + self._config.lock_ttl_ms)
        logger.debug("lease_renewed", config_id=config_id, fencing_token=renewal.fencing_token)

    async def _lose_lease(self, entry: RunningBot, reason: str | None) -> None:
        """Tear down after a failed heartbeat, serialized with reconcile cycles.

        A cycle must not observe the config as stopped until its lease is
        released, or it would re-claim and start a connection that the
        pending release then strips of its lease.
        """
        config_id = entry.config.id
        async with self._cycle_lock:
            if self._registry.get(config_id) is not entry:
                # stopped or replaced by a cycle while we waited
                return
            await self._stop_bot(config_id, BotStatus.LEASE_LOST, reason or "lease_lost")

    async def _stop_bot(self, config_id: str, status: BotStatus, reason: str) -> None:
        # callers hold _cycle_lock
        """Cancel heartbeat, disconnect, release, record status. Each step is best-effort."""
        entry = self._registry.get(config_id)
        if entry is None:
            return
        self._scheduler.remove_job(entry.heartbeat_job or _heartbeat_job_id(config_id))
        if await self._registry.stop(config_id) is None:
            # already being stopped by a concurrent heartbeat or cycle
            return
        self._sessions.drop_config(config_id)
        await self._release(config_id)
        await self._record_status(config_id, status)
        logger.info("bot_stopped", config_id=config_id, status=status.value, reason=reason)

    async def _release(self, config_id: str) -> None:
        try:
            await self._backend.release(config_id, self.instance_id)
        except VasteError as e:
            logger.warning("lock_release_failed", config_id=config_id, error=e.message)

    async def _record_status(self, config_id: str, status: BotStatus) -> None:
        try:
            await self._backend.update_status(config_id, status.value, last_seen=now_ms())
        except VasteError as e:
            logger.warning("status_update_failed", config_id=config_id, status=status.value, error=e.message)
