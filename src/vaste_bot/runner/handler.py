"""Bot message handler: inbound platform message -> widget session/chat -> reply."""

from __future__ import annotations

from vaste_bot.core.ids import now_ms
from vaste_bot.core.session import ChannelSessions
from vaste_bot.core.types import BotStatus
from vaste_bot.errors import NotFoundError, VasteError
from vaste_bot.log import get_logger
from vaste_bot.messenger.base import BotConnection
from vaste_bot.messenger.models import IncomingMessage, OutgoingMessage
from vaste_bot.runner.backend import BackendClient
from vaste_bot.runner.dedup import MessageDeduplicator

logger = get_logger(__name__)


class BotMessageHandler:
    """Handles the full flow for one connection: dedup -> session -> chat -> reply.

    Failures are logged and recorded as status ``error``; the user gets no reply.
    """

    def __init__(
        self,
        connection: BotConnection,
        backend: BackendClient,
        sessions: ChannelSessions,
        dedup: MessageDeduplicator,
    ):
        self._connection = connection
        self._backend = backend
        self._sessions = sessions
        self._dedup = dedup

    @property
    def config_id(self) -> str:
        return self._connection.config.id

    async def handle(self, message: IncomingMessage) -> None:
        text = message.text.strip()
        if not text:
            return
        if not self._dedup.check_and_remember(message.connection_id, message.message_id):
            return

        try:
            await self._connection.send_typing_indicator(message.chat_id)
        except Exception as e:
            logger.debug("typing_indicator_failed", config_id=self.config_id, error=str(e))

        try:
            reply = await self._converse(message.chat_id, text)
            await self._connection.send_message(
                OutgoingMessage(
                    chat_id=message.chat_id,
                    text=reply,
                    reply_to_message_id=message.message_id,
                )
            )
        except Exception as e:
            logger.error(
                "message_handling_failed",
                config_id=self.config_id,
                chat_id=message.chat_id,
                message_id=message.message_id,
                error=str(e),
            )
            await self._record_status(BotStatus.ERROR)
            return

        logger.info(
            "message_handled",
            config_id=self.config_id,
            chat_id=message.chat_id,
            direct=message.is_direct,
            response_length=len(reply),
        )
        await self._record_status(BotStatus.RUNNING)

    async def _converse(self, chat_id: str, text: str) -> str:
        config = self._connection.config
        try:
            return await self._chat_once(chat_id, text)
        except NotFoundError:
            # session vanished server-side; start a fresh one and retry once
            logger.warning("channel_session_lost", config_id=config.id, chat_id=chat_id)
            self._sessions.reset(config.id, chat_id)
            return await self._chat_once(chat_id, text)

    async def _chat_once(self, chat_id: str, text: str) -> str:
        config = self._connection.config
        session = self._sessions.get(config.id, chat_id)
        if session is None:
            started = await self._backend.create_session(config.agent_id)
            session = self._sessions.bind(config.id, chat_id, started.session_id)

        history = self._sessions.history(config.id, chat_id)
        result = await self._backend.chat(session.session_id, config.agent_id, text, history)
        self._sessions.record_turn(config.id, chat_id, text, result.reply)
        return result.reply

    async def _record_status(self, status: BotStatus) -> None:
        try:
            await self._backend.update_status(self.config_id, status.value, last_seen=now_ms())
        except VasteError as e:
            logger.warning("status_update_failed", config_id=self.config_id, status=status.value, error=e.message)
