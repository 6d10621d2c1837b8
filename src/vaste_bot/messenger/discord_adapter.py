"""Discord bot connection using discord.py v2+."""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from typing import Any

import discord

from vaste_bot.core.types import Platform
from vaste_bot.errors import LoginFailedError
from vaste_bot.log import get_logger
from vaste_bot.messenger.base import BotConnection, split_message
from vaste_bot.messenger.models import IncomingMessage, OutgoingMessage
from vaste_bot.protocol import ActiveBotConfig

logger = get_logger(__name__)

DISCORD_MESSAGE_LIMIT = 2000


def strip_mentions(text: str, user_id: int | str) -> str:
    """Remove ``<@id>`` and ``<@!id>`` mentions of the given user."""
    return re.sub(rf"<@!?{user_id}>", "", text).strip()


class DiscordConnection(BotConnection):
    """Discord gateway connection for one bot token.

    Only direct messages and messages that mention the bot are forwarded to
    the registered callback; everything else, including other bots, is ignored.
    """

    def __init__(self, config: ActiveBotConfig, ready_timeout: float = 30.0):
        super().__init__(config)
        intents = discord.Intents.default()
        intents.guilds = True
        intents.guild_messages = True
        intents.dm_messages = True
        intents.message_content = True
        self._client = discord.Client(intents=intents)
        self._ready_timeout = ready_timeout
        self._task: asyncio.Task[Any] | None = None
        self._ready = asyncio.Event()

        @self._client.event
        async def on_ready() -> None:
            logger.info("discord_bot_ready", user=str(self._client.user), config_id=self.config.id)
            self._ready.set()

        @self._client.event
        async def on_message(message: discord.Message) -> None:
            if message.author.bot:
                return
            await self._on_discord_message(message)

    @property
    def platform_name(self) -> str:
        return Platform.DISCORD

    @property
    def is_alive(self) -> bool:
        return self._task is not None and not self._task.done() and not self._client.is_closed()

    async def start(self) -> None:
        if not self.config.bot_token:
            raise LoginFailedError(f"Discord bot token not configured for config '{self.config.id}'")

        try:
            await self._client.login(self.config.bot_token)
        except (discord.LoginFailure, discord.HTTPException) as e:
            await self._client.close()
            raise LoginFailedError(
                f"Discord login failed for config '{self.config.id}'",
                details={"error": str(e)},
            ) from e

        self._task = asyncio.create_task(self._client.connect(reconnect=True))
        try:
            await asyncio.wait_for(asyncio.shield(self._ready.wait()), timeout=self._ready_timeout)
        except asyncio.TimeoutError:
            if self._task.done() and self._task.exception() is not None:
                error = self._task.exception()
                await self._client.close()
                raise LoginFailedError(
                    f"Discord gateway connection failed for config '{self.config.id}'",
                    details={"error": str(error)},
                ) from error
            logger.warning("discord_ready_timeout", config_id=self.config.id)

        logger.info("discord_connection_started", config_id=self.config.id)

    async def stop(self) -> None:
        if not self._client.is_closed():
            await self._client.close()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug("discord_task_exit_error", config_id=self.config.id, error=str(e))
            self._task = None
        logger.info("discord_connection_stopped", config_id=self.config.id)

    async def send_message(self, message: OutgoingMessage) -> None:
        channel = self._client.get_channel(int(message.chat_id))
        if channel is None:
            channel = await self._client.fetch_channel(int(message.chat_id))

        if not isinstance(channel, (discord.TextChannel, discord.DMChannel, discord.Thread)):
            logger.warning("discord_channel_unsupported", chat_id=message.chat_id)
            return

        reference = None
        if message.reply_to_message_id:
            reference = channel.get_partial_message(int(message.reply_to_message_id))

        for i, chunk in enumerate(split_message(message.text, DISCORD_MESSAGE_LIMIT)):
            await channel.send(chunk, reference=reference if i == 0 else None)

    async def send_typing_indicator(self, chat_id: str) -> None:
        channel = self._client.get_channel(int(chat_id))
        if channel is not None and hasattr(channel, "typing"):
            await channel.typing()  # type: ignore[union-attr]

    def _is_addressed(self, message: discord.Message) -> bool:
        if isinstance(message.channel, discord.DMChannel):
            return True
        me = self._client.user
        if me is None:
            return False
        if self.config.guild_id and message.guild and str(message.guild.id) != self.config.guild_id:
            return False
        return any(user.id == me.id for user in message.mentions)

    async def _on_discord_message(self, message: discord.Message) -> None:
        if not self._message_callback or not self._is_addressed(message):
            return

        me = self._client.user
        text = strip_mentions(message.content or "", me.id) if me else (message.content or "")
        if not text:
            return

        incoming = IncomingMessage(
            platform=Platform.DISCORD,
            config_id=self.config.id,
            connection_id=self.connection_id,
            chat_id=str(message.channel.id),
            message_id=str(message.id),
            user_id=str(message.author.id),
            user_display_name=message.author.display_name,
            text=text,
            timestamp=message.created_at or datetime.now(timezone.utc),
            is_direct=isinstance(message.channel, discord.DMChannel),
        )

        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error(
                "discord_handler_error", error=str(e), channel_id=str(message.channel.id)
            )
