"""CLI entry point for vaste-bot."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from vaste_bot.app import VasteApp
from vaste_bot.config import AppConfig, load_config
from vaste_bot.errors import ConfigurationError, VasteError
from vaste_bot.log import setup_logging


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="vaste-bot",
        description="Multi-tenant chatbot backend: widget API and Discord bot runner",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_config_args(subparsers.add_parser("serve", help="Run the API server"))
    _add_config_args(subparsers.add_parser("runner", help="Run a Discord bot runner instance"))
    _add_config_args(subparsers.add_parser("config-check", help="Validate configuration"))

    agent_parser = subparsers.add_parser("create-agent", help="Create an agent")
    _add_config_args(agent_parser)
    agent_parser.add_argument("--owner", required=True, help="Owner user id")
    agent_parser.add_argument("--name", required=True)
    agent_parser.add_argument("--system-prompt", default="")
    agent_parser.add_argument("--welcome-message", default="")
    agent_parser.add_argument("--temperature", type=float, default=0.7)

    knowledge_parser = subparsers.add_parser("add-knowledge", help="Add a knowledge entry to an agent")
    _add_config_args(knowledge_parser)
    knowledge_parser.add_argument("agent_id")
    knowledge_parser.add_argument("--user", required=True, help="Owner user id")
    source = knowledge_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", help="Fetch and extract text from a web page")
    source.add_argument("--file", help="Import a local text file")
    source.add_argument("--text", nargs=2, metavar=("LABEL", "TEXT"), help="Add raw text")

    discord_parser = subparsers.add_parser("connect-discord", help="Register a Discord bot for an agent")
    _add_config_args(discord_parser)
    discord_parser.add_argument("agent_id", nargs="?")
    discord_parser.add_argument("--token", help="Discord bot token")
    discord_parser.add_argument("--client-id", help="Discord application client id")
    discord_parser.add_argument("--guild-id", default=None)
    discord_parser.add_argument("--deactivate", metavar="CONFIG_ID", help="Turn an existing bot config off")

    history_parser = subparsers.add_parser("history", help="Print a session's messages, or list an agent's sessions")
    _add_config_args(history_parser)
    history_target = history_parser.add_mutually_exclusive_group(required=True)
    history_target.add_argument("session_id", nargs="?")
    history_target.add_argument("--agent", metavar="AGENT_ID", help="List the agent's sessions instead")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = _load(args.config, args.env)

    match args.command:
        case "config-check":
            _check_config(args.config, config)
        case "serve":
            _serve(config)
        case "runner":
            _run_runner(config)
        case "create-agent":
            _manage(config, lambda app: _create_agent(app, args))
        case "add-knowledge":
            _manage(config, lambda app: _add_knowledge(app, args))
        case "connect-discord":
            if not args.deactivate and not (args.agent_id and args.token and args.client_id):
                parser.error("connect-discord needs AGENT_ID --token --client-id, or --deactivate CONFIG_ID")
            _manage(config, lambda app: _connect_discord(app, args))
        case "history":
            _manage(config, lambda app: _history(app, args.session_id, args.agent))


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and adjust it", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, config: AppConfig) -> None:
    """Validate configuration and print summary."""
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    backend = config.ai.backend if config.ai.api_key or config.ai.backend == "stub" else "stub (no api key)"
    print(f"  AI: {backend} [{config.ai.model}]")
    print(f"  Server: {config.server.host}:{config.server.port} (backend key {'set' if config.server.backend_key else 'NOT set'})")
    print(f"  Runner: {config.runner.base_url or '(no base_url)'} instance={config.runner.instance_id}")
    try:
        config.runner.require_backend()
    except ConfigurationError as e:
        print(f"  Runner warning: {e.message}")


def _serve(config: AppConfig) -> None:
    import uvicorn

    from vaste_bot.api.main import create_app

    setup_logging(config.log_level, config.log_format)
    app = create_app(VasteApp(config))
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level=config.log_level.lower())


def _run_runner(config: AppConfig) -> None:
    from vaste_bot.runner.app import RunnerApp

    setup_logging(config.log_level, config.log_format)
    try:
        runner = RunnerApp(config)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        sys.exit(1)

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: _signal_handler())

        try:
            await runner.start()
            await stop_event.wait()
        finally:
            await runner.stop()

    asyncio.run(_async_main())


def _manage(config: AppConfig, action: Callable[[VasteApp], Awaitable[Any]]) -> None:
    """Run one management action against the local store."""
    setup_logging("WARNING", config.log_format)

    async def _async_main() -> None:
        app = VasteApp(config)
        await app.start()
        try:
            await action(app)
        finally:
            await app.stop()

    try:
        asyncio.run(_async_main())
    except VasteError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)


async def _create_agent(app: VasteApp, args: argparse.Namespace) -> None:
    agent = await app.agents.create_agent(
        owner_id=args.owner,
        name=args.name,
        welcome_message=args.welcome_message,
        system_prompt=args.system_prompt,
        temperature=args.temperature,
    )
    print(f"Created agent {agent.id} ({agent.name})")
    print(f'  Embed: <script src="http://{app.config.server.host}:{app.config.server.port}/widget.js" data-bot-id="{agent.id}"></script>')


async def _add_knowledge(app: VasteApp, args: argparse.Namespace) -> None:
    if args.url:
        entry = await app.knowledge.extract_from_url(args.agent_id, args.user, args.url)
    elif args.file:
        entry = await app.knowledge.add_file(args.agent_id, args.user, args.file)
    else:
        label, text = args.text
        entry = await app.knowledge.add_entry(args.agent_id, args.user, label, text)
    print(f"Added knowledge {entry.id} [{entry.input}] ({len(entry.output)} chars)")


async def _connect_discord(app: VasteApp, args: argparse.Namespace) -> None:
    if args.deactivate:
        await app.bot_configs.set_active(args.deactivate, False)
        print(f"Deactivated bot config {args.deactivate}")
        return
    config = await app.bot_configs.connect(args.agent_id, args.token, args.client_id, args.guild_id)
    print(f"Registered Discord bot config {config.id} for agent {config.agent_id}")


async def _history(app: VasteApp, session_id: str | None, agent_id: str | None) -> None:
    if agent_id:
        for session in await app.widget.list_sessions(agent_id):
            last_active = datetime.fromtimestamp(session.last_active / 1000, tz=timezone.utc)
            print(f"{session.id}  last active {last_active:%Y-%m-%d %H:%M} UTC  {session.user_id}")
        return
    for message in await app.widget.get_messages(session_id):
        print(f"[{message.role}] {message.content}")


if __name__ == "__main__":
    main()
