"""CLI entry point for insights-chat."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import timedelta

from insights_chat.app import InsightsChatApp
from insights_chat.config import AppConfig, load_config
from insights_chat.console import ChatConsole, format_message
from insights_chat.log import setup_logging
from insights_chat.storage.database import Database
from insights_chat.storage.history import HistoryGateway


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="insights-chat",
        description="Conversational business insights with embedded charts",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Start an interactive chat session")
    _add_config_args(chat_parser)
    chat_parser.add_argument(
        "--ephemeral", action="store_true", help="Keep nothing on disk for this session"
    )

    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    history_parser = subparsers.add_parser("history", help="Print the saved conversation")
    _add_config_args(history_parser)

    clear_parser = subparsers.add_parser("clear-history", help="Delete the saved conversation")
    _add_config_args(clear_parser)

    args = parser.parse_args()

    if args.command is None:
        args.command = "chat"
        args.config = "config.yaml"
        args.env = ".env"
        args.ephemeral = False

    config = _load(args.config, args.env)

    if args.command == "config-check":
        _check_config(config, args.config)
    elif args.command == "history":
        _print_history(config)
    elif args.command == "clear-history":
        _clear_history(config)
    elif args.command == "chat":
        _run(config, ephemeral=args.ephemeral)


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and edit it.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config: AppConfig, config_path: str) -> None:
    print(f"Configuration valid: {config_path}")
    print(f"  Endpoint: {config.transport.base_url}{config.transport.endpoint}")
    print(f"  Timeout: {config.transport.timeout}s")
    print(f"  Auth token: {'set' if config.transport.api_token else '(none)'}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  History TTL: {config.storage.history_ttl_hours}h")
    print(
        f"  Input length: {config.chat.min_input_length}-{config.chat.max_input_length} chars"
    )


def _open_history(config: AppConfig) -> tuple[Database, HistoryGateway]:
    db = Database(config.storage.db_path)
    db.initialize()
    gateway = HistoryGateway(
        db,
        key=config.storage.history_key,
        ttl=timedelta(hours=config.storage.history_ttl_hours),
    )
    return db, gateway


def _print_history(config: AppConfig) -> None:
    setup_logging(config.log_level, json_output=config.log_json)
    db, gateway = _open_history(config)
    try:
        snapshot = gateway.load()
    finally:
        db.close()

    if snapshot is None or not snapshot.messages:
        print("No saved conversation.")
        return
    print(f"Conversation: {snapshot.conversation_id or '(unbound)'}")
    print(f"Saved at: {snapshot.saved_at.isoformat()}")
    for message in snapshot.messages:
        print(format_message(message))


def _clear_history(config: AppConfig) -> None:
    setup_logging(config.log_level, json_output=config.log_json)
    db, gateway = _open_history(config)
    try:
        gateway.clear()
    finally:
        db.close()
    print("Saved conversation deleted.")


def _run(config: AppConfig, ephemeral: bool = False) -> None:
    setup_logging(config.log_level, json_output=config.log_json)

    async def _async_main() -> None:
        app = InsightsChatApp(config, ephemeral=ephemeral, on_thinking_hint=_thinking_hint)
        await app.start()
        try:
            await ChatConsole(app).run()
        finally:
            await app.stop()

    try:
        asyncio.run(_async_main())
    except KeyboardInterrupt:
        pass


def _thinking_hint(visible: bool) -> None:
    if visible:
        print("(still thinking, this can take a moment...)")


if __name__ == "__main__":
    main()
