"""CLI entry point for dashcam-remote."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from dashcam_remote.app import RemoteApp, create_source
from dashcam_remote.config import AppConfig, load_config
from dashcam_remote.core.errors import RemoteError
from dashcam_remote.log import setup_logging
from dashcam_remote.services.uploader import PhotoUploadService
from dashcam_remote.storage.database import Database
from dashcam_remote.storage.offset_store import list_offsets, reset_offset


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="dashcam-remote",
        description="Remote record/photo commands for a dash cam via Telegram and DingTalk",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_config_args(subparsers.add_parser("start", help="Start polling all remotes"))
    _add_config_args(subparsers.add_parser("config-check", help="Validate configuration"))

    offsets_parser = subparsers.add_parser("offsets", help="Show persisted update offsets")
    _add_config_args(offsets_parser)
    offsets_parser.add_argument("--reset", metavar="BOT_ID", help="Forget the offset of one remote")

    upload_parser = subparsers.add_parser("upload", help="Upload photos to a chat")
    _add_config_args(upload_parser)
    upload_parser.add_argument("--bot", required=True, help="Remote id to send through")
    upload_parser.add_argument("--chat", required=True, help="Target chat id")
    upload_parser.add_argument("files", nargs="+", type=Path, help="Photo files")

    args = parser.parse_args(argv)

    if args.command is None:
        # Default to start
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "offsets":
        config = _load_or_exit(args.config, args.env)
        asyncio.run(_offsets(config, args.reset))
    elif args.command == "upload":
        config = _load_or_exit(args.config, args.env)
        setup_logging(config.log_level, config.log_json)
        sys.exit(asyncio.run(_upload(config, args.bot, args.chat, args.files)))
    elif args.command == "start":
        _run(args.config, args.env)


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  Remotes configured: {len(config.remotes)}")
    for remote in config.remotes:
        allowed = ", ".join(sorted(remote.allowed_chat_ids)) or "(none - all chats ignored)"
        print(f"    - {remote.id} ({remote.platform}) allowed: {allowed}")
    polling = config.polling
    print(
        f"  Polling: timeout={polling.timeout}s limit={polling.limit} "
        f"expire={polling.message_expire_seconds}s reconnect={polling.max_reconnect_attempts}x{polling.reconnect_delay:g}s"
    )
    print(f"  Record hook: {' '.join(config.actions.record_command) or '(not set)'}")
    print(f"  Photo hook: {' '.join(config.actions.photo_command) or '(not set)'}")


async def _offsets(config: AppConfig, reset_bot: str | None) -> None:
    async with Database(config.storage.db_path) as db:
        if reset_bot:
            removed = await reset_offset(db, reset_bot)
            print(f"Offset for '{reset_bot}' {'reset' if removed else 'was not stored'}.")
            return
        records = await list_offsets(db)
        if not records:
            print("No offsets stored.")
        for record in records:
            print(f"  {record.bot_id}: next offset {record.next_offset} (updated {record.updated_at:%Y-%m-%d %H:%M:%S})")


class _PrintUploadCallback:
    def on_progress(self, message: str) -> None:
        print(message)

    def on_success(self, message: str) -> None:
        print(message)

    def on_error(self, error: str) -> None:
        print(error, file=sys.stderr)


async def _upload(config: AppConfig, bot_id: str, chat_id: str, files: list[Path]) -> int:
    remote = config.get_remote(bot_id)
    if remote is None:
        print(f"Unknown remote: {bot_id}", file=sys.stderr)
        return 1

    source = create_source(remote)
    try:
        await source.identify()
        uploaded = await PhotoUploadService(source).upload_photos(chat_id, files, _PrintUploadCallback())
    except RemoteError as e:
        print(f"Upload failed: {e}", file=sys.stderr)
        return 1
    finally:
        await source.close()
    return 0 if uploaded else 1


def _run(config_path: str, env_path: str) -> None:
    """Load config and poll until interrupted."""
    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level, config.log_json)

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
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(_signal_handler))

        app = RemoteApp(config)
        await app.start()
        try:
            await stop_event.wait()
        finally:
            await app.stop()

    asyncio.run(_async_main())


if __name__ == "__main__":
    main()
