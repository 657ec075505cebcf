"""CLI entry point for chat-sync."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from chat_sync.app import ChatSyncApp
from chat_sync.config import AppConfig, load_config
from chat_sync.core.errors import ChatError
from chat_sync.core.models import Message
from chat_sync.core.types import MessageStatus
from chat_sync.events import ChatEvent, Notice
from chat_sync.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="chat-sync",
        description="Optimistic chat client with polling synchronization",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def _add_config_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
        sub.add_argument("-e", "--env", default=".env", help="Path to .env file")

    _add_config_args(subparsers.add_parser("config-check", help="Validate configuration"))
    _add_config_args(subparsers.add_parser("chats", help="List chats of the configured user"))

    watch_parser = subparsers.add_parser("watch", help="Follow a chat until interrupted")
    watch_parser.add_argument("chat_id", help="Chat to open")
    _add_config_args(watch_parser)

    send_parser = subparsers.add_parser("send", help="Send a text message to a chat")
    send_parser.add_argument("chat_id", help="Target chat")
    send_parser.add_argument("text", help="Message text")
    _add_config_args(send_parser)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = _load(args.config, args.env)
    if args.command == "config-check":
        _check_config(args.config, config)
        return

    setup_logging(config.log_level, config.log_format)
    if args.command == "chats":
        asyncio.run(_list_chats(config))
    elif args.command == "watch":
        asyncio.run(_watch(config, args.chat_id))
    elif args.command == "send":
        asyncio.run(_send(config, args.chat_id, args.text))


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and edit it")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, config: AppConfig) -> None:
    print(f"Configuration valid: {config_path}")
    print(f"  API: {config.api.base_url} (timeout={config.api.timeout}s)")
    print(f"  Token: {'configured' if config.api.token else '(none)'}")
    print(f"  User: {config.user.id} ({config.user.fullname})")
    print(f"  Poll interval: {config.sync.poll_interval}s")
    print(f"  Logging: {config.log_level} ({config.log_format})")


def _format_message(message: Message) -> str:
    sender = message.sender.fullname if message.sender else message.sender_id
    if message.deleted_for_everyone:
        body = "(deleted)"
    elif message.content:
        body = message.content
    elif message.attachments:
        body = f"[{message.type}] {message.attachments[0].url}"
    else:
        body = f"[{message.type}]"
    stamp = message.created_at.strftime("%Y-%m-%d %H:%M")
    pin = " *" if message.is_pinned else ""
    return f"{stamp} {sender}: {body} ({message.status}){pin}"


def _print_notice(notice: Notice) -> None:
    stream = sys.stderr if notice.level == "error" else sys.stdout
    print(f"[{notice.title}] {notice.description}", file=stream)


async def _list_chats(config: AppConfig) -> None:
    app = ChatSyncApp(config)
    await app.start()
    try:
        chats = await app.list_chats()
    except ChatError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await app.stop()

    if not chats:
        print("No chats.")
    for chat in chats:
        kind = "group" if chat.is_group else "direct"
        print(f"{chat.id}  {chat.display_name(config.user.id)}  ({kind}, {len(chat.users)} members)")


async def _watch(config: AppConfig, chat_id: str) -> None:
    app = ChatSyncApp(config)
    stop_event = asyncio.Event()
    seen: set[str] = set()

    def _on_messages(messages: list[Message]) -> None:
        for message in messages:
            key = f"{message.id}:{message.status}:{message.updated_at.isoformat()}:{message.content}"
            if key not in seen:
                seen.add(key)
                print(_format_message(message))

    app.events.on(ChatEvent.MESSAGES_CHANGED, _on_messages)
    app.events.on(ChatEvent.NOTICE, _print_notice)
    app.events.on(ChatEvent.AUTH_REQUIRED, lambda _: stop_event.set())
    app.events.on(ChatEvent.CHAT_DELETED, lambda _: stop_event.set())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: stop_event.set())

    await app.start()
    try:
        session = await app.open_chat(chat_id)
        print(f"== {session.display_name} ==")
        await stop_event.wait()
    finally:
        await app.stop()


async def _send(config: AppConfig, chat_id: str, text: str) -> None:
    app = ChatSyncApp(config)
    app.events.on(ChatEvent.NOTICE, _print_notice)
    await app.start()
    try:
        session = await app.open_chat(chat_id)
        message = await session.send(text)
        print(_format_message(message))
        if message.status == MessageStatus.FAILED:
            sys.exit(1)
    except ChatError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await app.stop()


if __name__ == "__main__":
    main()
