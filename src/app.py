"""Application entry point for the maintainer event watcher."""

from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timedelta, timezone
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint

import settings
from adapters.github_client import GitHubEventSource
from adapters.sqlite_storage import SQLiteStorage
from adapters.stdout_notifier import StdoutNotifier
from adapters.telegram_bot_notifier import TelegramBotNotifier
from core.config import GitHubConfig, NotificationConfig, PollerConfig
from core.errors import CircuitOpen
from core.poller import Poller
from core.rules_engine import build_filters
from core.state import FirstPollPolicy

NAME = "MAINTAINER"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", ["GITHUB_TOKEN", "BOT_API"]):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/maintainer.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _build_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def _build_source() -> GitHubEventSource:
    config = GitHubConfig(
        base_url=settings.GITHUB_BASE_URL,
        timeout_seconds=settings.GITHUB_TIMEOUT_SECONDS,
    )
    return GitHubEventSource(config, token=settings.GITHUB_TOKEN)


def _build_notifier():
    # Select the notification adapter based on configuration to keep the core
    # poller independent from delivery details.
    if settings.NOTIFICATION_METHOD == "bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise RuntimeError("BOT_API is required when notification_method=bot")
        if not settings.BOT_CHAT_ID:
            raise RuntimeError("notifications.bot_chat_id is required for bot notifications")
        return TelegramBotNotifier(
            bot_token=bot_token,
            chat_id=str(settings.BOT_CHAT_ID),
            config=NotificationConfig(body_chars=settings.BODY_CHARS),
        )
    if settings.NOTIFICATION_METHOD == "stdout":
        return StdoutNotifier()
    raise RuntimeError("notification_method must be 'stdout' or 'bot'")


def _poller_config() -> PollerConfig:
    return PollerConfig(
        tick_seconds=settings.TICK_SECONDS,
        max_consecutive_errors=settings.MAX_CONSECUTIVE_ERRORS,
        first_poll=FirstPollPolicy(settings.FIRST_POLL),
    )


def _sync() -> None:
    """Copy accounts and filters from config.json into the database."""

    logger = logging.getLogger(__name__)
    storage = _build_storage()
    for entry in settings.ACCOUNTS_CONFIG:
        filters_config = entry.get("filters", []) or []
        # Compile first so a bad regex fails before anything is written.
        build_filters(filters_config)
        storage.upsert_account(
            int(entry["id"]),
            entry["github_login"],
            default_discard=bool(entry.get("default_discard", False)),
            enabled=bool(entry.get("enabled", True)),
        )
        stored = storage.replace_filters(int(entry["id"]), filters_config)
        logger.info("Synced account %s (%s) with %s filters", entry["id"], entry["github_login"], stored)
    print(f"Synced {len(settings.ACCOUNTS_CONFIG)} accounts into {settings.DB_PATH}")


async def _run_poller(once: bool) -> None:
    logger = logging.getLogger(__name__)
    storage = _build_storage()
    source = _build_source()
    notifier = _build_notifier()
    logger.info("Selected notification method - %s", settings.NOTIFICATION_METHOD)

    poller = Poller(storage, source, notifier, config=_poller_config())
    try:
        if once:
            try:
                report = await poller.run_cycle()
            except CircuitOpen as exc:
                logger.error("Poll cycle aborted: %s", exc)
                raise SystemExit(1) from exc
            print(
                f"polled={report.polled} skipped={report.skipped} failed={report.failed} "
                f"fetched={report.fetched} notified={report.notified}"
            )
            return

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                # Windows event loops have no signal handler support.
                pass
        logger.info("Poller started, ticking every %ss", settings.TICK_SECONDS)
        await poller.run(stop)
    finally:
        await source.aclose()


async def _preview(account_id: int, hours: float) -> None:
    storage = _build_storage()
    account = storage.get_account(account_id)
    if account is None:
        raise SystemExit(f"Unknown account id: {account_id}")

    source = _build_source()
    poller = Poller(storage, source, StdoutNotifier(), config=_poller_config())
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    try:
        events = await poller.preview(account, since)
    finally:
        await source.aclose()

    if not events:
        print(f"No events for {account.github_login} in the last {hours:g}h.")
        return
    for event in events:
        verdict = "discard" if event.discarded else "keep"
        timestamp = event.created_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        print(f"{timestamp} [{verdict:7}] {event.title or event.type}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="maintainer")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the poller")
    subparsers.add_parser("once", help="Run a single poll cycle and exit")
    subparsers.add_parser("sync", help="Load accounts and filters from config.json into the database")
    preview = subparsers.add_parser(
        "preview",
        help="Show recent events for an account with their keep/discard verdicts.",
    )
    preview.add_argument("account_id", type=int)
    preview.add_argument("--hours", type=float, default=24.0, help="How far back to look (default: 24)")

    args = parser.parse_args(argv)
    _configure_logging()

    if args.command == "sync":
        _sync()
        return
    if args.command == "preview":
        asyncio.run(_preview(args.account_id, args.hours))
        return

    _print_banner()
    logging.getLogger(__name__).info("Starting maintainer")
    asyncio.run(_run_poller(once=args.command == "once"))


if __name__ == "__main__":
    main()
