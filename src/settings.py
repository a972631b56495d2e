"""Static configuration for maintainer.

All user-editable settings (accounts, filters, poller, notifications,
logging) live in a single JSON file for quick edits without touching Python.
Secrets stay in the environment (or a .env file).
"""

import json
import os

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# MAINTAINER_CONFIG lets a deployment point at a config outside the checkout.
CONFIG_PATH = os.getenv("MAINTAINER_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database.
DB_PATH = _resolve_path(_CONFIG.get("db_path", "maintainer.db"))

# Accounts and their ordered filters; synced into the database by `sync`.
ACCOUNTS_CONFIG = _CONFIG.get("accounts", [])

# Poller controls.
# - TICK_SECONDS: delay between cycles
# - MAX_CONSECUTIVE_ERRORS: account failures in a row before a cycle aborts
# - FIRST_POLL: "epoch" or "everything" for never-polled accounts
_poller = _CONFIG.get("poller", {})
TICK_SECONDS = float(_poller.get("tick_seconds", 60))
MAX_CONSECUTIVE_ERRORS = int(_poller.get("max_consecutive_errors", 5))
FIRST_POLL = _poller.get("first_poll", "epoch")

# GitHub API access; the token is optional but raises the rate limit.
_github = _CONFIG.get("github", {})
GITHUB_BASE_URL = _github.get("base_url", "https://api.github.com/")
GITHUB_TIMEOUT_SECONDS = float(_github.get("timeout_seconds", 15))
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")

# Notification method switches adapters without changing core logic.
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHOD = _notifications.get("notification_method", "stdout")
# Bot chat id is only required when notification_method=bot.
BOT_CHAT_ID = _notifications.get("bot_chat_id")
BODY_CHARS = int(_notifications.get("body_chars", 400))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
