"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be routed via a bot chat.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request

from adapters.notification_formatting import format_notification
from core.config import NotificationConfig
from core.errors import NotifyError
from core.models import CanonicalEvent


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        config: NotificationConfig = NotificationConfig(),
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._config = config

    def _endpoint(self) -> str:
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _post(self, data: bytes) -> None:
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=10):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise NotifyError(f"Bot API error {e.code}: {body}") from e
        except urllib.error.URLError as e:
            raise NotifyError(f"Bot API unreachable: {e.reason}") from e
        except OSError as e:
            # Read timeouts surface as a bare TimeoutError, not URLError.
            raise NotifyError(f"Bot API request failed: {e}") from e

    async def notify(self, event: CanonicalEvent) -> None:
        """Send the formatted notification via the Bot API."""

        message = format_notification(event, self._config.body_chars, mode="html")
        payload = {
            "chat_id": self._chat_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        data = json.dumps(payload).encode("utf-8")
        # urllib blocks, so keep it off the event loop driving the poller.
        await asyncio.to_thread(self._post, data)
