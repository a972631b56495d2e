"""Stream notification adapter.

Writes one ``NOTIFY:`` line per event; useful for local runs and as the
default when no delivery channel is configured.
"""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from core.errors import NotifyError
from core.models import CanonicalEvent


class StdoutNotifier:
    """Notifier adapter that writes event titles to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    async def notify(self, event: CanonicalEvent) -> None:
        stream = self._stream or sys.stdout
        try:
            stream.write(f"NOTIFY: {event.title or event.type}\n")
            stream.flush()
        except OSError as exc:
            raise NotifyError(f"could not write notification: {exc}") from exc
