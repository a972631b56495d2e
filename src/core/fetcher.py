"""Incremental, watermark-bounded fetching of an account's event listing.

The remote lists events newest first. We walk pages forward and stop at the
first event that is not newer than the watermark, so pages consumed by an
earlier cycle are never requested again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import List, Optional

from core.errors import ProtocolError
from core.models import Account, RawEvent
from core.ports import EventSourcePort

LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = timedelta(seconds=60)


@dataclass(frozen=True)
class FetchResult:
    """New events (newest first) and the remote's recommended poll interval."""

    events: List[RawEvent]
    poll_interval: timedelta


def have_observed(watermark: Optional[datetime], created_at: datetime) -> bool:
    """True when an event at ``created_at`` was already seen.

    Events sharing the watermark's exact timestamp count as seen: skipping one
    is preferred over notifying twice.
    """

    return watermark is not None and created_at <= watermark


def parse_poll_interval(value: str) -> timedelta:
    """Parse a recommended-poll-interval header given in whole seconds."""

    try:
        seconds = int(value.strip())
    except ValueError as exc:
        raise ProtocolError(f"could not parse poll interval header {value!r}") from exc
    if seconds < 0:
        raise ProtocolError(f"negative poll interval header {value!r}")
    return timedelta(seconds=seconds)


class IncrementalFetcher:
    """Walks the paginated listing for one account down to its watermark."""

    def __init__(
        self,
        source: EventSourcePort,
        default_poll_interval: timedelta = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._source = source
        self._default_poll_interval = default_poll_interval

    async def fetch(self, account: Account, watermark: Optional[datetime]) -> FetchResult:
        """Return every event newer than ``watermark``, newest first.

        ``watermark`` of ``None`` means nothing was observed yet. The poll
        interval comes from the last page that sent one. Raises
        ``FetchError`` (from the source) or ``ProtocolError``.
        """

        events: List[RawEvent] = []
        poll_interval = self._default_poll_interval
        requested: set[int] = set()
        page = 1

        while True:
            LOGGER.debug("Getting events for %s page %s", account.github_login, page)
            requested.add(page)
            listing = await self._source.list_received_events(account.github_login, page)

            # Later pages carry the more current value.
            if listing.poll_interval is not None:
                poll_interval = parse_poll_interval(listing.poll_interval)

            for event in listing.events:
                if have_observed(watermark, event.created_at):
                    # Listing is newest first, so everything after this was seen too.
                    return FetchResult(events=events, poll_interval=poll_interval)
                events.append(event)

            next_page = listing.next_page
            if not next_page:
                break
            if next_page in requested:
                LOGGER.warning(
                    "Pagination for %s did not advance past page %s, stopping",
                    account.github_login,
                    page,
                )
                break
            page = next_page

        return FetchResult(events=events, poll_interval=poll_interval)
