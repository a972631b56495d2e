"""GitHub REST event source adapter.

Implements the core EventSourcePort over ``GET /users/{login}/received_events``
and keeps GitHub's JSON shapes out of the core.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Mapping, Optional

import httpx

from core.config import GitHubConfig
from core.errors import FetchError
from core.models import EventPage, RawEvent

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL_HEADER = "X-Poll-Interval"


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"created_at is not a string: {value!r}")
    # GitHub uses a trailing Z, which fromisoformat only accepts on 3.11+
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def raw_event_from_json(item: Mapping[str, Any]) -> RawEvent:
    """Map one GitHub event object to a RawEvent.

    The payload is kept as-is; only the envelope is interpreted here.
    """

    actor = item.get("actor") or {}
    repo = item.get("repo") or {}
    org = item.get("org") or {}
    return RawEvent(
        id=str(item.get("id", "")),
        type=str(item.get("type") or ""),
        created_at=_parse_timestamp(item.get("created_at")),
        public=bool(item.get("public", False)),
        actor_login=str(actor.get("login") or ""),
        repo_id=_optional_int(repo.get("id")),
        repo_name=str(repo.get("name") or ""),
        org_id=_optional_int(org.get("id")),
        payload=item.get("payload") if item.get("payload") is not None else {},
    )


def _next_page(response: httpx.Response) -> Optional[int]:
    link = response.links.get("next")
    if not link or not link.get("url"):
        return None
    page = httpx.URL(link["url"]).params.get("page")
    if page is None or not page.isdigit():
        return None
    return int(page)


class GitHubEventSource:
    """Event source adapter backed by a shared httpx AsyncClient."""

    def __init__(
        self,
        config: GitHubConfig,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            headers = {
                "Accept": "application/vnd.github+json",
                "User-Agent": "maintainer-watch",
            }
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.AsyncClient(
                base_url=config.base_url,
                timeout=config.timeout_seconds,
                headers=headers,
            )
        self._client = client

    async def list_received_events(self, login: str, page: int) -> EventPage:
        """Fetch one page of events received by ``login``.

        Raises ``FetchError`` on transport failures, non-2xx responses and
        bodies that are not an event list.
        """

        try:
            response = await self._client.get(f"users/{login}/received_events", params={"page": page})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"could not get GitHub events for user {login!r}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"could not get GitHub events for user {login!r}: {exc}") from exc

        try:
            items = response.json()
        except ValueError as exc:
            raise FetchError(f"GitHub returned invalid JSON for user {login!r}") from exc
        if not isinstance(items, list):
            raise FetchError(f"GitHub returned a non-list body for user {login!r}")

        try:
            events = tuple(raw_event_from_json(item) for item in items)
        except (AttributeError, TypeError, ValueError) as exc:
            raise FetchError(f"GitHub returned a malformed event for user {login!r}: {exc}") from exc

        LOGGER.debug("Fetched %s events for %s page %s", len(events), login, page)
        return EventPage(
            events=events,
            next_page=_next_page(response),
            poll_interval=response.headers.get(POLL_INTERVAL_HEADER),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
