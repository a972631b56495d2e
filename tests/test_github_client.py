from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from adapters.github_client import GitHubEventSource, raw_event_from_json
from core.config import GitHubConfig
from core.errors import FetchError

BASE_URL = "https://api.github.test/"

EVENT = {
    "id": "123",
    "type": "IssuesEvent",
    "created_at": "2024-01-01T10:00:00Z",
    "public": True,
    "actor": {"login": "octocat"},
    "repo": {"id": 5, "name": "octo/repo"},
    "org": {"id": 9},
    "payload": {"action": "opened", "issue": {"number": 1}},
}


def _source(handler) -> GitHubEventSource:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return GitHubEventSource(GitHubConfig(base_url=BASE_URL), client=client)


def test_raw_event_from_json_maps_envelope() -> None:
    raw = raw_event_from_json(EVENT)
    assert raw.id == "123"
    assert raw.type == "IssuesEvent"
    assert raw.created_at == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
    assert raw.actor_login == "octocat"
    assert raw.repo_id == 5
    assert raw.repo_name == "octo/repo"
    assert raw.org_id == 9
    assert raw.payload["action"] == "opened"


def test_list_received_events_reads_page_link_and_poll_header() -> None:
    seen_requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_requests.append(request)
        return httpx.Response(
            200,
            json=[EVENT],
            headers={
                "X-Poll-Interval": "60",
                "Link": (
                    f'<{BASE_URL}user/1/received_events?page=3>; rel="next", '
                    f'<{BASE_URL}user/1/received_events?page=10>; rel="last"'
                ),
            },
        )

    page = asyncio.run(_source(handler).list_received_events("octocat", 2))

    assert seen_requests[0].url.path == "/users/octocat/received_events"
    assert seen_requests[0].url.params["page"] == "2"
    assert len(page.events) == 1
    assert page.next_page == 3
    assert page.poll_interval == "60"


def test_last_page_has_no_next_page() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    page = asyncio.run(_source(handler).list_received_events("octocat", 1))

    assert page.events == ()
    assert page.next_page is None
    assert page.poll_interval is None


def test_http_error_becomes_fetch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Bad credentials"})

    with pytest.raises(FetchError, match="HTTP 401"):
        asyncio.run(_source(handler).list_received_events("octocat", 1))


def test_transport_error_becomes_fetch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchError):
        asyncio.run(_source(handler).list_received_events("octocat", 1))


def test_malformed_event_becomes_fetch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{**EVENT, "created_at": "yesterday"}])

    with pytest.raises(FetchError, match="malformed"):
        asyncio.run(_source(handler).list_received_events("octocat", 1))


def test_non_list_body_becomes_fetch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": "Not Found"})

    with pytest.raises(FetchError):
        asyncio.run(_source(handler).list_received_events("octocat", 1))


def test_timestamp_without_offset_is_taken_as_utc() -> None:
    raw = raw_event_from_json({**EVENT, "created_at": "2024-01-01T10:00:00"})
    assert raw.created_at == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
    assert raw.created_at.tzinfo is not None
