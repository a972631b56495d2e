from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import socket
from typing import Any, Optional
import urllib.request

import pytest

from adapters.telegram_bot_notifier import TelegramBotNotifier
from core.config import PollerConfig
from core.errors import CircuitOpen, FetchError, NotifyError, PersistenceError
from core.models import Account, CanonicalEvent, EventPage, Filter, RawEvent
from core.poller import Poller
from core.rules_engine import build_filters
from core.state import FIRST_POLL_EPOCH, FirstPollPolicy

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
T0 = datetime(2024, 6, 1, 11, 0, tzinfo=timezone.utc)


def _raw(created_at: datetime, event_type: str = "WatchEvent", payload: Any = None) -> RawEvent:
    return RawEvent(
        id=created_at.isoformat(),
        type=event_type,
        created_at=created_at,
        public=True,
        actor_login="octocat",
        repo_name="octo/repo",
        payload=payload if payload is not None else {"action": "started"},
    )


class FakeStore:
    def __init__(self, accounts: list[Account], filters: Optional[dict[int, list[Filter]]] = None) -> None:
        self.accounts = accounts
        self.filters = filters or {}
        self.recorded: list[tuple[int, datetime, datetime]] = []
        self.fail_record = False

    def list_accounts(self) -> list[Account]:
        return list(self.accounts)

    def list_filters(self, account_id: int) -> list[Filter]:
        return self.filters.get(account_id, [])

    def record_poll_result(self, account_id: int, last_seen_at: datetime, next_eligible_at: datetime) -> None:
        if self.fail_record:
            raise PersistenceError("disk full")
        self.recorded.append((account_id, last_seen_at, next_eligible_at))


class FakeSource:
    """Serves a single page of events per login; logins in ``failing`` raise."""

    def __init__(
        self,
        events: Optional[dict[str, list[RawEvent]]] = None,
        failing: Optional[set[str]] = None,
    ) -> None:
        self.events = events or {}
        self.failing = failing or set()
        self.requested: list[str] = []

    async def list_received_events(self, login: str, page: int) -> EventPage:
        self.requested.append(login)
        if login in self.failing:
            raise FetchError(f"cannot list {login}")
        return EventPage(events=tuple(self.events.get(login, [])), next_page=None, poll_interval="60")


class FakeNotifier:
    def __init__(self, fail_after: Optional[int] = None) -> None:
        self.sent: list[CanonicalEvent] = []
        self._fail_after = fail_after

    async def notify(self, event: CanonicalEvent) -> None:
        if self._fail_after is not None and len(self.sent) >= self._fail_after:
            raise NotifyError("sink down")
        self.sent.append(event)


def _account(account_id: int, **kwargs: Any) -> Account:
    kwargs.setdefault("last_seen_at", T0)
    return Account(id=account_id, github_login=f"user{account_id}", **kwargs)


def _cycle(poller: Poller, stop: Optional[asyncio.Event] = None):
    return asyncio.run(poller.run_cycle(now=NOW, stop=stop))


def test_new_events_are_persisted_then_notified() -> None:
    events = [
        _raw(T0 + timedelta(seconds=3)),
        _raw(T0 + timedelta(seconds=2)),
        _raw(T0 + timedelta(seconds=1)),
        _raw(T0),
    ]
    store = FakeStore([_account(1)])
    notifier = FakeNotifier()
    poller = Poller(store, FakeSource({"user1": events}), notifier)

    report = _cycle(poller)

    assert store.recorded == [(1, T0 + timedelta(seconds=3), NOW + timedelta(seconds=60))]
    assert [event.created_at for event in notifier.sent] == [
        T0 + timedelta(seconds=3),
        T0 + timedelta(seconds=2),
        T0 + timedelta(seconds=1),
    ]
    assert report.polled == 1
    assert report.fetched == 3
    assert report.notified == 3


def test_never_polled_account_uses_fixed_epoch() -> None:
    after = FIRST_POLL_EPOCH + timedelta(days=1)
    before = FIRST_POLL_EPOCH - timedelta(days=1)
    store = FakeStore([_account(1, last_seen_at=None)])
    notifier = FakeNotifier()
    poller = Poller(store, FakeSource({"user1": [_raw(after), _raw(before)]}), notifier)

    _cycle(poller)

    assert [event.created_at for event in notifier.sent] == [after]
    assert store.recorded[0][1] == after


def test_never_polled_account_can_take_everything() -> None:
    before = FIRST_POLL_EPOCH - timedelta(days=1)
    store = FakeStore([_account(1, last_seen_at=None)])
    notifier = FakeNotifier()
    config = PollerConfig(first_poll=FirstPollPolicy.EVERYTHING)
    poller = Poller(store, FakeSource({"user1": [_raw(before)]}), notifier, config=config)

    _cycle(poller)

    assert len(notifier.sent) == 1


def test_account_not_yet_due_is_skipped() -> None:
    store = FakeStore([_account(1, next_eligible_poll_at=NOW + timedelta(seconds=1))])
    source = FakeSource({"user1": [_raw(T0 + timedelta(seconds=1))]})
    poller = Poller(store, source, FakeNotifier())

    report = _cycle(poller)

    assert source.requested == []
    assert report.skipped == 1
    assert store.recorded == []


def test_failing_account_does_not_stop_the_others() -> None:
    accounts = [_account(i) for i in range(1, 7)]
    events = {f"user{i}": [_raw(T0 + timedelta(seconds=i))] for i in range(1, 7)}
    store = FakeStore(accounts)
    source = FakeSource(events, failing={"user3"})
    notifier = FakeNotifier()
    poller = Poller(store, source, notifier)

    report = _cycle(poller)

    assert source.requested == [f"user{i}" for i in range(1, 7)]
    assert [account_id for account_id, _, _ in store.recorded] == [1, 2, 4, 5, 6]
    assert report.failed == 1
    assert report.polled == 5
    assert len(notifier.sent) == 5


def test_circuit_opens_after_too_many_consecutive_errors() -> None:
    accounts = [_account(i) for i in range(1, 9)]
    source = FakeSource(failing={f"user{i}" for i in range(1, 9)})
    poller = Poller(FakeStore(accounts), source, FakeNotifier())

    with pytest.raises(CircuitOpen) as excinfo:
        _cycle(poller)

    # Five failures are tolerated; the sixth trips the breaker.
    assert excinfo.value.consecutive_errors == 6
    assert source.requested == [f"user{i}" for i in range(1, 7)]
    assert isinstance(excinfo.value.last_error, FetchError)


def test_success_resets_consecutive_error_count() -> None:
    accounts = [_account(i) for i in range(1, 12)]
    failing = {f"user{i}" for i in range(1, 12) if i != 6}
    poller = Poller(FakeStore(accounts), FakeSource(failing=failing), FakeNotifier())

    report = _cycle(poller)

    assert report.failed == 10
    assert report.polled == 1


def test_persistence_failure_prevents_dispatch() -> None:
    store = FakeStore([_account(1)])
    store.fail_record = True
    notifier = FakeNotifier()
    poller = Poller(store, FakeSource({"user1": [_raw(T0 + timedelta(seconds=1))]}), notifier)

    report = _cycle(poller)

    assert notifier.sent == []
    assert report.failed == 1


def test_notifier_error_aborts_account_after_watermark_is_saved() -> None:
    events = [_raw(T0 + timedelta(seconds=2)), _raw(T0 + timedelta(seconds=1))]
    store = FakeStore([_account(1)])
    notifier = FakeNotifier(fail_after=1)
    poller = Poller(store, FakeSource({"user1": events}), notifier)

    report = _cycle(poller)

    assert len(notifier.sent) == 1
    assert store.recorded[0][1] == T0 + timedelta(seconds=2)
    assert report.failed == 1


def test_filters_decide_what_is_notified() -> None:
    events = [
        _raw(T0 + timedelta(seconds=2), "IssuesEvent", {"action": "opened", "issue": {"number": 1}}),
        _raw(T0 + timedelta(seconds=1), "WatchEvent"),
    ]
    filters = build_filters(
        [{"on_match_discard": False, "conditions": [{"type": "IssuesEvent", "payload_action": "opened"}]}]
    )
    store = FakeStore([_account(1, default_discard=True)], {1: filters})
    notifier = FakeNotifier()
    poller = Poller(store, FakeSource({"user1": events}), notifier)

    report = _cycle(poller)

    assert [event.type for event in notifier.sent] == ["IssuesEvent"]
    assert report.fetched == 2
    assert report.notified == 1
    # The watermark covers discarded events too.
    assert store.recorded[0][1] == T0 + timedelta(seconds=2)


def test_malformed_payload_is_dropped_but_still_advances_watermark() -> None:
    events = [
        _raw(T0 + timedelta(seconds=2), "IssuesEvent", ["broken"]),
        _raw(T0 + timedelta(seconds=1), "WatchEvent"),
    ]
    store = FakeStore([_account(1)])
    notifier = FakeNotifier()
    poller = Poller(store, FakeSource({"user1": events}), notifier)

    report = _cycle(poller)

    assert [event.type for event in notifier.sent] == ["WatchEvent"]
    assert store.recorded[0][1] == T0 + timedelta(seconds=2)
    assert report.failed == 0


def test_no_new_events_leaves_state_untouched() -> None:
    store = FakeStore([_account(1)])
    poller = Poller(store, FakeSource({"user1": [_raw(T0)]}), FakeNotifier())

    report = _cycle(poller)

    assert store.recorded == []
    assert report.polled == 1
    assert report.fetched == 0


def test_stop_signal_aborts_between_accounts() -> None:
    stop = asyncio.Event()
    stop.set()
    source = FakeSource()
    poller = Poller(FakeStore([_account(1), _account(2)]), source, FakeNotifier())

    report = _cycle(poller, stop=stop)

    assert source.requested == []
    assert report.polled == 0


def test_preview_marks_verdicts_without_side_effects() -> None:
    events = [
        _raw(T0 + timedelta(seconds=2), "PushEvent", {"ref": "refs/heads/main", "size": 1}),
        _raw(T0 + timedelta(seconds=1), "WatchEvent"),
    ]
    filters = build_filters([{"on_match_discard": True, "conditions": [{"type": "PushEvent"}]}])
    store = FakeStore([_account(1)], {1: filters})
    notifier = FakeNotifier()
    poller = Poller(store, FakeSource({"user1": events}), notifier)

    previewed = asyncio.run(poller.preview(store.accounts[0], T0))

    assert [event.discarded for event in previewed] == [True, False]
    assert store.recorded == []
    assert notifier.sent == []


def test_run_stops_when_signalled() -> None:
    source = FakeSource()
    poller = Poller(FakeStore([_account(1)]), source, FakeNotifier(), config=PollerConfig(tick_seconds=0.01))

    async def _scenario() -> None:
        stop = asyncio.Event()
        task = asyncio.create_task(poller.run(stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(_scenario())

    assert source.requested


def test_bot_timeout_fails_only_its_account(monkeypatch) -> None:
    def _timeout(*args: Any, **kwargs: Any) -> None:
        raise socket.timeout("The read operation timed out")

    monkeypatch.setattr(urllib.request, "urlopen", _timeout)
    store = FakeStore([_account(1), _account(2)])
    source = FakeSource({"user1": [_raw(T0 + timedelta(seconds=1))], "user2": [_raw(T0)]})
    poller = Poller(store, source, TelegramBotNotifier("token", "42"))

    report = _cycle(poller)

    assert source.requested == ["user1", "user2"]
    assert report.failed == 1
    assert report.polled == 1
    # The watermark was saved before delivery was attempted.
    assert store.recorded[0][:2] == (1, T0 + timedelta(seconds=1))
