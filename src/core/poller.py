"""Per-account poll cycle: fetch, normalize, persist, filter, notify.

This module is integration-agnostic. It only relies on ports for the
account store, the remote event source and notifications.

Each account goes through a strict order:
1) Skip if its next eligible poll time is still in the future
2) Fetch everything newer than its watermark
3) Normalize raw events into canonical events
4) Persist the new watermark and next eligible poll time
5) Apply the account's filters
6) Notify surviving events in their original order

Persisting before notifying means a crash in between loses notifications
rather than repeating them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import List, Optional, Sequence, Tuple

from core.config import PollerConfig
from core.errors import CircuitOpen, MaintainerError, PayloadParseError
from core.fetcher import IncrementalFetcher
from core.models import Account, CanonicalEvent, RawEvent
from core.normalizer import EventNormalizer
from core.ports import AccountStorePort, EventSourcePort, NotifierPort
from core.rules_engine import apply_verdicts
from core.state import AccountPollState

LOGGER = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Counters for one pass over all accounts."""

    polled: int = 0
    skipped: int = 0
    failed: int = 0
    fetched: int = 0
    notified: int = 0


class Poller:
    """Drives the repeating poll cycle across all accounts."""

    def __init__(
        self,
        store: AccountStorePort,
        source: EventSourcePort,
        notifier: NotifierPort,
        config: PollerConfig = PollerConfig(),
        normalizer: Optional[EventNormalizer] = None,
    ) -> None:
        self._store = store
        self._fetcher = IncrementalFetcher(source)
        self._notifier = notifier
        self._config = config
        self._normalizer = normalizer or EventNormalizer()

    async def run(self, stop: asyncio.Event) -> None:
        """Run a cycle every ``tick_seconds`` until ``stop`` is set."""

        tick = self._config.tick_seconds
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=tick)
                break
            except asyncio.TimeoutError:
                pass

            LOGGER.info("Polling...")
            try:
                await self.run_cycle(stop=stop)
            except CircuitOpen as exc:
                LOGGER.error("Poll cycle aborted: %s (last error: %s)", exc, exc.last_error)
            except MaintainerError:
                LOGGER.exception("Polling error")
        LOGGER.info("Poller finishing...")

    async def run_cycle(
        self,
        now: Optional[datetime] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> CycleReport:
        """Poll every due account once.

        Account-level failures are logged and counted; once the count of
        consecutive failures exceeds ``max_consecutive_errors`` the rest of
        the cycle is abandoned with ``CircuitOpen``.
        """

        if now is None:
            now = datetime.now(timezone.utc)
        accounts = self._store.list_accounts()
        report = CycleReport()
        consecutive_errors = 0

        for account in accounts:
            if stop is not None and stop.is_set():
                LOGGER.info("Cycle cancelled before account %s", account.id)
                break

            state = AccountPollState.from_account(account)
            if not state.is_due(now):
                LOGGER.debug(
                    "Account %s not due until %s, skipping",
                    account.id,
                    state.next_eligible_poll_at,
                )
                report.skipped += 1
                continue

            try:
                fetched, notified = await self.poll_account(account, now)
            except MaintainerError as exc:
                consecutive_errors += 1
                report.failed += 1
                LOGGER.warning("Polling account %s (%s) failed: %s", account.id, account.github_login, exc)
                if consecutive_errors > self._config.max_consecutive_errors:
                    LOGGER.error("Too many consecutive errors (%s), aborting cycle", consecutive_errors)
                    raise CircuitOpen(consecutive_errors, exc) from exc
                continue

            consecutive_errors = 0
            report.polled += 1
            report.fetched += fetched
            report.notified += notified

        LOGGER.info(
            "Cycle complete: polled=%s, skipped=%s, failed=%s, fetched=%s, notified=%s",
            report.polled,
            report.skipped,
            report.failed,
            report.fetched,
            report.notified,
        )
        return report

    async def poll_account(self, account: Account, now: datetime) -> Tuple[int, int]:
        """Run one account through the cycle; return (fetched, notified)."""

        LOGGER.debug("Polling for account %s (%s)", account.id, account.github_login)
        state = AccountPollState.from_account(account)
        filters = self._store.list_filters(account.id)

        result = await self._fetcher.fetch(account, state.fetch_watermark(self._config.first_poll))
        events = self.normalize_all(result.events)

        if result.events:
            advanced = state.advance(result.events, now, result.poll_interval)
            self._store.record_poll_result(
                account.id,
                advanced.last_seen_at,
                advanced.next_eligible_poll_at,
            )

        kept = apply_verdicts(events, filters, account.default_discard)
        for event in kept:
            await self._notifier.notify(event)

        return len(result.events), len(kept)

    async def preview(self, account: Account, since: datetime) -> List[CanonicalEvent]:
        """Fetch events newer than ``since`` and mark each with its verdict.

        Nothing is persisted and nothing is notified; discarded events are
        returned too so callers can show why they were dropped.
        """

        filters = self._store.list_filters(account.id)
        result = await self._fetcher.fetch(account, since)
        events = self.normalize_all(result.events)
        apply_verdicts(events, filters, account.default_discard)
        return events

    def normalize_all(self, raw_events: Sequence[RawEvent]) -> List[CanonicalEvent]:
        """Normalize events one by one, dropping those whose payload cannot be decoded."""

        events: List[CanonicalEvent] = []
        for raw in raw_events:
            try:
                events.append(self._normalizer.normalize(raw))
            except PayloadParseError as exc:
                LOGGER.warning("Dropping event %s (%s): %s", raw.id, raw.type, exc)
        return events
