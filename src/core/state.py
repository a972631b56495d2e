"""Per-account watermark and scheduling bookkeeping (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional

from core.models import Account, RawEvent

# Accounts that were never polled are treated as read up to this instant.
FIRST_POLL_EPOCH = datetime(2017, 6, 30, tzinfo=timezone(timedelta(hours=9, minutes=30)))


class FirstPollPolicy(str, Enum):
    """What a never-polled account's first fetch is bounded by."""

    EPOCH = "epoch"
    EVERYTHING = "everything"


@dataclass(frozen=True)
class AccountPollState:
    """Watermark plus next eligible poll time for one account."""

    last_seen_at: Optional[datetime] = None
    next_eligible_poll_at: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountPollState":
        return cls(
            last_seen_at=account.last_seen_at,
            next_eligible_poll_at=account.next_eligible_poll_at,
        )

    def is_due(self, now: datetime) -> bool:
        """True unless ``now`` is still before the next eligible poll time."""

        return self.next_eligible_poll_at is None or now >= self.next_eligible_poll_at

    def fetch_watermark(self, policy: FirstPollPolicy = FirstPollPolicy.EPOCH) -> Optional[datetime]:
        """Return the exclusive lower bound to fetch with.

        ``None`` asks the fetcher for everything the remote still lists.
        """

        if self.last_seen_at is not None:
            return self.last_seen_at
        if policy is FirstPollPolicy.EPOCH:
            return FIRST_POLL_EPOCH
        return None

    def advance(
        self,
        events: Iterable[RawEvent],
        now: datetime,
        poll_interval: timedelta,
    ) -> "AccountPollState":
        """Return the state after a fetch that returned ``events``.

        The watermark never moves backwards. With no events the state is
        returned unchanged.
        """

        newest = max((event.created_at for event in events), default=None)
        if newest is None:
            return self
        if self.last_seen_at is not None and newest < self.last_seen_at:
            newest = self.last_seen_at
        return AccountPollState(last_seen_at=newest, next_eligible_poll_at=now + poll_interval)
