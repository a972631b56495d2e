"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the account store, the remote event
source and the notification sink so that the core can be reused with
different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Protocol

from core.models import Account, CanonicalEvent, EventPage, Filter


class AccountStorePort(Protocol):
    """Account and filter operations required by the poller."""

    def list_accounts(self) -> List[Account]:
        ...

    def list_filters(self, account_id: int) -> List[Filter]:
        ...

    def record_poll_result(
        self,
        account_id: int,
        last_seen_at: datetime,
        next_eligible_at: datetime,
    ) -> None:
        ...


class EventSourcePort(Protocol):
    """Paginated listing of the events an account received."""

    async def list_received_events(self, login: str, page: int) -> EventPage:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the core pipeline."""

    async def notify(self, event: CanonicalEvent) -> None:
        ...
