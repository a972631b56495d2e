"""Error taxonomy for the polling core.

Adapters translate library errors into these so the poller can decide which
failures are account-scoped and which abort the whole cycle.
"""

from __future__ import annotations

from typing import Optional


class MaintainerError(Exception):
    """Base class for all errors raised by the core and its adapters."""


class FetchError(MaintainerError):
    """The remote API or transport failed; the account is skipped this cycle."""


class ProtocolError(MaintainerError):
    """The remote sent a recommended poll interval that could not be parsed."""


class PayloadParseError(MaintainerError):
    """A type-specific event payload could not be decoded."""


class PersistenceError(MaintainerError):
    """The account store failed to record a poll result."""


class NotifyError(MaintainerError):
    """The notification sink rejected an event."""


class CircuitOpen(MaintainerError):
    """Too many consecutive account failures in a single cycle."""

    def __init__(self, consecutive_errors: int, last_error: Optional[BaseException] = None) -> None:
        super().__init__(f"aborting cycle after {consecutive_errors} consecutive account errors")
        self.consecutive_errors = consecutive_errors
        self.last_error = last_error
