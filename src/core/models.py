"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to GitHub's JSON shapes or to the storage schema.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import re
from typing import Any, Mapping, Optional, Tuple

from core.payloads import Payload


@dataclass(frozen=True)
class Account:
    """A watched user as read from the account store.

    ``last_seen_at`` is the watermark; ``None`` means the account was never
    polled. ``next_eligible_poll_at`` of ``None`` means poll immediately.
    """

    id: int
    github_login: str
    last_seen_at: Optional[datetime] = None
    next_eligible_poll_at: Optional[datetime] = None
    default_discard: bool = False


@dataclass(frozen=True)
class Condition:
    """A single predicate. Unset matchers (empty string / ``None``) are wildcards."""

    negate: bool = False
    event_type: str = ""
    payload_action: str = ""
    label: Optional[str] = None
    milestone_title: Optional[str] = None
    title_regex: Optional[re.Pattern] = None
    body_regex: Optional[re.Pattern] = None
    # None = any visibility, True = public only, False = private only
    public: Optional[bool] = None
    organization_id: Optional[int] = None
    repository_id: Optional[int] = None


@dataclass(frozen=True)
class Filter:
    """An AND-group of conditions plus the verdict applied when they all match."""

    conditions: Tuple[Condition, ...] = ()
    on_match_discard: bool = False
    id: Optional[int] = None


@dataclass(frozen=True)
class RawEvent:
    """An untouched activity event as listed by the remote platform.

    ``payload`` is the type-specific JSON object, decoded lazily by
    ``core.payloads.parse_payload``.
    """

    id: str
    type: str
    created_at: datetime
    public: bool
    actor_login: str = ""
    repo_id: Optional[int] = None
    repo_name: str = ""
    org_id: Optional[int] = None
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class CanonicalEvent:
    """Normalized event consumed by the rule engine and notifiers.

    ``discarded`` stays ``None`` until the rule engine has assigned a verdict.
    """

    raw_event: RawEvent
    payload: Optional[Payload]
    created_at: datetime
    type: str
    public: bool
    actor: str = ""
    action: str = ""
    subject: str = ""
    title: str = ""
    body: str = ""
    discarded: Optional[bool] = None

    def __str__(self) -> str:
        return self.title


@dataclass(frozen=True)
class EventPage:
    """One page of a remote event listing.

    ``poll_interval`` is the raw recommended-poll-interval header value, or
    ``None`` when the remote did not send one. ``next_page`` is ``None`` on
    the last page.
    """

    events: Tuple[RawEvent, ...]
    next_page: Optional[int] = None
    poll_interval: Optional[str] = None
