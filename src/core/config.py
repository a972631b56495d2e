"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.state import FirstPollPolicy


@dataclass(frozen=True)
class PollerConfig:
    """Scheduling and circuit-breaker settings for the poller."""

    tick_seconds: float = 60.0
    max_consecutive_errors: int = 5
    first_poll: FirstPollPolicy = FirstPollPolicy.EPOCH


@dataclass(frozen=True)
class GitHubConfig:
    """Connection settings for the GitHub event source adapter."""

    base_url: str = "https://api.github.com/"
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class NotificationConfig:
    """Notification formatting settings consumed by notifier adapters."""

    body_chars: int = 400
