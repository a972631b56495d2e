"""Filter compilation and verdict evaluation (core domain)."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Optional

from core.models import CanonicalEvent, Condition, Filter
from core.payloads import issue_view


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _optional_id(value: Any) -> Optional[int]:
    # 0 is the "any" sentinel used by stored conditions
    if value is None or value == 0 or value == "":
        return None
    return int(value)


def _compile(pattern: Any, where: str) -> Optional[re.Pattern]:
    if pattern is None or pattern == "":
        return None
    try:
        return re.compile(str(pattern))
    except re.error as exc:
        raise ValueError(f"Invalid regex {pattern!r} in {where}: {exc}") from exc


def build_condition(config: Mapping[str, Any], where: str = "condition") -> Condition:
    """Build a Condition from a config or storage mapping.

    Empty strings and zero ids are treated as "not set" so stored rows and
    hand-written JSON share one representation.
    """

    public = config.get("public")
    return Condition(
        negate=bool(config.get("negate", False)),
        event_type=str(config.get("type") or ""),
        payload_action=str(config.get("payload_action") or ""),
        label=_optional_str(config.get("label")),
        milestone_title=_optional_str(config.get("milestone_title")),
        title_regex=_compile(config.get("title_regex"), where),
        body_regex=_compile(config.get("body_regex"), where),
        public=None if public is None else bool(public),
        organization_id=_optional_id(config.get("organization_id")),
        repository_id=_optional_id(config.get("repository_id")),
    )


def build_filters(filters_config: Iterable[Mapping[str, Any]]) -> List[Filter]:
    """Normalize filter configs in their configured order.

    Disabled filters are dropped. Invalid regular expressions raise
    ``ValueError`` naming the filter and condition position.
    """

    compiled: List[Filter] = []
    for filter_index, entry in enumerate(filters_config):
        if not entry.get("enabled", True):
            continue
        conditions = tuple(
            build_condition(condition, f"filter {filter_index} condition {condition_index}")
            for condition_index, condition in enumerate(entry.get("conditions", []) or [])
        )
        compiled.append(
            Filter(
                conditions=conditions,
                on_match_discard=bool(entry.get("on_match_discard", False)),
                id=entry.get("id"),
            )
        )
    return compiled


def _payload_action(event: CanonicalEvent) -> str:
    if event.payload is not None:
        return getattr(event.payload, "action", "")
    # Types without a typed variant still carry their raw action.
    raw_payload = event.raw_event.payload
    if isinstance(raw_payload, Mapping):
        return str(raw_payload.get("action") or "")
    return ""


def _matchers_hold(condition: Condition, event: CanonicalEvent) -> bool:
    raw = event.raw_event

    if condition.event_type and condition.event_type != raw.type:
        return False
    if condition.payload_action and condition.payload_action != _payload_action(event):
        return False
    if condition.public is not None and condition.public != raw.public:
        return False
    if condition.organization_id is not None and condition.organization_id != raw.org_id:
        return False
    if condition.repository_id is not None and condition.repository_id != raw.repo_id:
        return False

    if (
        condition.label is None
        and condition.milestone_title is None
        and condition.title_regex is None
        and condition.body_regex is None
    ):
        return True

    # Issue matchers only apply to payloads that carry an issue or pull request.
    issue = issue_view(event.payload)
    if issue is None:
        return False
    if condition.label is not None and condition.label not in issue.labels:
        return False
    if condition.milestone_title is not None and condition.milestone_title != issue.milestone_title:
        return False
    if condition.title_regex is not None and not condition.title_regex.search(issue.title):
        return False
    if condition.body_regex is not None and not condition.body_regex.search(issue.body):
        return False
    return True


def condition_matches(condition: Condition, event: CanonicalEvent) -> bool:
    """AND of the condition's set matchers, inverted when ``negate`` is set."""

    return _matchers_hold(condition, event) != condition.negate


def filter_matches(filter_: Filter, event: CanonicalEvent) -> bool:
    """True when every condition matches. A filter without conditions matches everything."""

    return all(condition_matches(condition, event) for condition in filter_.conditions)


def evaluate(event: CanonicalEvent, filters: Iterable[Filter], default_discard: bool) -> bool:
    """Return the discard verdict for one event.

    Matching logic:
    - Filters are tried in order; the first one whose conditions all match
      decides, using its ``on_match_discard``.
    - If no filter matches, ``default_discard`` decides.

    Pure: it reads the event but never mutates it.
    """

    for filter_ in filters:
        if filter_matches(filter_, event):
            return filter_.on_match_discard
    return default_discard


def apply_verdicts(
    events: Iterable[CanonicalEvent],
    filters: Iterable[Filter],
    default_discard: bool,
) -> List[CanonicalEvent]:
    """Set ``discarded`` on every event and return the kept ones in order."""

    filters = list(filters)
    kept: List[CanonicalEvent] = []
    for event in events:
        event.discarded = evaluate(event, filters, default_discard)
        if not event.discarded:
            kept.append(event)
    return kept
