"""Typed payload variants for the GitHub event kinds we understand.

Each supported event type decodes into its own frozen dataclass so the
normalizer and the rule engine can match on concrete fields instead of
poking at untyped JSON. Types without a variant decode to ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from core.errors import PayloadParseError


@dataclass(frozen=True)
class IssueView:
    """The issue-like part of an issue or pull request payload."""

    number: int = 0
    title: str = ""
    body: str = ""
    labels: Tuple[str, ...] = ()
    milestone_title: Optional[str] = None
    html_url: str = ""


@dataclass(frozen=True)
class CommitCommentPayload:
    action: str = ""
    commit_id: str = ""
    body: str = ""
    html_url: str = ""


@dataclass(frozen=True)
class CreatePayload:
    ref_type: str = ""
    ref: str = ""
    description: str = ""
    action: str = ""


@dataclass(frozen=True)
class DeletePayload:
    ref_type: str = ""
    ref: str = ""
    action: str = ""


@dataclass(frozen=True)
class ForkPayload:
    forkee_full_name: str = ""
    action: str = ""


@dataclass(frozen=True)
class GollumPayload:
    # (action, page title) pairs
    pages: Tuple[Tuple[str, str], ...] = ()
    action: str = ""


@dataclass(frozen=True)
class IssueCommentPayload:
    action: str = ""
    issue: IssueView = IssueView()
    comment_body: str = ""
    html_url: str = ""


@dataclass(frozen=True)
class IssuesPayload:
    action: str = ""
    issue: IssueView = IssueView()


@dataclass(frozen=True)
class MemberPayload:
    action: str = ""
    member_login: str = ""


@dataclass(frozen=True)
class PublicPayload:
    action: str = ""


@dataclass(frozen=True)
class PullRequestPayload:
    action: str = ""
    pull_request: IssueView = IssueView()
    merged: bool = False


@dataclass(frozen=True)
class PullRequestReviewPayload:
    action: str = ""
    pull_request: IssueView = IssueView()
    review_state: str = ""
    review_body: str = ""


@dataclass(frozen=True)
class PullRequestReviewCommentPayload:
    action: str = ""
    pull_request: IssueView = IssueView()
    comment_body: str = ""
    html_url: str = ""


@dataclass(frozen=True)
class PushPayload:
    ref: str = ""
    size: int = 0
    head: str = ""
    action: str = ""


@dataclass(frozen=True)
class ReleasePayload:
    action: str = ""
    tag_name: str = ""
    name: str = ""
    body: str = ""


@dataclass(frozen=True)
class WatchPayload:
    action: str = ""


Payload = Union[
    CommitCommentPayload,
    CreatePayload,
    DeletePayload,
    ForkPayload,
    GollumPayload,
    IssueCommentPayload,
    IssuesPayload,
    MemberPayload,
    PublicPayload,
    PullRequestPayload,
    PullRequestReviewPayload,
    PullRequestReviewCommentPayload,
    PushPayload,
    ReleasePayload,
    WatchPayload,
]


def _obj(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise PayloadParseError(f"expected object for {key!r}, got {type(value).__name__}")
    return value


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise PayloadParseError(f"expected string for {key!r}, got {type(value).__name__}")
    return value


def _int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    # bool is an int subclass but never a valid count or id
    if isinstance(value, bool) or not isinstance(value, int):
        raise PayloadParseError(f"expected integer for {key!r}, got {type(value).__name__}")
    return value


def _list(data: Mapping[str, Any], key: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise PayloadParseError(f"expected array for {key!r}, got {type(value).__name__}")
    return value


def _issue(data: Mapping[str, Any]) -> IssueView:
    labels = []
    for label in _list(data, "labels"):
        if not isinstance(label, Mapping):
            raise PayloadParseError("expected object in 'labels'")
        labels.append(_str(label, "name"))
    milestone = data.get("milestone")
    milestone_title = _str(_obj(data, "milestone"), "title") if milestone else None
    return IssueView(
        number=_int(data, "number"),
        title=_str(data, "title"),
        body=_str(data, "body"),
        labels=tuple(labels),
        milestone_title=milestone_title,
        html_url=_str(data, "html_url"),
    )


def _commit_comment(data: Mapping[str, Any]) -> CommitCommentPayload:
    comment = _obj(data, "comment")
    return CommitCommentPayload(
        action=_str(data, "action"),
        commit_id=_str(comment, "commit_id"),
        body=_str(comment, "body"),
        html_url=_str(comment, "html_url"),
    )


def _create(data: Mapping[str, Any]) -> CreatePayload:
    return CreatePayload(
        ref_type=_str(data, "ref_type"),
        ref=_str(data, "ref"),
        description=_str(data, "description"),
    )


def _delete(data: Mapping[str, Any]) -> DeletePayload:
    return DeletePayload(ref_type=_str(data, "ref_type"), ref=_str(data, "ref"))


def _fork(data: Mapping[str, Any]) -> ForkPayload:
    return ForkPayload(forkee_full_name=_str(_obj(data, "forkee"), "full_name"))


def _gollum(data: Mapping[str, Any]) -> GollumPayload:
    pages = []
    for page in _list(data, "pages"):
        if not isinstance(page, Mapping):
            raise PayloadParseError("expected object in 'pages'")
        pages.append((_str(page, "action"), _str(page, "title")))
    return GollumPayload(pages=tuple(pages))


def _issue_comment(data: Mapping[str, Any]) -> IssueCommentPayload:
    comment = _obj(data, "comment")
    return IssueCommentPayload(
        action=_str(data, "action"),
        issue=_issue(_obj(data, "issue")),
        comment_body=_str(comment, "body"),
        html_url=_str(comment, "html_url"),
    )


def _issues(data: Mapping[str, Any]) -> IssuesPayload:
    return IssuesPayload(action=_str(data, "action"), issue=_issue(_obj(data, "issue")))


def _member(data: Mapping[str, Any]) -> MemberPayload:
    return MemberPayload(action=_str(data, "action"), member_login=_str(_obj(data, "member"), "login"))


def _public(data: Mapping[str, Any]) -> PublicPayload:
    return PublicPayload()


def _pull_request(data: Mapping[str, Any]) -> PullRequestPayload:
    pull_request = _obj(data, "pull_request")
    return PullRequestPayload(
        action=_str(data, "action"),
        pull_request=_issue(pull_request),
        merged=bool(pull_request.get("merged", False)),
    )


def _pull_request_review(data: Mapping[str, Any]) -> PullRequestReviewPayload:
    review = _obj(data, "review")
    return PullRequestReviewPayload(
        action=_str(data, "action"),
        pull_request=_issue(_obj(data, "pull_request")),
        review_state=_str(review, "state"),
        review_body=_str(review, "body"),
    )


def _pull_request_review_comment(data: Mapping[str, Any]) -> PullRequestReviewCommentPayload:
    comment = _obj(data, "comment")
    return PullRequestReviewCommentPayload(
        action=_str(data, "action"),
        pull_request=_issue(_obj(data, "pull_request")),
        comment_body=_str(comment, "body"),
        html_url=_str(comment, "html_url"),
    )


def _push(data: Mapping[str, Any]) -> PushPayload:
    size = _int(data, "size")
    if not size:
        size = len(_list(data, "commits"))
    return PushPayload(ref=_str(data, "ref"), size=size, head=_str(data, "head"))


def _release(data: Mapping[str, Any]) -> ReleasePayload:
    release = _obj(data, "release")
    return ReleasePayload(
        action=_str(data, "action"),
        tag_name=_str(release, "tag_name"),
        name=_str(release, "name"),
        body=_str(release, "body"),
    )


def _watch(data: Mapping[str, Any]) -> WatchPayload:
    return WatchPayload(action=_str(data, "action"))


_PARSERS: Dict[str, Callable[[Mapping[str, Any]], Payload]] = {
    "CommitCommentEvent": _commit_comment,
    "CreateEvent": _create,
    "DeleteEvent": _delete,
    "ForkEvent": _fork,
    "GollumEvent": _gollum,
    "IssueCommentEvent": _issue_comment,
    "IssuesEvent": _issues,
    "MemberEvent": _member,
    "PublicEvent": _public,
    "PullRequestEvent": _pull_request,
    "PullRequestReviewEvent": _pull_request_review,
    "PullRequestReviewCommentEvent": _pull_request_review_comment,
    "PushEvent": _push,
    "ReleaseEvent": _release,
    "WatchEvent": _watch,
}

SUPPORTED_TYPES = frozenset(_PARSERS)


def parse_payload(event_type: str, data: Any) -> Optional[Payload]:
    """Decode a raw payload into its typed variant.

    Returns ``None`` for event types without a variant. Raises
    ``PayloadParseError`` when the payload is not an object or a field has
    the wrong JSON type.
    """

    if not isinstance(data, Mapping):
        raise PayloadParseError(f"{event_type} payload is not an object")
    parser = _PARSERS.get(event_type)
    if parser is None:
        return None
    return parser(data)


def issue_view(payload: Optional[Payload]) -> Optional[IssueView]:
    """Return the issue or pull request carried by a payload, if any."""

    issue = getattr(payload, "issue", None)
    if issue is not None:
        return issue
    return getattr(payload, "pull_request", None)
