"""Raw event to canonical event mapping (core domain)."""

from __future__ import annotations

from typing import Callable, Dict, Optional

from core.models import CanonicalEvent, RawEvent
from core.payloads import (
    CommitCommentPayload,
    CreatePayload,
    DeletePayload,
    ForkPayload,
    GollumPayload,
    IssueCommentPayload,
    IssuesPayload,
    MemberPayload,
    Payload,
    PublicPayload,
    PullRequestPayload,
    PullRequestReviewCommentPayload,
    PullRequestReviewPayload,
    PushPayload,
    ReleasePayload,
    WatchPayload,
    parse_payload,
)

_REF_PREFIXES = ("refs/heads/", "refs/tags/")


def _short_ref(ref: str) -> str:
    for prefix in _REF_PREFIXES:
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return ref


def _render(event: CanonicalEvent, detail: str = "") -> None:
    """Fill ``title`` as "[owner/repo] actor action subject[: detail]"."""

    repo = event.raw_event.repo_name or "unknown repository"
    title = f"[{repo}] {event.actor} {event.action} {event.subject}".rstrip()
    if detail:
        title = f"{title}: {detail}"
    event.title = title


def _commit_comment(event: CanonicalEvent, p: CommitCommentPayload) -> None:
    event.action = "commented on"
    event.subject = p.commit_id
    event.body = p.body
    _render(event)


def _create(event: CanonicalEvent, p: CreatePayload) -> None:
    event.action = f"created {p.ref_type or 'ref'}"
    # ref is null when the repository itself was created
    event.subject = p.ref or event.raw_event.repo_name
    event.body = p.description
    _render(event)


def _delete(event: CanonicalEvent, p: DeletePayload) -> None:
    event.action = f"deleted {p.ref_type or 'ref'}"
    event.subject = p.ref
    _render(event)


def _fork(event: CanonicalEvent, p: ForkPayload) -> None:
    event.action = "forked"
    event.subject = event.raw_event.repo_name
    _render(event, f"to {p.forkee_full_name}" if p.forkee_full_name else "")


def _gollum(event: CanonicalEvent, p: GollumPayload) -> None:
    event.action = "updated the wiki"
    event.subject = ", ".join(title for _, title in p.pages)
    event.body = "\n".join(f"{action} {title}" for action, title in p.pages)
    _render(event)


def _issue_comment(event: CanonicalEvent, p: IssueCommentPayload) -> None:
    event.action = "commented on"
    event.subject = f"#{p.issue.number}"
    event.body = p.comment_body
    _render(event, p.issue.title)


def _issues(event: CanonicalEvent, p: IssuesPayload) -> None:
    event.action = f"{p.action or 'updated'} issue"
    event.subject = f"#{p.issue.number}"
    event.body = p.issue.body
    _render(event, p.issue.title)


def _member(event: CanonicalEvent, p: MemberPayload) -> None:
    event.action = f"{p.action or 'added'} member"
    event.subject = p.member_login
    _render(event)


def _public(event: CanonicalEvent, p: PublicPayload) -> None:
    event.action = "made public"
    event.subject = event.raw_event.repo_name
    _render(event)


def _pull_request(event: CanonicalEvent, p: PullRequestPayload) -> None:
    action = p.action or "updated"
    if action == "closed" and p.merged:
        action = "merged"
    event.action = f"{action} pull request"
    event.subject = f"#{p.pull_request.number}"
    event.body = p.pull_request.body
    _render(event, p.pull_request.title)


def _pull_request_review(event: CanonicalEvent, p: PullRequestReviewPayload) -> None:
    event.action = "reviewed pull request"
    event.subject = f"#{p.pull_request.number}"
    if p.review_state:
        event.subject = f"{event.subject} ({p.review_state.lower()})"
    event.body = p.review_body
    _render(event, p.pull_request.title)


def _pull_request_review_comment(event: CanonicalEvent, p: PullRequestReviewCommentPayload) -> None:
    event.action = "commented on pull request"
    event.subject = f"#{p.pull_request.number}"
    event.body = p.comment_body
    _render(event, p.pull_request.title)


def _push(event: CanonicalEvent, p: PushPayload) -> None:
    noun = "commit" if p.size == 1 else "commits"
    event.action = f"pushed {p.size} {noun} to"
    event.subject = _short_ref(p.ref)
    _render(event)


def _release(event: CanonicalEvent, p: ReleasePayload) -> None:
    event.action = f"{p.action or 'published'} release"
    event.subject = p.tag_name
    event.body = p.body
    _render(event, p.name if p.name and p.name != p.tag_name else "")


def _watch(event: CanonicalEvent, p: WatchPayload) -> None:
    event.action = "starred"
    event.subject = event.raw_event.repo_name
    _render(event)


_MAPPERS: Dict[str, Callable[[CanonicalEvent, Payload], None]] = {
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


class EventNormalizer:
    """Turns raw platform events into canonical events.

    Types without a mapping still produce an event with ``type``,
    ``created_at`` and ``public`` set; everything else is left empty.
    """

    def normalize(self, raw: RawEvent) -> CanonicalEvent:
        """Decode the raw payload and map it to the canonical fields.

        Raises ``PayloadParseError`` when the payload cannot be decoded.
        """

        payload: Optional[Payload] = parse_payload(raw.type, raw.payload)
        event = CanonicalEvent(
            raw_event=raw,
            payload=payload,
            created_at=raw.created_at,
            type=raw.type,
            public=raw.public,
        )
        mapper = _MAPPERS.get(raw.type)
        if mapper is None or payload is None:
            return event

        event.actor = raw.actor_login or "someone"
        mapper(event, payload)
        return event
