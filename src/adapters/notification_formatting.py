"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from typing import Optional

from core.models import CanonicalEvent
from core.payloads import issue_view

GITHUB_WEB_URL = "https://github.com"


def event_link(event: CanonicalEvent) -> Optional[str]:
    """Return the most specific web link for an event, if one is known."""

    payload = event.payload
    link = getattr(payload, "html_url", "")
    if link:
        return link
    issue = issue_view(payload)
    if issue is not None and issue.html_url:
        return issue.html_url
    if event.raw_event.repo_name:
        return f"{GITHUB_WEB_URL}/{event.raw_event.repo_name}"
    return None


def _clip(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "…"


def _format_plain(event: CanonicalEvent, body_chars: int) -> str:
    lines = [event.title or event.type]
    body = _clip(event.body, body_chars)
    if body:
        lines.extend(["", body])
    link = event_link(event)
    if link:
        lines.extend(["", link])
    return "\n".join(lines)


def _format_markdown(event: CanonicalEvent, body_chars: int) -> str:
    """Create the Markdown notification body."""

    def escape_md(value: str) -> str:
        for ch in r"*_[`":
            value = value.replace(ch, f"\\{ch}")
        return value

    timestamp = event.created_at.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()
    divider = "──────────────"

    lines = [
        f"[{timestamp}]",
        f"**{escape_md(event.title or event.type)}**",
        divider,
    ]
    body = _clip(event.body, body_chars)
    if body:
        lines.extend(["", escape_md(body)])
    link = event_link(event)
    if link:
        lines.extend(["", "**Link:**", link])
    lines.append(divider)
    return "\n".join(lines)


def _format_html(event: CanonicalEvent, body_chars: int) -> str:
    """Create the HTML notification body used by the Bot API adapter."""

    timestamp = html.escape(event.created_at.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip())
    parts = [
        f"[{timestamp}]",
        f"<b>{html.escape(event.title or event.type)}</b>",
        "──────────────",
    ]
    body = _clip(event.body, body_chars)
    if body:
        parts.extend(["", html.escape(body)])
    link = event_link(event)
    if link:
        safe_link = html.escape(link)
        parts.extend(["", "<b>Link:</b>", f"<a href=\"{safe_link}\">{safe_link}</a>"])
    parts.append("──────────────")
    return "\n".join(parts)


def format_notification(event: CanonicalEvent, body_chars: int, mode: str) -> str:
    """Return the notification formatted for the requested mode."""

    if mode == "plain":
        return _format_plain(event, body_chars)
    if mode == "markdown":
        return _format_markdown(event, body_chars)
    if mode == "html":
        return _format_html(event, body_chars)
    raise ValueError(f"Unsupported notification format: {mode}")
