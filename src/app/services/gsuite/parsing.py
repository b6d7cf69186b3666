"""Helpers for turning raw Gmail API payloads into plain values."""

from __future__ import annotations

import base64
import re
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

_ADDRESS_RE = re.compile(r"^(.+?)\s*<(.+?)>$")
_TAG_RE = re.compile(r"<[^>]*>")

# Address fragments of senders that never get a lead
NO_REPLY_PATTERNS = (
    "noreply",
    "no-reply",
    "donotreply",
    "do-not-reply",
    "mailer-daemon",
    "postmaster",
    "notifications",
    "alert",
    "system",
    "automated",
)


def parse_email_address(value: str) -> tuple[str, str]:
    """Split ``"Name <email>"`` into ``(name, email)``.

    A bare address comes back as both name and email. Surrounding quotes
    on the display name are dropped.
    """
    match = _ADDRESS_RE.match(value.strip())
    if match:
        name = match.group(1).strip().strip('"').strip()
        return name, match.group(2).strip()
    return value, value


def decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def strip_html(html: str) -> str:
    return _TAG_RE.sub("", html).strip()


def _find_part(parts: list[dict[str, Any]], mime_type: str) -> str | None:
    """Depth-first search for the first part with data of a MIME type."""
    for part in parts:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == mime_type and data:
            return decode_base64url(data)
        nested = part.get("parts")
        if nested:
            found = _find_part(nested, mime_type)
            if found is not None:
                return found
    return None


def extract_body(payload: dict[str, Any]) -> str:
    """Plain-text body of a message payload.

    Prefers the top-level body, then text/plain parts, then text/html parts
    with tags stripped. Returns "" when nothing usable is found.
    """
    data = (payload.get("body") or {}).get("data")
    if data:
        return decode_base64url(data)

    parts = payload.get("parts") or []
    plain = _find_part(parts, "text/plain")
    if plain is not None:
        return plain
    html = _find_part(parts, "text/html")
    if html is not None:
        return strip_html(html)
    return ""


def header_map(payload: dict[str, Any]) -> dict[str, str]:
    """Case-insensitive (lowercased) header name -> value."""
    return {h["name"].lower(): h["value"] for h in payload.get("headers", [])}


def parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def build_search_query(
    unread_only: bool = False,
    label: str | None = None,
    newer_than_days: int | None = None,
) -> str:
    """Gmail search query, e.g. ``"is:unread label:Leads newer_than:7d"``."""
    parts: list[str] = []
    if unread_only:
        parts.append("is:unread")
    if label:
        parts.append(f"label:{label}")
    if newer_than_days:
        parts.append(f"newer_than:{newer_than_days}d")
    return " ".join(parts)


def is_no_reply(email: str) -> bool:
    """True for automated senders (noreply@, mailer-daemon@, alerts...)."""
    lowered = email.lower()
    return any(pattern in lowered for pattern in NO_REPLY_PATTERNS)
