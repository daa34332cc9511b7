"""Data types exchanged with the Korgan mail gateway, and their JSON parsers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

from korgan_mail.gateway.errors import ParseFailure

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_STARRED = "STARRED"

# "Alice Smith" <alice@example.com>  |  Alice Smith <alice@example.com>
_NAMED_ADDRESS = re.compile(r'^\s*"?([^"<]*?)"?\s*<([^>]+)>\s*$')


class MailOperation(str, Enum):
    """Single-message mutations understood by the gateway.

    Values are the wire ``operation`` names.
    """

    MARK_READ = "markRead"
    MARK_UNREAD = "markUnread"
    STAR = "star"
    UNSTAR = "unstar"
    TRASH = "trash"
    RESTORE = "restore"
    DELETE = "delete"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class MailItem:
    """One message as shown in a folder list.

    Items are immutable; a flag change produces a new instance via
    ``dataclasses.replace``.
    """

    id: str
    sender: str
    subject: str
    snippet: str
    is_read: bool
    is_starred: bool
    timestamp: datetime
    thread_id: str = ""
    sender_email: str = ""
    recipient: str = ""
    labels: tuple[str, ...] = ()
    has_attachments: bool = False
    highlighted_snippet: str | None = None

    @property
    def display_snippet(self) -> str:
        """Snippet with search matches marked up, when the gateway sent one."""
        return self.highlighted_snippet or self.snippet


@dataclass(frozen=True)
class MessagePage:
    """One page of a list call."""

    items: tuple[MailItem, ...] = field(default_factory=tuple)
    next_page_token: str | None = None
    result_size_estimate: int = 0

    @property
    def has_more(self) -> bool:
        return bool(self.next_page_token)


@dataclass(frozen=True)
class UnreadCount:
    """Server-side unread total for a label filter."""

    unread: int
    query: str = ""
    processing_time_ms: int = 0


# ── Parsing ────────────────────────────────────────────────────────────────────


def parse_sender(raw: str) -> tuple[str, str]:
    """Split a From header into (display name, address).

    Falls back to the address's local part when no display name is present.
    """
    raw = raw.strip()
    match = _NAMED_ADDRESS.match(raw)
    if match:
        name, address = match.group(1).strip(), match.group(2).strip()
    else:
        name, address = "", raw.strip("<>")
    if not name:
        name = address.split("@", 1)[0] if address else ""
    return name, address


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 or RFC 2822 date. Unparseable dates map to the epoch."""
    if not raw:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(raw)
        except (TypeError, ValueError):
            logger.debug("Unparseable mail date %r; using epoch", raw)
            return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require(data: dict[str, Any], key: str, kind: type) -> Any:
    value = data.get(key)
    if not isinstance(value, kind):
        raise ParseFailure(f"Field {key!r} missing or not {kind.__name__}: {value!r}")
    return value


def _optional_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseFailure(f"Field {key!r} is not a string: {value!r}")
    return value


def parse_mail_item(data: Any) -> MailItem:
    """Map one message object from the gateway to a MailItem."""
    if not isinstance(data, dict):
        raise ParseFailure(f"Message entry is not an object: {data!r}")

    mail_id = _require(data, "id", str)
    if not mail_id:
        raise ParseFailure("Message entry has an empty id")

    labels_raw = data.get("labels") or []
    if not isinstance(labels_raw, list) or not all(isinstance(l, str) for l in labels_raw):
        raise ParseFailure(f"Field 'labels' is not a list of strings: {labels_raw!r}")

    is_unread = data.get("isUnread", False)
    if not isinstance(is_unread, bool):
        raise ParseFailure(f"Field 'isUnread' is not a boolean: {is_unread!r}")

    sender_name, sender_email = parse_sender(_optional_str(data, "from"))
    highlighted = data.get("highlightedSnippet")

    return MailItem(
        id=mail_id,
        sender=sender_name,
        subject=_optional_str(data, "subject"),
        snippet=_optional_str(data, "snippet"),
        is_read=not is_unread,
        is_starred=_STARRED in labels_raw,
        timestamp=parse_timestamp(_optional_str(data, "date")),
        thread_id=_optional_str(data, "threadId"),
        sender_email=sender_email,
        recipient=_optional_str(data, "to"),
        labels=tuple(labels_raw),
        has_attachments=bool(data.get("isAttachments", False)),
        highlighted_snippet=highlighted if isinstance(highlighted, str) and highlighted else None,
    )


def parse_message_page(data: Any) -> MessagePage:
    """Map a list response ``{messages, nextPageToken, resultSizeEstimate}``."""
    if not isinstance(data, dict):
        raise ParseFailure(f"List response is not an object: {data!r}")

    messages = data.get("messages") or []
    if not isinstance(messages, list):
        raise ParseFailure(f"Field 'messages' is not a list: {messages!r}")

    token = data.get("nextPageToken")
    if token is not None and not isinstance(token, str):
        raise ParseFailure(f"Field 'nextPageToken' is not a string: {token!r}")

    estimate = data.get("resultSizeEstimate", 0)
    if not isinstance(estimate, int) or isinstance(estimate, bool):
        raise ParseFailure(f"Field 'resultSizeEstimate' is not an integer: {estimate!r}")

    return MessagePage(
        items=tuple(parse_mail_item(m) for m in messages),
        next_page_token=token or None,
        result_size_estimate=estimate,
    )


def parse_unread_count(data: Any) -> UnreadCount:
    """Map an unread-count response ``{unread, query, processingTimeMs}``."""
    if not isinstance(data, dict):
        raise ParseFailure(f"Unread count response is not an object: {data!r}")
    unread = _require(data, "unread", int)
    elapsed = data.get("processingTimeMs", 0)
    return UnreadCount(
        unread=unread,
        query=_optional_str(data, "query"),
        processing_time_ms=elapsed if isinstance(elapsed, int) else 0,
    )
