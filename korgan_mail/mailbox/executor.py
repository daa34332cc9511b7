"""Mail action executor — validated single calls against the gateway."""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Sequence
from typing import TypeVar

from korgan_mail.config import MAX_PAGE_SIZE, MIN_PAGE_SIZE
from korgan_mail.gateway.client import MailGateway
from korgan_mail.gateway.errors import MailFailure, UnknownFailure, ValidationFailure
from korgan_mail.gateway.types import MailItem, MailOperation, MessagePage, UnreadCount

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BULK_OPERATION_SIZE = 100
MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 500

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


# ── Validation ─────────────────────────────────────────────────────────────────


def validate_email(user_email: str) -> None:
    if not user_email or not _EMAIL_RE.match(user_email):
        raise ValidationFailure(f"Invalid email address: {user_email!r}", "INVALID_EMAIL")


def validate_mail_id(mail_id: str) -> None:
    if not mail_id or not mail_id.strip():
        raise ValidationFailure("Mail id must not be empty", "INVALID_MAIL_ID")


def validate_page_size(max_results: int) -> None:
    if not MIN_PAGE_SIZE <= max_results <= MAX_PAGE_SIZE:
        raise ValidationFailure(
            f"maxResults must be between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}, got {max_results}",
            "INVALID_PAGE_SIZE",
        )


def validate_query(query: str) -> None:
    length = len(query.strip())
    if length < MIN_QUERY_LENGTH:
        raise ValidationFailure(
            f"Search query must be at least {MIN_QUERY_LENGTH} characters", "QUERY_TOO_SHORT"
        )
    if length > MAX_QUERY_LENGTH:
        raise ValidationFailure(
            f"Search query must be at most {MAX_QUERY_LENGTH} characters", "QUERY_TOO_LONG"
        )


def validate_bulk(mail_ids: Sequence[str]) -> None:
    if not mail_ids:
        raise ValidationFailure("No mails selected", "EMPTY_SELECTION")
    if len(mail_ids) > MAX_BULK_OPERATION_SIZE:
        raise ValidationFailure(
            f"At most {MAX_BULK_OPERATION_SIZE} mails can be processed at once",
            "BULK_LIMIT_EXCEEDED",
        )
    for mail_id in mail_ids:
        validate_mail_id(mail_id)


# ── Executor ───────────────────────────────────────────────────────────────────


class MailActionExecutor:
    """Validates parameters, then issues exactly one gateway call.

    Validation happens before anything touches the network.  Gateway failures
    propagate unchanged; anything else is wrapped in UnknownFailure so callers
    only have to handle MailFailure.
    """

    def __init__(self, gateway: MailGateway) -> None:
        self._gateway = gateway

    # ── Listing ────────────────────────────────────────────────────────────────

    async def list_first_page(
        self,
        *,
        user_email: str,
        max_results: int,
        labels: Sequence[str] | None = None,
        query: str | None = None,
        enable_highlight: bool = False,
    ) -> MessagePage:
        """First page of a folder: a plain list call without a page token."""
        validate_email(user_email)
        validate_page_size(max_results)
        return await self._guard(
            self._gateway.list_messages(
                user_email=user_email,
                max_results=max_results,
                labels=labels,
                query=query,
                enable_highlight=enable_highlight,
            ),
            "list",
        )

    async def list_more(
        self,
        *,
        user_email: str,
        page_token: str,
        max_results: int,
        labels: Sequence[str] | None = None,
        query: str | None = None,
        enable_highlight: bool = False,
    ) -> MessagePage:
        """A subsequent page; requires the token issued with the previous page."""
        validate_email(user_email)
        validate_page_size(max_results)
        if not page_token:
            raise ValidationFailure("Page token is required for loading more", "MISSING_PAGE_TOKEN")
        return await self._guard(
            self._gateway.list_messages(
                user_email=user_email,
                max_results=max_results,
                page_token=page_token,
                labels=labels,
                query=query,
                enable_highlight=enable_highlight,
            ),
            "list more",
        )

    async def get_message(self, mail_id: str, *, user_email: str) -> MailItem:
        validate_mail_id(mail_id)
        validate_email(user_email)
        return await self._guard(
            self._gateway.get_message(mail_id, user_email=user_email), "get"
        )

    # ── Mutations ──────────────────────────────────────────────────────────────

    async def mark_read(self, mail_id: str, *, user_email: str) -> None:
        await self._modify(mail_id, MailOperation.MARK_READ, user_email)

    async def mark_unread(self, mail_id: str, *, user_email: str) -> None:
        await self._modify(mail_id, MailOperation.MARK_UNREAD, user_email)

    async def star(self, mail_id: str, *, user_email: str) -> None:
        await self._modify(mail_id, MailOperation.STAR, user_email)

    async def unstar(self, mail_id: str, *, user_email: str) -> None:
        await self._modify(mail_id, MailOperation.UNSTAR, user_email)

    async def move_to_trash(self, mail_id: str, *, user_email: str) -> None:
        await self._modify(mail_id, MailOperation.TRASH, user_email)

    async def archive(self, mail_id: str, *, user_email: str) -> None:
        await self._modify(mail_id, MailOperation.ARCHIVE, user_email)

    async def restore_from_trash(self, mail_id: str, *, user_email: str) -> None:
        await self._modify(mail_id, MailOperation.RESTORE, user_email)

    async def delete_permanently(self, mail_id: str, *, user_email: str) -> None:
        await self._modify(mail_id, MailOperation.DELETE, user_email)

    async def empty_trash(self, *, user_email: str) -> None:
        validate_email(user_email)
        await self._guard(self._gateway.empty_trash(user_email=user_email), "empty trash")

    async def unread_count(
        self, *, user_email: str, labels: Sequence[str] | None = None
    ) -> UnreadCount:
        validate_email(user_email)
        return await self._guard(
            self._gateway.unread_count(user_email=user_email, labels=labels), "unread count"
        )

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _modify(self, mail_id: str, operation: MailOperation, user_email: str) -> None:
        validate_mail_id(mail_id)
        validate_email(user_email)
        await self._guard(
            self._gateway.modify_message(mail_id, operation, user_email=user_email),
            operation.value,
        )

    @staticmethod
    async def _guard(call: Awaitable[T], description: str) -> T:
        try:
            return await call
        except MailFailure as exc:
            logger.debug("Gateway %s failed: %r", description, exc)
            raise
        except Exception as exc:
            logger.error("Unexpected error during %s: %s", description, exc, exc_info=True)
            raise UnknownFailure(f"Unexpected error during {description}: {exc}") from exc
