"""Korgan mail gateway client — typed async wrapper around the queue endpoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from korgan_mail.gateway.errors import (
    NetworkFailure,
    ParseFailure,
    failure_for_status,
)
from korgan_mail.gateway.types import (
    MailItem,
    MailOperation,
    MessagePage,
    UnreadCount,
    parse_mail_item,
    parse_message_page,
    parse_unread_count,
)

if TYPE_CHECKING:
    from korgan_mail.config import MailConfig

logger = logging.getLogger(__name__)

QUEUE_PATH = "/api/gmail/queue"

# Backoff: retry_delay * 2^(attempt-1) seconds, capped at 30 seconds
_MAX_BACKOFF_SECONDS = 30.0
_RETRYABLE_STATUS = 429


# ── Gateway interface ──────────────────────────────────────────────────────────


@runtime_checkable
class MailGateway(Protocol):
    """Remote operations the mail core needs from the backend."""

    async def list_messages(
        self,
        *,
        user_email: str,
        max_results: int,
        page_token: str | None = None,
        labels: Sequence[str] | None = None,
        query: str | None = None,
        enable_highlight: bool = False,
    ) -> MessagePage: ...

    async def get_message(self, message_id: str, *, user_email: str) -> MailItem: ...

    async def modify_message(
        self, message_id: str, operation: MailOperation, *, user_email: str
    ) -> None: ...

    async def empty_trash(self, *, user_email: str) -> None: ...

    async def unread_count(
        self, *, user_email: str, labels: Sequence[str] | None = None
    ) -> UnreadCount: ...


# ── HTTP implementation ────────────────────────────────────────────────────────


class HttpMailGateway:
    """MailGateway backed by an ``httpx.AsyncClient``.

    Every operation is a GET against the single queue endpoint, selected by
    the ``operation`` query parameter.  Transport errors and HTTP 429 are
    retried with exponential backoff; any other error status fails at once.
    Use the `mail_gateway()` context manager to construct and tear down.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._http = http
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    # ── Public API ─────────────────────────────────────────────────────────────

    async def list_messages(
        self,
        *,
        user_email: str,
        max_results: int,
        page_token: str | None = None,
        labels: Sequence[str] | None = None,
        query: str | None = None,
        enable_highlight: bool = False,
    ) -> MessagePage:
        params: dict[str, Any] = {
            "operation": "list",
            "userEmail": user_email,
            "maxResults": max_results,
        }
        if page_token:
            params["pageToken"] = page_token
        if labels:
            params["labels"] = " ".join(labels)
        if query:
            params["query"] = query
        if enable_highlight:
            params["enableHighlight"] = "true"

        page = parse_message_page(await self._call(params))
        logger.debug(
            "Listed %d message(s) (labels=%s query=%r token=%r) next=%r",
            len(page.items),
            labels,
            query,
            page_token,
            page.next_page_token,
        )
        return page

    async def get_message(self, message_id: str, *, user_email: str) -> MailItem:
        data = await self._call(
            {"operation": "get", "messageId": message_id, "email": user_email}
        )
        if isinstance(data, dict) and isinstance(data.get("message"), dict):
            data = data["message"]
        return parse_mail_item(data)

    async def modify_message(
        self, message_id: str, operation: MailOperation, *, user_email: str
    ) -> None:
        await self._call(
            {"operation": operation.value, "messageId": message_id, "email": user_email}
        )
        logger.debug("Applied %s to message %s", operation.value, message_id)

    async def empty_trash(self, *, user_email: str) -> None:
        await self._call({"operation": "empty", "email": user_email})
        logger.info("Emptied trash for %s", user_email)

    async def unread_count(
        self, *, user_email: str, labels: Sequence[str] | None = None
    ) -> UnreadCount:
        params: dict[str, Any] = {"operation": "unreadCount", "userEmail": user_email}
        if labels:
            params["labels"] = " ".join(labels)
        return parse_unread_count(await self._call(params))

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _call(self, params: dict[str, Any]) -> Any:
        """Issue one queue request and return the decoded JSON body.

        Raises NetworkFailure, ServerFailure or ParseFailure.  An empty body
        decodes to None.
        """
        attempt = 0
        while True:
            attempt += 1
            logger.debug("Gateway → %s (attempt %d)", params, attempt)
            try:
                response = await self._http.get(QUEUE_PATH, params=params)
            except httpx.TimeoutException as exc:
                if attempt <= self._max_retries:
                    await self._backoff(attempt, f"timeout: {exc}")
                    continue
                raise NetworkFailure("Request timeout", "REQUEST_TIMEOUT") from exc
            except httpx.TransportError as exc:
                if attempt <= self._max_retries:
                    await self._backoff(attempt, f"transport error: {exc}")
                    continue
                raise NetworkFailure(
                    f"Connection error: {exc}", "CONNECTION_ERROR"
                ) from exc

            if response.status_code == _RETRYABLE_STATUS and attempt <= self._max_retries:
                await self._backoff(attempt, "rate limited")
                continue
            if response.is_error:
                raise failure_for_status(response.status_code, _error_detail(response))
            return _decode(response)

    async def _backoff(self, attempt: int, reason: str) -> None:
        delay = min(self._retry_delay * 2 ** (attempt - 1), _MAX_BACKOFF_SECONDS)
        logger.warning(
            "Gateway request failed (%s, attempt %d/%d) — retrying in %.1fs",
            reason,
            attempt,
            self._max_retries + 1,
            delay,
        )
        await asyncio.sleep(delay)


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise ParseFailure(f"Gateway returned invalid JSON: {exc}") from exc


def _error_detail(response: httpx.Response) -> str | None:
    """Pull the backend's ``message`` field out of an error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return None


@asynccontextmanager
async def mail_gateway(
    config: MailConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[HttpMailGateway]:
    """Async context manager that yields a ready-to-use HttpMailGateway.

    Example::

        async with mail_gateway(MailConfig.from_env()) as gateway:
            page = await gateway.list_messages(user_email=..., max_results=20)
    """
    headers = {"Accept": "application/json"}
    if config.api_token:
        headers["Authorization"] = f"Bearer {config.api_token}"

    async with httpx.AsyncClient(
        base_url=config.base_url,
        headers=headers,
        timeout=config.request_timeout_seconds,
        transport=transport,
    ) as http:
        logger.info("Mail gateway client ready (%s)", config.base_url)
        yield HttpMailGateway(
            http,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay_seconds,
        )
