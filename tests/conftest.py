"""Shared pytest fixtures."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from korgan_mail.config import MailConfig
from korgan_mail.gateway.types import MailItem, MessagePage, UnreadCount

USER = "alice@example.com"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def user_email() -> str:
    return USER


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def config() -> MailConfig:
    return MailConfig(
        base_url="http://gateway.test",
        user_email=USER,
        page_size=20,
        max_retries=0,
        retry_delay_seconds=0,
    )


@pytest.fixture
def make_mail() -> Callable[..., MailItem]:
    """Factory for MailItems; ``minutes_ago`` orders them by timestamp."""

    def _make(mail_id: str, *, read: bool = False, starred: bool = False,
              minutes_ago: int = 0, **overrides: Any) -> MailItem:
        fields: dict[str, Any] = {
            "id": mail_id,
            "sender": "Bob",
            "subject": f"Subject {mail_id}",
            "snippet": f"Snippet {mail_id}",
            "is_read": read,
            "is_starred": starred,
            "timestamp": datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
            - timedelta(minutes=minutes_ago),
        }
        fields.update(overrides)
        return MailItem(**fields)

    return _make


@pytest.fixture
def make_page(make_mail: Callable[..., MailItem]) -> Callable[..., MessagePage]:
    """Factory for a MessagePage of mails ``prefix1..prefixN``."""

    def _make(prefix: str, count: int = 3, next_token: str | None = None) -> MessagePage:
        items = tuple(make_mail(f"{prefix}{i}", minutes_ago=i) for i in range(1, count + 1))
        return MessagePage(items=items, next_page_token=next_token, result_size_estimate=count)

    return _make


@pytest.fixture
def gateway() -> MagicMock:
    """MailGateway stand-in with every operation as an AsyncMock."""
    gw = MagicMock()
    gw.list_messages = AsyncMock(return_value=MessagePage())
    gw.get_message = AsyncMock()
    gw.modify_message = AsyncMock(return_value=None)
    gw.empty_trash = AsyncMock(return_value=None)
    gw.unread_count = AsyncMock(return_value=UnreadCount(unread=0))
    return gw
