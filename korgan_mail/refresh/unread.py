"""Server-side unread counts per folder and user, with a short freshness window."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from korgan_mail.gateway.errors import MailFailure
from korgan_mail.mailbox.executor import MailActionExecutor
from korgan_mail.mailbox.folders import BASE_FOLDERS, MailFolder

logger = logging.getLogger(__name__)

UNREAD_FRESH_FOR = timedelta(minutes=1)
_DISPLAY_CAP = 99


@dataclass(frozen=True)
class UnreadState:
    """Last known unread count for one (folder, user) pair."""

    count: int = 0
    is_loading: bool = False
    error: str | None = None
    last_updated: datetime | None = None


def display_text(count: int) -> str:
    """Badge text: empty for zero, the number up to 99, then ">99"."""
    if count <= 0:
        return ""
    if count <= _DISPLAY_CAP:
        return str(count)
    return f">{_DISPLAY_CAP}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnreadCountTracker:
    """Keeps folder badge counts in sync with the gateway's unread totals.

    Counts come from the gateway's unread-count operation filtered by the
    folder's label.  Folders without a label (important) get the
    mailbox-wide count.  A count fetched less than a minute ago is reused
    unless a refresh is forced.
    """

    def __init__(
        self,
        executor: MailActionExecutor,
        fresh_for: timedelta = UNREAD_FRESH_FOR,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._executor = executor
        self._fresh_for = fresh_for
        self._clock = clock
        self._states: dict[tuple[MailFolder, str], UnreadState] = {}

    def state(self, folder: MailFolder, user_email: str) -> UnreadState:
        return self._states.get((folder.base_folder, user_email), UnreadState())

    def count(self, folder: MailFolder, user_email: str) -> int:
        return self.state(folder, user_email).count

    def display_text(self, folder: MailFolder, user_email: str) -> str:
        return display_text(self.count(folder, user_email))

    def is_fresh(self, folder: MailFolder, user_email: str) -> bool:
        st = self.state(folder, user_email)
        if st.last_updated is None or st.error is not None:
            return False
        return self._clock() - st.last_updated < self._fresh_for

    async def refresh(self, folder: MailFolder, user_email: str, *, force: bool = False) -> int:
        """Fetch the unread count for a folder, reusing a fresh value."""
        key = (folder.base_folder, user_email)
        previous = self.state(folder, user_email)
        if previous.is_loading or (not force and self.is_fresh(folder, user_email)):
            return previous.count

        self._states[key] = UnreadState(
            count=previous.count, is_loading=True, last_updated=previous.last_updated
        )
        try:
            result = await self._executor.unread_count(
                user_email=user_email, labels=folder.base_folder.labels
            )
        except MailFailure as exc:
            self._states[key] = UnreadState(
                count=previous.count, error=exc.message, last_updated=previous.last_updated
            )
            logger.warning("Unread count for %s failed: %s", folder.value, exc.message)
            return previous.count

        self._states[key] = UnreadState(count=result.unread, last_updated=self._clock())
        logger.debug(
            "Unread %s=%d (%dms)", folder.value, result.unread, result.processing_time_ms
        )
        return result.unread

    async def refresh_many(
        self, folders: Iterable[MailFolder], user_email: str, *, force: bool = False
    ) -> dict[MailFolder, int]:
        """Refresh several folders concurrently."""
        targets = list(dict.fromkeys(f.base_folder for f in folders))
        counts = await asyncio.gather(
            *(self.refresh(f, user_email, force=force) for f in targets)
        )
        return dict(zip(targets, counts))

    async def refresh_all_for_user(
        self, user_email: str, *, force: bool = False
    ) -> dict[MailFolder, int]:
        return await self.refresh_many(BASE_FOLDERS, user_email, force=force)

    def clear(self, user_email: str | None = None) -> None:
        """Forget cached counts, for one user or everyone."""
        if user_email is None:
            self._states.clear()
            return
        for key in [k for k in self._states if k[1] == user_email]:
            del self._states[key]
