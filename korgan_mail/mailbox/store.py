"""Folder context store — sole owner of the in-memory folder cache."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from korgan_mail.mailbox.folders import BASE_FOLDERS, MailFolder
from korgan_mail.mailbox.models import FolderContext, FolderStatistics, MailState

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FolderContextStore:
    """Holds the current MailState and replaces it wholesale on every change.

    Components never mutate a FolderContext in place: they build a new one and
    commit it here.  Multi-folder changes go through `update_contexts()` so
    they become visible in a single state replacement.
    """

    def __init__(
        self,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._state = MailState()
        self._stale_after = stale_after
        self._clock = clock

    @property
    def state(self) -> MailState:
        return self._state

    @property
    def current_folder(self) -> MailFolder:
        return self._state.current_folder

    @property
    def current_context(self) -> FolderContext | None:
        return self._state.current_context

    def now(self) -> datetime:
        return self._clock()

    # ── Reads ──────────────────────────────────────────────────────────────────

    def get_context(self, folder: MailFolder) -> FolderContext | None:
        """Return the cached context, or None if the folder was never loaded."""
        return self._state.contexts.get(folder)

    def is_stale(self, folder: MailFolder) -> bool:
        """True if the folder has no context or it is older than the TTL."""
        ctx = self.get_context(folder)
        if ctx is None:
            return True
        return ctx.is_stale(self._clock(), self._stale_after)

    def folders_containing(self, mail_id: str) -> list[MailFolder]:
        return [f for f, ctx in self._state.contexts.items() if ctx.contains(mail_id)]

    def folder_statistics(self) -> FolderStatistics:
        """Loaded/stale/mail/unread totals across the base folders."""
        loaded = [f for f in BASE_FOLDERS if f in self._state.contexts]
        return FolderStatistics(
            loaded_folders=len(loaded),
            stale_folders=sum(1 for f in loaded if self.is_stale(f)),
            total_mails=sum(len(self._state.contexts[f].items) for f in loaded),
            total_unread=sum(self._state.contexts[f].unread_count for f in loaded),
        )

    # ── Writes ─────────────────────────────────────────────────────────────────

    def update_context(self, folder: MailFolder, ctx: FolderContext) -> None:
        """Replace the context for ``folder``."""
        self.update_contexts({folder: ctx})

    def update_contexts(self, updates: Mapping[MailFolder, FolderContext]) -> None:
        """Commit several replacement contexts as one state change."""
        if not updates:
            return
        self._state = self._state.with_contexts(updates)
        logger.debug("Committed context(s): %s", ", ".join(f.value for f in updates))

    def set_error(self, folder: MailFolder, message: str | None) -> None:
        """Record (or clear) a folder's error, creating the context if needed."""
        ctx = self.get_context(folder) or FolderContext()
        self.update_context(folder, replace(ctx, error=message))

    def switch_to(self, folder: MailFolder) -> None:
        """Make ``folder`` the active one; its cached context is untouched."""
        if folder != self._state.current_folder:
            logger.debug("Active folder %s → %s", self._state.current_folder.value, folder.value)
        self._state = MailState(contexts=self._state.contexts, current_folder=folder)

    def clear_cache(self, folder: MailFolder | None = None) -> None:
        """Drop one folder's context, or every context when no folder is given."""
        if folder is None:
            self._state = self._state.without_contexts()
            logger.info("Cleared all folder caches")
        else:
            self._state = self._state.without_contexts([folder])
            logger.info("Cleared cache for %s", folder.value)
