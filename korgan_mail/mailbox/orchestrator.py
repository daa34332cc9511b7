"""Mail orchestrator — the single entry point a client surface talks to."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from korgan_mail.config import MailConfig
from korgan_mail.gateway.client import MailGateway
from korgan_mail.gateway.errors import MailFailure
from korgan_mail.mailbox.actions import OptimisticUpdateCoordinator
from korgan_mail.mailbox.executor import MailActionExecutor, validate_query
from korgan_mail.mailbox.folders import MailFolder
from korgan_mail.mailbox.loader import FolderLoader
from korgan_mail.mailbox.models import BulkActionResult, FolderContext, MailState
from korgan_mail.mailbox.pagination import PaginationEngine
from korgan_mail.mailbox.search import SearchModeSwitch
from korgan_mail.mailbox.store import FolderContextStore

logger = logging.getLogger(__name__)

ESSENTIAL_FOLDERS: tuple[MailFolder, ...] = (MailFolder.INBOX, MailFolder.STARRED)
UNREAD_LABEL = "UNREAD"


class MailOrchestrator:
    """Owns the folder cache and wires the mail components around it.

    One orchestrator serves one user.  Folder loads and page moves record
    failures on the affected context and return normally; searches and
    single-mail actions record the failure and also raise it.

    Usage::

        async with mail_gateway(config) as gateway:
            mail = MailOrchestrator(gateway, config)
            await mail.load_folder(MailFolder.INBOX)
            await mail.next_page()
    """

    def __init__(
        self,
        gateway: MailGateway,
        config: MailConfig,
        *,
        user_email: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._user_email = user_email or config.user_email
        if clock is None:
            self.store = FolderContextStore(stale_after=config.stale_after)
        else:
            self.store = FolderContextStore(stale_after=config.stale_after, clock=clock)
        self.executor = MailActionExecutor(gateway)
        self.loader = FolderLoader(self.store, self.executor, page_size=config.page_size)
        self.pagination = PaginationEngine(self.store, self.executor)
        self.actions = OptimisticUpdateCoordinator(self.store, self.executor)
        self.search_switch = SearchModeSwitch(self.store, self.loader)

    # ── Observable state ───────────────────────────────────────────────────────

    @property
    def user_email(self) -> str:
        return self._user_email

    @property
    def state(self) -> MailState:
        return self.store.state

    @property
    def current_folder(self) -> MailFolder:
        return self.store.current_folder

    @property
    def current_context(self) -> FolderContext | None:
        return self.store.current_context

    @property
    def is_search_mode(self) -> bool:
        return self.store.state.is_search_mode

    def clear_error(self) -> None:
        self.store.set_error(self.store.current_folder, None)

    # ── Loading and navigation ─────────────────────────────────────────────────

    async def load_folder(
        self, folder: MailFolder, *, force_refresh: bool = False
    ) -> FolderContext | None:
        """Make ``folder`` active and fetch it if the cache is missing or stale.

        A refetch keeps the filter and highlight setting the folder was last
        loaded with; a folder never loaded uses its default filter.
        """
        self.store.switch_to(folder)
        cached = self.store.get_context(folder)
        if not force_refresh and not self.store.is_stale(folder):
            logger.debug("Using cached %s (%d mail(s))", folder.value, len(cached.items))
            return cached

        if folder.is_search and (cached is None or not cached.current_query):
            # A search variant can only be refetched with the query it holds.
            return cached
        if cached is not None and (cached.last_updated is not None or folder.is_search):
            labels, query = cached.current_labels, cached.current_query
            highlight = cached.enable_highlight
        else:
            labels, query, highlight = folder.labels, folder.query, False

        return await self._load(folder, labels, query, highlight)

    async def load_folder_with_filters(
        self,
        folder: MailFolder,
        *,
        labels: Sequence[str] | None = None,
        query: str | None = None,
    ) -> FolderContext | None:
        """Make ``folder`` active and reload it under a new label/query filter.

        A filter change always refetches page 1 and resets pagination.
        """
        if query:
            validate_query(query)
        self.store.switch_to(folder)
        return await self._load(folder, labels, query, False)

    async def load_unread_inbox(self) -> FolderContext | None:
        return await self.load_folder_with_filters(
            MailFolder.INBOX, labels=[*MailFolder.INBOX.labels, UNREAD_LABEL]
        )

    async def clear_filters(self) -> FolderContext | None:
        """Reload the active base folder with its default filter."""
        folder = self.store.current_folder.base_folder
        return await self.load_folder_with_filters(
            folder, labels=folder.labels, query=folder.query
        )

    async def refresh_current_folder(self) -> FolderContext | None:
        return await self.load_folder(self.store.current_folder, force_refresh=True)

    async def refresh_if_stale(self) -> bool:
        """Refetch the active folder when its cache has gone stale."""
        folder = self.store.current_folder
        ctx = self.store.get_context(folder)
        if ctx is None or ctx.is_busy or not self.store.is_stale(folder):
            return False
        await self.load_folder(folder, force_refresh=True)
        return True

    async def preload_essential_folders(self) -> None:
        """Warm the inbox and starred caches without changing the active folder."""
        stale = [f for f in ESSENTIAL_FOLDERS if self.store.is_stale(f)]
        results = await asyncio.gather(
            *(
                self.loader.load(
                    f, user_email=self._user_email, labels=f.labels, query=f.query
                )
                for f in stale
            ),
            return_exceptions=True,
        )
        for folder, result in zip(stale, results):
            if isinstance(result, MailFailure):
                logger.warning("Preload of %s failed: %s", folder.value, result.message)
            elif isinstance(result, BaseException):
                raise result

    async def next_page(self) -> bool:
        return await self.pagination.go_to_next_page(
            self.store.current_folder,
            self._user_email,
            enable_highlight=self.is_search_mode,
        )

    async def previous_page(self) -> bool:
        return await self.pagination.go_to_previous_page(
            self.store.current_folder,
            self._user_email,
            enable_highlight=self.is_search_mode,
        )

    # ── Search ─────────────────────────────────────────────────────────────────

    async def search(self, query: str, *, enable_highlight: bool = True) -> FolderContext:
        return await self.search_switch.search_in_current_folder(
            query, self._user_email, enable_highlight=enable_highlight
        )

    def exit_search(self) -> MailFolder | None:
        return self.search_switch.exit_search()

    # ── Single-mail actions ────────────────────────────────────────────────────

    async def mark_as_read(self, mail_id: str) -> None:
        await self.actions.mark_as_read(mail_id, self._user_email)

    async def mark_as_unread(self, mail_id: str) -> None:
        await self.actions.mark_as_unread(mail_id, self._user_email)

    async def star_mail(self, mail_id: str) -> None:
        await self.actions.star_mail(mail_id, self._user_email)

    async def unstar_mail(self, mail_id: str) -> None:
        await self.actions.unstar_mail(mail_id, self._user_email)

    async def move_to_trash(self, mail_id: str) -> None:
        await self.actions.move_to_trash(mail_id, self._user_email)

    async def archive_mail(self, mail_id: str) -> None:
        await self.actions.archive_mail(mail_id, self._user_email)

    async def restore_from_trash(self, mail_id: str) -> None:
        await self.actions.restore_from_trash(mail_id, self._user_email)

    async def delete_permanently(self, mail_id: str) -> None:
        await self.actions.delete_permanently(mail_id, self._user_email)

    async def empty_trash(self) -> None:
        """Empty the trash, then refetch it if it is on screen or drop its cache."""
        await self.actions.empty_trash(self._user_email)
        self.store.clear_cache(MailFolder.TRASH_SEARCH)
        if self.store.current_folder == MailFolder.TRASH:
            await self.load_folder(MailFolder.TRASH, force_refresh=True)
        else:
            self.store.clear_cache(MailFolder.TRASH)

    # ── Bulk actions ───────────────────────────────────────────────────────────

    async def bulk_move_to_trash(self, mail_ids: Sequence[str]) -> BulkActionResult:
        return await self.actions.bulk_move_to_trash(mail_ids, self._user_email)

    async def bulk_mark_as_read(self, mail_ids: Sequence[str]) -> BulkActionResult:
        return await self.actions.bulk_mark_as_read(mail_ids, self._user_email)

    async def bulk_mark_as_unread(self, mail_ids: Sequence[str]) -> BulkActionResult:
        return await self.actions.bulk_mark_as_unread(mail_ids, self._user_email)

    # ── Internal ───────────────────────────────────────────────────────────────

    async def _load(
        self,
        folder: MailFolder,
        labels: Sequence[str] | None,
        query: str | None,
        highlight: bool,
    ) -> FolderContext | None:
        try:
            return await self.loader.load(
                folder,
                user_email=self._user_email,
                labels=labels,
                query=query,
                enable_highlight=highlight,
            )
        except MailFailure:
            return self.store.get_context(folder)
