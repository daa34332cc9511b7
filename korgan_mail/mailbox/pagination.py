"""Pagination engine — forward/backward page navigation over a token stack."""

from __future__ import annotations

import logging
from dataclasses import replace

from korgan_mail.gateway.errors import MailFailure
from korgan_mail.gateway.types import MessagePage
from korgan_mail.mailbox.executor import MailActionExecutor, validate_email
from korgan_mail.mailbox.folders import MailFolder
from korgan_mail.mailbox.models import FolderContext
from korgan_mail.mailbox.store import FolderContextStore

logger = logging.getLogger(__name__)


class PaginationEngine:
    """Moves a folder's visible window one page at a time.

    Each page replaces the visible items; nothing accumulates.  The context's
    ``page_token_stack`` holds the token consumed to reach every page after
    the first.  Going back pops the token of the current page and fetches the
    new top of the stack, or page 1 via a plain list call when the stack
    becomes empty.

    A page request for a folder that is already loading is ignored, so two
    rapid calls cannot both advance the stack.
    """

    def __init__(self, store: FolderContextStore, executor: MailActionExecutor) -> None:
        self._store = store
        self._executor = executor

    # ── Navigation ─────────────────────────────────────────────────────────────

    async def go_to_next_page(
        self, folder: MailFolder, user_email: str, *, enable_highlight: bool = False
    ) -> bool:
        """Advance to the next page. Returns True if the page changed."""
        ctx = self._store.get_context(folder)
        if ctx is None or not ctx.has_more:
            logger.info("No next page for %s", folder.value)
            return False
        if ctx.is_busy:
            logger.debug("Ignoring next-page request for %s: already loading", folder.value)
            return False
        validate_email(user_email)

        token = ctx.next_page_token or ""
        loading = self._begin(folder, ctx)
        logger.info("Loading page %d of %s", ctx.current_page + 1, folder.value)
        try:
            page = await self._executor.list_more(
                user_email=user_email,
                page_token=token,
                max_results=ctx.items_per_page,
                labels=ctx.current_labels,
                query=ctx.current_query,
                enable_highlight=enable_highlight,
            )
        except MailFailure as exc:
            self._fail(folder, loading, exc, "next")
            return False

        self._commit(
            folder,
            loading,
            page,
            current_page=ctx.current_page + 1,
            page_token_stack=(*ctx.page_token_stack, token),
        )
        return True

    async def go_to_previous_page(
        self, folder: MailFolder, user_email: str, *, enable_highlight: bool = False
    ) -> bool:
        """Go back one page. Returns True if the page changed."""
        ctx = self._store.get_context(folder)
        if ctx is None or not ctx.page_token_stack:
            logger.info("No previous page for %s", folder.value)
            return False
        if ctx.is_busy:
            logger.debug("Ignoring previous-page request for %s: already loading", folder.value)
            return False
        validate_email(user_email)

        stack = ctx.page_token_stack[:-1]
        target_token = stack[-1] if stack else None
        loading = self._begin(folder, ctx)
        logger.info("Loading page %d of %s", ctx.current_page - 1, folder.value)
        try:
            if target_token is None:
                # Page 1 has no token: the gateway's first-page list differs
                # from a load-more with an empty token.
                page = await self._executor.list_first_page(
                    user_email=user_email,
                    max_results=ctx.items_per_page,
                    labels=ctx.current_labels,
                    query=ctx.current_query,
                    enable_highlight=enable_highlight,
                )
            else:
                page = await self._executor.list_more(
                    user_email=user_email,
                    page_token=target_token,
                    max_results=ctx.items_per_page,
                    labels=ctx.current_labels,
                    query=ctx.current_query,
                    enable_highlight=enable_highlight,
                )
        except MailFailure as exc:
            self._fail(folder, loading, exc, "previous")
            return False

        self._commit(
            folder,
            loading,
            page,
            current_page=max(1, ctx.current_page - 1),
            page_token_stack=stack,
        )
        return True

    async def go_to_next_page_with_highlight(self, folder: MailFolder, user_email: str) -> bool:
        return await self.go_to_next_page(folder, user_email, enable_highlight=True)

    async def go_to_previous_page_with_highlight(
        self, folder: MailFolder, user_email: str
    ) -> bool:
        return await self.go_to_previous_page(folder, user_email, enable_highlight=True)

    # ── State helpers ──────────────────────────────────────────────────────────

    def reset_pagination(self, folder: MailFolder) -> None:
        ctx = self._store.get_context(folder)
        if ctx is not None:
            self._store.update_context(folder, ctx.reset_pagination())
            logger.info("Pagination reset for %s", folder.value)

    def can_go_next(self, folder: MailFolder) -> bool:
        ctx = self._store.get_context(folder)
        return ctx is not None and ctx.has_more and not ctx.is_busy

    def can_go_previous(self, folder: MailFolder) -> bool:
        ctx = self._store.get_context(folder)
        return ctx is not None and bool(ctx.page_token_stack) and not ctx.is_busy

    # ── Internal ───────────────────────────────────────────────────────────────

    def _begin(self, folder: MailFolder, ctx: FolderContext) -> FolderContext:
        loading = replace(ctx, is_loading_more=True, error=None)
        self._store.update_context(folder, loading)
        return loading

    def _latest(self, folder: MailFolder, fallback: FolderContext) -> FolderContext:
        # Optimistic flag flips may have replaced the context while awaiting.
        return self._store.get_context(folder) or fallback

    def _commit(
        self,
        folder: MailFolder,
        loading: FolderContext,
        page: MessagePage,
        *,
        current_page: int,
        page_token_stack: tuple[str, ...],
    ) -> None:
        updated = replace(
            self._latest(folder, loading),
            items=page.items,
            is_loading_more=False,
            error=None,
            next_page_token=page.next_page_token,
            has_more=page.has_more,
            current_page=current_page,
            page_token_stack=page_token_stack,
            last_updated=self._store.now(),
        )
        self._store.update_context(folder, updated)
        logger.info(
            "%s now on page %d (%d mail(s), more=%s)",
            folder.value,
            current_page,
            len(page.items),
            page.has_more,
        )

    def _fail(
        self, folder: MailFolder, loading: FolderContext, exc: MailFailure, direction: str
    ) -> None:
        self._store.update_context(folder, self._latest(folder, loading).with_error(exc.message))
        logger.error("Failed to load %s page of %s: %s", direction, folder.value, exc.message)
