"""Search mode switch — filtered views layered over a base folder."""

from __future__ import annotations

import logging

from korgan_mail.mailbox.executor import validate_email, validate_query
from korgan_mail.mailbox.folders import MailFolder
from korgan_mail.mailbox.loader import FolderLoader
from korgan_mail.mailbox.models import FolderContext
from korgan_mail.mailbox.store import FolderContextStore

logger = logging.getLogger(__name__)


def effective_query(folder: MailFolder, query: str) -> str:
    """Combine a folder's own query (e.g. ``is:important``) with the user's."""
    base_query = folder.base_folder.query
    query = query.strip()
    return f"{base_query} {query}" if base_query else query


class SearchModeSwitch:
    """Runs searches in a folder's search variant, leaving the base untouched.

    Every search starts from an empty context, so results are always fetched
    fresh.  Searching while already in a search variant replaces that
    variant's results instead of nesting.
    """

    def __init__(self, store: FolderContextStore, loader: FolderLoader) -> None:
        self._store = store
        self._loader = loader

    async def search_in_current_folder(
        self, query: str, user_email: str, *, enable_highlight: bool = False
    ) -> FolderContext:
        """Search within the active folder and make its search variant active.

        A failed search is recorded on the search context and re-raised.
        """
        validate_query(query)
        validate_email(user_email)

        base = self._store.current_folder.base_folder
        target = base.search_folder
        self._store.switch_to(target)
        logger.info("Searching %s for %r", base.value, query)

        return await self._loader.load(
            target,
            user_email=user_email,
            labels=base.labels,
            query=effective_query(base, query),
            enable_highlight=enable_highlight,
            fresh=True,
        )

    def exit_search(self) -> MailFolder | None:
        """Return to the base folder; its cached context reappears unchanged."""
        state = self._store.state
        if not state.is_search_mode:
            return None
        base = state.current_folder.base_folder
        self._store.switch_to(base)
        logger.info("Exited search, back to %s", base.value)
        return base

    def search_context(self, folder: MailFolder) -> FolderContext | None:
        return self._store.get_context(folder.search_folder)

    def has_search_results(self, folder: MailFolder) -> bool:
        ctx = self.search_context(folder)
        return ctx is not None and bool(ctx.items)
