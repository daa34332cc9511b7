"""First-page loads of a folder into the context store."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from korgan_mail.config import DEFAULT_PAGE_SIZE
from korgan_mail.gateway.errors import MailFailure
from korgan_mail.mailbox.executor import MailActionExecutor, validate_email
from korgan_mail.mailbox.folders import MailFolder
from korgan_mail.mailbox.models import FolderContext
from korgan_mail.mailbox.store import FolderContextStore

logger = logging.getLogger(__name__)


class FolderLoader:
    """Fetches page 1 of a folder and replaces its context wholesale.

    A successful load resets pagination (empty token stack, page 1).  A failed
    load keeps whatever items were already visible, records the failure
    message on the context and re-raises it.
    """

    def __init__(
        self,
        store: FolderContextStore,
        executor: MailActionExecutor,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._store = store
        self._executor = executor
        self._page_size = page_size

    async def load(
        self,
        folder: MailFolder,
        *,
        user_email: str,
        labels: Sequence[str] | None = None,
        query: str | None = None,
        enable_highlight: bool = False,
        fresh: bool = False,
    ) -> FolderContext:
        """Load the first page of ``folder`` with the given filter.

        With ``fresh=True`` the previous context is discarded before the
        request starts, so stale items are never shown under the new filter.
        """
        validate_email(user_email)

        previous = None if fresh else self._store.get_context(folder)
        loading = replace(
            previous or FolderContext(),
            is_loading=True,
            error=None,
            current_labels=tuple(labels) if labels else None,
            current_query=query or None,
            enable_highlight=enable_highlight,
            items_per_page=self._page_size,
        )
        self._store.update_context(folder, loading)

        try:
            page = await self._executor.list_first_page(
                user_email=user_email,
                max_results=loading.items_per_page,
                labels=loading.current_labels,
                query=loading.current_query,
                enable_highlight=enable_highlight,
            )
        except MailFailure as exc:
            latest = self._store.get_context(folder) or loading
            self._store.update_context(folder, latest.with_error(exc.message))
            logger.error("Failed to load %s: %s", folder.value, exc.message)
            raise

        loaded = FolderContext(
            items=page.items,
            next_page_token=page.next_page_token,
            has_more=page.has_more,
            current_labels=loading.current_labels,
            current_query=loading.current_query,
            enable_highlight=enable_highlight,
            last_updated=self._store.now(),
            items_per_page=loading.items_per_page,
        )
        self._store.update_context(folder, loaded)
        logger.info(
            "Loaded %s: %d mail(s), %d unread, more=%s",
            folder.value,
            len(loaded.items),
            loaded.unread_count,
            loaded.has_more,
        )
        return loaded
