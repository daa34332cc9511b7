"""In-memory state types for the folder cache."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from types import MappingProxyType

from korgan_mail.config import DEFAULT_PAGE_SIZE
from korgan_mail.gateway.types import MailItem
from korgan_mail.mailbox.folders import MailFolder


@dataclass(frozen=True)
class PaginationInfo:
    """Page position of a folder context, ready for display."""

    current_page: int
    start_index: int
    end_index: int
    can_go_next: bool
    can_go_previous: bool
    is_loading: bool

    @property
    def range_text(self) -> str:
        """e.g. "21-40", or a single number when the page holds one item."""
        if self.start_index == self.end_index:
            return str(self.start_index)
        return f"{self.start_index}-{self.end_index}"


@dataclass(frozen=True)
class FolderContext:
    """Cached, paginated view of one folder.

    Contexts are never mutated; every change is a whole replacement built with
    ``dataclasses.replace`` and committed through the FolderContextStore.

    ``page_token_stack`` holds the tokens consumed to reach each page after the
    first, oldest first, so ``len(page_token_stack) == current_page - 1`` for
    sequential navigation.
    """

    items: tuple[MailItem, ...] = ()
    is_loading: bool = False
    is_loading_more: bool = False
    error: str | None = None
    next_page_token: str | None = None
    has_more: bool = False
    current_page: int = 1
    page_token_stack: tuple[str, ...] = ()
    current_labels: tuple[str, ...] | None = None
    current_query: str | None = None
    enable_highlight: bool = False
    last_updated: datetime | None = None
    items_per_page: int = DEFAULT_PAGE_SIZE

    @property
    def unread_count(self) -> int:
        return sum(1 for item in self.items if not item.is_read)

    @property
    def is_busy(self) -> bool:
        return self.is_loading or self.is_loading_more

    @property
    def is_filtered(self) -> bool:
        return bool(self.current_labels) or bool(self.current_query)

    @property
    def filter_description(self) -> str:
        if self.current_query:
            return f"Query: {self.current_query}"
        if self.current_labels:
            return f"Labels: {', '.join(self.current_labels)}"
        return "All mails"

    @property
    def pagination_info(self) -> PaginationInfo:
        start = (self.current_page - 1) * self.items_per_page + 1
        end = start + len(self.items) - 1
        return PaginationInfo(
            current_page=self.current_page,
            start_index=start,
            end_index=min(max(end, start), start + self.items_per_page - 1),
            can_go_next=self.has_more,
            can_go_previous=bool(self.page_token_stack),
            is_loading=self.is_busy,
        )

    def is_stale(self, now: datetime, ttl: timedelta) -> bool:
        """True when never loaded or last loaded more than ``ttl`` ago."""
        if self.last_updated is None:
            return True
        return now - self.last_updated > ttl

    def contains(self, mail_id: str) -> bool:
        return any(item.id == mail_id for item in self.items)

    def reset_pagination(self) -> FolderContext:
        return replace(self, current_page=1, page_token_stack=())

    def with_error(self, message: str | None) -> FolderContext:
        return replace(self, error=message, is_loading=False, is_loading_more=False)

    def map_item(
        self, mail_id: str, update: Callable[[MailItem], MailItem]
    ) -> FolderContext:
        """Replace the item with ``mail_id`` by ``update(item)``."""
        return replace(
            self,
            items=tuple(update(i) if i.id == mail_id else i for i in self.items),
        )

    def without_item(self, mail_id: str) -> FolderContext:
        return replace(self, items=tuple(i for i in self.items if i.id != mail_id))


@dataclass(frozen=True)
class MailState:
    """Snapshot of every cached folder plus the active one.

    Keys of ``contexts`` are exactly the folders visited since the last cache
    clear.  Search mode is derived from the active folder, so it can never
    disagree with it.
    """

    contexts: Mapping[MailFolder, FolderContext] = field(
        default_factory=lambda: MappingProxyType({})
    )
    current_folder: MailFolder = MailFolder.INBOX

    @property
    def is_search_mode(self) -> bool:
        return self.current_folder.is_search

    @property
    def current_context(self) -> FolderContext | None:
        return self.contexts.get(self.current_folder)

    def with_contexts(self, updates: Mapping[MailFolder, FolderContext]) -> MailState:
        merged = {**self.contexts, **updates}
        return replace(self, contexts=MappingProxyType(merged))

    def without_contexts(self, folders: list[MailFolder] | None = None) -> MailState:
        if folders is None:
            return replace(self, contexts=MappingProxyType({}))
        remaining = {k: v for k, v in self.contexts.items() if k not in folders}
        return replace(self, contexts=MappingProxyType(remaining))


@dataclass(frozen=True)
class BulkActionResult:
    """Outcome of a sequential bulk action."""

    total_count: int
    success_count: int
    failed_count: int
    failed_mail_ids: tuple[str, ...] = ()

    @property
    def all_succeeded(self) -> bool:
        return self.failed_count == 0

    @property
    def summary(self) -> str:
        if self.all_succeeded:
            return f"{self.success_count} mail(s) processed"
        return f"{self.success_count} of {self.total_count} mail(s) processed, {self.failed_count} failed"


@dataclass(frozen=True)
class FolderStatistics:
    """Aggregate cache figures across base folders."""

    loaded_folders: int
    stale_folders: int
    total_mails: int
    total_unread: int
