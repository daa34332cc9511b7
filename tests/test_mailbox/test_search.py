"""Tests for SearchModeSwitch — the gateway is mocked."""

from collections.abc import Callable
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from korgan_mail.gateway.errors import ServerFailure, ValidationFailure
from korgan_mail.gateway.types import MessagePage
from korgan_mail.mailbox.executor import MailActionExecutor
from korgan_mail.mailbox.folders import MailFolder
from korgan_mail.mailbox.loader import FolderLoader
from korgan_mail.mailbox.models import FolderContext
from korgan_mail.mailbox.search import SearchModeSwitch, effective_query
from korgan_mail.mailbox.store import FolderContextStore

USER = "alice@example.com"


@pytest.fixture
def store(clock) -> FolderContextStore:
    return FolderContextStore(stale_after=timedelta(minutes=5), clock=clock)


@pytest.fixture
def switch(store: FolderContextStore, gateway: MagicMock) -> SearchModeSwitch:
    return SearchModeSwitch(store, FolderLoader(store, MailActionExecutor(gateway)))


@pytest.fixture
def inbox(store: FolderContextStore, make_page: Callable[..., MessagePage], clock) -> FolderContext:
    page = make_page("in-", next_token="T1")
    ctx = FolderContext(
        items=page.items,
        next_page_token="T2",
        has_more=True,
        current_page=2,
        page_token_stack=("T1",),
        current_labels=("INBOX",),
        last_updated=clock(),
        error="old banner",
    )
    store.update_context(MailFolder.INBOX, ctx)
    store.switch_to(MailFolder.INBOX)
    return ctx


class TestEffectiveQuery:
    def test_plain_folder(self) -> None:
        assert effective_query(MailFolder.INBOX, " budget ") == "budget"

    def test_important_keeps_its_query(self) -> None:
        assert effective_query(MailFolder.IMPORTANT, "budget") == "is:important budget"


class TestSearchInCurrentFolder:
    async def test_switches_to_search_variant(
        self,
        switch: SearchModeSwitch,
        store: FolderContextStore,
        gateway: MagicMock,
        inbox: FolderContext,
        make_page: Callable[..., MessagePage],
    ) -> None:
        gateway.list_messages.return_value = make_page("hit-", count=2)
        ctx = await switch.search_in_current_folder("budget", USER, enable_highlight=True)

        assert store.current_folder is MailFolder.INBOX_SEARCH
        assert store.state.is_search_mode
        assert [i.id for i in ctx.items] == ["hit-1", "hit-2"]
        assert ctx.current_query == "budget"
        assert ctx.current_labels == ("INBOX",)
        assert ctx.current_page == 1
        gateway.list_messages.assert_awaited_once_with(
            user_email=USER,
            max_results=20,
            labels=("INBOX",),
            query="budget",
            enable_highlight=True,
        )

    async def test_context_prepopulated_before_response(
        self,
        switch: SearchModeSwitch,
        store: FolderContextStore,
        gateway: MagicMock,
        inbox: FolderContext,
    ) -> None:
        seen: list[FolderContext] = []

        async def check(**kwargs: object) -> MessagePage:
            seen.append(store.get_context(MailFolder.INBOX_SEARCH))
            return MessagePage()

        gateway.list_messages = AsyncMock(side_effect=check)
        await switch.search_in_current_folder("budget", USER)
        assert seen[0].is_loading
        assert seen[0].items == ()
        assert seen[0].current_query == "budget"

    async def test_repeat_search_always_refetches(
        self,
        switch: SearchModeSwitch,
        store: FolderContextStore,
        gateway: MagicMock,
        inbox: FolderContext,
        make_page: Callable[..., MessagePage],
    ) -> None:
        gateway.list_messages.side_effect = [make_page("a-"), make_page("b-")]
        await switch.search_in_current_folder("budget", USER)
        second = await switch.search_in_current_folder("budget", USER)
        assert gateway.list_messages.await_count == 2
        assert [i.id for i in second.items] == ["b-1", "b-2", "b-3"]

    async def test_search_of_search_collapses(
        self,
        switch: SearchModeSwitch,
        store: FolderContextStore,
        gateway: MagicMock,
        inbox: FolderContext,
    ) -> None:
        await switch.search_in_current_folder("budget", USER)
        await switch.search_in_current_folder("invoice", USER)
        assert store.current_folder is MailFolder.INBOX_SEARCH
        assert gateway.list_messages.await_args.kwargs["query"] == "invoice"
        assert gateway.list_messages.await_args.kwargs["labels"] == ("INBOX",)

    async def test_important_search_query(
        self, switch: SearchModeSwitch, store: FolderContextStore, gateway: MagicMock
    ) -> None:
        store.switch_to(MailFolder.IMPORTANT)
        await switch.search_in_current_folder("budget", USER)
        kwargs = gateway.list_messages.await_args.kwargs
        assert kwargs["query"] == "is:important budget"
        assert kwargs["labels"] is None
        assert store.current_folder is MailFolder.IMPORTANT_SEARCH

    async def test_trash_has_a_search_variant(
        self, switch: SearchModeSwitch, store: FolderContextStore, gateway: MagicMock
    ) -> None:
        store.switch_to(MailFolder.TRASH)
        await switch.search_in_current_folder("budget", USER)
        assert store.current_folder is MailFolder.TRASH_SEARCH
        assert gateway.list_messages.await_args.kwargs["labels"] == ("TRASH",)

    async def test_failure_recorded_and_raised(
        self,
        switch: SearchModeSwitch,
        store: FolderContextStore,
        gateway: MagicMock,
        inbox: FolderContext,
    ) -> None:
        gateway.list_messages = AsyncMock(side_effect=ServerFailure("Internal server error", 500))
        with pytest.raises(ServerFailure):
            await switch.search_in_current_folder("budget", USER)
        ctx = store.get_context(MailFolder.INBOX_SEARCH)
        assert ctx.error == "Internal server error"
        assert not ctx.is_loading
        assert store.state.is_search_mode

    async def test_short_query_rejected_without_switching(
        self,
        switch: SearchModeSwitch,
        store: FolderContextStore,
        gateway: MagicMock,
        inbox: FolderContext,
    ) -> None:
        with pytest.raises(ValidationFailure):
            await switch.search_in_current_folder("a", USER)
        assert store.current_folder is MailFolder.INBOX
        gateway.list_messages.assert_not_awaited()


class TestExitSearch:
    async def test_round_trip_restores_base_exactly(
        self,
        switch: SearchModeSwitch,
        store: FolderContextStore,
        gateway: MagicMock,
        inbox: FolderContext,
        make_page: Callable[..., MessagePage],
    ) -> None:
        gateway.list_messages.return_value = make_page("hit-")
        await switch.search_in_current_folder("budget", USER)

        assert switch.exit_search() is MailFolder.INBOX

        assert store.current_folder is MailFolder.INBOX
        assert not store.state.is_search_mode
        assert store.current_context is inbox
        assert store.current_context.error == "old banner"

    def test_exit_outside_search_is_noop(
        self, switch: SearchModeSwitch, store: FolderContextStore, inbox: FolderContext
    ) -> None:
        assert switch.exit_search() is None
        assert store.current_folder is MailFolder.INBOX

    async def test_search_results_kept_after_exit(
        self,
        switch: SearchModeSwitch,
        gateway: MagicMock,
        inbox: FolderContext,
        make_page: Callable[..., MessagePage],
    ) -> None:
        gateway.list_messages.return_value = make_page("hit-")
        await switch.search_in_current_folder("budget", USER)
        switch.exit_search()
        assert switch.has_search_results(MailFolder.INBOX)
        assert switch.search_context(MailFolder.INBOX).current_query == "budget"
        assert not switch.has_search_results(MailFolder.SENT)
