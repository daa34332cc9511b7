"""Tests for MailOrchestrator — end-to-end over a mocked gateway."""

import asyncio
from collections.abc import Callable
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from korgan_mail.config import MailConfig
from korgan_mail.gateway.errors import NetworkFailure
from korgan_mail.gateway.types import MessagePage
from korgan_mail.mailbox.folders import MailFolder
from korgan_mail.mailbox.orchestrator import MailOrchestrator

USER = "alice@example.com"


@pytest.fixture
def mail(gateway: MagicMock, config: MailConfig, clock) -> MailOrchestrator:
    return MailOrchestrator(gateway, config, clock=clock)


class TestLoadFolder:
    async def test_first_visit_fetches(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        make_page: Callable[..., MessagePage],
    ) -> None:
        gateway.list_messages.return_value = make_page("in-", next_token="T1")
        ctx = await mail.load_folder(MailFolder.INBOX)
        assert mail.current_folder is MailFolder.INBOX
        assert ctx.has_more
        assert ctx.filter_description == "Labels: INBOX"
        assert gateway.list_messages.await_args.kwargs["labels"] == ("INBOX",)

    async def test_fresh_cache_is_reused(
        self, mail: MailOrchestrator, gateway: MagicMock, clock
    ) -> None:
        await mail.load_folder(MailFolder.SENT)
        clock.advance(minutes=4)
        await mail.load_folder(MailFolder.SENT)
        assert gateway.list_messages.await_count == 1

    async def test_stale_cache_refetched(
        self, mail: MailOrchestrator, gateway: MagicMock, clock
    ) -> None:
        await mail.load_folder(MailFolder.SENT)
        clock.advance(minutes=6)
        await mail.load_folder(MailFolder.SENT)
        assert gateway.list_messages.await_count == 2

    async def test_force_refresh_resets_pagination(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        make_page: Callable[..., MessagePage],
    ) -> None:
        gateway.list_messages.return_value = make_page("p-", next_token="T1")
        await mail.load_folder(MailFolder.INBOX)
        await mail.next_page()
        assert mail.current_context.current_page == 2

        ctx = await mail.refresh_current_folder()
        assert ctx.current_page == 1
        assert ctx.page_token_stack == ()

    async def test_important_uses_query(self, mail: MailOrchestrator, gateway: MagicMock) -> None:
        await mail.load_folder(MailFolder.IMPORTANT)
        kwargs = gateway.list_messages.await_args.kwargs
        assert kwargs["query"] == "is:important"
        assert kwargs["labels"] is None

    async def test_failure_recorded_not_raised(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        make_page: Callable[..., MessagePage],
        clock,
    ) -> None:
        gateway.list_messages.return_value = make_page("in-")
        await mail.load_folder(MailFolder.INBOX)
        clock.advance(minutes=10)
        gateway.list_messages.side_effect = NetworkFailure("offline")

        ctx = await mail.load_folder(MailFolder.INBOX)

        assert ctx.error == "offline"
        assert [i.id for i in ctx.items] == ["in-1", "in-2", "in-3"]
        assert not ctx.is_loading

    async def test_clear_error(self, mail: MailOrchestrator, gateway: MagicMock) -> None:
        gateway.list_messages.side_effect = NetworkFailure("offline")
        await mail.load_folder(MailFolder.INBOX)
        mail.clear_error()
        assert mail.current_context.error is None

    async def test_stale_search_variant_refetched_with_its_query(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        clock,
    ) -> None:
        await mail.load_folder(MailFolder.INBOX)
        await mail.search("budget")
        mail.exit_search()
        clock.advance(minutes=6)
        await mail.load_folder(MailFolder.INBOX_SEARCH)
        kwargs = gateway.list_messages.await_args.kwargs
        assert kwargs["query"] == "budget"
        assert kwargs["enable_highlight"] is True

    async def test_unsearched_variant_not_fetched(
        self, mail: MailOrchestrator, gateway: MagicMock
    ) -> None:
        assert await mail.load_folder(MailFolder.SPAM_SEARCH) is None
        gateway.list_messages.assert_not_awaited()
        assert mail.is_search_mode


class TestNavigationAndSearch:
    async def test_next_page_in_search_forces_highlight(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        make_page: Callable[..., MessagePage],
    ) -> None:
        await mail.load_folder(MailFolder.INBOX)
        gateway.list_messages.return_value = make_page("hit-", next_token="S1")
        await mail.search("budget", enable_highlight=False)
        await mail.next_page()
        kwargs = gateway.list_messages.await_args.kwargs
        assert kwargs["page_token"] == "S1"
        assert kwargs["enable_highlight"] is True
        assert mail.current_context.current_page == 2

    async def test_next_then_previous_scenario(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        make_page: Callable[..., MessagePage],
    ) -> None:
        page1 = make_page("p1-", count=20, next_token="T1")
        page2 = make_page("p2-", count=20, next_token="T2")
        gateway.list_messages.side_effect = [page1, page2, page1]

        await mail.load_folder(MailFolder.INBOX)
        await mail.next_page()
        ctx = mail.current_context
        assert (ctx.current_page, ctx.page_token_stack) == (2, ("T1",))
        assert ctx.items == page2.items
        assert ctx.pagination_info.range_text == "21-40"

        await mail.previous_page()
        ctx = mail.current_context
        assert (ctx.current_page, ctx.page_token_stack) == (1, ())
        assert ctx.items == page1.items
        assert "page_token" not in gateway.list_messages.await_args.kwargs

    async def test_mark_read_touches_base_and_search(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        make_mail,
    ) -> None:
        m1 = make_mail("m1")
        gateway.list_messages.return_value = MessagePage(items=(m1, make_mail("m2")))
        await mail.load_folder(MailFolder.INBOX)
        gateway.list_messages.return_value = MessagePage(items=(m1,))
        await mail.search("budget")

        await mail.mark_as_read("m1")

        inbox = mail.state.contexts[MailFolder.INBOX]
        search = mail.state.contexts[MailFolder.INBOX_SEARCH]
        assert inbox.unread_count == 1
        assert search.unread_count == 0


class TestPreloadAndTrash:
    async def test_preload_keeps_active_folder(
        self, mail: MailOrchestrator, gateway: MagicMock
    ) -> None:
        mail.store.switch_to(MailFolder.SENT)
        await mail.preload_essential_folders()
        assert mail.current_folder is MailFolder.SENT
        assert set(mail.state.contexts) == {MailFolder.INBOX, MailFolder.STARRED}
        assert gateway.list_messages.await_count == 2

    async def test_preload_failure_is_recorded(
        self, mail: MailOrchestrator, gateway: MagicMock
    ) -> None:
        gateway.list_messages.side_effect = NetworkFailure("offline")
        await mail.preload_essential_folders()
        assert mail.state.contexts[MailFolder.INBOX].error == "offline"

    async def test_empty_trash_reloads_visible_trash(
        self, mail: MailOrchestrator, gateway: MagicMock
    ) -> None:
        await mail.load_folder(MailFolder.TRASH)
        await mail.empty_trash()
        gateway.empty_trash.assert_awaited_once_with(user_email=USER)
        assert gateway.list_messages.await_count == 2

    async def test_empty_trash_drops_hidden_trash_cache(
        self, mail: MailOrchestrator, gateway: MagicMock
    ) -> None:
        await mail.load_folder(MailFolder.TRASH)
        await mail.load_folder(MailFolder.INBOX)
        await mail.empty_trash()
        assert MailFolder.TRASH not in mail.state.contexts

    async def test_refresh_if_stale(
        self, mail: MailOrchestrator, gateway: MagicMock, clock
    ) -> None:
        assert not await mail.refresh_if_stale()
        await mail.load_folder(MailFolder.INBOX)
        assert not await mail.refresh_if_stale()
        clock.advance(minutes=6)
        assert await mail.refresh_if_stale()
        assert gateway.list_messages.await_count == 2

    async def test_bulk_routes_to_coordinator(
        self, mail: MailOrchestrator, gateway: MagicMock
    ) -> None:
        gateway.modify_message = AsyncMock(side_effect=[None, NetworkFailure("x")])
        result = await mail.bulk_mark_as_unread(["a", "b"])
        assert result.failed_mail_ids == ("b",)


class TestFilters:
    async def test_filter_change_resets_pagination(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        make_page: Callable[..., MessagePage],
    ) -> None:
        gateway.list_messages.return_value = make_page("p-", next_token="T1")
        await mail.load_folder(MailFolder.INBOX)
        await mail.next_page()
        assert mail.current_context.current_page == 2

        ctx = await mail.load_folder_with_filters(MailFolder.INBOX, labels=["INBOX", "UNREAD"])

        assert ctx.current_page == 1
        assert ctx.page_token_stack == ()
        assert ctx.filter_description == "Labels: INBOX, UNREAD"
        kwargs = gateway.list_messages.await_args.kwargs
        assert kwargs["labels"] == ("INBOX", "UNREAD")
        assert "page_token" not in kwargs

    async def test_query_filter(self, mail: MailOrchestrator, gateway: MagicMock) -> None:
        ctx = await mail.load_folder_with_filters(MailFolder.SENT, query="from:bob")
        assert mail.current_folder is MailFolder.SENT
        assert ctx.filter_description == "Query: from:bob"
        assert gateway.list_messages.await_args.kwargs["labels"] is None

    async def test_unread_inbox(self, mail: MailOrchestrator, gateway: MagicMock) -> None:
        ctx = await mail.load_unread_inbox()
        assert ctx.current_labels == ("INBOX", "UNREAD")

    async def test_refresh_keeps_filter_until_cleared(
        self, mail: MailOrchestrator, gateway: MagicMock
    ) -> None:
        await mail.load_unread_inbox()
        await mail.refresh_current_folder()
        assert gateway.list_messages.await_args.kwargs["labels"] == ("INBOX", "UNREAD")

        ctx = await mail.clear_filters()
        assert ctx.filter_description == "Labels: INBOX"
        assert gateway.list_messages.await_args.kwargs["labels"] == ("INBOX",)

    async def test_clear_filters_on_important_restores_query(
        self, mail: MailOrchestrator, gateway: MagicMock
    ) -> None:
        await mail.load_folder_with_filters(MailFolder.IMPORTANT, labels=["SPAM"])
        ctx = await mail.clear_filters()
        assert ctx.filter_description == "Query: is:important"

    async def test_no_highlight_search_refetched_without_highlight(
        self, mail: MailOrchestrator, gateway: MagicMock, clock
    ) -> None:
        await mail.load_folder(MailFolder.INBOX)
        await mail.search("budget", enable_highlight=False)
        clock.advance(minutes=6)
        await mail.refresh_current_folder()
        assert gateway.list_messages.await_args.kwargs["enable_highlight"] is False


class TestConfiguredPageSize:
    async def test_error_only_context_uses_configured_size(
        self, gateway: MagicMock, config: MailConfig, clock
    ) -> None:
        mail = MailOrchestrator(gateway, replace(config, page_size=50), clock=clock)
        mail.store.switch_to(MailFolder.SPAM)
        mail.clear_error()
        ctx = await mail.load_folder(MailFolder.SPAM)
        assert gateway.list_messages.await_args.kwargs["max_results"] == 50
        assert ctx.items_per_page == 50


class TestRemovalAcrossFolderSwitch:
    async def test_failed_trash_returns_to_origin_folder(
        self,
        mail: MailOrchestrator,
        gateway: MagicMock,
        make_mail,
    ) -> None:
        gateway.list_messages.side_effect = [
            MessagePage(items=(make_mail("i1"),)),
            MessagePage(items=(make_mail("s1"),)),
        ]
        await mail.load_folder(MailFolder.INBOX)
        await mail.load_folder(MailFolder.STARRED)
        release = asyncio.Event()

        async def blocked_failure(*args: object, **kwargs: object) -> None:
            await release.wait()
            raise NetworkFailure("offline")

        gateway.modify_message = AsyncMock(side_effect=blocked_failure)
        task = asyncio.create_task(mail.move_to_trash("s1"))
        await asyncio.sleep(0)
        await mail.load_folder(MailFolder.INBOX)
        release.set()
        with pytest.raises(NetworkFailure):
            await task

        starred = mail.state.contexts[MailFolder.STARRED]
        inbox = mail.state.contexts[MailFolder.INBOX]
        assert [i.id for i in starred.items] == ["s1"]
        assert starred.error == "offline"
        assert [i.id for i in inbox.items] == ["i1"]
