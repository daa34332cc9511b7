"""Optimistic update coordinator — local state changes ahead of the gateway."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace

from korgan_mail.gateway.errors import MailFailure
from korgan_mail.gateway.types import MailItem
from korgan_mail.mailbox.executor import (
    MailActionExecutor,
    validate_bulk,
    validate_email,
    validate_mail_id,
)
from korgan_mail.mailbox.folders import MailFolder
from korgan_mail.mailbox.models import BulkActionResult, FolderContext
from korgan_mail.mailbox.store import FolderContextStore

logger = logging.getLogger(__name__)

_STARRED = "STARRED"

# Executor call for one mail id: (mail_id, user_email) -> awaitable
_SingleCall = Callable[..., Awaitable[None]]


def _set_read(is_read: bool) -> Callable[[MailItem], MailItem]:
    return lambda item: replace(item, is_read=is_read)


def _set_starred(is_starred: bool) -> Callable[[MailItem], MailItem]:
    def update(item: MailItem) -> MailItem:
        labels = tuple(label for label in item.labels if label != _STARRED)
        if is_starred:
            labels = (*labels, _STARRED)
        return replace(item, is_starred=is_starred, labels=labels)

    return update


class OptimisticUpdateCoordinator:
    """Applies mail actions to the cached state before the gateway confirms.

    Flag changes (read/unread, star/unstar) are applied to every cached folder
    holding the mail, committed as one state change, and are not rolled back
    if the call fails.  Removals (trash, archive, restore, delete) follow a
    three-step contract: remove from the active folder, call the gateway,
    re-insert on failure.

    Every single-item action that fails records the failure message on the
    active folder's context and raises the MailFailure, so callers can both
    show the banner and offer an undo.
    """

    def __init__(self, store: FolderContextStore, executor: MailActionExecutor) -> None:
        self._store = store
        self._executor = executor

    # ── Flag changes ───────────────────────────────────────────────────────────

    async def mark_as_read(self, mail_id: str, user_email: str) -> None:
        await self._flag_action(
            mail_id, user_email, _set_read(True), self._executor.mark_read, "mark as read"
        )

    async def mark_as_unread(self, mail_id: str, user_email: str) -> None:
        await self._flag_action(
            mail_id, user_email, _set_read(False), self._executor.mark_unread, "mark as unread"
        )

    async def star_mail(self, mail_id: str, user_email: str) -> None:
        await self._flag_action(
            mail_id, user_email, _set_starred(True), self._executor.star, "star"
        )

    async def unstar_mail(self, mail_id: str, user_email: str) -> None:
        await self._flag_action(
            mail_id, user_email, _set_starred(False), self._executor.unstar, "unstar"
        )

    # ── Gateway-only removals ──────────────────────────────────────────────────

    async def move_to_trash_api_only(self, mail_id: str, user_email: str) -> None:
        """Trash on the gateway only; the caller owns the local removal."""
        await self._call(self._executor.move_to_trash, mail_id, user_email, "move to trash")

    async def archive_mail_api_only(self, mail_id: str, user_email: str) -> None:
        await self._call(self._executor.archive, mail_id, user_email, "archive")

    async def restore_from_trash_api_only(self, mail_id: str, user_email: str) -> None:
        await self._call(
            self._executor.restore_from_trash, mail_id, user_email, "restore from trash"
        )

    async def delete_permanently_api_only(self, mail_id: str, user_email: str) -> None:
        await self._call(
            self._executor.delete_permanently, mail_id, user_email, "delete permanently"
        )

    async def empty_trash(self, user_email: str) -> None:
        """Empty the trash. No local step; refresh the trash folder afterwards."""
        validate_email(user_email)
        try:
            await self._executor.empty_trash(user_email=user_email)
        except MailFailure as exc:
            self._record_failure("empty trash", exc)
            raise
        logger.info("Trash emptied for %s", user_email)

    # ── Local removal and restore ──────────────────────────────────────────────

    def optimistic_remove(
        self, mail_id: str, folder: MailFolder | None = None
    ) -> MailItem | None:
        """Drop a mail from ``folder`` (default: the active one) and return it."""
        folder = folder or self._store.current_folder
        ctx = self._store.get_context(folder)
        if ctx is None:
            return None
        removed = next((item for item in ctx.items if item.id == mail_id), None)
        if removed is not None:
            self._store.update_context(folder, ctx.without_item(mail_id))
        return removed

    def restore_to_current_context(
        self,
        item: MailItem,
        *,
        folder: MailFolder | None = None,
        clear_error: bool = True,
    ) -> None:
        """Put a removed mail back into ``folder`` (default: the active one), newest first.

        A mail already present is not inserted again.
        """
        folder = folder or self._store.current_folder
        ctx = self._store.get_context(folder) or FolderContext()
        items = ctx.items if ctx.contains(item.id) else (*ctx.items, item)
        updated = replace(
            ctx,
            items=tuple(sorted(items, key=lambda i: i.timestamp, reverse=True)),
            error=None if clear_error else ctx.error,
        )
        self._store.update_context(folder, updated)
        logger.debug("Restored mail %s into %s", item.id, folder.value)

    async def move_to_trash(self, mail_id: str, user_email: str) -> None:
        await self._remove_with_rollback(
            mail_id, user_email, self._executor.move_to_trash, "move to trash"
        )

    async def archive_mail(self, mail_id: str, user_email: str) -> None:
        await self._remove_with_rollback(mail_id, user_email, self._executor.archive, "archive")

    async def restore_from_trash(self, mail_id: str, user_email: str) -> None:
        await self._remove_with_rollback(
            mail_id, user_email, self._executor.restore_from_trash, "restore from trash"
        )

    async def delete_permanently(self, mail_id: str, user_email: str) -> None:
        await self._remove_with_rollback(
            mail_id, user_email, self._executor.delete_permanently, "delete permanently"
        )

    # ── Bulk actions ───────────────────────────────────────────────────────────

    async def bulk_move_to_trash(
        self, mail_ids: Sequence[str], user_email: str
    ) -> BulkActionResult:
        """Trash several mails one after another; failed ones reappear."""
        validate_bulk(mail_ids)
        validate_email(user_email)

        folder = self._store.current_folder
        ctx = self._store.get_context(folder)
        removed: dict[str, MailItem] = {}
        if ctx is not None:
            targets = set(mail_ids)
            removed = {item.id: item for item in ctx.items if item.id in targets}
            kept = tuple(item for item in ctx.items if item.id not in targets)
            self._store.update_context(folder, replace(ctx, items=kept))

        result = await self._run_sequentially(mail_ids, user_email, self._executor.move_to_trash)

        for mail_id in result.failed_mail_ids:
            if mail_id in removed:
                self.restore_to_current_context(
                    removed[mail_id], folder=folder, clear_error=False
                )
        logger.info("Bulk trash: %s", result.summary)
        return result

    async def bulk_mark_as_read(
        self, mail_ids: Sequence[str], user_email: str
    ) -> BulkActionResult:
        return await self._bulk_flag(
            mail_ids, user_email, _set_read(True), self._executor.mark_read, "mark as read"
        )

    async def bulk_mark_as_unread(
        self, mail_ids: Sequence[str], user_email: str
    ) -> BulkActionResult:
        return await self._bulk_flag(
            mail_ids, user_email, _set_read(False), self._executor.mark_unread, "mark as unread"
        )

    # ── Internal ───────────────────────────────────────────────────────────────

    def _apply_everywhere(
        self, mail_ids: Sequence[str], update: Callable[[MailItem], MailItem]
    ) -> list[MailFolder]:
        """Update the mails in every cached context, committed as one change."""
        targets = set(mail_ids)
        updates: dict[MailFolder, FolderContext] = {}
        for folder, ctx in self._store.state.contexts.items():
            if any(item.id in targets for item in ctx.items):
                updates[folder] = replace(
                    ctx,
                    items=tuple(update(i) if i.id in targets else i for i in ctx.items),
                )
        self._store.update_contexts(updates)
        return list(updates)

    async def _flag_action(
        self,
        mail_id: str,
        user_email: str,
        update: Callable[[MailItem], MailItem],
        call: _SingleCall,
        description: str,
    ) -> None:
        validate_mail_id(mail_id)
        validate_email(user_email)
        touched = self._apply_everywhere([mail_id], update)
        logger.debug("Optimistically updated %s in %d folder(s)", mail_id, len(touched))
        await self._call(call, mail_id, user_email, description)

    async def _bulk_flag(
        self,
        mail_ids: Sequence[str],
        user_email: str,
        update: Callable[[MailItem], MailItem],
        call: _SingleCall,
        description: str,
    ) -> BulkActionResult:
        validate_bulk(mail_ids)
        validate_email(user_email)
        self._apply_everywhere(mail_ids, update)
        result = await self._run_sequentially(mail_ids, user_email, call)
        logger.info("Bulk %s: %s", description, result.summary)
        return result

    async def _run_sequentially(
        self, mail_ids: Sequence[str], user_email: str, call: _SingleCall
    ) -> BulkActionResult:
        failed: list[str] = []
        for mail_id in mail_ids:
            try:
                await call(mail_id, user_email=user_email)
            except MailFailure as exc:
                logger.warning("Bulk action failed for %s: %s", mail_id, exc.message)
                failed.append(mail_id)
        return BulkActionResult(
            total_count=len(mail_ids),
            success_count=len(mail_ids) - len(failed),
            failed_count=len(failed),
            failed_mail_ids=tuple(failed),
        )

    async def _call(
        self,
        call: _SingleCall,
        mail_id: str,
        user_email: str,
        description: str,
        folder: MailFolder | None = None,
    ) -> None:
        try:
            await call(mail_id, user_email=user_email)
        except MailFailure as exc:
            self._record_failure(description, exc, folder)
            raise
        logger.info("%s: %s done", description.capitalize(), mail_id)

    async def _remove_with_rollback(
        self, mail_id: str, user_email: str, call: _SingleCall, description: str
    ) -> None:
        validate_mail_id(mail_id)
        validate_email(user_email)
        # The active folder may change while the call is in flight.
        folder = self._store.current_folder
        removed = self.optimistic_remove(mail_id, folder)
        try:
            await self._call(call, mail_id, user_email, description, folder)
        except MailFailure:
            if removed is not None:
                self.restore_to_current_context(removed, folder=folder, clear_error=False)
            raise

    def _record_failure(
        self, description: str, exc: MailFailure, folder: MailFolder | None = None
    ) -> None:
        folder = folder or self._store.current_folder
        self._store.set_error(folder, exc.message)
        logger.error("Failed to %s in %s: %s", description, folder.value, exc.message)
