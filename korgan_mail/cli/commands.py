"""CLI command implementations — all commands drive a MailOrchestrator."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click
from rich import box
from rich.console import Console
from rich.table import Table

from korgan_mail.config import MailConfig
from korgan_mail.gateway.client import mail_gateway
from korgan_mail.gateway.errors import MailFailure
from korgan_mail.mailbox.folders import BASE_FOLDERS, MailFolder, parse_folder
from korgan_mail.mailbox.models import BulkActionResult, FolderContext
from korgan_mail.mailbox.orchestrator import MailOrchestrator
from korgan_mail.refresh.scheduler import create_refresh_scheduler
from korgan_mail.refresh.unread import UnreadCountTracker, display_text

logger = logging.getLogger(__name__)
console = Console(width=160)

T = TypeVar("T")

_FOLDER_CHOICE = click.Choice([f.value for f in BASE_FOLDERS], case_sensitive=False)


# ── Helpers ────────────────────────────────────────────────────────────────────


def _run(config: MailConfig, work: Callable[[MailOrchestrator], Awaitable[T]]) -> T | None:
    """Open a gateway, run ``work`` against a fresh orchestrator, report failures."""
    if not config.user_email:
        console.print("[red]No mailbox configured. Set KORGAN_USER_EMAIL or pass --user.[/red]")
        return None

    async def _amain() -> T:
        async with mail_gateway(config) as gateway:
            return await work(MailOrchestrator(gateway, config))

    try:
        return asyncio.run(_amain())
    except MailFailure as exc:
        console.print(f"[red]Mail error ({exc.code}): {exc.message}[/red]")
        return None


def _render_context(folder: MailFolder, ctx: FolderContext | None) -> None:
    if ctx is None:
        console.print(f"[yellow]{folder.display_name} has not been loaded.[/yellow]")
        return
    if ctx.error:
        console.print(f"[red]{ctx.error}[/red]")
    if not ctx.items:
        console.print(f"[yellow]No mail in {folder.display_name}.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Id", style="dim", max_width=18)
    table.add_column("From", max_width=26)
    table.add_column("Subject", max_width=48)
    table.add_column("Date", width=16)
    table.add_column("", width=2)

    start = ctx.pagination_info.start_index
    for i, item in enumerate(ctx.items, start=start):
        subject_style = "dim" if item.is_read else "bold"
        table.add_row(
            str(i),
            item.id,
            item.sender,
            f"[{subject_style}]{item.subject or '(no subject)'}[/{subject_style}]",
            item.timestamp.strftime("%Y-%m-%d %H:%M"),
            "★" if item.is_starred else "",
        )

    info = ctx.pagination_info
    console.print(
        f"\n[bold]{folder.display_name}[/bold]  [dim]{ctx.filter_description}[/dim]"
    )
    console.print(table)
    console.print(
        f"  Page {info.current_page} · {info.range_text}"
        f" · {ctx.unread_count} unread"
        + ("  [dim](more available)[/dim]" if info.can_go_next else "")
    )


def _render_bulk(verb: str, result: BulkActionResult | None) -> None:
    if result is None:
        return
    if result.all_succeeded:
        console.print(f"[green]{verb}:[/green] {result.summary}.")
        return
    console.print(f"[yellow]{verb}:[/yellow] {result.summary}.")
    for mail_id in result.failed_mail_ids:
        console.print(f"  [red]✗[/red] {mail_id}")


# ── Browsing ───────────────────────────────────────────────────────────────────


@click.command("list")
@click.argument("folder", type=_FOLDER_CHOICE, default="inbox")
@click.option("--page", "page", default=1, show_default=True, type=click.IntRange(min=1),
              help="Page to show; earlier pages are walked through first.")
@click.pass_obj
def list_folder(config: MailConfig, folder: str, page: int) -> None:
    """Show one page of a folder."""
    target = parse_folder(folder)

    async def work(mail: MailOrchestrator) -> FolderContext | None:
        await mail.load_folder(target)
        while mail.current_context is not None and mail.current_context.current_page < page:
            if not await mail.next_page():
                break
        return mail.current_context

    _render_context(target, _run(config, work))


@click.command()
@click.argument("query")
@click.option("--folder", type=_FOLDER_CHOICE, default="inbox", show_default=True,
              help="Folder to search in.")
@click.option("--highlight/--no-highlight", default=True, show_default=True,
              help="Ask the gateway to mark up matched text.")
@click.pass_obj
def search(config: MailConfig, query: str, folder: str, highlight: bool) -> None:
    """Search within a folder."""
    base = parse_folder(folder)

    async def work(mail: MailOrchestrator) -> FolderContext | None:
        mail.store.switch_to(base)
        return await mail.search(query, enable_highlight=highlight)

    console.print(f"\nSearch results for [bold]{query!r}[/bold] in {base.display_name}")
    _render_context(base.search_folder, _run(config, work))


@click.command()
@click.pass_obj
def counts(config: MailConfig) -> None:
    """Show unread counts for every folder."""

    async def work(mail: MailOrchestrator) -> dict[MailFolder, int]:
        tracker = UnreadCountTracker(mail.executor)
        return await tracker.refresh_all_for_user(mail.user_email)

    result = _run(config, work)
    if result is None:
        return
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Folder", width=12)
    table.add_column("Unread", justify="right", width=8)
    for folder, count in result.items():
        table.add_row(folder.display_name, display_text(count) or "[dim]0[/dim]")
    console.print(table)


# ── Actions ────────────────────────────────────────────────────────────────────


@click.command("read")
@click.argument("mail_ids", nargs=-1, required=True)
@click.pass_obj
def mark_read(config: MailConfig, mail_ids: tuple[str, ...]) -> None:
    """Mark mail as read."""
    _render_bulk("Marked read", _run(config, lambda mail: mail.bulk_mark_as_read(mail_ids)))


@click.command("unread")
@click.argument("mail_ids", nargs=-1, required=True)
@click.pass_obj
def mark_unread(config: MailConfig, mail_ids: tuple[str, ...]) -> None:
    """Mark mail as unread."""
    _render_bulk("Marked unread", _run(config, lambda mail: mail.bulk_mark_as_unread(mail_ids)))


@click.command()
@click.argument("mail_ids", nargs=-1, required=True)
@click.pass_obj
def trash(config: MailConfig, mail_ids: tuple[str, ...]) -> None:
    """Move mail to the trash."""
    _render_bulk("Moved to trash", _run(config, lambda mail: mail.bulk_move_to_trash(mail_ids)))


def _apply_single(
    config: MailConfig,
    mail_id: str,
    action: Callable[[MailOrchestrator, str], Awaitable[None]],
    verb: str,
) -> None:
    async def work(mail: MailOrchestrator) -> bool:
        await action(mail, mail_id)
        return True

    if _run(config, work):
        console.print(f"[green]{verb}[/green] {mail_id}")


@click.command()
@click.argument("mail_id")
@click.pass_obj
def star(config: MailConfig, mail_id: str) -> None:
    """Star a mail."""
    _apply_single(config, mail_id, MailOrchestrator.star_mail, "Starred")


@click.command()
@click.argument("mail_id")
@click.pass_obj
def unstar(config: MailConfig, mail_id: str) -> None:
    """Remove a mail's star."""
    _apply_single(config, mail_id, MailOrchestrator.unstar_mail, "Unstarred")


@click.command()
@click.argument("mail_id")
@click.pass_obj
def archive(config: MailConfig, mail_id: str) -> None:
    """Archive a mail."""
    _apply_single(config, mail_id, MailOrchestrator.archive_mail, "Archived")


@click.command()
@click.argument("mail_id")
@click.pass_obj
def restore(config: MailConfig, mail_id: str) -> None:
    """Restore a mail from the trash."""
    _apply_single(config, mail_id, MailOrchestrator.restore_from_trash, "Restored")


@click.command()
@click.argument("mail_id")
@click.confirmation_option(prompt="Permanently delete this mail?")
@click.pass_obj
def delete(config: MailConfig, mail_id: str) -> None:
    """Delete a mail permanently."""
    _apply_single(config, mail_id, MailOrchestrator.delete_permanently, "Deleted")


@click.command("empty-trash")
@click.confirmation_option(prompt="Permanently delete everything in the trash?")
@click.pass_obj
def empty_trash(config: MailConfig) -> None:
    """Permanently delete everything in the trash."""

    async def work(mail: MailOrchestrator) -> bool:
        await mail.empty_trash()
        return True

    if _run(config, work):
        console.print("[green]Trash emptied.[/green]")


# ── Watch ──────────────────────────────────────────────────────────────────────


@click.command()
@click.argument("folder", type=_FOLDER_CHOICE, default="inbox")
@click.pass_obj
def watch(config: MailConfig, folder: str) -> None:
    """Keep a folder and the unread counts fresh until interrupted."""
    logging.getLogger("korgan_mail").setLevel(logging.INFO)
    target = parse_folder(folder)

    async def work(mail: MailOrchestrator) -> None:
        tracker = UnreadCountTracker(mail.executor)
        _render_context(target, await mail.load_folder(target))
        await tracker.refresh_all_for_user(mail.user_email)

        scheduler = create_refresh_scheduler(mail, tracker, config)
        scheduler.start()
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, AttributeError):
            pass

        console.print(
            f"[dim]Watching {target.display_name} every "
            f"{config.refresh_interval_seconds}s. Ctrl+C to stop.[/dim]"
        )
        try:
            await stop.wait()
        finally:
            scheduler.shutdown(wait=False)

    try:
        _run(config, work)
    except KeyboardInterrupt:
        # platforms without loop signal handlers
        logger.info("Interrupted — goodbye")
