"""CLI entry point for the Korgan mail client."""

import logging

import click
from dotenv import load_dotenv

from korgan_mail.config import MailConfig

logger = logging.getLogger(__name__)


@click.group()
@click.option("--user", "user_email", default=None, help="Mailbox address (overrides KORGAN_USER_EMAIL).")
@click.option("-v", "--verbose", is_flag=True, help="Log gateway traffic and state changes.")
@click.pass_context
def cli(ctx: click.Context, user_email: str | None, verbose: bool) -> None:
    """Korgan mail — browse folders, search, and act on mail from the terminal."""
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    config = MailConfig.from_env()
    if user_email:
        config.user_email = user_email
    ctx.obj = config


# Import and register commands after cli is defined to avoid circular imports.
from korgan_mail.cli.commands import (  # noqa: E402
    archive,
    counts,
    delete,
    empty_trash,
    list_folder,
    mark_read,
    mark_unread,
    restore,
    search,
    star,
    trash,
    unstar,
    watch,
)

for _command in (
    list_folder,
    search,
    mark_read,
    mark_unread,
    star,
    unstar,
    trash,
    archive,
    restore,
    delete,
    empty_trash,
    counts,
    watch,
):
    cli.add_command(_command)
