"""CLI entry point for the Gmail subscription scanner."""

from __future__ import annotations

import logging
import sys

import click
import structlog

from . import constants
from .auth import check_auth, get_access_token
from .cache import MessageCache
from .config import DetectionConfig
from .display import console, create_progress, display_scan_results, display_sync_status
from .exceptions import ScannerError, UnauthorizedError
from .gmail_client import GmailApi
from .models import ScanMode, ScanProgress
from .scanner import build_detection_engine
from .storage import SqliteStorage
from .sync_state import SyncStateStore


def configure_logging(verbose: bool = False) -> None:
    """Route structlog output to stderr, WARNING and up unless verbose."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.WARNING),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="subscription-scanner")
def cli() -> None:
    """Gmail Subscription Scanner - find the recurring charges hiding in your inbox."""


@cli.command()
@click.option("--full", is_flag=True, help="Forget the sync checkpoint and rescan the whole window.")
@click.option("-m", "--max-messages", default=None, type=int, help="Maximum messages to fetch (default 500).")
@click.option("--months", default=None, type=int, help="How many months back to search (default 12).")
@click.option("--min-score", default=None, type=int, help="Minimum score to keep a subscription (default 50).")
@click.option("--no-category-filter", is_flag=True, help="Search all mail, not only Purchases/Updates.")
@click.option("--token", envvar="GMAIL_ACCESS_TOKEN", default=None, help="Bearer token to use instead of the stored one.")
@click.option("-v", "--verbose", is_flag=True, help="Log retries, backoff and scoring decisions.")
def scan(
    full: bool,
    max_messages: int | None,
    months: int | None,
    min_score: int | None,
    no_category_filter: bool,
    token: str | None,
    verbose: bool,
) -> None:
    """Scan Gmail for active subscriptions."""
    configure_logging(verbose)

    overrides: dict = {"use_category_filter": not no_category_filter}
    if max_messages is not None:
        overrides["max_emails_to_scan"] = max_messages
    if months is not None:
        overrides["months_to_scan"] = months
    if min_score is not None:
        overrides["min_confidence_score"] = min_score
    config = DetectionConfig(**overrides)

    if token is None:
        try:
            token = get_access_token()
        except FileNotFoundError as e:
            raise click.ClickException(str(e)) from e

    with SqliteStorage(constants.STATE_DB_PATH) as storage:
        engine = build_detection_engine(GmailApi(token), storage, config)
        with create_progress("Scanning mailbox") as progress:
            task = progress.add_task("scan", total=config.max_emails_to_scan)

            def on_progress(update: ScanProgress) -> None:
                progress.update(task, completed=update.emails_scanned)

            try:
                if full:
                    result = engine.force_full_scan(on_progress)
                else:
                    result = engine.scan(ScanMode.INCREMENTAL, on_progress)
            except UnauthorizedError as e:
                raise click.ClickException(
                    "Gmail rejected the access token. Run 'subscription-scanner auth' and try again."
                ) from e
            except ScannerError as e:
                raise click.ClickException(str(e)) from e

    display_scan_results(result)


@cli.command()
def status() -> None:
    """Show when the mailbox was last scanned."""
    with SqliteStorage(constants.STATE_DB_PATH) as storage:
        store = SyncStateStore(storage)
        info = store.last_sync_info()
        last_sync = (info[0], info[1].display_name) if info else None
        display_sync_status(last_sync, store.get_state())


@cli.command()
def auth() -> None:
    """Test or reset Gmail authentication."""
    check_auth()


@cli.group(name="cache")
def cache_group() -> None:
    """Manage the message cache."""


@cache_group.command(name="info")
def cache_info() -> None:
    """Show cache statistics."""
    with SqliteStorage(constants.STATE_DB_PATH) as storage:
        info = MessageCache(storage).stats()

    if not info["message_count"]:
        console.print("[dim]Cache is empty.[/dim]")
        return

    console.print(f"[bold]Database size:[/bold] {info['db_file_size'] / 1024:.1f} KB")
    console.print(f"[bold]Messages:[/bold] {info['message_count']}")
    console.print(f"[bold]Oldest entry:[/bold] {info['oldest_entry']}")
    console.print(f"[bold]Newest entry:[/bold] {info['newest_entry']}")


@cache_group.command(name="clear")
def cache_clear() -> None:
    """Clear cached messages and the sync checkpoint."""
    with SqliteStorage(constants.STATE_DB_PATH) as storage:
        MessageCache(storage).clear()
        SyncStateStore(storage).clear()
    console.print("[green]Cache cleared.[/green]")
