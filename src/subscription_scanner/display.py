"""Rich-based display functions for the subscription scanner."""

from __future__ import annotations

from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .constants import SYNC_FRESH_HOURS
from .models import Confidence, DetectionResult, SyncState

console = Console()

_CONFIDENCE_COLORS = {
    Confidence.HIGH: "green",
    Confidence.MEDIUM: "yellow",
    Confidence.LOW: "red",
}


def _format_date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def display_scan_results(result: DetectionResult) -> None:
    """Show detected subscriptions, highest score first, with a summary panel."""
    if not result.subscriptions:
        console.print("[dim]No active subscriptions detected.[/dim]")
    else:
        table = Table(title="Detected Subscriptions")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Name")
        table.add_column("Price", justify="right")
        table.add_column("Cycle")
        table.add_column("Confidence")
        table.add_column("Score", justify="right")
        table.add_column("Emails", justify="right")
        table.add_column("Last charge")
        table.add_column("Next charge")

        for idx, sub in enumerate(result.subscriptions, start=1):
            color = _CONFIDENCE_COLORS[sub.confidence]
            table.add_row(
                str(idx),
                sub.name,
                sub.price_with_cycle,
                sub.billing_cycle.value,
                f"[{color}]{sub.confidence.value}[/{color}]",
                f"[{color}]{sub.score}[/{color}]",
                str(sub.email_count),
                _format_date(sub.last_charge_date),
                _format_date(sub.next_billing_date),
            )
        console.print(table)

    console.print(
        Panel(
            f"Mode: {result.mode.display_name}  |  "
            f"Emails scanned: {result.emails_scanned}  |  "
            f"Subscriptions: {len(result.subscriptions)} "
            f"({result.high_confidence_count} high, {result.medium_confidence_count} medium)  |  "
            f"Took {result.scan_duration:.1f}s",
            title="Summary",
        )
    )


def create_progress(description: str) -> Progress:
    """Create a configured Rich Progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def display_sync_status(last_sync: tuple[datetime, str] | None, state: SyncState) -> None:
    """Show when the mailbox was last scanned and whether a quick scan is possible."""
    if last_sync is None:
        console.print("[dim]No scan recorded yet. Run 'scan' to start.[/dim]")
        return

    date, label = last_sync
    fresh = state.is_fresh(hours=SYNC_FRESH_HOURS)
    lines = [
        f"[bold]Last sync:[/bold] {date:%Y-%m-%d %H:%M} UTC ({label})",
        f"[bold]Up to date:[/bold] {'yes' if fresh else 'no'}",
        f"[bold]Quick scan available:[/bold] {'yes' if state.can_sync_incrementally else 'no'}",
        f"[bold]Processed messages:[/bold] {len(state.processed_ids)}",
        f"[bold]Last result:[/bold] {state.last_subscription_count} subscriptions "
        f"from {state.last_emails_scanned} emails",
    ]
    console.print(Panel("\n".join(lines), title="Sync Status"))
