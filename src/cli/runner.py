# src/cli/runner.py

"""Headless CLI commands: sync, alerts, history, valuation and decklists."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from rich.console import Console
from rich.table import Table

from src.models.collection_item import (
    COLLECTION_INVENTORY,
    COLLECTION_WISHLIST,
    CollectionItem,
)
from src.services.alert_detector import PriceChangeAlertDetector
from src.services.card_price_service import CardPriceService
from src.services.card_resolver import CardNameResolver
from src.services.decklist_source import DecklistSource
from src.services.errors import PriceSyncError
from src.services.inventory_valuation import (
    DEFAULT_TIMELINE_DAYS,
    InventoryValueCalculator,
    InventoryValueTimeline,
)
from src.services.price_history_report import (
    DEFAULT_HISTORY_PERIOD,
    period_start,
    summarize_history,
)
from src.services.price_sync import BatchSyncOrchestrator
from src.services.rate_limiter import RateLimiter
from src.storage.price_history_db import PriceHistoryDB

logger = logging.getLogger("price_sync.cli")

# Stderr console for status messages so stdout stays clean for tables
_err = Console(stderr=True)


@dataclass
class Pipeline:
    """The wired-up services for one CLI invocation."""

    db: PriceHistoryDB
    rate_limiter: RateLimiter
    price_service: CardPriceService
    orchestrator: BatchSyncOrchestrator
    owns_db: bool = True

    def close(self) -> None:
        """Close the HTTP session, and the store if this pipeline opened it."""
        self.price_service.close()
        if self.owns_db:
            self.db.close()


def build_pipeline(db: PriceHistoryDB | None = None) -> Pipeline:
    """Construct the sync object graph around one shared rate limiter."""
    store = db if db is not None else PriceHistoryDB()
    limiter = RateLimiter()
    price_service = CardPriceService(limiter)
    orchestrator = BatchSyncOrchestrator(store, price_service)
    return Pipeline(
        store, limiter, price_service, orchestrator, owns_db=db is None,
    )


@contextmanager
def _open_store(db: PriceHistoryDB | None) -> Iterator[PriceHistoryDB]:
    """Yield ``db`` untouched, or a fresh store that is closed afterwards.

    Commands never close a store handed in by the caller.
    """
    if db is not None:
        yield db
        return
    store = PriceHistoryDB()
    try:
        yield store
    finally:
        store.close()


def format_minor_units(value: int | None) -> str:
    """Render cents as dollars, ``N/A`` when there is no price."""
    if value is None:
        return "N/A"
    return f"${value / 100:,.2f}"


# ── Sync ─────────────────────────────────────────────────


def run_sync(card_id: str | None = None, db: PriceHistoryDB | None = None) -> int:
    """Run a batch (or single-card) sync and return an exit code."""
    pipeline = build_pipeline(db)
    label = card_id or "all tracked cards"
    _err.print(f"[bold]Syncing prices for {label}...[/bold]")
    try:
        result = pipeline.orchestrator.run(card_id)
    except (PriceSyncError, ValueError) as exc:
        logger.error("Sync aborted: %s", exc, exc_info=True)
        _err.print(f"[red]Sync aborted: {exc}[/red]")
        return 1
    finally:
        pipeline.close()

    if result.total_cards == 0:
        _err.print("[yellow]No cards found to update.[/yellow]")
        return 0

    parts = [f"{result.succeeded} updated"]
    if result.already_synced:
        parts.append(f"{result.already_synced} already synced today")
    if result.not_found:
        parts.append(f"{result.not_found} not found")
    if result.failed:
        parts.append(f"{result.failed} failed")
    _err.print(
        f"[green]✓ {result.total_cards} cards: {', '.join(parts)}"
        f" in {result.elapsed_seconds:.2f}s[/green]"
    )
    for error_msg in result.errors:
        _err.print(f"[red]Error: {error_msg}[/red]")
    if result.alerts:
        _err.print(f"[cyan]{len(result.alerts)} price alerts created[/cyan]")
    return 0


def run_detect_alerts(db: PriceHistoryDB | None = None) -> int:
    """Run one alert detection pass outside of a sync."""
    with _open_store(db) as store:
        alerts = PriceChangeAlertDetector(store).detect_changes()
    _err.print(f"[green]✓ {len(alerts)} price alerts created[/green]")
    return 0


# ── Reports ──────────────────────────────────────────────


def run_list_alerts(
    owner_id: int,
    include_dismissed: bool = False,
    db: PriceHistoryDB | None = None,
) -> int:
    """Print an owner's price alerts."""
    with _open_store(db) as store:
        alerts = store.list_alerts(owner_id, include_dismissed)

    if not alerts:
        _err.print("[yellow]No price alerts.[/yellow]")
        return 0

    table = Table(
        title=f"Price Alerts for owner {owner_id}",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("ID", style="dim", width=5)
    table.add_column("Card", overflow="fold")
    table.add_column("Finish")
    table.add_column("Previous", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Created", style="dim")

    for a in alerts:
        style = "green" if a.alert_kind == "increase" else "red"
        change = f"[{style}]{a.percent_change:+.2f}%[/{style}]"
        if a.dismissed:
            change += " [dim](dismissed)[/dim]"
        table.add_row(
            str(a.id),
            a.card_id,
            a.finish,
            format_minor_units(a.previous_price_minor_units),
            format_minor_units(a.new_price_minor_units),
            change,
            a.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    Console().print(table)
    return 0


def run_dismiss_alert(alert_id: int, db: PriceHistoryDB | None = None) -> int:
    """Dismiss one alert; exit code 1 if it was not found."""
    with _open_store(db) as store:
        dismissed = store.dismiss_alert(alert_id)
    if not dismissed:
        _err.print(f"[red]No active alert with id {alert_id}[/red]")
        return 1
    _err.print(f"[green]✓ Alert {alert_id} dismissed[/green]")
    return 0


def run_price_history(
    card_id: str,
    period: str = DEFAULT_HISTORY_PERIOD,
    db: PriceHistoryDB | None = None,
) -> int:
    """Print a card's observations within ``period`` and how each finish moved."""
    since = period_start(period, datetime.now())
    with _open_store(db) as store:
        history = store.get_price_history(card_id, since=since)

    if not history:
        _err.print(f"[yellow]No price history for {card_id}.[/yellow]")
        return 1

    window = "all time" if since is None else f"last {period} days"
    table = Table(
        title=f"Price History: {card_id} ({window})",
        title_style="bold cyan",
    )
    table.add_column("Observed", style="dim")
    table.add_column("Normal", justify="right", style="green")
    table.add_column("Foil", justify="right", style="magenta")
    table.add_column("Etched", justify="right", style="blue")
    for obs in history:
        table.add_row(
            obs.observed_at.strftime("%Y-%m-%d %H:%M"),
            format_minor_units(obs.base_price_minor_units),
            format_minor_units(obs.foil_price_minor_units),
            format_minor_units(obs.etched_price_minor_units),
        )
    Console().print(table)

    for move in summarize_history(history):
        style = {"up": "green", "down": "red"}.get(move.direction, "dim")
        _err.print(
            f"{move.finish}: {format_minor_units(move.start_minor_units)} -> "
            f"{format_minor_units(move.end_minor_units)} "
            f"[{style}]{move.percent_change:+.2f}% ({move.direction})[/{style}]"
        )
    return 0


def run_inventory_value(
    owner_id: int,
    timeline_days: int | None = None,
    db: PriceHistoryDB | None = None,
) -> int:
    """Print the current market value of an owner's inventory.

    With ``timeline_days``, print the value of each day in that window
    instead.
    """
    if timeline_days is not None:
        return _print_value_timeline(owner_id, timeline_days, db)

    with _open_store(db) as store:
        value = InventoryValueCalculator(store).calculate(owner_id)

    updated = (
        value.last_updated.strftime("%Y-%m-%d %H:%M")
        if value.last_updated
        else "never"
    )
    _err.print(
        f"[bold]Inventory value:[/bold] "
        f"{format_minor_units(value.total_value_minor_units)}  "
        f"[dim]{value.valued_cards}/{value.total_cards} cards priced, "
        f"last updated {updated}[/dim]"
    )
    if value.excluded_cards:
        _err.print(
            f"[yellow]{value.excluded_cards} cards have no price data[/yellow]"
        )
    return 0


def _print_value_timeline(
    owner_id: int,
    days: int = DEFAULT_TIMELINE_DAYS,
    db: PriceHistoryDB | None = None,
) -> int:
    with _open_store(db) as store:
        try:
            timeline = InventoryValueTimeline(store).build(owner_id, days)
        except ValueError as exc:
            _err.print(f"[red]{exc}[/red]")
            return 1

    table = Table(
        title=f"Inventory Value: owner {owner_id}, last {days} days",
        title_style="bold cyan",
    )
    table.add_column("Day", style="dim")
    table.add_column("Value", justify="right", style="green")
    for point in timeline.points:
        table.add_row(
            point.day.isoformat(), format_minor_units(point.value_minor_units),
        )
    Console().print(table)

    style = "green" if timeline.change >= 0 else "red"
    _err.print(
        f"[bold]{format_minor_units(timeline.start_value)} -> "
        f"{format_minor_units(timeline.end_value)}[/bold] "
        f"[{style}]{timeline.change / 100:+,.2f} "
        f"({timeline.percent_change:+.2f}%)[/{style}]"
    )
    return 0


def run_sync_runs(limit: int = 10, db: PriceHistoryDB | None = None) -> int:
    """Print the most recent sync runs."""
    with _open_store(db) as store:
        runs = store.recent_sync_runs(limit)

    table = Table(title="Recent Sync Runs", title_style="bold cyan")
    table.add_column("ID", style="dim", width=5)
    table.add_column("Mode")
    table.add_column("Started", style="dim")
    table.add_column("Status")
    table.add_column("Cards", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Alerts", justify="right")
    table.add_column("Error", overflow="fold", style="red")
    for r in runs:
        elapsed = r.execution_time_seconds
        table.add_row(
            str(r.id),
            r.mode,
            r.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            r.status or "running",
            str(r.cards_attempted),
            f"{r.success_rate:.0f}%" if elapsed is not None else "-",
            str(r.alerts_created),
            r.error,
        )
    Console().print(table)
    return 0


# ── Holdings ─────────────────────────────────────────────


def run_add_holding(
    owner_id: int,
    card_id: str,
    wishlist: bool = False,
    treatment: str | None = None,
    quantity: int = 1,
    db: PriceHistoryDB | None = None,
) -> int:
    """Record a holding so the card joins the sync working set."""
    collection = COLLECTION_WISHLIST if wishlist else COLLECTION_INVENTORY
    with _open_store(db) as store:
        try:
            store.add_collection_item(CollectionItem(
                owner_id=owner_id,
                card_id=card_id,
                collection_type=collection,
                quantity=quantity,
                treatment=treatment,
            ))
        except ValueError as exc:
            _err.print(f"[red]{exc}[/red]")
            return 1
    _err.print(f"[green]✓ {card_id} added to {collection} of owner {owner_id}[/green]")
    return 0


# ── Decklists ────────────────────────────────────────────


def run_commanders(decklist_url: str | None = None) -> int:
    """Print the weekly top commanders, or one commander's decklist."""
    limiter = RateLimiter()
    resolver = CardNameResolver(limiter)
    source = DecklistSource(limiter, resolver)
    try:
        if decklist_url:
            cards = source.fetch_commander_decklist(decklist_url)
            table = Table(title="Average Decklist", title_style="bold cyan")
            table.add_column("Card")
            table.add_column("Category", style="magenta")
            table.add_column("Scryfall ID", style="dim", overflow="fold")
            for c in cards:
                name = f"[bold]{c.name}[/bold]" if c.is_commander else c.name
                table.add_row(name, c.category, c.card_id or "-")
        else:
            commanders = source.fetch_top_commanders()
            table = Table(title="Top Commanders", title_style="bold cyan")
            table.add_column("#", style="dim", width=4)
            table.add_column("Commander")
            table.add_column("URL", overflow="fold", style="dim")
            for cmd in commanders:
                table.add_row(str(cmd.rank), cmd.name, cmd.url)
    except (PriceSyncError, ValueError) as exc:
        logger.error("EDHREC fetch failed: %s", exc, exc_info=True)
        _err.print(f"[red]EDHREC fetch failed: {exc}[/red]")
        return 1
    finally:
        source.close()
        resolver.close()

    Console().print(table)
    return 0
