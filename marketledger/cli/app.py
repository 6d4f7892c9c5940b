"""Main Typer application — inspection commands over a marketplace database.

Entry point: ``marketledger`` (configured via pyproject.toml scripts).

Commands: listing, listings, proceeds, events, verify, anchor, demo.
State changes need live ownership registries, so outside the demo the CLI
only reads.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from marketledger.cli.commands.demo import demo_cmd
from marketledger.config import config
from marketledger.core.anchor import sign_anchor
from marketledger.core.event_log import EventLog, EventLogIntegrityError
from marketledger.core.store import MarketStore
from marketledger.logging_setup import configure_logging
from marketledger.models.events import EventKind
from marketledger.models.listings import Listing

app = typer.Typer(
    name="marketledger",
    help="Marketledger: escrowed marketplace ledger for uniquely-owned items.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

console = Console()

_DB_HELP = "Path to the marketplace SQLite database."


@app.callback()
def _main(
    log_level: str = typer.Option(config.log_level, "--log-level", help="Logging level."),
) -> None:
    configure_logging(log_level)


app.command(name="demo", help="Run a complete sale against in-memory collaborators.")(demo_cmd)


def _open_store(db: Path) -> MarketStore:
    if not db.exists():
        console.print(f"[red]No marketplace database at[/red] {db}")
        raise typer.Exit(code=1)
    return MarketStore(db)


@app.command(name="listing", help="Show the listing for one item.")
def listing_cmd(
    collection: str = typer.Argument(..., help="Collection id."),
    item_id: int = typer.Argument(..., min=0, help="Item id."),
    db: Path = typer.Option(config.db_path, "--db", help=_DB_HELP),
) -> None:
    store = _open_store(db)
    row = store.get_listing(collection, item_id)
    store.close()
    if row is None:
        listing = Listing.absent(collection, item_id)
    else:
        listing = Listing(collection=collection, item_id=item_id, price=row[0], seller=row[1])

    if not listing.is_listed:
        console.print(f"[dim]{collection}#{item_id} is not listed.[/dim]")
        return
    console.print(
        f"[bold]{collection}#{item_id}[/bold] listed at "
        f"[green]{listing.price}[/green] {config.currency_unit} by [cyan]{listing.seller}[/cyan]"
    )


@app.command(name="listings", help="List all active listings.")
def listings_cmd(
    collection: str = typer.Option(None, "--collection", "-c", help="Filter by collection."),
    db: Path = typer.Option(config.db_path, "--db", help=_DB_HELP),
) -> None:
    store = _open_store(db)
    rows = store.iter_listings(collection)
    store.close()

    if not rows:
        console.print("[dim]No active listings.[/dim]")
        return

    table = Table(title="Active Listings")
    table.add_column("Collection", style="cyan")
    table.add_column("Item", justify="right")
    table.add_column(f"Price ({config.currency_unit})", justify="right", style="green")
    table.add_column("Seller")
    for c, i, p, s in rows:
        table.add_row(c, str(i), str(p), s)
    console.print(table)


@app.command(name="proceeds", help="Show the withdrawable proceeds of a seller.")
def proceeds_cmd(
    seller: str = typer.Argument(..., help="Seller identity."),
    db: Path = typer.Option(config.db_path, "--db", help=_DB_HELP),
) -> None:
    store = _open_store(db)
    amount = store.get_proceeds(seller)
    store.close()
    console.print(f"[bold]{seller}[/bold]: {amount} {config.currency_unit}")


@app.command(name="events", help="Query the event log.")
def events_cmd(
    collection: str = typer.Option(None, "--collection", "-c", help="Filter by collection."),
    item_id: int = typer.Option(None, "--item-id", "-i", help="Filter by item id."),
    account: str = typer.Option(None, "--account", "-a", help="Filter by seller or buyer."),
    kind: str = typer.Option(None, "--kind", "-k", help="ItemListed, ItemBought or ItemCanceled."),
    db: Path = typer.Option(config.db_path, "--db", help=_DB_HELP),
) -> None:
    try:
        kind_filter = EventKind(kind) if kind else None
    except ValueError:
        console.print(f"[red]Unknown event kind:[/red] {kind}")
        raise typer.Exit(code=2) from None

    store = _open_store(db)
    events = EventLog(store).query(
        collection=collection, item_id=item_id, account=account, kind=kind_filter
    )
    store.close()

    if not events:
        console.print("[dim]No matching events.[/dim]")
        return

    table = Table(title="Market Events")
    table.add_column("Time (UTC)", style="dim")
    table.add_column("Event", style="bold")
    table.add_column("Item", style="cyan")
    table.add_column("Account")
    table.add_column("Price", justify="right", style="green")
    for event in events:
        price = getattr(event, "price", None)
        table.add_row(
            event.timestamp_utc.strftime("%Y-%m-%d %H:%M:%S"),
            event.event_kind.value,
            f"{event.collection}#{event.item_id}",
            event.account,
            "" if price is None else str(price),
        )
    console.print(table)


@app.command(name="verify", help="Verify the event log hash chain.")
def verify_cmd(
    db: Path = typer.Option(config.db_path, "--db", help=_DB_HELP),
) -> None:
    store = _open_store(db)
    log = EventLog(store)
    try:
        log.verify_chain()
    except EventLogIntegrityError as exc:
        console.print(f"[bold red]Chain invalid:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        store.close()
    console.print("[green]Event chain valid.[/green]")


@app.command(name="anchor", help="Export a tamper-evident anchor of the event log as JSON.")
def anchor_cmd(
    sign: bool = typer.Option(False, "--sign", help="Sign with the configured anchor key."),
    db: Path = typer.Option(config.db_path, "--db", help=_DB_HELP),
) -> None:
    store = _open_store(db)
    anchor = EventLog(store).export_anchor()
    store.close()

    if sign:
        if not config.anchor_signing_key:
            console.print("[red]MARKETLEDGER_ANCHOR_SIGNING_KEY is not set.[/red]")
            raise typer.Exit(code=1)
        anchor = sign_anchor(anchor, config.anchor_signing_key)
    typer.echo(json.dumps(anchor, indent=2, sort_keys=True))


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
