"""``marketledger demo`` — run a complete sale against in-memory collaborators.

Mints an item, lists it, buys it with an overpayment, withdraws the proceeds
and attempts a second withdrawal, printing each step.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from marketledger.core.errors import MarketplaceError, NoProceedsError
from marketledger.core.marketplace import NftMarketplace
from marketledger.core.payouts import InMemoryPayoutGateway
from marketledger.core.registry import CollectionDirectory, InMemoryOwnershipRegistry
from marketledger.core.store import MarketStore

console = Console()


def demo_cmd(
    price: int = typer.Option(100, "--price", min=0, help="Listing price."),
    payment: int = typer.Option(150, "--payment", min=0, help="Amount the buyer pays."),
    db: Path = typer.Option(
        None, "--db", help="SQLite file to record the demo in (default: in-memory)."
    ),
) -> None:
    """List an item, sell it, and withdraw the proceeds."""
    store = MarketStore(db if db is not None else ":memory:")
    nft = InMemoryOwnershipRegistry("basic-nft")
    payouts = InMemoryPayoutGateway()
    market = NftMarketplace(store, CollectionDirectory({"basic-nft": nft}), payouts)

    seller, buyer = "seller", "buyer"
    token = nft.mint(seller)
    nft.approve(token, market.address, caller=seller)

    steps: list[str] = []
    try:
        # One transaction for the whole scenario: a rejected step leaves
        # nothing behind in a --db file.
        with store.transaction():
            market.list_item("basic-nft", token, price, caller=seller)
            steps.append(f"[bold]Listed[/bold] basic-nft#{token} at {price}")

            market.buy_item("basic-nft", token, payment, caller=buyer)
            steps.append(
                f"[bold]Bought[/bold] by {buyer} paying {payment}: "
                f"owner is now {nft.owner_of(token)}, "
                f"seller proceeds {market.get_proceeds(seller)}, "
                f"listing price {market.get_listing('basic-nft', token).price}"
            )

            withdrawn = market.withdraw_proceeds(caller=seller)
            steps.append(
                f"[bold]Withdrew[/bold] {withdrawn}: seller received "
                f"{payouts.balance_of(seller)}, balance {market.get_proceeds(seller)}"
            )

            try:
                market.withdraw_proceeds(caller=seller)
            except NoProceedsError as exc:
                steps.append(f"[bold]Second withdrawal[/bold] rejected: [yellow]{exc}[/yellow]")
    except MarketplaceError as exc:
        console.print(f"[bold red]Demo failed:[/bold red] {exc}")
        store.close()
        raise typer.Exit(code=1)

    chain_ok = market.event_log.verify_chain()
    steps.append("")
    steps.append(f"[dim]{market.event_log.count()} events recorded, chain valid: {chain_ok}[/dim]")

    console.print()
    console.print(
        Panel(
            "\n".join(steps),
            title="[bold]Marketledger demo[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    store.close()
