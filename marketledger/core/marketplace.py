"""The marketplace ledger — listings, purchases and escrowed proceeds.

Per ``(collection, item_id)`` the ledger runs a two-state machine
(see ``marketledger.models.listings``)::

    ABSENT --list_item--> LISTED --update_listing--> LISTED
    LISTED --cancel_listing / buy_item--> ABSENT

Execution model
---------------
Every mutating operation runs inside one store transaction: it either
commits completely or rolls back completely, events included. Operations
from different threads are serialised by the store lock.

The only suspension points are the external calls: the registry transfer in
``buy_item`` and the payout in ``withdraw_proceeds``. Before either call the
ledger state is already at its safe value (listing deleted, balance zeroed),
and both operations sit behind a guard that rejects re-entry with
``ReentrantCallError``. A failing external call rolls the whole operation
back and surfaces as ``TransferFailedError``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from marketledger.config import config
from marketledger.core.errors import (
    AlreadyListedError,
    NoProceedsError,
    NotApprovedForMarketplaceError,
    NotListedError,
    NotOwnerError,
    PriceMustBeAboveZeroError,
    PriceNotMetError,
    ReentrantCallError,
    TransferFailedError,
)
from marketledger.core.event_log import EventLog
from marketledger.core.payouts import PayoutGateway
from marketledger.core.registry import CollectionDirectory
from marketledger.core.store import MarketStore
from marketledger.models.events import (
    EventKind,
    ItemBought,
    ItemCanceled,
    ItemListed,
    MarketEvent,
)
from marketledger.models.listings import Listing

logger = logging.getLogger(__name__)

EventHandler = Callable[[MarketEvent], None]


def _require_account(value: str, name: str) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a non-empty string")


def _require_uint(value: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


class NftMarketplace:
    """Marketplace ledger for uniquely-owned items.

    Parameters
    ----------
    store:
        Durable storage for listings, proceeds and events.
    collections:
        Resolves each collection id to its ownership registry.
    payouts:
        Gateway that delivers withdrawn proceeds.
    address:
        The marketplace's own identity, which sellers approve as transfer
        operator. Defaults to ``config.marketplace_address``.

    Examples
    --------
    >>> from marketledger.core.payouts import InMemoryPayoutGateway
    >>> from marketledger.core.registry import InMemoryOwnershipRegistry
    >>> nft = InMemoryOwnershipRegistry()
    >>> market = NftMarketplace(
    ...     MarketStore(),
    ...     CollectionDirectory({"basic-nft": nft}),
    ...     InMemoryPayoutGateway(),
    ... )
    >>> token = nft.mint("alice")
    >>> nft.approve(token, market.address, caller="alice")
    >>> _ = market.list_item("basic-nft", token, 100, caller="alice")
    >>> market.get_listing("basic-nft", token).price
    100
    """

    def __init__(
        self,
        store: MarketStore,
        collections: CollectionDirectory,
        payouts: PayoutGateway,
        *,
        address: str | None = None,
    ) -> None:
        self._store = store
        self._collections = collections
        self._payouts = payouts
        self._address = address or config.marketplace_address
        self._events = EventLog(store)
        self._entered: str | None = None
        self._subscribers: dict[EventKind | None, list[EventHandler]] = defaultdict(list)

    @property
    def address(self) -> str:
        return self._address

    @property
    def event_log(self) -> EventLog:
        return self._events

    # ------------------------------------------------------------------
    # Guards and helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _non_reentrant(self, operation: str) -> Iterator[None]:
        if self._entered is not None:
            logger.warning(
                "Rejected re-entrant %s while %s is in progress.", operation, self._entered
            )
            raise ReentrantCallError(operation)
        self._entered = operation
        try:
            yield
        finally:
            self._entered = None

    def _require_owner(self, collection: str, item_id: int, caller: str) -> None:
        registry = self._collections.resolve(collection)
        if registry.owner_of(item_id) != caller:
            raise NotOwnerError(collection, item_id, caller)

    def _require_listed(self, collection: str, item_id: int) -> Listing:
        listing = self.get_listing(collection, item_id)
        if not listing.is_listed:
            raise NotListedError(collection, item_id)
        return listing

    def _emit(self, event: MarketEvent) -> MarketEvent:
        sealed = self._events.append(event)
        self._store.after_commit(lambda: self._notify(sealed))
        return sealed

    def _notify(self, event: MarketEvent) -> None:
        handlers = self._subscribers[event.event_kind] + self._subscribers[None]
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed for %s %s.", event.event_kind.value, event.event_id
                )

    def subscribe(self, handler: EventHandler, kind: EventKind | None = None) -> None:
        """Call *handler* with every committed event, or only events of *kind*."""
        self._subscribers[kind].append(handler)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def list_item(
        self, collection: str, item_id: int, price: int, *, caller: str
    ) -> ItemListed:
        """Offer an item for sale: ABSENT -> LISTED.

        Checks, in order: not already listed, caller owns the item, price is
        above zero, and the marketplace is the item's approved operator.
        """
        _require_uint(item_id, "item_id")
        _require_account(caller, "caller")
        if isinstance(price, bool) or not isinstance(price, int):
            raise TypeError(f"price must be an int, got {type(price).__name__}")

        with self._store.transaction():
            if self.get_listing(collection, item_id).is_listed:
                raise AlreadyListedError(collection, item_id)
            self._require_owner(collection, item_id, caller)
            if price <= 0:
                raise PriceMustBeAboveZeroError(collection, item_id, price)
            registry = self._collections.resolve(collection)
            if registry.get_approved(item_id) != self._address:
                raise NotApprovedForMarketplaceError(collection, item_id)

            self._store.put_listing(collection, item_id, price, caller)
            event = self._emit(
                ItemListed(seller=caller, collection=collection, item_id=item_id, price=price)
            )
        logger.info("Listed %s#%d at %d by %s.", collection, item_id, price, caller)
        return event

    def cancel_listing(self, collection: str, item_id: int, *, caller: str) -> ItemCanceled:
        """Withdraw an offer: LISTED -> ABSENT."""
        _require_uint(item_id, "item_id")
        _require_account(caller, "caller")

        with self._store.transaction():
            self._require_owner(collection, item_id, caller)
            self._require_listed(collection, item_id)

            self._store.delete_listing(collection, item_id)
            event = self._emit(
                ItemCanceled(seller=caller, collection=collection, item_id=item_id)
            )
        logger.info("Canceled listing %s#%d by %s.", collection, item_id, caller)
        return event

    def buy_item(
        self, collection: str, item_id: int, payment: int, *, caller: str
    ) -> ItemBought:
        """Purchase a listed item: LISTED -> ABSENT.

        The full *payment* is credited to the seller, including any amount
        above the listed price. The listing is deleted before the registry
        transfer runs, so a nested call during the transfer sees no listing.
        """
        _require_uint(item_id, "item_id")
        _require_uint(payment, "payment")
        _require_account(caller, "caller")

        with self._store.transaction(), self._non_reentrant("buy_item"):
            listing = self._require_listed(collection, item_id)
            if payment < listing.price:
                raise PriceNotMetError(collection, item_id, listing.price)
            registry = self._collections.resolve(collection)

            self._store.set_proceeds(
                listing.seller, self._store.get_proceeds(listing.seller) + payment
            )
            self._store.delete_listing(collection, item_id)
            try:
                registry.transfer_from(
                    listing.seller, caller, item_id, operator=self._address
                )
            except Exception as exc:
                logger.warning(
                    "Transfer of %s#%d to %s failed; rolling back purchase.",
                    collection,
                    item_id,
                    caller,
                )
                raise TransferFailedError(
                    f"Transfer of {collection}#{item_id} to {caller!r} failed: {exc}",
                    collection=collection,
                    item_id=item_id,
                    account=caller,
                    amount=payment,
                ) from exc

            event = self._emit(
                ItemBought(
                    buyer=caller, collection=collection, item_id=item_id, price=listing.price
                )
            )
        logger.info(
            "Sold %s#%d to %s for %d (listed at %d).",
            collection,
            item_id,
            caller,
            payment,
            listing.price,
        )
        return event

    def update_listing(
        self, collection: str, item_id: int, new_price: int, *, caller: str
    ) -> ItemListed:
        """Change the price of an active listing: LISTED -> LISTED.

        The seller is unchanged and ``ItemListed`` is emitted again with the
        new price. A zero price is rejected; use ``cancel_listing`` to delist.
        """
        _require_uint(item_id, "item_id")
        _require_account(caller, "caller")
        if isinstance(new_price, bool) or not isinstance(new_price, int):
            raise TypeError(f"new_price must be an int, got {type(new_price).__name__}")

        with self._store.transaction():
            self._require_owner(collection, item_id, caller)
            listing = self._require_listed(collection, item_id)
            if new_price <= 0:
                raise PriceMustBeAboveZeroError(collection, item_id, new_price)

            self._store.put_listing(collection, item_id, new_price, listing.seller)
            event = self._emit(
                ItemListed(
                    seller=listing.seller,
                    collection=collection,
                    item_id=item_id,
                    price=new_price,
                )
            )
        logger.info(
            "Updated %s#%d price %d -> %d.", collection, item_id, listing.price, new_price
        )
        return event

    def withdraw_proceeds(self, *, caller: str) -> int:
        """Pay out the caller's whole balance and return the amount.

        The balance is zeroed before the payout runs; if the payout fails the
        balance is restored by the rollback.

        Shares the guard with ``buy_item``: a payout recipient cannot buy or
        withdraw from inside its receive hook, and a buyer cannot withdraw
        from inside the registry transfer.
        """
        _require_account(caller, "caller")

        with self._store.transaction(), self._non_reentrant("withdraw_proceeds"):
            amount = self._store.get_proceeds(caller)
            if amount <= 0:
                raise NoProceedsError(caller)

            self._store.set_proceeds(caller, 0)
            try:
                self._payouts.send(caller, amount)
            except Exception as exc:
                logger.warning("Payout of %d to %s failed; balance restored.", amount, caller)
                raise TransferFailedError(
                    f"Payout of {amount} to {caller!r} failed: {exc}",
                    account=caller,
                    amount=amount,
                ) from exc
        logger.info("Withdrew %d in proceeds for %s.", amount, caller)
        return amount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_listing(self, collection: str, item_id: int) -> Listing:
        """Return the listing for a key; absent keys give price 0."""
        _require_uint(item_id, "item_id")
        row = self._store.get_listing(collection, item_id)
        if row is None:
            return Listing.absent(collection, item_id)
        price, seller = row
        return Listing(collection=collection, item_id=item_id, price=price, seller=seller)

    def get_proceeds(self, seller: str) -> int:
        return self._store.get_proceeds(seller)

    def list_active(self, collection: str | None = None) -> list[Listing]:
        """Return every active listing, sorted by collection then item id."""
        return [
            Listing(collection=c, item_id=i, price=p, seller=s)
            for c, i, p, s in self._store.iter_listings(collection)
        ]

    def events(
        self,
        *,
        collection: str | None = None,
        item_id: int | None = None,
        account: str | None = None,
        kind: EventKind | None = None,
    ) -> list[MarketEvent]:
        return self._events.query(
            collection=collection, item_id=item_id, account=account, kind=kind
        )

    def get_stats(self) -> dict[str, Any]:
        """Return summary statistics.

        Keys: ``active_listings``, ``escrowed_proceeds`` and ``event_count``.
        """
        return {
            "active_listings": len(self._store.iter_listings()),
            "escrowed_proceeds": self._store.total_proceeds(),
            "event_count": self._events.count(),
        }
