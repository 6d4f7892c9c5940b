"""Marketledger data models — all Pydantic v2, all frozen (immutable)."""

from marketledger.models.events import (
    EVENT_TYPE_MAP,
    EventKind,
    ItemBought,
    ItemCanceled,
    ItemListed,
    MarketEvent,
)
from marketledger.models.listings import VALID_TRANSITIONS, Listing, ListingState

__all__ = [
    # listings
    "Listing",
    "ListingState",
    "VALID_TRANSITIONS",
    # events
    "EventKind",
    "MarketEvent",
    "ItemListed",
    "ItemBought",
    "ItemCanceled",
    "EVENT_TYPE_MAP",
]
