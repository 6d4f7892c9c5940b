"""Observable marketplace events.

Every committed state transition produces exactly one event. Events are
frozen Pydantic models, persisted by the ``EventLog`` with a hash chain and
indexed by collection, item id and account for external querying.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """The three marketplace event types."""

    ITEM_LISTED = "ItemListed"
    ITEM_BOUGHT = "ItemBought"
    ITEM_CANCELED = "ItemCanceled"


class MarketEvent(BaseModel):
    """Base fields shared by all marketplace events."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_kind: EventKind
    collection: str
    item_id: int
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    previous_event_hash: str = ""  # set by EventLog.append
    event_hash: str = ""  # seals this event

    # Name of the field holding the indexed identity, set per event type
    account_field: ClassVar[str]

    @property
    def account(self) -> str:
        """The indexed identity of the event (seller or buyer)."""
        return getattr(self, self.account_field)


class ItemListed(MarketEvent):
    """Emitted by list_item and, with the new price, by update_listing."""

    event_kind: EventKind = EventKind.ITEM_LISTED
    account_field: ClassVar[str] = "seller"
    seller: str
    price: int = Field(gt=0)


class ItemBought(MarketEvent):
    """Emitted by buy_item. ``price`` is the listed price."""

    event_kind: EventKind = EventKind.ITEM_BOUGHT
    account_field: ClassVar[str] = "buyer"
    buyer: str
    price: int = Field(gt=0)


class ItemCanceled(MarketEvent):
    """Emitted by cancel_listing."""

    event_kind: EventKind = EventKind.ITEM_CANCELED
    account_field: ClassVar[str] = "seller"
    seller: str


# Registry for deserialization by event_kind
EVENT_TYPE_MAP: dict[EventKind, type[MarketEvent]] = {
    EventKind.ITEM_LISTED: ItemListed,
    EventKind.ITEM_BOUGHT: ItemBought,
    EventKind.ITEM_CANCELED: ItemCanceled,
}
