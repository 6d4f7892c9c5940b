"""Listing models and the per-item state machine.

Each ``(collection, item_id)`` key is in exactly one of two states:

- ``ABSENT``  — no active sale offer (price 0, no seller)
- ``LISTED``  — an active offer at ``price > 0`` by ``seller``

Storage keeps no row for absent keys; zero price and "no row" are the same
observable state.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ListingState(str, Enum):
    """Lifecycle state of a single item key."""

    ABSENT = "absent"
    LISTED = "listed"


# Valid listing transitions. There is no terminal state; items can be
# listed, bought and listed again indefinitely.
VALID_TRANSITIONS: dict[ListingState, set[ListingState]] = {
    ListingState.ABSENT: {ListingState.LISTED},  # list_item
    ListingState.LISTED: {
        ListingState.LISTED,  # update_listing
        ListingState.ABSENT,  # cancel_listing, buy_item
    },
}


class Listing(BaseModel):
    """A sale offer for one item, or the absent placeholder.

    Examples
    --------
    >>> Listing.absent("0xCollection", 1).state
    <ListingState.ABSENT: 'absent'>
    >>> Listing(collection="0xCollection", item_id=1, price=100, seller="alice").is_listed
    True
    """

    model_config = ConfigDict(frozen=True)

    collection: str = Field(min_length=1)
    item_id: int = Field(ge=0)
    price: int = Field(default=0, ge=0)  # smallest currency unit
    seller: str = ""

    @model_validator(mode="after")
    def _check_presence(self) -> Listing:
        if self.price == 0 and self.seller:
            raise ValueError("an absent listing cannot carry a seller")
        if self.price > 0 and not self.seller:
            raise ValueError("an active listing requires a seller")
        return self

    @classmethod
    def absent(cls, collection: str, item_id: int) -> Listing:
        return cls(collection=collection, item_id=item_id)

    @property
    def state(self) -> ListingState:
        return ListingState.LISTED if self.price > 0 else ListingState.ABSENT

    @property
    def is_listed(self) -> bool:
        return self.state == ListingState.LISTED
