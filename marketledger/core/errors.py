"""Named, caller-visible rejections.

Every failure rejects the whole operation; no partial mutation survives.
Each error carries the identifying parameters of the rejected call.
"""

from __future__ import annotations


class MarketplaceError(RuntimeError):
    """Base class for all marketplace rejections."""


class AlreadyListedError(MarketplaceError):
    """Raised when listing an item that already has an active listing."""

    def __init__(self, collection: str, item_id: int) -> None:
        self.collection = collection
        self.item_id = item_id
        super().__init__(f"Item {collection}#{item_id} is already listed.")


class NotListedError(MarketplaceError):
    """Raised when an operation needs an active listing and there is none."""

    def __init__(self, collection: str, item_id: int) -> None:
        self.collection = collection
        self.item_id = item_id
        super().__init__(f"Item {collection}#{item_id} is not listed.")


class NotOwnerError(MarketplaceError):
    """Raised when the caller does not own the item per its registry."""

    def __init__(self, collection: str, item_id: int, account: str) -> None:
        self.collection = collection
        self.item_id = item_id
        self.account = account
        super().__init__(
            f"{account!r} is not the owner of {collection}#{item_id}."
        )


class PriceMustBeAboveZeroError(MarketplaceError):
    def __init__(self, collection: str, item_id: int, price: int) -> None:
        self.collection = collection
        self.item_id = item_id
        self.price = price
        super().__init__(
            f"Price for {collection}#{item_id} must be above zero, got {price}."
        )


class NotApprovedForMarketplaceError(MarketplaceError):
    """Raised when the marketplace is not the approved operator for an item."""

    def __init__(self, collection: str, item_id: int) -> None:
        self.collection = collection
        self.item_id = item_id
        super().__init__(
            f"Marketplace is not approved to transfer {collection}#{item_id}."
        )


class PriceNotMetError(MarketplaceError):
    """Raised when the payment is below the listed price."""

    def __init__(self, collection: str, item_id: int, price: int) -> None:
        self.collection = collection
        self.item_id = item_id
        self.price = price
        super().__init__(
            f"Payment for {collection}#{item_id} does not meet the price {price}."
        )


class NoProceedsError(MarketplaceError):
    def __init__(self, account: str) -> None:
        self.account = account
        super().__init__(f"{account!r} has no proceeds to withdraw.")


class TransferFailedError(MarketplaceError):
    """Raised when an external transfer fails; the operation is rolled back."""

    def __init__(
        self,
        message: str,
        *,
        collection: str = "",
        item_id: int | None = None,
        account: str = "",
        amount: int | None = None,
    ) -> None:
        self.collection = collection
        self.item_id = item_id
        self.account = account
        self.amount = amount
        super().__init__(message)


class ReentrantCallError(MarketplaceError):
    """Raised when a guarded operation is entered again from its own external call."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"Re-entrant call to {operation!r} rejected: a guarded operation is in progress."
        )


class UnknownCollectionError(MarketplaceError):
    """Raised when no ownership registry is registered for a collection."""

    def __init__(self, collection: str) -> None:
        self.collection = collection
        super().__init__(f"No ownership registry registered for collection {collection!r}.")
