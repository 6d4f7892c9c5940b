"""Ownership registries — the external source of truth for item ownership.

The marketplace only reads ``owner_of`` and ``get_approved`` and asks the
registry to ``transfer_from``; it never writes ownership itself.
``InMemoryOwnershipRegistry`` is a minimal ERC-721 style collection used for
local runs and tests.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from marketledger.core.errors import UnknownCollectionError

logger = logging.getLogger(__name__)


@runtime_checkable
class OwnershipRegistry(Protocol):
    """What the marketplace needs from an item collection."""

    def owner_of(self, item_id: int) -> str: ...

    def get_approved(self, item_id: int) -> str | None: ...

    def transfer_from(
        self, from_account: str, to_account: str, item_id: int, *, operator: str
    ) -> None:
        """Move *item_id*; raise if *from_account* is not the owner or
        *operator* is neither the owner nor approved."""
        ...


class RegistryError(RuntimeError):
    """Raised by the in-memory registry for rejected operations."""


class InMemoryOwnershipRegistry:
    """A single collection of uniquely-owned items held in memory.

    ``on_transfer`` hooks run after every successful transfer with
    ``(from_account, to_account, item_id)``; they model the receiver
    callbacks of real token contracts and may raise to reject the transfer.

    Examples
    --------
    >>> nft = InMemoryOwnershipRegistry("basic-nft")
    >>> token = nft.mint("alice")
    >>> nft.owner_of(token)
    'alice'
    """

    def __init__(self, name: str = "collection") -> None:
        self.name = name
        self._owners: dict[int, str] = {}
        self._approvals: dict[int, str] = {}
        self._next_id = 0
        self._hooks: list[Callable[[str, str, int], None]] = []

    def mint(self, to: str) -> int:
        """Mint the next item id to *to* and return it."""
        item_id = self._next_id
        self._next_id += 1
        self._owners[item_id] = to
        logger.debug("Minted %s#%d to %s.", self.name, item_id, to)
        return item_id

    def owner_of(self, item_id: int) -> str:
        try:
            return self._owners[item_id]
        except KeyError:
            raise RegistryError(f"{self.name}#{item_id} does not exist.") from None

    def get_approved(self, item_id: int) -> str | None:
        self.owner_of(item_id)
        return self._approvals.get(item_id)

    def approve(self, item_id: int, approved: str | None, *, caller: str) -> None:
        """Approve *approved* to transfer *item_id*; ``None`` clears it."""
        if self.owner_of(item_id) != caller:
            raise RegistryError(f"{caller!r} cannot approve {self.name}#{item_id}.")
        if approved is None:
            self._approvals.pop(item_id, None)
        else:
            self._approvals[item_id] = approved

    def on_transfer(self, hook: Callable[[str, str, int], None]) -> None:
        self._hooks.append(hook)

    def transfer_from(
        self, from_account: str, to_account: str, item_id: int, *, operator: str
    ) -> None:
        owner = self.owner_of(item_id)
        if owner != from_account:
            raise RegistryError(
                f"{from_account!r} is not the owner of {self.name}#{item_id}."
            )
        if operator != owner and self._approvals.get(item_id) != operator:
            raise RegistryError(
                f"{operator!r} is not approved to transfer {self.name}#{item_id}."
            )
        if not to_account:
            raise RegistryError("Cannot transfer to an empty account.")

        self._owners[item_id] = to_account
        self._approvals.pop(item_id, None)
        try:
            for hook in self._hooks:
                hook(from_account, to_account, item_id)
        except Exception:
            # A rejecting receiver undoes the transfer
            self._owners[item_id] = owner
            raise
        logger.debug(
            "Transferred %s#%d from %s to %s.", self.name, item_id, from_account, to_account
        )


class CollectionDirectory:
    """Resolves collection ids to their ownership registries."""

    def __init__(self, registries: dict[str, OwnershipRegistry] | None = None) -> None:
        self._registries: dict[str, OwnershipRegistry] = dict(registries or {})

    def register(self, collection: str, registry: OwnershipRegistry) -> None:
        if not collection:
            raise ValueError("collection id must be non-empty")
        self._registries[collection] = registry

    def resolve(self, collection: str) -> OwnershipRegistry:
        registry = self._registries.get(collection)
        if registry is None:
            raise UnknownCollectionError(collection)
        return registry

    def __contains__(self, collection: object) -> bool:
        return collection in self._registries

    def collections(self) -> list[str]:
        return sorted(self._registries)
