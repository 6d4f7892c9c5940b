"""Payout gateways — where withdrawn proceeds are sent."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class PayoutGateway(Protocol):
    def send(self, recipient: str, amount: int) -> None:
        """Deliver *amount* to *recipient*; raise on failure."""
        ...


class PayoutError(RuntimeError):
    """Raised when a payout cannot be delivered."""


class InMemoryPayoutGateway:
    """Records delivered amounts per recipient.

    ``on_receive`` hooks run on every delivery with ``(recipient, amount)``
    and may raise to refuse the funds.
    """

    def __init__(self) -> None:
        self._balances: dict[str, int] = {}
        self._hooks: list[Callable[[str, int], None]] = []

    def on_receive(self, hook: Callable[[str, int], None]) -> None:
        self._hooks.append(hook)

    def balance_of(self, recipient: str) -> int:
        return self._balances.get(recipient, 0)

    def send(self, recipient: str, amount: int) -> None:
        if amount <= 0:
            raise PayoutError(f"Cannot send a non-positive amount ({amount}).")
        for hook in self._hooks:
            hook(recipient, amount)
        self._balances[recipient] = self.balance_of(recipient) + amount
        logger.debug("Delivered %d to %s.", amount, recipient)
