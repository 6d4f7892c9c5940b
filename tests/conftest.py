"""Shared test fixtures for Marketledger."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from marketledger.core.marketplace import NftMarketplace
from marketledger.core.payouts import InMemoryPayoutGateway
from marketledger.core.registry import CollectionDirectory, InMemoryOwnershipRegistry
from marketledger.core.store import MarketStore

COLLECTION = "basic-nft"
PRICE = 100
SELLER = "deployer"
BUYER = "user"


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test databases."""
    return tmp_path


@pytest.fixture
def store(tmp_dir: Path) -> Iterator[MarketStore]:
    """Provide a fresh MarketStore backed by a temp SQLite database."""
    s = MarketStore(tmp_dir / "market.db")
    yield s
    s.close()


@pytest.fixture
def nft() -> InMemoryOwnershipRegistry:
    """Provide an empty in-memory collection."""
    return InMemoryOwnershipRegistry(COLLECTION)


@pytest.fixture
def payouts() -> InMemoryPayoutGateway:
    return InMemoryPayoutGateway()


@pytest.fixture
def market(
    store: MarketStore, nft: InMemoryOwnershipRegistry, payouts: InMemoryPayoutGateway
) -> NftMarketplace:
    """Provide a marketplace wired to the test store, collection and payouts."""
    return NftMarketplace(
        store, CollectionDirectory({COLLECTION: nft}), payouts, address="marketplace"
    )


@pytest.fixture
def token_id(nft: InMemoryOwnershipRegistry, market: NftMarketplace) -> int:
    """Mint an item to SELLER and approve the marketplace for it."""
    token = nft.mint(SELLER)
    nft.approve(token, market.address, caller=SELLER)
    return token


@pytest.fixture
def listed(market: NftMarketplace, token_id: int) -> int:
    """An item already listed at PRICE by SELLER."""
    market.list_item(COLLECTION, token_id, PRICE, caller=SELLER)
    return token_id
