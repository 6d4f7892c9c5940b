"""Marketledger: escrowed marketplace ledger for uniquely-owned digital items.

Tracks fixed-price listings keyed by ``(collection, item_id)``, enforces
ownership and approval through each collection's ownership registry, and
escrows sale proceeds per seller until withdrawn.
"""

__version__ = "0.1.0"
__description__ = "Escrowed marketplace ledger for uniquely-owned digital items"

from marketledger.core.marketplace import NftMarketplace
from marketledger.core.store import MarketStore

__all__ = ["NftMarketplace", "MarketStore", "__version__"]
