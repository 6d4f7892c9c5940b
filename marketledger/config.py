"""Runtime configuration — env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
MARKETLEDGER_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class MarketConfig(BaseSettings):
    """Marketplace ledger configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export MARKETLEDGER_ENVIRONMENT=staging
        export MARKETLEDGER_LOG_LEVEL=DEBUG
        export MARKETLEDGER_DB_PATH=/data/market.db

    Or via .env file::

        MARKETLEDGER_ENVIRONMENT=production
        MARKETLEDGER_MARKETPLACE_ADDRESS=0xMarket
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MARKETLEDGER_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage
    db_path: Path = Path(".marketledger/market.db")

    # Identity the marketplace uses as a transfer operator. Sellers must
    # approve this identity on the ownership registry before listing.
    marketplace_address: str = "marketplace"
    currency_unit: str = "wei"

    # Event log anchoring: Ed25519 keys (hex)
    anchor_signing_key: str = ""  # private seed, never logged
    anchor_verify_key: str = ""

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton, import as `from marketledger.config import config`
config = MarketConfig()
