"""Unit tests for the CLI — Typer command registration and behavior."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from marketledger.cli.app import app
from marketledger.core.anchor import generate_keypair, verify_anchor
from marketledger.core.errors import MarketplaceError
from marketledger.core.event_log import EventLog
from marketledger.core.marketplace import NftMarketplace
from marketledger.core.payouts import InMemoryPayoutGateway
from marketledger.core.registry import CollectionDirectory, InMemoryOwnershipRegistry
from marketledger.core.store import MarketStore

runner = CliRunner()


@pytest.fixture
def populated_db(tmp_path: Path) -> Path:
    """A database with one sold item, one active listing and proceeds."""
    db = tmp_path / "cli.db"
    store = MarketStore(db)
    nft = InMemoryOwnershipRegistry("basic-nft")
    market = NftMarketplace(
        store, CollectionDirectory({"basic-nft": nft}), InMemoryPayoutGateway()
    )
    for _ in range(2):
        token = nft.mint("alice")
        nft.approve(token, market.address, caller="alice")
        market.list_item("basic-nft", token, 100, caller="alice")
    market.buy_item("basic-nft", 0, 120, caller="bob")
    store.close()
    return db


class TestCliApp:
    def test_help_flag(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("listing", "listings", "proceeds", "events", "verify", "anchor", "demo"):
            assert name in result.output

    def test_demo_runs_scenario(self):
        result = runner.invoke(app, ["demo"])
        assert result.exit_code == 0, result.output
        assert "Second withdrawal" in result.output
        assert "150" in result.output

    def test_demo_underpayment_exits_cleanly(self):
        result = runner.invoke(app, ["demo", "--payment", "50"])
        assert result.exit_code == 1
        assert not isinstance(result.exception, MarketplaceError)
        assert "Demo failed" in result.output
        assert "does not meet the price" in result.output

    def test_demo_zero_price_exits_cleanly(self):
        result = runner.invoke(app, ["demo", "--price", "0"])
        assert result.exit_code == 1
        assert not isinstance(result.exception, MarketplaceError)
        assert "Demo failed" in result.output

    def test_demo_rerun_after_failure_on_same_db(self, tmp_path: Path):
        db = tmp_path / "demo.db"
        failed = runner.invoke(app, ["demo", "--payment", "50", "--db", str(db)])
        assert failed.exit_code == 1

        store = MarketStore(db)
        assert store.get_listing("basic-nft", 0) is None
        assert EventLog(store).count() == 0
        store.close()

        result = runner.invoke(app, ["demo", "--db", str(db)])
        assert result.exit_code == 0, result.output
        assert "Second withdrawal" in result.output

    def test_listing_active(self, populated_db: Path):
        result = runner.invoke(app, ["listing", "basic-nft", "1", "--db", str(populated_db)])
        assert result.exit_code == 0
        assert "100" in result.output
        assert "alice" in result.output

    def test_listing_absent(self, populated_db: Path):
        result = runner.invoke(app, ["listing", "basic-nft", "0", "--db", str(populated_db)])
        assert result.exit_code == 0
        assert "not listed" in result.output

    def test_listings_table(self, populated_db: Path):
        result = runner.invoke(app, ["listings", "--db", str(populated_db)])
        assert result.exit_code == 0
        assert "Active Listings" in result.output

    def test_proceeds(self, populated_db: Path):
        result = runner.invoke(app, ["proceeds", "alice", "--db", str(populated_db)])
        assert result.exit_code == 0
        assert "120" in result.output

    def test_events_filtered_by_kind(self, populated_db: Path):
        result = runner.invoke(
            app, ["events", "--kind", "ItemBought", "--db", str(populated_db)]
        )
        assert result.exit_code == 0
        assert "ItemBought" in result.output
        assert "ItemListed" not in result.output

    def test_events_unknown_kind(self, populated_db: Path):
        result = runner.invoke(app, ["events", "--kind", "Bogus", "--db", str(populated_db)])
        assert result.exit_code == 2

    def test_verify(self, populated_db: Path):
        result = runner.invoke(app, ["verify", "--db", str(populated_db)])
        assert result.exit_code == 0
        assert "valid" in result.output

    def test_missing_database(self, tmp_path: Path):
        result = runner.invoke(app, ["verify", "--db", str(tmp_path / "nope.db")])
        assert result.exit_code == 1

    def test_anchor_json(self, populated_db: Path):
        result = runner.invoke(app, ["anchor", "--db", str(populated_db)])
        assert result.exit_code == 0
        anchor = json.loads(result.output)
        assert anchor["entry_count"] == 3

    def test_signed_anchor(self, populated_db: Path, monkeypatch: pytest.MonkeyPatch):
        from marketledger.config import config

        signing_key, verify_key = generate_keypair()
        monkeypatch.setattr(config, "anchor_signing_key", signing_key)
        result = runner.invoke(app, ["anchor", "--sign", "--db", str(populated_db)])
        assert result.exit_code == 0
        assert verify_anchor(json.loads(result.output), verify_key) is True
