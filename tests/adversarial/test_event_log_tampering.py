"""Adversarial tests — event log tampering and anchor divergence.

Direct SQLite manipulation simulates an attacker with database access.
"""

from __future__ import annotations

import sqlite3

import pytest

from marketledger.core.anchor import generate_keypair, sign_anchor, verify_anchor
from marketledger.core.event_log import EventLog, EventLogIntegrityError
from marketledger.core.store import MarketStore
from marketledger.models.events import ItemListed


@pytest.fixture
def seeded(store: MarketStore) -> EventLog:
    """Seed the log with 5 listing events."""
    log = EventLog(store)
    for i in range(5):
        log.append(ItemListed(seller="alice", collection="c", item_id=i, price=100 + i))
    return log


def _tamper(store: MarketStore, sql: str, params: tuple = ()) -> None:
    conn = sqlite3.connect(str(store.db_path))
    conn.execute(sql, params)
    conn.commit()
    conn.close()


class TestEventLogTamperDetection:
    def test_corrupted_event_hash_detected(self, store: MarketStore, seeded: EventLog):
        _tamper(
            store,
            "UPDATE market_events SET event_hash = 'TAMPERED' "
            "WHERE id = (SELECT id FROM market_events ORDER BY id ASC LIMIT 1 OFFSET 2)",
        )
        with pytest.raises(EventLogIntegrityError, match="(does not link|was modified)"):
            seeded.verify_chain()

    def test_corrupted_price_detected(self, store: MarketStore, seeded: EventLog):
        _tamper(
            store,
            "UPDATE market_events SET price = '1' "
            "WHERE id = (SELECT id FROM market_events ORDER BY id ASC LIMIT 1 OFFSET 1)",
        )
        with pytest.raises(EventLogIntegrityError, match="was modified"):
            seeded.verify_chain()

    def test_rewritten_account_detected(self, store: MarketStore, seeded: EventLog):
        _tamper(
            store,
            "UPDATE market_events SET account = 'mallory' "
            "WHERE id = (SELECT id FROM market_events ORDER BY id ASC LIMIT 1)",
        )
        with pytest.raises(EventLogIntegrityError, match="was modified"):
            seeded.verify_chain()

    def test_deleted_event_breaks_chain(self, store: MarketStore, seeded: EventLog):
        _tamper(
            store,
            "DELETE FROM market_events "
            "WHERE id = (SELECT id FROM market_events ORDER BY id ASC LIMIT 1 OFFSET 1)",
        )
        with pytest.raises(EventLogIntegrityError, match="does not link"):
            seeded.verify_chain()

    def test_truncation_detected_by_anchor(self, store: MarketStore, seeded: EventLog):
        anchor = seeded.export_anchor()
        _tamper(
            store,
            "DELETE FROM market_events "
            "WHERE id = (SELECT id FROM market_events ORDER BY id DESC LIMIT 1)",
        )
        # The shortened chain is internally consistent...
        assert seeded.verify_chain() is True
        # ...but no longer matches the anchor
        with pytest.raises(EventLogIntegrityError, match="the anchor covers"):
            seeded.verify_against_anchor(anchor)

    def test_rewritten_anchored_event_detected(self, store: MarketStore, seeded: EventLog):
        anchor = seeded.export_anchor()
        _tamper(
            store,
            "UPDATE market_events SET event_hash = 'REWRITTEN' "
            "WHERE id = (SELECT id FROM market_events ORDER BY id DESC LIMIT 1)",
        )
        with pytest.raises(EventLogIntegrityError, match="no longer matches the anchor's root_hash"):
            seeded.verify_against_anchor(anchor)

    def test_error_names_the_bad_event(self, store: MarketStore, seeded: EventLog):
        _tamper(
            store,
            "UPDATE market_events SET price = '1' "
            "WHERE id = (SELECT id FROM market_events ORDER BY id ASC LIMIT 1 OFFSET 3)",
        )
        with pytest.raises(EventLogIntegrityError, match=r"Event 4 \(ItemListed c#3\)"):
            seeded.verify_chain()


class TestSignedAnchors:
    def test_sign_and_verify(self, seeded: EventLog):
        signing_key, verify_key = generate_keypair()
        signed = sign_anchor(seeded.export_anchor(), signing_key)
        assert len(signed["signature"]) == 128
        assert verify_anchor(signed, verify_key) is True

    def test_modified_anchor_fails_verification(self, seeded: EventLog):
        signing_key, verify_key = generate_keypair()
        signed = sign_anchor(seeded.export_anchor(), signing_key)
        forged = {**signed, "entry_count": signed["entry_count"] - 1}
        assert verify_anchor(forged, verify_key) is False

    def test_wrong_key_fails_verification(self, seeded: EventLog):
        signing_key, _ = generate_keypair()
        _, other_verify_key = generate_keypair()
        signed = sign_anchor(seeded.export_anchor(), signing_key)
        assert verify_anchor(signed, other_verify_key) is False

    def test_unsigned_anchor_fails_closed(self, seeded: EventLog):
        _, verify_key = generate_keypair()
        assert verify_anchor(seeded.export_anchor(), verify_key) is False

    def test_malformed_signature_fails_closed(self, seeded: EventLog):
        _, verify_key = generate_keypair()
        anchor = {**seeded.export_anchor(), "signature": "not-hex"}
        assert verify_anchor(anchor, verify_key) is False
