"""Append-only, hash-chained marketplace event log.

Events live in the same SQLite database as listings and proceeds and are
appended through the same connection, so an event written inside a
transaction that later rolls back disappears with it.

Design:
- Append-only: only ``append()`` writes; no update, no delete.
- Hash-chained: each event includes the SHA-256 of the previous event.
- Indexed by ``(collection, item_id)`` and by ``account`` (seller or buyer).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from marketledger.core.hasher import canonical_json_bytes, compute_event_hash, sha256_hex
from marketledger.core.store import MarketStore
from marketledger.models.events import EVENT_TYPE_MAP, EventKind, MarketEvent

logger = logging.getLogger(__name__)


class EventLogIntegrityError(RuntimeError):
    """Raised when the event hash chain is broken."""


class EventLog:
    """Hash-chained event log stored alongside marketplace state.

    Parameters
    ----------
    store:
        The ``MarketStore`` whose connection and transactions are shared.
    """

    def __init__(self, store: MarketStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    def append(self, event: MarketEvent) -> MarketEvent:
        """Seal *event* onto the chain and persist it.

        Returns the event with ``previous_event_hash`` and ``event_hash`` set.
        """
        with self._store.transaction():
            previous_hash = self._get_latest_hash()

            event_dict = event.model_dump(mode="json")
            event_dict["previous_event_hash"] = previous_hash
            event_dict["event_hash"] = ""
            event_hash = compute_event_hash(event_dict)

            sealed = event.model_copy(
                update={
                    "previous_event_hash": previous_hash,
                    "event_hash": event_hash,
                }
            )
            self._insert(sealed)
        logger.debug("Appended %s event %s.", sealed.event_kind.value, sealed.event_id)
        return sealed

    def _insert(self, event: MarketEvent) -> None:
        price = getattr(event, "price", None)
        self._store.connection.execute(
            """
            INSERT INTO market_events
                (event_id, event_kind, collection, item_id, account, price,
                 timestamp_utc, previous_event_hash, event_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                event.event_kind.value,
                event.collection,
                str(event.item_id),
                event.account,
                None if price is None else str(price),
                event.timestamp_utc.isoformat(),
                event.previous_event_hash,
                event.event_hash,
            ),
        )

    def _get_latest_hash(self) -> str:
        row = self._store.connection.execute(
            "SELECT event_hash FROM market_events ORDER BY id DESC LIMIT 1"
        ).fetchone()
        return row[0] if row else ""

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def query(
        self,
        *,
        collection: str | None = None,
        item_id: int | None = None,
        account: str | None = None,
        kind: EventKind | None = None,
        limit: int | None = None,
    ) -> list[MarketEvent]:
        """Return events matching every given filter, oldest first."""
        clauses: list[str] = []
        params: list[Any] = []
        if collection is not None:
            clauses.append("collection = ?")
            params.append(collection)
        if item_id is not None:
            clauses.append("item_id = ?")
            params.append(str(item_id))
        if account is not None:
            clauses.append("account = ?")
            params.append(account)
        if kind is not None:
            clauses.append("event_kind = ?")
            params.append(kind.value)

        sql = "SELECT * FROM market_events"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._store.lock:
            rows = self._store.connection.execute(sql, params).fetchall()
        return [self._row_to_event(row) for row in rows]

    def get_latest(self) -> MarketEvent | None:
        with self._store.lock:
            row = self._store.connection.execute(
                "SELECT * FROM market_events ORDER BY id DESC LIMIT 1"
            ).fetchone()
        return self._row_to_event(row) if row else None

    def count(self) -> int:
        with self._store.lock:
            row = self._store.connection.execute(
                "SELECT COUNT(*) FROM market_events"
            ).fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self) -> bool:
        """Recompute every event hash and check each link to its predecessor.

        Returns True, or raises ``EventLogIntegrityError`` naming the first
        event that fails.
        """
        prev_hash = ""
        for position, event in enumerate(self.query(), start=1):
            if event.previous_event_hash != prev_hash:
                raise EventLogIntegrityError(
                    f"{_describe(position, event)} does not link to the event before it."
                )
            if event.event_hash != compute_event_hash(event.model_dump(mode="json")):
                raise EventLogIntegrityError(
                    f"{_describe(position, event)} was modified after it was recorded."
                )
            prev_hash = event.event_hash
        return True

    # ------------------------------------------------------------------
    # External anchoring
    # ------------------------------------------------------------------

    def export_anchor(self) -> dict[str, Any]:
        """Summarise the chain so that a later rewrite can be detected.

        The anchor holds ``entry_count``, the hashes of the first and last
        events (``first_event_hash``, ``root_hash``), ``timestamp_utc`` and an
        ``anchor_hash`` over those fields. Keep it outside the database, or
        sign it with ``marketledger.core.anchor.sign_anchor``.
        """
        with self._store.lock:
            count = self.count()
            anchor: dict[str, Any] = {
                "entry_count": count,
                "first_event_hash": self._hash_at(0),
                "root_hash": self._hash_at(count - 1) if count else "",
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
            }
        anchor["anchor_hash"] = sha256_hex(canonical_json_bytes(anchor))
        return anchor

    def verify_against_anchor(self, anchor: dict[str, Any]) -> bool:
        """Check that the events an anchor covers are still in place.

        Events appended after the anchor was taken are allowed.
        """
        anchored = int(anchor.get("entry_count", 0))
        recorded = self.count()
        if recorded < anchored:
            raise EventLogIntegrityError(
                f"Event log holds {recorded} events but the anchor covers {anchored}."
            )
        if anchored:
            for offset, key in ((0, "first_event_hash"), (anchored - 1, "root_hash")):
                if self._hash_at(offset) != anchor.get(key, ""):
                    raise EventLogIntegrityError(
                        f"Event {offset + 1} no longer matches the anchor's {key}."
                    )
        return self.verify_chain()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _hash_at(self, offset: int) -> str:
        with self._store.lock:
            row = self._store.connection.execute(
                "SELECT event_hash FROM market_events ORDER BY id ASC LIMIT 1 OFFSET ?",
                (offset,),
            ).fetchone()
        return row[0] if row else ""

    @staticmethod
    def _row_to_event(row: tuple) -> MarketEvent:
        (
            _id,
            event_id,
            event_kind,
            collection,
            item_id,
            account,
            price,
            timestamp_utc,
            previous_event_hash,
            event_hash,
        ) = row
        kind = EventKind(event_kind)
        event_type = EVENT_TYPE_MAP[kind]
        data: dict[str, Any] = {
            "event_id": event_id,
            "event_kind": kind,
            "collection": collection,
            "item_id": int(item_id),
            "timestamp_utc": timestamp_utc,
            "previous_event_hash": previous_event_hash,
            "event_hash": event_hash,
            event_type.account_field: account,
        }
        if price is not None:
            data["price"] = int(price)
        return event_type.model_validate(data)


def _describe(position: int, event: MarketEvent) -> str:
    return f"Event {position} ({event.event_kind.value} {event.collection}#{event.item_id})"
