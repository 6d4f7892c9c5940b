"""Durable listing and proceeds storage backed by SQLite.

The store is the only holder of marketplace state. It provides nested,
rollback-capable transactions built on SQLite savepoints: an exception
inside ``transaction()`` undoes every write made within it, including writes
from nested transactions and events appended by the ``EventLog`` through the
same connection.

Amounts and item ids are stored as decimal TEXT so that values beyond the
64-bit INTEGER range round-trip exactly.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_LISTINGS = """
CREATE TABLE IF NOT EXISTS listings (
    collection  TEXT NOT NULL,
    item_id     TEXT NOT NULL,
    price       TEXT NOT NULL,
    seller      TEXT NOT NULL,
    PRIMARY KEY (collection, item_id)
);
"""

_CREATE_PROCEEDS = """
CREATE TABLE IF NOT EXISTS proceeds (
    seller  TEXT PRIMARY KEY,
    amount  TEXT NOT NULL DEFAULT '0'
);
"""

_CREATE_EVENTS = """
CREATE TABLE IF NOT EXISTS market_events (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id             TEXT NOT NULL UNIQUE,
    event_kind           TEXT NOT NULL,
    collection           TEXT NOT NULL,
    item_id              TEXT NOT NULL,
    account              TEXT NOT NULL,
    price                TEXT,
    timestamp_utc        TEXT NOT NULL,
    previous_event_hash  TEXT NOT NULL DEFAULT '',
    event_hash           TEXT NOT NULL UNIQUE
);
"""

_CREATE_IDX_ITEM = """
CREATE INDEX IF NOT EXISTS idx_events_item ON market_events(collection, item_id, id);
"""

_CREATE_IDX_ACCOUNT = """
CREATE INDEX IF NOT EXISTS idx_events_account ON market_events(account, id);
"""


class MarketStore:
    """SQLite-backed key-value storage for listings and proceeds.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file, created if missing. ``":memory:"``
        keeps the state for the lifetime of the store only.
    """

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        self._db_path = db_path
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None: transactions are driven explicitly by savepoints
        self._conn = sqlite3.connect(
            str(db_path), check_same_thread=False, isolation_level=None
        )
        if str(db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.RLock()
        self._depth = 0
        # One list of after-commit callbacks per open savepoint level
        self._pending: list[list[Callable[[], None]]] = []
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            for ddl in (
                _CREATE_LISTINGS,
                _CREATE_PROCEEDS,
                _CREATE_EVENTS,
                _CREATE_IDX_ITEM,
                _CREATE_IDX_ACCOUNT,
            ):
                self._conn.execute(ddl)

    @property
    def db_path(self) -> Path | str:
        return self._db_path

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[MarketStore]:
        """Run the enclosed block atomically.

        Holds the store lock for the whole block, so operations from other
        threads never interleave. Nested calls on the same thread open a
        nested savepoint. Callbacks registered with ``after_commit`` run once
        the outermost transaction commits and are discarded on rollback.
        """
        with self._lock:
            name = f"sp_{self._depth}"
            self._conn.execute(f"SAVEPOINT {name}")
            self._depth += 1
            self._pending.append([])
            try:
                yield self
            except BaseException:
                self._conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
                self._conn.execute(f"RELEASE SAVEPOINT {name}")
                self._pending.pop()
                self._depth -= 1
                logger.debug("Rolled back savepoint %s.", name)
                raise
            self._conn.execute(f"RELEASE SAVEPOINT {name}")
            callbacks = self._pending.pop()
            self._depth -= 1
            if self._pending:
                self._pending[-1].extend(callbacks)
                return
        for callback in callbacks:
            callback()

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Defer *callback* until the outermost transaction commits."""
        if not self._pending:
            callback()
            return
        self._pending[-1].append(callback)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def get_listing(self, collection: str, item_id: int) -> tuple[int, str] | None:
        """Return ``(price, seller)`` for an active listing, or None."""
        with self._lock:
            row = self._conn.execute(
                "SELECT price, seller FROM listings WHERE collection = ? AND item_id = ?",
                (collection, str(item_id)),
            ).fetchone()
        if row is None:
            return None
        return int(row[0]), row[1]

    def put_listing(self, collection: str, item_id: int, price: int, seller: str) -> None:
        if price <= 0:
            raise ValueError("stored listings must have a positive price")
        with self._lock:
            self._conn.execute(
                "INSERT INTO listings (collection, item_id, price, seller) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(collection, item_id) DO UPDATE SET "
                "price = excluded.price, seller = excluded.seller",
                (collection, str(item_id), str(price), seller),
            )

    def delete_listing(self, collection: str, item_id: int) -> None:
        with self._lock:
            self._conn.execute(
                "DELETE FROM listings WHERE collection = ? AND item_id = ?",
                (collection, str(item_id)),
            )

    def iter_listings(self, collection: str | None = None) -> list[tuple[str, int, int, str]]:
        """Return ``(collection, item_id, price, seller)`` rows, sorted by key."""
        with self._lock:
            if collection is None:
                rows = self._conn.execute(
                    "SELECT collection, item_id, price, seller FROM listings"
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT collection, item_id, price, seller FROM listings "
                    "WHERE collection = ?",
                    (collection,),
                ).fetchall()
        result = [(c, int(i), int(p), s) for c, i, p, s in rows]
        return sorted(result, key=lambda r: (r[0], r[1]))

    # ------------------------------------------------------------------
    # Proceeds
    # ------------------------------------------------------------------

    def get_proceeds(self, seller: str) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT amount FROM proceeds WHERE seller = ?", (seller,)
            ).fetchone()
        return int(row[0]) if row else 0

    def set_proceeds(self, seller: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("proceeds cannot be negative")
        with self._lock:
            self._conn.execute(
                "INSERT INTO proceeds (seller, amount) VALUES (?, ?) "
                "ON CONFLICT(seller) DO UPDATE SET amount = excluded.amount",
                (seller, str(amount)),
            )

    def total_proceeds(self) -> int:
        """Sum of all escrowed proceeds."""
        with self._lock:
            rows = self._conn.execute("SELECT amount FROM proceeds").fetchall()
        return sum(int(r[0]) for r in rows)
