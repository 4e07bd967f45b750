"""
Embedded key-value store for feed items.

A single SQLite file holding one `kv(key BLOB PRIMARY KEY, value BLOB)` table.
Writes from an ingestion run go through a WriteBatch, which is committed in
one transaction so a run either persists all of its new items or none.
"""
import logging
import os
import sqlite3
import threading
from typing import Dict, Iterator, List, Optional, Tuple

from .exceptions import StoreError

logger = logging.getLogger(__name__)

_SCHEMA = "CREATE TABLE IF NOT EXISTS kv (key BLOB PRIMARY KEY, value BLOB NOT NULL) WITHOUT ROWID"


class KVStore:
    """
    Key-value store backed by a single SQLite database file.

    The store is opened once and passed explicitly to ingestion, pruning and
    digest code. `write_lock` must be held by whoever mutates the store for
    the duration of a run, so ingestion and pruning never overlap.
    """

    def __init__(self, path: str):
        """
        Open (creating if needed) the store at the given path.

        Args:
            path: Database file path, or ":memory:" for a throwaway store

        Raises:
            StoreError: If the database cannot be opened
        """
        self.path = path
        self.write_lock = threading.RLock()
        self._conn_lock = threading.RLock()

        if path != ":memory:":
            directory = os.path.dirname(os.path.abspath(path))
            os.makedirs(directory, exist_ok=True)

        try:
            # Autocommit mode; batches manage their own transactions
            self._conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
            self._conn.execute(_SCHEMA)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open store at {path}: {e}") from e

        logger.debug(f"KVStore opened at {path}")

    def __enter__(self) -> "KVStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def closed(self) -> bool:
        return self._conn is None

    def close(self) -> None:
        """Close the store. Safe to call more than once."""
        with self._conn_lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            except sqlite3.Error as e:
                logger.error(f"Error closing store {self.path}: {e}")
            finally:
                self._conn = None
        logger.debug(f"KVStore closed at {self.path}")

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError(f"Store {self.path} is closed")
        return self._conn

    def get(self, key: bytes) -> Optional[bytes]:
        """
        Look up a committed value.

        Returns:
            The stored bytes, or None when the key is absent

        Raises:
            StoreError: If the lookup fails
        """
        with self._conn_lock:
            try:
                row = self._connection().execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Lookup failed for key {key!r}: {e}") from e
        return bytes(row[0]) if row else None

    def set(self, key: bytes, value: bytes) -> None:
        """Write a single value outside any batch."""
        self._apply([(key, value)])

    def delete(self, key: bytes) -> None:
        """
        Delete a single key. Deleting an absent key is a no-op.

        Raises:
            StoreError: If the delete fails
        """
        self._apply([(key, None)])

    def items(self, prefix: Optional[bytes] = None) -> Iterator[Tuple[bytes, bytes]]:
        """
        Iterate over (key, value) pairs in key order.

        The pairs are read up front, so callers may modify the store while
        iterating.

        Args:
            prefix: Only yield keys starting with these bytes

        Raises:
            StoreError: If the scan fails
        """
        with self._conn_lock:
            try:
                if prefix:
                    rows = self._connection().execute(
                        "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                        (len(prefix), prefix)).fetchall()
                else:
                    rows = self._connection().execute("SELECT key, value FROM kv ORDER BY key").fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Scan failed: {e}") from e
        return iter([(bytes(key), bytes(value)) for key, value in rows])

    def __len__(self) -> int:
        with self._conn_lock:
            try:
                return self._connection().execute("SELECT COUNT(*) FROM kv").fetchone()[0]
            except sqlite3.Error as e:
                raise StoreError(f"Count failed: {e}") from e

    def new_batch(self) -> "WriteBatch":
        """Start a new indexed write batch against this store."""
        return WriteBatch(self)

    def _apply(self, writes: List[Tuple[bytes, Optional[bytes]]]) -> None:
        """Apply writes (value None means delete) in a single transaction."""
        with self._conn_lock:
            conn = self._connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                for key, value in writes:
                    if value is None:
                        conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                    else:
                        conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value))
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise StoreError(f"Write of {len(writes)} operations failed: {e}") from e


class WriteBatch:
    """
    Indexed batch of pending writes.

    Lookups see staged writes first, then the committed store, so duplicates
    discovered within the same run are caught before commit. Nothing reaches
    the store until `commit`, which applies every staged write atomically.
    """

    def __init__(self, store: KVStore):
        self.store = store
        self._pending: Dict[bytes, Optional[bytes]] = {}
        self._finished = False

    def __len__(self) -> int:
        return len(self._pending)

    def _check_open(self):
        if self._finished:
            raise StoreError("Batch has already been committed or discarded")

    def get(self, key: bytes) -> Optional[bytes]:
        self._check_open()
        if key in self._pending:
            return self._pending[key]
        return self.store.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        self._check_open()
        if not isinstance(key, bytes) or not isinstance(value, bytes):
            raise StoreError("Batch keys and values must be bytes")
        self._pending[key] = value

    def delete(self, key: bytes) -> None:
        self._check_open()
        self._pending[key] = None

    def commit(self) -> int:
        """
        Apply all staged writes in one transaction.

        Returns:
            Number of operations applied

        Raises:
            StoreError: If the commit fails; no staged write is persisted
        """
        self._check_open()
        self._finished = True
        writes = list(self._pending.items())
        self._pending = {}
        if writes:
            self.store._apply(writes)
        return len(writes)

    def discard(self) -> None:
        """Drop all staged writes."""
        self._pending = {}
        self._finished = True
