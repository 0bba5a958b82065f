"""
Conflict store - keyed record storage addressed by collection name

The engine needs get / get_all / put / delete per collection, a keyset
page read for scans, and a single-key compare-and-set so a conflict
cannot be resolved twice concurrently.

Backends:
- InMemoryConflictStore: dictionaries, copies records in and out
- SQLiteConflictStore: one table of JSON payloads, WAL mode
"""

import bisect
import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .errors import StorageError

logger = logging.getLogger(__name__)


CONFLICTS_COLLECTION = "conflicts"
DEFAULT_PAGE_SIZE = 500


class ConflictStore(ABC):
    """
    Abstract base class for conflict storage backends

    Records are JSON-compatible dicts carrying an "id" key.
    """

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a record by id

        Returns:
            Record dict, or None if absent

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        """All records of a collection, ordered by id"""
        pass

    @abstractmethod
    def put(self, collection: str, record: Mapping[str, Any]) -> None:
        """
        Insert or replace a record

        Raises:
            ValueError: If the record has no id
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        """
        Delete a record

        Returns:
            True if a record was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    def get_page(
        self,
        collection: str,
        after_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        """
        Read up to `limit` records with id greater than `after_id`

        Records are ordered by id so pages can be chained with the last id
        of the previous page.
        """
        pass

    @abstractmethod
    def compare_and_put(
        self,
        collection: str,
        record: Mapping[str, Any],
        expected: Mapping[str, Any],
    ) -> bool:
        """
        Atomically replace a record if its stored fields match `expected`

        Args:
            collection: Collection name
            record: Replacement record (its id selects the stored record)
            expected: Field values the stored record must currently hold

        Returns:
            True if written, False if the record is absent or differs
        """
        pass

    def scan(self, collection: str, page_size: int = DEFAULT_PAGE_SIZE) -> Iterator[Dict[str, Any]]:
        """
        Iterate a collection page by page.

        Records deleted during the scan are not revisited; no snapshot of
        the whole collection is held.
        """
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        after_id = None
        while True:
            page = self.get_page(collection, after_id=after_id, limit=page_size)
            if not page:
                return
            yield from page
            if len(page) < page_size:
                return
            after_id = page[-1]["id"]

    def close(self) -> None:
        """Release backend resources."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @staticmethod
    def _record_id(record: Mapping[str, Any]) -> str:
        record_id = record.get("id")
        if not record_id:
            raise ValueError("Record has no id")
        return str(record_id)


class InMemoryConflictStore(ConflictStore):
    """
    Process-local store

    Thread-safe; records are deep-copied on the way in and out so callers
    cannot mutate stored state. Ids are kept in a sorted index per
    collection so page reads are a bisect plus a slice.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._ids: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            records = self._collections.get(collection, {})
            return [copy.deepcopy(records[k]) for k in self._ids.get(collection, [])]

    def put(self, collection: str, record: Mapping[str, Any]) -> None:
        record_id = self._record_id(record)
        with self._lock:
            records = self._collections.setdefault(collection, {})
            if record_id not in records:
                bisect.insort(self._ids.setdefault(collection, []), record_id)
            records[record_id] = copy.deepcopy(dict(record))

    def delete(self, collection: str, record_id: str) -> bool:
        with self._lock:
            if self._collections.get(collection, {}).pop(record_id, None) is None:
                return False
            ids = self._ids[collection]
            del ids[bisect.bisect_left(ids, record_id)]
            return True

    def get_page(
        self,
        collection: str,
        after_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            records = self._collections.get(collection, {})
            ids = self._ids.get(collection, [])
            start = bisect.bisect_right(ids, after_id) if after_id is not None else 0
            return [copy.deepcopy(records[k]) for k in ids[start:start + limit]]

    def compare_and_put(
        self,
        collection: str,
        record: Mapping[str, Any],
        expected: Mapping[str, Any],
    ) -> bool:
        record_id = self._record_id(record)
        with self._lock:
            records = self._collections.get(collection, {})
            current = records.get(record_id)
            if current is None:
                return False
            if any(current.get(k) != v for k, v in expected.items()):
                return False
            records[record_id] = copy.deepcopy(dict(record))
            return True


class SQLiteConflictStore(ConflictStore):
    """
    SQLite-backed store

    Pattern: persistent connection with thread lock
    - WAL mode for concurrent readers
    - autocommit, explicit BEGIN IMMEDIATE for compare-and-set
    - sqlite3 errors are re-raised as StorageError

    Usage:
        with SQLiteConflictStore(db_path) as store:
            store.put("conflicts", conflict.to_dict())
    """

    def __init__(self, db_path: Path, enable_wal: bool = True):
        """
        Initialize SQLiteConflictStore.

        Args:
            db_path: Path to SQLite database file (":memory:" is accepted)
            enable_wal: Enable WAL mode for concurrent access (default: True)
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._enable_wal = enable_wal and isinstance(self.db_path, Path)

        try:
            # check_same_thread=False: access is serialized by _db_lock
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,
                timeout=30.0
            )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open conflict store {self.db_path}: {e}") from e
        self._db_lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema"""
        with self._db_lock:
            try:
                if self._enable_wal:
                    self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.executescript("""
                    CREATE TABLE IF NOT EXISTS records (
                        collection TEXT NOT NULL,
                        id TEXT NOT NULL,
                        data TEXT NOT NULL,  -- JSON
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        PRIMARY KEY (collection, id)
                    );
                """)
            except sqlite3.Error as e:
                raise StorageError(f"Cannot initialize conflict store: {e}") from e

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._db_lock:
            row = self._fetchone(
                "SELECT data FROM records WHERE collection = ? AND id = ?",
                (collection, record_id)
            )
        return json.loads(row[0]) if row else None

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        with self._db_lock:
            rows = self._fetchall(
                "SELECT data FROM records WHERE collection = ? ORDER BY id",
                (collection,)
            )
        return [json.loads(row[0]) for row in rows]

    def put(self, collection: str, record: Mapping[str, Any]) -> None:
        record_id = self._record_id(record)
        data = self._dumps(record)
        with self._db_lock:
            self._execute(
                """
                INSERT INTO records (collection, id, data) VALUES (?, ?, ?)
                ON CONFLICT(collection, id) DO UPDATE
                SET data = excluded.data, updated_at = CURRENT_TIMESTAMP
                """,
                (collection, record_id, data)
            )

    def delete(self, collection: str, record_id: str) -> bool:
        with self._db_lock:
            cursor = self._execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                (collection, record_id)
            )
            return cursor.rowcount > 0

    def get_page(
        self,
        collection: str,
        after_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        query = "SELECT data FROM records WHERE collection = ?"
        params: List[Any] = [collection]
        if after_id is not None:
            query += " AND id > ?"
            params.append(after_id)
        query += " ORDER BY id LIMIT ?"
        params.append(limit)

        with self._db_lock:
            rows = self._fetchall(query, params)
        return [json.loads(row[0]) for row in rows]

    def compare_and_put(
        self,
        collection: str,
        record: Mapping[str, Any],
        expected: Mapping[str, Any],
    ) -> bool:
        record_id = self._record_id(record)
        data = self._dumps(record)
        with self._db_lock:
            try:
                # IMMEDIATE takes the write lock up front so another process
                # cannot interleave between the read and the update
                self._conn.execute("BEGIN IMMEDIATE")
                row = self._conn.execute(
                    "SELECT data FROM records WHERE collection = ? AND id = ?",
                    (collection, record_id)
                ).fetchone()
                if row is None:
                    self._conn.execute("ROLLBACK")
                    return False
                current = json.loads(row[0])
                if any(current.get(k) != v for k, v in expected.items()):
                    self._conn.execute("ROLLBACK")
                    return False
                self._conn.execute(
                    """
                    UPDATE records SET data = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE collection = ? AND id = ?
                    """,
                    (data, collection, record_id)
                )
                self._conn.execute("COMMIT")
                return True
            except sqlite3.Error as e:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise StorageError(f"Compare-and-set failed for {collection}/{record_id}: {e}") from e

    @staticmethod
    def _dumps(record: Mapping[str, Any]) -> str:
        try:
            return json.dumps(dict(record))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Record {record.get('id')} is not JSON serializable: {e}") from e

    def _execute(self, query: str, params: Any = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(query, params)
        except sqlite3.Error as e:
            raise StorageError(f"Conflict store query failed: {e}") from e

    def _fetchone(self, query: str, params: Any = ()) -> Optional[tuple]:
        return self._execute(query, params).fetchone()

    def _fetchall(self, query: str, params: Any = ()) -> List[tuple]:
        return self._execute(query, params).fetchall()

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
