"""
Storage Backend Module

Provides the abstract ledger store interface and implementations for
in-memory (testing) and SQLite (persistence). Every operation runs inside the
transaction the caller opened; backend failures surface as StoreError.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Union
from datetime import datetime, timezone
import sqlite3
import threading
from pathlib import Path
from contextlib import contextmanager

from .coins import CoinRow, Denomination
from .errors import StoreError
from .logging_config import get_logger


class StorageInterface(ABC):
    """Abstract interface for ledger row storage"""

    @abstractmethod
    def fetch_rows(self, pot_id: int) -> List[CoinRow]:
        """Fetch all rows of a pot ordered by row id"""
        pass

    @abstractmethod
    def insert_row(self, pot_id: int, denomination: Denomination, count: int) -> CoinRow:
        """Insert a new row and return it with its assigned id"""
        pass

    @abstractmethod
    def update_row(self, row: CoinRow) -> None:
        """Persist the count of an existing row"""
        pass

    @abstractmethod
    def delete_row(self, row_id: int) -> None:
        """Delete an existing row"""
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Start a transaction"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit current transaction"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Rollback current transaction"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield self
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing.

    The lock is held from begin_transaction until commit/rollback, so
    transactions from different threads run one after another. Rollback
    restores the snapshot taken at begin.
    """

    def __init__(self):
        self._rows: Dict[int, CoinRow] = {}
        self._next_id = 1
        self._lock = threading.RLock()
        self._in_transaction = False
        self._snapshot: Optional[tuple] = None

    def fetch_rows(self, pot_id: int) -> List[CoinRow]:
        with self._lock:
            return [row for row_id, row in sorted(self._rows.items()) if row.pot_id == pot_id]

    def insert_row(self, pot_id: int, denomination: Denomination, count: int) -> CoinRow:
        with self._lock:
            now = datetime.now(timezone.utc)
            row = CoinRow(
                id=self._next_id,
                pot_id=pot_id,
                denomination=denomination,
                count=count,
                created_at=now,
                updated_at=now
            )
            self._rows[row.id] = row
            self._next_id += 1
            return row

    def update_row(self, row: CoinRow) -> None:
        with self._lock:
            stored = self._rows.get(row.id)
            if stored is None:
                raise StoreError(f"Coin row {row.id} not found")
            if row.count < 0:
                raise StoreError(f"Coin row {row.id} cannot hold a negative count")
            self._rows[row.id] = stored.with_count(row.count)

    def delete_row(self, row_id: int) -> None:
        with self._lock:
            if row_id not in self._rows:
                raise StoreError(f"Coin row {row_id} not found")
            del self._rows[row_id]

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._in_transaction:
            self._lock.release()
            raise StoreError("Transaction already in progress")
        self._in_transaction = True
        # CoinRow is frozen, so a shallow copy of the dict is a full snapshot
        self._snapshot = (dict(self._rows), self._next_id)

    def commit(self) -> None:
        if not self._in_transaction:
            return
        self._snapshot = None
        self._in_transaction = False
        self._lock.release()

    def rollback(self) -> None:
        if not self._in_transaction:
            return
        self._rows, self._next_id = self._snapshot
        self._snapshot = None
        self._in_transaction = False
        self._lock.release()

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def count_rows(self) -> int:
        """Number of rows across all pots, for debugging/inspection"""
        with self._lock:
            return len(self._rows)


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 5.0,
                 log_queries: bool = False):
        self.db_path = str(db_path)
        self.logger = get_logger("pyggpot.storage")
        self._lock = threading.RLock()
        self._in_transaction = False
        try:
            # Autocommit mode; transactions are opened explicitly with BEGIN IMMEDIATE
            self._connection = sqlite3.connect(
                self.db_path, timeout=timeout, check_same_thread=False, isolation_level=None
            )
            self._connection.row_factory = sqlite3.Row
            if log_queries:
                self._connection.set_trace_callback(self._trace)

            # Enable WAL mode for better concurrent access
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        self._ensure_schema()

    def _trace(self, statement: str) -> None:
        self.logger.debug(f"QUERY: {statement}")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self._connection is None:
            raise StoreError("Storage is closed")
        try:
            return self._connection.execute(sql, params)
        except (sqlite3.Error, OverflowError) as e:
            raise StoreError(str(e)) from e

    def _ensure_schema(self) -> None:
        """Ensure the coins table exists with proper schema"""
        with self._lock:
            self._execute("""
                CREATE TABLE IF NOT EXISTS coins (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    pot_id INTEGER NOT NULL,
                    denomination TEXT NOT NULL,
                    coin_count INTEGER NOT NULL CHECK (coin_count >= 0),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._execute("""
                CREATE INDEX IF NOT EXISTS idx_coins_pot_id
                ON coins(pot_id)
            """)

    @staticmethod
    def _row_to_coin(row: sqlite3.Row) -> CoinRow:
        return CoinRow(
            id=row['id'],
            pot_id=row['pot_id'],
            denomination=Denomination(row['denomination']),
            count=row['coin_count'],
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at'])
        )

    def fetch_rows(self, pot_id: int) -> List[CoinRow]:
        with self._lock:
            cursor = self._execute("""
                SELECT id, pot_id, denomination, coin_count, created_at, updated_at
                FROM coins WHERE pot_id = ? ORDER BY id
            """, (pot_id,))
            try:
                return [self._row_to_coin(row) for row in cursor.fetchall()]
            except ValueError as e:
                raise StoreError(f"Corrupt coin row in pot {pot_id}: {e}") from e

    def insert_row(self, pot_id: int, denomination: Denomination, count: int) -> CoinRow:
        with self._lock:
            now = datetime.now(timezone.utc)
            cursor = self._execute("""
                INSERT INTO coins (pot_id, denomination, coin_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, (pot_id, denomination.value, count, now.isoformat(), now.isoformat()))
            return CoinRow(
                id=cursor.lastrowid,
                pot_id=pot_id,
                denomination=denomination,
                count=count,
                created_at=now,
                updated_at=now
            )

    def update_row(self, row: CoinRow) -> None:
        with self._lock:
            now = datetime.now(timezone.utc).isoformat()
            cursor = self._execute("""
                UPDATE coins SET coin_count = ?, updated_at = ? WHERE id = ?
            """, (row.count, now, row.id))
            if cursor.rowcount == 0:
                raise StoreError(f"Coin row {row.id} not found")

    def delete_row(self, row_id: int) -> None:
        with self._lock:
            cursor = self._execute("""
                DELETE FROM coins WHERE id = ?
            """, (row_id,))
            if cursor.rowcount == 0:
                raise StoreError(f"Coin row {row_id} not found")

    def begin_transaction(self) -> None:
        """Start a write transaction; held lock serializes users of the connection"""
        self._lock.acquire()
        if self._in_transaction:
            self._lock.release()
            raise StoreError("Transaction already in progress")
        try:
            self._execute("BEGIN IMMEDIATE")
        except StoreError:
            self._lock.release()
            raise
        self._in_transaction = True

    def commit(self) -> None:
        if not self._in_transaction:
            return
        # On failure the transaction stays open for the caller to roll back
        self._execute("COMMIT")
        self._in_transaction = False
        self._lock.release()

    def rollback(self) -> None:
        if not self._in_transaction:
            return
        try:
            if self._connection is not None and self._connection.in_transaction:
                self._connection.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise StoreError(f"Rollback failed: {e}") from e
        finally:
            self._in_transaction = False
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None

    def count_rows(self) -> int:
        """Number of rows across all pots, for debugging/inspection"""
        with self._lock:
            cursor = self._execute("SELECT COUNT(*) AS count FROM coins")
            return cursor.fetchone()['count']


def create_storage(config) -> StorageInterface:
    """
    Build the storage backend named by config.database_url.

    Supported forms: "memory://", "sqlite:///:memory:", "sqlite:///path/to.db".
    """
    url = config.database_url
    if url == "memory://":
        return InMemoryStorage()
    if url.startswith("sqlite:///"):
        return SQLiteStorage(
            url[len("sqlite:///"):] or ":memory:",
            timeout=config.database_timeout,
            log_queries=config.log_queries
        )
    raise ValueError(f"Unsupported database_url: {url}")
