"""
Storage Backend Module

Provides the abstract storage interface and implementations for in-memory
(testing) and SQLite (persistence). All monetary values are stored as
Decimal strings and all dates as ``YYYY-MM-DD`` strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import copy
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import ValidationError


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from a stored dictionary"""
        data = dict(data)
        for key in ('created_at', 'updated_at'):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        return cls(**data)


class StorageInterface(ABC):
    """Abstract interface for storage backends

    Records are flat JSON documents keyed by id within a named table.
    """

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record, or None when it does not exist"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load every record of a table"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record; False when there was nothing to delete"""

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in a table"""

    @abstractmethod
    def close(self) -> None:
        """Release the backend"""

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose fields equal every filter value"""
        return [record for record in self.load_all(table) if _matches(record, filters)]

    def begin_transaction(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """Run a block as one transaction; any exception undoes its writes"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filters.items())


def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
    # JSON round trip detaches the record and normalizes values to JSON types
    return json.loads(json.dumps(record, default=str))


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing

    Transactions snapshot the whole dataset on begin and restore it on
    rollback. Nested ``atomic()`` blocks join the outermost transaction.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
        self._depth = 0

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._table(table)[record_id] = _copy(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return _copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [_copy(record) for record in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = copy.deepcopy(self._data)
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        if self._depth == 0:
            return
        if self._snapshot is not None:
            self._data = self._snapshot
            self._snapshot = None
        # Release every level; outer blocks see depth 0 and skip
        while self._depth > 0:
            self._depth -= 1
            self._lock.release()

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence

    Each table holds one JSON document per row. Writes outside an
    ``atomic()`` block commit immediately.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # DEFERRED isolation enables manual transaction control
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False,
                                           isolation_level='DEFERRED')
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = set()

        if self.db_path != ":memory:":
            self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.commit()

    def _autocommit(self) -> None:
        if self._depth == 0:
            self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._tables:
            return
        if not table.replace('_', '').isalnum():
            raise ValidationError(f"Invalid table name: {table}")
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("
            "id TEXT PRIMARY KEY, data TEXT NOT NULL, created_at TEXT NOT NULL)"
        )
        self._autocommit()
        self._tables.add(table)

    def _query(self, table: str, sql: str, params=()) -> sqlite3.Cursor:
        with self._lock:
            self._ensure_table(table)
            return self._connection.execute(sql.format(table=table), params)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            # Rows keep their first insertion time so load_all stays in insert order
            self._query(table, """
                INSERT INTO {table} (id, data, created_at) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data
            """, (record_id, json.dumps(data, default=str),
                  datetime.now(timezone.utc).isoformat()))
            self._autocommit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._query(table, "SELECT data FROM {table} WHERE id = ?",
                              (record_id,)).fetchone()
        return json.loads(row[0]) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._query(table, "SELECT data FROM {table} ORDER BY created_at, rowid")
            return [json.loads(row[0]) for row in rows.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._query(table, "DELETE FROM {table} WHERE id = ?", (record_id,))
            self._autocommit()
            return cursor.rowcount > 0

    def count(self, table: str) -> int:
        with self._lock:
            return self._query(table, "SELECT COUNT(*) FROM {table}").fetchone()[0]

    def begin_transaction(self) -> None:
        # DEFERRED isolation opens the transaction on the first write
        self._lock.acquire()
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._connection.commit()
        self._lock.release()

    def rollback(self) -> None:
        if self._depth == 0:
            return
        self._connection.rollback()
        # Tables created inside the transaction are gone again
        self._tables.clear()
        while self._depth > 0:
            self._depth -= 1
            self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Create a storage backend from a URL

    Args:
        database_url: ``memory://`` or ``sqlite:///path/to/file.db``
            (``sqlite://`` with no path opens an in-memory database)

    Returns:
        Storage backend instance
    """
    if database_url in ("memory://", "memory", ""):
        return InMemoryStorage()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteStorage(path or ":memory:")
    raise ValidationError(f"Unsupported database URL: {database_url}")
