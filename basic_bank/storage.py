"""
Storage Backend Module

Key-value persistence for the bank: an in-memory store for tests, a single
JSON document (the local-storage analogue) and SQLite. Values are JSON
compatible; monetary values are stored as Decimal strings.

A missing or unreadable entry reads back as the caller's default. Writes are
last-writer-wins with no atomicity across keys.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union
from pathlib import Path
import json
import os
import sqlite3
import tempfile
import threading

from .config import BankConfig, get_config
from .logging_config import get_logger

logger = get_logger("basic_bank.storage")


class StorageKeys:
    """Keys of the four independent records"""
    USER = "bb_user"
    ACCOUNT = "bb_acc"
    LEDGER = "bb_ledger"
    LAST_LOGIN = "bb_last_login"


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Load a value, returning ``default`` when missing or corrupt"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Save a JSON-compatible value"""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a value if present"""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """List stored keys"""
        pass

    def close(self) -> None:
        """Close storage (default no-op)"""
        pass

    @staticmethod
    def _encode(value: Any) -> str:
        return json.dumps(value, default=str)


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        try:
            # Fresh copy on every read to prevent external mutation
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Corrupt value under '{key}', using default")
            return default

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = self._encode(value)

    def set_raw(self, key: str, raw: str) -> None:
        """Store text as-is, for simulating a damaged store"""
        with self._lock:
            self._data[key] = raw

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)


class JSONFileStorage(StorageInterface):
    """
    One JSON document per store, each key holding its value as JSON text

    Values are kept as encoded strings inside the document, so a single bad
    entry does not take the others down with it.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _read_document(self) -> Dict[str, str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            document = json.loads(text)
        except ValueError:
            logger.warning(f"Store file {self.path} is unreadable, starting empty")
            return {}
        if not isinstance(document, dict):
            logger.warning(f"Store file {self.path} is not an object, starting empty")
            return {}
        return document

    def _write_document(self, document: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, ensure_ascii=False)
                handle.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._read_document().get(key)
        if raw is None:
            return default
        if not isinstance(raw, str):
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Corrupt value under '{key}', using default")
            return default

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            document = self._read_document()
            document[key] = self._encode(value)
            self._write_document(document)

    def remove(self, key: str) -> None:
        with self._lock:
            document = self._read_document()
            if key in document:
                del document[key]
                self._write_document(document)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._read_document())


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._lock = threading.RLock()

        with self._lock:
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            self._connection.commit()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            row = self._connection.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError:
            logger.warning(f"Corrupt value under '{key}', using default")
            return default

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._connection.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (key, self._encode(value))
            )
            self._connection.commit()

    def remove(self, key: str) -> None:
        with self._lock:
            self._connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self._connection.commit()

    def keys(self) -> List[str]:
        with self._lock:
            rows = self._connection.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(config: Optional[BankConfig] = None) -> StorageInterface:
    """Build the storage backend named by configuration"""
    config = config or get_config()
    backend = config.storage_backend.lower()

    if backend == "memory":
        return InMemoryStorage()
    if backend == "json":
        return JSONFileStorage(config.storage_path)
    if backend == "sqlite":
        return SQLiteStorage(config.storage_path)

    raise ValueError(f"Unknown storage backend '{config.storage_backend}'")
