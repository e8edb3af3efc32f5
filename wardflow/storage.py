"""Local persistent storage for resumable workflow state."""
from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from .models.ward import PartialWardRecord
from .ports import KeyValueStore

logger = logging.getLogger(__name__)

PARTIAL_WARD_KEY = "cloak_partial_ward"
LAST_WARD_OPTIONS_KEY = "cloak_last_ward_options"
SECONDARY_KEY_KEY = "cloak_2fa_secondary_pk"
RECONCILIATION_KEY = "cloak_2fa_reconciliation"


class InMemoryKeyValueStore:
    """In-memory store for development/testing."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


class SQLiteKeyValueStore:
    """SQLite-backed store that survives process restarts."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database
        """
        self.db_path = Path(db_path) if db_path else Path.home() / ".wardflow" / "state.db"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._init_database()

    def _init_database(self):
        """Initialize database schema."""
        with sqlite3.connect(str(self.db_path)) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """
            )
            conn.commit()
        logger.debug(f"Initialized state database at {self.db_path}")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            with sqlite3.connect(str(self.db_path)) as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
                return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            with sqlite3.connect(str(self.db_path)) as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                """,
                    (key, value),
                )
                conn.commit()
        logger.debug(f"Persisted {key}")

    def delete(self, key: str) -> bool:
        with self._lock:
            with sqlite3.connect(str(self.db_path)) as conn:
                cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
                return cursor.rowcount > 0

    def keys(self) -> List[str]:
        with self._lock:
            with sqlite3.connect(str(self.db_path)) as conn:
                return [row[0] for row in conn.execute("SELECT key FROM kv_store ORDER BY key")]


class PartialWardStore:
    """Typed access to the partial ward record inside a key-value store."""

    def __init__(self, store: KeyValueStore, key: str = PARTIAL_WARD_KEY):
        self.store = store
        self.key = key

    def load(self) -> Optional[PartialWardRecord]:
        """Load the record.

        Returns:
            The record, or None when absent or unreadable
        """
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            return PartialWardRecord.model_validate_json(raw)
        except ModelValidationError as e:
            logger.error(f"Discarding unreadable partial ward record: {e}")
            return None

    def save(self, record: PartialWardRecord) -> None:
        self.store.set(self.key, record.model_dump_json())
        logger.info(f"Saved partial ward record at step {record.last_completed_step}")

    def clear(self) -> bool:
        return self.store.delete(self.key)


def load_json(store: KeyValueStore, key: str) -> Optional[Dict[str, Any]]:
    raw = store.get(key)
    return json.loads(raw) if raw is not None else None


def save_json(store: KeyValueStore, key: str, value: Dict[str, Any]) -> None:
    store.set(key, json.dumps(value))
