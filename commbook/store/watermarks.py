"""
commbook/store/watermarks.py
Persisted report state: "when did each report last run" and
"how many communications of (year, student, message) were already alerted".

Values are strings on disk (timestamps as ISO-8601, counters as decimal
integers). A missing key means never run / count 0.

Watermarks only move forward. advance_datetime() and advance_int() do the
read-compare-write inside a single IMMEDIATE transaction, so an overlapping
tick can at worst re-write the same value. It can never move a watermark
backwards.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import quote

from commbook.errors import StoreError

logger = logging.getLogger(__name__)

# Well-known keys. Names match the rows already present in deployed databases.
LAST_DIGEST_RUN     = "lastDailyReport"
LAST_WEEKLY_RUN     = "lastStudentSpecificDailyReport"
LAST_CUMULATIVE_RUN = "lastAcumulativeReport"


@dataclass(frozen=True)
class CumulativeKey:
    """Counter key for the cumulative alert policy."""
    year:    int
    student: str
    message: str

    def encode(self) -> str:
        # quote() leaves no ':' in the student part and the digest is hex,
        # so two different keys can never encode to the same string.
        digest = hashlib.sha256(self.message.encode("utf-8")).hexdigest()[:16]
        return f"cumulative:{self.year}:{quote(self.student, safe='')}:{digest}"

    def __str__(self) -> str:
        return self.encode()


KeyLike = Union[str, CumulativeKey]


def _key(key: KeyLike) -> str:
    return key.encode() if isinstance(key, CumulativeKey) else key


class WatermarkStore(ABC):
    """
    Key/value watermark persistence.
    To add a new backend: subclass and implement get(), set(), and the two
    atomic advance operations.
    """

    @abstractmethod
    def get(self, key: KeyLike) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: KeyLike, value: str) -> None:
        ...

    @abstractmethod
    def advance_int(self, key: KeyLike, value: int) -> int:
        """Store max(current, value). Returns the stored value."""
        ...

    @abstractmethod
    def advance_datetime(self, key: KeyLike, value: datetime) -> datetime:
        """Store max(current, value). Returns the stored value."""
        ...

    def get_int(self, key: KeyLike) -> Optional[int]:
        raw = self.get(key)
        if raw is None or raw == "":
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Watermark {_key(key)!r} is not an integer: {raw!r}")
            return None

    def set_int(self, key: KeyLike, value: int) -> None:
        self.set(key, str(int(value)))

    def get_datetime(self, key: KeyLike) -> Optional[datetime]:
        raw = self.get(key)
        if not raw:
            return None
        try:
            return _parse_iso(raw)
        except ValueError:
            logger.warning(f"Watermark {_key(key)!r} is not a timestamp: {raw!r}")
            return None

    def set_datetime(self, key: KeyLike, value: datetime) -> None:
        self.set(key, value.isoformat())


def _parse_iso(raw: str) -> datetime:
    # Rows written by the web app use a trailing 'Z'
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SqliteWatermarkStore(WatermarkStore):
    """Watermarks in the global_metadata table of the application database."""

    def __init__(self, db_path: Path = Path("commbook.db")):
        self.db_path = Path(db_path)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS global_metadata (
                        key   TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot initialise watermark schema at {self.db_path}: {e}") from e

    def get(self, key: KeyLike) -> Optional[str]:
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT value FROM global_metadata WHERE key = ?", (_key(key),)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Watermark read failed for {_key(key)!r}: {e}") from e
        return row[0] if row else None

    def set(self, key: KeyLike, value: str) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("""
                    INSERT INTO global_metadata (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """, (_key(key), value))
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Watermark write failed for {_key(key)!r}: {e}") from e

    def _advance(self, key: KeyLike, value, parse, render):
        k = _key(key)
        try:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = conn.execute(
                        "SELECT value FROM global_metadata WHERE key = ?", (k,)
                    ).fetchone()
                    current = None
                    if row and row[0]:
                        try:
                            current = parse(row[0])
                        except ValueError:
                            logger.warning(f"Overwriting unparseable watermark {k!r}: {row[0]!r}")
                    if current is not None and current >= value:
                        conn.execute("COMMIT")
                        return current
                    conn.execute("""
                        INSERT INTO global_metadata (key, value) VALUES (?, ?)
                        ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """, (k, render(value)))
                    conn.execute("COMMIT")
                    return value
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Watermark advance failed for {k!r}: {e}") from e

    def advance_int(self, key: KeyLike, value: int) -> int:
        return self._advance(key, int(value), int, str)

    def advance_datetime(self, key: KeyLike, value: datetime) -> datetime:
        return self._advance(key, value, _parse_iso, lambda v: v.isoformat())

    def remove_key(self, key: KeyLike) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("DELETE FROM global_metadata WHERE key = ?", (_key(key),))
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Watermark delete failed for {_key(key)!r}: {e}") from e

    def clear_all(self) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("DELETE FROM global_metadata")
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Watermark clear failed: {e}") from e


class StagedWatermarks:
    """
    Buffers counter writes made while a policy is evaluated so they can be
    applied after that policy's e-mails have been dispatched. Reads see the
    staged value first, then the backing store.
    """

    def __init__(self, store: WatermarkStore):
        self.store = store
        self.pending: Dict[str, int] = {}

    def read_int(self, key: KeyLike) -> int:
        k = _key(key)
        if k in self.pending:
            return self.pending[k]
        return self.store.get_int(k) or 0

    def write_int(self, key: KeyLike, value: int) -> None:
        self.pending[_key(key)] = int(value)

    def flush(self) -> int:
        """Apply all staged counters to the store. Returns how many were written."""
        for k, v in self.pending.items():
            self.store.advance_int(k, v)
        n = len(self.pending)
        self.pending = {}
        return n
