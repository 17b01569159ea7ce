"""
commbook/store/communications.py
SQLite-backed communication records: the query collaborator the report
policies read from.

SCHEMA DESIGN NOTES:
- One row per communication; pool_id groups rows created together for a
  multi-student incident (display only).
- timestamp_ms is the incident time supplied by the teacher, created_at_ms is
  when the row was written. Policies only ever filter on timestamp_ms.
- All timestamps stored as INTEGER milliseconds (Unix epoch * 1000).
- The report engine never updates or deletes rows.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from commbook.errors import StoreError
from commbook.models.record import CommunicationRecord

logger = logging.getLogger(__name__)


def to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        raise ValueError(f"naive datetime not allowed: {dt!r}")
    return int(dt.timestamp() * 1000)


def from_ms(ms: int, tz=timezone.utc) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=tz)


class CommunicationStore:
    """
    Usage:
        store = CommunicationStore(Path("commbook.db"))
        store.add(student_enrolment="E001", subject_code="MAT1", ...)
        records = store.query(from_=week_start)
    """

    def __init__(self, db_path: Path = Path("commbook.db"), tz=timezone.utc):
        self.db_path = Path(db_path)
        self.tz = tz
        self._ensure_schema()

    # ── INTERNAL ──────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS communications (
                        id                INTEGER PRIMARY KEY AUTOINCREMENT,
                        student_enrolment TEXT    NOT NULL,
                        subject_code      TEXT    NOT NULL,
                        teacher_email     TEXT    NOT NULL,
                        message           TEXT    NOT NULL,
                        comment           TEXT    NOT NULL DEFAULT '',
                        action_taken      TEXT,
                        timestamp_ms      INTEGER NOT NULL,
                        created_at_ms     INTEGER NOT NULL,
                        pool_id           TEXT
                    );
                    CREATE INDEX IF NOT EXISTS idx_comm_ts      ON communications(timestamp_ms);
                    CREATE INDEX IF NOT EXISTS idx_comm_student ON communications(student_enrolment);
                """)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot initialise communications schema at {self.db_path}: {e}") from e

    def _row_to_record(self, row: sqlite3.Row) -> CommunicationRecord:
        return CommunicationRecord(
            id                = row["id"],
            student_enrolment = row["student_enrolment"],
            subject_code      = row["subject_code"],
            teacher_email     = row["teacher_email"],
            message           = row["message"],
            comment           = row["comment"] or '',
            action_taken      = row["action_taken"],
            timestamp         = from_ms(row["timestamp_ms"], self.tz),
            pool_id           = row["pool_id"],
        )

    # ── WRITE ─────────────────────────────────────────────────────────────

    def add(
        self,
        student_enrolment: str,
        subject_code:      str,
        teacher_email:     str,
        message:           str,
        timestamp:         datetime,
        comment:           str = '',
        action_taken:      Optional[str] = None,
        pool_id:           Optional[str] = None,
    ) -> CommunicationRecord:
        """Insert one communication and return it with its assigned id."""
        ids = self.add_pool(
            [student_enrolment], subject_code, teacher_email, message,
            timestamp, comment, action_taken, pool_id,
        )
        return self.get(ids[0])

    def add_pool(
        self,
        student_enrolments: Iterable[str],
        subject_code:       str,
        teacher_email:      str,
        message:            str,
        timestamp:          datetime,
        comment:            str = '',
        action_taken:       Optional[str] = None,
        pool_id:            Optional[str] = None,
    ) -> List[int]:
        """Insert the same incident for several students. Returns the new ids."""
        ts_ms = to_ms(timestamp)
        now_ms = to_ms(datetime.now(timezone.utc))
        ids: List[int] = []
        try:
            with self._connect() as conn:
                for enrolment in student_enrolments:
                    cur = conn.execute("""
                        INSERT INTO communications
                        (student_enrolment, subject_code, teacher_email, message,
                         comment, action_taken, timestamp_ms, created_at_ms, pool_id)
                        VALUES (?,?,?,?,?,?,?,?,?)
                    """, (enrolment, subject_code, teacher_email, message,
                          comment or '', action_taken, ts_ms, now_ms, pool_id))
                    ids.append(cur.lastrowid)
        except sqlite3.Error as e:
            raise StoreError(f"Communication insert failed: {e}") from e
        logger.debug(f"Wrote {len(ids)} communication rows")
        return ids

    # ── QUERY ─────────────────────────────────────────────────────────────

    def get(self, communication_id: int) -> Optional[CommunicationRecord]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM communications WHERE id = ?", (communication_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Communication lookup failed: {e}") from e
        return self._row_to_record(row) if row else None

    def query(
        self,
        from_: Optional[datetime] = None,
        to:    Optional[datetime] = None,
    ) -> List[CommunicationRecord]:
        """
        Communications with from_ <= timestamp <= to, oldest first.
        Either bound may be None (unbounded).
        """
        sql = "SELECT * FROM communications WHERE 1=1"
        params: list = []
        if from_ is not None:
            sql += " AND timestamp_ms >= ?"
            params.append(to_ms(from_))
        if to is not None:
            sql += " AND timestamp_ms <= ?"
            params.append(to_ms(to))
        sql += " ORDER BY timestamp_ms ASC, id ASC"

        try:
            with self._connect() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Communication query failed: {e}") from e
        return [self._row_to_record(r) for r in rows]
