"""
amtsbote.storage.sqlite
~~~~~~~~~~~~~~~~~~~~~~~
SQLite-backed submission history.

Tables
------
submissions  — one row per document: account, kind, period, lifecycle
               status, authority reference, raw XML payload

Status changes go through ``models.advance``, so a row can never move
backwards (a rejected document stays rejected; resubmit a new draft).

Default path: ``~/.fo/amtsbote.db``
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from ..config import cfg
from ..models import DocumentStatus, advance
from .base import SubmissionRecord

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1


class SQLiteSubmissionRepository:
    """Persistent SQLite storage implementing ``SubmissionRepository``."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self.db_path = Path(db_path) if db_path else cfg.db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> "SQLiteSubmissionRepository":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        with self._lock:
            version = self._conn.execute("PRAGMA user_version").fetchone()[0]
            if version == 0:
                self._create_tables()
                self._conn.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
                self._conn.commit()
            elif version > _SCHEMA_VERSION:
                logger.warning(
                    "%s has schema version %d, newer than supported %d",
                    self.db_path, version, _SCHEMA_VERSION,
                )

    def _create_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS submissions (
                id          TEXT PRIMARY KEY,
                account     TEXT NOT NULL,
                kind        TEXT NOT NULL,
                period      TEXT NOT NULL DEFAULT '',
                status      TEXT NOT NULL DEFAULT 'draft',
                reference   TEXT NOT NULL DEFAULT '',
                payload     BLOB,
                created_at  TEXT NOT NULL,
                updated_at  TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_sub_account ON submissions (account);
            CREATE INDEX IF NOT EXISTS idx_sub_kind    ON submissions (kind);
            CREATE INDEX IF NOT EXISTS idx_sub_status  ON submissions (status);
        """)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _exec(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cur = self._conn.execute(sql, params)
            self._conn.commit()
            return cur

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> SubmissionRecord:
        return SubmissionRecord(
            id=row["id"],
            account=row["account"],
            kind=row["kind"],
            period=row["period"],
            status=DocumentStatus(row["status"]),
            reference=row["reference"],
            payload=bytes(row["payload"] or b""),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, record: SubmissionRecord) -> bool:
        if self.exists(record.id):
            return False
        self._exec(
            """INSERT INTO submissions
               (id, account, kind, period, status, reference, payload, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?,?)""",
            (
                record.id, record.account, record.kind, record.period,
                str(record.status), record.reference, record.payload,
                record.created_at.isoformat(), record.updated_at.isoformat(),
            ),
        )
        return True

    def update_status(
        self,
        record_id: str,
        status:    DocumentStatus | str,
        reference: str | None = None,
    ) -> SubmissionRecord:
        record = self.get(record_id)
        if record is None:
            raise KeyError(record_id)
        record.status = advance(record.status, status)
        if reference is not None:
            record.reference = reference
        record.updated_at = self._now()
        self._exec(
            "UPDATE submissions SET status = ?, reference = ?, updated_at = ? WHERE id = ?",
            (str(record.status), record.reference, record.updated_at.isoformat(), record_id),
        )
        logger.debug("Submission %s → %s", record_id, record.status)
        return record

    def delete(self, record_id: str) -> bool:
        cur = self._exec("DELETE FROM submissions WHERE id = ?", (record_id,))
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def exists(self, record_id: str) -> bool:
        with self._lock:
            row = self._conn.execute("SELECT 1 FROM submissions WHERE id = ?", (record_id,)).fetchone()
        return row is not None

    def get(self, record_id: str) -> SubmissionRecord | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM submissions WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def list_all(self) -> Iterable[SubmissionRecord]:
        return self.find()

    def find(
        self,
        *,
        account: str | None = None,
        kind:    str | None = None,
        status:  str | None = None,
    ) -> list[SubmissionRecord]:
        clauses, params = [], []
        for col, value in (("account", account), ("kind", kind), ("status", status)):
            if value is not None:
                clauses.append(f"{col} = ?")
                params.append(str(value))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM submissions {where} ORDER BY created_at DESC", tuple(params),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]


__all__ = ["SQLiteSubmissionRepository"]
