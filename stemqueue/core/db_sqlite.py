"""
SQLite persistence for job status records.
Thread-safe via check_same_thread=False + explicit locking.
"""

import sqlite3
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from stemqueue.core.constants import DB_PATH
from stemqueue.core.models import StatusRecord

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS job_status (
    identity TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    result_path TEXT,
    updated_at TEXT
);
"""


class Database:
    """SQLite database wrapper for StemQueue."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or DB_PATH
        self._lock = threading.Lock()
        self._ensure_dirs()
        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _ensure_dirs(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _migrate(self):
        cur = self.conn.cursor()
        cur.executescript(_CREATE_TABLES)
        cur.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )
        self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ── Status records ────────────────────────────────────────────────

    def load_statuses(self) -> dict[str, StatusRecord]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT identity, status, result_path FROM job_status"
            ).fetchall()
        return {r["identity"]: StatusRecord(r["status"], r["result_path"]) for r in rows}

    def replace_statuses(self, records: dict[str, StatusRecord]):
        """Atomically replace the whole persisted snapshot."""
        now = self._now()
        with self._lock:
            try:
                self.conn.execute("DELETE FROM job_status")
                self.conn.executemany(
                    "INSERT INTO job_status (identity, status, result_path, updated_at) "
                    "VALUES (?, ?, ?, ?)",
                    [(identity, rec.status, rec.result_path, now)
                     for identity, rec in records.items()],
                )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise
