"""
Status store: in-memory job status map with a durable done-only snapshot.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from stemqueue.core.config import AppConfig
from stemqueue.core.constants import JobStatus, DONATE_THRESHOLD
from stemqueue.core.db_sqlite import Database
from stemqueue.core.events import EventChannel
from stemqueue.core.models import StatusRecord, StatusEvent

logger = logging.getLogger(__name__)


class StatusStore:
    """
    Maps job identity to {status, result_path}.

    Every mutation persists only the ``done`` entries, then notifies
    ``status_changed`` subscribers with a ``StatusEvent``.  In-progress
    and error entries live only for the current process.  Once the
    persisted done count reaches ``DONATE_THRESHOLD``, ``donate_suggested``
    fires a single ``True`` unless the user opted out.
    """

    def __init__(self, db: Database, config: AppConfig):
        self.db = db
        self.config = config
        self._records: dict[str, StatusRecord] = {}
        self._lock = threading.RLock()
        self._donate_signalled = False
        self.status_changed = EventChannel("status_changed")
        self.donate_suggested = EventChannel("donate_suggested")

    def load(self):
        """Load persisted records, dropping those whose output no longer exists."""
        loaded = self.db.load_statuses()
        kept = {}
        for identity, rec in loaded.items():
            if rec.result_path and Path(rec.result_path).exists():
                kept[identity] = rec
            else:
                logger.info("Pruning status of %s: %s is gone", identity, rec.result_path)
        with self._lock:
            self._records = kept
            self.db.replace_statuses(kept)
        logger.info("Loaded %d finished job(s)", len(kept))

    # ── Queries ───────────────────────────────────────────────────────

    def get_status(self, identity: str) -> Optional[str]:
        with self._lock:
            rec = self._records.get(identity)
            return rec.status if rec else None

    def get_result_path(self, identity: str) -> Optional[str]:
        with self._lock:
            rec = self._records.get(identity)
            return rec.result_path if rec else None

    def snapshot(self) -> dict[str, StatusRecord]:
        with self._lock:
            return {k: StatusRecord(v.status, v.result_path) for k, v in self._records.items()}

    def done_count(self) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if r.status == JobStatus.DONE)

    # ── Mutations ─────────────────────────────────────────────────────

    def set_status(self, identity: str, status: str, result_path: str | None = None):
        with self._lock:
            self._records[identity] = StatusRecord(status, result_path)
            donate = self._persist()
        logger.debug("Status of %s -> %s", identity, status)
        self.status_changed.emit(StatusEvent(identity, status, result_path))
        if donate:
            self.donate_suggested.emit(True)

    def clear(self, identity: str):
        """Forget a job. Unknown identities are ignored."""
        with self._lock:
            if identity not in self._records:
                return
            del self._records[identity]
            donate = self._persist()
        logger.debug("Status of %s cleared", identity)
        self.status_changed.emit(StatusEvent(identity, None, None))
        if donate:
            self.donate_suggested.emit(True)

    def _persist(self) -> bool:
        """Write the done-only snapshot. Returns True if the donation prompt is due."""
        finished = {k: v for k, v in self._records.items() if v.status == JobStatus.DONE}
        self.db.replace_statuses(finished)

        if (len(finished) >= DONATE_THRESHOLD
                and not self._donate_signalled
                and self.config.can_show_donate_popup):
            self._donate_signalled = True
            return True
        return False
