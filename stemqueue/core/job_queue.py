"""
Job Queue Manager and Worker.
Processes one job at a time: the head of the caller-ordered queue.
"""

import queue
import logging
import threading
from typing import Optional

from stemqueue.core.constants import JobStatus, ACTIVE_STATUSES, TERMINAL_STATUSES
from stemqueue.core.job_runner import JobRunner
from stemqueue.core.models import Job
from stemqueue.core.status_store import StatusStore

logger = logging.getLogger(__name__)

_SHUTDOWN = object()


class QueueManager:
    """
    Owns the ordered job list and keeps exactly one pipeline running for
    its head.

    ``submit()`` only mutates state and posts to the scheduler mailbox;
    the pipeline always starts on the worker thread, never inside the
    caller's stack.  Each mailbox entry carries the generation of the
    head change that produced it, so a head that was replaced before
    its turn is skipped.
    """

    def __init__(self, store: StatusStore, runner: JobRunner):
        self.store = store
        self.runner = runner
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._items: list[Job] = []
        self._generation = 0
        self._outstanding = 0
        self._active: Optional[Job] = None
        self._mailbox: queue.Queue = queue.Queue()
        self._worker_thread: Optional[threading.Thread] = None

    # ── Queue state ───────────────────────────────────────────────────

    @property
    def items(self) -> list[Job]:
        with self._lock:
            return list(self._items)

    @property
    def head(self) -> Optional[Job]:
        with self._lock:
            return self._items[0] if self._items else None

    @property
    def active_job(self) -> Optional[Job]:
        with self._lock:
            return self._active

    def is_busy(self) -> bool:
        """True while any queued job is downloading or processing."""
        with self._lock:
            return any(self.store.get_status(j.identity) in ACTIVE_STATUSES
                       for j in self._items)

    def submit(self, jobs: list[Job]) -> list[Job]:
        """
        Replace the queue with ``jobs`` (caller order). Returns the accepted queue.

        Unknown jobs are registered as queued; jobs already done or failed
        are dropped. If the head changes, the running pipeline is
        cancelled and the new head is scheduled.
        """
        with self._lock:
            accepted = []
            seen = set()
            for job in jobs:
                if job.identity in seen:
                    continue
                seen.add(job.identity)

                status = self.store.get_status(job.identity)
                if status is None:
                    status = JobStatus.QUEUED
                    self.store.set_status(job.identity, status, None)
                if status not in TERMINAL_STATUSES:
                    accepted.append(job)

            old_head = self._items[0].identity if self._items else None
            new_head = accepted[0].identity if accepted else None
            self._items = accepted

            if old_head != new_head:
                logger.info("Queue head changed: %s -> %s", old_head, new_head)
                self._generation += 1
                self.runner.cancel()
                if accepted:
                    self._outstanding += 1
                    self._mailbox.put((self._generation, accepted[0]))
                else:
                    self._idle.notify_all()

            return list(accepted)

    def clear_status(self, identity: str):
        """Forget a job's status, e.g. so a failed job can be submitted again."""
        with self._lock:
            self.store.clear(identity)

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self):
        """Start the worker thread."""
        if self._worker_thread and self._worker_thread.is_alive():
            return
        with self._lock:
            # A head left behind by stop() is scheduled again
            if self._items:
                self._generation += 1
                self._outstanding += 1
                self._mailbox.put((self._generation, self._items[0]))
        self._worker_thread = threading.Thread(
            target=self._worker_loop, name="stemqueue-worker", daemon=True)
        self._worker_thread.start()

    def stop(self, timeout: float | None = None):
        """Cancel the running job and stop the worker thread."""
        with self._lock:
            self._generation += 1
            self.runner.cancel()
        if self._worker_thread:
            self._mailbox.put(_SHUTDOWN)
            self._worker_thread.join(timeout)
            if self._worker_thread.is_alive():
                logger.warning("Worker thread did not stop within %s seconds", timeout)
            else:
                self._worker_thread = None

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until no pipeline is running or scheduled. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._outstanding == 0, timeout)

    # ── Worker loop ───────────────────────────────────────────────────

    def _worker_loop(self):
        """Main worker loop: drains the mailbox, one pipeline at a time."""
        while True:
            entry = self._mailbox.get()
            if entry is _SHUTDOWN:
                break
            generation, job = entry
            try:
                self._dispatch(generation, job)
            except Exception as e:
                logger.error("Worker loop error: %s", e, exc_info=True)
            finally:
                with self._lock:
                    self._outstanding -= 1
                    self._idle.notify_all()

        with self._lock:
            # Entries left behind by shutdown will never run
            while True:
                try:
                    leftover = self._mailbox.get_nowait()
                except queue.Empty:
                    break
                if leftover is not _SHUTDOWN:
                    self._outstanding -= 1
            self._idle.notify_all()

    def _dispatch(self, generation: int, job: Job):
        with self._lock:
            if generation != self._generation:
                logger.debug("Skipping superseded start of %s", job.identity)
                return
            self.runner.reset()
            self._active = job

        try:
            self.runner.run(job)
        finally:
            with self._lock:
                self._active = None
                # Re-filter: drops the finished job and schedules the next head
                self.submit(self._items)
