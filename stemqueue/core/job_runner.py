"""
Pipeline for a single job: fetch → separate → verify stems → mix + publish.
"""

import time
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from stemqueue.core.config import AppConfig
from stemqueue.core.constants import (
    JobStatus, MediaSource, ErrorCode,
    DEMUCS_MODEL_NAME, DOWNLOAD_FILENAME, INSTRUMENTAL_NAME, STEM_EXT,
)
from stemqueue.core.error_codes import JobError, OperationCancelled, is_cancellation
from stemqueue.core.models import Job
from stemqueue.core.output_writer import publish_stems
from stemqueue.core.power import PowerInhibitor
from stemqueue.core.process_supervisor import ProcessSupervisor
from stemqueue.core.separation import (
    get_job_count, build_demucs_args, find_demucs_output_dir,
    stem_paths, verify_stems, build_mix_args,
)
from stemqueue.core.status_store import StatusStore
from stemqueue.core.streaming_fetch import StreamingFetcher
from stemqueue.core.tool_paths import (
    get_third_party_apps_dir, get_models_dir, demucs_exe_name, ffmpeg_exe_name,
)
from stemqueue.core.workspace import ResourceJanitor

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Drives one job at a time through the pipeline.

    ``cancel()`` may be called from any thread; it aborts whichever
    operation is live (download or tool run) and makes later stages
    refuse to start until ``reset()``.
    """

    def __init__(self, store: StatusStore, config: AppConfig,
                 janitor: Optional[ResourceJanitor] = None,
                 supervisor: Optional[ProcessSupervisor] = None,
                 fetcher: Optional[StreamingFetcher] = None,
                 inhibitor_factory: Callable[[], PowerInhibitor] = PowerInhibitor,
                 models_dir: Optional[Path] = None,
                 demucs_exe: Optional[str] = None,
                 job_count: Callable[[], int] = get_job_count):
        self.store = store
        self.config = config
        self.janitor = janitor or ResourceJanitor()
        self.supervisor = supervisor or ProcessSupervisor()
        self.fetcher = fetcher or StreamingFetcher()
        self.inhibitor_factory = inhibitor_factory
        self.models_dir = models_dir if models_dir is not None else get_models_dir()
        self.demucs_exe = demucs_exe or demucs_exe_name(get_third_party_apps_dir())
        self.job_count = job_count
        self._cancel_event = threading.Event()

    # ── Cancellation ──────────────────────────────────────────────────

    @property
    def _operations(self):
        return (self.fetcher, self.supervisor)

    def cancel(self):
        self._cancel_event.set()
        for op in self._operations:
            op.cancel()

    def reset(self):
        self._cancel_event.clear()
        for op in self._operations:
            op.reset()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _check_cancelled(self):
        if self._cancel_event.is_set():
            raise OperationCancelled("Job was interrupted")

    # ── Entry point ───────────────────────────────────────────────────

    def run(self, job: Job):
        """Run the whole pipeline. Never raises; the outcome is recorded in the store."""
        with self.inhibitor_factory():
            try:
                workspace = self.janitor.acquire_workspace()
            except OSError as e:
                logger.error("Cannot create workspace for %s: %s", job.identity, e)
                self._record_failure(job, JobError(ErrorCode.FILESYSTEM, str(e)))
                return

            try:
                self._run_pipeline(job, workspace)
            except Exception as e:
                self._record_failure(job, e)
            finally:
                self.janitor.release(workspace)

    def _record_failure(self, job: Job, error: Exception):
        if is_cancellation(error) or self.cancelled:
            logger.info("Job %s stopped: %s", job.identity, error)
        else:
            logger.error("Job %s failed: %s", job.identity, error, exc_info=True)

        status = self.store.get_status(job.identity)
        try:
            if status is None:
                logger.info("Task %s was canceled by user.", job.identity)
            elif self.cancelled:
                # Superseded at the head of the queue; it runs again when it is head
                self.store.set_status(job.identity, JobStatus.QUEUED, None)
            else:
                self.store.set_status(job.identity, JobStatus.ERROR, None)
        except sqlite3.Error as e:
            logger.error("Could not record outcome of %s: %s", job.identity, e, exc_info=True)

    # ── Pipeline ──────────────────────────────────────────────────────

    def _run_pipeline(self, job: Job, workspace: Path):
        begin = time.monotonic()
        logger.info('BEGIN downloading/processing "%s" - "%s"', job.identity, job.title)
        self._check_cancelled()
        self.store.set_status(job.identity, JobStatus.DOWNLOADING, None)

        media_path = self._fetch(job, workspace)

        self._check_cancelled()
        self.store.set_status(job.identity, JobStatus.PROCESSING, None)
        stems = self._separate(job, media_path, workspace)

        self._check_cancelled()
        instrumental = self._mix(stems, workspace)

        self._check_cancelled()
        folder = publish_stems(stems, instrumental, self.config.output_root,
                               job.title, job.identity)

        elapsed = time.monotonic() - begin
        logger.info('DONE processing "%s" - "%s" (finished in %d seconds)',
                    job.identity, job.title, round(elapsed))
        self.store.set_status(job.identity, JobStatus.DONE, str(folder))

    def _fetch(self, job: Job, workspace: Path) -> Path:
        if job.media_source == MediaSource.REMOTE:
            download_path = workspace / DOWNLOAD_FILENAME
            logger.info('Downloading "%s"; storing in "%s"', job.identity, download_path)
            return self.fetcher.fetch(job.identity, download_path)

        if job.media_source == MediaSource.LOCAL:
            if not job.local_path:
                raise JobError(ErrorCode.INVALID_SOURCE, f"Local job {job.identity} has no input path")
            path = Path(job.local_path)
            if not path.is_file():
                raise JobError(ErrorCode.INVALID_SOURCE, f"Input file not found: {path}")
            return path

        raise JobError(ErrorCode.INVALID_SOURCE, f"Invalid media source: {job.media_source}")

    def _separate(self, job: Job, media_path: Path, workspace: Path) -> dict[str, Path]:
        count = self.job_count()
        logger.info('Splitting "%s"; %d jobs using model "%s"...',
                    job.identity, count, DEMUCS_MODEL_NAME)
        args = build_demucs_args(media_path, count, self.config.pytorch_backend, self.models_dir)
        code = self.supervisor.run(workspace, self.demucs_exe, args)
        if code != 0:
            raise JobError(ErrorCode.TOOL_FAILED, f"Demucs exited with code {code}")

        stems = stem_paths(find_demucs_output_dir(workspace))
        verify_stems(stems)
        return stems

    def _mix(self, stems: dict[str, Path], workspace: Path) -> Path:
        instrumental = workspace / f"{INSTRUMENTAL_NAME}{STEM_EXT}"
        logger.info('Mixing down instrumental stems to "%s"', instrumental)
        code = self.supervisor.run(workspace, ffmpeg_exe_name(), build_mix_args(stems, instrumental))
        if code != 0:
            raise JobError(ErrorCode.TOOL_FAILED, f"ffmpeg exited with code {code}")
        if not instrumental.is_file():
            raise JobError(ErrorCode.MISSING_OUTPUT,
                           f'Unable to access instrumental file "{instrumental}" - ffmpeg probably failed')
        return instrumental
