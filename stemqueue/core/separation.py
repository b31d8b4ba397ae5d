"""
Argument building and output discovery for demucs and the ffmpeg mixdown.
"""

import os
import logging
from pathlib import Path
from typing import Optional

import psutil

from stemqueue.core.constants import (
    ErrorCode, ComputeBackend,
    DEMUCS_MODEL_NAME, DEMUCS_OUTPUT_DIR, STEM_NAMES, STEM_EXT,
    INSTRUMENTAL_STEMS, AMIX_FILTER,
    MAX_WORKER_JOBS, BYTES_PER_WORKER,
)
from stemqueue.core.error_codes import JobError

logger = logging.getLogger(__name__)


def get_job_count(free_bytes: int | None = None, cpu_count: int | None = None) -> int:
    """Demucs worker count: bounded by free memory, CPU cores and MAX_WORKER_JOBS, never below 1."""
    if free_bytes is None:
        free_bytes = psutil.virtual_memory().available
    if cpu_count is None:
        cpu_count = os.cpu_count() or 1
    by_memory = free_bytes // BYTES_PER_WORKER
    return int(max(1, min(cpu_count, by_memory, MAX_WORKER_JOBS)))


def build_demucs_args(media_path: Path, job_count: int,
                      backend: str = ComputeBackend.AUTO,
                      models_dir: Optional[Path] = None) -> list[str]:
    args = [str(media_path), '-n', DEMUCS_MODEL_NAME, '-j', str(job_count)]
    if backend == ComputeBackend.CPU:
        logger.info('Running with "-d cpu" to force CPU instead of CUDA')
        args.extend(['-d', 'cpu'])
    if models_dir:
        args.extend(['--repo', str(models_dir)])
    return args


def find_demucs_output_dir(workspace: Path) -> Path:
    """Locate the per-track folder demucs wrote under separated/<model>/."""
    base = workspace / DEMUCS_OUTPUT_DIR / DEMUCS_MODEL_NAME
    if base.is_dir():
        for entry in sorted(base.iterdir()):
            if entry.is_dir():
                return entry
    raise JobError(ErrorCode.MISSING_OUTPUT, "Unable to find Demucs output directory")


def stem_paths(stem_dir: Path) -> dict[str, Path]:
    return {name: stem_dir / f"{name}{STEM_EXT}" for name in STEM_NAMES}


def verify_stems(paths: dict[str, Path]):
    """Raise if any stem is missing. Demucs can exit cleanly without writing them."""
    missing = [name for name, p in paths.items() if not p.is_file()]
    if missing:
        for name in missing:
            logger.error('File "%s" does not exist', paths[name])
        raise JobError(ErrorCode.MISSING_OUTPUT,
                       f"Unable to access output stems ({', '.join(missing)}) - Demucs probably failed")


def build_mix_args(stems: dict[str, Path], destination: Path) -> list[str]:
    """ffmpeg arguments mixing the non-vocal stems into one instrumental track."""
    args = []
    for name in INSTRUMENTAL_STEMS:
        args.extend(['-i', str(stems[name])])
    args.extend(['-filter_complex', AMIX_FILTER, str(destination)])
    return args
