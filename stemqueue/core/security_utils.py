"""
Security utilities for StemQueue.
- Path traversal protection
- Filename sanitization
- Safe subprocess execution (argument arrays only)
"""

import re
import subprocess
import pathlib
import logging

from stemqueue.core.constants import UNSAFE_FILENAME_CHARS, MAX_FOLDER_NAME_LEN

logger = logging.getLogger(__name__)


# ── Filename / path safety ────────────────────────────────────────────

def sanitize_title(title: str, max_len: int = MAX_FOLDER_NAME_LEN) -> str:
    """Sanitize a title for use as (part of) a folder name."""
    if not title:
        return ""
    # Replace unsafe characters with underscore
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', title)
    # Remove path traversal sequences
    safe = safe.replace('..', '')
    # Collapse multiple underscores/spaces
    safe = re.sub(r'[_\s]+', ' ', safe).strip()
    # Truncate
    if len(safe) > max_len:
        safe = safe[:max_len].rstrip()
    # Remove leading/trailing dots (hidden files, Windows trailing dots)
    safe = safe.strip('.').strip()
    return safe


def output_folder_name(title: str, identity: str) -> str:
    """
    ``<sanitized title>-<identity>``.  The title is truncated first so
    the identity suffix always survives and keeps folders distinct.
    """
    safe_id = sanitize_title(identity).replace(' ', '_') or "job"
    budget = max(1, MAX_FOLDER_NAME_LEN - len(safe_id) - 1)
    safe_title = sanitize_title(title, max_len=budget)
    if not safe_title:
        return f"job-{safe_id}"
    return f"{safe_title}-{safe_id}"


def safe_output_path(output_root: pathlib.Path, title: str, identity: str) -> pathlib.Path:
    """
    Build a safe output folder path.  Enforces that realpath(result) stays
    inside realpath(output_root).  Falls back to 'job-<identity>'.
    """
    candidate = output_root / output_folder_name(title, identity)
    try:
        real_root = output_root.resolve(strict=False)
        real_candidate = candidate.resolve(strict=False)
        if real_root not in real_candidate.parents:
            raise ValueError("Path traversal detected")
    except (OSError, ValueError) as e:
        logger.warning("Unsafe output folder for %s (%s), using fallback", identity, e)
        candidate = output_root / f"job-{re.sub(r'[^A-Za-z0-9_-]', '_', identity)}"

    return candidate


# ── Subprocess safety ─────────────────────────────────────────────────

def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.
    """
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")

    # Force shell=False — remove any caller-supplied value, then set it once
    kwargs.pop('shell', None)

    logger.debug("Running subprocess: %s", ' '.join(str(a) for a in args))
    return subprocess.run(args, shell=False, **kwargs)


def run_subprocess_capture(args: list[str], timeout: int = 300, **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr."""
    return run_subprocess(
        args,
        capture_output=True,
        text=True,
        timeout=timeout,
        **kwargs,
    )
