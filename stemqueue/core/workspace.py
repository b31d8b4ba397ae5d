"""
Per-job temporary workspaces: creation, guaranteed removal, and the
startup sweep of workspaces left behind by a crashed run.
"""

import os
import shutil
import tempfile
import time
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from stemqueue.core.constants import (
    TMP_PREFIX, WORKSPACE_REMOVE_ATTEMPTS, WORKSPACE_REMOVE_DELAY_SEC,
)

logger = logging.getLogger(__name__)


class ResourceJanitor:
    """Owns the lifecycle of ``<tmp>/StemQueue-*`` workspaces."""

    def __init__(self, temp_root: Path | None = None, prefix: str = TMP_PREFIX,
                 attempts: int = WORKSPACE_REMOVE_ATTEMPTS,
                 retry_delay: float = WORKSPACE_REMOVE_DELAY_SEC):
        self.temp_root = Path(temp_root or tempfile.gettempdir())
        self.prefix = prefix
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay

    def acquire_workspace(self) -> Path:
        path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=str(self.temp_root)))
        logger.debug("Created workspace: %s", path)
        return path

    def _remove(self, path: Path):
        """Remove a file or tree, retrying transient failures. Raises the last error."""
        for attempt in range(1, self.attempts + 1):
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
                return
            except FileNotFoundError:
                return
            except OSError as e:
                if attempt == self.attempts:
                    raise
                logger.debug("Removing %s failed (attempt %d/%d): %s",
                             path, attempt, self.attempts, e)
                time.sleep(self.retry_delay)

    def release(self, path: Path) -> bool:
        """Delete a workspace. Never raises; returns False if it could not be removed."""
        try:
            self._remove(Path(path))
        except OSError as e:
            logger.error("Failed to delete workspace %s: %s", path, e)
            return False
        logger.debug("Deleted workspace: %s", path)
        return True

    @contextmanager
    def workspace(self) -> Iterator[Path]:
        path = self.acquire_workspace()
        try:
            yield path
        finally:
            self.release(path)

    def sweep_orphans(self) -> int:
        """Remove every leftover workspace under the temp root. Run once at startup."""
        removed = 0
        try:
            names = os.listdir(self.temp_root)
        except OSError as e:
            logger.warning("Cannot scan temp root %s: %s", self.temp_root, e)
            return 0

        for name in names:
            if not name.startswith(self.prefix):
                continue
            item = self.temp_root / name
            try:
                self._remove(item)
            except OSError as e:
                logger.warning("Failed to delete temporary folder %s: %s", item, e)
                continue
            logger.info("Deleted temporary folder %s", item)
            removed += 1
        return removed
