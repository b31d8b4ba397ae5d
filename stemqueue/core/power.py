"""
Keep the machine awake while a job runs.

macOS uses ``caffeinate``, Linux ``systemd-inhibit``, Windows
``SetThreadExecutionState``.  Failing to block or unblock sleep is
logged and otherwise ignored.
"""

import os
import sys
import shutil
import logging
import subprocess
from typing import Optional

from stemqueue.core.constants import APP_NAME

logger = logging.getLogger(__name__)

_ES_CONTINUOUS = 0x80000000
_ES_SYSTEM_REQUIRED = 0x00000001

# A helper that is refused (e.g. by polkit) exits within this window
_HELPER_STARTUP_GRACE_SEC = 0.2


class PowerInhibitor:
    """Scoped sleep blocker: ``with PowerInhibitor(): ...``"""

    def __init__(self, reason: str = "Separating stems", platform: str | None = None):
        self.reason = reason
        self.platform = platform or sys.platform
        self._helper: Optional[subprocess.Popen] = None
        self._win_blocked = False

    @property
    def active(self) -> bool:
        return self._helper is not None or self._win_blocked

    def _helper_args(self) -> Optional[list[str]]:
        if self.platform == "darwin":
            if shutil.which("caffeinate"):
                return ["caffeinate", "-i", "-w", str(os.getpid())]
        elif self.platform.startswith("linux"):
            if shutil.which("systemd-inhibit"):
                return [
                    "systemd-inhibit",
                    "--what=idle:sleep",
                    f"--who={APP_NAME}",
                    f"--why={self.reason}",
                    "--mode=block",
                    "sleep", "infinity",
                ]
        return None

    def acquire(self) -> bool:
        if self.active:
            return True
        try:
            if self.platform == "win32":
                import ctypes
                result = ctypes.windll.kernel32.SetThreadExecutionState(
                    _ES_CONTINUOUS | _ES_SYSTEM_REQUIRED)
                if not result:
                    raise OSError("SetThreadExecutionState failed")
                self._win_blocked = True
            else:
                args = self._helper_args()
                if args is None:
                    logger.info("No power-save blocker available on %s", self.platform)
                    return False
                self._helper = subprocess.Popen(
                    args, stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                )
                try:
                    code = self._helper.wait(timeout=_HELPER_STARTUP_GRACE_SEC)
                except subprocess.TimeoutExpired:
                    code = None
                if code is not None:
                    logger.warning("Power-save helper %s exited immediately with code %s",
                                   args[0], code)
                    self._helper = None
                    return False
        except Exception as e:
            logger.warning("Failed to block power-save: %s", e, exc_info=True)
            self._helper = None
            self._win_blocked = False
            return False

        logger.info("Successfully blocked power-save")
        return True

    def release(self):
        if not self.active:
            return
        try:
            if self._win_blocked:
                import ctypes
                ctypes.windll.kernel32.SetThreadExecutionState(_ES_CONTINUOUS)
            if self._helper is not None:
                self._helper.terminate()
                self._helper.wait(timeout=5)
            logger.info("Successfully unblocked power-save")
        except Exception as e:
            logger.error("Failed to unblock power-save: %s", e, exc_info=True)
        finally:
            self._helper = None
            self._win_blocked = False

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
