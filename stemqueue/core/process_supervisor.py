"""
Supervision of the external tools (demucs, ffmpeg).
Exactly one child process is alive at a time; cancelling kills its whole tree.
"""

import logging
import subprocess
import threading
from pathlib import Path
from typing import IO, Optional

import psutil

from stemqueue.core.cancellable import CancellableOperation
from stemqueue.core.constants import ErrorCode
from stemqueue.core.error_codes import JobError, OperationCancelled, ProcessSignalled
from stemqueue.core.tool_paths import build_child_env, get_third_party_apps_dir

logger = logging.getLogger(__name__)


def kill_process_tree(pid: int):
    """Kill a process and all of its descendants."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    try:
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []

    for proc in children + [parent]:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logger.warning("Access denied killing pid %s: %s", proc.pid, e)


def _pump_output(stream: IO[bytes], label: str, command: str):
    """Forward child output to the log, line by line."""
    try:
        for raw in iter(stream.readline, b''):
            line = raw.decode('utf-8', errors='replace').rstrip()
            if line:
                logger.info("%s %s: %s", command, label, line)
    except (OSError, ValueError):
        # Pipe closed underneath us when the process was killed
        pass
    finally:
        stream.close()


class ProcessSupervisor(CancellableOperation):
    """Spawns one external tool at a time and waits for it to exit."""

    def __init__(self, env: Optional[dict] = None):
        super().__init__()
        self.env = env if env is not None else build_child_env(get_third_party_apps_dir())
        self._proc: Optional[subprocess.Popen] = None

    @property
    def current_pid(self) -> Optional[int]:
        with self._lock:
            return self._proc.pid if self._proc else None

    def _abort(self):
        if self._proc is not None:
            logger.info("Killing process tree of pid %s", self._proc.pid)
            try:
                kill_process_tree(self._proc.pid)
            except Exception as e:
                logger.error("Tree kill of pid %s failed: %s", self._proc.pid, e)
            self._proc = None

    def run(self, cwd: Path | str, command: str, args: list[str]) -> int:
        """
        Run ``command`` with ``args`` in ``cwd`` and return its exit code.
        Nonzero exit codes are returned, not raised.
        """
        argv = [command] + [str(a) for a in args]

        with self._lock:
            if self._cancelled:
                raise OperationCancelled(f"{command} was cancelled before it started")
            # Any previous child is superseded
            self._abort()
            logger.debug("Running subprocess: %s", ' '.join(argv))
            try:
                proc = subprocess.Popen(
                    argv,
                    cwd=str(cwd),
                    env=self.env,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    shell=False,
                )
            except OSError as e:
                raise JobError(ErrorCode.TOOL_FAILED, f"Unable to start {command}: {e}") from e
            self._proc = proc

        pumps = [
            threading.Thread(target=_pump_output, args=(proc.stdout, "stdout", command), daemon=True),
            threading.Thread(target=_pump_output, args=(proc.stderr, "stderr", command), daemon=True),
        ]
        for t in pumps:
            t.start()

        try:
            code = proc.wait()
        finally:
            for t in pumps:
                t.join(timeout=5)
            with self._lock:
                if self._proc is proc:
                    self._proc = None

        if code < 0:
            raise ProcessSignalled(command, -code)
        if self.cancelled:
            # Windows reports a killed tree as an ordinary exit code
            raise OperationCancelled(f"{command} was cancelled (exit code {code})")
        logger.info("%s exited with code %d", command, code)
        return code
