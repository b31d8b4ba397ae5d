"""
Common cancel handle for the long-running pipeline operations
(streaming download and external tool runs).
"""

import threading


class CancellableOperation:
    """
    Base class for an operation with a single live handle that another
    thread may abort.  Subclasses hold their handle under ``self._lock``
    and implement ``_abort()``; ``cancel()`` latches until ``reset()``, so
    an operation started after a cancel refuses to run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def cancel(self):
        with self._lock:
            self._cancelled = True
            self._abort()

    def reset(self):
        with self._lock:
            self._cancelled = False

    def _abort(self):
        """Abort the live handle. Called with ``self._lock`` held."""
        raise NotImplementedError
