"""
Standardised error handling for StemQueue.
"""

from stemqueue.core.constants import ErrorCode


class JobError(Exception):
    """Raised when a job encounters a known error condition."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class OperationCancelled(JobError):
    """A fetch or tool run was aborted through its cancel handle."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(ErrorCode.CANCELLED, message)


class ProcessSignalled(JobError):
    """A supervised process was terminated by a signal."""

    def __init__(self, command: str, signal_number: int):
        self.signal_number = signal_number
        super().__init__(ErrorCode.TOOL_KILLED,
                         f"{command} exited due to signal: {signal_number}")


def is_cancellation(error: BaseException) -> bool:
    return isinstance(error, JobError) and error.code in (ErrorCode.CANCELLED, ErrorCode.TOOL_KILLED)
