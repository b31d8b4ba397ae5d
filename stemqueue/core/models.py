"""
Data models (plain dataclasses) for StemQueue.
"""

from dataclasses import dataclass
from typing import Optional

from stemqueue.core.constants import MediaSource


@dataclass(frozen=True)
class Job:
    identity: str                    # video id or local-file digest
    title: str
    media_source: str = MediaSource.REMOTE
    local_path: Optional[str] = None


@dataclass
class StatusRecord:
    status: Optional[str]
    result_path: Optional[str] = None


@dataclass(frozen=True)
class StatusEvent:
    """Payload emitted on every status change; all fields after identity are None on deletion."""
    identity: str
    status: Optional[str]
    result_path: Optional[str] = None
