"""
Cancellable download of a remote video's audio stream.

yt-dlp resolves the direct media URL; the bytes are streamed with
requests so the transfer can be aborted by closing the response.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

import requests
from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

from stemqueue.core.cancellable import CancellableOperation
from stemqueue.core.constants import (
    ErrorCode, YTDL_FORMAT, DOWNLOAD_CHUNK_BYTES,
    HTTP_CONNECT_TIMEOUT_SEC, HTTP_READ_TIMEOUT_SEC,
)
from stemqueue.core.error_codes import JobError, OperationCancelled

logger = logging.getLogger(__name__)

# (direct url, request headers)
StreamInfo = tuple[str, dict]


def build_video_url(video_id: str) -> str:
    if video_id.startswith("http://") or video_id.startswith("https://"):
        return video_id
    return f"https://www.youtube.com/watch?v={video_id}"


def resolve_audio_stream(video_id: str) -> StreamInfo:
    """Ask yt-dlp for the direct URL of the best audio stream."""
    opts = {
        "format": YTDL_FORMAT,
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
    }
    try:
        with YoutubeDL(opts) as ydl:
            info = ydl.extract_info(build_video_url(video_id), download=False)
    except DownloadError as e:
        raise JobError(ErrorCode.DOWNLOAD_FAILED, f"Unable to resolve stream for {video_id}: {e}") from e

    url = info.get("url")
    if not url and info.get("requested_formats"):
        url = info["requested_formats"][0].get("url")
    if not url:
        raise JobError(ErrorCode.DOWNLOAD_FAILED, f"No audio stream available for {video_id}")
    return url, dict(info.get("http_headers") or {})


class StreamingFetcher(CancellableOperation):
    """Streams one remote source to disk at a time."""

    def __init__(self, session: Optional[requests.Session] = None,
                 resolver: Callable[[str], StreamInfo] = resolve_audio_stream,
                 chunk_size: int = DOWNLOAD_CHUNK_BYTES):
        super().__init__()
        self.session = session or requests.Session()
        self.resolver = resolver
        self.chunk_size = chunk_size
        self._response: Optional[requests.Response] = None

    def _abort(self):
        if self._response is not None:
            logger.info("Aborting download stream")
            self._response.close()
            self._response = None

    def _check_cancelled(self, source_id: str):
        if self.cancelled:
            raise OperationCancelled(f"Download of {source_id} was cancelled")

    def fetch(self, source_id: str, destination: Path) -> Path:
        """Download ``source_id`` to ``destination``. Returns the destination path."""
        self._check_cancelled(source_id)
        url, headers = self.resolver(source_id)
        self._check_cancelled(source_id)

        try:
            response = self.session.get(
                url, headers=headers, stream=True,
                timeout=(HTTP_CONNECT_TIMEOUT_SEC, HTTP_READ_TIMEOUT_SEC),
            )
        except requests.RequestException as e:
            raise JobError(ErrorCode.DOWNLOAD_FAILED, f"Download of {source_id} failed: {e}") from e

        with self._lock:
            if self._cancelled:
                response.close()
                raise OperationCancelled(f"Download of {source_id} was cancelled")
            # Only one transfer may be in flight
            self._abort()
            self._response = response

        total = 0
        try:
            response.raise_for_status()
            with open(destination, 'wb') as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    self._check_cancelled(source_id)
                    if chunk:
                        f.write(chunk)
                        total += len(chunk)
        except OperationCancelled:
            raise
        except Exception as e:
            # Closing the response from another thread surfaces as an arbitrary read error
            if self.cancelled:
                raise OperationCancelled(f"Download of {source_id} was cancelled") from e
            if isinstance(e, (requests.RequestException, OSError)):
                raise JobError(ErrorCode.DOWNLOAD_FAILED, f"Download of {source_id} failed: {e}") from e
            raise
        finally:
            with self._lock:
                if self._response is response:
                    self._response = None
            response.close()

        self._check_cancelled(source_id)
        logger.info("Downloaded %d bytes for %s to %s", total, source_id, destination)
        return destination
