"""
YouTube metadata fetching via yt-dlp.
"""

import logging

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

from stemqueue.core.streaming_fetch import build_video_url

logger = logging.getLogger(__name__)


def fetch_metadata(video_id: str) -> dict:
    """Return yt-dlp's info dict for a video without downloading it."""
    opts = {
        "skip_download": True,
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
    }
    with YoutubeDL(opts) as ydl:
        return ydl.extract_info(build_video_url(video_id), download=False) or {}


def fetch_title(video_id: str) -> str:
    """Video title, or the video id when it cannot be looked up."""
    try:
        title = fetch_metadata(video_id).get('title')
    except DownloadError as e:
        logger.warning("Could not fetch title of %s: %s", video_id, e)
        return video_id
    return title or video_id
