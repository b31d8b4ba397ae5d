"""
Turn user input (YouTube URLs, local audio files) into queue jobs.
"""

import re
import hashlib
import logging
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse, parse_qs

from stemqueue.core.constants import YOUTUBE_URL_PATTERNS, AUDIO_EXTENSIONS, MediaSource
from stemqueue.core.models import Job

logger = logging.getLogger(__name__)


def extract_video_id(url: str) -> str | None:
    """
    Extract the 11-character video_id from a YouTube URL.
    Returns None if the URL is not a valid YouTube URL.
    """
    url = url.strip()
    if not url:
        return None

    for pattern in YOUTUBE_URL_PATTERNS:
        m = re.search(pattern, url)
        if m:
            return m.group(1)

    # Fallback: parse query string for 'v' parameter
    parsed = urlparse(url)
    if 'youtube.com' in parsed.netloc or 'youtu.be' in parsed.netloc:
        v = parse_qs(parsed.query).get('v', [None])[0]
        if v and re.match(r'^[a-zA-Z0-9_-]{11}$', v):
            return v

    return None


def is_youtube_url(url: str) -> bool:
    return extract_video_id(url) is not None


def local_identity(path: Path) -> str:
    """Stable identity for a local file: digest of its resolved path."""
    digest = hashlib.sha1(str(path.resolve()).encode('utf-8')).hexdigest()
    return f"local-{digest[:11]}"


def job_for_local_file(path: Path) -> Job:
    path = path.expanduser().resolve()
    return Job(identity=local_identity(path), title=path.stem,
               media_source=MediaSource.LOCAL, local_path=str(path))


def job_for_video(video_id: str, title_lookup: Optional[Callable[[str], str]] = None) -> Job:
    title = video_id
    if title_lookup:
        title = title_lookup(video_id) or video_id
    return Job(identity=video_id, title=title, media_source=MediaSource.REMOTE)


def parse_inputs(inputs: list[str],
                 title_lookup: Optional[Callable[[str], str]] = None) -> list[Job]:
    """
    Build jobs from CLI arguments or pasted lines, in order.
    - YouTube URLs become remote jobs
    - existing audio files become local jobs
    - anything else is skipped with a warning
    """
    jobs = []
    for raw in inputs:
        line = raw.strip()
        if not line:
            continue

        video_id = extract_video_id(line)
        if video_id:
            jobs.append(job_for_video(video_id, title_lookup))
            continue

        path = Path(line).expanduser()
        if path.is_file() and path.suffix.lower() in AUDIO_EXTENSIONS:
            jobs.append(job_for_local_file(path))
            continue

        logger.warning("Skipping unrecognised input: %s", line)
    return jobs


def parse_input_lines(text: str, title_lookup: Optional[Callable[[str], str]] = None) -> list[Job]:
    return parse_inputs(text.splitlines(), title_lookup)


def parse_input_file(file_path: Path,
                     title_lookup: Optional[Callable[[str], str]] = None) -> list[Job]:
    """Read one input per line from a .txt file."""
    text = file_path.read_text(encoding='utf-8', errors='replace')
    return parse_input_lines(text, title_lookup)
