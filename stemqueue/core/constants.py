"""
Shared constants for StemQueue.
Single source of truth — imported by every other module.
"""

import os
import sys
import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "StemQueue"
APP_DISPLAY_NAME = "Stem Queue"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()
PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent.parent

DEFAULT_OUTPUT_ROOT = HOME / "Music" / APP_NAME

if sys.platform == "darwin":
    APP_SUPPORT_DIR = HOME / "Library" / "Application Support" / APP_NAME
    LOG_DIR = HOME / "Library" / "Logs" / APP_NAME
elif sys.platform == "win32":
    APP_SUPPORT_DIR = pathlib.Path(os.environ.get("APPDATA", HOME)) / APP_NAME
    LOG_DIR = APP_SUPPORT_DIR / "logs"
else:
    APP_SUPPORT_DIR = HOME / ".local" / "share" / APP_NAME
    LOG_DIR = APP_SUPPORT_DIR / "logs"

DB_PATH = APP_SUPPORT_DIR / "status.db"
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"

# Per-job workspaces live directly under the system temp root
TMP_PREFIX = f"{APP_NAME}-"
WORKSPACE_REMOVE_ATTEMPTS = 5
WORKSPACE_REMOVE_DELAY_SEC = 1.0

# ── Job status values ─────────────────────────────────────────────────
class JobStatus:
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

ACTIVE_STATUSES = {JobStatus.DOWNLOADING, JobStatus.PROCESSING}
TERMINAL_STATUSES = {JobStatus.DONE, JobStatus.ERROR}

# ── Media sources ─────────────────────────────────────────────────────
class MediaSource:
    REMOTE = "remote"
    LOCAL = "local"

# ── Compute backend ───────────────────────────────────────────────────
class ComputeBackend:
    AUTO = "auto"
    CPU = "cpu"

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    INVALID_SOURCE = "ERR_INVALID_SOURCE"
    DOWNLOAD_FAILED = "ERR_DOWNLOAD_FAILED"
    TOOL_FAILED = "ERR_TOOL_FAILED"
    TOOL_KILLED = "ERR_TOOL_KILLED"
    MISSING_OUTPUT = "ERR_MISSING_OUTPUT"
    FILESYSTEM = "ERR_FILESYSTEM"
    CANCELLED = "ERR_CANCELLED"

# ── Separation (demucs) ───────────────────────────────────────────────
DEMUCS_MODEL_NAME = "htdemucs_ft"
DEMUCS_OUTPUT_DIR = "separated"
STEM_NAMES = ("bass", "drums", "other", "vocals")
INSTRUMENTAL_STEMS = ("bass", "drums", "other")
INSTRUMENTAL_NAME = "instrumental"
STEM_EXT = ".wav"

MAX_WORKER_JOBS = 4
BYTES_PER_WORKER = 2_000_000_000   # roughly 2 GB per track

# ── Mixing (ffmpeg) ───────────────────────────────────────────────────
FFMPEG_EXE_NAME = "ffmpeg"
AMIX_FILTER = "amix=inputs=3:normalize=0"

# ── Remote download ───────────────────────────────────────────────────
YTDL_FORMAT = "bestaudio/best"
DOWNLOAD_FILENAME = "yt-audio"
DOWNLOAD_CHUNK_BYTES = 1024 * 1024
HTTP_CONNECT_TIMEOUT_SEC = 15
HTTP_READ_TIMEOUT_SEC = 60

# ── Status store ──────────────────────────────────────────────────────
DONATE_THRESHOLD = 3

# Child process environment variables inherited from the host
INHERITED_ENV_VARS = ("PATH", "TEMP", "TMP", "TMPDIR", "CUDA_PATH")

# ── Misc ──────────────────────────────────────────────────────────────
YOUTUBE_URL_PATTERNS = [
    r'(?:https?://)?(?:www\.)?youtube\.com/watch\?v=([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?youtu\.be/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/embed/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/v/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/shorts/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?m\.youtube\.com/watch\?v=([a-zA-Z0-9_-]{11})',
]
AUDIO_EXTENSIONS = {".mp3", ".wav", ".flac", ".m4a", ".aac", ".ogg", ".opus", ".webm", ".mp4"}

# Characters forbidden in folder names (Windows + macOS + safety)
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FOLDER_NAME_LEN = 200
