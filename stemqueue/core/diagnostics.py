"""
Diagnostics: tool detection and system checks.
"""

import shutil
import logging

import psutil
from yt_dlp.version import __version__ as YTDLP_VERSION

from stemqueue.core.config import AppConfig
from stemqueue.core.security_utils import run_subprocess_capture
from stemqueue.core.separation import get_job_count
from stemqueue.core.tool_paths import (
    build_child_env, get_third_party_apps_dir, get_models_dir,
    demucs_exe_name, ffmpeg_exe_name,
)

logger = logging.getLogger(__name__)


def find_tool(name: str, env: dict | None = None) -> str | None:
    """Resolve a tool the way the supervised child will see it."""
    env = env if env is not None else build_child_env(get_third_party_apps_dir())
    return shutil.which(name, path=env.get("PATH"))


def get_ffmpeg_version(env: dict | None = None) -> str:
    """Return ffmpeg version string, or error message."""
    exe = find_tool(ffmpeg_exe_name(), env)
    if not exe:
        return "Not installed"
    try:
        result = run_subprocess_capture([exe, "-version"], timeout=10)
        if result.returncode == 0:
            return result.stdout.strip().splitlines()[0]
        return f"Error (rc={result.returncode})"
    except Exception as e:
        return f"Error: {e}"


def missing_tools() -> list[str]:
    """Names of the external tools that cannot be found."""
    third_party = get_third_party_apps_dir()
    env = build_child_env(third_party)
    names = [demucs_exe_name(third_party), ffmpeg_exe_name()]
    return [n for n in names if not find_tool(n, env)]


def get_diagnostics(config: AppConfig | None = None) -> dict:
    """Gather all diagnostic information."""
    third_party = get_third_party_apps_dir()
    env = build_child_env(third_party)
    demucs = demucs_exe_name(third_party)
    mem = psutil.virtual_memory()
    info = {
        "demucs": find_tool(demucs, env) or "Not installed",
        "ffmpeg_version": get_ffmpeg_version(env),
        "ytdlp_version": YTDLP_VERSION,
        "third_party_apps": str(third_party) if third_party else None,
        "models_dir": str(get_models_dir()) if get_models_dir() else None,
        "available_memory_gb": round(mem.available / 1024**3, 1),
        "worker_jobs": get_job_count(),
    }
    if config is not None:
        info["output_root"] = str(config.output_root)
        info["pytorch_backend"] = config.pytorch_backend
    return info
