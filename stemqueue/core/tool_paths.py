"""
Locations of the bundled third-party tools and separation models.

A frozen build ships ``ThirdPartyApps/`` and ``Models/`` next to the
executable; a source checkout keeps them under ``<os>-extra-files/``.
Only Windows and macOS builds are bundled; elsewhere the tools come
from the host PATH.
"""

import os
import sys
import logging
from pathlib import Path
from typing import Optional

from stemqueue.core.constants import PROJECT_ROOT, FFMPEG_EXE_NAME, INHERITED_ENV_VARS

logger = logging.getLogger(__name__)

_BUNDLED_PLATFORMS = ("win32", "darwin")
_EXTRA_FILES_DIRS = {
    "win32": "win-extra-files",
    "darwin": "mac-extra-files",
}


def _bundle_base() -> Path:
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).resolve().parent
    return PROJECT_ROOT


def get_third_party_apps_dir(platform: str | None = None) -> Optional[Path]:
    """Directory holding bundled demucs/ffmpeg, or None when tools come from PATH."""
    platform = platform or sys.platform
    if platform not in _BUNDLED_PLATFORMS:
        return None
    if getattr(sys, 'frozen', False):
        candidate = _bundle_base() / "ThirdPartyApps"
    else:
        candidate = _bundle_base() / _EXTRA_FILES_DIRS[platform] / "ThirdPartyApps"
    return candidate if candidate.is_dir() else None


def get_models_dir(platform: str | None = None) -> Optional[Path]:
    """Application-local demucs model repository, if one is shipped."""
    platform = platform or sys.platform
    if platform not in _BUNDLED_PLATFORMS:
        return None
    if getattr(sys, 'frozen', False):
        candidate = _bundle_base() / "Models"
    else:
        candidate = _bundle_base() / "anyos-extra-files" / "Models"
    return candidate if candidate.is_dir() else None


def demucs_exe_name(third_party_dir: Optional[Path] = None) -> str:
    return "demucs-cxfreeze" if third_party_dir else "demucs"


def ffmpeg_exe_name() -> str:
    return FFMPEG_EXE_NAME


def build_child_env(third_party_dir: Optional[Path] = None,
                    host_env: Optional[dict] = None) -> dict:
    """
    Environment for supervised tools: the host's PATH, temp and CUDA
    variables, with PATH replaced by the bundled tool directories when
    a bundle is present.
    """
    host_env = os.environ if host_env is None else host_env
    env = {k: host_env[k] for k in INHERITED_ENV_VARS if host_env.get(k)}

    if third_party_dir:
        # Override the host PATH with our own bundled third-party apps
        env["PATH"] = os.pathsep.join([
            str(third_party_dir / "demucs-cxfreeze"),
            str(third_party_dir / "ffmpeg" / "bin"),
        ])
    return env
