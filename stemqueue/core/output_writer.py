"""
Output writer: publishes finished stems into the output library.
"""

import shutil
import logging
from pathlib import Path

from stemqueue.core.constants import ErrorCode, INSTRUMENTAL_NAME, STEM_EXT
from stemqueue.core.error_codes import JobError
from stemqueue.core.security_utils import safe_output_path

logger = logging.getLogger(__name__)


def publish_stems(stems: dict[str, Path], instrumental: Path,
                  output_root: Path, title: str, identity: str) -> Path:
    """
    Copy all stems plus the instrumental to
    <OutputRoot>/<SanitizedTitle>-<identity>/<name>.wav
    Returns the output folder.
    """
    folder = safe_output_path(output_root, title, identity)
    files = dict(stems)
    files[INSTRUMENTAL_NAME] = instrumental

    try:
        folder.mkdir(parents=True, exist_ok=True)
        logger.info('Copying all stems to "%s"', folder)
        for name, src in files.items():
            shutil.copyfile(src, folder / f"{name}{STEM_EXT}")
    except OSError as e:
        raise JobError(ErrorCode.FILESYSTEM, f"Failed to write output to {folder}: {e}") from e

    return folder

