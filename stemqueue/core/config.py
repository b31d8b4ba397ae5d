"""
Application configuration manager.
Stores settings in a JSON file under the application support directory.
"""

import json
import logging
from pathlib import Path

from stemqueue.core.constants import CONFIG_PATH, DEFAULT_OUTPUT_ROOT, ComputeBackend

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'output_root': str(DEFAULT_OUTPUT_ROOT),
    'pytorch_backend': ComputeBackend.AUTO,
    'can_show_donate_popup': True,
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None):
        self.path = config_path or CONFIG_PATH
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                self._data.update(saved)
            except Exception as e:
                logger.warning("Failed to load config: %s", e)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values."""
        if key == 'pytorch_backend':
            if value not in (ComputeBackend.AUTO, ComputeBackend.CPU):
                logger.warning("Invalid pytorch_backend %r — using auto", value)
                return ComputeBackend.AUTO

        if key == 'can_show_donate_popup':
            return bool(value)

        if key == 'output_root':
            if not value:
                return str(DEFAULT_OUTPUT_ROOT)
            return str(Path(value).expanduser())

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    @property
    def output_root(self) -> Path:
        return Path(self._data.get('output_root') or DEFAULT_OUTPUT_ROOT)

    @output_root.setter
    def output_root(self, value):
        self.set('output_root', value)

    @property
    def pytorch_backend(self) -> str:
        return self._data.get('pytorch_backend') or ComputeBackend.AUTO

    @pytorch_backend.setter
    def pytorch_backend(self, value: str):
        self.set('pytorch_backend', value)

    @property
    def can_show_donate_popup(self) -> bool:
        # Only an explicit opt-out disables the prompt
        return self._data.get('can_show_donate_popup') is not False

    @can_show_donate_popup.setter
    def can_show_donate_popup(self, value: bool):
        self.set('can_show_donate_popup', value)
