"""Versioned persistence of the user's stamp style."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from .exceptions import ConfigurationError
from .image_utils import parse_color
from .logging_config import get_logger
from .models import StyleConfig

CONFIG_VERSION = 1
CONFIG_PATH_ENV = "METASTAMP_CONFIG_PATH"
COLOR_FIELDS = ("font_color", "stroke_color", "shadow_color")


def default_config_path() -> Path:
    """``$METASTAMP_CONFIG_PATH`` or ``~/.config/metastamp/config.json``."""
    override = os.getenv(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "metastamp" / "config.json"


def migrate(stored: Dict[str, Any]) -> Dict[str, Any]:
    """Bring a stored document of any version up to ``CONFIG_VERSION``.

    Version 1 is the only schema so far; older and newer documents are
    merged over the defaults like a current one.
    """
    config = stored.get("config")
    return {"version": CONFIG_VERSION, "config": config if isinstance(config, dict) else {}}


def storage_keys(config: Dict[str, Any]) -> Dict[str, Any]:
    """Rename snake_case field names to their stored camelCase aliases."""
    aliases = {name: field.alias for name, field in StyleConfig.model_fields.items() if field.alias}
    return {aliases.get(key, key): value for key, value in config.items()}


class PreferenceStore:
    """Load and save ``StyleConfig`` as ``{"version": 1, "config": {...}}``.

    Read and write failures are logged and swallowed: a broken store only
    ever costs the user their saved style, never a run.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path) if path is not None else default_config_path()
        self._logger = get_logger("preferences")

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> StyleConfig:
        defaults = StyleConfig()
        try:
            if not self._path.exists():
                return defaults
            stored = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(stored, dict):
                raise ValueError("stored preferences are not a JSON object")
            if stored.get("version") != CONFIG_VERSION:
                self._logger.info(
                    f"Migrating preferences from version {stored.get('version')} to {CONFIG_VERSION}"
                )
                stored = migrate(stored)
            config = stored.get("config") or {}
            if not isinstance(config, dict):
                raise ValueError("stored style is not a JSON object")
            config = storage_keys(config)
            style = StyleConfig.model_validate({**defaults.to_storage(), **config})
        except (OSError, ValueError, ValidationError) as exc:
            self._logger.warning(f"Failed to load preferences from {self._path}: {exc}")
            return defaults
        return self._with_valid_colors(style, defaults)

    def _with_valid_colors(self, style: StyleConfig, defaults: StyleConfig) -> StyleConfig:
        """Replace stored colors that do not parse with their defaults."""
        repaired = {}
        for name in COLOR_FIELDS:
            try:
                parse_color(getattr(style, name))
            except ConfigurationError as exc:
                self._logger.warning(f"Ignoring stored {name} from {self._path}: {exc}")
                repaired[name] = getattr(defaults, name)
        return style.model_copy(update=repaired) if repaired else style

    def save(self, style: StyleConfig) -> bool:
        document = {"version": CONFIG_VERSION, "config": style.to_storage()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=".config-", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            self._logger.warning(f"Failed to save preferences to {self._path}: {exc}")
            return False
        self._logger.debug(f"Saved preferences to {self._path}")
        return True

    def clear(self) -> bool:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning(f"Failed to clear preferences at {self._path}: {exc}")
            return False
        return True
