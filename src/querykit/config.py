"""Where querykit keeps its files, and how settings are resolved.

Directories:
    * config -- ``$XDG_CONFIG_HOME/querykit`` (``~/.config/querykit``) on
      Linux and the BSDs, ``~/.querykit`` elsewhere. Holds ``config.json``.
    * data -- ``$XDG_DATA_HOME/querykit`` (``~/.local/share/querykit``) on
      Linux and the BSDs, ``~/.querykit/data`` elsewhere. Holds stored
      sessions and crash reports.

Settings are layered by :func:`resolve_settings`; files are replaced with
:func:`atomic_write` so that an interrupted save leaves the old file intact.
"""

from __future__ import annotations

import contextlib
import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from querykit.exceptions import ConfigError
from querykit.models import Settings

APP_NAME = "querykit"
SETTINGS_FILE = "config.json"
PROJECT_FILE = "querykit.json"
ENV_BASE_URL = "QUERYKIT_BASE_URL"


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(xdg_var: str, xdg_default: str, fallback: str) -> Path:
    if _is_xdg_platform():
        root = Path(os.environ.get(xdg_var) or Path.home() / xdg_default)
        path = root / APP_NAME
    else:
        path = Path.home() / f".{APP_NAME}" / fallback
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the config directory, creating it if needed."""
    return _app_dir("XDG_CONFIG_HOME", ".config", "")


def get_data_dir() -> Path:
    """Return the data directory, creating it if needed."""
    return _app_dir("XDG_DATA_HOME", ".local/share", "data")


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Replace *path* with *data* in one rename.

    The content goes to a temporary file in the same directory, is flushed
    to disk, and is then moved over *path*. *mode*, when given, is set on the
    temporary file before anything is written to it.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        if mode is not None:
            os.chmod(tmp, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


def load_settings() -> Settings:
    """Load ``config.json`` from the config directory, or defaults if absent.

    Raises:
        ConfigError: If the file is not valid JSON or fails validation.
    """
    path = get_config_dir() / SETTINGS_FILE
    if not path.is_file():
        return Settings()
    data = _read_json(path, "config")
    try:
        return Settings.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_settings(settings: Settings) -> None:
    text = json.dumps(settings.model_dump(mode="json"), indent=2) + "\n"
    atomic_write(get_config_dir() / SETTINGS_FILE, text)


def load_project_config() -> Optional[dict[str, Any]]:
    """Return the overrides in ``./querykit.json``, or ``None`` if there is none.

    Raises:
        ConfigError: If the file is not a JSON object.
    """
    path = Path.cwd() / PROJECT_FILE
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            value = _merge(merged[key], value)
        merged[key] = value
    return merged


def resolve_settings(cli_base_url: Optional[str] = None) -> Settings:
    """Return the effective settings.

    Later layers win, field by field:

    1. defaults
    2. the user's ``config.json``
    3. ``./querykit.json``, merged section by section
    4. ``QUERYKIT_BASE_URL``
    5. ``--base-url`` (*cli_base_url*)

    Raises:
        ConfigError: If any file layer is invalid.
    """
    settings = load_settings()

    project = load_project_config()
    if project:
        try:
            settings = Settings.model_validate(_merge(settings.model_dump(mode="json"), project))
        except ValueError as exc:
            raise ConfigError(f"Invalid project config: {exc}") from exc

    base_url = cli_base_url or os.environ.get(ENV_BASE_URL)
    if base_url:
        settings = settings.model_copy(update={"base_url": base_url})
    return settings
