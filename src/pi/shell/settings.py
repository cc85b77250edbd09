"""Shell settings with JSON persistence and CLI overrides.

Settings live in ``~/.pi/shell.json``. Command-line flags override file
values; ``None`` overrides are ignored.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from pi.shell.history import DEFAULT_HISTORY_LIMIT, default_history_path

CONFIG_DIR_NAME = ".pi"
SETTINGS_FILE_NAME = "shell.json"

# JSON key -> dataclass field
_KEY_MAP: dict[str, str] = {
    "historyFile": "history_file",
    "historyLimit": "history_limit",
    "prompt": "prompt",
    "inlineSuggestions": "inline_suggestions",
    "completionPanel": "completion_panel",
    "ctrlArrowFallback": "ctrl_arrow_fallback",
    "suggestionColumn": "suggestion_column",
    "panelWidth": "panel_width",
}


@dataclass
class ShellSettings:
    """Effective configuration for an interactive session."""

    history_file: str = ""
    history_limit: int = DEFAULT_HISTORY_LIMIT
    prompt: str = "> "
    inline_suggestions: bool = True
    completion_panel: bool = True
    ctrl_arrow_fallback: bool = True
    suggestion_column: int = 60
    panel_width: int = 40

    def __post_init__(self) -> None:
        if not self.history_file:
            self.history_file = default_history_path()


def default_settings_path() -> str:
    """Default settings file (~/.pi/shell.json)."""
    return os.path.join(os.path.expanduser("~"), CONFIG_DIR_NAME, SETTINGS_FILE_NAME)


def deep_merge_settings(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Merge *overrides* into *base*; None values never override."""
    result = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge_settings(result[key], value)
        else:
            result[key] = value
    return result


def settings_from_dict(raw: dict[str, Any]) -> ShellSettings:
    """Build settings from camelCase JSON keys. Unknown keys are ignored."""
    known = {f.name: f for f in fields(ShellSettings)}
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        name = _KEY_MAP.get(key)
        if name is None or value is None:
            continue
        default = known[name].default
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ValueError(f"setting {key!r} must be true or false")
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"setting {key!r} must be an integer")
        elif not isinstance(value, str):
            raise ValueError(f"setting {key!r} must be a string")
        kwargs[name] = os.path.expanduser(value) if name == "history_file" else value
    return ShellSettings(**kwargs)


def _load_from_file(path: str) -> tuple[dict[str, Any], Exception | None]:
    """Load raw settings from a JSON file. Returns (settings, error)."""
    if not os.path.exists(path):
        return {}, None
    try:
        content = Path(path).read_text(encoding="utf-8")
        settings = json.loads(content)
    except (OSError, json.JSONDecodeError) as e:
        return {}, e
    if not isinstance(settings, dict):
        return {}, ValueError(f"{path}: expected a JSON object")
    return settings, None


def load_settings(
    path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> tuple[ShellSettings, Exception | None]:
    """Load settings from *path* and apply *overrides* (camelCase keys).

    Returns the settings and the load error, if any. On error the defaults
    (plus overrides) are used.
    """
    raw, error = _load_from_file(path or default_settings_path())
    merged = deep_merge_settings(raw, overrides or {})
    try:
        return settings_from_dict(merged), error
    except ValueError as e:
        return settings_from_dict(deep_merge_settings({}, overrides or {})), error or e
