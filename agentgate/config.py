"""
Settings loading.

Settings live in ``settings.json`` files: the user file
(``~/.agentgate/settings.json``) is read first and the project file
(``<working_dir>/.agentgate/settings.json``) second. Project keys override
user keys, except ``hooks``, whose matcher lists are concatenated per event.
"""

import hashlib
import json
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .hooks import HooksConfiguration
from .logger import logger

DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_MAX_SESSION_TURNS = 100
SETTINGS_DIRNAME = ".agentgate"
SETTINGS_FILENAME = "settings.json"
MODEL_ENV_VAR = "AGENTGATE_MODEL"


class ConfigError(Exception):
    """Raised when a settings file cannot be used."""
    pass


def user_settings_dir() -> str:
    return os.path.join(os.path.expanduser("~"), SETTINGS_DIRNAME)


def user_settings_path() -> str:
    return os.path.join(user_settings_dir(), SETTINGS_FILENAME)


def project_settings_path(working_dir: str) -> str:
    return os.path.join(working_dir, SETTINGS_DIRNAME, SETTINGS_FILENAME)


@dataclass
class Config:
    """
    Resolved configuration for one session.

    Attributes:
        session_id: Unique id of this run
        model: LiteLLM model name
        max_session_turns: Maximum model calls per session; negative means unlimited
        debug: Enable debug logging
        working_dir: Directory the tools are confined to
        hooks: Parsed hook configuration
    """
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    model: str = DEFAULT_MODEL
    max_session_turns: int = DEFAULT_MAX_SESSION_TURNS
    debug: bool = False
    working_dir: str = field(default_factory=os.getcwd)
    hooks: HooksConfiguration = field(default_factory=HooksConfiguration)

    @property
    def project_temp_dir(self) -> str:
        """Per-project scratch directory, keyed by a hash of the working dir."""
        digest = hashlib.sha256(os.path.abspath(self.working_dir).encode("utf-8")).hexdigest()
        return os.path.join(user_settings_dir(), "tmp", digest[:16])


def read_settings_file(path: str) -> Dict[str, Any]:
    """
    Read one settings file.

    Returns an empty dict when the file does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or not a JSON object
    """
    if not os.path.isfile(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in settings file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a JSON object")
    logger.debug(f"[config] Loaded settings from {path}")
    return data


def merge_settings(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay ``override`` on ``base``; hook matcher lists are appended per event."""
    merged = dict(base)
    for key, value in override.items():
        if key == "hooks" and isinstance(value, dict) and isinstance(merged.get("hooks"), dict):
            hooks = {event: list(matchers) for event, matchers in merged["hooks"].items()}
            for event, matchers in value.items():
                if isinstance(matchers, list) and isinstance(hooks.get(event), list):
                    hooks[event] = hooks[event] + matchers
                else:
                    hooks[event] = matchers
            merged["hooks"] = hooks
        else:
            merged[key] = value
    return merged


def load_settings(working_dir: str, extra_paths: Optional[List[str]] = None) -> Dict[str, Any]:
    """Read and merge user, project and any extra settings files, in that order."""
    paths = [user_settings_path(), project_settings_path(working_dir)] + list(extra_paths or [])
    settings: Dict[str, Any] = {}
    for path in paths:
        settings = merge_settings(settings, read_settings_file(path))
    return settings


def load_config(
    working_dir: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None,
    settings_paths: Optional[List[str]] = None,
    model: Optional[str] = None,
    max_session_turns: Optional[int] = None,
    debug: Optional[bool] = None,
    session_id: Optional[str] = None,
) -> Config:
    """
    Build a Config from settings files and explicit overrides.

    Args:
        working_dir: Project directory (default: current directory)
        settings: Pre-merged settings; files are not read when given
        settings_paths: Extra settings files merged after the project file
        model: Model override (wins over AGENTGATE_MODEL and settings)
        max_session_turns: Turn limit override
        debug: Debug flag override
        session_id: Fixed session id (a new uuid4 otherwise)

    Raises:
        ConfigError: If a settings file or value is invalid
        HookConfigError: If the hooks table is malformed
    """
    working_dir = os.path.abspath(working_dir or os.getcwd())
    if settings is None:
        settings = load_settings(working_dir, settings_paths)

    resolved_model = model or os.getenv(MODEL_ENV_VAR) or settings.get("model") or DEFAULT_MODEL

    turns = max_session_turns
    if turns is None:
        turns = settings.get("maxSessionTurns", DEFAULT_MAX_SESSION_TURNS)
    if isinstance(turns, bool) or not isinstance(turns, int):
        raise ConfigError(f"maxSessionTurns must be an integer, got {turns!r}")

    config = Config(
        model=resolved_model,
        max_session_turns=turns,
        debug=bool(settings.get("debug", False)) if debug is None else debug,
        working_dir=working_dir,
        hooks=HooksConfiguration.from_dict(settings.get("hooks")),
    )
    if session_id:
        config.session_id = session_id
    return config
