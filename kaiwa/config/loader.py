from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from kaiwa.log import get_home_dir, logger

# Environment variables that override single config values: (section, key, cast)
_ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "KAIWA_LLM_PROVIDER": ("llm", "provider", str),
    "KAIWA_LLM_API_KEY": ("llm", "api_key", str),
    "KAIWA_LLM_MODEL": ("llm", "model", str),
    "KAIWA_LLM_URL": ("llm", "url", str),
    "KAIWA_LLM_TIMEOUT": ("llm", "timeout_seconds", float),
    "KAIWA_DB_PATH": ("history", "db_path", str),
}

# In-memory config (loaded once, protected by lock)
_config = None
_config_lock = threading.Lock()


def get_config() -> dict:
    """Get the merged config: defaults.json <- ~/.kaiwa/config.json <- KAIWA_* env vars.

    Built once per process; call reset_config() to force a reload.
    """
    global _config

    # Fast path: _config transitions None -> dict once and is never mutated.
    if _config is not None:
        return _config

    with _config_lock:
        if _config is not None:
            return _config

        result = _load_defaults()

        user = _load_user_file()
        if user:
            result = _merge(result, user)

        result = _apply_env(result)
        _config = result
        return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads every source."""
    global _config
    with _config_lock:
        _config = None


def get_llm_config() -> dict:
    return get_config().get("llm", {})


def get_history_config() -> dict:
    return get_config().get("history", {})


def get_server_config() -> dict:
    return get_config().get("server", {})


def _load_defaults() -> dict:
    try:
        defaults_path = Path(__file__).parent / "defaults.json"
        with open(defaults_path, "r") as f:
            return json.load(f)
    except Exception:
        logger.warning("Failed to load defaults.json, using minimal hardcoded config")
        return {
            "llm": {"provider": "offline", "timeout_seconds": 30},
            "history": {"window_hours": 24, "max_exchanges": 10},
            "server": {},
        }


def _user_config_path() -> Path:
    return get_home_dir() / "config.json"


def _load_user_file() -> dict | None:
    path = _user_config_path()
    try:
        if not path.exists():
            return None
        with open(path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            logger.debug("User config is not a dict, ignoring")
            return None
        return data
    except Exception:
        logger.warning("Failed to load user config from %s", path, exc_info=True)
        return None


def _apply_env(config: dict) -> dict:
    overrides: dict = {}
    for var, (section, key, cast) in _ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            value = cast(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: not a valid %s", var, raw, cast.__name__)
            continue
        overrides.setdefault(section, {})[key] = value
    if not overrides:
        return config
    return _merge(config, overrides)


def _merge(base: dict, override: dict, depth: int = 0) -> dict:
    """Deep merge override into base. Override values win.

    Args:
        base: The base dict to merge into.
        override: The override dict whose values win on conflict.
        depth: Current recursion depth. Stops recursing at 10.
    """
    _MAX_MERGE_DEPTH = 10
    result = base.copy()
    for key, value in override.items():
        if key.startswith("_"):
            continue
        if (
            depth < _MAX_MERGE_DEPTH
            and key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _merge(result[key], value, depth=depth + 1)
        else:
            result[key] = value
    return result
