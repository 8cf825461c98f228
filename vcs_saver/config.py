"""Configuration system for vcs-saver.

All limits and settings can be overridden via environment variables
or a JSON config file at ~/.vcs-saver/config.json.
"""

import contextlib
import dataclasses
import json
import logging
import os

_DEFAULTS = {
    "enabled": True,
    "wrap_timeout": 300,
    "jj_binary": "jj",
    "git_binary": "git",
    "max_log_entries": 5,
    "max_op_entries": 5,
    "max_status_files": 10,
    "max_bookmarks": 10,
    "max_hunk_lines": 10,
    "max_diff_lines": 100,
    "max_message_chars": 60,
    "op_id_chars": 7,
    "op_summary_words": 1,
    "unparsed_threshold": 0.30,
    "min_prefix": 4,
    "debug": False,
}

ENV_PREFIX = "VCS_SAVER_"

_config: dict | None = None
_log = logging.getLogger("vcs-saver.config")


@dataclasses.dataclass(frozen=True)
class Limits:
    """Immutable snapshot of the limits parsers, formatters and the guard use."""

    max_log_entries: int = 5
    max_op_entries: int = 5
    max_status_files: int = 10
    max_bookmarks: int = 10
    max_hunk_lines: int = 10
    max_diff_lines: int = 100
    max_message_chars: int = 60
    op_id_chars: int = 7
    op_summary_words: int = 1
    unparsed_threshold: float = 0.30
    min_prefix: int = 4
    verbose: bool = False


def _load_config() -> dict:
    """Load config from file, then overlay env vars."""
    config = dict(_DEFAULTS)

    # Load from config file if it exists
    from vcs_saver import data_dir  # noqa: PLC0415

    config_path = os.path.join(data_dir(), "config.json")
    if os.path.exists(config_path):
        try:
            with open(config_path) as f:
                user_config = json.load(f)
            config.update(user_config)
        except (json.JSONDecodeError, OSError) as e:
            _log.warning("Ignoring unreadable config %s: %s", config_path, e)

    # Environment variable overrides
    for key, default_val in _DEFAULTS.items():
        env_key = ENV_PREFIX + key.upper()
        env_val = os.environ.get(env_key)
        if env_val is not None:
            if isinstance(default_val, bool):
                config[key] = env_val.lower() in ("1", "true", "yes")
            elif isinstance(default_val, int):
                with contextlib.suppress(ValueError):
                    config[key] = int(env_val)
            elif isinstance(default_val, float):
                with contextlib.suppress(ValueError):
                    config[key] = float(env_val)
            else:
                config[key] = env_val

    return config


def get(key: str):
    """Get a config value."""
    global _config  # noqa: PLW0603
    if _config is None:
        _config = _load_config()
    return _config.get(key, _DEFAULTS.get(key))


def reload():
    """Force reload of configuration."""
    global _config  # noqa: PLW0603
    _config = None


def limits(**overrides) -> Limits:
    """Build a Limits snapshot from the loaded config.

    Keyword overrides whose value is None are ignored, so CLI options that
    were not given fall back to the configured value.
    """
    values = {}
    for field in dataclasses.fields(Limits):
        if field.name in _DEFAULTS:
            values[field.name] = get(field.name)
    for key, value in overrides.items():
        if value is not None:
            values[key] = value
    return Limits(**values)
