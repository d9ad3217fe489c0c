"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Layers (later layers override earlier):
#
#   1. Settings defaults   - fill any key the YAML file leaves out
#   2. config/config.yaml  - static defaults checked into the repo
#   3. .env file           - local developer overrides (not committed)
#   4. Environment vars    - set per deployment / per shell
#
# Only the Settings fields that were actually provided (through .env, the
# environment or constructor arguments) override the YAML file; a field
# left at its default never hides a YAML value.
#
#   yaml      = {"cache": {"max_entries": 512, "stale_seconds": 10.0}}
#   env       = CACHE_STALE_SECONDS=2
#   result    = {"cache": {"max_entries": 512, "stale_seconds": 2.0}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from expense_sync.config.settings import Settings

# YAML section -> {YAML key: Settings field}
_SETTINGS_KEYS: dict[str, dict[str, str]] = {
    "api": {
        "base_url": "api_base_url",
        "expenses_path": "expenses_path",
        "sign_path": "sign_path",
        "timeout_seconds": "request_timeout_seconds",
    },
    "upload": {
        "timeout_seconds": "upload_timeout_seconds",
    },
    "cache": {
        "stale_seconds": "cache_stale_seconds",
        "max_entries": "cache_max_entries",
    },
    "app": {
        "host": "app_host",
        "port": "app_port",
        "env": "app_env",
    },
    "logging": {
        "level": "log_level",
    },
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Explicitly provided Settings values override YAML values where keys
    overlap; Settings defaults only fill keys the YAML file does not set.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    s = settings or Settings()
    defaults: dict = {}
    env_overrides: dict = {}
    for section, keys in _SETTINGS_KEYS.items():
        for yaml_key, field in keys.items():
            target = env_overrides if field in s.model_fields_set else defaults
            target.setdefault(section, {})[yaml_key] = getattr(s, field)

    _deep_merge(defaults, yaml_config)
    _deep_merge(defaults, env_overrides)
    return defaults


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
