"""
Configuration: loads settings from .slicebox.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).
"""

import os

import yaml


_DEFAULTS = {
    "quiet_period_ms": 250,
    "fallback_margin": 7,
    "merge_gap": 2,
    "state_dir": ".slicebox",
    "metrics": True,
    "live_by_default": False,
}

# Config file search locations
_CONFIG_FILENAMES = [".slicebox.yaml", ".slicebox.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


class Config:
    """Sandbox configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables (``SLICEBOX_*``)
    3. .slicebox.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(env_key: str, yaml_key: str, default, cast=str):
            env_val = os.getenv(env_key)
            if env_val is not None:
                return cast(env_val)
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return default

        def _get_bool(env_key: str, yaml_key: str, default: bool) -> bool:
            env_val = os.getenv(env_key)
            if env_val is not None:
                return env_val.lower() == "true"
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return bool(yaml_val)
            return default

        self.QUIET_PERIOD_MS = _get("SLICEBOX_QUIET_PERIOD_MS", "quiet_period_ms",
                                    _DEFAULTS["quiet_period_ms"], cast=int)
        self.FALLBACK_MARGIN = _get("SLICEBOX_FALLBACK_MARGIN", "fallback_margin",
                                    _DEFAULTS["fallback_margin"], cast=int)
        self.MERGE_GAP = _get("SLICEBOX_MERGE_GAP", "merge_gap",
                              _DEFAULTS["merge_gap"], cast=int)

        self.STATE_DIR = _get("SLICEBOX_STATE_DIR", "state_dir",
                              _DEFAULTS["state_dir"])
        self.BACKUP_DIR = _get("SLICEBOX_BACKUP_DIR", "backup_dir",
                               os.path.join(self.STATE_DIR, "backups"))
        self.SCRATCH_DIR = _get("SLICEBOX_SCRATCH_DIR", "scratch_dir",
                                os.path.join(self.STATE_DIR, "scratch"))
        self.LOG_DIR = _get("SLICEBOX_LOG_DIR", "log_dir",
                            os.path.join(self.STATE_DIR, "logs"))

        self.METRICS_ENABLED = _get_bool("SLICEBOX_METRICS", "metrics",
                                         _DEFAULTS["metrics"])
        self.LIVE_BY_DEFAULT = _get_bool("SLICEBOX_LIVE", "live_by_default",
                                         _DEFAULTS["live_by_default"])

    @property
    def quiet_period(self) -> float:
        """Debounce quiet period in seconds."""
        return max(self.QUIET_PERIOD_MS, 0) / 1000.0

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
