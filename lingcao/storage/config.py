"""Global app configuration (LLM connection, engine tuning)."""

import json
import os
from pathlib import Path
from typing import Any

from .core import data_dir

_GROUPS = ("llm_connection", "engine")


def _defaults() -> dict[str, Any]:
    # Seeded from the environment on every read so .env changes apply.
    return {
        "llm_connection": {
            "provider_url": os.environ.get("LLM_PROVIDER_URL", ""),
            "api_key": os.environ.get("LLM_API_KEY", ""),
            "model": os.environ.get("LLM_MODEL", ""),
            "provider_format": os.environ.get("LLM_PROVIDER_FORMAT", "openai"),
            "timeout": 60.0,
        },
        "engine": {
            "max_attempts": 2,
            "autosave": True,
        },
    }


def _config_path() -> Path:
    return data_dir() / "config.json"


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config = _defaults()
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text(encoding="utf-8"))
        for group in _GROUPS:
            vals = stored.get(group)
            if isinstance(vals, dict):
                config[group].update(vals)
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config.

    Both groups are merged key by key; unknown top-level keys are ignored.
    """
    config = get_config()
    for group in _GROUPS:
        vals = fields.get(group)
        if isinstance(vals, dict):
            config[group].update(vals)
    _config_path().write_text(json.dumps(config, indent=2, ensure_ascii=False), encoding="utf-8")
    return config
