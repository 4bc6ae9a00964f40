"""YAML configuration loader with environment variable overrides.

Layers, later wins:

  1. ``config/config.yaml``: defaults checked into the repo
  2. ``.env`` / environment variables read by :class:`Settings`

Only settings that were actually provided (non-``None``) override YAML, so
an unset ``EMBEDDING_BATCH_SIZE`` leaves the YAML batch size in place.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from kbembed.config.service_config import ServiceConfig
from kbembed.config.settings import Settings

DEFAULT_CONFIG_PATH = "config/config.yaml"


def load_config(path: str | Path = DEFAULT_CONFIG_PATH, settings: Settings | None = None) -> dict:
    """Load YAML config and merge environment-based overrides on top.

    Args:
        path: Path to the YAML configuration file.  A missing file is
            treated as empty.
        settings: Settings instance; a fresh one is read from the
            environment when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    chunking_overrides = _present(
        default_size=settings.chunking_default_size,
        default_overlap=settings.chunking_default_overlap,
    )
    embedding_overrides: dict[str, Any] = _present(
        model=settings.embedding_model,
        batch_size=settings.embedding_batch_size,
    )
    if chunking_overrides:
        embedding_overrides["chunking"] = chunking_overrides

    env_overrides = {
        "embedding": embedding_overrides,
        "app": {"env": settings.app_env},
        "logging": {"level": settings.log_level},
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_service_config(
    path: str | Path = DEFAULT_CONFIG_PATH, settings: Settings | None = None
) -> ServiceConfig:
    """Return the validated :class:`ServiceConfig` from the ``embedding`` section."""
    config = load_config(path, settings)
    return ServiceConfig.from_mapping(config.get("embedding") or {})


def _present(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
