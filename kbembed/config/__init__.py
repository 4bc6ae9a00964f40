"""Configuration: environment settings, YAML loader, model registry and service config."""

from kbembed.config.loader import load_config, load_service_config
from kbembed.config.model_registry import (
    DEFAULT_MODEL,
    MODEL_CONFIGS,
    ModelConfig,
    get_model_config,
    is_model_supported,
)
from kbembed.config.service_config import ChunkingDefaults, ServiceConfig, validate_service_config
from kbembed.config.settings import Settings

__all__ = [
    "DEFAULT_MODEL",
    "MODEL_CONFIGS",
    "ChunkingDefaults",
    "ModelConfig",
    "ServiceConfig",
    "Settings",
    "get_model_config",
    "is_model_supported",
    "load_config",
    "load_service_config",
    "validate_service_config",
]
