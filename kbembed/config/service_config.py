"""Validated embedding service configuration.

``ServiceConfig`` is immutable once built.  Build it through
:meth:`ServiceConfig.from_mapping` (or :func:`validate_service_config`) to get
an :class:`~kbembed.utils.errors.EmbeddingConfigurationError` naming the
offending key instead of a raw pydantic ``ValidationError``.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from kbembed.config.model_registry import (
    DEFAULT_MODEL,
    ModelConfig,
    get_model_config,
    is_model_supported,
    supported_models,
)
from kbembed.utils.errors import EmbeddingConfigurationError


class ChunkingDefaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_size: int = Field(default=800, ge=1, le=10000, description="Characters per chunk.")
    default_overlap: int = Field(default=200, ge=0)

    @model_validator(mode="after")
    def _overlap_below_size(self) -> ChunkingDefaults:
        if self.default_overlap >= self.default_size:
            msg = "Chunk overlap must be non-negative and less than chunk size"
            raise ValueError(msg)
        return self


class ServiceConfig(BaseModel):
    """Embedding model, batch size and chunking defaults for one service instance."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(default=DEFAULT_MODEL)
    batch_size: int = Field(default=50, ge=1, le=1000)
    chunking: ChunkingDefaults = Field(default_factory=ChunkingDefaults)

    @field_validator("model")
    @classmethod
    def _supported_model(cls, value: str) -> str:
        if not value or not value.strip():
            msg = "Embedding model must be specified"
            raise ValueError(msg)
        if not is_model_supported(value):
            msg = (
                f"Unsupported embedding model: {value}. "
                f"Supported models: {', '.join(supported_models())}"
            )
            raise ValueError(msg)
        return value

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ServiceConfig:
        """Build a config from a plain mapping, e.g. the ``embedding`` YAML section."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            first = exc.errors()[0]
            key = ".".join(str(part) for part in first.get("loc", ())) or None
            raise EmbeddingConfigurationError(
                f"Invalid embedding configuration: {first.get('msg', exc)}",
                config_key=key,
                cause=exc,
            ) from exc

    def resolve_model(self) -> ModelConfig:
        """Return the token limit and encoding of the configured model."""
        return get_model_config(self.model)


def validate_service_config(config: ServiceConfig | Mapping[str, Any]) -> ServiceConfig:
    """Re-validate *config* and return it as a :class:`ServiceConfig`."""
    if isinstance(config, ServiceConfig):
        return ServiceConfig.from_mapping(config.model_dump())
    return ServiceConfig.from_mapping(config)
