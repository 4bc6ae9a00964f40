"""Static registry of supported embedding models.

Maps a model name to its input token limit and the tiktoken encoding used
to count tokens for it.  Unsupported models are rejected when the service
configuration is validated, never at first use.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from kbembed.utils.errors import EmbeddingConfigurationError

DEFAULT_MODEL = "text-embedding-3-small"


class ModelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(gt=0, description="Maximum input tokens per text.")
    encoding: str = Field(description="tiktoken encoding name.")


MODEL_CONFIGS: dict[str, ModelConfig] = {
    "text-embedding-3-small": ModelConfig(max_tokens=8191, encoding="cl100k_base"),
    "text-embedding-3-large": ModelConfig(max_tokens=8191, encoding="cl100k_base"),
    "text-embedding-ada-002": ModelConfig(max_tokens=8191, encoding="cl100k_base"),
}


def supported_models() -> list[str]:
    return sorted(MODEL_CONFIGS)


def is_model_supported(model_name: str) -> bool:
    return model_name in MODEL_CONFIGS


def get_model_config(model_name: str) -> ModelConfig:
    """Return the :class:`ModelConfig` for *model_name*.

    Raises
    ------
    EmbeddingConfigurationError
        If the model is not in the registry.
    """
    config = MODEL_CONFIGS.get(model_name)
    if config is None:
        raise EmbeddingConfigurationError(
            f"Unsupported embedding model: {model_name}. "
            f"Supported models: {', '.join(supported_models())}",
            config_key="model",
        )
    return config
