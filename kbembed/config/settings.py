"""Application settings loaded from environment variables via pydantic-settings.

Sources, highest priority first:

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123``
  2. ``.env`` in the working directory (local development)
  3. The defaults below

Field ``embedding_batch_size`` maps to ``EMBEDDING_BATCH_SIZE`` and so on.

The embedding model, batch size and chunking defaults default to ``None``:
they are only overrides.  Their real defaults live in ``config/config.yaml``
and are merged by :func:`kbembed.config.loader.load_config`.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """kbembed settings.  Environment variables override defaults."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding API ===
    # Empty key = "not configured"; build_container refuses to start without one.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint for the SDK client
    embedding_api_url: str = "https://api.openai.com/v1/embeddings"
    embedding_client: str = "http"  # "http" (httpx) or "openai" (SDK)
    embedding_timeout_seconds: float = 30.0
    embedding_max_concurrent_batches: int = 1

    # === Overrides for config/config.yaml ===
    embedding_model: str | None = None
    embedding_batch_size: int | None = None
    chunking_default_size: int | None = None
    chunking_default_overlap: int | None = None

    # === Storage / classification ===
    storage_db_path: str = "data/kb_embeddings.db"
    classification_min_confidence: float = 0.5
    # Per classification call and per bulk insert.
    storage_timeout_seconds: float = 30.0

    # === Tracing ===
    tracing_enabled: bool = True
    trace_queue_size: int = 1000

    # === Circuit breaker (opt-in) ===
    circuit_breaker_enabled: bool = False
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_recovery_seconds: float = 30.0

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"
