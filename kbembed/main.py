"""kbembed composition root.

Wires together settings, configuration, providers and services via
dependency injection.  :func:`build_container` is called once at process
startup and returns an :class:`AppContainer`; callers receive the
:class:`EmbeddingService` from the container by reference instead of
importing a module-level singleton.

Tests either pass fakes straight into :func:`build_container` or swap the
service on a live container with :meth:`AppContainer.override_embedding_service`
and restore it with :meth:`AppContainer.reset`.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import structlog

from kbembed.config.loader import DEFAULT_CONFIG_PATH, load_config
from kbembed.config.service_config import ServiceConfig
from kbembed.config.settings import Settings
from kbembed.interfaces.document_classifier import IDocumentClassifier
from kbembed.interfaces.embedding_client import IEmbeddingClient
from kbembed.interfaces.embedding_store import IEmbeddingStore
from kbembed.pipeline.tracer import PipelineTracer
from kbembed.providers.classification.rule_based_classifier import RuleBasedClassifier
from kbembed.providers.embedding.http_embedding_client import HttpEmbeddingClient
from kbembed.providers.embedding.openai_embedding_client import OpenAIEmbeddingClient
from kbembed.providers.storage.sqlite_embedding_store import SQLiteEmbeddingStore
from kbembed.services.chunking.chunker import TextChunker
from kbembed.services.embedding.circuit_breaker import CircuitBreaker
from kbembed.services.embedding.embedding_service import EmbeddingService
from kbembed.utils.errors import EmbeddingConfigurationError

logger = structlog.get_logger(logger_name=__name__)

_CLIENT_KINDS = ("http", "openai")


class AppContainer:
    """Holds every long-lived object of one process.

    Owns the lifetime of the shared :class:`httpx.AsyncClient`, the tracer's
    drain task and the SDK client; call :meth:`aclose` on shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        config: ServiceConfig,
        embedding_client: IEmbeddingClient,
        store: IEmbeddingStore,
        classifier: IDocumentClassifier,
        tracer: PipelineTracer,
        chunker: TextChunker,
        embedding_service: EmbeddingService,
        circuit_breaker: CircuitBreaker | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.config = config
        self.embedding_client = embedding_client
        self.store = store
        self.classifier = classifier
        self.tracer = tracer
        self.chunker = chunker
        self.circuit_breaker = circuit_breaker
        self._http_client = http_client
        self._default_service = embedding_service
        self._service = embedding_service

    @property
    def embedding_service(self) -> EmbeddingService:
        return self._service

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------

    def override_embedding_service(self, service: EmbeddingService) -> None:
        """Replace the service handed out by this container."""
        self._service = service

    def reset(self) -> None:
        """Undo :meth:`override_embedding_service`."""
        self._service = self._default_service

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Create storage tables and start draining trace events."""
        if isinstance(self.store, SQLiteEmbeddingStore):
            await self.store.initialize()
        if self.tracer.enabled:
            self.tracer.start()

    async def aclose(self) -> None:
        await self.tracer.stop()
        if isinstance(self.embedding_client, OpenAIEmbeddingClient):
            await self.embedding_client.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


def build_container(
    settings: Settings | None = None,
    *,
    config_path: str | Path = DEFAULT_CONFIG_PATH,
    embedding_client: IEmbeddingClient | None = None,
    store: IEmbeddingStore | None = None,
    classifier: IDocumentClassifier | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AppContainer:
    """Assemble the application from settings and ``config/config.yaml``.

    Parameters
    ----------
    settings:
        Environment settings; read from the environment when omitted.
    config_path:
        YAML file with the ``embedding`` section.
    embedding_client, store, classifier:
        Optional pre-built collaborators; defaults are derived from settings.
    http_client:
        Shared client for :class:`HttpEmbeddingClient`; one is created (and
        later closed by the container) when omitted.

    Raises
    ------
    EmbeddingConfigurationError
        If the YAML/env configuration is invalid, the client kind is
        unknown, or no API key is configured for a default client.
    """
    settings = settings or Settings()
    raw_config = load_config(config_path, settings)
    config = ServiceConfig.from_mapping(raw_config.get("embedding") or {})

    owned_http_client: httpx.AsyncClient | None = None
    if embedding_client is None:
        if not settings.openai_api_key:
            raise EmbeddingConfigurationError(
                "OPENAI_API_KEY is not configured",
                config_key="openai_api_key",
            )
        if settings.embedding_client not in _CLIENT_KINDS:
            raise EmbeddingConfigurationError(
                f"Unknown embedding client '{settings.embedding_client}'. "
                f"Expected one of: {', '.join(_CLIENT_KINDS)}",
                config_key="embedding_client",
            )
        if settings.embedding_client == "openai":
            embedding_client = OpenAIEmbeddingClient(
                api_key=settings.openai_api_key,
                model=config.model,
                base_url=settings.openai_base_url,
                timeout=settings.embedding_timeout_seconds,
            )
        else:
            if http_client is None:
                owned_http_client = httpx.AsyncClient(timeout=settings.embedding_timeout_seconds)
                http_client = owned_http_client
            embedding_client = HttpEmbeddingClient(
                http_client,
                api_key=settings.openai_api_key,
                model=config.model,
                api_url=settings.embedding_api_url,
                timeout=settings.embedding_timeout_seconds,
            )

    store = store or SQLiteEmbeddingStore(settings.storage_db_path)
    classifier = classifier or RuleBasedClassifier(
        min_confidence=settings.classification_min_confidence
    )
    tracer = PipelineTracer(
        enabled=settings.tracing_enabled,
        max_queue_size=settings.trace_queue_size,
    )
    breaker = None
    if settings.circuit_breaker_enabled:
        breaker = CircuitBreaker(
            name=embedding_client.get_provider_name(),
            failure_threshold=settings.circuit_breaker_failure_threshold,
            recovery_timeout=settings.circuit_breaker_recovery_seconds,
        )

    service = EmbeddingService(
        embedding_client,
        store,
        classifier,
        config,
        tracer=tracer,
        circuit_breaker=breaker,
        max_concurrent_batches=settings.embedding_max_concurrent_batches,
        storage_timeout=settings.storage_timeout_seconds,
    )

    logger.info(
        "container_built",
        model=config.model,
        batch_size=config.batch_size,
        embedding_client=embedding_client.get_provider_name(),
        store=store.get_provider_name(),
        classifier=classifier.get_provider_name(),
        tracing=settings.tracing_enabled,
        circuit_breaker=breaker is not None,
    )
    return AppContainer(
        settings=settings,
        config=config,
        embedding_client=embedding_client,
        store=store,
        classifier=classifier,
        tracer=tracer,
        chunker=TextChunker(),
        embedding_service=service,
        circuit_breaker=breaker,
        http_client=owned_http_client,
    )
