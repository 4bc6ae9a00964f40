"""Unit tests for build_container and AppContainer in kbembed/main.py."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from conftest import FakeEmbeddingClient, InMemoryEmbeddingStore, StubClassifier

from kbembed.config.settings import Settings
from kbembed.main import build_container
from kbembed.providers.classification.rule_based_classifier import RuleBasedClassifier
from kbembed.providers.embedding.http_embedding_client import HttpEmbeddingClient
from kbembed.providers.embedding.openai_embedding_client import OpenAIEmbeddingClient
from kbembed.providers.storage.sqlite_embedding_store import SQLiteEmbeddingStore
from kbembed.services.embedding.embedding_service import EmbeddingService
from kbembed.utils.errors import EmbeddingConfigurationError


def _settings(**overrides) -> Settings:
    """Settings with test defaults; never reads a .env file."""
    defaults = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "embedding_client": "http",
        "embedding_model": None,
        "embedding_batch_size": None,
        "chunking_default_size": None,
        "chunking_default_overlap": None,
        "tracing_enabled": False,
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class TestBuildContainer:
    def test_missing_api_key_raises(self, yaml_config_file: Path) -> None:
        with pytest.raises(EmbeddingConfigurationError) as exc_info:
            build_container(_settings(openai_api_key=""), config_path=yaml_config_file)
        assert exc_info.value.config_key == "openai_api_key"

    def test_injected_client_needs_no_key(self, yaml_config_file: Path) -> None:
        container = build_container(
            _settings(openai_api_key=""),
            config_path=yaml_config_file,
            embedding_client=FakeEmbeddingClient(),
            store=InMemoryEmbeddingStore(),
        )
        assert isinstance(container.embedding_service, EmbeddingService)
        assert isinstance(container.classifier, RuleBasedClassifier)

    def test_unknown_client_kind(self, yaml_config_file: Path) -> None:
        with pytest.raises(EmbeddingConfigurationError) as exc_info:
            build_container(_settings(embedding_client="grpc"), config_path=yaml_config_file)
        assert exc_info.value.config_key == "embedding_client"

    @pytest.mark.asyncio
    async def test_http_client_default(self, yaml_config_file: Path, tmp_path: Path) -> None:
        container = build_container(
            _settings(storage_db_path=str(tmp_path / "kb.db")), config_path=yaml_config_file
        )
        assert isinstance(container.embedding_client, HttpEmbeddingClient)
        assert isinstance(container.store, SQLiteEmbeddingStore)
        assert container.circuit_breaker is None
        await container.aclose()

    def test_shared_http_client_is_used(self, yaml_config_file: Path) -> None:
        shared = httpx.AsyncClient()
        container = build_container(
            _settings(), config_path=yaml_config_file, http_client=shared
        )
        assert container.embedding_client._http is shared

    def test_openai_sdk_client(self, yaml_config_file: Path) -> None:
        with patch("kbembed.providers.embedding.openai_embedding_client.openai.AsyncOpenAI"):
            container = build_container(
                _settings(embedding_client="openai"), config_path=yaml_config_file
            )
        assert isinstance(container.embedding_client, OpenAIEmbeddingClient)

    def test_env_overrides_yaml(self, yaml_config_file: Path) -> None:
        container = build_container(
            _settings(embedding_batch_size=10, embedding_model="text-embedding-3-large"),
            config_path=yaml_config_file,
            embedding_client=FakeEmbeddingClient(),
            store=InMemoryEmbeddingStore(),
        )
        config = container.embedding_service.get_config()
        assert config.batch_size == 10
        assert config.model == "text-embedding-3-large"

    def test_invalid_yaml_batch_size(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("embedding:\n  batch_size: 0\n", encoding="utf-8")
        with pytest.raises(EmbeddingConfigurationError) as exc_info:
            build_container(_settings(), config_path=path, embedding_client=FakeEmbeddingClient())
        assert exc_info.value.config_key == "batch_size"

    def test_circuit_breaker_opt_in(self, yaml_config_file: Path) -> None:
        container = build_container(
            _settings(circuit_breaker_enabled=True, circuit_breaker_failure_threshold=2),
            config_path=yaml_config_file,
            embedding_client=FakeEmbeddingClient(),
            store=InMemoryEmbeddingStore(),
        )
        assert container.circuit_breaker is not None
        assert container.circuit_breaker.failure_count == 0


class TestAppContainer:
    @pytest.mark.asyncio
    async def test_override_and_reset(self, yaml_config_file: Path) -> None:
        container = build_container(
            _settings(),
            config_path=yaml_config_file,
            embedding_client=FakeEmbeddingClient(),
            store=InMemoryEmbeddingStore(),
            classifier=StubClassifier(),
        )
        default = container.embedding_service
        replacement = EmbeddingService(
            FakeEmbeddingClient(), InMemoryEmbeddingStore(), StubClassifier()
        )

        container.override_embedding_service(replacement)
        assert container.embedding_service is replacement
        container.reset()
        assert container.embedding_service is default

    @pytest.mark.asyncio
    async def test_start_initializes_sqlite_and_tracer(
        self, yaml_config_file: Path, tmp_path: Path
    ) -> None:
        store = SQLiteEmbeddingStore(tmp_path / "kb.db")
        container = build_container(
            _settings(tracing_enabled=True),
            config_path=yaml_config_file,
            embedding_client=FakeEmbeddingClient(),
            store=store,
        )
        await container.start()
        try:
            assert await store.count() == 0
            result = await container.embedding_service.embed_chunks(
                ["Subject: hello\nbody"], "email", "m-1", "email"
            )
            assert result.total_successful == 1
        finally:
            await container.aclose()

        rows = await store.list_rows()
        assert rows[0].document_type == "communication/email"
        assert container.tracer.pending == 0
