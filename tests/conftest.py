"""Shared pytest fixtures for the kbembed test suite."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

import pytest

from kbembed.config.service_config import ServiceConfig
from kbembed.interfaces.document_classifier import IDocumentClassifier
from kbembed.interfaces.embedding_client import IEmbeddingClient
from kbembed.interfaces.embedding_store import IEmbeddingStore
from kbembed.models.embedding import Classification, StoredRow
from kbembed.pipeline.tracer import PipelineTracer
from kbembed.services.chunking.chunker import TextChunker
from kbembed.services.embedding.embedding_service import EmbeddingService

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class WordTokenizer:
    """Deterministic stand-in for a BPE tokenizer.

    Every run of non-whitespace and every run of whitespace is one token, so
    ``decode(encode(text)) == text`` and token counts are easy to reason
    about without downloading a real encoding.
    """

    name = "fake_words"

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._pieces: list[str] = []

    def encode(self, text: str) -> list[int]:
        ids = []
        for piece in re.findall(r"\S+|\s+", text):
            if piece not in self._ids:
                self._ids[piece] = len(self._pieces)
                self._pieces.append(piece)
            ids.append(self._ids[piece])
        return ids

    def decode(self, tokens: list[int]) -> str:
        return "".join(self._pieces[t] for t in tokens)


class FakeEmbeddingClient(IEmbeddingClient):
    """Records every batch and returns a small deterministic vector per text.

    ``failures`` maps a zero-based call number to the exception raised on
    that call.  ``responses`` maps a call number to the exact vectors to
    return instead of the generated ones.
    """

    def __init__(
        self,
        failures: dict[int, Exception] | None = None,
        responses: dict[int, list] | None = None,
    ) -> None:
        self.calls: list[list[str]] = []
        self._failures = failures or {}
        self._responses = responses or {}

    async def generate(self, texts: list[str]) -> list[list[float] | None]:
        call_number = len(self.calls)
        self.calls.append(list(texts))
        if call_number in self._failures:
            raise self._failures[call_number]
        if call_number in self._responses:
            return self._responses[call_number]
        return [[float(len(t)), 1.0, 0.5] for t in texts]

    def get_provider_name(self) -> str:
        return "fake"

    def get_model(self) -> str:
        return "text-embedding-3-small"

    def is_available(self) -> bool:
        return True


class InMemoryEmbeddingStore(IEmbeddingStore):
    def __init__(self, error: Exception | None = None) -> None:
        self.rows: list[StoredRow] = []
        self.insert_calls = 0
        self._error = error

    async def bulk_insert(self, rows: list[StoredRow]) -> int:
        self.insert_calls += 1
        if self._error is not None:
            raise self._error
        self.rows.extend(rows)
        return len(rows)

    def get_provider_name(self) -> str:
        return "memory"


class StubClassifier(IDocumentClassifier):
    def __init__(self, document_type: str = "personal/note", error: Exception | None = None) -> None:
        self.calls: list[tuple[str, str | None]] = []
        self._document_type = document_type
        self._error = error

    async def classify(self, text: str, source_hint: str | None = None) -> Classification:
        self.calls.append((text, source_hint))
        if self._error is not None:
            raise self._error
        return Classification(
            document_type=self._document_type,
            confidence=0.9,
            model="stub",
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    def get_provider_name(self) -> str:
        return "stub"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def word_tokenizer() -> WordTokenizer:
    return WordTokenizer()


@pytest.fixture
def token_chunker(word_tokenizer: WordTokenizer) -> TextChunker:
    """Chunker whose token path uses :class:`WordTokenizer` for any encoding."""
    return TextChunker(tokenizer_factory=lambda _name: word_tokenizer)


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker()


@pytest.fixture
def fake_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def memory_store() -> InMemoryEmbeddingStore:
    return InMemoryEmbeddingStore()


@pytest.fixture
def stub_classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture
def service_config() -> ServiceConfig:
    return ServiceConfig(model="text-embedding-3-small", batch_size=50)


@pytest.fixture
def recorded_events() -> list:
    return []


@pytest.fixture
def tracer(recorded_events: list) -> PipelineTracer:
    return PipelineTracer(sink=recorded_events.append)


@pytest.fixture
def embedding_service(
    fake_client: FakeEmbeddingClient,
    memory_store: InMemoryEmbeddingStore,
    stub_classifier: StubClassifier,
    service_config: ServiceConfig,
    tracer: PipelineTracer,
) -> EmbeddingService:
    return EmbeddingService(
        fake_client, memory_store, stub_classifier, service_config, tracer=tracer
    )


@pytest.fixture
def yaml_config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "embedding:\n"
        "  model: text-embedding-3-small\n"
        "  batch_size: 50\n"
        "  chunking:\n"
        "    default_size: 800\n"
        "    default_overlap: 200\n",
        encoding="utf-8",
    )
    return path
