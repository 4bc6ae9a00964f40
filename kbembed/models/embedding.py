"""Embedding pipeline data models.

``EmbeddingRecord`` and ``FailedChunk`` are the per-chunk outcomes of
:meth:`~kbembed.services.embedding.embedding_service.EmbeddingService.embed_chunks`;
``BatchEmbeddingResult`` aggregates them for one request.  ``StoredRow`` is
the shape handed to an :class:`~kbembed.interfaces.embedding_store.IEmbeddingStore`
and only exists for chunks that were both embedded and classified.

All result models serialise with ``model_dump(mode="json")``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Literal error string recorded for every chunk when the storage step fails.
STORAGE_FAILED_ERROR = "Database storage failed"
INVALID_EMBEDDING_ERROR = "Invalid embedding data returned"


class EmbeddingRecord(BaseModel):
    """A chunk that was embedded successfully."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int = Field(ge=0)
    chunk: str
    embedding: list[float]


class FailedChunk(BaseModel):
    """A chunk that failed at the embedding or storage step."""

    model_config = ConfigDict(frozen=True)

    chunk: str
    chunk_index: int = Field(ge=0)
    error: str = Field(description="Human-readable failure reason.")
    retriable: bool = Field(description="Whether the caller may resubmit this chunk.")


class BatchEmbeddingResult(BaseModel):
    """Aggregated outcome of one ``embed_chunks`` request.

    Invariant: ``total_processed == total_successful + total_failed`` and
    ``total_processed`` equals the number of input chunks.  Both lists are
    ordered by ``chunk_index``.
    """

    successful_embeddings: list[EmbeddingRecord] = Field(default_factory=list)
    failed_chunks: list[FailedChunk] = Field(default_factory=list)
    total_processed: int = Field(default=0, ge=0)
    total_successful: int = Field(default=0, ge=0)
    total_failed: int = Field(default=0, ge=0)


class EmbedTextResult(BaseModel):
    """Result for a single text passed to ``embed_texts``."""

    model_config = ConfigDict(frozen=True)

    text: str
    embedding: list[float] | None = None
    error: str | None = None


class EmbeddingOptions(BaseModel):
    """Caller-supplied extras copied onto every stored row."""

    model_config = ConfigDict(frozen=True)

    mime: str | None = None
    title: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    job_id: str | None = Field(default=None, description="Job the ingestion belongs to, for tracing.")


class Classification(BaseModel):
    """Document-type label assigned to a chunk at ingest time.

    Every field is optional: a classifier that is not confident enough
    returns an empty classification and the row is stored unlabelled.
    """

    model_config = ConfigDict(frozen=True)

    document_type: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    model: str | None = None
    timestamp: datetime | None = None


class StoredRow(BaseModel):
    """One persisted embedding row.  Created once, never updated in place."""

    model_config = ConfigDict(frozen=True)

    entity_type: str
    entity_id: str
    source_id: str | None = None
    chunk_idx: int = Field(ge=0)
    content: str
    embedding: list[float]
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    document_type: str | None = None
    classification_confidence: float | None = None
    classification_model: str | None = None
    classification_timestamp: datetime | None = None

    def embedding_literal(self) -> str:
        """Return the vector in pgvector text form, e.g. ``"[0.1,0.2]"``."""
        return "[" + ",".join(repr(float(v)) for v in self.embedding) + "]"
