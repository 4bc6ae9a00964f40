"""kbembed domain models, re-exported for ``from kbembed.models import ...``.

    - chunking.py : chunking options, chunks and chunk results
    - embedding.py: embedding outcomes, classification and stored rows
    - pipeline.py : trace events
"""

from __future__ import annotations

from kbembed.models.chunking import (
    BudgetKind,
    Chunk,
    ChunkingOptions,
    ChunkMetadata,
    ChunkResult,
    ChunkStrategy,
)
from kbembed.models.embedding import (
    INVALID_EMBEDDING_ERROR,
    STORAGE_FAILED_ERROR,
    BatchEmbeddingResult,
    Classification,
    EmbeddingOptions,
    EmbeddingRecord,
    EmbedTextResult,
    FailedChunk,
    StoredRow,
)
from kbembed.models.pipeline import TraceEvent, TraceStatus

__all__ = [
    "INVALID_EMBEDDING_ERROR",
    "STORAGE_FAILED_ERROR",
    "BatchEmbeddingResult",
    "BudgetKind",
    "Chunk",
    "ChunkMetadata",
    "ChunkResult",
    "ChunkStrategy",
    "ChunkingOptions",
    "Classification",
    "EmbedTextResult",
    "EmbeddingOptions",
    "EmbeddingRecord",
    "FailedChunk",
    "StoredRow",
    "TraceEvent",
    "TraceStatus",
]
