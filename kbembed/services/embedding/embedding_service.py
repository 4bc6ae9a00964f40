"""Orchestrator for the embed -> classify -> store pipeline.

The :class:`EmbeddingService` coordinates three injected collaborators
(embedding client, document classifier, embedding store) without any of
them knowing about each other.  :meth:`EmbeddingService.embed_chunks`
follows the same flow for every request:

    1. Validate    -- reject empty input or blank chunks before any network call
    2. Batch       -- split into ``config.batch_size`` slices
    3. Embed       -- one client call per batch; failures stay inside the batch
    4. Classify    -- once per successful embedding, after all batches
    5. Store       -- one bulk insert for the whole request

A failed batch never aborts the request: its chunks are recorded as
:class:`FailedChunk` objects with a ``retriable`` flag and the remaining
batches still run.  A failure in step 4 or 5 converts every successful
embedding into a failed chunk with ``"Database storage failed"``, because a
vector that was never persisted is of no use to the caller.

Invariant: ``total_processed == total_successful + total_failed == len(chunks)``.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, Any, Awaitable, TypeVar

import structlog

from kbembed.config.service_config import ServiceConfig, validate_service_config
from kbembed.models.embedding import (
    INVALID_EMBEDDING_ERROR,
    STORAGE_FAILED_ERROR,
    BatchEmbeddingResult,
    EmbeddingOptions,
    EmbeddingRecord,
    EmbedTextResult,
    FailedChunk,
    StoredRow,
)
from kbembed.models.pipeline import TraceStatus
from kbembed.services.chunking.text_cleaner import clean_for_embedding
from kbembed.utils.concurrency import throttled_gather
from kbembed.utils.errors import (
    EmbeddingAPIError,
    EmbeddingCircuitBreakerError,
    EmbeddingValidationError,
    get_error_message,
    is_retryable,
    log_embedding_error,
)

if TYPE_CHECKING:
    from kbembed.interfaces.document_classifier import IDocumentClassifier
    from kbembed.interfaces.embedding_client import IEmbeddingClient
    from kbembed.interfaces.embedding_store import IEmbeddingStore
    from kbembed.pipeline.tracer import PipelineTracer
    from kbembed.services.embedding.circuit_breaker import CircuitBreaker

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

# Caller source types with a fixed classifier hint.  Anything else falls
# back to options.metadata["source_type"], then to the literal value.
_SOURCE_HINTS = {
    "doc": "document",
    "note": "note",
    "job": "job-description",
}


@dataclass
class _BatchOutcome:
    """Per-batch result, merged by the orchestrator in batch order."""

    successes: list[EmbeddingRecord] = field(default_factory=list)
    failures: list[FailedChunk] = field(default_factory=list)


def source_hint_for(source_type: str, options: EmbeddingOptions | None = None) -> str:
    """Map a caller ``source_type`` to the hint passed to the classifier."""
    if source_type in _SOURCE_HINTS:
        return _SOURCE_HINTS[source_type]
    if options is not None:
        hinted = options.metadata.get("source_type")
        if isinstance(hinted, str) and hinted:
            return hinted
    return source_type


class EmbeddingService:
    """Embeds chunks in batches and persists them with their classification.

    Parameters
    ----------
    client:
        Generates embedding vectors, one call per batch.
    store:
        Persists classified rows in one bulk insert per request.
    classifier:
        Labels each successfully embedded chunk before storage.
    config:
        Model, batch size and chunking defaults.  Validated on construction.
    tracer:
        Optional non-blocking trace emitter.
    circuit_breaker:
        Optional breaker consulted before every batch call.
    max_concurrent_batches:
        Batches allowed in flight at once (1 = strictly sequential).
    storage_timeout:
        Seconds allowed for each classification call and for the bulk
        insert.  ``None`` disables the limit.
    """

    def __init__(
        self,
        client: IEmbeddingClient,
        store: IEmbeddingStore,
        classifier: IDocumentClassifier,
        config: ServiceConfig | None = None,
        *,
        tracer: PipelineTracer | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        max_concurrent_batches: int = 1,
        storage_timeout: float | None = 30.0,
    ) -> None:
        if max_concurrent_batches < 1:
            msg = f"max_concurrent_batches must be >= 1, got {max_concurrent_batches}"
            raise ValueError(msg)
        if storage_timeout is not None and storage_timeout <= 0:
            msg = f"storage_timeout must be > 0, got {storage_timeout}"
            raise ValueError(msg)
        self._client = client
        self._store = store
        self._classifier = classifier
        self._config = validate_service_config(config or ServiceConfig())
        self._tracer = tracer
        self._breaker = circuit_breaker
        self._max_concurrent_batches = max_concurrent_batches
        self._storage_timeout = storage_timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_chunks(
        self,
        chunks: list[str],
        entity_type: str,
        entity_id: str,
        source_type: str,
        source_id: str | None = None,
        options: EmbeddingOptions | None = None,
    ) -> BatchEmbeddingResult:
        """Embed, classify and store *chunks* for one entity.

        Parameters
        ----------
        chunks:
            Chunk texts in document order; ``chunk_index`` is the position.
        entity_type / entity_id:
            Owner of the chunks, copied onto every stored row.
        source_type:
            Caller source label (``"doc"``, ``"note"``, ``"job"`` ...); also
            picks the classifier hint.
        source_id:
            Optional id of the source document.
        options:
            Metadata and tags copied onto every row, plus an optional
            ``job_id`` for tracing.

        Returns
        -------
        BatchEmbeddingResult
            Always returned once validation passes, even when every chunk
            failed.

        Raises
        ------
        EmbeddingValidationError
            If *chunks* is empty or any chunk is blank.  No network call has
            been made.
        """
        options = options or EmbeddingOptions()
        self._validate_chunks(chunks)

        correlation_id = str(uuid.uuid4())
        started = time.perf_counter()
        batch_size = self._config.batch_size
        batches = [chunks[i : i + batch_size] for i in range(0, len(chunks), batch_size)]

        with structlog.contextvars.bound_contextvars(
            correlation_id=correlation_id, entity_type=entity_type, entity_id=entity_id
        ):
            logger.info(
                "embed_chunks_started",
                chunks=len(chunks),
                batches=len(batches),
                batch_size=batch_size,
                model=self._config.model,
            )
            self._trace(
                correlation_id,
                "embed_chunks_start",
                TraceStatus.STARTED,
                job_id=options.job_id,
                metadata={"chunks": len(chunks), "batches": len(batches)},
            )

            outcomes = await throttled_gather(
                [
                    partial(
                        self._process_batch,
                        batch,
                        batch_number * batch_size,
                        batch_number,
                        correlation_id,
                        options.job_id,
                    )
                    for batch_number, batch in enumerate(batches)
                ],
                limit=self._max_concurrent_batches,
            )

            successes = [record for outcome in outcomes for record in outcome.successes]
            failures = [failed for outcome in outcomes for failed in outcome.failures]

            if successes:
                try:
                    stored = await self._classify_and_store(
                        successes, entity_type, entity_id, source_type, source_id, options
                    )
                    logger.info("embed_chunks_stored", rows=stored)
                except Exception as exc:  # noqa: BLE001
                    log_embedding_error(exc, logger, stage="storage", rows=len(successes))
                    failures.extend(
                        FailedChunk(
                            chunk=record.chunk,
                            chunk_index=record.chunk_index,
                            error=STORAGE_FAILED_ERROR,
                            retriable=True,
                        )
                        for record in successes
                    )
                    successes = []

            failures.sort(key=lambda f: f.chunk_index)
            result = BatchEmbeddingResult(
                successful_embeddings=successes,
                failed_chunks=failures,
                total_processed=len(chunks),
                total_successful=len(successes),
                total_failed=len(failures),
            )

            duration_ms = (time.perf_counter() - started) * 1000
            status = _request_status(result)
            logger.info(
                "embed_chunks_complete",
                total_processed=result.total_processed,
                total_successful=result.total_successful,
                total_failed=result.total_failed,
                duration_ms=round(duration_ms, 1),
            )
            self._trace(
                correlation_id,
                "embed_chunks_end",
                status,
                job_id=options.job_id,
                duration_ms=duration_ms,
                metadata={
                    "total_processed": result.total_processed,
                    "total_successful": result.total_successful,
                    "total_failed": result.total_failed,
                },
            )
        return result

    async def embed_texts(self, texts: list[str]) -> list[EmbedTextResult]:
        """Embed *texts* without classification or storage.

        Results are positional.  A text whose vector is missing carries
        ``error="Failed to generate embedding"``; a failed batch carries the
        batch error on each of its texts.

        Raises
        ------
        EmbeddingValidationError
            If *texts* is empty.
        """
        if not texts:
            raise EmbeddingValidationError("No texts provided for embedding")

        batch_size = self._config.batch_size
        results: list[EmbedTextResult] = []
        for start in range(0, len(texts), batch_size):
            batch = texts[start : start + batch_size]
            try:
                vectors = await self._call_client(batch)
            except Exception as exc:  # noqa: BLE001
                log_embedding_error(exc, logger, batch_start=start, batch_size=len(batch))
                message = get_error_message(exc)
                results.extend(EmbedTextResult(text=t, error=message) for t in batch)
                continue

            for offset, text in enumerate(batch):
                vector = vectors[offset] if offset < len(vectors) else None
                if vector:
                    results.append(EmbedTextResult(text=text, embedding=vector))
                else:
                    results.append(EmbedTextResult(text=text, error="Failed to generate embedding"))
        return results

    def get_config(self) -> ServiceConfig:
        """Return a copy of the active configuration."""
        return self._config.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def _process_batch(
        self,
        batch: list[str],
        start_index: int,
        batch_number: int,
        correlation_id: str,
        job_id: str | None,
    ) -> _BatchOutcome:
        """Embed one batch; every failure is captured in the outcome."""
        started = time.perf_counter()
        self._trace(
            correlation_id,
            "embed_batch_start",
            TraceStatus.IN_PROGRESS,
            job_id=job_id,
            metadata={"batch": batch_number, "start_index": start_index, "size": len(batch)},
        )

        outcome = _BatchOutcome()
        try:
            vectors = await self._call_client(batch)
        except Exception as exc:  # noqa: BLE001
            retriable = is_retryable(exc)
            message = get_error_message(exc)
            log_embedding_error(
                exc, logger, batch=batch_number, start_index=start_index, retriable=retriable
            )
            outcome.failures = [
                FailedChunk(
                    chunk=chunk,
                    chunk_index=start_index + offset,
                    error=message,
                    retriable=retriable,
                )
                for offset, chunk in enumerate(batch)
            ]
            self._trace(
                correlation_id,
                "embed_batch_end",
                TraceStatus.FAILURE,
                job_id=job_id,
                duration_ms=(time.perf_counter() - started) * 1000,
                metadata={"batch": batch_number, "retriable": retriable},
                error_message=message,
            )
            return outcome

        if len(vectors) > len(batch):
            logger.warning(
                "embed_batch_extra_vectors",
                batch=batch_number,
                expected=len(batch),
                received=len(vectors),
            )

        for offset, chunk in enumerate(batch):
            chunk_index = start_index + offset
            vector = vectors[offset] if offset < len(vectors) else None
            if vector:
                outcome.successes.append(
                    EmbeddingRecord(chunk_index=chunk_index, chunk=chunk, embedding=vector)
                )
                continue
            outcome.failures.append(
                FailedChunk(
                    chunk=chunk,
                    chunk_index=chunk_index,
                    error=INVALID_EMBEDDING_ERROR,
                    retriable=False,
                )
            )
            self._trace(
                correlation_id,
                "embed_batch_chunk_failed",
                TraceStatus.WARNING,
                job_id=job_id,
                metadata={"batch": batch_number, "chunk_index": chunk_index},
                error_message=INVALID_EMBEDDING_ERROR,
            )

        logger.debug(
            "embed_batch_complete",
            batch=batch_number,
            succeeded=len(outcome.successes),
            failed=len(outcome.failures),
        )
        self._trace(
            correlation_id,
            "embed_batch_end",
            TraceStatus.WARNING if outcome.failures else TraceStatus.SUCCESS,
            job_id=job_id,
            duration_ms=(time.perf_counter() - started) * 1000,
            metadata={
                "batch": batch_number,
                "succeeded": len(outcome.successes),
                "failed": len(outcome.failures),
            },
        )
        return outcome

    async def _call_client(self, batch: list[str]) -> list[list[float] | None]:
        """Call the embedding client, consulting the circuit breaker if set."""
        if self._breaker is None:
            return await self._client.generate(batch)

        self._breaker.before_call()
        try:
            vectors = await self._client.generate(batch)
        except EmbeddingCircuitBreakerError:
            raise
        except Exception as exc:
            self._breaker.record_failure(exc)
            raise
        except BaseException:
            # Cancelled mid-call: no verdict on the API, free the trial slot.
            self._breaker.release_trial()
            raise
        self._breaker.record_success()
        return vectors

    # ------------------------------------------------------------------
    # Storage step
    # ------------------------------------------------------------------

    async def _classify_and_store(
        self,
        records: list[EmbeddingRecord],
        entity_type: str,
        entity_id: str,
        source_type: str,
        source_id: str | None,
        options: EmbeddingOptions,
    ) -> int:
        """Classify every record, then insert all rows in one call.

        Rows are only built after every classification has finished, so a
        failure or cancellation midway leaves nothing half-written.
        """
        hint = source_hint_for(source_type, options)
        classifications = [
            await self._bounded(self._classifier.classify(r.chunk, hint), "classification")
            for r in records
        ]

        metadata = _row_metadata(entity_type, source_type, options)
        rows = [
            StoredRow(
                entity_type=entity_type,
                entity_id=entity_id,
                source_id=source_id,
                chunk_idx=record.chunk_index,
                content=record.chunk,
                embedding=record.embedding,
                tags=list(options.tags),
                metadata=metadata,
                document_type=classification.document_type,
                classification_confidence=classification.confidence,
                classification_model=classification.model,
                classification_timestamp=classification.timestamp,
            )
            for record, classification in zip(records, classifications)
        ]
        return await self._bounded(self._store.bulk_insert(rows), "storage")

    async def _bounded(self, call: Awaitable[_T], operation: str) -> _T:
        """Await a storage-step call under ``storage_timeout``.

        A timeout becomes a status-less :class:`EmbeddingAPIError`, which the
        storage-failure policy turns into retriable failed chunks.
        """
        try:
            return await asyncio.wait_for(call, self._storage_timeout)
        except asyncio.TimeoutError as exc:
            raise EmbeddingAPIError(
                f"{operation.capitalize()} call timed out after {self._storage_timeout}s",
                cause=exc,
                context={"operation": operation},
            ) from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_chunks(chunks: list[str]) -> None:
        if not chunks:
            raise EmbeddingValidationError("No chunks provided for embedding")

        invalid = [
            f"chunk[{i}]"
            for i, chunk in enumerate(chunks)
            if not isinstance(chunk, str) or not clean_for_embedding(chunk)
        ]
        if invalid:
            raise EmbeddingValidationError(
                f"Invalid chunks found: {len(invalid)} empty or invalid chunks",
                invalid_inputs=invalid,
            )

    def _trace(self, correlation_id: str, event_name: str, status: TraceStatus, **kwargs: Any) -> None:
        if self._tracer is not None:
            self._tracer.emit(correlation_id, event_name, status, **kwargs)


def _row_metadata(entity_type: str, source_type: str, options: EmbeddingOptions) -> dict[str, Any]:
    # Caller keys first; the fixed keys always win.
    metadata: dict[str, Any] = dict(options.metadata)
    metadata["entity_type"] = entity_type
    metadata["source_type"] = source_type
    if options.mime is not None:
        metadata["mime"] = options.mime
    if options.title is not None:
        metadata["title"] = options.title
    metadata["tags"] = list(options.tags)
    return metadata


def _request_status(result: BatchEmbeddingResult) -> TraceStatus:
    if result.total_failed == 0:
        return TraceStatus.SUCCESS
    if result.total_successful == 0:
        return TraceStatus.FAILURE
    return TraceStatus.WARNING
