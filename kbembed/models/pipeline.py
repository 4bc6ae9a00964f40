"""Pipeline trace event model."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TraceStatus(str, Enum):  # noqa: UP042
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"
    RETRY = "retry"


class TraceEvent(BaseModel):
    """A single observability event emitted by the ingestion pipeline."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str
    service_name: str = "embedding"
    event_name: str
    status: TraceStatus
    job_id: str | None = None
    duration_ms: float | None = Field(default=None, ge=0.0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
