"""Response-vector validation shared by the embedding clients."""

from __future__ import annotations

from typing import Any


def coerce_vector(embedding: Any) -> list[float] | None:
    """Return *embedding* as a list of floats, or ``None`` if it is not a
    non-empty list of numbers.

    ``None`` marks the chunk as "Invalid embedding data returned" in the
    orchestrator; it never raises.
    """
    if not isinstance(embedding, list) or not embedding:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in embedding):
        return None
    return [float(v) for v in embedding]
