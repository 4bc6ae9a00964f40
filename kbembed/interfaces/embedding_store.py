"""Abstract base class for the embedding row store."""

from __future__ import annotations

from abc import ABC, abstractmethod

from kbembed.models.embedding import StoredRow


# Concrete implementations:
#   SQLiteEmbeddingStore - aiosqlite, table kb_embeddings
# Located in: kbembed/providers/storage/
class IEmbeddingStore(ABC):
    """Persists classified embedding rows."""

    @abstractmethod
    async def bulk_insert(self, rows: list[StoredRow]) -> int:
        """Insert *rows* in a single transaction.

        Returns
        -------
        int
            Number of rows written.

        Raises
        ------
        Exception
            On any failure.  Nothing is written when this raises.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for log events."""
