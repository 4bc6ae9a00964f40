"""Abstract base class for document classifiers.

Every stored chunk carries a document type, a confidence and the name of
the model that produced them.  Classification runs once per successfully
embedded chunk, right before the bulk insert.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kbembed.models.embedding import Classification


class IDocumentClassifier(ABC):

    @abstractmethod
    async def classify(self, text: str, source_hint: str | None = None) -> Classification:
        """Classify one chunk of text.

        Parameters
        ----------
        text:
            Chunk content.
        source_hint:
            Coarse source label (``"document"``, ``"note"``, ``"email"`` ...)
            derived from the caller's ``source_type``.

        Returns
        -------
        Classification
            Empty fields (``document_type=None``) when no rule or model is
            confident enough.

        Raises
        ------
        Exception
            Any failure is treated by the orchestrator as a storage-step
            failure for the whole request.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the classifier name recorded as ``classification_model``."""
