"""Abstract interfaces for the external collaborators of the embedding pipeline.

Concrete adapters live in ``kbembed/providers/`` and are wired together in
``kbembed/main.py``:

    IEmbeddingClient     ->  HttpEmbeddingClient, OpenAIEmbeddingClient
    IDocumentClassifier  ->  RuleBasedClassifier
    IEmbeddingStore      ->  SQLiteEmbeddingStore
"""

from kbembed.interfaces.document_classifier import IDocumentClassifier
from kbembed.interfaces.embedding_client import IEmbeddingClient
from kbembed.interfaces.embedding_store import IEmbeddingStore

__all__ = ["IDocumentClassifier", "IEmbeddingClient", "IEmbeddingStore"]
