from kbembed.providers.storage.sqlite_embedding_store import SQLiteEmbeddingStore

__all__ = ["SQLiteEmbeddingStore"]
