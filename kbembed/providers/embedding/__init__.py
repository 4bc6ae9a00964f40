from kbembed.providers.embedding.http_embedding_client import HttpEmbeddingClient
from kbembed.providers.embedding.openai_embedding_client import OpenAIEmbeddingClient

__all__ = ["HttpEmbeddingClient", "OpenAIEmbeddingClient"]
