from kbembed.services.embedding.circuit_breaker import CircuitBreaker, CircuitState
from kbembed.services.embedding.embedding_service import EmbeddingService, source_hint_for

__all__ = ["CircuitBreaker", "CircuitState", "EmbeddingService", "source_hint_for"]
