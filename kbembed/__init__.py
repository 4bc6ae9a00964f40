"""kbembed: chunking and embedding pipeline for a personal knowledge base."""

__version__ = "0.1.0"
