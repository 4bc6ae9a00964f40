"""Text cleaning, tokenization and budget-bounded chunking."""

from kbembed.services.chunking.chunker import (
    TextChunker,
    chunk_text,
    chunk_text_by_tokens,
    chunk_text_for_model,
)
from kbembed.services.chunking.text_cleaner import clean_for_embedding, clean_text
from kbembed.services.chunking.tokenizer import Tokenizer, TokenizerAdapter, get_tokenizer

__all__ = [
    "TextChunker",
    "Tokenizer",
    "TokenizerAdapter",
    "chunk_text",
    "chunk_text_by_tokens",
    "chunk_text_for_model",
    "clean_for_embedding",
    "clean_text",
    "get_tokenizer",
]
