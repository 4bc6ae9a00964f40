"""Unit tests for text cleaning and the tiktoken adapter."""

from __future__ import annotations

import pytest

from kbembed.services.chunking.text_cleaner import (
    MAX_WORD_LENGTH,
    clean_ascii_only_text,
    clean_for_embedding,
    clean_generic_text,
    clean_text,
)
from kbembed.services.chunking.tokenizer import TokenizerAdapter, get_tokenizer
from kbembed.utils.errors import EmbeddingConfigurationError


class TestGenericCleaning:
    def test_control_chars_and_replacement_char_become_spaces(self) -> None:
        assert clean_generic_text("Hello\x00World\ufffd!") == "Hello World !"

    def test_long_words_are_dropped(self) -> None:
        garbage = "x" * (MAX_WORD_LENGTH + 1)
        assert clean_generic_text(f"ok {garbage} fine") == "ok fine"

    def test_word_at_limit_is_kept(self) -> None:
        word = "y" * MAX_WORD_LENGTH
        assert clean_generic_text(word) == word

    def test_line_structure_is_kept(self) -> None:
        assert clean_generic_text("a  \t b\n\n\n\nc \r\nd") == "a b\n\nc\nd"

    def test_unicode_is_kept(self) -> None:
        assert clean_generic_text("café  naïve") == "café naïve"


class TestAsciiCleaning:
    def test_non_ascii_becomes_space(self) -> None:
        assert clean_ascii_only_text("café\tnaïve") == "caf na ve"

    def test_newlines_survive(self) -> None:
        assert clean_ascii_only_text("Title:\n\nbody") == "Title:\n\nbody"

    def test_long_words_are_kept(self) -> None:
        word = "z" * (MAX_WORD_LENGTH + 5)
        assert clean_ascii_only_text(word) == word

    def test_clean_text_dispatch(self) -> None:
        assert clean_text("é", ascii_only=True) == ""
        assert clean_text("é") == "é"


class TestEmbeddingCleaning:
    def test_flattens_whitespace(self) -> None:
        assert clean_for_embedding("a\n\nb\tc\x07 ") == "a b c"

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", "\x00\x01"])
    def test_blank_input_cleans_to_empty(self, text: str) -> None:
        assert clean_for_embedding(text) == ""


class TestTokenizerAdapter:
    def test_unknown_encoding_raises_configuration_error(self) -> None:
        with pytest.raises(EmbeddingConfigurationError) as exc_info:
            TokenizerAdapter("definitely_not_an_encoding")
        assert exc_info.value.config_key == "encoding"
        assert exc_info.value.cause is not None

    def test_get_tokenizer_does_not_cache_failures(self) -> None:
        for _ in range(2):
            with pytest.raises(EmbeddingConfigurationError):
                get_tokenizer("definitely_not_an_encoding")
