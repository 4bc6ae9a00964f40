"""Text cleaning applied before chunking and before embedding.

Two chunking modes:

* **generic** -- control characters and U+FFFD become spaces, and any
  whitespace-delimited word longer than :data:`MAX_WORD_LENGTH` characters
  is treated as corrupted/binary garbage (base64 blobs, minified payloads)
  and collapsed to a space.  Unicode text is otherwise kept.
* **ASCII-only** -- every character outside printable ASCII, except the
  newline, becomes a space.  Meant for noisy scraped text.

Both modes keep line structure so section and paragraph detection still
work: horizontal whitespace collapses to one space, each line is stripped
and runs of blank lines collapse to a single blank line.

:func:`clean_for_embedding` is the flatter cleaning the embedding clients
apply to every input text right before the API call.
"""

from __future__ import annotations

import re

MAX_WORD_LENGTH = 100

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f\ufffd]")
_CONTROL_CHARS_ALL = re.compile(r"[\x00-\x1f\x7f-\x9f\ufffd]")
_NON_PRINTABLE_ASCII = re.compile(r"[^\x20-\x7e\n]")
_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")
_BLANK_LINE_RUNS = re.compile(r"\n{3,}")
_LONG_WORD = re.compile(r"\S{%d,}" % (MAX_WORD_LENGTH + 1))
_ANY_WHITESPACE = re.compile(r"\s+")


def clean_generic_text(text: str) -> str:
    """Strip control characters and garbage words, normalise whitespace."""
    text = _normalize_newlines(text)
    text = _CONTROL_CHARS.sub(" ", text)
    text = _LONG_WORD.sub(" ", text)
    return _normalize_whitespace(text)


def clean_ascii_only_text(text: str) -> str:
    """Replace everything but printable ASCII and newlines, normalise whitespace."""
    text = _normalize_newlines(text)
    text = _NON_PRINTABLE_ASCII.sub(" ", text)
    return _normalize_whitespace(text)


def clean_text(text: str, ascii_only: bool = False) -> str:
    return clean_ascii_only_text(text) if ascii_only else clean_generic_text(text)


def clean_for_embedding(text: str) -> str:
    """Flatten *text* to a single line with control characters removed."""
    text = _CONTROL_CHARS_ALL.sub(" ", text)
    return _ANY_WHITESPACE.sub(" ", text).strip()


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _normalize_whitespace(text: str) -> str:
    text = _HORIZONTAL_SPACE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _BLANK_LINE_RUNS.sub("\n\n", text)
    return text.strip()
