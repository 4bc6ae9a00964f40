"""Budget-bounded text chunking with section and paragraph preservation.

Splits cleaned text into chunks whose size, measured either in characters
or in tokens of a tiktoken encoding, never exceeds the configured budget.
The ``context_prefix`` is prepended to every chunk and counted against that
budget.

The packing works top-down, falling back one level only when a unit alone
is too large:

1. **Sections / paragraphs** -- structured text (``Label:`` lines, numbered
   items, ALL-CAPS headings, markdown headings) is split into sections, so a
   heading always travels with the content that follows it.  Unstructured
   text is split on blank lines.
2. **Sentences** -- an oversized unit is split at sentence boundaries using
   an abbreviation-aware splitter that avoids breaking on "Dr.", "vs.", etc.
3. **Windows** -- an oversized sentence is cut into token windows (token
   budget) or word windows (character budget).  A single word longer than
   the whole budget is truncated; that is the only case where content is
   lost, and it is counted in ``ChunkMetadata.truncated_units``.

Sizes are always measured on the actual candidate string
``prefix + joined units`` rather than summed per unit, so BPE merges across
joins can never push a chunk over its token budget.
"""

from __future__ import annotations

import re
from typing import Callable

import structlog

from kbembed.config.model_registry import DEFAULT_MODEL, get_model_config
from kbembed.models.chunking import (
    BudgetKind,
    ChunkingOptions,
    ChunkMetadata,
    ChunkResult,
    ChunkStrategy,
)
from kbembed.services.chunking.text_cleaner import clean_text
from kbembed.services.chunking.tokenizer import Tokenizer, get_tokenizer
from kbembed.utils.errors import EmbeddingConfigurationError

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT trigger a sentence split.
# "Dr. Smith" should remain one sentence, not split at the period.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Ave",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "inc",
        "ltd",
        "co",
        "e.g",
        "i.e",
    }
)
_ABBREVIATION_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True)) + r")\."
)
_SENTENCE_END = re.compile(r"[.!?](?:\s|$)")

_LABEL_LINE = re.compile(r"^[A-Za-z][\w &/()'-]{0,60}:$")
_NUMBERED_ITEM = re.compile(r"^\d+[.)]\s+\S")
_CAPS_HEADING = re.compile(r"^[A-Z][A-Z0-9 &/()'-]{2,}:?$")
_MARKDOWN_HEADING = re.compile(r"^#{1,6}\s+\S")

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")

_UNIT_JOINER = "\n\n"
_SENTENCE_JOINER = " "
# Token margin kept when accepting a part on the summed estimate alone.
_MERGE_SLACK = 2

_STRATEGIES = {
    (BudgetKind.CHARACTERS, True): ChunkStrategy.SECTION_AWARE,
    (BudgetKind.CHARACTERS, False): ChunkStrategy.PARAGRAPH_AWARE,
    (BudgetKind.TOKENS, True): ChunkStrategy.TOKEN_SECTION_AWARE,
    (BudgetKind.TOKENS, False): ChunkStrategy.TOKEN_PARAGRAPH_AWARE,
}

TokenizerFactory = Callable[[str], Tokenizer]


# ---------------------------------------------------------------------------
# Structure detection / splitting
# ---------------------------------------------------------------------------


def _is_heading(line: str) -> bool:
    line = line.strip()
    return bool(
        _LABEL_LINE.match(line) or _CAPS_HEADING.match(line) or _MARKDOWN_HEADING.match(line)
    )


def has_sections(text: str) -> bool:
    """Return True when *text* has at least one heading or numbered item line."""
    return any(
        _is_heading(line) or _NUMBERED_ITEM.match(line.strip()) for line in text.split("\n")
    )


def split_sections(text: str) -> list[str]:
    """Split on blank lines and before every heading line."""
    sections: list[str] = []
    current: list[str] = []
    for line in text.split("\n"):
        if not line.strip():
            if current:
                sections.append("\n".join(current))
                current = []
            continue
        if current and _is_heading(line):
            sections.append("\n".join(current))
            current = []
        current.append(line)
    if current:
        sections.append("\n".join(current))
    return sections


def split_paragraphs(text: str) -> list[str]:
    """Split *text* on double-newlines, discarding blanks."""
    parts = _PARAGRAPH_BREAK.split(text)
    return [p.strip() for p in parts if p.strip()]


def split_sentences(text: str) -> list[str]:
    """Split *text* at sentence boundaries while respecting abbreviations.

    Handles ``.``, ``!``, ``?`` followed by whitespace or end-of-string.
    Periods after known abbreviations are masked with ``\\x00`` first (same
    length, so indices stay aligned with the original text).
    """
    masked = _ABBREVIATION_PATTERN.sub(lambda m: m.group(1) + "\x00", text)

    sentences: list[str] = []
    last = 0
    for match in _SENTENCE_END.finditer(masked):
        end = match.end()
        sentence = text[last:end].strip()
        if sentence:
            sentences.append(sentence)
        last = end

    # Trailing text that didn't end with punctuation.
    remainder = text[last:].strip()
    if remainder:
        sentences.append(remainder)

    return sentences if sentences else [text]


# ---------------------------------------------------------------------------
# Packing
# ---------------------------------------------------------------------------


class _PackingRun:
    """Greedy packer for one chunking call.

    Holds the budget, the prefix and the measuring function, and counts
    truncations so the caller can report them in :class:`ChunkMetadata`.
    """

    def __init__(
        self,
        measure: Callable[[str], int],
        budget: int,
        prefix: str,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        self._measure = measure
        self._budget = budget
        self._prefix = prefix
        self._tokenizer = tokenizer
        self._prefix_size = measure(prefix)
        self._available = budget - self._prefix_size
        # Character sizes add up exactly; BPE can merge across a join.
        self._slack = _MERGE_SLACK if tokenizer is not None else 0
        self.truncated_units = 0

    def fits(self, body: str) -> bool:
        return self._measure(self._prefix + body) <= self._budget

    def pack_units(self, units: list[str]) -> list[str]:
        return self._pack(units, _UNIT_JOINER, self._split_oversized_unit)

    def _pack(
        self,
        parts: list[str],
        joiner: str,
        split_oversized: Callable[[str], list[str]],
    ) -> list[str]:
        """Greedily accumulate *parts* into chunks that stay within budget.

        ``size`` is the summed size of the open chunk's body, so a part is
        usually accepted without re-measuring everything gathered so far.
        The exact candidate string is measured only once the estimate comes
        within the margin of the budget, and :meth:`_flush` checks each chunk
        again before emitting it.
        """
        chunks: list[str] = []
        current: list[str] = []
        size = 0
        joiner_size = self._measure(joiner)

        for part in parts:
            if not self.fits(part):
                # Flush anything accumulated so far before switching strategy.
                if current:
                    self._flush(current, joiner, chunks)
                    current, size = [], 0
                chunks.extend(split_oversized(part))
                continue

            part_size = self._measure(part)
            if not current:
                current, size = [part], part_size
                continue

            estimate = size + joiner_size + part_size
            if estimate + self._slack <= self._available:
                current.append(part)
                size = estimate
                continue

            exact = self._measure(self._prefix + joiner.join([*current, part]))
            if exact <= self._budget:
                current.append(part)
                size = exact - self._prefix_size
            else:
                self._flush(current, joiner, chunks)
                current, size = [part], part_size

        if current:
            self._flush(current, joiner, chunks)
        return chunks

    def _flush(self, parts: list[str], joiner: str, chunks: list[str]) -> None:
        body = joiner.join(parts)
        if len(parts) == 1 or self.fits(body):
            chunks.append(self._prefix + body)
            return

        # The estimate undershot; repack these parts with exact measuring.
        current = [parts[0]]
        for part in parts[1:]:
            if self.fits(joiner.join([*current, part])):
                current.append(part)
            else:
                chunks.append(self._emit(current, joiner))
                current = [part]
        chunks.append(self._emit(current, joiner))

    def _emit(self, parts: list[str], joiner: str) -> str:
        return self._prefix + joiner.join(parts)

    def _split_oversized_unit(self, unit: str) -> list[str]:
        return self._pack(split_sentences(unit), _SENTENCE_JOINER, self._split_oversized_sentence)

    def _split_oversized_sentence(self, sentence: str) -> list[str]:
        if self._tokenizer is not None:
            return self._token_windows(sentence)
        return self._word_windows(sentence)

    def _word_windows(self, sentence: str) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []

        for word in sentence.split():
            if not self.fits(word):
                if current:
                    chunks.append(self._emit(current, _SENTENCE_JOINER))
                    current = []
                self._record_truncation(len(word))
                chunks.append(self._prefix + word[: self._available])
                continue
            if current and not self.fits(_SENTENCE_JOINER.join([*current, word])):
                chunks.append(self._emit(current, _SENTENCE_JOINER))
                current = []
            current.append(word)

        if current:
            chunks.append(self._emit(current, _SENTENCE_JOINER))
        return chunks

    def _token_windows(self, sentence: str) -> list[str]:
        assert self._tokenizer is not None
        tokens = self._tokenizer.encode(sentence)
        chunks: list[str] = []
        start = 0

        while start < len(tokens):
            end = min(start + self._available, len(tokens))
            piece = self._tokenizer.decode(tokens[start:end])
            # Re-encoding with the prefix can merge differently; shrink until it fits.
            while end - start > 1 and not self.fits(piece):
                end -= 1
                piece = self._tokenizer.decode(tokens[start:end])
            if not self.fits(piece):
                self._record_truncation(end - start)

            stripped = piece.strip()
            if stripped:
                chunks.append(self._prefix + (stripped if self.fits(stripped) else piece))
            start = end

        return chunks

    def _record_truncation(self, unit_size: int) -> None:
        self.truncated_units += 1
        logger.warning(
            "chunk_unit_truncated",
            unit_size=unit_size,
            budget=self._budget,
            available=self._available,
        )


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------


class TextChunker:
    """Splits text into budget-bounded chunks.

    Parameters
    ----------
    tokenizer_factory:
        Returns a :class:`Tokenizer` for an encoding name.  Defaults to the
        cached tiktoken adapter; tests inject a deterministic stand-in.
    """

    def __init__(self, tokenizer_factory: TokenizerFactory = get_tokenizer) -> None:
        self._tokenizer_factory = tokenizer_factory

    def chunk(self, text: str, options: ChunkingOptions | None = None) -> ChunkResult:
        """Clean *text* and split it into chunks within the budget of *options*.

        Parameters
        ----------
        text:
            Raw input text.
        options:
            Budget and cleaning options; defaults to an 800-character budget.

        Returns
        -------
        ChunkResult
            Chunks in document order.  Empty or whitespace-only input returns
            an empty result.

        Raises
        ------
        EmbeddingConfigurationError
            If the encoding is unknown (``config_key="encoding"``) or the
            context prefix alone fills the budget
            (``config_key="context_prefix"``).
        """
        options = options or ChunkingOptions()

        # Resolve the tokenizer before touching the text so a bad encoding
        # fails without doing any chunking work.
        tokenizer: Tokenizer | None = None
        if options.budget_kind is BudgetKind.TOKENS:
            tokenizer = self._tokenizer_factory(options.encoding or "")
            measure: Callable[[str], int] = lambda s: len(tokenizer.encode(s))  # noqa: E731
        else:
            measure = len

        if options.context_prefix and measure(options.context_prefix) >= options.max_size:
            raise EmbeddingConfigurationError(
                f"Context prefix consumes the whole chunk budget of {options.max_size} "
                f"{options.budget_kind.value}",
                config_key="context_prefix",
            )

        cleaned = clean_text(text or "", ascii_only=options.clean_ascii_only)
        sectioned = options.preserve_sections and has_sections(cleaned)
        strategy = _STRATEGIES[(options.budget_kind, sectioned)]

        chunks: list[str] = []
        truncated = 0
        if cleaned:
            run = _PackingRun(measure, options.max_size, options.context_prefix, tokenizer)
            units = split_sections(cleaned) if sectioned else split_paragraphs(cleaned)
            chunks = run.pack_units(units)
            truncated = run.truncated_units

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            strategy=strategy.value,
            budget=options.max_size,
            budget_kind=options.budget_kind.value,
            original_length=len(text or ""),
            cleaned_length=len(cleaned),
        )
        return ChunkResult(
            chunks=chunks,
            total_chunks=len(chunks),
            metadata=ChunkMetadata(
                original_length=len(text or ""),
                cleaned_length=len(cleaned),
                strategy=strategy,
                truncated_units=truncated,
            ),
        )


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------


def chunk_text(text: str, max_chunk_size: int = 800, chunker: TextChunker | None = None) -> list[str]:
    """Character-budget chunking with default options."""
    chunker = chunker or TextChunker()
    return chunker.chunk(text, ChunkingOptions.by_characters(max_chunk_size)).chunks


def chunk_text_by_tokens(
    text: str,
    max_tokens: int,
    encoding: str,
    *,
    context_prefix: str = "",
    preserve_sections: bool = True,
    clean_ascii_only: bool = False,
    chunker: TextChunker | None = None,
) -> list[str]:
    """Token-budget chunking."""
    chunker = chunker or TextChunker()
    options = ChunkingOptions.by_tokens(
        max_tokens,
        encoding,
        context_prefix=context_prefix,
        preserve_sections=preserve_sections,
        clean_ascii_only=clean_ascii_only,
    )
    return chunker.chunk(text, options).chunks


def chunk_text_for_model(
    text: str,
    model: str = DEFAULT_MODEL,
    *,
    fallback_chunk_size: int = 800,
    chunker: TextChunker | None = None,
) -> list[str]:
    """Chunk *text* with the token limit and encoding of *model*.

    Falls back to character chunking of *fallback_chunk_size* when the
    model's tokenizer cannot be initialised.  An unknown model still raises.
    """
    model_config = get_model_config(model)
    chunker = chunker or TextChunker()
    try:
        return chunk_text_by_tokens(
            text, model_config.max_tokens, model_config.encoding, chunker=chunker
        )
    except EmbeddingConfigurationError as exc:
        if exc.config_key != "encoding":
            raise
        logger.warning(
            "tokenizer_unavailable_falling_back",
            model=model,
            encoding=model_config.encoding,
            fallback_chunk_size=fallback_chunk_size,
            error=str(exc),
        )
        return chunk_text(text, fallback_chunk_size, chunker=chunker)
