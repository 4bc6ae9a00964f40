"""Chunking data models.

``ChunkingOptions`` selects the budget explicitly through :class:`BudgetKind`
rather than by sniffing which optional fields are present.  ``ChunkResult``
is what :class:`~kbembed.services.chunking.chunker.TextChunker` returns.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BudgetKind(str, Enum):  # noqa: UP042
    """Unit in which a chunk budget is measured."""

    CHARACTERS = "characters"
    TOKENS = "tokens"


class ChunkStrategy(str, Enum):  # noqa: UP042
    """Packing strategy reported in :class:`ChunkMetadata`."""

    SECTION_AWARE = "section-aware"
    PARAGRAPH_AWARE = "paragraph-aware"
    TOKEN_SECTION_AWARE = "token-section-aware"
    TOKEN_PARAGRAPH_AWARE = "token-paragraph-aware"


class ChunkingOptions(BaseModel):
    """Options for a single chunking call.

    Exactly one budget is active per call.  ``encoding`` names a tiktoken
    encoding (e.g. ``cl100k_base``) and is required when ``budget_kind`` is
    :attr:`BudgetKind.TOKENS`.
    """

    model_config = ConfigDict(frozen=True)

    budget_kind: BudgetKind = Field(default=BudgetKind.CHARACTERS)
    max_size: int = Field(default=800, gt=0, description="Budget in characters or tokens.")
    encoding: str | None = Field(default=None, description="Tokenizer encoding name.")
    context_prefix: str = Field(
        default="",
        description="Text prepended to every chunk; counted against the budget.",
    )
    preserve_sections: bool = Field(default=True)
    clean_ascii_only: bool = Field(
        default=False,
        description="Replace every non-printable / non-ASCII character with a space.",
    )

    @model_validator(mode="after")
    def _encoding_matches_budget(self) -> ChunkingOptions:
        if self.budget_kind is BudgetKind.TOKENS and not self.encoding:
            msg = "encoding is required for a token budget"
            raise ValueError(msg)
        return self

    @classmethod
    def by_characters(
        cls,
        max_chunk_size: int = 800,
        *,
        context_prefix: str = "",
        preserve_sections: bool = True,
        clean_ascii_only: bool = False,
    ) -> ChunkingOptions:
        return cls(
            budget_kind=BudgetKind.CHARACTERS,
            max_size=max_chunk_size,
            context_prefix=context_prefix,
            preserve_sections=preserve_sections,
            clean_ascii_only=clean_ascii_only,
        )

    @classmethod
    def by_tokens(
        cls,
        max_tokens: int,
        encoding: str,
        *,
        context_prefix: str = "",
        preserve_sections: bool = True,
        clean_ascii_only: bool = False,
    ) -> ChunkingOptions:
        return cls(
            budget_kind=BudgetKind.TOKENS,
            max_size=max_tokens,
            encoding=encoding,
            context_prefix=context_prefix,
            preserve_sections=preserve_sections,
            clean_ascii_only=clean_ascii_only,
        )


class Chunk(BaseModel):
    """A chunk with its position in the chunk sequence."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    text: str


class ChunkMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_length: int = Field(ge=0, description="Character length of the raw input.")
    cleaned_length: int = Field(ge=0, description="Character length after cleaning.")
    strategy: ChunkStrategy
    truncated_units: int = Field(
        default=0,
        ge=0,
        description="Single words longer than the budget that had to be truncated.",
    )


class ChunkResult(BaseModel):
    """Output of one chunking call.  ``total_chunks == len(chunks)`` always."""

    model_config = ConfigDict(frozen=True)

    chunks: list[str] = Field(default_factory=list)
    total_chunks: int = Field(default=0, ge=0)
    metadata: ChunkMetadata

    @model_validator(mode="after")
    def _count_matches(self) -> ChunkResult:
        if self.total_chunks != len(self.chunks):
            msg = f"total_chunks={self.total_chunks} but {len(self.chunks)} chunks present"
            raise ValueError(msg)
        return self

    def indexed(self) -> list[Chunk]:
        """Return the chunks paired with their positions."""
        return [Chunk(index=i, text=text) for i, text in enumerate(self.chunks)]
