# =============================================================================
# kbembed/cli/ingest.py - CLI for chunking and embedding documents
# =============================================================================
#
# Supported subcommands:
#
#   chunk  - Clean and chunk a text file, print the ChunkResult as JSON
#   embed  - Chunk a text file, embed, classify and store the chunks, print
#            the BatchEmbeddingResult as JSON
#
# Usage examples:
#   python -m kbembed.cli chunk --file notes.txt --max-size 800
#   python -m kbembed.cli chunk --file notes.txt --tokens --max-size 512
#   python -m kbembed.cli embed --file job.txt --entity-type job \
#       --entity-id 42 --source-type job --tag hiring
# =============================================================================

"""Standalone CLI for the kbembed chunking and embedding pipeline.

Results go to stdout as JSON; logs go to stderr so the output can be piped.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from kbembed.config.loader import DEFAULT_CONFIG_PATH, load_service_config
from kbembed.config.settings import Settings
from kbembed.main import AppContainer, build_container
from kbembed.models.chunking import ChunkingOptions, ChunkResult
from kbembed.models.embedding import EmbeddingOptions
from kbembed.services.chunking.chunker import TextChunker
from kbembed.utils.errors import EmbeddingError, get_error_message
from kbembed.utils.logging import configure_logging


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kbembed",
        description="Chunk and embed documents into the knowledge base.",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help="Path to the YAML config file."
    )
    sub = parser.add_subparsers(dest="command")

    def _add_chunking_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--file", required=True, type=Path, help="UTF-8 text file to read.")
        p.add_argument(
            "--max-size",
            type=_positive_int,
            default=None,
            help="Chunk budget (characters, or tokens with --tokens).",
        )
        p.add_argument(
            "--tokens",
            action="store_true",
            help="Measure the budget in tokens of the configured model.",
        )
        p.add_argument("--context-prefix", default="", help="Text prepended to every chunk.")
        p.add_argument(
            "--no-sections", action="store_true", help="Ignore section structure."
        )
        p.add_argument(
            "--ascii-only", action="store_true", help="Strip everything but printable ASCII."
        )

    chunk_p = sub.add_parser("chunk", help="Chunk a text file and print the result.")
    _add_chunking_args(chunk_p)

    embed_p = sub.add_parser("embed", help="Chunk, embed, classify and store a text file.")
    _add_chunking_args(embed_p)
    embed_p.add_argument("--entity-type", default="document")
    embed_p.add_argument("--entity-id", required=True)
    embed_p.add_argument("--source-type", default="doc")
    embed_p.add_argument("--source-id", default=None)
    embed_p.add_argument("--title", default=None)
    embed_p.add_argument("--tag", action="append", default=[], dest="tags")
    embed_p.add_argument("--job-id", default=None)

    return parser


def _chunking_options(args: argparse.Namespace, settings: Settings) -> ChunkingOptions:
    config = load_service_config(args.config, settings)
    if args.tokens:
        model_config = config.resolve_model()
        return ChunkingOptions.by_tokens(
            args.max_size if args.max_size is not None else model_config.max_tokens,
            model_config.encoding,
            context_prefix=args.context_prefix,
            preserve_sections=not args.no_sections,
            clean_ascii_only=args.ascii_only,
        )
    return ChunkingOptions.by_characters(
        args.max_size if args.max_size is not None else config.chunking.default_size,
        context_prefix=args.context_prefix,
        preserve_sections=not args.no_sections,
        clean_ascii_only=args.ascii_only,
    )


def _handle_chunk(args: argparse.Namespace, settings: Settings) -> int:
    text = args.file.read_text(encoding="utf-8")
    result = TextChunker().chunk(text, _chunking_options(args, settings))
    _print_json(result.model_dump(mode="json"))
    return 0


async def _handle_embed(args: argparse.Namespace, settings: Settings) -> int:
    text = args.file.read_text(encoding="utf-8")
    options = _chunking_options(args, settings)

    container: AppContainer = build_container(settings, config_path=args.config)
    await container.start()
    try:
        chunked: ChunkResult = container.chunker.chunk(text, options)
        if not chunked.chunks:
            print("Error: no text to embed after cleaning.", file=sys.stderr)
            return 1

        result = await container.embedding_service.embed_chunks(
            chunked.chunks,
            entity_type=args.entity_type,
            entity_id=args.entity_id,
            source_type=args.source_type,
            source_id=args.source_id,
            options=EmbeddingOptions(title=args.title, tags=args.tags, job_id=args.job_id),
        )
    finally:
        await container.aclose()

    _print_json(result.model_dump(mode="json"))
    return 0 if result.total_failed == 0 else 2


def _print_json(data: object) -> None:
    json.dump(data, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.  Returns the process exit code.

    0 = success, 1 = usage or configuration error, 2 = some chunks failed.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    # Load all configuration from environment variables and .env file.
    settings = Settings()
    configure_logging(
        log_level=settings.log_level,
        json_output=(settings.app_env == "production"),
    )

    try:
        if args.command == "chunk":
            return _handle_chunk(args, settings)
        return asyncio.run(_handle_embed(args, settings))
    except EmbeddingError as exc:
        print(f"Error: {get_error_message(exc)}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
