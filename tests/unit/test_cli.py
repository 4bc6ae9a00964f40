"""Unit tests for the kbembed CLI (kbembed.cli.ingest)."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog
from conftest import FakeEmbeddingClient, InMemoryEmbeddingStore, StubClassifier

from kbembed.cli.ingest import main
from kbembed.config.settings import Settings
from kbembed.main import build_container
from kbembed.utils.errors import EmbeddingAPIError


@pytest.fixture(autouse=True)
def _quiet_logging():
    # Keep structlog bound to the real stderr, not capsys.
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(file=sys.stderr))
    try:
        with patch("kbembed.cli.ingest.configure_logging"):
            yield
    finally:
        structlog.reset_defaults()


@pytest.fixture
def text_file(tmp_path: Path) -> Path:
    path = tmp_path / "job.txt"
    path.write_text(
        "Requirements:\nPython experience.\nSQL.\n\nResponsibilities:\nBuild the API.\n",
        encoding="utf-8",
    )
    return path


def _container(config_path: Path, client=None, store=None):
    settings = Settings(_env_file=None, openai_api_key="", tracing_enabled=False)
    return build_container(
        settings,
        config_path=config_path,
        embedding_client=client or FakeEmbeddingClient(),
        store=store or InMemoryEmbeddingStore(),
        classifier=StubClassifier(),
    )


class TestChunkCommand:
    def test_prints_chunk_result(self, capsys, text_file: Path, yaml_config_file: Path) -> None:
        code = main(
            ["--config", str(yaml_config_file), "chunk", "--file", str(text_file), "--max-size", "40"]
        )

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["total_chunks"] == len(data["chunks"]) >= 2
        assert all(len(c) <= 40 for c in data["chunks"])
        assert data["metadata"]["strategy"] == "section-aware"

    def test_context_prefix(self, capsys, text_file: Path, yaml_config_file: Path) -> None:
        code = main(
            [
                "--config",
                str(yaml_config_file),
                "chunk",
                "--file",
                str(text_file),
                "--context-prefix",
                "Job 42: ",
            ]
        )
        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert all(c.startswith("Job 42: ") for c in data["chunks"])

    def test_missing_file(self, capsys, tmp_path: Path, yaml_config_file: Path) -> None:
        code = main(["--config", str(yaml_config_file), "chunk", "--file", str(tmp_path / "nope.txt")])
        assert code == 1
        assert "Error" in capsys.readouterr().err

    @pytest.mark.parametrize("value", ["0", "-5", "ten"])
    def test_rejects_non_positive_max_size(
        self, capsys, value: str, text_file: Path, yaml_config_file: Path
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(
                [
                    "--config",
                    str(yaml_config_file),
                    "chunk",
                    "--file",
                    str(text_file),
                    "--max-size",
                    value,
                ]
            )
        assert exc_info.value.code == 2
        assert "--max-size" in capsys.readouterr().err

    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()


class TestEmbedCommand:
    def test_embeds_and_stores(self, capsys, text_file: Path, yaml_config_file: Path) -> None:
        store = InMemoryEmbeddingStore()
        container = _container(yaml_config_file, store=store)

        with patch("kbembed.cli.ingest.build_container", return_value=container):
            code = main(
                [
                    "--config",
                    str(yaml_config_file),
                    "embed",
                    "--file",
                    str(text_file),
                    "--max-size",
                    "40",
                    "--entity-type",
                    "job",
                    "--entity-id",
                    "42",
                    "--source-type",
                    "job",
                    "--tag",
                    "hiring",
                ]
            )

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["total_failed"] == 0
        assert data["total_successful"] == data["total_processed"] == len(store.rows)
        assert all(row.entity_id == "42" and row.tags == ["hiring"] for row in store.rows)

    def test_partial_failure_exit_code(self, capsys, text_file: Path, yaml_config_file: Path) -> None:
        client = FakeEmbeddingClient(failures={0: EmbeddingAPIError("down", status_code=503)})
        container = _container(yaml_config_file, client=client)

        with patch("kbembed.cli.ingest.build_container", return_value=container):
            code = main(
                [
                    "--config",
                    str(yaml_config_file),
                    "embed",
                    "--file",
                    str(text_file),
                    "--entity-id",
                    "42",
                ]
            )

        assert code == 2
        data = json.loads(capsys.readouterr().out)
        assert data["total_failed"] == data["total_processed"]
        assert all(f["retriable"] for f in data["failed_chunks"])

    def test_configuration_error(self, capsys, text_file: Path, yaml_config_file: Path, monkeypatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "")
        code = main(
            ["--config", str(yaml_config_file), "embed", "--file", str(text_file), "--entity-id", "1"]
        )
        assert code == 1
        assert "OPENAI_API_KEY" in capsys.readouterr().err

    def test_entity_id_required(self, text_file: Path) -> None:
        with pytest.raises(SystemExit):
            main(["embed", "--file", str(text_file)])
