"""CLI behaviour tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from echodocs import cli
from echodocs.cli import _build_parser
from echodocs.config import SynthesisOptions
from echodocs.errors import ErrorKind
from echodocs.models import PipelineOutcome, PipelineStats, PublishResult, RepositoryRef, SynthesizedDocument


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "synthesize", "octo/demo"])
    assert args.verbose is True
    assert args.command == "synthesize"


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["synthesize", "octo/demo", "-v"])
    assert args.verbose is True


def test_cli_parses_synthesize_options() -> None:
    parser = _build_parser()
    args = parser.parse_args(
        [
            "synthesize",
            "octo/demo",
            "--branch",
            "dev",
            "--kind",
            "contributing_guide",
            "--target",
            "docs/CONTRIBUTING.md",
            "--mode",
            "full",
            "--max-tokens-per-chunk",
            "1000",
            "--max-file-size",
            "5000",
            "--max-publish-retries",
            "4",
            "--timeout",
            "90",
        ]
    )
    assert args.branch == "dev"
    assert args.kind == "contributing_guide"
    assert args.target == "docs/CONTRIBUTING.md"
    assert args.mode == "full"
    assert args.max_tokens_per_chunk == 1000
    assert args.max_file_size == 5000
    assert args.max_publish_retries == 4
    assert args.timeout == 90.0


def test_cli_rejects_unknown_kind() -> None:
    with pytest.raises(SystemExit):
        _build_parser().parse_args(["synthesize", "octo/demo", "--kind", "poem"])


def test_cli_serve_defaults() -> None:
    args = _build_parser().parse_args(["serve"])
    assert args.host == "127.0.0.1"
    assert args.port == 8000


class _RecordingOrchestrator:
    instances: list["_RecordingOrchestrator"] = []
    outcome: PipelineOutcome | None = None

    def __init__(self, config, *, document_store=None) -> None:
        self.config = config
        self.document_store = document_store
        self.calls = []
        _RecordingOrchestrator.instances.append(self)

    def default_options(self, **overrides):
        return SynthesisOptions.from_config(self.config, **overrides)

    def synthesize(self, ref, credentials, target_path=None, options=None, *, owner_user=None):
        self.calls.append((ref, credentials, target_path, options, owner_user))
        return type(self).outcome


def _document(ref: RepositoryRef) -> SynthesizedDocument:
    return SynthesizedDocument(title="User Manual", body="# User Manual\n", source_ref=ref, document_kind="user_manual")


@pytest.fixture
def recording(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_env_token")
    monkeypatch.delenv("ECHODOCS_LLM_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env-key")
    monkeypatch.setattr(cli, "PipelineOrchestrator", _RecordingOrchestrator)
    _RecordingOrchestrator.instances = []
    return _RecordingOrchestrator


def test_synthesize_full_success_exits_zero(recording, capsys) -> None:
    ref = RepositoryRef("octo", "demo", "main")
    recording.outcome = PipelineOutcome.full_success(
        _document(ref),
        PublishResult(success=True, remote_locator="https://github.com/octo/demo/blob/main/USER_MANUAL.md"),
        stats=PipelineStats(),
    )

    cli.main(["synthesize", "octo/demo", "--timeout", "30"])

    orchestrator = recording.instances[0]
    called_ref, credentials, target, options, _ = orchestrator.calls[0]
    assert called_ref == ref
    assert credentials.github_token == "ghp_env_token"
    assert credentials.inference_api_key == "sk-env-key"
    assert target is None
    assert options.overall_timeout == 30.0
    assert "USER_MANUAL.md" in capsys.readouterr().out


def test_synthesize_partial_success_exits_two(recording, capsys) -> None:
    ref = RepositoryRef("octo", "demo", "main")
    recording.outcome = PipelineOutcome.partial_success(
        _document(ref),
        PublishResult(success=False, attempts=3, error="kept changing", error_kind=ErrorKind.PUBLISH_CONFLICT),
        stats=PipelineStats(),
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["synthesize", "octo/demo"])

    assert excinfo.value.code == 2
    assert "# User Manual" in capsys.readouterr().out


def test_synthesize_failure_exits_one(recording, capsys) -> None:
    recording.outcome = PipelineOutcome.failure(ErrorKind.ACCESS_DENIED, "credential lacks access")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["synthesize", "octo/demo"])

    assert excinfo.value.code == 1
    assert "access_denied" in capsys.readouterr().err


def test_synthesize_rejects_malformed_repository(recording) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["synthesize", "octo"])

    assert excinfo.value.code == 1
    assert recording.instances == []


def test_synthesize_uses_store_from_config(recording, tmp_path: Path) -> None:
    (tmp_path / ".echodocs.yml").write_text("store:\n  path: docs-store.json\n", encoding="utf-8")
    recording.outcome = PipelineOutcome.failure(ErrorKind.TIMEOUT, "slow")

    with pytest.raises(SystemExit):
        cli.main(["synthesize", "octo/demo", "--owner-user", "alice"])

    orchestrator = recording.instances[0]
    assert orchestrator.document_store is not None
    assert orchestrator.calls[0][4] == "alice"
