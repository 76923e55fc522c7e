"""Tests for the FastAPI service mode."""

from __future__ import annotations

import asyncio
import threading

import pytest
from fastapi.testclient import TestClient

from echodocs.concurrency import Deadline
from echodocs.config import SynthesisOptions
from echodocs.errors import ConfigError, ErrorKind
from echodocs.models import (
    Credentials,
    PipelineOutcome,
    PipelineStats,
    PublishResult,
    RepositoryRef,
    SynthesizedDocument,
)
from echodocs.orchestrator import PipelineOrchestrator
from echodocs.service import create_app
from echodocs.service.app import run_cancellable
from tests._fixtures.fakes import ScriptedInference

HEADERS = {"Authorization": "Bearer ghp_request_token", "X-Inference-Key": "sk-request-key"}


class _StubOrchestrator:
    def __init__(self, outcome: PipelineOutcome | None = None) -> None:
        self.calls: list[dict[str, object]] = []
        self.outcome = outcome

    def default_options(self, **overrides) -> SynthesisOptions:
        return SynthesisOptions.from_config(None, **overrides)

    def new_deadline(self, options: SynthesisOptions) -> Deadline:
        return Deadline(options.overall_timeout)

    def synthesize(
        self,
        ref: RepositoryRef,
        credentials: Credentials,
        target_path: str | None = None,
        options: SynthesisOptions | None = None,
        *,
        owner_user: str | None = None,
        deadline: Deadline | None = None,
    ) -> PipelineOutcome:
        self.calls.append(
            {
                "deadline": deadline,
                "ref": ref,
                "credentials": credentials,
                "target_path": target_path,
                "options": options,
                "owner_user": owner_user,
            }
        )
        if self.outcome is not None:
            return self.outcome
        document = SynthesizedDocument(
            title="User Manual for octo/demo",
            body="# User Manual for octo/demo\n",
            source_ref=ref,
            document_kind=options.document_kind if options else "user_manual",
        )
        publish = PublishResult(
            success=True,
            new_revision_marker="abc",
            remote_locator="https://github.com/octo/demo/blob/main/USER_MANUAL.md",
            attempts=1,
        )
        return PipelineOutcome.full_success(document, publish, stats=PipelineStats(files_total=2))


@pytest.fixture
def orchestrator() -> _StubOrchestrator:
    return _StubOrchestrator()


@pytest.fixture
def client(orchestrator: _StubOrchestrator) -> TestClient:
    return TestClient(create_app(lambda: orchestrator))


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_synthesize_returns_structured_outcome(client: TestClient, orchestrator: _StubOrchestrator) -> None:
    response = client.post(
        "/synthesize",
        json={
            "repository": "octo/demo",
            "branch": "dev",
            "document_kind": "technical_overview",
            "target_path": "docs/OVERVIEW.md",
            "owner_user": "alice",
            "max_publish_retries": 5,
            "selection_mode": "full",
        },
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "full_success"
    assert body["publish"]["new_revision_marker"] == "abc"
    assert body["document"]["branch"] == "dev"
    assert body["stats"]["files_total"] == 2

    call = orchestrator.calls[0]
    assert call["ref"] == RepositoryRef("octo", "demo", "dev")
    assert call["credentials"] == Credentials("ghp_request_token", "sk-request-key")
    assert call["target_path"] == "docs/OVERVIEW.md"
    assert call["owner_user"] == "alice"
    assert call["options"].max_publish_retries == 5
    assert call["options"].selection_mode == "full"
    assert call["options"].document_kind == "technical_overview"


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer ghp_only"},
        {"X-Inference-Key": "sk-only"},
        {"Authorization": "Basic abc", "X-Inference-Key": "sk"},
    ],
)
def test_missing_credentials_are_rejected(client: TestClient, orchestrator, headers) -> None:
    response = client.post("/synthesize", json={"repository": "octo/demo"}, headers=headers)

    assert response.status_code == 401
    assert orchestrator.calls == []


def test_malformed_repository_is_invalid_request(client: TestClient, orchestrator) -> None:
    response = client.post("/synthesize", json={"repository": "not-a-repo"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "failure"
    assert response.json()["error_kind"] == "invalid_request"
    assert orchestrator.calls == []


def test_invalid_option_is_invalid_request(client: TestClient) -> None:
    response = client.post(
        "/synthesize", json={"repository": "octo/demo", "max_tokens_per_chunk": 0}, headers=HEADERS
    )

    assert response.json()["error_kind"] == "invalid_request"


def test_pipeline_failure_is_reported_with_200() -> None:
    outcome = PipelineOutcome.failure(ErrorKind.REF_NOT_FOUND, "Ref 'dev' not found in octo/demo")
    client = TestClient(create_app(lambda: _StubOrchestrator(outcome)))

    response = client.post("/synthesize", json={"repository": "octo/demo"}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "failure"
    assert body["error_kind"] == "ref_not_found"
    assert body["document"] is None


def test_each_request_gets_its_own_deadline(client: TestClient, orchestrator) -> None:
    client.post("/synthesize", json={"repository": "octo/demo"}, headers=HEADERS)
    client.post("/synthesize", json={"repository": "octo/demo"}, headers=HEADERS)

    first, second = (call["deadline"] for call in orchestrator.calls)
    assert isinstance(first, Deadline)
    assert first is not second
    assert not first.cancelled


def test_broken_service_configuration_is_reported_as_outcome() -> None:
    def broken_factory():
        raise ConfigError("llm.request_timeout must be a number")

    client = TestClient(create_app(broken_factory))

    response = client.post("/synthesize", json={"repository": "octo/demo"}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "failure"
    assert body["error_kind"] == "invalid_request"
    assert "llm.request_timeout" in body["message"]


def test_abandoned_request_stops_the_run_before_publishing(github, chunker, ref) -> None:
    github.add_file("README.md", "# Demo\nA small demo project.\n")
    summarising = threading.Event()
    release = threading.Event()

    def stall(request):
        summarising.set()
        release.wait(5.0)
        return None

    inference = ScriptedInference(chunk_failure=stall)
    orchestrator = PipelineOrchestrator(
        client_factory=github.client, runner_factory=inference.runner, chunker=chunker
    )
    options = orchestrator.default_options()
    deadline = orchestrator.new_deadline(options)
    outcomes: list[PipelineOutcome] = []

    def run() -> PipelineOutcome:
        outcome = orchestrator.synthesize(
            ref, Credentials("ghp_request_token", "sk-request-key"), None, options, deadline=deadline
        )
        outcomes.append(outcome)
        return outcome

    async def caller_gives_up() -> None:
        task = asyncio.ensure_future(run_cancellable(run, deadline))
        await asyncio.get_running_loop().run_in_executor(None, summarising.wait, 5.0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        release.set()

    asyncio.run(caller_gives_up())

    assert deadline.cancelled
    assert outcomes[0].status.value == "failure"
    assert outcomes[0].error_kind is ErrorKind.TIMEOUT
    assert github.puts == 0
    assert inference.assembly_requests == []
