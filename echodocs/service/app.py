"""FastAPI application entrypoint for echodocs service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..concurrency import Deadline
from ..config import load_config
from ..errors import ConfigError, ErrorKind
from ..models import Credentials, PipelineOutcome, RepositoryRef
from ..orchestrator import PipelineOrchestrator
from ..stores.documents import JsonDocumentStore


class SynthesizeRequest(BaseModel):
    repository: str
    branch: str = "main"
    document_kind: Optional[str] = None
    target_path: Optional[str] = None
    owner_user: Optional[str] = None
    selection_mode: Optional[str] = None
    max_tokens_per_chunk: Optional[int] = None
    max_file_size_bytes: Optional[int] = None
    max_publish_retries: Optional[int] = None
    overall_timeout: Optional[float] = None
    commit_message: Optional[str] = None
    include_failed_chunks: Optional[bool] = None


class DocumentPayload(BaseModel):
    title: str
    body: str
    document_kind: str
    placeholder: bool
    repository: str
    branch: str


class PublishPayload(BaseModel):
    success: bool
    new_revision_marker: Optional[str] = None
    remote_locator: Optional[str] = None
    commit_locator: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None


class SynthesizeResponse(BaseModel):
    status: str
    message: str
    error_kind: Optional[str] = None
    document: Optional[DocumentPayload] = None
    publish: Optional[PublishPayload] = None
    stats: Dict[str, Any] = {}


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> PipelineOrchestrator:
    config = load_config()
    store = JsonDocumentStore(config.store_path) if config.store_path else None
    return PipelineOrchestrator(config, document_store=store)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_app(
    orchestrator_factory: Callable[[], PipelineOrchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing the synthesize operation."""

    app = FastAPI(title="EchoDocs Service", version="1.0.0")

    async def get_orchestrator() -> PipelineOrchestrator:
        return orchestrator_factory()

    @app.exception_handler(ConfigError)
    async def config_error(request: Request, exc: ConfigError) -> JSONResponse:
        outcome = PipelineOutcome.failure(ErrorKind.INVALID_REQUEST, f"Service configuration is invalid: {exc}")
        return JSONResponse(status_code=200, content=jsonable_encoder(_to_response(outcome)))

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/synthesize", response_model=SynthesizeResponse)
    async def synthesize(
        payload: SynthesizeRequest,
        authorization: Optional[str] = Header(default=None),
        x_inference_key: Optional[str] = Header(default=None),
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    ) -> SynthesizeResponse:
        credentials = Credentials(
            github_token=_bearer_token(authorization),
            inference_api_key=(x_inference_key or "").strip() or None,
        )
        missing = credentials.missing()
        if missing:
            raise HTTPException(status_code=401, detail=f"Missing credentials: {', '.join(missing)}")

        try:
            ref = RepositoryRef.parse(payload.repository, payload.branch)
            options = orchestrator.default_options(
                document_kind=payload.document_kind,
                selection_mode=payload.selection_mode,
                max_tokens_per_chunk=payload.max_tokens_per_chunk,
                max_file_size_bytes=payload.max_file_size_bytes,
                max_publish_retries=payload.max_publish_retries,
                overall_timeout=payload.overall_timeout,
                commit_message=payload.commit_message,
                include_failed_chunks=payload.include_failed_chunks,
            )
        except (ValueError, ConfigError) as exc:
            return _to_response(PipelineOutcome.failure(ErrorKind.INVALID_REQUEST, str(exc)))

        deadline = orchestrator.new_deadline(options)

        def _run_synthesize() -> PipelineOutcome:
            return orchestrator.synthesize(
                ref,
                credentials,
                payload.target_path,
                options,
                owner_user=payload.owner_user,
                deadline=deadline,
            )

        outcome = await run_cancellable(_run_synthesize, deadline)
        return _to_response(outcome)

    return app


async def run_cancellable(call: Callable[[], PipelineOutcome], deadline: Deadline) -> PipelineOutcome:
    """Run a blocking pipeline call in the default executor.

    Cancelling the awaiting task (a client disconnect or a server shutdown)
    cancels ``deadline`` so the worker thread stops before publishing.
    """
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, call)
    except asyncio.CancelledError:
        deadline.cancel()
        raise


def _to_response(outcome: PipelineOutcome) -> SynthesizeResponse:
    data = outcome.to_dict()
    return SynthesizeResponse(
        status=data["status"],
        message=data["message"],
        error_kind=data["error_kind"],
        document=DocumentPayload(**data["document"]) if data["document"] else None,
        publish=PublishPayload(**data["publish"]) if data["publish"] else None,
        stats=data["stats"],
    )


def run_service(host: str = "0.0.0.0", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)
