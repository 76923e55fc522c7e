"""Core data models shared across echodocs pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ErrorKind


@dataclass(frozen=True)
class RepositoryRef:
    """Identifies the repository and branch a pipeline run targets."""

    owner: str
    name: str
    branch: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, full_name: str, branch: str) -> "RepositoryRef":
        """Build a ref from an ``owner/name`` string."""
        owner, sep, name = full_name.strip().strip("/").partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Repository must be given as 'owner/name', got {full_name!r}")
        return cls(owner=owner, name=name, branch=branch)

    def __str__(self) -> str:
        return f"{self.full_name}@{self.branch}"


@dataclass(frozen=True)
class TreeEntry:
    """A single path from the recursive repository listing."""

    path: str
    kind: str
    content_id: str
    size: int = 0

    FILE = "file"
    DIRECTORY = "directory"

    @property
    def is_file(self) -> bool:
        return self.kind == self.FILE


@dataclass
class FileCandidate:
    """Fetched file text; ``raw_text`` stays an empty string when the fetch failed."""

    path: str
    size: int
    raw_text: str
    content_id: str
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class TokenChunk:
    """A token-bounded slice of one file."""

    path: str
    chunk_index: int
    total_chunks: int
    token_slice: Tuple[int, ...]
    text: str

    @property
    def chunk_number(self) -> int:
        return self.chunk_index + 1


@dataclass(frozen=True)
class ChunkSummary:
    """Map-step output for one chunk."""

    path: str
    chunk_index: int
    total_chunks: int
    text: str
    is_error: bool = False

    @property
    def sort_key(self) -> Tuple[str, int]:
        return (self.path, self.chunk_index)


@dataclass(frozen=True)
class SynthesizedDocument:
    """Reduce-step output: the markdown document to publish."""

    title: str
    body: str
    source_ref: RepositoryRef
    document_kind: str
    placeholder: bool = False


@dataclass(frozen=True)
class RemoteFileState:
    """Believed current state of the publish target on the remote branch."""

    path: str
    revision_marker: Optional[str]
    exists: bool


@dataclass(frozen=True)
class PublishResult:
    """Terminal result of an optimistic publish."""

    success: bool
    new_revision_marker: Optional[str] = None
    remote_locator: Optional[str] = None
    commit_locator: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "new_revision_marker": self.new_revision_marker,
            "remote_locator": self.remote_locator,
            "commit_locator": self.commit_locator,
            "attempts": self.attempts,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


class OutcomeStatus(str, Enum):
    FULL_SUCCESS = "full_success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"


@dataclass
class PipelineStats:
    """Counters collected while a pipeline run progresses."""

    files_total: int = 0
    files_selected: int = 0
    files_loaded: int = 0
    files_failed: int = 0
    chunks_total: int = 0
    chunks_failed: int = 0
    failed_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files_total": self.files_total,
            "files_selected": self.files_selected,
            "files_loaded": self.files_loaded,
            "files_failed": self.files_failed,
            "chunks_total": self.chunks_total,
            "chunks_failed": self.chunks_failed,
            "failed_paths": list(self.failed_paths),
        }


@dataclass(frozen=True)
class PipelineOutcome:
    """Single structured result returned to callers of ``synthesize``."""

    status: OutcomeStatus
    message: str
    document: Optional[SynthesizedDocument] = None
    publish: Optional[PublishResult] = None
    error_kind: Optional[ErrorKind] = None
    stats: PipelineStats = field(default_factory=PipelineStats)

    @classmethod
    def full_success(
        cls,
        document: SynthesizedDocument,
        publish: PublishResult,
        *,
        stats: PipelineStats,
    ) -> "PipelineOutcome":
        return cls(
            status=OutcomeStatus.FULL_SUCCESS,
            message=f"{document.title} generated and published.",
            document=document,
            publish=publish,
            stats=stats,
        )

    @classmethod
    def partial_success(
        cls,
        document: SynthesizedDocument,
        publish: PublishResult,
        *,
        stats: PipelineStats,
    ) -> "PipelineOutcome":
        detail = f": {publish.error}" if publish.error else "."
        return cls(
            status=OutcomeStatus.PARTIAL_SUCCESS,
            message=f"{document.title} generated, but publishing failed{detail}",
            document=document,
            publish=publish,
            error_kind=publish.error_kind or ErrorKind.UPSTREAM_UNAVAILABLE,
            stats=stats,
        )

    @classmethod
    def failure(
        cls,
        error_kind: ErrorKind,
        message: str,
        *,
        document: SynthesizedDocument | None = None,
        stats: PipelineStats | None = None,
    ) -> "PipelineOutcome":
        return cls(
            status=OutcomeStatus.FAILURE,
            message=message,
            document=document,
            error_kind=error_kind,
            stats=stats or PipelineStats(),
        )

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.FULL_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        document = None
        if self.document is not None:
            document = {
                "title": self.document.title,
                "body": self.document.body,
                "document_kind": self.document.document_kind,
                "placeholder": self.document.placeholder,
                "repository": self.document.source_ref.full_name,
                "branch": self.document.source_ref.branch,
            }
        return {
            "status": self.status.value,
            "message": self.message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "document": document,
            "publish": self.publish.to_dict() if self.publish else None,
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class Credentials:
    """Per-invocation secrets; never cached on shared objects."""

    github_token: Optional[str]
    inference_api_key: Optional[str]

    def missing(self) -> List[str]:
        names = []
        if not self.github_token:
            names.append("github_token")
        if not self.inference_api_key:
            names.append("inference_api_key")
        return names

    def __repr__(self) -> str:
        return (
            "Credentials(github_token="
            f"{'***' if self.github_token else None}, inference_api_key="
            f"{'***' if self.inference_api_key else None})"
        )
