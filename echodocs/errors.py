"""Error taxonomy shared by every pipeline stage."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable failure categories surfaced in pipeline outcomes."""

    REF_NOT_FOUND = "ref_not_found"
    ACCESS_DENIED = "access_denied"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    SELECTION_EMPTY = "selection_empty"
    CHUNK_SUMMARY_ERROR = "chunk_summary_error"
    ASSEMBLY_FAILED = "assembly_failed"
    PUBLISH_CONFLICT = "publish_conflict"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    TIMEOUT = "timeout"
    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_REQUEST = "invalid_request"
    BINARY_CONTENT = "binary_content"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


class PipelineError(RuntimeError):
    """Base class for failures that abort a stage of the pipeline."""

    kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class RefNotFound(PipelineError):
    kind = ErrorKind.REF_NOT_FOUND


class AccessDenied(PipelineError):
    kind = ErrorKind.ACCESS_DENIED


class UpstreamUnavailable(PipelineError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class SelectionEmpty(PipelineError):
    kind = ErrorKind.SELECTION_EMPTY


class AssemblyFailed(PipelineError):
    kind = ErrorKind.ASSEMBLY_FAILED


class PipelineTimeout(PipelineError):
    kind = ErrorKind.TIMEOUT


class MissingCredentials(PipelineError):
    kind = ErrorKind.MISSING_CREDENTIALS


__all__ = [
    "AccessDenied",
    "AssemblyFailed",
    "ConfigError",
    "ErrorKind",
    "MissingCredentials",
    "PipelineError",
    "PipelineTimeout",
    "RefNotFound",
    "SelectionEmpty",
    "UpstreamUnavailable",
]
