"""Compare-and-swap publishing of a single file through the contents API."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict

from ..concurrency import Deadline
from ..errors import ErrorKind, PipelineError
from ..logging import get_logger
from ..models import PublishResult, RemoteFileState, RepositoryRef
from .client import GitHubAPIError, GitHubClient, GitHubTransportError, classify_error


class PublishState(str, Enum):
    READ_CURRENT = "read_current"
    ATTEMPTING = "attempting"
    CONFLICTED = "conflicted"
    COMMITTED = "committed"
    FAILED = "failed"


class OptimisticPublisher:
    """Writes a file only if its remote revision still matches the one last read.

    Every attempt re-reads the target before writing, so a concurrent edit
    between two attempts is never overwritten with a stale revision marker.
    """

    def __init__(self, client: GitHubClient, *, max_attempts: int = 3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.max_attempts = max_attempts
        self.logger = get_logger("publisher")

    def read_current(
        self, ref: RepositoryRef, path: str, *, deadline: Deadline | None = None
    ) -> RemoteFileState:
        """Return the believed remote state of ``path``; a missing file is ``exists=False``."""
        deadline = deadline or Deadline.unbounded()
        try:
            remote = self.client.get_contents(
                ref.owner,
                ref.name,
                path,
                ref.branch,
                timeout=deadline.clamp(self.client.request_timeout),
            )
        except GitHubAPIError as exc:
            if exc.status == 404 and not exc.rate_limited:
                return RemoteFileState(path=path, revision_marker=None, exists=False)
            raise
        return RemoteFileState(path=path, revision_marker=remote.sha or None, exists=True)

    def publish(
        self,
        ref: RepositoryRef,
        path: str,
        content: str,
        *,
        message: str,
        max_attempts: int | None = None,
        deadline: Deadline | None = None,
    ) -> PublishResult:
        deadline = deadline or Deadline.unbounded()
        limit = max_attempts or self.max_attempts
        attempts = 0
        last_conflict = ""

        # READ_CURRENT -> ATTEMPTING -> COMMITTED, or CONFLICTED -> READ_CURRENT
        while True:
            state = PublishState.READ_CURRENT
            if deadline.expired:
                return self._timed_out(attempts, path, state, deadline)
            try:
                remote = self.read_current(ref, path, deadline=deadline)
            except (GitHubAPIError, GitHubTransportError) as exc:
                return self._failed_from(exc, attempts, f"Reading {path} on {ref}", path, state, deadline)
            self.logger.debug(
                "Read %s on %s: exists=%s marker=%s",
                path,
                ref,
                remote.exists,
                (remote.revision_marker or "-")[:12],
            )

            state = PublishState.ATTEMPTING
            if deadline.expired:
                return self._timed_out(attempts, path, state, deadline)
            attempts += 1
            try:
                response = self.client.put_contents(
                    ref.owner,
                    ref.name,
                    path,
                    branch=ref.branch,
                    text=content,
                    message=message,
                    sha=remote.revision_marker if remote.exists else None,
                    timeout=deadline.clamp(self.client.request_timeout),
                )
            except GitHubAPIError as exc:
                if not _is_conflict(exc) or deadline.expired:
                    return self._failed_from(exc, attempts, f"Writing {path} on {ref}", path, state, deadline)
                last_conflict = exc.message
                self.logger.info(
                    "Publish attempt %d/%d for %s conflicted: %s", attempts, limit, path, exc.message
                )
            except GitHubTransportError as exc:
                return self._failed_from(exc, attempts, f"Writing {path} on {ref}", path, state, deadline)
            else:
                return self._committed(response, attempts, path, ref)

            state = PublishState.CONFLICTED
            if attempts >= limit:
                self.logger.warning("Giving up on %s after %d conflicting attempts", path, attempts)
                return self._failed(
                    attempts,
                    ErrorKind.PUBLISH_CONFLICT,
                    f"{path} kept changing remotely; {attempts} publish attempts conflicted"
                    + (f" ({last_conflict})" if last_conflict else ""),
                )

    def _committed(
        self, response: Dict[str, Any], attempts: int, path: str, ref: RepositoryRef
    ) -> PublishResult:
        content = response.get("content") if isinstance(response, dict) else None
        commit = response.get("commit") if isinstance(response, dict) else None
        content = content if isinstance(content, dict) else {}
        commit = commit if isinstance(commit, dict) else {}
        marker = content.get("sha")
        self.logger.info(
            "Committed %s to %s on attempt %d (marker %s)", path, ref, attempts, str(marker or "-")[:12]
        )
        return PublishResult(
            success=True,
            new_revision_marker=str(marker) if marker else None,
            remote_locator=content.get("html_url"),
            commit_locator=commit.get("html_url"),
            attempts=attempts,
        )

    def _timed_out(
        self, attempts: int, path: str, state: PublishState, deadline: Deadline
    ) -> PublishResult:
        reason = "Publishing was cancelled" if deadline.cancelled else "Time budget exhausted while publishing"
        self.logger.warning("%s %s (%s)", reason, path, state.value)
        return self._failed(attempts, ErrorKind.TIMEOUT, f"{reason} {path} ({state.value})")

    def _failed_from(
        self,
        exc: Exception,
        attempts: int,
        context: str,
        path: str,
        state: PublishState,
        deadline: Deadline,
    ) -> PublishResult:
        if deadline.expired:
            # the request timeout was clamped to the remaining budget
            return self._timed_out(attempts, path, state, deadline)
        error: PipelineError = classify_error(exc, context=context)
        self.logger.warning("%s failed: %s", context, error)
        return self._failed(attempts, error.kind, str(error))

    @staticmethod
    def _failed(attempts: int, kind: ErrorKind, message: str) -> PublishResult:
        return PublishResult(success=False, attempts=attempts, error=message, error_kind=kind)


def _is_conflict(exc: GitHubAPIError) -> bool:
    if exc.status == 409:
        return True
    # GitHub answers 422 when a file appeared after it was read as missing and
    # the write therefore carried no sha.
    return exc.status == 422 and "sha" in exc.message.lower()


__all__ = ["OptimisticPublisher", "PublishState"]
