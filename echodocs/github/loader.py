"""Fetches selected files with bounded parallelism and screens out binary payloads."""

from __future__ import annotations

import re
from typing import List, Sequence

from ..concurrency import Deadline, run_bounded
from ..errors import ErrorKind, PipelineTimeout
from ..logging import get_logger
from ..models import FileCandidate, RepositoryRef, TreeEntry
from .client import GitHubAPIError, GitHubClient, GitHubTransportError, classify_error

_SUSPICIOUS_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffd]")


def suspicious_ratio(text: str) -> float:
    """Share of control or replacement characters in ``text``."""
    if not text:
        return 0.0
    return len(_SUSPICIOUS_CHARS.findall(text)) / len(text)


class FileContentLoader:
    """Loads decoded text for tree entries; per-file failures never abort the batch."""

    def __init__(
        self,
        client: GitHubClient,
        *,
        max_workers: int = 8,
        binary_threshold: float = 0.01,
    ) -> None:
        self.client = client
        self.max_workers = max_workers
        self.binary_threshold = binary_threshold
        self.logger = get_logger("loader")

    def load(
        self,
        ref: RepositoryRef,
        entries: Sequence[TreeEntry],
        *,
        deadline: Deadline | None = None,
    ) -> List[FileCandidate]:
        deadline = deadline or Deadline.unbounded()
        candidates = run_bounded(
            list(entries),
            lambda entry: self._load_one(ref, entry, deadline),
            max_workers=self.max_workers,
            deadline=deadline,
            stage="content loading",
        )
        failed = sum(1 for candidate in candidates if candidate.failed)
        self.logger.info(
            "Loaded %d of %d files from %s (%d skipped)",
            len(candidates) - failed,
            len(candidates),
            ref,
            failed,
        )
        return candidates

    def _load_one(self, ref: RepositoryRef, entry: TreeEntry, deadline: Deadline) -> FileCandidate:
        try:
            remote = self.client.get_contents(
                ref.owner,
                ref.name,
                entry.path,
                ref.branch,
                timeout=deadline.clamp(self.client.request_timeout),
            )
        except (GitHubAPIError, GitHubTransportError) as exc:
            if deadline.expired:
                raise PipelineTimeout(f"Pipeline exceeded its time budget while loading {entry.path}") from exc
            error = classify_error(exc, context=f"Fetching {entry.path}")
            self.logger.warning("Failed to fetch %s: %s", entry.path, error)
            return self._failed(entry, str(error), error.kind)

        text = remote.data.decode("utf-8", errors="replace")
        ratio = suspicious_ratio(text)
        if ratio > self.binary_threshold:
            self.logger.warning(
                "Skipping %s: %.1f%% control characters suggests binary content",
                entry.path,
                ratio * 100,
            )
            return self._failed(entry, "likely binary content", ErrorKind.BINARY_CONTENT)

        self.logger.debug("Fetched %s (%d bytes)", entry.path, len(remote.data))
        return FileCandidate(
            path=entry.path,
            size=remote.size or len(remote.data),
            raw_text=text,
            content_id=remote.sha or entry.content_id,
        )

    @staticmethod
    def _failed(entry: TreeEntry, error: str, kind: ErrorKind) -> FileCandidate:
        return FileCandidate(
            path=entry.path,
            size=entry.size,
            raw_text="",
            content_id=entry.content_id,
            error=error,
            error_kind=kind,
        )


__all__ = ["FileContentLoader", "suspicious_ratio"]
