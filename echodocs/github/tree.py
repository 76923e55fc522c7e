"""Resolves a branch to a commit and lists every path in its tree."""

from __future__ import annotations

from typing import Any, Dict, List

from ..concurrency import Deadline
from ..errors import PipelineError, PipelineTimeout, RefNotFound, UpstreamUnavailable
from ..logging import get_logger
from ..models import RepositoryRef, TreeEntry
from .client import GitHubAPIError, GitHubClient, GitHubTransportError, classify_error

_KIND_BY_TYPE = {"blob": TreeEntry.FILE, "tree": TreeEntry.DIRECTORY}


class RepositoryTreeFetcher:
    """Lists the recursive tree of a repository ref."""

    def __init__(self, client: GitHubClient) -> None:
        self.client = client
        self.logger = get_logger("tree")

    def fetch(self, ref: RepositoryRef, *, deadline: Deadline | None = None) -> List[TreeEntry]:
        deadline = deadline or Deadline.unbounded()
        commit = self._call(
            lambda timeout: self.client.get_commit(ref.owner, ref.name, ref.branch, timeout=timeout),
            ref,
            deadline,
            context=f"Resolving {ref}",
        )
        commit_sha = str(commit.get("sha") or "")
        tree_sha = _tree_sha(commit)
        if not tree_sha:
            raise UpstreamUnavailable(f"Resolving {ref}: commit payload has no tree")
        self.logger.debug("Resolved %s to commit %s", ref, commit_sha[:12])

        payload = self._call(
            lambda timeout: self.client.get_tree(ref.owner, ref.name, tree_sha, timeout=timeout),
            ref,
            deadline,
            context=f"Listing tree for {ref}",
        )
        if payload.get("truncated"):
            self.logger.warning(
                "Tree listing for %s was truncated by GitHub; continuing with %d entries",
                ref,
                len(payload.get("tree") or []),
            )

        entries: List[TreeEntry] = []
        for item in payload.get("tree") or []:
            if not isinstance(item, dict):
                continue
            kind = _KIND_BY_TYPE.get(str(item.get("type")))
            path = item.get("path")
            if kind is None or not isinstance(path, str) or not path:
                # submodule ("commit") entries have no content to read
                continue
            entries.append(
                TreeEntry(
                    path=path,
                    kind=kind,
                    content_id=str(item.get("sha") or ""),
                    size=int(item.get("size") or 0),
                )
            )
        self.logger.info("Tree for %s lists %d entries", ref, len(entries))
        return entries

    def _call(self, operation, ref: RepositoryRef, deadline: Deadline, *, context: str) -> Dict[str, Any]:
        # one idempotent re-request for transient network failures only
        for attempt in (1, 2):
            deadline.check("tree discovery")
            try:
                result = operation(deadline.clamp(self.client.request_timeout))
            except GitHubTransportError as exc:
                if deadline.expired:
                    raise _timeout(context) from exc
                if attempt == 1:
                    self.logger.warning("%s failed (%s); retrying once", context, exc)
                    continue
                raise classify_error(exc, context=context) from exc
            except GitHubAPIError as exc:
                if deadline.expired:
                    raise _timeout(context) from exc
                raise self._classify(exc, ref, context) from exc
            if not isinstance(result, dict):
                raise UpstreamUnavailable(f"{context}: unexpected response shape")
            return result
        raise UpstreamUnavailable(f"{context}: retry budget exhausted")  # pragma: no cover

    @staticmethod
    def _classify(exc: GitHubAPIError, ref: RepositoryRef, context: str) -> PipelineError:
        if exc.status in (404, 409, 422) and not exc.rate_limited:
            # 409: empty repository, 422: ref is not a commit-ish
            return RefNotFound(f"Ref '{ref.branch}' not found in {ref.full_name} ({exc.message})")
        return classify_error(exc, context=context)


def _timeout(context: str) -> PipelineTimeout:
    # the request timeout was clamped to the remaining budget
    return PipelineTimeout(f"Pipeline exceeded its time budget during tree discovery ({context})")


def _tree_sha(commit: Dict[str, Any]) -> str:
    inner = commit.get("commit")
    if isinstance(inner, dict):
        tree = inner.get("tree")
        if isinstance(tree, dict) and tree.get("sha"):
            return str(tree["sha"])
    return ""


__all__ = ["RepositoryTreeFetcher"]
