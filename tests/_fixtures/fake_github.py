"""In-memory stand-in for the GitHub REST endpoints used by echodocs."""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

from echodocs.github.client import GitHubClient, GitHubTransportError, HTTPRequest, HTTPResponse


def blob_sha(data: bytes) -> str:
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class FakeGitHub:
    """Serves commits, trees, contents, and blobs for a single repository and branch.

    ``failures`` maps ``(method, resource)`` pairs such as ``("GET", "contents/a.py")``
    to a status code; ``before_put`` runs ahead of every write and may mutate the
    repository to simulate a concurrent editor.
    """

    def __init__(self, owner: str = "octo", repo: str = "demo", branch: str = "main") -> None:
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.files: Dict[str, bytes] = {}
        self.size_overrides: Dict[str, int] = {}
        self.requests: List[HTTPRequest] = []
        self.failures: Dict[Tuple[str, str], int] = {}
        self.transport_failures: Set[Tuple[str, str]] = set()
        self.before_put: Optional[Callable[["FakeGitHub", int], None]] = None
        self.puts = 0
        self.truncated = False
        self._commits = 0

    # ------------------------------------------------------------------
    # Repository fixtures

    def add_file(self, path: str, content: str | bytes, *, size: int | None = None) -> None:
        self.files[path] = content.encode("utf-8") if isinstance(content, str) else content
        if size is not None:
            self.size_overrides[path] = size

    def concurrent_edit(self, path: str, content: str) -> None:
        self.files[path] = content.encode("utf-8")

    def sha_of(self, path: str) -> str:
        return blob_sha(self.files[path])

    def client(self, token: str = "ghp_test") -> GitHubClient:
        return GitHubClient(token, transport=self)

    def count(self, method: str, prefix: str) -> int:
        return sum(1 for request in self.requests if request.method == method and prefix in request.url)

    # ------------------------------------------------------------------
    # Transport

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        self.requests.append(request)
        parts = urlsplit(request.url)
        query = parse_qs(parts.query)
        prefix = f"/repos/{self.owner}/{self.repo}/"
        if not parts.path.startswith(prefix):
            return _json(404, {"message": "Not Found"})
        resource = unquote(parts.path[len(prefix):])

        key = (request.method, resource)
        if key in self.transport_failures:
            raise GitHubTransportError(f"connection reset while calling {resource}")
        if key in self.failures:
            return _json(self.failures[key], {"message": f"injected failure for {resource}"})

        if request.method == "GET" and resource.startswith("commits/"):
            return self._commit(resource[len("commits/"):])
        if request.method == "GET" and resource.startswith("git/trees/"):
            return self._tree(query)
        if request.method == "GET" and resource.startswith("git/blobs/"):
            return self._blob(resource[len("git/blobs/"):])
        if resource.startswith("contents/"):
            path = resource[len("contents/"):]
            if request.method == "GET":
                return self._get_contents(path, query)
            if request.method == "PUT":
                return self._put_contents(path, json.loads((request.body or b"{}").decode("utf-8")))
        return _json(404, {"message": "Not Found"})

    def _commit(self, ref: str) -> HTTPResponse:
        if ref != self.branch:
            return _json(422, {"message": f"No commit found for SHA: {ref}"})
        return _json(200, {"sha": "c0ffee", "commit": {"tree": {"sha": "tree-root"}}})

    def _tree(self, query: Dict[str, List[str]]) -> HTTPResponse:
        entries: List[Dict[str, object]] = []
        directories: Set[str] = set()
        for path in sorted(self.files):
            segments = path.split("/")[:-1]
            for index in range(1, len(segments) + 1):
                directories.add("/".join(segments[:index]))
        for directory in sorted(directories):
            entries.append({"path": directory, "type": "tree", "sha": f"dir-{directory}"})
        for path, data in sorted(self.files.items()):
            entries.append(
                {
                    "path": path,
                    "type": "blob",
                    "sha": blob_sha(data),
                    "size": self.size_overrides.get(path, len(data)),
                }
            )
        entries.append({"path": "vendor/lib", "type": "commit", "sha": "submodule"})
        return _json(200, {"sha": "tree-root", "tree": entries, "truncated": self.truncated})

    def _blob(self, sha: str) -> HTTPResponse:
        for data in self.files.values():
            if blob_sha(data) == sha:
                return _json(200, {"sha": sha, "encoding": "base64", "content": base64.encodebytes(data).decode()})
        return _json(404, {"message": "Not Found"})

    def _get_contents(self, path: str, query: Dict[str, List[str]]) -> HTTPResponse:
        if query.get("ref", [self.branch])[0] != self.branch or path not in self.files:
            return _json(404, {"message": "Not Found"})
        data = self.files[path]
        return _json(
            200,
            {
                "type": "file",
                "path": path,
                "sha": blob_sha(data),
                "size": len(data),
                "encoding": "base64",
                "content": base64.encodebytes(data).decode("ascii"),
                "html_url": self._html_url(path),
            },
        )

    def _put_contents(self, path: str, body: Dict[str, object]) -> HTTPResponse:
        self.puts += 1
        if self.before_put is not None:
            self.before_put(self, self.puts)
        if body.get("branch") != self.branch:
            return _json(404, {"message": "Branch not found"})
        current = self.files.get(path)
        supplied = body.get("sha")
        if current is not None and not supplied:
            return _json(422, {"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
        if current is not None and supplied != blob_sha(current):
            return _json(409, {"message": f"{path} does not match {supplied}"})
        if current is None and supplied:
            return _json(404, {"message": "Not Found"})
        data = base64.b64decode(str(body["content"]))
        self.files[path] = data
        self._commits += 1
        status = 200 if current is not None else 201
        return _json(
            status,
            {
                "content": {"path": path, "sha": blob_sha(data), "html_url": self._html_url(path)},
                "commit": {
                    "sha": f"commit{self._commits}",
                    "html_url": f"https://github.com/{self.owner}/{self.repo}/commit/commit{self._commits}",
                },
            },
        )

    def _html_url(self, path: str) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/blob/{self.branch}/{path}"


def _json(status: int, payload: object) -> HTTPResponse:
    return HTTPResponse(
        status=status,
        body=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )
