"""Minimal GitHub REST client used by the tree, loader, and publisher stages."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from ..errors import (
    AccessDenied,
    ErrorKind,
    PipelineError,
    RefNotFound,
    UpstreamUnavailable,
)


@dataclass
class HTTPRequest:
    """Represents one call against the source-hosting API."""

    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[bytes]
    timeout: Optional[float]


@dataclass
class HTTPResponse:
    status: int
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class GitHubAPIError(RuntimeError):
    """Raised when the API answers with a non-success status."""

    def __init__(self, status: int, message: str, headers: Mapping[str, str] | None = None) -> None:
        super().__init__(f"GitHub API returned status {status}: {message}")
        self.status = status
        self.message = message
        self.headers = dict(headers or {})

    @property
    def rate_limited(self) -> bool:
        if self.status == 429:
            return True
        if self.status != 403:
            return False
        remaining = {key.lower(): value for key, value in self.headers.items()}.get("x-ratelimit-remaining")
        return remaining == "0" or "rate limit" in self.message.lower()


class GitHubTransportError(RuntimeError):
    """Raised when the API could not be reached or returned an unreadable body."""


@dataclass(frozen=True)
class RemoteContent:
    """Decoded file payload from the contents endpoint."""

    path: str
    sha: str
    size: int
    data: bytes
    html_url: Optional[str] = None


def classify_error(exc: Exception, *, context: str) -> PipelineError:
    """Translate transport/API failures into the pipeline taxonomy."""
    if isinstance(exc, GitHubTransportError):
        return UpstreamUnavailable(f"{context}: {exc}")
    if isinstance(exc, GitHubAPIError):
        if exc.rate_limited:
            return UpstreamUnavailable(f"{context}: rate limited by GitHub ({exc.message})")
        if exc.status in (401, 403):
            return AccessDenied(f"{context}: credential lacks access ({exc.message})")
        if exc.status == 404:
            return RefNotFound(f"{context}: not found ({exc.message})")
        if exc.status == 413:
            return PipelineError(f"{context}: payload too large", kind=ErrorKind.PAYLOAD_TOO_LARGE)
        return UpstreamUnavailable(f"{context}: {exc}")
    return UpstreamUnavailable(f"{context}: {exc}")


class GitHubClient:
    """Talks to the GitHub REST API with an explicit, per-instance token."""

    DEFAULT_API_URL = "https://api.github.com"
    API_VERSION = "2022-11-28"

    def __init__(
        self,
        token: str,
        *,
        api_url: str | None = None,
        request_timeout: float | None = 30.0,
        user_agent: str | None = None,
        transport: Callable[[HTTPRequest], HTTPResponse] | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHubClient requires an access token")
        self._token = token
        self.api_url = (api_url or self.DEFAULT_API_URL).rstrip("/")
        self.request_timeout = request_timeout
        self.user_agent = user_agent or "echodocs"
        self._transport = transport or self._urllib_transport

    def __repr__(self) -> str:
        return f"GitHubClient(api_url={self.api_url!r})"

    # ------------------------------------------------------------------
    # Endpoints

    def get_commit(self, owner: str, repo: str, ref: str, *, timeout: float | None = None) -> Dict[str, Any]:
        return self.request(
            "GET",
            f"/repos/{_seg(owner)}/{_seg(repo)}/commits/{_seg(ref)}",
            timeout=timeout,
        )

    def get_tree(self, owner: str, repo: str, tree_sha: str, *, timeout: float | None = None) -> Dict[str, Any]:
        return self.request(
            "GET",
            f"/repos/{_seg(owner)}/{_seg(repo)}/git/trees/{_seg(tree_sha)}",
            params={"recursive": "1"},
            timeout=timeout,
        )

    def get_contents(
        self, owner: str, repo: str, path: str, ref: str, *, timeout: float | None = None
    ) -> RemoteContent:
        payload = self.request(
            "GET",
            f"/repos/{_seg(owner)}/{_seg(repo)}/contents/{_path(path)}",
            params={"ref": ref},
            timeout=timeout,
        )
        if not isinstance(payload, dict) or payload.get("type", "file") != "file":
            raise GitHubAPIError(422, f"{path} is not a file")
        sha = str(payload.get("sha") or "")
        size = int(payload.get("size") or 0)
        encoded = payload.get("content") or ""
        if payload.get("encoding") == "base64" and encoded:
            data = base64.b64decode(encoded)
        elif size and sha:
            # Contents API omits bodies above 1 MB; the blob endpoint still serves them.
            data = self.get_blob(owner, repo, sha, timeout=timeout)
        else:
            data = str(encoded).encode("utf-8")
        return RemoteContent(path=path, sha=sha, size=size, data=data, html_url=payload.get("html_url"))

    def get_blob(self, owner: str, repo: str, sha: str, *, timeout: float | None = None) -> bytes:
        payload = self.request(
            "GET",
            f"/repos/{_seg(owner)}/{_seg(repo)}/git/blobs/{_seg(sha)}",
            timeout=timeout,
        )
        content = payload.get("content") if isinstance(payload, dict) else None
        return base64.b64decode(content) if content else b""

    def put_contents(
        self,
        owner: str,
        repo: str,
        path: str,
        *,
        branch: str,
        text: str,
        message: str,
        sha: str | None = None,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        return self.request(
            "PUT",
            f"/repos/{_seg(owner)}/{_seg(repo)}/contents/{_path(path)}",
            payload=body,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Plumbing

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        payload: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        url = f"{self.api_url}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "User-Agent": self.user_agent,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        response = self._transport(
            HTTPRequest(
                method=method,
                url=url,
                headers=headers,
                body=data,
                timeout=timeout if timeout is not None else self.request_timeout,
            )
        )
        parsed = self._parse_body(response)
        if response.status >= 400:
            message = ""
            if isinstance(parsed, dict):
                message = str(parsed.get("message") or "")
            raise GitHubAPIError(response.status, message or "request failed", response.headers)
        return parsed

    @staticmethod
    def _parse_body(response: HTTPResponse) -> Any:
        if not response.body:
            return {}
        try:
            return json.loads(response.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            if response.status >= 400:
                return {"message": response.body.decode("utf-8", errors="replace")[:200]}
            raise GitHubTransportError("GitHub API returned invalid JSON") from exc

    @staticmethod
    def _urllib_transport(request: HTTPRequest) -> HTTPResponse:
        http_request = Request(
            request.url,
            data=request.body,
            headers=request.headers,
            method=request.method,
        )
        try:
            with urlopen(http_request, timeout=request.timeout) as response:  # type: ignore[arg-type]
                return HTTPResponse(
                    status=response.status,
                    body=response.read(),
                    headers=dict(response.headers.items()),
                )
        except HTTPError as exc:
            body = exc.read() if hasattr(exc, "read") else b""
            headers = dict(exc.headers.items()) if exc.headers is not None else {}
            return HTTPResponse(status=exc.code, body=body or b"", headers=headers)
        except URLError as exc:  # pragma: no cover - depends on network
            raise GitHubTransportError(f"GitHub API unreachable: {exc.reason}") from exc
        except (TimeoutError, ConnectionError) as exc:  # pragma: no cover - depends on network
            raise GitHubTransportError(f"GitHub API request failed: {exc}") from exc


def _seg(value: str) -> str:
    return quote(value, safe="")


def _path(value: str) -> str:
    return quote(value.lstrip("/"), safe="/")


__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "GitHubTransportError",
    "HTTPRequest",
    "HTTPResponse",
    "RemoteContent",
    "classify_error",
]
