"""Source-hosting API access: tree discovery, content loading, publishing."""

from .client import GitHubAPIError, GitHubClient, GitHubTransportError, HTTPRequest, HTTPResponse
from .loader import FileContentLoader
from .publisher import OptimisticPublisher, PublishState
from .tree import RepositoryTreeFetcher

__all__ = [
    "FileContentLoader",
    "GitHubAPIError",
    "GitHubClient",
    "GitHubTransportError",
    "HTTPRequest",
    "HTTPResponse",
    "OptimisticPublisher",
    "PublishState",
    "RepositoryTreeFetcher",
]
