"""Typed failures raised by the GitHub fetch layer.

The client classifies every failure once, at the point it happens. Callers
dispatch on these types and never on message text.
"""

from __future__ import annotations

import math
from typing import Optional


class GitHubError(Exception):
    """Base class for fetch-layer failures."""


class ConfigError(GitHubError):
    """Credentials or account configuration are missing. Never retried."""


class AuthError(ConfigError):
    """The client was asked to call upstream without an access token."""


class HttpError(GitHubError):
    """Non-2xx response from upstream."""

    def __init__(self, status_code: Optional[int], message: str) -> None:
        self.status_code = status_code
        super().__init__(message)


class TransientHttpError(HttpError):
    """429/502/503/504 or a transport failure that survived all retries."""


class RateLimitError(HttpError):
    """Upstream quota is exhausted and the reset is too far away to wait for."""

    def __init__(self, retry_after: float, status_code: int = 403) -> None:
        self.retry_after = max(int(math.ceil(retry_after)), 0)
        super().__init__(status_code, f"Rate limit exceeded. Reset in {self.retry_after}s.")


class EmptyRepositoryError(HttpError):
    """The repository has no commit history yet (HTTP 409)."""


class ResourceNotFoundError(HttpError):
    """The requested path does not exist (HTTP 404)."""


class ShapeError(GitHubError):
    """Upstream returned a payload of an unexpected shape."""


class GraphQLError(GitHubError):
    """The GraphQL endpoint answered with a non-empty ``errors`` array."""

    def __init__(self, messages: list[str]) -> None:
        self.messages = messages
        super().__init__(", ".join(messages) or "GraphQL request failed")
