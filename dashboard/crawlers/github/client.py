"""Resilient async GitHub client for the dashboard fetch layer."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from dashboard.config.logging import sanitize_log_extra
from dashboard.config.settings import MISSING_CREDENTIALS_MESSAGE, Settings
from dashboard.crawlers.github.errors import (
    AuthError,
    EmptyRepositoryError,
    GraphQLError,
    HttpError,
    RateLimitError,
    ResourceNotFoundError,
    ShapeError,
    TransientHttpError,
)

logger = logging.getLogger(__name__)

EMPTY_REPOSITORY_MARKER = "Git Repository is empty"
DEFAULT_RATE_LIMIT_WAIT_SECONDS = 60.0


class _RateLimitRetryableError(Exception):
    """Retryable rate-limit signal for tenacity."""

    def __init__(self, wait_seconds: float) -> None:
        self.wait_seconds = wait_seconds
        super().__init__(f"GitHub rate limit, retrying in {wait_seconds:.2f}s")


class GitHubClient:
    """Authenticated REST + GraphQL client with retry and rate-limit handling."""

    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"
    TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._token = settings.GITHUB_TOKEN
        self._user_agent = settings.USER_AGENT
        self._base_url = settings.GITHUB_API_URL
        self._graphql_url = settings.GITHUB_GRAPHQL_URL
        self._timeout_seconds = settings.GITHUB_TIMEOUT_SECONDS
        self._max_retries = max(settings.GITHUB_MAX_RETRIES, 0)
        self._backoff_base_seconds = settings.GITHUB_BACKOFF_BASE_SECONDS
        self._rate_limit_max_wait_seconds = settings.GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS
        self._rate_limit_buffer_seconds = settings.GITHUB_RATE_LIMIT_BUFFER_SECONDS
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "GitHubClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        response = await self._request("GET", path, params=_clean_params(params))
        return _decode_json(response, path)

    async def get_paginated(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        *,
        per_page: int = 100,
        max_pages: int = 10,
    ) -> list[Any]:
        """Walk ``page=1..max_pages`` and concatenate the pages in upstream order.

        Stops at the first page shorter than ``per_page``. When the dataset is an
        exact multiple of the page size one extra (empty) page is requested.
        """

        items: list[Any] = []
        for page in range(1, max_pages + 1):
            payload = await self.get(path, {**(params or {}), "per_page": per_page, "page": page})
            if not isinstance(payload, list):
                raise ShapeError("Expected array response for paginated request.")
            items.extend(payload)
            if len(payload) < per_page:
                break
        return items

    async def graphql(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        response = await self._request(
            "POST",
            self._graphql_url,
            json_body={"query": query, "variables": variables or {}},
        )
        payload = _decode_json(response, "graphql")
        if not isinstance(payload, dict):
            raise ShapeError("Expected object response for GraphQL request.")

        errors = payload.get("errors")
        if errors:
            messages = [
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            ]
            raise GraphQLError(messages)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise ShapeError("GraphQL response is missing the data object.")
        return data

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        client = self._ensure_client()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=self._compute_retry_wait,
            retry=retry_if_exception_type((TransientHttpError, _RateLimitRetryableError)),
            sleep=self._sleep,
            reraise=True,
        ):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                try:
                    response = await client.request(method, path, params=params, json=json_body)
                except httpx.TransportError as exc:
                    logger.warning(
                        "GitHub transport failure",
                        extra=sanitize_log_extra(path=path, params=params, attempt=attempt_number, error=str(exc)),
                    )
                    raise TransientHttpError(None, f"GitHub transport error: {exc}") from exc

                if response.is_success:
                    return response
                self._raise_for_response(response, path, params, attempt_number)

        raise HttpError(None, f"Unknown GitHub request failure for {path}")

    def _raise_for_response(
        self,
        response: httpx.Response,
        path: str,
        params: Optional[dict[str, Any]],
        attempt_number: int,
    ) -> None:
        status_code = response.status_code
        text = response.text
        retries_left = attempt_number <= self._max_retries

        if status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0":
            wait_seconds = self._compute_rate_limit_wait(response.headers)
            logger.warning(
                "GitHub API rate limit encountered",
                extra=sanitize_log_extra(
                    path=path,
                    params=params,
                    status_code=status_code,
                    retry_after_seconds=wait_seconds,
                    attempt=attempt_number,
                ),
            )
            if 0 < wait_seconds < self._rate_limit_max_wait_seconds and retries_left:
                raise _RateLimitRetryableError(wait_seconds + self._rate_limit_buffer_seconds)
            raise RateLimitError(wait_seconds, status_code=status_code)

        message = f"GitHub API error {status_code}: {text}"
        if status_code == 409 or EMPTY_REPOSITORY_MARKER in text:
            raise EmptyRepositoryError(status_code, message)

        if status_code == 404:
            raise ResourceNotFoundError(status_code, message)

        if status_code in self.TRANSIENT_STATUS_CODES:
            logger.warning(
                "GitHub transient error",
                extra=sanitize_log_extra(path=path, params=params, status_code=status_code, attempt=attempt_number),
            )
            raise TransientHttpError(status_code, message)

        raise HttpError(status_code, message)

    def _compute_retry_wait(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        if isinstance(exc, _RateLimitRetryableError):
            return exc.wait_seconds
        return self._backoff_base_seconds * (2 ** (retry_state.attempt_number - 1))

    def _compute_rate_limit_wait(self, headers: httpx.Headers) -> float:
        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                return float(int(reset_raw)) - self._clock()
            except ValueError:
                pass
        return DEFAULT_RATE_LIMIT_WAIT_SECONDS

    def _ensure_client(self) -> httpx.AsyncClient:
        if not self._token:
            raise AuthError(MISSING_CREDENTIALS_MESSAGE)
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "Authorization": f"Bearer {self._token}",
            "User-Agent": self._user_agent,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client


def _clean_params(params: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if not params:
        return None
    return {key: value for key, value in params.items() if value is not None and value != ""}


def _decode_json(response: httpx.Response, path: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ShapeError(f"Invalid JSON response from {path}") from exc
