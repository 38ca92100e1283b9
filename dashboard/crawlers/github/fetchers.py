"""Cached per-entity fetch operations built on the GitHub client."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from pydantic import BaseModel

from dashboard.cache.layer import CacheLayer, scope_fingerprint
from dashboard.config.logging import sanitize_log_extra
from dashboard.config.settings import Settings
from dashboard.crawlers.github.client import GitHubClient
from dashboard.crawlers.github.errors import EmptyRepositoryError, GitHubError, ResourceNotFoundError, ShapeError
from dashboard.crawlers.github.pool import map_with_concurrency
from dashboard.models.entities import Commit, Issue, PullRequest, RepoContext, Repository, TimelineEvent
from dashboard.models.reports import DashboardStats, NamedCount
from dashboard.services.dependencies import MANIFEST_PARSERS, build_context_text, decode_content, merge_dependencies
from dashboard.services.normalizers import (
    UNKNOWN_LANGUAGE,
    normalize_commit,
    normalize_issues,
    normalize_pull_request,
    normalize_repository,
)
from dashboard.services.stats import LANGUAGE_LIMIT, build_stats, summarize_languages
from dashboard.services.timeline import DEFAULT_TIMELINE_LIMIT, build_timeline

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

REPO_AFFILIATION = "owner,collaborator,organization_member"

LANGUAGE_STATS_QUERY = """
query RepoLanguages($cursor: String) {
  viewer {
    repositories(first: 50, after: $cursor, ownerAffiliations: [OWNER, COLLABORATOR, ORGANIZATION_MEMBER]) {
      nodes {
        nameWithOwner
        primaryLanguage {
          name
        }
      }
      pageInfo {
        endCursor
        hasNextPage
      }
    }
  }
}
"""


class GitHubFetcher:
    """Fetches normalized entities through the cache layer."""

    def __init__(self, client: GitHubClient, cache: CacheLayer, settings: Settings) -> None:
        self._client = client
        self._cache = cache
        self._settings = settings

    async def fetch_repos(self, *, force: bool = False) -> list[Repository]:
        _, username = self._settings.require_credentials()

        async def produce() -> list[Repository]:
            raw = await self._client.get_paginated(
                "/user/repos",
                {"affiliation": REPO_AFFILIATION, "sort": "updated", "direction": "desc"},
                per_page=self._settings.GITHUB_PAGE_SIZE,
                max_pages=self._settings.GITHUB_MAX_REPO_PAGES,
            )
            return [normalize_repository(item, username) for item in raw]

        return await self._cached_models(
            f"repos_{username}", self._settings.CACHE_TTL_REPOS, Repository, produce, force=force
        )

    async def fetch_issues(
        self,
        repos: Optional[Sequence[Repository]] = None,
        *,
        force: bool = False,
    ) -> list[Issue]:
        repos = await self._resolve_repos(repos, force)

        async def load(repo: Repository) -> list[Issue]:
            raw = await self._client.get_paginated(
                f"/repos/{repo.full_name}/issues",
                {"state": "all"},
                per_page=self._settings.GITHUB_PAGE_SIZE,
                max_pages=self._settings.GITHUB_MAX_ITEM_PAGES,
            )
            return normalize_issues(raw, repo)

        async def produce() -> list[Issue]:
            return _flatten(await map_with_concurrency(repos, self._settings.GITHUB_CONCURRENCY, load))

        return await self._cached_models(
            _scoped_key("issues", repos), self._settings.CACHE_TTL_ISSUES, Issue, produce, force=force
        )

    async def fetch_pull_requests(
        self,
        repos: Optional[Sequence[Repository]] = None,
        *,
        force: bool = False,
    ) -> list[PullRequest]:
        repos = await self._resolve_repos(repos, force)

        async def load(repo: Repository) -> list[PullRequest]:
            raw = await self._client.get_paginated(
                f"/repos/{repo.full_name}/pulls",
                {"state": "all"},
                per_page=self._settings.GITHUB_PAGE_SIZE,
                max_pages=self._settings.GITHUB_MAX_ITEM_PAGES,
            )
            return [normalize_pull_request(item, repo) for item in raw]

        async def produce() -> list[PullRequest]:
            return _flatten(await map_with_concurrency(repos, self._settings.GITHUB_CONCURRENCY, load))

        return await self._cached_models(
            _scoped_key("prs", repos), self._settings.CACHE_TTL_PRS, PullRequest, produce, force=force
        )

    async def fetch_commits(
        self,
        repos: Optional[Sequence[Repository]] = None,
        *,
        since: Optional[datetime] = None,
        force: bool = False,
    ) -> list[Commit]:
        """Latest commits per repository; empty repositories contribute nothing.

        With *since*, only commits after that instant are requested.
        """

        repos = await self._resolve_repos(repos, force)
        per_repo = min(max(self._settings.GITHUB_COMMITS_PER_REPO, 1), 100)

        async def load(repo: Repository) -> list[Commit]:
            try:
                raw = await self._client.get_paginated(
                    f"/repos/{repo.full_name}/commits",
                    {"since": since.isoformat() if since else None},
                    per_page=per_repo,
                    max_pages=1,
                )
            except EmptyRepositoryError:
                logger.info("Repository has no commits yet", extra=sanitize_log_extra(repo=repo.full_name))
                return []
            return [normalize_commit(item, repo) for item in raw]

        async def produce() -> list[Commit]:
            return _flatten(await map_with_concurrency(repos, self._settings.GITHUB_CONCURRENCY, load))

        key = _scoped_key("commits", repos)
        if since is not None:
            key = f"{key}_since_{since.isoformat()}"
        return await self._cached_models(key, self._settings.CACHE_TTL_COMMITS, Commit, produce, force=force)

    async def fetch_repo_context(
        self,
        repos: Optional[Sequence[Repository]] = None,
        *,
        force: bool = False,
    ) -> list[RepoContext]:
        """Readme head and declared dependencies for each repository."""

        repos = await self._resolve_repos(repos, force)

        async def load(repo: Repository) -> RepoContext:
            readme, dependencies = await asyncio.gather(
                self._read_repo_file(f"/repos/{repo.full_name}/readme"),
                self._read_dependencies(repo),
            )
            return RepoContext(
                id=repo.id,
                full_name=repo.full_name,
                description=repo.description,
                language=repo.language,
                url=repo.url,
                updated_at=repo.updated_at,
                dependencies=dependencies,
                text=build_context_text(repo.full_name, repo.description, repo.language, dependencies, readme),
            )

        async def produce() -> list[RepoContext]:
            return await map_with_concurrency(repos, self._settings.GITHUB_CONTEXT_CONCURRENCY, load)

        return await self._cached_models(
            _scoped_key("repo_context", repos), self._settings.CACHE_TTL_REPO_CONTEXT, RepoContext, produce, force=force
        )

    async def fetch_language_stats(self, *, force: bool = False) -> list[NamedCount]:
        """Primary-language histogram over every repository visible to the viewer."""

        async def produce() -> list[NamedCount]:
            totals: dict[str, int] = {}
            cursor: Optional[str] = None
            while True:
                data = await self._client.graphql(LANGUAGE_STATS_QUERY, {"cursor": cursor})
                connection = _language_connection(data)
                for node in connection.get("nodes") or []:
                    language = (node or {}).get("primaryLanguage") or {}
                    name = language.get("name") or UNKNOWN_LANGUAGE
                    totals[name] = totals.get(name, 0) + 1
                page_info = connection.get("pageInfo") or {}
                cursor = page_info.get("endCursor")
                if not page_info.get("hasNextPage") or not cursor:
                    break
            ranked = sorted(totals.items(), key=lambda item: -item[1])[:LANGUAGE_LIMIT]
            return [NamedCount(name=name, count=count) for name, count in ranked]

        return await self._cached_models(
            "language_stats_graphql", self._settings.CACHE_TTL_LANGUAGES, NamedCount, produce, force=force
        )

    async def fetch_stats(self, *, force: bool = False) -> DashboardStats:
        async def produce() -> dict[str, Any]:
            repos = await self.fetch_repos(force=force)
            issues, prs, commits = await asyncio.gather(
                self.fetch_issues(repos, force=force),
                self.fetch_pull_requests(repos, force=force),
                self.fetch_commits(repos, force=force),
            )
            try:
                languages = await self.fetch_language_stats(force=force)
            except GitHubError as exc:
                logger.warning(
                    "Language stats query failed, using local histogram",
                    extra=sanitize_log_extra(error=str(exc)),
                )
                languages = summarize_languages(repos)
            return build_stats(repos, issues, prs, commits, language_stats=languages).to_json()

        raw = await self._cache.with_cache(
            "stats_overview", self._settings.CACHE_TTL_STATS, produce, force=force
        )
        return DashboardStats.model_validate(raw)

    async def fetch_timeline(
        self,
        limit: int = DEFAULT_TIMELINE_LIMIT,
        *,
        force: bool = False,
    ) -> list[TimelineEvent]:
        async def produce() -> list[TimelineEvent]:
            repos = await self.fetch_repos(force=force)
            issues, prs, commits = await asyncio.gather(
                self.fetch_issues(repos, force=force),
                self.fetch_pull_requests(repos, force=force),
                self.fetch_commits(repos, force=force),
            )
            return build_timeline(issues, prs, commits, limit)

        return await self._cached_models(
            f"timeline_events_{limit}", self._settings.CACHE_TTL_TIMELINE, TimelineEvent, produce, force=force
        )

    async def _read_dependencies(self, repo: Repository) -> list[str]:
        groups = []
        for path, parser in MANIFEST_PARSERS:
            content = await self._read_repo_file(f"/repos/{repo.full_name}/contents/{path}")
            if content:
                groups.append(parser(content))
        return merge_dependencies(groups)

    async def _read_repo_file(self, path: str) -> str:
        """Decoded file text; a missing file or an empty repository reads as empty."""
        try:
            return decode_content(await self._client.get(path))
        except (ResourceNotFoundError, EmptyRepositoryError):
            return ""

    async def _resolve_repos(self, repos: Optional[Sequence[Repository]], force: bool) -> list[Repository]:
        if repos is None:
            return await self.fetch_repos(force=force)
        return list(repos)

    async def _cached_models(
        self,
        key: str,
        ttl_seconds: int,
        model: type[M],
        producer: Callable[[], Awaitable[list[M]]],
        *,
        force: bool,
    ) -> list[M]:
        async def produce_json() -> list[dict[str, Any]]:
            return [item.model_dump(by_alias=True, mode="json") for item in await producer()]

        raw = await self._cache.with_cache(key, ttl_seconds, produce_json, force=force)
        return [model.model_validate(item) for item in raw]


def _scoped_key(prefix: str, repos: Sequence[Repository]) -> str:
    return f"{prefix}_{len(repos)}_{scope_fingerprint(repo.full_name for repo in repos)}"


def _flatten(groups: list[list[M]]) -> list[M]:
    return [item for group in groups for item in group]


def _language_connection(data: dict[str, Any]) -> dict[str, Any]:
    viewer = data.get("viewer")
    connection = viewer.get("repositories") if isinstance(viewer, dict) else None
    if not isinstance(connection, dict):
        raise ShapeError("GraphQL response is missing viewer.repositories.")
    return connection
