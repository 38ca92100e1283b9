"""Dashboard orchestrator: the read/sync interface consumed by entrypoints."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from dashboard.cache.layer import CacheLayer
from dashboard.cache.stores import build_cache_store
from dashboard.config.logging import sanitize_log_extra
from dashboard.config.settings import Settings
from dashboard.crawlers.github.client import GitHubClient
from dashboard.crawlers.github.errors import RateLimitError
from dashboard.crawlers.github.fetchers import GitHubFetcher
from dashboard.models.entities import (
    Commit,
    Issue,
    PullRequest,
    RepoContext,
    RepoDependencies,
    Repository,
    Snapshot,
    TimelineEvent,
)
from dashboard.models.reports import DashboardStats, OpsSummary
from dashboard.models.rules import AutomationRun
from dashboard.services.automation.runner import AutomationRunner
from dashboard.services.ops import summarize_ops
from dashboard.services.stats import build_stats
from dashboard.services.summarizer import RepoSummarizer
from dashboard.services.timeline import DEFAULT_TIMELINE_LIMIT, build_timeline
from dashboard.storage.json_store import JsonDocumentStore
from dashboard.storage.repositories import (
    AlertRepository,
    KnowledgeRepository,
    RuleRepository,
    SnapshotRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DashboardOrchestrator:
    """Serves dashboard data from the snapshot, the cache, or upstream.

    Without ``force`` a non-empty snapshot list wins. Otherwise the fetcher
    goes through the cache to upstream; an upstream rate limit falls back to
    whatever the snapshot still holds.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        fetcher: Any | None = None,
        client: GitHubClient | None = None,
        cache: CacheLayer | None = None,
        document_store: JsonDocumentStore | None = None,
        snapshots: SnapshotRepository | None = None,
        rules: RuleRepository | None = None,
        alerts: AlertRepository | None = None,
        knowledge: KnowledgeRepository | None = None,
        summarizer: RepoSummarizer | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self._owned_client: GitHubClient | None = None

        if fetcher is None:
            if client is None:
                client = GitHubClient(settings)
                self._owned_client = client
            fetcher = GitHubFetcher(client, cache or CacheLayer(build_cache_store(settings)), settings)
        self.fetcher = fetcher

        store = document_store or JsonDocumentStore(settings.DATA_DIR)
        self.snapshots = snapshots or SnapshotRepository(store)
        self.rules = rules or RuleRepository(store)
        self.alerts = alerts or AlertRepository(store)
        self.knowledge = knowledge or KnowledgeRepository(store)
        self._summarizer = summarizer

    async def __aenter__(self) -> "DashboardOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owned_client is not None:
            await self._owned_client.aclose()

    async def get_repos(self, *, force: bool = False) -> list[Repository]:
        return await self._read_list("repos", lambda: self.fetcher.fetch_repos(force=force), force)

    async def get_issues(self, *, force: bool = False) -> list[Issue]:
        return await self._read_list("issues", lambda: self.fetcher.fetch_issues(force=force), force)

    async def get_pull_requests(self, *, force: bool = False) -> list[PullRequest]:
        return await self._read_list("prs", lambda: self.fetcher.fetch_pull_requests(force=force), force)

    async def get_commits(self, *, force: bool = False) -> list[Commit]:
        return await self._read_list("commits", lambda: self.fetcher.fetch_commits(force=force), force)

    async def get_timeline(self, *, limit: int = DEFAULT_TIMELINE_LIMIT, force: bool = False) -> list[TimelineEvent]:
        events = await self._read_list(
            "timeline",
            lambda: self.fetcher.fetch_timeline(limit, force=force),
            force,
        )
        return events[: max(limit, 0)]

    async def get_repo_context(self, *, force: bool = False) -> list[RepoContext]:
        self.settings.require_credentials()
        return await self.fetcher.fetch_repo_context(force=force)

    async def get_stats(self, *, force: bool = False) -> DashboardStats:
        self.settings.require_credentials()
        if not force:
            snapshot = await asyncio.to_thread(self.snapshots.load)
            if snapshot is not None and snapshot.repos:
                return self._stats_from_snapshot(snapshot)

        try:
            return await self.fetcher.fetch_stats(force=force)
        except RateLimitError as exc:
            snapshot = await asyncio.to_thread(self.snapshots.load)
            if snapshot is None or not snapshot.repos:
                raise
            self._log_stale_fallback("stats", exc)
            return self._stats_from_snapshot(snapshot)

    async def get_ops_summary(self, *, force: bool = False) -> OpsSummary:
        data = await self.load_data(force=force)
        return summarize_ops(data.repos, data.issues, data.prs, data.commits, now=self._clock())

    async def load_data(self, *, force: bool = False) -> Snapshot:
        """Return the stored snapshot, or fetch a fresh (unsaved) one."""

        self.settings.require_credentials()
        if not force:
            snapshot = await asyncio.to_thread(self.snapshots.load)
            if snapshot is not None:
                return snapshot

        try:
            return await self._fetch_all(force=force)
        except RateLimitError as exc:
            snapshot = await asyncio.to_thread(self.snapshots.load)
            if snapshot is None:
                raise
            self._log_stale_fallback("snapshot", exc)
            return snapshot

    async def run_sync(self, *, force: bool = False) -> dict[str, Any]:
        """Fetch everything, rebuild the timeline and replace the snapshot."""

        self.settings.require_credentials()
        logger.info("Dashboard sync started", extra=sanitize_log_extra(force=force))

        repos = await self.fetcher.fetch_repos(force=force)
        (issues, prs, commits), contexts = await asyncio.gather(
            self._fetch_activity(repos, force=force),
            self.fetcher.fetch_repo_context(repos, force=force),
        )
        data = Snapshot(
            repos=repos,
            issues=issues,
            prs=prs,
            commits=commits,
            dependencies=[
                RepoDependencies(repo_full_name=c.full_name, repo_id=c.id, dependencies=c.dependencies)
                for c in contexts
            ],
        )
        data.timeline = build_timeline(data.issues, data.prs, data.commits)
        data.synced_at = self._clock()
        await asyncio.to_thread(self.snapshots.save, data)

        stats = {
            "repos": len(data.repos),
            "issues": len(data.issues),
            "prs": len(data.prs),
            "commits": len(data.commits),
            "timeline": len(data.timeline),
            "dependencies": len(data.dependencies),
        }
        logger.info("Dashboard sync finished", extra=sanitize_log_extra(sync_stats=stats))
        return {"ok": True, "mode": "file", "stats": stats}

    async def run_automation(self, *, apply: bool = False, force: bool = False) -> AutomationRun:
        runner = AutomationRunner(self, self.rules, self.alerts, clock=self._clock)
        return await runner.run(apply=apply, force=force)

    async def summarize_repos(self, *, force: bool = False) -> dict[str, Any]:
        repos = await self.get_repos(force=force)
        summarizer = self._summarizer or RepoSummarizer(self.settings, self.knowledge)
        return await summarizer.summarize_missing(repos)

    async def _fetch_all(self, *, force: bool) -> Snapshot:
        repos = await self.fetcher.fetch_repos(force=force)
        issues, prs, commits = await self._fetch_activity(repos, force=force)
        return Snapshot(repos=repos, issues=issues, prs=prs, commits=commits)

    async def _fetch_activity(
        self, repos: list[Repository], *, force: bool
    ) -> tuple[list[Issue], list[PullRequest], list[Commit]]:
        issues, prs, commits = await asyncio.gather(
            self.fetcher.fetch_issues(repos, force=force),
            self.fetcher.fetch_pull_requests(repos, force=force),
            self.fetcher.fetch_commits(repos, force=force),
        )
        return issues, prs, commits

    async def _read_list(
        self,
        field: str,
        fetch: Callable[[], Awaitable[list[T]]],
        force: bool,
    ) -> list[T]:
        self.settings.require_credentials()
        if not force:
            snapshot = await asyncio.to_thread(self.snapshots.load)
            cached = getattr(snapshot, field) if snapshot is not None else []
            if cached:
                return cached

        try:
            return await fetch()
        except RateLimitError as exc:
            snapshot = await asyncio.to_thread(self.snapshots.load)
            stale = getattr(snapshot, field) if snapshot is not None else []
            if not stale:
                raise
            self._log_stale_fallback(field, exc)
            return stale

    def _stats_from_snapshot(self, snapshot: Snapshot) -> DashboardStats:
        return build_stats(snapshot.repos, snapshot.issues, snapshot.prs, snapshot.commits, now=self._clock())

    @staticmethod
    def _log_stale_fallback(field: str, exc: RateLimitError) -> None:
        logger.warning(
            "GitHub rate limit hit, serving stale snapshot",
            extra=sanitize_log_extra(dataset=field, retry_after_seconds=exc.retry_after),
        )
