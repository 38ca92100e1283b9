from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from dashboard.cache.stores import FileCacheStore

from dashboard.crawlers.github.errors import ConfigError, RateLimitError
from dashboard.models.entities import Commit, Issue, PullRequest, RepoContext, RepoDependencies, Repository, Snapshot
from dashboard.models.reports import DashboardStats
from dashboard.orchestrator import DashboardOrchestrator
from dashboard.services.stats import build_stats

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

LIVE_REPO = Repository(id=1, name="live", full_name="octo/live", owner="octo", is_owner=True)
STORED_REPO = Repository(id=2, name="stored", full_name="octo/stored", owner="octo", is_owner=True)


class FakeFetcher:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, bool]] = []

    def _record(self, name: str, force: bool) -> None:
        self.calls.append((name, force))
        if self.error is not None:
            raise self.error

    async def fetch_repos(self, *, force: bool = False) -> list[Repository]:
        self._record("repos", force)
        return [LIVE_REPO]

    async def fetch_issues(self, repos=None, *, force: bool = False) -> list[Issue]:
        self._record("issues", force)
        return [Issue(id=1, number=1, repo="octo/live", created_at=NOW)]

    async def fetch_pull_requests(self, repos=None, *, force: bool = False) -> list[PullRequest]:
        self._record("prs", force)
        return [PullRequest(id=2, number=2, repo="octo/live", created_at=NOW)]

    async def fetch_commits(self, repos=None, *, since=None, force: bool = False) -> list[Commit]:
        self._record("commits", force)
        return [Commit(sha="abc", repo="octo/live", date=NOW)]

    async def fetch_repo_context(self, repos=None, *, force: bool = False) -> list[RepoContext]:
        self._record("repo_context", force)
        return [RepoContext(id=1, full_name="octo/live", dependencies=["httpx", "pydantic"])]

    async def fetch_timeline(self, limit: int = 200, *, force: bool = False):
        self._record("timeline", force)
        return []

    async def fetch_stats(self, *, force: bool = False) -> DashboardStats:
        self._record("stats", force)
        return build_stats([LIVE_REPO], [], [], [], now=NOW)


def _orchestrator(settings, fetcher: FakeFetcher) -> DashboardOrchestrator:
    return DashboardOrchestrator(settings, fetcher=fetcher, clock=lambda: NOW)


def _store_snapshot(orchestrator: DashboardOrchestrator, **fields) -> None:
    orchestrator.snapshots.save(Snapshot(synced_at=NOW, **fields))


@pytest.mark.asyncio
async def test_non_empty_snapshot_list_wins(settings) -> None:
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(settings, fetcher)
    _store_snapshot(orchestrator, repos=[STORED_REPO])

    repos = await orchestrator.get_repos()

    assert [repo.full_name for repo in repos] == ["octo/stored"]
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_empty_snapshot_list_falls_through_to_fetcher(settings) -> None:
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(settings, fetcher)
    _store_snapshot(orchestrator, repos=[STORED_REPO])

    issues = await orchestrator.get_issues()

    assert [issue.repo for issue in issues] == ["octo/live"]
    assert fetcher.calls == [("issues", False)]


@pytest.mark.asyncio
async def test_force_bypasses_snapshot(settings) -> None:
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(settings, fetcher)
    _store_snapshot(orchestrator, repos=[STORED_REPO])

    repos = await orchestrator.get_repos(force=True)

    assert [repo.full_name for repo in repos] == ["octo/live"]
    assert fetcher.calls == [("repos", True)]


@pytest.mark.asyncio
async def test_rate_limit_falls_back_to_stale_snapshot(settings) -> None:
    orchestrator = _orchestrator(settings, FakeFetcher(error=RateLimitError(120)))
    _store_snapshot(orchestrator, repos=[STORED_REPO])

    repos = await orchestrator.get_repos(force=True)
    stats = await orchestrator.get_stats(force=True)

    assert [repo.full_name for repo in repos] == ["octo/stored"]
    assert stats.totals.repos == 1
    assert stats.top_repos[0].full_name == "octo/stored"


@pytest.mark.asyncio
async def test_rate_limit_without_snapshot_propagates(settings) -> None:
    orchestrator = _orchestrator(settings, FakeFetcher(error=RateLimitError(120)))

    with pytest.raises(RateLimitError) as excinfo:
        await orchestrator.get_commits()

    assert excinfo.value.retry_after == 120


@pytest.mark.asyncio
async def test_other_errors_are_not_masked_by_snapshot(settings) -> None:
    orchestrator = _orchestrator(settings, FakeFetcher(error=RuntimeError("upstream down")))
    _store_snapshot(orchestrator, repos=[STORED_REPO])

    with pytest.raises(RuntimeError):
        await orchestrator.get_repos(force=True)


@pytest.mark.asyncio
async def test_missing_credentials_fail_before_any_fetch(make_settings) -> None:
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(make_settings(GITHUB_TOKEN=None), fetcher)

    with pytest.raises(ConfigError, match="Missing GITHUB_TOKEN or GITHUB_USERNAME."):
        await orchestrator.get_repos()
    with pytest.raises(ConfigError):
        await orchestrator.run_sync()

    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_run_sync_writes_snapshot_with_timeline(settings) -> None:
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(settings, fetcher)

    result = await orchestrator.run_sync(force=True)

    assert result == {
        "ok": True,
        "mode": "file",
        "stats": {"repos": 1, "issues": 1, "prs": 1, "commits": 1, "timeline": 3, "dependencies": 1},
    }
    snapshot = orchestrator.snapshots.load()
    assert snapshot is not None
    assert snapshot.synced_at == NOW
    assert [event.type for event in snapshot.timeline] == ["issue_opened", "pr_opened", "commit"]
    assert snapshot.dependencies == [
        RepoDependencies(repo_full_name="octo/live", repo_id=1, dependencies=["httpx", "pydantic"])
    ]
    assert ("repo_context", True) in fetcher.calls
    assert ("repos", True) in fetcher.calls


@pytest.mark.asyncio
async def test_load_data_prefers_snapshot_unless_forced(settings) -> None:
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(settings, fetcher)
    _store_snapshot(orchestrator, repos=[STORED_REPO])

    stored = await orchestrator.load_data()
    fresh = await orchestrator.load_data(force=True)

    assert [repo.full_name for repo in stored.repos] == ["octo/stored"]
    assert [repo.full_name for repo in fresh.repos] == ["octo/live"]
    assert fresh.synced_at is None


@pytest.mark.asyncio
async def test_stats_from_snapshot_skip_the_fetcher(settings) -> None:
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(settings, fetcher)
    _store_snapshot(orchestrator, repos=[STORED_REPO, LIVE_REPO])

    stats = await orchestrator.get_stats()

    assert stats.totals.repos == 2
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_ops_summary_uses_loaded_data(settings) -> None:
    orchestrator = _orchestrator(settings, FakeFetcher())

    summary = await orchestrator.get_ops_summary()

    assert summary.generated_at == NOW
    assert summary.counts.repos == 1
    assert summary.counts.open_prs == 1


@pytest.mark.asyncio
async def test_run_automation_evaluates_stored_rules(settings) -> None:
    orchestrator = _orchestrator(settings, FakeFetcher())
    _store_snapshot(orchestrator, repos=[STORED_REPO])
    orchestrator.rules.create({"name": "Quiet", "target": "repo", "condition": {"type": "noCommitDays", "value": 30}})

    run = await orchestrator.run_automation(apply=True)

    assert [result.repo for result in run.results] == ["octo/stored"]
    assert run.applied == 1
    assert orchestrator.alerts.list()[0].title == "Quiet: octo/stored"


@pytest.mark.asyncio
async def test_timeline_is_truncated_to_limit(settings) -> None:
    orchestrator = _orchestrator(settings, FakeFetcher())
    _store_snapshot(orchestrator)
    await orchestrator.run_sync()

    events = await orchestrator.get_timeline(limit=2)

    assert len(events) == 2


@pytest.mark.asyncio
async def test_negative_timeline_limit_returns_nothing(settings) -> None:
    orchestrator = _orchestrator(settings, FakeFetcher())
    await orchestrator.run_sync()

    assert await orchestrator.get_timeline(limit=-1) == []
    assert await orchestrator.get_timeline(limit=0) == []


@pytest.mark.asyncio
async def test_repo_context_goes_to_the_fetcher(settings) -> None:
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(settings, fetcher)

    contexts = await orchestrator.get_repo_context(force=True)

    assert [context.full_name for context in contexts] == ["octo/live"]
    assert fetcher.calls == [("repo_context", True)]


@pytest.mark.asyncio
async def test_document_io_runs_in_worker_threads(settings, monkeypatch) -> None:
    offloaded: list[str] = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
    orchestrator = _orchestrator(settings, FakeFetcher())
    orchestrator.rules.create({"name": "Any", "target": "repo", "condition": {"type": "starsAbove", "value": 0}})

    await orchestrator.run_sync()
    await orchestrator.get_repos()
    await orchestrator.run_automation(apply=True)

    assert {"save", "load", "enabled", "prepend"} <= set(offloaded)


def test_unopenable_database_does_not_break_construction(make_settings, tmp_path) -> None:
    settings = make_settings(DATABASE_URL=f"sqlite:///{tmp_path / 'missing' / 'deeper' / 'cache.db'}")

    orchestrator = DashboardOrchestrator(settings)

    assert isinstance(orchestrator.fetcher._cache._store, FileCacheStore)
