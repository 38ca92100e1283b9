"""Dashboard aggregate statistics."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from dashboard.models.entities import Commit, Issue, PullRequest, Repository
from dashboard.models.reports import ActivityBucket, DashboardStats, NamedCount, StatsTotals

TOP_REPOS_LIMIT = 5
RECENT_UPDATES_DAYS = 7
RECENT_UPDATES_LIMIT = 8
LANGUAGE_LIMIT = 8
ACTIVITY_BUCKETS = 14


def summarize_languages(repos: Iterable[Repository]) -> list[NamedCount]:
    """Primary-language histogram, most common first, ties in first-seen order."""
    counts: dict[str, int] = {}
    for repo in repos:
        language = repo.language or "Unknown"
        counts[language] = counts.get(language, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [NamedCount(name=name, count=count) for name, count in ranked[:LANGUAGE_LIMIT]]


def build_activity(commits: Iterable[Commit]) -> list[ActivityBucket]:
    """Commits per UTC day, ascending, keeping the latest non-empty days."""
    counts: dict[str, int] = {}
    for commit in commits:
        if commit.date is None:
            continue
        day = commit.date.astimezone(timezone.utc).date().isoformat()
        counts[day] = counts.get(day, 0) + 1
    buckets = sorted(counts.items())[-ACTIVITY_BUCKETS:]
    return [ActivityBucket(date=day, count=count) for day, count in buckets]


def build_recent_updates(repos: Sequence[Repository], now: datetime) -> list[Repository]:
    cutoff = now - timedelta(days=RECENT_UPDATES_DAYS)
    recent = [repo for repo in repos if repo.updated_at is not None and repo.updated_at >= cutoff]
    recent.sort(key=lambda repo: repo.updated_at, reverse=True)
    return recent[:RECENT_UPDATES_LIMIT]


def build_stats(
    repos: Sequence[Repository],
    issues: Sequence[Issue],
    prs: Sequence[PullRequest],
    commits: Sequence[Commit],
    *,
    now: Optional[datetime] = None,
    language_stats: Optional[list[NamedCount]] = None,
) -> DashboardStats:
    now = now or datetime.now(timezone.utc)
    owner_repos = sum(1 for repo in repos if repo.is_owner)

    totals = StatsTotals(
        repos=len(repos),
        owner_repos=owner_repos,
        collaborator_repos=len(repos) - owner_repos,
        open_issues=sum(1 for issue in issues if issue.state == "open"),
        closed_issues=sum(1 for issue in issues if issue.state == "closed"),
        open_prs=sum(1 for pr in prs if pr.state == "open"),
        merged_prs=sum(1 for pr in prs if pr.state == "merged"),
        stars=sum(repo.stars for repo in repos),
        forks=sum(repo.forks for repo in repos),
    )

    # sorted() is stable, so equal-star repos keep their input order.
    top_repos = sorted(repos, key=lambda repo: -repo.stars)[:TOP_REPOS_LIMIT]

    return DashboardStats(
        totals=totals,
        top_repos=top_repos,
        recent_updates=build_recent_updates(repos, now),
        language_stats=language_stats if language_stats is not None else summarize_languages(repos),
        activity=build_activity(commits),
    )
