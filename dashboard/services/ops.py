"""Staleness and backlog metrics for the ops view."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from dashboard.models.entities import Commit, Issue, PullRequest, Repository
from dashboard.models.reports import OpsCounts, OpsSummary, RepoCommitAge, ReviewQueueEntry

STALE_ISSUE_DAYS = 14
STALE_PR_DAYS = 7
NO_COMMIT_DAYS = 30

STALE_LIST_LIMIT = 10
NO_COMMIT_LIST_LIMIT = 10
REVIEW_QUEUE_LIMIT = 8

_SECONDS_PER_DAY = 86400.0


def days_since(value: Optional[datetime], now: datetime) -> float:
    """Fractional days between *value* and *now*; a missing value is infinitely old."""
    if value is None:
        return float("inf")
    return (now - value).total_seconds() / _SECONDS_PER_DAY


def latest_commit_by_repo(commits: Sequence[Commit]) -> dict[str, datetime]:
    latest: dict[str, datetime] = {}
    for commit in commits:
        if not commit.repo or commit.date is None:
            continue
        previous = latest.get(commit.repo)
        if previous is None or commit.date > previous:
            latest[commit.repo] = commit.date
    return latest


def summarize_ops(
    repos: Sequence[Repository],
    issues: Sequence[Issue],
    prs: Sequence[PullRequest],
    commits: Sequence[Commit],
    *,
    now: Optional[datetime] = None,
) -> OpsSummary:
    now = now or datetime.now(timezone.utc)

    open_issues = [issue for issue in issues if issue.state == "open"]
    open_prs = [pr for pr in prs if pr.state == "open"]
    stale_issues = [issue for issue in open_issues if days_since(issue.updated_at, now) >= STALE_ISSUE_DAYS]
    stale_prs = [pr for pr in open_prs if days_since(pr.updated_at, now) >= STALE_PR_DAYS]

    latest = latest_commit_by_repo(commits)
    quiet_repos = [
        RepoCommitAge(full_name=repo.full_name, last_commit_at=latest.get(repo.full_name))
        for repo in repos
        if days_since(latest.get(repo.full_name), now) >= NO_COMMIT_DAYS
    ]

    queue: dict[str, int] = {}
    for pr in open_prs:
        queue[pr.repo] = queue.get(pr.repo, 0) + 1
    review_queue = [
        ReviewQueueEntry(repo=repo, count=count)
        for repo, count in sorted(queue.items(), key=lambda item: -item[1])[:REVIEW_QUEUE_LIMIT]
    ]

    return OpsSummary(
        generated_at=now,
        counts=OpsCounts(
            repos=len(repos),
            open_issues=len(open_issues),
            open_prs=len(open_prs),
            stale_issues=len(stale_issues),
            stale_prs=len(stale_prs),
            repos_no_recent_commits=len(quiet_repos),
        ),
        stale_issues=stale_issues[:STALE_LIST_LIMIT],
        stale_prs=stale_prs[:STALE_LIST_LIMIT],
        repos_no_recent_commits=quiet_repos[:NO_COMMIT_LIST_LIMIT],
        review_queue=review_queue,
    )
