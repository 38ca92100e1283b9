"""Derived report shapes: dashboard stats and the ops summary."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from dashboard.models.entities import DashboardModel, Issue, PullRequest, Repository


class NamedCount(DashboardModel):
    name: str
    count: int


class ActivityBucket(DashboardModel):
    date: str
    count: int


class StatsTotals(DashboardModel):
    repos: int = 0
    owner_repos: int = 0
    collaborator_repos: int = 0
    open_issues: int = 0
    closed_issues: int = 0
    open_prs: int = 0
    merged_prs: int = 0
    stars: int = 0
    forks: int = 0


class DashboardStats(DashboardModel):
    totals: StatsTotals = Field(default_factory=StatsTotals)
    top_repos: list[Repository] = Field(default_factory=list)
    recent_updates: list[Repository] = Field(default_factory=list)
    language_stats: list[NamedCount] = Field(default_factory=list)
    activity: list[ActivityBucket] = Field(default_factory=list)


class OpsCounts(DashboardModel):
    repos: int = 0
    open_issues: int = 0
    open_prs: int = 0
    stale_issues: int = 0
    stale_prs: int = 0
    repos_no_recent_commits: int = 0


class RepoCommitAge(DashboardModel):
    full_name: str
    last_commit_at: Optional[datetime] = None


class ReviewQueueEntry(DashboardModel):
    repo: str
    count: int


class OpsSummary(DashboardModel):
    generated_at: datetime
    counts: OpsCounts = Field(default_factory=OpsCounts)
    stale_issues: list[Issue] = Field(default_factory=list)
    stale_prs: list[PullRequest] = Field(default_factory=list)
    repos_no_recent_commits: list[RepoCommitAge] = Field(default_factory=list)
    review_queue: list[ReviewQueueEntry] = Field(default_factory=list)
