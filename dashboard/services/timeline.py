"""Merged activity feed built from issues, pull requests and commits."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from dashboard.models.entities import Commit, Issue, Person, PullRequest, TimelineEvent

DEFAULT_TIMELINE_LIMIT = 200


def build_timeline(
    issues: Sequence[Issue],
    prs: Sequence[PullRequest],
    commits: Sequence[Commit],
    limit: int = DEFAULT_TIMELINE_LIMIT,
) -> list[TimelineEvent]:
    """Return up to *limit* events, newest first. Undated events are dropped."""

    events: list[TimelineEvent] = []

    def add(event_id: str, kind: str, repo: str, title: str, actor: Optional[Person], when: Optional[datetime], url: str) -> None:
        if when is None:
            return
        events.append(
            TimelineEvent(
                id=event_id,
                type=kind,
                repo=repo,
                title=title,
                actor=actor.login if actor else "unknown",
                date=when,
                url=url,
            )
        )

    for issue in issues:
        add(f"issue-open-{issue.id}", "issue_opened", issue.repo, issue.title, issue.author, issue.created_at, issue.url)
        if issue.closed_at:
            add(f"issue-closed-{issue.id}", "issue_closed", issue.repo, issue.title, issue.assignee, issue.closed_at, issue.url)

    for pr in prs:
        add(f"pr-open-{pr.id}", "pr_opened", pr.repo, pr.title, pr.author, pr.created_at, pr.url)
        if pr.merged_at:
            add(f"pr-merged-{pr.id}", "pr_merged", pr.repo, pr.title, pr.assignee, pr.merged_at, pr.url)
        elif pr.closed_at:
            add(f"pr-closed-{pr.id}", "pr_closed", pr.repo, pr.title, pr.assignee, pr.closed_at, pr.url)

    for commit in commits:
        add(f"commit-{commit.sha}", "commit", commit.repo, commit.message, commit.author, commit.date, commit.url)

    events.sort(key=lambda event: event.date, reverse=True)
    return events[: max(limit, 0)]
