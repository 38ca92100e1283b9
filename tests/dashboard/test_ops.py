from __future__ import annotations

from datetime import datetime, timedelta, timezone

from dashboard.models.entities import Commit, Issue, PullRequest, Repository
from dashboard.services.ops import summarize_ops

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


def _repo(name: str) -> Repository:
    return Repository(id=sum(map(ord, name)), name=name, full_name=f"octo/{name}", owner="octo")


def test_stale_thresholds_only_consider_open_items() -> None:
    issues = [
        Issue(id=1, number=1, repo="octo/a", state="open", updated_at=_ago(14)),
        Issue(id=2, number=2, repo="octo/a", state="open", updated_at=_ago(13.9)),
        Issue(id=3, number=3, repo="octo/a", state="closed", updated_at=_ago(40)),
    ]
    prs = [
        PullRequest(id=4, number=4, repo="octo/a", state="open", updated_at=_ago(7)),
        PullRequest(id=5, number=5, repo="octo/a", state="open", updated_at=_ago(2)),
        PullRequest(id=6, number=6, repo="octo/a", state="merged", updated_at=_ago(30)),
    ]

    summary = summarize_ops([], issues, prs, [], now=NOW)

    assert [issue.id for issue in summary.stale_issues] == [1]
    assert [pr.id for pr in summary.stale_prs] == [4]
    assert summary.counts.open_issues == 2
    assert summary.counts.open_prs == 2
    assert summary.generated_at == NOW


def test_stale_lists_are_capped_but_counts_are_not() -> None:
    issues = [Issue(id=index, number=index, repo="octo/a", state="open", updated_at=_ago(30)) for index in range(15)]

    summary = summarize_ops([], issues, [], [], now=NOW)

    assert len(summary.stale_issues) == 10
    assert summary.counts.stale_issues == 15


def test_repos_without_recent_commits_keep_repo_order() -> None:
    repos = [_repo("quiet"), _repo("busy"), _repo("never"), _repo("old")]
    commits = [
        Commit(sha="1", repo="octo/busy", date=_ago(2)),
        Commit(sha="2", repo="octo/busy", date=_ago(40)),
        Commit(sha="3", repo="octo/quiet", date=_ago(31)),
        Commit(sha="4", repo="octo/old", date=_ago(30)),
    ]

    summary = summarize_ops(repos, [], [], commits, now=NOW)

    assert [(entry.full_name, entry.last_commit_at) for entry in summary.repos_no_recent_commits] == [
        ("octo/quiet", _ago(31)),
        ("octo/never", None),
        ("octo/old", _ago(30)),
    ]
    assert summary.counts.repos_no_recent_commits == 3


def test_review_queue_counts_open_prs_per_repo() -> None:
    prs = [
        PullRequest(id=1, number=1, repo="octo/a", state="open", updated_at=NOW),
        PullRequest(id=2, number=2, repo="octo/b", state="open", updated_at=NOW),
        PullRequest(id=3, number=3, repo="octo/b", state="open", updated_at=NOW),
        PullRequest(id=4, number=4, repo="octo/c", state="open", updated_at=NOW),
        PullRequest(id=5, number=5, repo="octo/c", state="closed", updated_at=NOW),
    ]

    summary = summarize_ops([], [], prs, [], now=NOW)

    assert [(entry.repo, entry.count) for entry in summary.review_queue] == [
        ("octo/b", 2),
        ("octo/a", 1),
        ("octo/c", 1),
    ]


def test_ops_summary_serializes_with_camel_case_keys() -> None:
    payload = summarize_ops([_repo("a")], [], [], [], now=NOW).to_json()

    assert set(payload) == {"generatedAt", "counts", "staleIssues", "stalePrs", "reposNoRecentCommits", "reviewQueue"}
    assert payload["reposNoRecentCommits"] == [{"fullName": "octo/a", "lastCommitAt": None}]
