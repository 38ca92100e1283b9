from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from dashboard.models.entities import Commit, Issue, Label, PullRequest, Repository, Snapshot
from dashboard.models.rules import Rule, RuleAction, RuleCondition
from dashboard.services.automation.rule_engine import evaluate_rules, includes_text, parse_number

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


def _rule(target: str, condition_type: str, value, **fields) -> Rule:
    return Rule(
        name=fields.pop("name", f"{condition_type} check"),
        target=target,
        condition=RuleCondition(type=condition_type, value=value),
        **fields,
    )


def _snapshot(**fields) -> Snapshot:
    return Snapshot(synced_at=NOW, **fields)


STALE_ISSUE = Issue(
    id=1,
    number=7,
    repo="octo/a",
    title="Crash on startup",
    state="open",
    labels=[Label(name="Bug")],
    updated_at=_ago(20),
    url="https://github.com/octo/a/issues/7",
)
FRESH_ISSUE = Issue(id=2, number=8, repo="octo/b", title="Docs", state="open", updated_at=_ago(1))
CLOSED_ISSUE = Issue(id=3, number=9, repo="octo/a", title="Old crash", state="closed", updated_at=_ago(90))


def test_stale_days_respects_threshold() -> None:
    snapshot = _snapshot(issues=[STALE_ISSUE, FRESH_ISSUE])

    matched = evaluate_rules([_rule("issue", "staleDays", 14)], snapshot, now=NOW)
    unmatched = evaluate_rules([_rule("issue", "staleDays", 21)], snapshot, now=NOW)

    assert [result.number for result in matched] == [7]
    assert unmatched == []


def test_result_carries_reason_and_default_action_message() -> None:
    rule = _rule("issue", "staleDays", "14", name="Stale issues")

    [result] = evaluate_rules([rule], _snapshot(issues=[STALE_ISSUE]), now=NOW)

    assert result.rule_id == rule.id
    assert result.rule_name == "Stale issues"
    assert result.target_type == "issue"
    assert result.repo == "octo/a"
    assert result.url == "https://github.com/octo/a/issues/7"
    assert result.reason == "No update for 14+ days"
    assert result.action.type == "alert"
    assert result.action.severity == "low"
    assert result.action.message == "Automated check for octo/a #7: No update for 14+ days"


def test_custom_action_message_and_severity_are_kept() -> None:
    rule = _rule(
        "issue",
        "labelContains",
        "bug",
        action=RuleAction(severity="high", message="Triage now"),
    )

    [result] = evaluate_rules([rule], _snapshot(issues=[STALE_ISSUE]), now=NOW)

    assert result.reason == 'Label contains "bug"'
    assert result.action.severity == "high"
    assert result.action.message == "Triage now"


def test_scope_limits_evaluation_to_one_repository() -> None:
    snapshot = _snapshot(issues=[STALE_ISSUE, FRESH_ISSUE])

    scoped = evaluate_rules([_rule("issue", "staleDays", 0, scope="octo/b")], snapshot, now=NOW)
    global_ = evaluate_rules([_rule("issue", "staleDays", 0)], snapshot, now=NOW)

    assert [result.repo for result in scoped] == ["octo/b"]
    assert [result.repo for result in global_] == ["octo/a", "octo/b"]


def test_closed_work_items_never_match() -> None:
    results = evaluate_rules([_rule("issue", "titleContains", "crash")], _snapshot(issues=[CLOSED_ISSUE, STALE_ISSUE]), now=NOW)

    assert [result.number for result in results] == [7]
    assert results[0].reason == 'Title contains "crash"'


def test_pull_request_rules_use_pr_collection() -> None:
    prs = [
        PullRequest(id=10, number=3, repo="octo/a", title="WIP: refactor", state="open", updated_at=_ago(2)),
        PullRequest(id=11, number=4, repo="octo/a", title="WIP: merged", state="merged", updated_at=_ago(2)),
    ]

    results = evaluate_rules([_rule("pr", "titleContains", "wip")], _snapshot(prs=prs, issues=[STALE_ISSUE]), now=NOW)

    assert [(result.target_type, result.number) for result in results] == [("pr", 3)]


def test_repository_conditions() -> None:
    repos = [
        Repository(id=1, name="a", full_name="octo/a", owner="octo", language="Python", stars=120, url="https://github.com/octo/a"),
        Repository(id=2, name="b", full_name="octo/b", owner="octo", language="Go", stars=5),
    ]
    commits = [
        Commit(sha="1", repo="octo/a", date=_ago(45)),
        Commit(sha="2", repo="octo/b", date=_ago(3)),
    ]
    snapshot = _snapshot(repos=repos, commits=commits)

    quiet = evaluate_rules([_rule("repo", "noCommitDays", 30)], snapshot, now=NOW)
    python = evaluate_rules([_rule("repo", "languageIs", "python")], snapshot, now=NOW)
    popular = evaluate_rules([_rule("repo", "starsAbove", 100)], snapshot, now=NOW)

    assert [result.repo for result in quiet] == ["octo/a"]
    assert quiet[0].reason == "No commits for 30+ days"
    assert quiet[0].action.message == "Automated check for octo/a: No commits for 30+ days"
    assert quiet[0].number is None
    assert python[0].reason == 'Language is "Python"'
    assert [result.repo for result in popular] == ["octo/a"]
    assert popular[0].reason == "Stars at or above 100"


def test_repo_without_commits_counts_as_infinitely_quiet() -> None:
    snapshot = _snapshot(repos=[Repository(id=1, name="new", full_name="octo/new", owner="octo")])

    results = evaluate_rules([_rule("repo", "noCommitDays", 365)], snapshot, now=NOW)

    assert [result.repo for result in results] == ["octo/new"]


@pytest.mark.parametrize("value", ["soon", None, "nan"])
def test_non_numeric_threshold_never_matches(value) -> None:
    results = evaluate_rules([_rule("issue", "staleDays", value)], _snapshot(issues=[STALE_ISSUE]), now=NOW)

    assert results == []


def test_condition_type_must_match_target() -> None:
    snapshot = _snapshot(issues=[STALE_ISSUE], repos=[Repository(id=1, name="a", full_name="octo/a", owner="octo", stars=500)])

    assert evaluate_rules([_rule("issue", "starsAbove", 1)], snapshot, now=NOW) == []
    assert evaluate_rules([_rule("repo", "staleDays", 1)], snapshot, now=NOW) == []


def test_disabled_rules_are_skipped_and_results_follow_rule_order() -> None:
    snapshot = _snapshot(issues=[STALE_ISSUE])
    rules = [
        _rule("issue", "titleContains", "crash", name="second"),
        _rule("issue", "staleDays", 1, name="disabled", enabled=False),
        _rule("issue", "labelContains", "bug", name="third"),
    ]

    results = evaluate_rules(rules, snapshot, now=NOW)

    assert [result.rule_name for result in results] == ["second", "third"]


def test_empty_text_query_never_matches() -> None:
    assert includes_text("anything", "") is False
    assert includes_text("anything", "   ") is False
    assert includes_text(None, "x") is False
    assert includes_text("Hello World", " world ") is True


def test_parse_number() -> None:
    assert parse_number("7") == 7.0
    assert parse_number(2.5) == 2.5
    assert parse_number("inf") is None
    assert parse_number(True) is None
    assert parse_number("") is None


def test_legacy_rule_layout_is_accepted() -> None:
    rule = Rule.model_validate(
        {
            "name": "Legacy",
            "conditions": {"target": "repo", "type": "starsAbove", "value": 10},
            "actions": {"type": "alert", "severity": "medium"},
        }
    )

    assert rule.target == "repo"
    assert rule.condition.type == "starsAbove"
    assert rule.action.severity == "medium"
    assert rule.is_global
