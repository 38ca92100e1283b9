"""Stateless evaluation of automation rules against a data snapshot."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar, Union

from dashboard.models.entities import Commit, Issue, PullRequest, Repository, Snapshot
from dashboard.models.rules import (
    ISSUE_CONDITION_TYPES,
    REPO_CONDITION_TYPES,
    Rule,
    RuleAction,
    RuleResult,
)
from dashboard.services.ops import days_since, latest_commit_by_repo

T = TypeVar("T")
WorkItem = Union[Issue, PullRequest]


def evaluate_rules(
    rules: Iterable[Rule],
    snapshot: Snapshot,
    *,
    now: Optional[datetime] = None,
) -> list[RuleResult]:
    """Evaluate every enabled rule and return matches in rule order."""

    now = now or datetime.now(timezone.utc)
    latest_commits = latest_commit_by_repo(snapshot.commits)
    results: list[RuleResult] = []

    for rule in rules:
        if not rule.enabled:
            continue
        if rule.target == "issue":
            scoped = _apply_scope(snapshot.issues, rule, lambda item: item.repo)
            results.extend(_evaluate_work_items(rule, scoped, now))
        elif rule.target == "pr":
            scoped = _apply_scope(snapshot.prs, rule, lambda item: item.repo)
            results.extend(_evaluate_work_items(rule, scoped, now))
        elif rule.target == "repo":
            scoped = _apply_scope(snapshot.repos, rule, lambda item: item.full_name)
            results.extend(_evaluate_repos(rule, scoped, latest_commits, now))
    return results


def _apply_scope(items: Sequence[T], rule: Rule, repo_of: Callable[[T], str]) -> list[T]:
    if rule.is_global:
        return list(items)
    return [item for item in items if repo_of(item) == rule.scope]


def _evaluate_work_items(rule: Rule, items: Sequence[WorkItem], now: datetime) -> list[RuleResult]:
    condition_type = rule.condition.type
    if condition_type not in ISSUE_CONDITION_TYPES:
        return []

    value = rule.condition.value
    results: list[RuleResult] = []
    for item in items:
        if item.state != "open":
            continue
        if not _work_item_matches(condition_type, value, item, now):
            continue
        reason = build_reason(condition_type, value, item)
        results.append(
            RuleResult(
                rule_id=rule.id,
                rule_name=rule.name,
                target_type=rule.target,
                repo=item.repo,
                title=item.title,
                number=item.number,
                url=item.url,
                reason=reason,
                action=build_action(rule, f"{item.repo} #{item.number}", reason),
            )
        )
    return results


def _work_item_matches(condition_type: str, value: Any, item: WorkItem, now: datetime) -> bool:
    if condition_type == "staleDays":
        days = parse_number(value)
        return days is not None and days_since(item.updated_at, now) >= days
    if condition_type == "labelContains":
        return any(includes_text(label.name, value) for label in item.labels)
    if condition_type == "titleContains":
        return includes_text(item.title, value)
    return False


def _evaluate_repos(
    rule: Rule,
    repos: Sequence[Repository],
    latest_commits: dict[str, datetime],
    now: datetime,
) -> list[RuleResult]:
    condition_type = rule.condition.type
    if condition_type not in REPO_CONDITION_TYPES:
        return []

    value = rule.condition.value
    results: list[RuleResult] = []
    for repo in repos:
        if not _repo_matches(condition_type, value, repo, latest_commits.get(repo.full_name), now):
            continue
        reason = build_reason(condition_type, value, repo)
        results.append(
            RuleResult(
                rule_id=rule.id,
                rule_name=rule.name,
                target_type="repo",
                repo=repo.full_name,
                title=repo.full_name,
                url=repo.url,
                reason=reason,
                action=build_action(rule, repo.full_name, reason),
            )
        )
    return results


def _repo_matches(
    condition_type: str,
    value: Any,
    repo: Repository,
    last_commit: Optional[datetime],
    now: datetime,
) -> bool:
    if condition_type == "noCommitDays":
        days = parse_number(value)
        return days is not None and days_since(last_commit, now) >= days
    if condition_type == "languageIs":
        return includes_text(repo.language, value)
    if condition_type == "starsAbove":
        minimum = parse_number(value)
        return minimum is not None and repo.stars >= minimum
    return False


def build_reason(condition_type: str, value: Any, item: Any) -> str:
    shown = _format_value(value)
    if condition_type == "staleDays":
        return f"No update for {shown}+ days"
    if condition_type == "labelContains":
        return f'Label contains "{shown}"'
    if condition_type == "titleContains":
        return f'Title contains "{shown}"'
    if condition_type == "noCommitDays":
        return f"No commits for {shown}+ days"
    if condition_type == "languageIs":
        return f'Language is "{getattr(item, "language", None) or shown}"'
    if condition_type == "starsAbove":
        return f"Stars at or above {shown}"
    return "Condition matched"


def build_action(rule: Rule, target_label: str, reason: str) -> RuleAction:
    return RuleAction(
        type=rule.action.type or "alert",
        severity=rule.action.severity or "low",
        message=rule.action.message or f"Automated check for {target_label}: {reason}",
    )


def parse_number(value: Any) -> Optional[float]:
    """Return a finite float, or None when *value* is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def includes_text(source: Any, query: Any) -> bool:
    """Case-insensitive containment; an empty query never matches."""
    needle = _normalize_text(query)
    if not needle:
        return False
    return needle in _normalize_text(source)


def _normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _format_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return "" if value is None else str(value)
