"""Pure mappers from raw GitHub REST payloads to dashboard entities."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from dateutil.parser import isoparse

from dashboard.models.entities import Commit, Issue, Label, Person, PullRequest, Repository

UNKNOWN = "unknown"
UNKNOWN_LANGUAGE = "Unknown"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC-normalized datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = isoparse(str(value))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_repository(raw: dict[str, Any], username: str) -> Repository:
    owner = raw.get("owner") if isinstance(raw.get("owner"), dict) else {}
    owner_login = owner.get("login") or UNKNOWN
    is_private = bool(raw.get("private"))
    return Repository(
        id=raw["id"],
        name=raw.get("name") or "",
        full_name=raw.get("full_name") or "",
        owner=owner_login,
        is_owner=owner_login.lower() == (username or "").lower(),
        is_private=is_private,
        visibility=raw.get("visibility") or ("private" if is_private else "public"),
        description=raw.get("description") or "",
        language=raw.get("language") or UNKNOWN_LANGUAGE,
        stars=_pick_int(raw.get("stargazers_count")),
        forks=_pick_int(raw.get("forks_count")),
        created_at=parse_timestamp(raw.get("created_at")),
        updated_at=parse_timestamp(raw.get("updated_at")),
        url=raw.get("html_url") or "",
    )


def normalize_issue(raw: dict[str, Any], repo: Repository) -> Issue:
    return Issue(
        id=raw["id"],
        number=raw["number"],
        repo=repo.full_name,
        repo_url=repo.url,
        title=raw.get("title") or "",
        state="closed" if raw.get("state") == "closed" else "open",
        labels=_normalize_labels(raw.get("labels")),
        assignee=_normalize_person(raw.get("assignee")),
        author=_normalize_person(raw.get("user")),
        created_at=parse_timestamp(raw.get("created_at")),
        updated_at=parse_timestamp(raw.get("updated_at")),
        closed_at=parse_timestamp(raw.get("closed_at")),
        url=raw.get("html_url") or "",
    )


def normalize_issues(raw_items: Iterable[dict[str, Any]], repo: Repository) -> list[Issue]:
    """Normalize an issues-endpoint page, dropping entries that are really PRs."""
    return [normalize_issue(item, repo) for item in raw_items if not item.get("pull_request")]


def normalize_pull_request(raw: dict[str, Any], repo: Repository) -> PullRequest:
    merged_at = parse_timestamp(raw.get("merged_at"))
    if merged_at is not None:
        state = "merged"
    elif raw.get("state") == "closed":
        state = "closed"
    else:
        state = "open"

    return PullRequest(
        id=raw["id"],
        number=raw["number"],
        repo=repo.full_name,
        repo_url=repo.url,
        title=raw.get("title") or "",
        state=state,
        labels=_normalize_labels(raw.get("labels")),
        assignee=_normalize_person(raw.get("assignee")),
        author=_normalize_person(raw.get("user")),
        created_at=parse_timestamp(raw.get("created_at")),
        updated_at=parse_timestamp(raw.get("updated_at")),
        closed_at=parse_timestamp(raw.get("closed_at")),
        merged_at=merged_at,
        url=raw.get("html_url") or "",
    )


def normalize_commit(raw: dict[str, Any], repo: Repository) -> Commit:
    """Map a commit; the message keeps its subject line and the date is the author date."""

    detail = raw.get("commit") if isinstance(raw.get("commit"), dict) else {}
    git_author = detail.get("author") if isinstance(detail.get("author"), dict) else {}
    api_author = raw.get("author") if isinstance(raw.get("author"), dict) else None
    author = api_author or git_author

    message = detail.get("message") or ""
    return Commit(
        sha=raw["sha"],
        repo=repo.full_name,
        repo_url=repo.url,
        message=message.split("\n", 1)[0],
        author=Person(
            login=author.get("login") or author.get("name") or UNKNOWN,
            avatar_url=author.get("avatar_url") or None,
        ),
        date=parse_timestamp(git_author.get("date")),
        url=raw.get("html_url") or "",
    )


def _normalize_labels(raw_labels: Any) -> list[Label]:
    labels: list[Label] = []
    for item in raw_labels or []:
        if isinstance(item, dict) and item.get("name"):
            labels.append(Label(name=str(item["name"]), color=str(item.get("color") or "")))
        elif isinstance(item, str) and item:
            labels.append(Label(name=item))
    return labels


def _normalize_person(raw: Any) -> Optional[Person]:
    if not isinstance(raw, dict):
        return None
    login = raw.get("login") or raw.get("name")
    if not login:
        return None
    return Person(login=str(login), avatar_url=raw.get("avatar_url") or None)


def _pick_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
