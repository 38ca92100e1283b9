"""Normalized GitHub entities shared by the fetch, aggregation and rule layers.

Fields are snake_case in Python and camelCase on the wire
(``model_dump(by_alias=True, mode="json")``). Validation accepts either name so
cached JSON and snapshots round-trip into the same models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DashboardModel(BaseModel):
    """Base for every camelCase-serialized model."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Label(DashboardModel):
    name: str
    color: str = ""


class Person(DashboardModel):
    login: str
    avatar_url: Optional[str] = None


class Repository(DashboardModel):
    """A repository the account owns or collaborates on."""

    id: int
    name: str
    full_name: str
    owner: str
    is_owner: bool = False
    is_private: bool = False
    visibility: str = "public"
    description: str = ""
    language: str = "Unknown"
    stars: int = 0
    forks: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    url: str = ""


class Issue(DashboardModel):
    id: int
    number: int
    repo: str
    repo_url: str = ""
    title: str = ""
    state: Literal["open", "closed"] = "open"
    labels: list[Label] = Field(default_factory=list)
    assignee: Optional[Person] = None
    author: Optional[Person] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    url: str = ""


class PullRequest(DashboardModel):
    """Pull request; ``merged`` is derived from ``merged_at``."""

    id: int
    number: int
    repo: str
    repo_url: str = ""
    title: str = ""
    state: Literal["open", "closed", "merged"] = "open"
    labels: list[Label] = Field(default_factory=list)
    assignee: Optional[Person] = None
    author: Optional[Person] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None
    url: str = ""


class Commit(DashboardModel):
    sha: str
    repo: str
    repo_url: str = ""
    message: str = ""
    author: Optional[Person] = None
    date: Optional[datetime] = None
    url: str = ""


TimelineEventType = Literal[
    "commit",
    "issue_opened",
    "issue_closed",
    "pr_opened",
    "pr_merged",
    "pr_closed",
]


class TimelineEvent(DashboardModel):
    """Synthetic feed entry derived from an issue, PR or commit."""

    id: str
    type: TimelineEventType
    repo: str
    title: str = ""
    actor: str = "unknown"
    date: datetime
    url: str = ""


class RepoContext(DashboardModel):
    """Searchable profile of a repository: readme head plus declared packages."""

    id: int
    full_name: str
    description: str = ""
    language: str = "Unknown"
    url: str = ""
    updated_at: Optional[datetime] = None
    dependencies: list[str] = Field(default_factory=list)
    text: str = ""


class RepoDependencies(DashboardModel):
    repo_full_name: str
    repo_id: int
    dependencies: list[str] = Field(default_factory=list)


class Snapshot(DashboardModel):
    """Whole-document capture of one sync, used as the stale fallback."""

    synced_at: Optional[datetime] = None
    repos: list[Repository] = Field(default_factory=list)
    issues: list[Issue] = Field(default_factory=list)
    prs: list[PullRequest] = Field(default_factory=list)
    commits: list[Commit] = Field(default_factory=list)
    timeline: list[TimelineEvent] = Field(default_factory=list)
    dependencies: list[RepoDependencies] = Field(default_factory=list)
