"""Automation rule, alert and evaluation-result models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import Field, model_validator

from dashboard.models.entities import DashboardModel

RuleTarget = Literal["issue", "pr", "repo"]
Severity = Literal["low", "medium", "high"]

ISSUE_CONDITION_TYPES = frozenset({"staleDays", "labelContains", "titleContains"})
REPO_CONDITION_TYPES = frozenset({"noCommitDays", "languageIs", "starsAbove"})


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RuleCondition(DashboardModel):
    type: str
    value: Optional[Union[str, int, float]] = None


class RuleAction(DashboardModel):
    type: str = "alert"
    severity: Severity = "low"
    message: Optional[str] = None


class Rule(DashboardModel):
    """User-authored condition check evaluated against a snapshot."""

    id: str = Field(default_factory=_new_id)
    name: str
    scope: str = "global"
    target: RuleTarget
    condition: RuleCondition
    action: RuleAction = Field(default_factory=RuleAction)
    enabled: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_layout(cls, data: Any) -> Any:
        # Older documents nest the target inside `conditions` and use `actions`.
        if not isinstance(data, dict) or "conditions" not in data:
            return data
        data = dict(data)
        conditions = dict(data.pop("conditions") or {})
        data.setdefault("target", conditions.pop("target", None))
        data.setdefault("condition", conditions)
        if "actions" in data:
            data.setdefault("action", data.pop("actions") or {})
        return data

    @property
    def is_global(self) -> bool:
        return not self.scope or self.scope == "global"


class Alert(DashboardModel):
    id: str = Field(default_factory=_new_id)
    type: str = "info"
    severity: Severity = "low"
    title: str
    message: str = ""
    repo: str = ""
    acknowledged: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    source: Optional[str] = None
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    target_type: Optional[RuleTarget] = None
    target_url: Optional[str] = None


class RuleResult(DashboardModel):
    """One entity that matched one rule."""

    id: str = Field(default_factory=_new_id)
    rule_id: str
    rule_name: str
    target_type: RuleTarget
    repo: str
    title: str
    number: Optional[int] = None
    url: str = ""
    reason: str
    action: RuleAction


class AutomationRun(DashboardModel):
    generated_at: datetime
    rules: int
    results: list[RuleResult] = Field(default_factory=list)
    applied: int = 0
