"""Entity, report, rule and database models"""

from dashboard.models.cache_entry import CacheRecord
from dashboard.models.entities import (
    Commit,
    Issue,
    Label,
    Person,
    PullRequest,
    Repository,
    Snapshot,
    TimelineEvent,
)
from dashboard.models.reports import DashboardStats, OpsSummary
from dashboard.models.rules import Alert, AutomationRun, Rule, RuleAction, RuleCondition, RuleResult

__all__ = [
    "CacheRecord",
    "Commit",
    "Issue",
    "Label",
    "Person",
    "PullRequest",
    "Repository",
    "Snapshot",
    "TimelineEvent",
    "DashboardStats",
    "OpsSummary",
    "Alert",
    "AutomationRun",
    "Rule",
    "RuleAction",
    "RuleCondition",
    "RuleResult",
]
