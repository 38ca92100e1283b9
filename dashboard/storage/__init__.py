"""Whole-document persistence for snapshot, rules, alerts and knowledge."""

from dashboard.storage.json_store import JsonDocumentStore
from dashboard.storage.repositories import (
    AlertRepository,
    KnowledgeRepository,
    NotFoundError,
    RuleRepository,
    SnapshotRepository,
)

__all__ = [
    "JsonDocumentStore",
    "AlertRepository",
    "KnowledgeRepository",
    "NotFoundError",
    "RuleRepository",
    "SnapshotRepository",
]
