"""Document repositories for the snapshot, rules, alerts and knowledge map."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from dashboard.config.logging import sanitize_log_extra
from dashboard.models.entities import Snapshot
from dashboard.models.rules import Alert, Rule
from dashboard.storage.json_store import JsonDocumentStore

logger = logging.getLogger(__name__)

SNAPSHOT_FILE = "snapshot.json"
RULES_FILE = "rules.json"
ALERTS_FILE = "alerts.json"
KNOWLEDGE_FILE = "knowledge.json"

RULE_FIELDS = ("name", "scope", "target", "condition", "action", "enabled")
LEGACY_RULE_FIELDS = ("conditions", "actions")


class NotFoundError(LookupError):
    """A rule, alert or knowledge entry with the given key does not exist."""


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ensure_list_document(data: Any, field: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {field: []}
    if not isinstance(data.get(field), list):
        return {**data, field: []}
    return data


def _ensure_map_document(data: Any, field: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {field: {}}
    if not isinstance(data.get(field), dict):
        return {**data, field: {}}
    return data


class SnapshotRepository:
    def __init__(self, store: JsonDocumentStore) -> None:
        self._store = store

    def load(self) -> Optional[Snapshot]:
        raw = self._store.read(SNAPSHOT_FILE, None)
        if not isinstance(raw, dict):
            return None
        try:
            return Snapshot.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "Ignoring malformed snapshot",
                extra=sanitize_log_extra(error_count=exc.error_count()),
            )
            return None

    def save(self, snapshot: Snapshot) -> Snapshot:
        self._store.write(SNAPSHOT_FILE, snapshot.to_json())
        return snapshot


class RuleRepository:
    """CRUD over `rules.json`."""

    def __init__(self, store: JsonDocumentStore) -> None:
        self._store = store

    def list(self) -> list[Rule]:
        rules: list[Rule] = []
        for raw in self._document()["rules"]:
            try:
                rules.append(Rule.model_validate(raw))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed rule",
                    extra=sanitize_log_extra(rule_id=raw.get("id") if isinstance(raw, dict) else None, error_count=exc.error_count()),
                )
        return rules

    def enabled(self) -> list[Rule]:
        return [rule for rule in self.list() if rule.enabled]

    def get(self, rule_id: str) -> Rule:
        for rule in self.list():
            if rule.id == rule_id:
                return rule
        raise NotFoundError("rule not found.")

    def create(self, payload: dict[str, Any]) -> Rule:
        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("name is required.")
        now = _utcnow_iso()
        fields = {key: payload[key] for key in (*RULE_FIELDS, *LEGACY_RULE_FIELDS) if payload.get(key) is not None}
        rule = Rule.model_validate(
            {**fields, "scope": payload.get("scope") or "global", "createdAt": now, "updatedAt": now}
        )
        document = self._document()
        self._store.write(RULES_FILE, {**document, "rules": [*document["rules"], rule.to_json()]})
        return rule

    def update(self, rule_id: str, changes: dict[str, Any]) -> Rule:
        document = self._document()
        for index, raw in enumerate(document["rules"]):
            if isinstance(raw, dict) and raw.get("id") == rule_id:
                existing = Rule.model_validate(raw).to_json()
                merged = {**existing, **{key: changes[key] for key in RULE_FIELDS if changes.get(key) is not None}}
                merged["updatedAt"] = _utcnow_iso()
                rule = Rule.model_validate(merged)
                rules = list(document["rules"])
                rules[index] = rule.to_json()
                self._store.write(RULES_FILE, {**document, "rules": rules})
                return rule
        raise NotFoundError("rule not found.")

    def delete(self, rule_id: str) -> None:
        document = self._document()
        remaining = [raw for raw in document["rules"] if not (isinstance(raw, dict) and raw.get("id") == rule_id)]
        if len(remaining) == len(document["rules"]):
            raise NotFoundError("rule not found.")
        self._store.write(RULES_FILE, {**document, "rules": remaining})

    def _document(self) -> dict[str, Any]:
        return _ensure_list_document(self._store.read(RULES_FILE, {"rules": []}), "rules")


class AlertRepository:
    """CRUD over `alerts.json`; newest alerts first."""

    def __init__(self, store: JsonDocumentStore) -> None:
        self._store = store

    def list(self) -> list[Alert]:
        alerts: list[Alert] = []
        for raw in self._document()["alerts"]:
            try:
                alerts.append(Alert.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed alert", extra=sanitize_log_extra(error_count=exc.error_count()))
        return alerts

    def create(self, payload: dict[str, Any]) -> Alert:
        title = payload.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValueError("title is required.")
        alert = Alert(
            type=payload.get("type") or "info",
            severity=payload.get("severity") or "low",
            title=title,
            message=payload.get("message") or "",
            repo=payload.get("repo") or "",
        )
        self.prepend([alert])
        return alert

    def prepend(self, alerts: Iterable[Alert]) -> int:
        """Insert *alerts* ahead of the stored ones in one document write."""
        new_rows = [alert.to_json() for alert in alerts]
        if not new_rows:
            return 0

        def _prepend(data: Any) -> dict[str, Any]:
            document = _ensure_list_document(data, "alerts")
            return {**document, "alerts": [*new_rows, *document["alerts"]]}

        self._store.update(ALERTS_FILE, _prepend, {"alerts": []})
        return len(new_rows)

    def acknowledge(self, alert_id: str, acknowledged: Optional[bool] = True) -> Alert:
        document = self._document()
        for index, raw in enumerate(document["alerts"]):
            if isinstance(raw, dict) and raw.get("id") == alert_id:
                alert = Alert.model_validate(raw)
                if isinstance(acknowledged, bool):
                    alert = alert.model_copy(update={"acknowledged": acknowledged})
                alerts = list(document["alerts"])
                alerts[index] = alert.to_json()
                self._store.write(ALERTS_FILE, {**document, "alerts": alerts})
                return alert
        raise NotFoundError("alert not found.")

    def delete(self, alert_id: str) -> None:
        document = self._document()
        remaining = [raw for raw in document["alerts"] if not (isinstance(raw, dict) and raw.get("id") == alert_id)]
        if len(remaining) == len(document["alerts"]):
            raise NotFoundError("alert not found.")
        self._store.write(ALERTS_FILE, {**document, "alerts": remaining})

    def _document(self) -> dict[str, Any]:
        return _ensure_list_document(self._store.read(ALERTS_FILE, {"alerts": []}), "alerts")


class KnowledgeRepository:
    """Per-repository tags, notes and generated summaries in `knowledge.json`."""

    def __init__(self, store: JsonDocumentStore) -> None:
        self._store = store

    def all(self) -> dict[str, dict[str, Any]]:
        return dict(self._document()["repos"])

    def get(self, repo: str) -> Optional[dict[str, Any]]:
        entry = self._document()["repos"].get(repo)
        if not isinstance(entry, dict):
            return None
        return {"repo": repo, **entry}

    def upsert(
        self,
        repo: str,
        *,
        tags: Optional[list[str]] = None,
        notes: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> dict[str, Any]:
        if not isinstance(repo, str) or not repo.strip():
            raise ValueError("repo is required.")
        document = self._document()
        current = document["repos"].get(repo)
        if not isinstance(current, dict):
            current = {"tags": [], "notes": ""}

        entry = {
            **current,
            "tags": list(tags) if isinstance(tags, list) else current.get("tags", []),
            "notes": notes if isinstance(notes, str) else current.get("notes", ""),
            "updatedAt": _utcnow_iso(),
        }
        if isinstance(summary, str):
            entry["summary"] = summary

        self._store.write(KNOWLEDGE_FILE, {**document, "repos": {**document["repos"], repo: entry}})
        return {"repo": repo, **entry}

    def delete(self, repo: str) -> None:
        document = self._document()
        if repo not in document["repos"]:
            raise NotFoundError("repo not found.")
        repos = dict(document["repos"])
        del repos[repo]
        self._store.write(KNOWLEDGE_FILE, {**document, "repos": repos})

    def _document(self) -> dict[str, Any]:
        return _ensure_map_document(self._store.read(KNOWLEDGE_FILE, {"repos": {}}), "repos")
