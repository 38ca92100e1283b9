"""Automation run: evaluate enabled rules and optionally persist alerts."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from dashboard.config.logging import sanitize_log_extra
from dashboard.models.rules import Alert, AutomationRun, RuleResult
from dashboard.services.automation.rule_engine import evaluate_rules
from dashboard.storage.repositories import AlertRepository, RuleRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutomationRunner:
    """Runs the rule engine in preview or apply mode.

    Apply mode appends one alert per matching `alert` action. Repeated runs
    over unchanged data produce duplicate alerts, and the alert document is
    rewritten whole, so concurrent runs can lose updates (single writer).
    """

    def __init__(
        self,
        orchestrator: Any,
        rules_repo: RuleRepository,
        alerts_repo: AlertRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._orchestrator = orchestrator
        self._rules_repo = rules_repo
        self._alerts_repo = alerts_repo
        self._clock = clock

    async def run(self, *, apply: bool = False, force: bool = False) -> AutomationRun:
        rules = await asyncio.to_thread(self._rules_repo.enabled)
        data = await self._orchestrator.load_data(force=force)
        now = self._clock()

        results = evaluate_rules(rules, data, now=now)
        applied = 0
        if apply and results:
            alerts = [self._to_alert(result, now) for result in results if result.action.type == "alert"]
            applied = await asyncio.to_thread(self._alerts_repo.prepend, alerts)

        logger.info(
            "Automation run finished",
            extra=sanitize_log_extra(rules=len(rules), results=len(results), applied=applied, apply=apply),
        )
        return AutomationRun(generated_at=now, rules=len(rules), results=results, applied=applied)

    @staticmethod
    def _to_alert(result: RuleResult, now: datetime) -> Alert:
        return Alert(
            type="automation",
            severity=result.action.severity or "low",
            title=f"{result.rule_name}: {result.title}",
            message=result.action.message or result.reason,
            repo=result.repo or "",
            acknowledged=False,
            created_at=now,
            source="automation",
            rule_id=result.rule_id,
            rule_name=result.rule_name,
            target_type=result.target_type,
            target_url=result.url or "",
        )
