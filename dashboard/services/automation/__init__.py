"""Rule evaluation and automation runs."""

from dashboard.services.automation.rule_engine import evaluate_rules
from dashboard.services.automation.runner import AutomationRunner

__all__ = ["AutomationRunner", "evaluate_rules"]
