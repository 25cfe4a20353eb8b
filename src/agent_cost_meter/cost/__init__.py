"""Cost accounting package for agent-cost-meter.

Provides rate-table pricing, the bounded usage ledger, threshold-alerting
budgets, and usage reporting.
"""
from __future__ import annotations

from agent_cost_meter.cost.budget import AlertThreshold, Budget, BudgetManager, ChargeResult
from agent_cost_meter.cost.ledger import HistoryEntry, LedgerEntry, UsageLedger, WindowTotals
from agent_cost_meter.cost.rates import CostModel, ResourceType, Usage, normalize_usage
from agent_cost_meter.cost.reporter import UsageReport, UsageReporter

__all__ = [
    "AlertThreshold",
    "Budget",
    "BudgetManager",
    "ChargeResult",
    "CostModel",
    "HistoryEntry",
    "LedgerEntry",
    "ResourceType",
    "Usage",
    "UsageLedger",
    "UsageReport",
    "UsageReporter",
    "WindowTotals",
    "normalize_usage",
]
