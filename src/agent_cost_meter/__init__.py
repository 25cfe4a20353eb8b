"""agent-cost-meter: resource metering, budgets and cost planning for agent workflows.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import agent_cost_meter as acm
>>> acm.__version__
'0.1.0'
>>> meter = acm.ResourceMeter()
>>> round(meter.track_usage("agent-1", "api", {"amount": 10}), 6)
0.001
"""
from __future__ import annotations

__version__: str = "0.1.0"

from agent_cost_meter.meter import ResourceMeter

# ---------------------------------------------------------------------------
# Configuration and errors
# ---------------------------------------------------------------------------
from agent_cost_meter.config import ConfigLoader, MeterConfig
from agent_cost_meter.exceptions import CostMeterError, DataFormatError, InvalidUsage, NoSuchBudget

# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
from agent_cost_meter.events import (
    AgentReplaced,
    BudgetAlert,
    BudgetExceeded,
    DataImported,
    EventBus,
    MeterEvent,
    UsageTracked,
)

# ---------------------------------------------------------------------------
# Cost
# ---------------------------------------------------------------------------
from agent_cost_meter.cost.budget import AlertThreshold, Budget, BudgetManager, ChargeResult
from agent_cost_meter.cost.ledger import HistoryEntry, LedgerEntry, UsageLedger
from agent_cost_meter.cost.rates import CostModel, ResourceType, Usage
from agent_cost_meter.cost.reporter import UsageReport, UsageReporter

# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------
from agent_cost_meter.monitoring.anomaly import Anomaly, AnomalyDetector, AnomalyKind, AnomalySeverity
from agent_cost_meter.monitoring.engine import Metrics, MonitoringEngine, MonitoringUpdate
from agent_cost_meter.monitoring.prediction import Prediction, PredictionEngine
from agent_cost_meter.monitoring.scheduler import PeriodicTask

# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------
from agent_cost_meter.planning.estimator import CostEstimator, TaskEstimate, WorkflowEstimate
from agent_cost_meter.planning.models import AgentDescriptor, TaskDescriptor, Workflow, WorkflowNode
from agent_cost_meter.planning.optimizer import OptimizationResult, WorkflowOptimizer

# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
from agent_cost_meter.snapshot import CostSnapshot, export_cost_data, parse_snapshot

__all__ = [
    "__version__",
    # Facade
    "ResourceMeter",
    # Configuration and errors
    "ConfigLoader",
    "CostMeterError",
    "DataFormatError",
    "InvalidUsage",
    "MeterConfig",
    "NoSuchBudget",
    # Events
    "AgentReplaced",
    "BudgetAlert",
    "BudgetExceeded",
    "DataImported",
    "EventBus",
    "MeterEvent",
    "UsageTracked",
    # Cost
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
    # Monitoring
    "Anomaly",
    "AnomalyDetector",
    "AnomalyKind",
    "AnomalySeverity",
    "Metrics",
    "MonitoringEngine",
    "MonitoringUpdate",
    "PeriodicTask",
    "Prediction",
    "PredictionEngine",
    # Planning
    "AgentDescriptor",
    "CostEstimator",
    "OptimizationResult",
    "TaskDescriptor",
    "TaskEstimate",
    "Workflow",
    "WorkflowEstimate",
    "WorkflowNode",
    "WorkflowOptimizer",
    # Snapshots
    "CostSnapshot",
    "export_cost_data",
    "parse_snapshot",
]
