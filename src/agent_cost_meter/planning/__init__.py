"""Pre-execution cost estimation and workflow optimization."""
from __future__ import annotations

from agent_cost_meter.planning.estimator import (
    CostEstimator,
    TaskEstimate,
    TaskEstimateEntry,
    WorkflowEstimate,
)
from agent_cost_meter.planning.models import AgentDescriptor, TaskDescriptor, Workflow, WorkflowNode
from agent_cost_meter.planning.optimizer import OptimizationResult, WorkflowOptimizer

__all__ = [
    "AgentDescriptor",
    "CostEstimator",
    "OptimizationResult",
    "TaskDescriptor",
    "TaskEstimate",
    "TaskEstimateEntry",
    "Workflow",
    "WorkflowEstimate",
    "WorkflowNode",
    "WorkflowOptimizer",
]
