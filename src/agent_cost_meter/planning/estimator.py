"""Cost estimation for tasks and workflows that have not run yet.

The estimator first looks for analog tasks in the ledger's global history.
A history entry is an analog when its metadata carries the same
``task_type``, the same ``task_complexity``, or a ``task_description`` that
contains the task's type (or, without a type, its description).  With
analogs, the estimate is the mean analog cost scaled by
``complexity / reference_complexity``.  Without analogs it falls back to
heuristics: ``complexity * 1000`` tokens split 30/70 input/output,
``complexity * 0.01`` CPU hours and ``complexity * 2`` API calls, each
priced through the cost model.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from agent_cost_meter.config import EstimationConfig
from agent_cost_meter.cost.ledger import HistoryEntry, UsageLedger
from agent_cost_meter.cost.rates import CostModel, ResourceType
from agent_cost_meter.planning.models import AgentDescriptor, TaskDescriptor, Workflow

logger = logging.getLogger(__name__)

MIN_COST_DENOMINATOR = 0.001


@dataclass
class TaskEstimate:
    """Estimated cost of one task.

    Attributes
    ----------
    tokens, compute, api:
        Cost per resource type.
    total:
        Estimated total cost.
    breakdown:
        Cost per resource type as a mapping.
    analogs:
        Number of historical analogs the estimate was based on.
    """

    tokens: float = 0.0
    compute: float = 0.0
    api: float = 0.0
    total: float = 0.0
    breakdown: dict[str, float] = field(default_factory=dict)
    analogs: int = 0

    @property
    def from_history(self) -> bool:
        return self.analogs > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokens": self.tokens,
            "compute": self.compute,
            "api": self.api,
            "total": self.total,
            "breakdown": dict(self.breakdown),
        }


@dataclass
class TaskEstimateEntry:
    """A workflow node together with its estimate."""

    task_id: str
    task: TaskDescriptor
    agent: AgentDescriptor
    estimate: TaskEstimate


@dataclass
class WorkflowEstimate:
    """Estimated cost of a whole workflow.

    ``confidence`` is the fraction of tasks with at least one analog.
    """

    tasks: list[TaskEstimateEntry] = field(default_factory=list)
    total: float = 0.0
    by_agent: dict[str, float] = field(default_factory=dict)
    by_resource: dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0

    def for_task(self, task_id: str) -> TaskEstimate:
        for entry in self.tasks:
            if entry.task_id == task_id:
                return entry.estimate
        raise KeyError(task_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks": [
                {
                    "task_id": entry.task_id,
                    "task": entry.task.model_dump(),
                    "agent": entry.agent.model_dump(),
                    "estimate": entry.estimate.to_dict(),
                }
                for entry in self.tasks
            ],
            "total": self.total,
            "by_agent": dict(self.by_agent),
            "by_resource": dict(self.by_resource),
            "confidence": self.confidence,
        }


def as_task(task: TaskDescriptor | Mapping[str, Any]) -> TaskDescriptor:
    return task if isinstance(task, TaskDescriptor) else TaskDescriptor.model_validate(task)


def as_agent(agent: AgentDescriptor | Mapping[str, Any]) -> AgentDescriptor:
    return agent if isinstance(agent, AgentDescriptor) else AgentDescriptor.model_validate(agent)


def as_workflow(workflow: Workflow | Mapping[str, Any]) -> Workflow:
    return workflow if isinstance(workflow, Workflow) else Workflow.model_validate(workflow)


class CostEstimator:
    """Estimates task and workflow costs from history and heuristics.

    Parameters
    ----------
    ledger:
        Ledger whose global history supplies analog tasks.
    cost_model:
        Cost model used for heuristic pricing.
    config:
        Estimation heuristics.
    """

    def __init__(
        self,
        ledger: UsageLedger,
        cost_model: CostModel,
        config: EstimationConfig | None = None,
    ) -> None:
        self._ledger = ledger
        self._cost_model = cost_model
        self._config = config or EstimationConfig()

    @property
    def cost_model(self) -> CostModel:
        return self._cost_model

    @cost_model.setter
    def cost_model(self, value: CostModel) -> None:
        self._cost_model = value

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def find_similar_tasks(self, task: TaskDescriptor | Mapping[str, Any]) -> list[HistoryEntry]:
        """Return history entries judged similar to *task*."""
        task = as_task(task)
        needle = task.type or task.description
        matches: list[HistoryEntry] = []
        for entry in self._ledger.history():
            meta = entry.metadata
            if task.type is not None and meta.get("task_type") == task.type:
                matches.append(entry)
            elif task.complexity is not None and meta.get("task_complexity") == task.complexity:
                matches.append(entry)
            elif needle and isinstance(meta.get("task_description"), str) and needle in meta["task_description"]:
                matches.append(entry)
        return matches

    def estimate_task_cost(
        self,
        task: TaskDescriptor | Mapping[str, Any],
        agent: AgentDescriptor | Mapping[str, Any],
    ) -> TaskEstimate:
        """Estimate the cost of running *task* with *agent*."""
        task = as_task(task)
        agent = as_agent(agent)
        complexity = task.complexity if task.complexity is not None else self._config.default_complexity
        similar = self.find_similar_tasks(task)

        if similar:
            return self._from_analogs(similar, complexity)
        return self._from_heuristics(complexity, agent.model or self._cost_model.default_model)

    def estimate_workflow_cost(self, workflow: Workflow | Mapping[str, Any]) -> WorkflowEstimate:
        """Estimate every node of *workflow* and aggregate the results."""
        workflow = as_workflow(workflow)
        result = WorkflowEstimate()

        for node_id, node in workflow.nodes.items():
            estimate = self.estimate_task_cost(node.task, node.agent)
            result.tasks.append(TaskEstimateEntry(task_id=node_id, task=node.task, agent=node.agent, estimate=estimate))
            result.total += estimate.total
            result.by_agent[node.agent.key] = result.by_agent.get(node.agent.key, 0.0) + estimate.total
            for resource, cost in estimate.breakdown.items():
                result.by_resource[resource] = result.by_resource.get(resource, 0.0) + cost

        if result.tasks:
            with_history = sum(1 for entry in result.tasks if entry.estimate.from_history)
            result.confidence = with_history / len(result.tasks)
        return result

    def select_optimal_agent_with_budget(
        self,
        task: TaskDescriptor | Mapping[str, Any],
        candidates: Iterable[AgentDescriptor | Mapping[str, Any]],
        budget: float,
    ) -> AgentDescriptor | None:
        """Return the candidate with the best ``score / cost`` within *budget*.

        Candidates whose estimate exceeds *budget* are skipped.  Ties keep
        the candidates' original order.  Returns ``None`` when none fit.
        """
        task = as_task(task)
        ranked: list[tuple[float, AgentDescriptor]] = []
        for candidate in candidates:
            agent = as_agent(candidate)
            estimate = self.estimate_task_cost(task, agent)
            if estimate.total > budget:
                logger.debug("Agent %s skipped: estimate %.6f exceeds budget %.6f", agent.key, estimate.total, budget)
                continue
            ranked.append((agent.score / (estimate.total or MIN_COST_DENOMINATOR), agent))

        if not ranked:
            return None
        ranked.sort(key=lambda item: item[0], reverse=True)
        return ranked[0][1]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _from_analogs(self, similar: list[HistoryEntry], complexity: float) -> TaskEstimate:
        count = len(similar)
        mean_cost = sum(entry.cost for entry in similar) / count
        breakdown: dict[str, float] = {}
        for entry in similar:
            resource = entry.resource_type.value
            breakdown[resource] = breakdown.get(resource, 0.0) + entry.cost / count

        return TaskEstimate(
            tokens=breakdown.get(ResourceType.TOKENS.value, 0.0),
            compute=breakdown.get(ResourceType.COMPUTE.value, 0.0),
            api=breakdown.get(ResourceType.API.value, 0.0),
            total=mean_cost * (complexity / self._config.default_complexity),
            breakdown=breakdown,
            analogs=count,
        )

    def _from_heuristics(self, complexity: float, model: str) -> TaskEstimate:
        cfg = self._config
        estimated_tokens = complexity * cfg.tokens_per_complexity
        tokens = self._cost_model.cost(
            ResourceType.TOKENS,
            {
                "input": estimated_tokens * cfg.input_token_share,
                "output": estimated_tokens * (1 - cfg.input_token_share),
            },
            {"model": model},
        )
        compute = self._cost_model.cost(
            ResourceType.COMPUTE,
            {"amount": complexity * cfg.compute_hours_per_complexity},
            {"type": "cpu-hour"},
        )
        api = self._cost_model.cost(
            ResourceType.API,
            {"amount": complexity * cfg.api_calls_per_complexity},
            {"type": "api-call"},
        )
        return TaskEstimate(
            tokens=tokens,
            compute=compute,
            api=api,
            total=tokens + compute + api,
            breakdown={
                ResourceType.TOKENS.value: tokens,
                ResourceType.COMPUTE.value: compute,
                ResourceType.API.value: api,
            },
        )
