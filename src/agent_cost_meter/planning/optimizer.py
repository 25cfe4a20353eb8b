"""Single-pass workflow rewriting toward a target budget.

When a workflow's estimated total exceeds the target, the optimizer applies
three rewrites once each, without iterating toward convergence:

1. Agent substitution.  Each node gets a per-node target of
   ``node_cost * target / total``.  The first documented cheaper model
   whose projected cost meets that target replaces the node's agent, and
   an ``optimization:agent-replaced`` event is published.
2. Parallelism capping.  Levels listing more than ``max_parallel_branches``
   nodes keep the first ones and move the rest to ``<level>-sequential``.
3. Complexity capping.  Tasks above ``complexity_cap`` are marked
   ``simplified`` and scaled to ``min(complexity * 0.7, cap)``.

The input workflow is never modified; the optimizer works on a deep copy.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from agent_cost_meter.config import OptimizationConfig
from agent_cost_meter.events import AgentReplaced, EventBus, MeterEvent
from agent_cost_meter.planning.estimator import CostEstimator, as_agent, as_workflow
from agent_cost_meter.planning.models import AgentDescriptor, Workflow

logger = logging.getLogger(__name__)

SEQUENTIAL_SUFFIX = "-sequential"


@dataclass
class OptimizationResult:
    """Outcome of one optimization pass.

    Attributes
    ----------
    workflow:
        The rewritten workflow (or an unchanged copy when already in budget).
    original_total:
        Estimated total before rewriting.
    target_budget:
        The requested target.
    replacements:
        Agent substitutions in node order.
    simplified:
        Ids of nodes whose complexity was capped.
    deferred:
        Node ids moved out of each parallel level.
    """

    workflow: Workflow
    original_total: float
    target_budget: float
    replacements: list[AgentReplaced] = field(default_factory=list)
    simplified: list[str] = field(default_factory=list)
    deferred: dict[str, list[str]] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.replacements or self.simplified or self.deferred)


class WorkflowOptimizer:
    """Rewrites workflows to approach a target budget.

    Parameters
    ----------
    estimator:
        Estimator used to price the workflow and each node.
    config:
        Alternatives table and capping rules.
    event_bus:
        Optional bus for ``optimization:agent-replaced`` events.
    """

    def __init__(
        self,
        estimator: CostEstimator,
        config: OptimizationConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._estimator = estimator
        self._config = config or OptimizationConfig()
        self._bus = event_bus

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def find_cheaper_alternatives(self, agent: AgentDescriptor | Mapping[str, Any]) -> list[AgentDescriptor]:
        """Return cheaper variants of *agent*, largest cost reduction first.

        Each variant copies the agent with the substitute ``model`` and the
        documented ``cost_reduction`` set.
        """
        agent = as_agent(agent)
        if agent.model is None:
            return []
        matches = [alt for alt in self._config.cheaper_alternatives if alt.from_model == agent.model]
        matches.sort(key=lambda alt: alt.cost_reduction, reverse=True)
        return [
            agent.model_copy(update={"model": alt.to_model, "cost_reduction": alt.cost_reduction}, deep=True)
            for alt in matches
        ]

    def optimize_workflow_for_cost(self, workflow: Workflow | Mapping[str, Any], target_budget: float) -> Workflow:
        """Return a rewritten copy of *workflow* aimed at *target_budget*."""
        return self.optimize(workflow, target_budget).workflow

    def optimize(self, workflow: Workflow | Mapping[str, Any], target_budget: float) -> OptimizationResult:
        """Run one optimization pass and report what changed.

        Raises
        ------
        ValueError
            When *target_budget* is negative or not finite.
        """
        if not math.isfinite(target_budget) or target_budget < 0:
            raise ValueError(f"Target budget must be a finite amount >= 0, got {target_budget!r}")
        optimized = as_workflow(workflow).model_copy(deep=True)
        estimate = self._estimator.estimate_workflow_cost(optimized)
        result = OptimizationResult(
            workflow=optimized,
            original_total=estimate.total,
            target_budget=target_budget,
        )

        if estimate.total <= target_budget:
            logger.debug("Workflow estimate %.6f already within target %.6f", estimate.total, target_budget)
            return result

        reduction_ratio = target_budget / estimate.total
        logger.info(
            "Optimizing workflow: estimate %.6f exceeds target %.6f (ratio %.3f)",
            estimate.total,
            target_budget,
            reduction_ratio,
        )

        for entry in estimate.tasks:
            replacement = self._substitute_agent(optimized, entry.task_id, entry.estimate.total, reduction_ratio)
            if replacement is not None:
                result.replacements.append(replacement)

        if optimized.parallelizable:
            result.deferred = self._cap_parallelism(optimized)

        result.simplified = self._cap_complexity(optimized)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _substitute_agent(
        self,
        workflow: Workflow,
        node_id: str,
        current_cost: float,
        reduction_ratio: float,
    ) -> AgentReplaced | None:
        node = workflow.nodes[node_id]
        target_cost = current_cost * reduction_ratio
        for alternative in self.find_cheaper_alternatives(node.agent):
            projected = current_cost * (1 - alternative.cost_reduction)
            if projected > target_cost:
                continue

            replaced = AgentReplaced(
                node_id=node_id,
                original_model=node.agent.model,
                replacement_model=alternative.model,
                cost_saving=current_cost - projected,
            )
            node.agent = alternative
            logger.info(
                "Node %s: replaced %s with %s (saving %.6f)",
                node_id,
                replaced.original_model,
                replaced.replacement_model,
                replaced.cost_saving,
            )
            if self._bus is not None:
                self._bus.publish(MeterEvent.AGENT_REPLACED, replaced)
            return replaced
        return None

    def _cap_parallelism(self, workflow: Workflow) -> dict[str, list[str]]:
        cap = self._config.max_parallel_branches
        levels = workflow.parallelizable or {}
        deferred: dict[str, list[str]] = {}
        for level, node_ids in list(levels.items()):
            if level.endswith(SEQUENTIAL_SUFFIX) or len(node_ids) <= cap:
                continue
            excess = node_ids[cap:]
            levels[level] = node_ids[:cap]
            levels.setdefault(f"{level}{SEQUENTIAL_SUFFIX}", []).extend(excess)
            deferred[level] = excess
        return deferred

    def _cap_complexity(self, workflow: Workflow) -> list[str]:
        cap = self._config.complexity_cap
        simplified: list[str] = []
        for node_id, node in workflow.nodes.items():
            complexity = node.task.complexity
            if complexity is None or complexity <= cap:
                continue
            node.task.simplified = True
            node.task.complexity = min(complexity * self._config.simplification_factor, cap)
            simplified.append(node_id)
        return simplified
