"""Tests for CostEstimator analog matching, heuristics and agent selection."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from agent_cost_meter.cost.ledger import UsageLedger
from agent_cost_meter.cost.rates import CostModel, Usage
from agent_cost_meter.planning.estimator import CostEstimator
from agent_cost_meter.planning.models import AgentDescriptor, TaskDescriptor, Workflow

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

# complexity 5 on claude-3-sonnet: 1500 in / 3500 out tokens, 0.05 cpu-hours, 10 api calls
SONNET_DEFAULT_COST = 0.0045 + 0.0525 + 0.005 + 0.001
OPUS_DEFAULT_COST = 0.0225 + 0.2625 + 0.005 + 0.001
HAIKU_DEFAULT_COST = 0.000375 + 0.004375 + 0.005 + 0.001


@pytest.fixture()
def ledger() -> UsageLedger:
    return UsageLedger(clock=lambda: NOW)


@pytest.fixture()
def estimator(ledger: UsageLedger) -> CostEstimator:
    return CostEstimator(ledger, CostModel())


def _record_task(ledger: UsageLedger, cost: float, resource: str = "tokens", **meta: object) -> None:
    ledger.record("worker", resource, Usage(amount=1), cost, metadata=dict(meta), timestamp=NOW)


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


class TestHeuristicEstimate:
    def test_default_complexity_on_sonnet(self, estimator: CostEstimator) -> None:
        estimate = estimator.estimate_task_cost({"type": "draft"}, {"model": "claude-3-sonnet"})
        assert estimate.total == pytest.approx(SONNET_DEFAULT_COST)
        assert estimate.tokens == pytest.approx(0.057)
        assert estimate.compute == pytest.approx(0.005)
        assert estimate.api == pytest.approx(0.001)
        assert estimate.analogs == 0
        assert not estimate.from_history

    def test_breakdown_matches_components(self, estimator: CostEstimator) -> None:
        estimate = estimator.estimate_task_cost(TaskDescriptor(complexity=5), AgentDescriptor())
        assert estimate.breakdown == {
            "tokens": pytest.approx(0.057),
            "compute": pytest.approx(0.005),
            "api": pytest.approx(0.001),
        }

    def test_agent_without_model_uses_default_model(self, estimator: CostEstimator) -> None:
        estimate = estimator.estimate_task_cost({"complexity": 5}, {"name": "anon"})
        assert estimate.total == pytest.approx(SONNET_DEFAULT_COST)

    def test_scales_with_complexity(self, estimator: CostEstimator) -> None:
        estimate = estimator.estimate_task_cost({"complexity": 10}, {"model": "claude-3-opus"})
        assert estimate.total == pytest.approx(0.045 + 0.525 + 0.01 + 0.002)

    def test_unknown_model_prices_tokens_at_zero(self, estimator: CostEstimator) -> None:
        estimate = estimator.estimate_task_cost({"complexity": 5}, {"model": "mystery"})
        assert estimate.tokens == 0.0
        assert estimate.total == pytest.approx(0.006)


# ---------------------------------------------------------------------------
# Analogs
# ---------------------------------------------------------------------------


class TestAnalogEstimate:
    def test_matches_on_task_type(self, estimator: CostEstimator, ledger: UsageLedger) -> None:
        _record_task(ledger, 0.2, task_type="review")
        _record_task(ledger, 0.4, task_type="review")
        _record_task(ledger, 9.0, task_type="deploy")
        assert len(estimator.find_similar_tasks({"type": "review"})) == 2

    def test_matches_on_complexity(self, estimator: CostEstimator, ledger: UsageLedger) -> None:
        _record_task(ledger, 0.2, task_complexity=3)
        assert len(estimator.find_similar_tasks({"type": "other", "complexity": 3})) == 1

    def test_matches_on_description_substring(self, estimator: CostEstimator, ledger: UsageLedger) -> None:
        _record_task(ledger, 0.2, task_description="careful review of the parser module")
        assert len(estimator.find_similar_tasks({"type": "review"})) == 1
        assert len(estimator.find_similar_tasks({"description": "parser"})) == 1

    def test_untagged_history_never_matches(self, estimator: CostEstimator, ledger: UsageLedger) -> None:
        _record_task(ledger, 0.2)
        assert estimator.find_similar_tasks({}) == []
        assert estimator.find_similar_tasks({"type": "review", "complexity": 5}) == []

    def test_mean_cost_scaled_by_complexity(self, estimator: CostEstimator, ledger: UsageLedger) -> None:
        _record_task(ledger, 0.2, task_type="review")
        _record_task(ledger, 0.4, task_type="review")
        estimate = estimator.estimate_task_cost({"type": "review", "complexity": 10}, {"model": "claude-3-opus"})
        assert estimate.total == pytest.approx(0.6)
        assert estimate.analogs == 2
        assert estimate.from_history

    def test_breakdown_averaged_per_resource(self, estimator: CostEstimator, ledger: UsageLedger) -> None:
        _record_task(ledger, 0.2, resource="tokens", task_type="review")
        _record_task(ledger, 0.4, resource="compute", task_type="review")
        estimate = estimator.estimate_task_cost({"type": "review"}, {})
        assert estimate.breakdown == {"tokens": pytest.approx(0.1), "compute": pytest.approx(0.2)}
        assert estimate.tokens == pytest.approx(0.1)
        assert estimate.compute == pytest.approx(0.2)
        assert estimate.total == pytest.approx(0.3)


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


class TestWorkflowEstimate:
    def test_aggregates_nodes(self, estimator: CostEstimator, ledger: UsageLedger) -> None:
        _record_task(ledger, 0.5, task_type="review")
        workflow = {
            "nodes": {
                "review": {"task": {"type": "review"}, "agent": {"type": "critic", "name": "argus"}},
                "draft": {
                    "task": {"type": "draft", "complexity": 5},
                    "agent": {"type": "writer", "name": "clio", "model": "claude-3-sonnet"},
                },
            }
        }
        estimate = estimator.estimate_workflow_cost(workflow)
        assert estimate.total == pytest.approx(0.5 + SONNET_DEFAULT_COST)
        assert estimate.by_agent == {
            "critic:argus": pytest.approx(0.5),
            "writer:clio": pytest.approx(SONNET_DEFAULT_COST),
        }
        assert estimate.by_resource["tokens"] == pytest.approx(0.5 + 0.057)
        assert estimate.confidence == pytest.approx(0.5)
        assert estimate.for_task("draft").total == pytest.approx(SONNET_DEFAULT_COST)

    def test_empty_workflow(self, estimator: CostEstimator) -> None:
        estimate = estimator.estimate_workflow_cost(Workflow())
        assert estimate.total == 0.0
        assert estimate.confidence == 0.0
        assert estimate.tasks == []

    def test_list_form_nodes(self, estimator: CostEstimator) -> None:
        workflow = {"nodes": [{"id": "a", "task": {"complexity": 5}}, {"task": {"complexity": 5}}]}
        estimate = estimator.estimate_workflow_cost(workflow)
        assert [entry.task_id for entry in estimate.tasks] == ["a", "node-1"]

    def test_graph_nested_nodes(self, estimator: CostEstimator) -> None:
        workflow = {"graph": {"nodes": {"only": {"task": {"complexity": 5}}}}}
        assert estimator.estimate_workflow_cost(workflow).total == pytest.approx(SONNET_DEFAULT_COST)

    def test_same_agent_accumulates(self, estimator: CostEstimator) -> None:
        agent = {"type": "writer", "name": "clio"}
        workflow = {"nodes": {"a": {"task": {}, "agent": agent}, "b": {"task": {}, "agent": agent}}}
        estimate = estimator.estimate_workflow_cost(workflow)
        assert estimate.by_agent == {"writer:clio": pytest.approx(2 * SONNET_DEFAULT_COST)}

    def test_to_dict(self, estimator: CostEstimator) -> None:
        data = estimator.estimate_workflow_cost({"nodes": {"a": {}}}).to_dict()
        assert data["tasks"][0]["task_id"] == "a"
        assert set(data) == {"tasks", "total", "by_agent", "by_resource", "confidence"}


# ---------------------------------------------------------------------------
# Agent selection
# ---------------------------------------------------------------------------


class TestSelectOptimalAgent:
    CANDIDATES = [
        {"name": "opus", "model": "claude-3-opus", "score": 0.9},
        {"name": "sonnet", "model": "claude-3-sonnet", "score": 0.7},
        {"name": "haiku", "model": "claude-3-haiku", "score": 0.5},
    ]

    def test_best_value_within_budget(self, estimator: CostEstimator) -> None:
        best = estimator.select_optimal_agent_with_budget({"complexity": 5}, self.CANDIDATES, budget=0.1)
        assert best is not None
        assert best.name == "haiku"

    def test_expensive_candidates_skipped(self, estimator: CostEstimator) -> None:
        candidates = [self.CANDIDATES[0], self.CANDIDATES[1]]
        best = estimator.select_optimal_agent_with_budget({"complexity": 5}, candidates, budget=0.1)
        assert best is not None
        assert best.name == "sonnet"

    def test_opus_selected_when_score_justifies_cost(self, estimator: CostEstimator) -> None:
        candidates = [{"name": "opus", "model": "claude-3-opus", "score": 100.0}, self.CANDIDATES[2]]
        best = estimator.select_optimal_agent_with_budget({"complexity": 5}, candidates, budget=1.0)
        assert best is not None
        assert best.name == "opus"

    def test_none_when_nothing_fits(self, estimator: CostEstimator) -> None:
        assert estimator.select_optimal_agent_with_budget({"complexity": 5}, self.CANDIDATES, budget=0.001) is None

    def test_none_without_candidates(self, estimator: CostEstimator) -> None:
        assert estimator.select_optimal_agent_with_budget({}, [], budget=10.0) is None
