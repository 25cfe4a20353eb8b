#!/usr/bin/env python3
"""Example: Quickstart for agent-cost-meter

Minimal working example: meter agent usage against a workflow budget,
estimate a workflow and optimize it down to a target cost.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install agent-cost-meter
"""
from __future__ import annotations

import agent_cost_meter as acm


def main() -> None:
    print(f"agent-cost-meter version: {acm.__version__}")

    meter = acm.ResourceMeter()

    # Step 1: Give the workflow a budget and listen for alerts
    meter.set_budget("research-wf", total=0.05)
    meter.subscribe(acm.MeterEvent.BUDGET_ALERT, lambda alert: print(f"  ALERT: {alert.message}"))
    meter.subscribe(
        acm.MeterEvent.BUDGET_EXCEEDED,
        lambda event: print(f"  EXCEEDED: {event.budget_id} over by ${event.overage:.4f}"),
    )

    # Step 2: Track usage from a couple of agents
    print("\nTracking usage:")
    events = [
        ("planner", "tokens", {"input": 800, "output": 1200}, {"model": "claude-3-sonnet"}),
        ("searcher", "api", {"amount": 40}, {"type": "api-call"}),
        ("writer", "tokens", {"input": 1500, "output": 3000}, {"model": "claude-3-sonnet"}),
    ]
    for agent_id, resource_type, usage, metadata in events:
        cost = meter.track_usage(
            agent_id,
            resource_type,
            usage,
            {**metadata, "workflow_id": "research-wf"},
            task={"type": "research", "complexity": 4},
        )
        print(f"  {agent_id:<10} {resource_type:<7} ${cost:.4f}")

    print(f"Remaining budget: ${meter.get_remaining_budget('research-wf'):.4f}")

    # Step 3: Estimate a workflow before running it
    workflow = {
        "nodes": {
            "plan": {
                "task": {"type": "research", "complexity": 4},
                "agent": {"type": "planner", "model": "claude-3-opus"},
            },
            "draft": {
                "task": {"type": "writing", "complexity": 9},
                "agent": {"type": "writer", "model": "gpt-4"},
            },
        },
        "parallelizable": {"level-0": ["plan", "draft"]},
    }
    estimate = meter.estimate_workflow_cost(workflow)
    print(f"\nWorkflow estimate: ${estimate.total:.4f} (confidence {estimate.confidence:.0%})")
    for entry in estimate.tasks:
        print(f"  {entry.task_id:<6} ${entry.estimate.total:.4f}")

    # Step 4: Optimize it down to a target
    result = meter.optimize(workflow, target_budget=estimate.total / 2)
    print(f"\nOptimized for ${result.target_budget:.4f}:")
    for replaced in result.replacements:
        print(f"  {replaced.node_id}: {replaced.original_model} -> {replaced.replacement_model}")
    for node_id in result.simplified:
        print(f"  {node_id}: complexity reduced")


if __name__ == "__main__":
    main()
