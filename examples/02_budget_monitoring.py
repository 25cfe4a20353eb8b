#!/usr/bin/env python3
"""Example: Budget monitoring and cost snapshots

Runs one monitoring tick over a burst of compute usage, prints the
anomalies and budget exhaustion forecast, then moves the accumulated
history into a second meter through a snapshot.

Usage:
    python examples/02_budget_monitoring.py

Requirements:
    pip install agent-cost-meter
"""
from __future__ import annotations

import json

import agent_cost_meter as acm


def main() -> None:
    meter = acm.ResourceMeter()

    # Step 1: Budget with a tighter alert ladder
    meter.set_budget(
        "training-run",
        total=5.0,
        limits={"compute": 4.0},
        alert_thresholds=[
            {"threshold": 0.5, "severity": "info"},
            {"threshold": 0.75, "severity": "warning"},
            {"threshold": 0.9, "severity": "critical"},
        ],
    )
    meter.subscribe(acm.MeterEvent.BUDGET_ALERT, lambda a: print(f"  [{a.severity}] {a.message}"))

    # Step 2: Burn through most of it
    print("Charging compute:")
    for hours in (2, 3, 3):
        meter.track_usage(
            "trainer",
            "compute",
            {"amount": hours},
            {"type": "gpu-hour", "workflow_id": "training-run"},
            task={"type": "fine-tune", "complexity": 8},
        )
    print(f"Remaining: ${meter.get_remaining_budget('training-run'):.2f}")

    # Step 3: A single monitoring tick instead of the background loop
    update = meter.monitoring.tick()
    print(f"\nWindow cost: ${update.metrics.total_cost:.2f}")
    for anomaly in update.anomalies:
        print(f"  ANOMALY ({anomaly.severity.value}): {anomaly.message}")
    print(f"Projected hourly cost: ${update.prediction.hourly_cost:.2f}")
    for budget_id, forecast in update.prediction.exhaustion.items():
        print(f"  {budget_id} exhausted in {forecast.hours_remaining:.2f}h")

    # Step 4: Carry the history into a fresh meter
    snapshot = json.dumps(meter.export_cost_data())
    restored = acm.ResourceMeter()
    imported = restored.import_cost_data(json.loads(snapshot))
    print(f"\nImported {imported.history} history entries and {imported.budgets} budgets")

    estimate = restored.estimate_task_cost({"type": "fine-tune", "complexity": 8}, {"type": "trainer"})
    print(f"Fine-tune estimate from history: ${estimate.total:.2f} ({len(estimate.analogs)} analogs)")

    meter.destroy()
    restored.destroy()


if __name__ == "__main__":
    main()
