"""Tests for cost snapshot export and all-or-nothing import."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from agent_cost_meter.config import LedgerConfig, MeterConfig
from agent_cost_meter.events import DataImported, MeterEvent
from agent_cost_meter.exceptions import DataFormatError
from agent_cost_meter.meter import ResourceMeter
from agent_cost_meter.snapshot import CostSnapshot, parse_snapshot

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def source() -> ResourceMeter:
    meter = ResourceMeter(clock=lambda: NOW)
    meter.set_budget("wf-1", total=10.0)
    meter.set_budget("open")
    meter.track_usage(
        "agent-1",
        "compute",
        {"amount": 90},
        {"workflow_id": "wf-1", "session_id": "s1"},
        task={"type": "review", "complexity": 5},
        timestamp=NOW - timedelta(minutes=10),
    )
    meter.track_usage("agent-2", "api", {"amount": 10}, timestamp=NOW - timedelta(minutes=5))
    return meter


@pytest.fixture()
def target() -> ResourceMeter:
    return ResourceMeter(clock=lambda: NOW)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


class TestExport:
    def test_sections(self, source: ResourceMeter) -> None:
        data = source.export_cost_data()
        assert set(data) == {"models", "usage", "budgets", "history", "predictions"}

    def test_is_json_compatible(self, source: ResourceMeter) -> None:
        source.monitoring.tick()
        data = source.export_cost_data()
        assert json.loads(json.dumps(data)) == data

    def test_history_entries(self, source: ResourceMeter) -> None:
        history = source.export_cost_data()["history"]
        assert [entry["agent_id"] for entry in history] == ["agent-1", "agent-2"]
        assert history[0]["resource_type"] == "compute"
        assert history[0]["metadata"]["task_type"] == "review"

    def test_budgets_exported(self, source: ResourceMeter) -> None:
        budgets = {b["id"]: b for b in source.export_cost_data()["budgets"]}
        assert budgets["wf-1"]["remaining"] == pytest.approx(1.0)
        assert budgets["wf-1"]["fired"] == [0.8]
        assert budgets["open"]["total"] is None

    def test_history_limited_to_most_recent(self) -> None:
        meter = ResourceMeter(MeterConfig(ledger=LedgerConfig(export_history_limit=2)), clock=lambda: NOW)
        for index in range(5):
            meter.track_usage(f"agent-{index}", "api", 1, timestamp=NOW - timedelta(minutes=5 - index))
        history = meter.export_cost_data()["history"]
        assert [entry["agent_id"] for entry in history] == ["agent-3", "agent-4"]


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class TestImport:
    def test_round_trip_restores_budgets_and_history(self, source: ResourceMeter, target: ResourceMeter) -> None:
        result = target.import_cost_data(source.export_cost_data())

        assert result == DataImported(models=True, history=2, budgets=2)
        assert target.get_remaining_budget("wf-1") == pytest.approx(1.0)
        assert len(target.ledger.history()) == 2
        assert target.estimate_task_cost({"type": "review"}, {}).from_history

    def test_restored_budget_keeps_fired_alerts(self, source: ResourceMeter, target: ResourceMeter) -> None:
        target.import_cost_data(source.export_cost_data())
        alerts: list[Any] = []
        target.subscribe(MeterEvent.BUDGET_ALERT, alerts.append)
        target.track_usage("agent-1", "api", {"amount": 1}, {"workflow_id": "wf-1"})
        assert alerts == []

    def test_unbounded_budget_restored(self, source: ResourceMeter, target: ResourceMeter) -> None:
        target.import_cost_data(source.export_cost_data())
        assert target.budgets.get("open").unbounded

    def test_rate_tables_merged(self, target: ResourceMeter) -> None:
        target.import_cost_data({"models": {"tokens": {"in-house": {"input": 0.001, "output": 0.001}}}})
        assert target.cost_model.token_rate("in-house") is not None
        assert target.cost_model.token_rate("claude-3-opus") is not None
        cost = target.track_usage("agent-1", "tokens", {"input": 1000, "output": 1000}, {"model": "in-house"})
        assert cost == pytest.approx(0.002)

    def test_publishes_data_imported(self, target: ResourceMeter) -> None:
        seen: list[DataImported] = []
        target.subscribe(MeterEvent.DATA_IMPORTED, seen.append)
        target.import_cost_data({})
        assert seen == [DataImported(models=False, history=0, budgets=0)]

    def test_naive_timestamps_treated_as_utc(self, target: ResourceMeter) -> None:
        record = {
            "agent_id": "a1",
            "resource_type": "api",
            "usage": 1,
            "cost": 0.0001,
            "timestamp": "2026-03-01T11:00:00",
        }
        target.import_cost_data({"history": [record]})
        assert target.ledger.history()[0].timestamp == NOW - timedelta(hours=1)

    def test_malformed_history_changes_nothing(self, source: ResourceMeter, target: ResourceMeter) -> None:
        data = source.export_cost_data()
        data["history"].append({"agent_id": "x", "resource_type": "api", "usage": -1, "cost": 0, "timestamp": NOW.isoformat()})
        with pytest.raises(DataFormatError):
            target.import_cost_data(data)
        assert target.ledger.history() == []
        assert "wf-1" not in target.budgets

    def test_malformed_rates_change_nothing(self, source: ResourceMeter, target: ResourceMeter) -> None:
        data = source.export_cost_data()
        data["models"] = {"compute": {"cpu-hour": -5}}
        with pytest.raises(DataFormatError):
            target.import_cost_data(data)
        assert target.ledger.history() == []
        assert target.budgets.budgets() == []

    def test_unknown_resource_type_rejected(self, target: ResourceMeter) -> None:
        record = {"agent_id": "a", "resource_type": "bandwidth", "usage": 1, "cost": 0, "timestamp": NOW.isoformat()}
        with pytest.raises(DataFormatError):
            target.import_cost_data({"history": [record]})

    def test_duplicate_budget_ids_rejected(self, target: ResourceMeter) -> None:
        with pytest.raises(DataFormatError, match="Duplicate budget id"):
            target.import_cost_data({"budgets": [{"id": "a", "total": 1}, {"id": "a", "total": 2}]})

    def test_non_mapping_rejected(self, target: ResourceMeter) -> None:
        with pytest.raises(DataFormatError):
            target.import_cost_data(["not", "a", "snapshot"])  # type: ignore[arg-type]


class TestParseSnapshot:
    def test_sections_optional(self) -> None:
        snapshot = parse_snapshot({})
        assert isinstance(snapshot, CostSnapshot)
        assert snapshot.history == []
        assert snapshot.budgets == []

    def test_budget_without_remaining_starts_full(self) -> None:
        budget = parse_snapshot({"budgets": [{"id": "b", "total": 4}]}).budgets[0].to_budget()
        assert budget.remaining == 4.0
        assert budget.exceeded_signalled is False
