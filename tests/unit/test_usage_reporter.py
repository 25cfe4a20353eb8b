"""Tests for UsageReporter."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from agent_cost_meter.cost.ledger import UsageLedger
from agent_cost_meter.cost.rates import Usage
from agent_cost_meter.cost.reporter import UsageReporter

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def ledger() -> UsageLedger:
    return UsageLedger(clock=lambda: NOW)


class TestUsageReport:
    def test_empty_ledger(self, ledger: UsageLedger) -> None:
        report = UsageReporter(ledger).usage_report(now=NOW)
        assert report.total_cost == 0.0
        assert report.by_agent == {}
        assert report.top_consumers == []

    def test_breakdowns(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "tokens", Usage(amount=2000, input=1000, output=1000), 0.018, timestamp=NOW - timedelta(hours=1))
        ledger.record("a1", "api", Usage(amount=10), 0.001, timestamp=NOW - timedelta(hours=2))
        ledger.record("a2", "api", Usage(amount=5), 0.0005, timestamp=NOW - timedelta(hours=3))

        report = UsageReporter(ledger).usage_report(hours=24, now=NOW)

        assert report.total_cost == pytest.approx(0.0195)
        assert report.by_agent["a1"].usage == {"tokens": 2000.0, "api": 10.0}
        assert report.by_agent["a1"].cost == pytest.approx(0.019)
        assert report.by_resource["api"].usage == 15.0
        assert report.by_resource["api"].cost == pytest.approx(0.0015)

    def test_range_excludes_older_entries(self, ledger: UsageLedger) -> None:
        ledger.record("recent", "api", Usage(amount=1), 0.1, timestamp=NOW - timedelta(minutes=30))
        ledger.record("stale", "api", Usage(amount=1), 0.1, timestamp=NOW - timedelta(hours=5))
        report = UsageReporter(ledger).usage_report(hours=1, now=NOW)
        assert list(report.by_agent) == ["recent"]

    def test_top_consumers_are_five_highest(self, ledger: UsageLedger) -> None:
        for index in range(7):
            ledger.record(f"agent-{index}", "compute", Usage(amount=index), index * 0.1, timestamp=NOW)
        report = UsageReporter(ledger).usage_report(now=NOW)
        assert [agent for agent, _ in report.top_consumers] == [
            "agent-6",
            "agent-5",
            "agent-4",
            "agent-3",
            "agent-2",
        ]

    def test_to_dict(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "api", Usage(amount=3), 0.0003, timestamp=NOW)
        data = UsageReporter(ledger).usage_report(hours=6, now=NOW).to_dict()
        assert data["time_range"] == {"hours": 6}
        assert data["top_consumers"] == [{"agent": "a1", "cost": pytest.approx(0.0003)}]
        assert set(data) == {"time_range", "by_agent", "by_resource", "total_cost", "top_consumers"}

    def test_range_end_defaults_to_ledger_clock(self) -> None:
        past = datetime(2020, 6, 1, 9, 0, tzinfo=timezone.utc)
        ledger = UsageLedger(clock=lambda: past)
        ledger.record("a1", "api", Usage(amount=4), 0.0004, timestamp=past - timedelta(minutes=30))
        ledger.record("a1", "api", Usage(amount=4), 0.0004, timestamp=past - timedelta(hours=3))

        report = UsageReporter(ledger).usage_report(hours=1)

        assert report.by_agent["a1"].usage == {"api": 4.0}
        assert report.total_cost == pytest.approx(0.0004)
