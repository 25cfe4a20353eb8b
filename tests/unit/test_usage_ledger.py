"""Tests for UsageLedger totals, bounded history and retention."""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from agent_cost_meter.cost.ledger import HistoryEntry, UsageLedger
from agent_cost_meter.cost.rates import ResourceType, Usage

BASE = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = BASE) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ledger(clock: FakeClock) -> UsageLedger:
    return UsageLedger(clock=clock)


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


class TestTotals:
    def test_record_accumulates_agent_total(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "api", Usage(amount=3), cost=0.0003)
        ledger.record("a1", "api", Usage(amount=4), cost=0.0004)
        assert ledger.agent_total("a1", "api") == pytest.approx(7.0)

    def test_unseen_agent_total_is_zero(self, ledger: UsageLedger) -> None:
        assert ledger.agent_total("ghost", ResourceType.TOKENS) == 0.0

    def test_totals_are_per_resource_type(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "api", Usage(amount=3), cost=0.0)
        ledger.record("a1", "compute", Usage(amount=1.5), cost=0.15)
        assert ledger.agent_total("a1", "api") == 3.0
        assert ledger.agent_total("a1", "compute") == 1.5

    def test_session_subtotals(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "api", Usage(amount=2), cost=0.0, metadata={"session_id": "s1"})
        ledger.record("a1", "api", Usage(amount=5), cost=0.0, metadata={"session_id": "s2"})
        ledger.record("a1", "api", Usage(amount=1), cost=0.0, metadata={"session_id": "s1"})
        ledger.record("a1", "api", Usage(amount=9), cost=0.0)
        assert ledger.session_total("a1", "api", "s1") == 3.0
        assert ledger.session_total("a1", "api", "s2") == 5.0
        assert ledger.agent_total("a1", "api") == 17.0

    def test_agents_listed_per_type(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "api", Usage(amount=1), cost=0.0)
        ledger.record("a2", "api", Usage(amount=1), cost=0.0)
        assert sorted(ledger.agents("api")) == ["a1", "a2"]
        assert ledger.agents("storage") == []

    def test_usage_summary_shape(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "api", Usage(amount=2), cost=0.0, metadata={"session_id": "s1"})
        summary = ledger.usage_summary()
        assert set(summary) == {"tokens", "compute", "api", "storage"}
        assert summary["api"] == [{"agent": "a1", "total": 2.0, "sessions": [["s1", 2.0]]}]


# ---------------------------------------------------------------------------
# Bounded per-agent history
# ---------------------------------------------------------------------------


class TestAgentHistory:
    def test_thousand_and_one_entries_evict_oldest(self, ledger: UsageLedger) -> None:
        for i in range(1001):
            ledger.record("a1", "api", Usage(amount=i), cost=0.0)
        history = ledger.agent_history("a1", "api")
        assert len(history) == 1000
        assert history[0].amount == 1
        assert history[-1].amount == 1000

    def test_eviction_does_not_change_total(self, clock: FakeClock) -> None:
        ledger = UsageLedger(agent_history_size=3, clock=clock)
        for i in range(1, 6):
            ledger.record("a1", "api", Usage(amount=i), cost=0.0)
        assert [e.amount for e in ledger.agent_history("a1", "api")] == [3, 4, 5]
        assert ledger.agent_total("a1", "api") == 15.0

    def test_history_entries_carry_cost(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "compute", Usage(amount=2), cost=0.2)
        assert ledger.agent_history("a1", "compute")[0].cost == pytest.approx(0.2)

    def test_snapshot_is_a_copy(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "api", Usage(amount=1), cost=0.0)
        snapshot = ledger.agent_history("a1", "api")
        ledger.record("a1", "api", Usage(amount=2), cost=0.0)
        assert len(snapshot) == 1


# ---------------------------------------------------------------------------
# Global history
# ---------------------------------------------------------------------------


class TestGlobalHistory:
    def test_history_kept_in_timestamp_order(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "api", Usage(amount=1), cost=0.0, timestamp=BASE - timedelta(minutes=1))
        ledger.record("a2", "api", Usage(amount=2), cost=0.0, timestamp=BASE - timedelta(minutes=5))
        ledger.record("a3", "api", Usage(amount=3), cost=0.0, timestamp=BASE - timedelta(minutes=3))
        assert [e.agent_id for e in ledger.history()] == ["a2", "a3", "a1"]

    def test_entries_older_than_retention_are_pruned_on_insert(self, ledger: UsageLedger, clock: FakeClock) -> None:
        ledger.record("a1", "api", Usage(amount=1), cost=0.0)
        clock.advance(days=31)
        ledger.record("a1", "api", Usage(amount=2), cost=0.0)
        history = ledger.history()
        assert len(history) == 1
        assert history[0].usage == 2.0

    def test_entries_within_retention_are_kept(self, ledger: UsageLedger, clock: FakeClock) -> None:
        ledger.record("a1", "api", Usage(amount=1), cost=0.0)
        clock.advance(days=29)
        ledger.record("a1", "api", Usage(amount=2), cost=0.0)
        assert len(ledger.history()) == 2

    def test_prune_returns_removed_count(self, ledger: UsageLedger, clock: FakeClock) -> None:
        ledger.record("a1", "api", Usage(amount=1), cost=0.0)
        ledger.record("a1", "api", Usage(amount=1), cost=0.0)
        clock.advance(days=30, seconds=1)
        assert ledger.prune() == 2
        assert ledger.history() == []

    def test_history_since(self, ledger: UsageLedger) -> None:
        ledger.record("old", "api", Usage(amount=1), cost=0.0, timestamp=BASE - timedelta(hours=2))
        ledger.record("new", "api", Usage(amount=1), cost=0.0, timestamp=BASE)
        recent = ledger.history(since=BASE - timedelta(hours=1))
        assert [e.agent_id for e in recent] == ["new"]

    def test_merge_history_drops_expired_entries(self, ledger: UsageLedger) -> None:
        entries = [
            HistoryEntry("a1", ResourceType.API, 1.0, 0.0001, BASE - timedelta(days=40)),
            HistoryEntry("a2", ResourceType.API, 2.0, 0.0002, BASE - timedelta(days=1)),
        ]
        assert ledger.merge_history(entries) == 1
        assert [e.agent_id for e in ledger.history()] == ["a2"]
        assert ledger.agent_total("a2", "api") == 0.0


# ---------------------------------------------------------------------------
# Windowed sums
# ---------------------------------------------------------------------------


class TestSumInWindow:
    def test_window_is_half_open(self, ledger: UsageLedger) -> None:
        start = BASE - timedelta(minutes=1)
        ledger.record("a1", "api", Usage(amount=1), cost=0.1, timestamp=start)
        ledger.record("a1", "api", Usage(amount=2), cost=0.2, timestamp=start + timedelta(seconds=30))
        ledger.record("a1", "api", Usage(amount=4), cost=0.4, timestamp=BASE)
        totals = ledger.sum_in_window("api", start, BASE)
        assert totals.usage == pytest.approx(3.0)
        assert totals.cost == pytest.approx(0.3)

    def test_include_end(self, ledger: UsageLedger) -> None:
        start = BASE - timedelta(minutes=1)
        ledger.record("a1", "api", Usage(amount=4), cost=0.4, timestamp=BASE)
        assert ledger.sum_in_window("api", start, BASE, include_end=True).usage == 4.0

    def test_sums_across_agents(self, ledger: UsageLedger) -> None:
        ledger.record("a1", "tokens", Usage(amount=100), cost=0.1, timestamp=BASE - timedelta(seconds=10))
        ledger.record("a2", "tokens", Usage(amount=50), cost=0.05, timestamp=BASE - timedelta(seconds=20))
        totals = ledger.sum_in_window("tokens", BASE - timedelta(minutes=1), BASE)
        assert totals.usage == 150.0


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrentWriters:
    def test_parallel_records_are_all_counted(self, ledger: UsageLedger) -> None:
        def writer() -> None:
            for _ in range(250):
                ledger.record("shared", "api", Usage(amount=1), cost=0.0001)

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert ledger.agent_total("shared", "api") == 1000.0
        assert len(ledger.history()) == 1000
