"""Usage ledger: per-agent consumption records and the global usage history.

For every resource type the ledger keeps one :class:`AgentUsageRecord` per
agent holding a running total, per-session subtotals, and a bounded ring
buffer of recent entries (oldest evicted first).  Every recorded event is
also appended to a global history that is kept ordered by timestamp and
pruned to a trailing retention window on each insert.

A single lock serialises writers.  Readers copy what they need under the same
lock and compute outside it, so the monitoring tick never holds the lock for
longer than a snapshot copy.

Example
-------
>>> ledger = UsageLedger()
>>> entry = ledger.record("agent-1", ResourceType.API, Usage(amount=3), cost=0.0003)
>>> ledger.agent_total("agent-1", ResourceType.API)
3.0
"""
from __future__ import annotations

import bisect
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from agent_cost_meter.cost.rates import ResourceType, Usage, parse_resource_type

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class LedgerEntry:
    """One entry in an agent's bounded recent history."""

    amount: float
    cost: float
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HistoryEntry:
    """One entry in the global usage history.

    Attributes
    ----------
    agent_id:
        Agent that consumed the resource.
    resource_type:
        Resource type consumed.
    usage:
        Scalar usage amount (``input + output`` for tokens).
    cost:
        Cost charged for the usage.
    timestamp:
        UTC datetime the usage was recorded.
    metadata:
        Caller-supplied metadata (model, type, session, workflow, task info).
    """

    agent_id: str
    resource_type: ResourceType
    usage: float
    cost: float
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WindowTotals:
    """Usage and cost summed over a time window."""

    usage: float = 0.0
    cost: float = 0.0


class AgentUsageRecord:
    """Running totals and bounded recent history for one agent and resource."""

    def __init__(self, history_size: int) -> None:
        self.total = 0.0
        self.sessions: dict[str, float] = {}
        self.history: deque[LedgerEntry] = deque(maxlen=history_size)

    def add(self, entry: LedgerEntry, session_id: str | None) -> None:
        self.total += entry.amount
        if session_id:
            self.sessions[session_id] = self.sessions.get(session_id, 0.0) + entry.amount
        self.history.append(entry)


class UsageLedger:
    """Thread-safe in-memory ledger of agent resource consumption.

    Parameters
    ----------
    agent_history_size:
        Capacity of each agent's recent-history ring buffer.
    retention:
        Trailing window kept in the global history.
    clock:
        Callable returning the current UTC datetime.
    """

    def __init__(
        self,
        agent_history_size: int = 1000,
        retention: timedelta = timedelta(days=30),
        clock: Clock = utc_now,
    ) -> None:
        self._history_size = agent_history_size
        self._retention = retention
        self._clock = clock
        self._records: dict[ResourceType, dict[str, AgentUsageRecord]] = {rt: {} for rt in ResourceType}
        self._history: list[HistoryEntry] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def record(
        self,
        agent_id: str,
        resource_type: ResourceType | str,
        usage: Usage,
        cost: float,
        metadata: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        """Record one priced usage event.

        Parameters
        ----------
        agent_id:
            Agent that consumed the resource.
        resource_type:
            One of :class:`ResourceType`.
        usage:
            Validated usage amount.
        cost:
            Cost already computed by the cost model.
        metadata:
            Optional metadata; ``session_id`` feeds the session subtotal.
        timestamp:
            Override the event timestamp (defaults to the ledger clock).

        Returns
        -------
        HistoryEntry
            The entry appended to the global history.
        """
        rtype = parse_resource_type(resource_type)
        meta = dict(metadata or {})
        ts = timestamp or self._clock()
        ledger_entry = LedgerEntry(amount=usage.amount, cost=cost, timestamp=ts, metadata=meta)
        history_entry = HistoryEntry(
            agent_id=agent_id,
            resource_type=rtype,
            usage=usage.amount,
            cost=cost,
            timestamp=ts,
            metadata=meta,
        )

        with self._lock:
            record = self._records[rtype].get(agent_id)
            if record is None:
                record = AgentUsageRecord(self._history_size)
                self._records[rtype][agent_id] = record
            record.add(ledger_entry, meta.get("session_id"))
            self._insert_history(history_entry)
        return history_entry

    def merge_history(self, entries: Iterable[HistoryEntry]) -> int:
        """Merge externally supplied entries into the global history.

        Entries older than the retention window are dropped.  Per-agent
        records are not touched.

        Returns
        -------
        int
            Number of entries kept.
        """
        with self._lock:
            before = len(self._history)
            for entry in entries:
                self._insert_history(entry)
            return len(self._history) - before

    def prune(self) -> int:
        """Drop global history entries older than the retention window."""
        with self._lock:
            return self._prune_locked()

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def agent_total(self, agent_id: str, resource_type: ResourceType | str) -> float:
        """Return the running total for *agent_id* (``0.0`` when unseen)."""
        rtype = parse_resource_type(resource_type)
        with self._lock:
            record = self._records[rtype].get(agent_id)
            return record.total if record else 0.0

    def session_total(self, agent_id: str, resource_type: ResourceType | str, session_id: str) -> float:
        """Return the subtotal recorded for one session."""
        rtype = parse_resource_type(resource_type)
        with self._lock:
            record = self._records[rtype].get(agent_id)
            return record.sessions.get(session_id, 0.0) if record else 0.0

    def agent_history(self, agent_id: str, resource_type: ResourceType | str) -> list[LedgerEntry]:
        """Return a snapshot of the agent's recent history, oldest first."""
        rtype = parse_resource_type(resource_type)
        with self._lock:
            record = self._records[rtype].get(agent_id)
            return list(record.history) if record else []

    def agents(self, resource_type: ResourceType | str) -> list[str]:
        rtype = parse_resource_type(resource_type)
        with self._lock:
            return list(self._records[rtype])

    def sum_in_window(
        self,
        resource_type: ResourceType | str,
        start: datetime,
        end: datetime,
        include_end: bool = False,
    ) -> WindowTotals:
        """Sum usage and cost of entries with ``start <= timestamp < end``.

        Parameters
        ----------
        include_end:
            Also include entries stamped exactly at *end*.
        """
        rtype = parse_resource_type(resource_type)
        with self._lock:
            snapshot = [list(record.history) for record in self._records[rtype].values()]

        usage = 0.0
        cost = 0.0
        for history in snapshot:
            for entry in history:
                if entry.timestamp < start:
                    continue
                if entry.timestamp < end or (include_end and entry.timestamp == end):
                    usage += entry.amount
                    cost += entry.cost
        return WindowTotals(usage=usage, cost=cost)

    def history(self, since: datetime | None = None) -> list[HistoryEntry]:
        """Return the global history (optionally from *since*), oldest first."""
        with self._lock:
            if since is None:
                return list(self._history)
            index = bisect.bisect_left(self._history, since, key=lambda e: e.timestamp)
            return self._history[index:]

    def usage_summary(self) -> dict[str, list[dict[str, Any]]]:
        """Return per-type agent totals and session subtotals as plain data."""
        with self._lock:
            return {
                rtype.value: [
                    {
                        "agent": agent_id,
                        "total": record.total,
                        "sessions": [[sid, amount] for sid, amount in record.sessions.items()],
                    }
                    for agent_id, record in records.items()
                ]
                for rtype, records in self._records.items()
            }

    @property
    def agent_history_size(self) -> int:
        return self._history_size

    @property
    def retention(self) -> timedelta:
        return self._retention

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _insert_history(self, entry: HistoryEntry) -> None:
        """Insert keeping timestamp order, then prune.  Caller holds the lock."""
        bisect.insort_right(self._history, entry, key=lambda e: e.timestamp)
        self._prune_locked()

    def _prune_locked(self) -> int:
        cutoff = self._clock() - self._retention
        index = bisect.bisect_left(self._history, cutoff, key=lambda e: e.timestamp)
        if index:
            del self._history[:index]
        return index
