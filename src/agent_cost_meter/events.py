"""Caller-owned event bus for meter notifications.

Components never keep a global listener registry.  A single
:class:`EventBus` is constructed by the caller (usually by
:class:`~agent_cost_meter.meter.ResourceMeter`) and injected into every
component that publishes.  Handlers run synchronously in registration order;
a handler that raises is logged and skipped so it cannot break the operation
that published the event.

Example
-------
>>> bus = EventBus()
>>> seen = []
>>> bus.subscribe(MeterEvent.BUDGET_ALERT, seen.append)
>>> delivered = bus.publish(MeterEvent.BUDGET_ALERT, "payload")
>>> seen
['payload']
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class MeterEvent(str, Enum):
    """Events published by the meter components."""

    BUDGET_SET = "budget:set"
    USAGE_TRACKED = "usage:tracked"
    BUDGET_ALERT = "budget:alert"
    BUDGET_EXCEEDED = "budget:exceeded"
    MONITORING_ANOMALIES = "monitoring:anomalies"
    MONITORING_UPDATE = "monitoring:update"
    AGENT_REPLACED = "optimization:agent-replaced"
    DATA_IMPORTED = "data:imported"


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UsageTracked:
    """Published after a usage event has been recorded and priced."""

    agent_id: str
    resource_type: str
    usage: float
    cost: float
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BudgetAlert:
    """Published the first time a budget crosses one of its thresholds."""

    budget_id: str
    threshold: float
    severity: str
    percent_used: float
    remaining: float

    @property
    def message(self) -> str:
        return f"Budget {self.budget_id} has used {self.percent_used * 100:.1f}% of allocation"


@dataclass(frozen=True)
class BudgetExceeded:
    """Published when a charge leaves a budget at or below zero."""

    budget_id: str
    overage: float


@dataclass(frozen=True)
class AgentReplaced:
    """Published when the optimizer swaps a node's agent for a cheaper one."""

    node_id: str
    original_model: str | None
    replacement_model: str
    cost_saving: float


@dataclass(frozen=True)
class DataImported:
    """Published after a snapshot has been merged into the meter."""

    models: bool
    history: int
    budgets: int


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------


class EventBus:
    """Thread-safe registry of event handlers with synchronous delivery."""

    def __init__(self) -> None:
        self._handlers: dict[MeterEvent, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event: MeterEvent, handler: Handler) -> None:
        """Register *handler* to receive payloads published for *event*."""
        with self._lock:
            self._handlers.setdefault(MeterEvent(event), []).append(handler)

    def unsubscribe(self, event: MeterEvent, handler: Handler) -> bool:
        """Remove *handler*; returns ``False`` when it was not registered."""
        with self._lock:
            handlers = self._handlers.get(MeterEvent(event), [])
            if handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def clear(self) -> None:
        """Drop every registered handler."""
        with self._lock:
            self._handlers.clear()

    def handler_count(self, event: MeterEvent) -> int:
        with self._lock:
            return len(self._handlers.get(MeterEvent(event), []))

    def publish(self, event: MeterEvent, payload: Any) -> int:
        """Deliver *payload* to every handler of *event*.

        Returns
        -------
        int
            Number of handlers that completed without raising.
        """
        event = MeterEvent(event)
        with self._lock:
            handlers = list(self._handlers.get(event, []))

        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception("Handler for %s raised an exception.", event.value)
        return delivered
