"""Periodic windowed aggregation over the usage ledger.

Every tick the engine sums usage and cost per resource type over the most
recent window ``[now - interval, now]`` and compares usage with the
immediately preceding window ``[now - 2*interval, now - interval)``:

    trend = (current - previous) / previous   when previous > 0
    trend = 0                                 otherwise

It then runs anomaly detection and refreshes predictions, publishing
``monitoring:anomalies`` (only when something was found) and
``monitoring:update`` on the event bus.

The engine only reads the ledger.  Ledger reads copy a snapshot under the
ledger lock and aggregate outside it, so writers are never held up by a
tick for longer than that copy.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from agent_cost_meter.cost.budget import BudgetManager
from agent_cost_meter.cost.ledger import Clock, UsageLedger, utc_now
from agent_cost_meter.cost.rates import ResourceType
from agent_cost_meter.events import EventBus, MeterEvent
from agent_cost_meter.monitoring.anomaly import Anomaly, AnomalyDetector
from agent_cost_meter.monitoring.prediction import Prediction, PredictionEngine
from agent_cost_meter.monitoring.scheduler import PeriodicTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Metrics:
    """Usage, cost and trend per resource type for one window.

    Attributes
    ----------
    timestamp:
        End of the window.
    window_seconds:
        Window length.
    usage:
        Usage per resource type within the window.
    costs:
        Cost per resource type within the window.
    trends:
        Relative usage change versus the preceding window.
    total_cost:
        Sum of ``costs``.
    """

    timestamp: datetime
    window_seconds: float
    usage: dict[str, float] = field(default_factory=dict)
    costs: dict[str, float] = field(default_factory=dict)
    trends: dict[str, float] = field(default_factory=dict)
    total_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "window_seconds": self.window_seconds,
            "usage": dict(self.usage),
            "costs": dict(self.costs),
            "trends": dict(self.trends),
            "total_cost": self.total_cost,
        }


@dataclass(frozen=True)
class MonitoringUpdate:
    """Result of one monitoring tick."""

    metrics: Metrics
    anomalies: list[Anomaly]
    prediction: Prediction


class MonitoringEngine:
    """Computes windowed metrics on demand or on a background schedule.

    Parameters
    ----------
    ledger:
        Ledger to read usage from.
    budgets:
        Budget manager whose budgets feed anomaly detection and predictions.
    interval_seconds:
        Window length and tick interval.
    detector:
        Anomaly detector (defaults to the standard thresholds).
    predictions:
        Prediction engine whose store is refreshed each tick.
    event_bus:
        Optional bus for ``monitoring:*`` events.
    clock:
        Callable returning the current UTC datetime.
    """

    def __init__(
        self,
        ledger: UsageLedger,
        budgets: BudgetManager,
        interval_seconds: float = 60.0,
        detector: AnomalyDetector | None = None,
        predictions: PredictionEngine | None = None,
        event_bus: EventBus | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._ledger = ledger
        self._budgets = budgets
        self._interval = timedelta(seconds=interval_seconds)
        self._detector = detector or AnomalyDetector()
        self._predictions = predictions or PredictionEngine()
        self._bus = event_bus
        self._clock = clock
        self._task = PeriodicTask("cost-monitoring", interval_seconds, self.tick)
        self._last_update: MonitoringUpdate | None = None

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self, now: datetime | None = None) -> Metrics:
        """Aggregate the window ending at *now* (defaults to the clock)."""
        end = now or self._clock()
        window_start = end - self._interval

        usage: dict[str, float] = {}
        costs: dict[str, float] = {}
        trends: dict[str, float] = {}
        for resource_type in ResourceType:
            current = self._ledger.sum_in_window(resource_type, window_start, end, include_end=True)
            previous = self.get_previous_window_usage(resource_type, window_start)
            usage[resource_type.value] = current.usage
            costs[resource_type.value] = current.cost
            trends[resource_type.value] = (current.usage - previous) / previous if previous > 0 else 0.0

        return Metrics(
            timestamp=end,
            window_seconds=self._interval.total_seconds(),
            usage=usage,
            costs=costs,
            trends=trends,
            total_cost=sum(costs.values()),
        )

    def get_previous_window_usage(self, resource_type: ResourceType | str, window_start: datetime) -> float:
        """Usage in the window that ends at *window_start*; ``0.0`` when empty."""
        previous_start = window_start - self._interval
        return self._ledger.sum_in_window(resource_type, previous_start, window_start).usage

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def tick(self, now: datetime | None = None) -> MonitoringUpdate:
        """Run one monitoring cycle and publish its results."""
        metrics = self.get_metrics(now)
        budgets = self._budgets.budgets()
        anomalies = self._detector.detect(metrics, budgets)
        prediction = self._predictions.update(metrics, budgets)

        if anomalies:
            logger.warning(
                "Monitoring detected %d anomalies: %s",
                len(anomalies),
                "; ".join(a.message for a in anomalies),
            )
            if self._bus is not None:
                self._bus.publish(MeterEvent.MONITORING_ANOMALIES, {"anomalies": anomalies, "metrics": metrics})

        if self._bus is not None:
            self._bus.publish(MeterEvent.MONITORING_UPDATE, metrics)
        logger.debug("Monitoring tick: total window cost %.6f", metrics.total_cost)

        update = MonitoringUpdate(metrics=metrics, anomalies=anomalies, prediction=prediction)
        self._last_update = update
        return update

    def start(self) -> None:
        """Start the background schedule."""
        self._task.start()

    def stop(self) -> None:
        """Stop the background schedule; safe to call repeatedly."""
        self._task.stop()

    @property
    def running(self) -> bool:
        return self._task.running

    @property
    def last_update(self) -> MonitoringUpdate | None:
        return self._last_update

    @property
    def predictions(self) -> PredictionEngine:
        return self._predictions

    @property
    def interval_seconds(self) -> float:
        return self._interval.total_seconds()
