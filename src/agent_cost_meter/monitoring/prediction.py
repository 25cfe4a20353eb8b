"""Linear cost extrapolation and budget exhaustion forecasts.

The hourly rate is the last window's total cost scaled to one hour.  Daily
and monthly figures multiply it by 24 and 720 (a 30-day month).  For every
bounded budget, a positive rate yields the hours until the remaining balance
is spent and the projected exhaustion time.  A zero rate produces no
exhaustion forecast, and any forecast left from an earlier cycle is dropped.
An exceeded budget forecasts zero hours.  A projection beyond the last
representable date keeps its hours but has no timestamp.

Predictions live in a key/value store that each cycle overwrites in place:
``hourly-cost``, ``daily-cost``, ``monthly-cost`` and
``budget-<id>-exhaustion``.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from agent_cost_meter.cost.budget import Budget
    from agent_cost_meter.monitoring.engine import Metrics

SECONDS_PER_HOUR = 3600.0
HOURS_PER_DAY = 24
HOURS_PER_MONTH = 720


@dataclass(frozen=True)
class BudgetExhaustion:
    """When a budget is projected to run out at the current rate."""

    hours_remaining: float
    projected_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        timestamp = self.projected_at.isoformat() if self.projected_at is not None else None
        return {"hours": self.hours_remaining, "timestamp": timestamp}


@dataclass(frozen=True)
class Prediction:
    """Cost projections computed from one metrics window."""

    hourly_cost: float
    daily_cost: float
    monthly_cost: float
    exhaustion: dict[str, BudgetExhaustion] = field(default_factory=dict)


def exhaustion_key(budget_id: str) -> str:
    return f"budget-{budget_id}-exhaustion"


def _project(start: datetime, hours: float) -> datetime | None:
    try:
        return start + timedelta(hours=hours)
    except OverflowError:
        return None


class PredictionEngine:
    """Computes projections and keeps the latest value per key."""

    def __init__(self) -> None:
        self._store: dict[str, Any] = {}
        self._lock = threading.Lock()

    def predict(self, metrics: "Metrics", budgets: Iterable["Budget"] = ()) -> Prediction:
        """Compute projections without touching the store."""
        window = metrics.window_seconds
        hourly = metrics.total_cost / window * SECONDS_PER_HOUR if window > 0 else 0.0

        exhaustion: dict[str, BudgetExhaustion] = {}
        if hourly > 0:
            for budget in budgets:
                if budget.unbounded:
                    continue
                hours = max(budget.remaining, 0.0) / hourly
                exhaustion[budget.budget_id] = BudgetExhaustion(
                    hours_remaining=hours,
                    projected_at=_project(metrics.timestamp, hours),
                )

        return Prediction(
            hourly_cost=hourly,
            daily_cost=hourly * HOURS_PER_DAY,
            monthly_cost=hourly * HOURS_PER_MONTH,
            exhaustion=exhaustion,
        )

    def update(self, metrics: "Metrics", budgets: Iterable["Budget"] = ()) -> Prediction:
        """Compute projections and overwrite the store with them."""
        budget_list = list(budgets)
        prediction = self.predict(metrics, budget_list)
        with self._lock:
            self._store["hourly-cost"] = prediction.hourly_cost
            self._store["daily-cost"] = prediction.daily_cost
            self._store["monthly-cost"] = prediction.monthly_cost
            for budget in budget_list:
                key = exhaustion_key(budget.budget_id)
                if budget.budget_id in prediction.exhaustion:
                    self._store[key] = prediction.exhaustion[budget.budget_id]
                else:
                    self._store.pop(key, None)
        return prediction

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._store.get(key, default)

    def snapshot(self) -> dict[str, Any]:
        """Return the store as plain JSON-compatible data."""
        with self._lock:
            items = list(self._store.items())
        return {key: value.to_dict() if isinstance(value, BudgetExhaustion) else value for key, value in items}
