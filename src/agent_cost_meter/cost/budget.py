"""Budget manager for named, threshold-alerting spend allocations.

BudgetManager owns every named :class:`Budget`.  Each charge debits the
budget's remaining balance, fires any threshold alert that has not fired
before, and signals when the balance reaches zero or below.

Alert semantics
---------------
- A ``(budget_id, threshold)`` alert fires at most once for the lifetime of
  the budget id.  Replacing a budget with :meth:`BudgetManager.set_budget`
  keeps the already-fired set.
- The exceeded signal is emitted on every charge while ``remaining <= 0``
  unless ``dedupe_exceeded`` is enabled, in which case it fires once per
  budget lifetime.
- Unbounded budgets (``total = inf``) meter spend but never alert.

Example
-------
>>> manager = BudgetManager()
>>> budget = manager.set_budget("wf-1", total=10.0)
>>> result = manager.charge("wf-1", 9.0)
>>> [a.threshold for a in result.alerts]
[0.8]
>>> manager.get_remaining_budget("wf-1")
1.0
"""
from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from agent_cost_meter.config import AlertThresholdConfig
from agent_cost_meter.cost.ledger import Clock, utc_now
from agent_cost_meter.events import BudgetAlert, BudgetExceeded, EventBus, MeterEvent
from agent_cost_meter.exceptions import NoSuchBudget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertThreshold:
    """Fraction of the total at which to alert, with its severity."""

    threshold: float
    severity: str = "warning"

    def __post_init__(self) -> None:
        if not 0 < self.threshold <= 1:
            raise ValueError(f"Alert threshold must be in (0, 1], got {self.threshold}")


@dataclass
class Budget:
    """A named allocation with a remaining balance.

    Attributes
    ----------
    budget_id:
        Unique budget name (usually a workflow id).
    total:
        Allocated amount; ``math.inf`` means metering without enforcement.
    remaining:
        ``total`` minus every cost charged so far.
    limits:
        Advisory per-resource limits; never enforced by the manager.
    alert_thresholds:
        Thresholds ordered ascending.
    created_at:
        UTC datetime the budget was created.
    fired:
        Thresholds whose alert has already fired.
    exceeded_signalled:
        Whether an exceeded signal has been emitted.
    """

    budget_id: str
    total: float
    remaining: float
    limits: dict[str, float] = field(default_factory=dict)
    alert_thresholds: list[AlertThreshold] = field(default_factory=list)
    created_at: datetime | None = None
    fired: set[float] = field(default_factory=set)
    exceeded_signalled: bool = False

    @property
    def unbounded(self) -> bool:
        return math.isinf(self.total)

    @property
    def spent(self) -> float:
        return 0.0 if self.unbounded else self.total - self.remaining

    @property
    def percent_used(self) -> float:
        """Fraction of the total consumed; ``0.0`` for unbounded budgets."""
        if self.unbounded:
            return 0.0
        if self.total <= 0:
            return 1.0 if self.remaining <= 0 else 0.0
        return 1 - self.remaining / self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.budget_id,
            "total": None if self.unbounded else self.total,
            "remaining": None if self.unbounded else self.remaining,
            "limits": dict(self.limits),
            "alerts": [{"threshold": a.threshold, "severity": a.severity} for a in self.alert_thresholds],
            "created": self.created_at.isoformat() if self.created_at else None,
            "fired": sorted(self.fired),
        }


@dataclass
class ChargeResult:
    """Outcome of one :meth:`BudgetManager.charge` call."""

    budget_id: str
    applied: bool
    remaining: float
    alerts: list[BudgetAlert] = field(default_factory=list)
    exceeded: BudgetExceeded | None = None


class BudgetManager:
    """Thread-safe owner of named budgets.

    Parameters
    ----------
    default_alert_thresholds:
        Thresholds applied when :meth:`set_budget` receives none.
    dedupe_exceeded:
        Emit the exceeded signal only once per budget id.
    event_bus:
        Optional bus receiving ``budget:set``, ``budget:alert`` and
        ``budget:exceeded`` events.
    clock:
        Callable returning the current UTC datetime.
    """

    def __init__(
        self,
        default_alert_thresholds: Iterable[AlertThreshold | AlertThresholdConfig] | None = None,
        dedupe_exceeded: bool = False,
        event_bus: EventBus | None = None,
        clock: Clock = utc_now,
    ) -> None:
        if default_alert_thresholds is None:
            default_alert_thresholds = [AlertThreshold(0.8, "warning"), AlertThreshold(0.95, "critical")]
        self._default_thresholds = _coerce_thresholds(default_alert_thresholds)
        self._dedupe_exceeded = dedupe_exceeded
        self._bus = event_bus
        self._clock = clock
        self._budgets: dict[str, Budget] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def set_budget(
        self,
        budget_id: str,
        total: float | None = None,
        limits: dict[str, float] | None = None,
        alert_thresholds: Iterable[AlertThreshold | AlertThresholdConfig | dict[str, Any]] | None = None,
    ) -> Budget:
        """Create or replace a budget with ``remaining = total``.

        Parameters
        ----------
        budget_id:
            Budget name.
        total:
            Allocated amount.  ``None`` creates an unbounded budget.
        limits:
            Advisory per-resource limits.
        alert_thresholds:
            Thresholds to alert at; defaults to the manager's defaults.

        Raises
        ------
        ValueError
            When *total* is negative or NaN, or a threshold is out of range.
        """
        effective_total = math.inf if total is None else float(total)
        if math.isnan(effective_total) or effective_total < 0:
            raise ValueError(f"Budget total must be >= 0, got {total!r}")
        thresholds = (
            _coerce_thresholds(alert_thresholds) if alert_thresholds is not None else list(self._default_thresholds)
        )

        with self._lock:
            previous = self._budgets.get(budget_id)
            budget = Budget(
                budget_id=budget_id,
                total=effective_total,
                remaining=effective_total,
                limits=dict(limits or {}),
                alert_thresholds=thresholds,
                created_at=self._clock(),
                fired=set(previous.fired) if previous else set(),
                exceeded_signalled=previous.exceeded_signalled if previous else False,
            )
            self._budgets[budget_id] = budget

        logger.info("Budget %r set: total=%s", budget_id, effective_total)
        if self._bus is not None:
            self._bus.publish(MeterEvent.BUDGET_SET, budget)
        return budget

    def charge(self, budget_id: str, cost: float) -> ChargeResult:
        """Debit *cost* from a budget and emit any resulting alerts.

        Charging an unknown budget id is a no-op.

        Returns
        -------
        ChargeResult
            ``applied=False`` when the budget does not exist.

        Raises
        ------
        ValueError
            When *cost* is negative or not finite.
        """
        if not math.isfinite(cost) or cost < 0:
            raise ValueError(f"Charge must be a finite amount >= 0, got {cost!r}")
        alerts: list[BudgetAlert] = []
        exceeded: BudgetExceeded | None = None

        with self._lock:
            budget = self._budgets.get(budget_id)
            if budget is None:
                logger.debug("Ignoring charge of %.6f against unknown budget %r", cost, budget_id)
                return ChargeResult(budget_id=budget_id, applied=False, remaining=math.inf)

            budget.remaining -= cost
            percent_used = budget.percent_used

            if not budget.unbounded:
                for threshold in budget.alert_thresholds:
                    if threshold.threshold in budget.fired:
                        continue
                    if percent_used >= threshold.threshold:
                        budget.fired.add(threshold.threshold)
                        alerts.append(
                            BudgetAlert(
                                budget_id=budget_id,
                                threshold=threshold.threshold,
                                severity=threshold.severity,
                                percent_used=percent_used,
                                remaining=budget.remaining,
                            )
                        )

            if budget.remaining <= 0 and not (self._dedupe_exceeded and budget.exceeded_signalled):
                budget.exceeded_signalled = True
                exceeded = BudgetExceeded(budget_id=budget_id, overage=abs(budget.remaining))
            remaining = budget.remaining

        for alert in alerts:
            logger.warning(
                "[BUDGET ALERT] %s (%s) crossed %.0f%% threshold: %.1f%% used, %.4f remaining",
                budget_id,
                alert.severity,
                alert.threshold * 100,
                alert.percent_used * 100,
                alert.remaining,
            )
            if self._bus is not None:
                self._bus.publish(MeterEvent.BUDGET_ALERT, alert)
        if exceeded is not None:
            logger.warning("Budget %r exceeded by %.4f", budget_id, exceeded.overage)
            if self._bus is not None:
                self._bus.publish(MeterEvent.BUDGET_EXCEEDED, exceeded)

        return ChargeResult(
            budget_id=budget_id,
            applied=True,
            remaining=remaining,
            alerts=alerts,
            exceeded=exceeded,
        )

    def restore(self, budget: Budget) -> None:
        """Insert a fully specified budget (used by snapshot import)."""
        with self._lock:
            self._budgets[budget.budget_id] = budget

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_remaining_budget(self, budget_id: str) -> float:
        """Return the remaining balance, or ``math.inf`` for an unknown id."""
        with self._lock:
            budget = self._budgets.get(budget_id)
            return budget.remaining if budget else math.inf

    def get(self, budget_id: str) -> Budget:
        """Return the live budget.

        Raises
        ------
        NoSuchBudget
            When the id is unknown.
        """
        with self._lock:
            if budget_id not in self._budgets:
                raise NoSuchBudget(budget_id)
            return self._budgets[budget_id]

    def budgets(self) -> list[Budget]:
        """Return a snapshot list of the live budgets."""
        with self._lock:
            return list(self._budgets.values())

    def __contains__(self, budget_id: object) -> bool:
        with self._lock:
            return budget_id in self._budgets


def _coerce_thresholds(
    thresholds: Iterable[AlertThreshold | AlertThresholdConfig | dict[str, Any]],
) -> list[AlertThreshold]:
    coerced: list[AlertThreshold] = []
    for item in thresholds:
        if isinstance(item, AlertThreshold):
            coerced.append(item)
        elif isinstance(item, AlertThresholdConfig):
            coerced.append(AlertThreshold(item.threshold, item.severity))
        else:
            coerced.append(AlertThreshold(float(item["threshold"]), str(item.get("severity", "warning"))))
    return sorted(coerced, key=lambda t: t.threshold)
