"""Anomaly detection over monitoring metrics and live budgets.

Rules
-----
- Usage spike: ``|trend| > spike_threshold`` (default 0.5).  Severity is
  HIGH when ``|trend| > high_spike_threshold`` (default 1.0), else MEDIUM.
  A trend of exactly 1.0 is therefore MEDIUM.
- Budget critical: ``remaining < total * budget_critical_ratio`` (default
  10%), severity HIGH.  Unbounded budgets never qualify.

Detection is a pure function of its inputs; each call re-evaluates from
scratch, so a standing condition is reported on every call until it resolves.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from agent_cost_meter.cost.budget import Budget
    from agent_cost_meter.monitoring.engine import Metrics


class AnomalyKind(str, Enum):
    USAGE_SPIKE = "usage-spike"
    BUDGET_CRITICAL = "budget-critical"


class AnomalySeverity(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Anomaly:
    """A flagged condition with enough detail to explain it."""

    kind: AnomalyKind
    severity: AnomalySeverity
    resource: str | None = None
    trend: float | None = None
    budget_id: str | None = None
    remaining: float | None = None

    @property
    def message(self) -> str:
        if self.kind is AnomalyKind.USAGE_SPIKE:
            return f"{self.resource} usage changed {self.trend * 100:+.0f}% versus the previous window"
        return f"Budget {self.budget_id} has {self.remaining:.4f} remaining"


class AnomalyDetector:
    """Evaluates metrics and budgets into an ordered list of anomalies."""

    def __init__(
        self,
        spike_threshold: float = 0.5,
        high_spike_threshold: float = 1.0,
        budget_critical_ratio: float = 0.10,
    ) -> None:
        self._spike_threshold = spike_threshold
        self._high_spike_threshold = high_spike_threshold
        self._critical_ratio = budget_critical_ratio

    def detect(self, metrics: "Metrics", budgets: Iterable["Budget"] = ()) -> list[Anomaly]:
        """Return usage spikes (in resource order) followed by critical budgets."""
        anomalies: list[Anomaly] = []

        for resource, trend in metrics.trends.items():
            magnitude = abs(trend)
            if magnitude > self._spike_threshold:
                severity = AnomalySeverity.HIGH if magnitude > self._high_spike_threshold else AnomalySeverity.MEDIUM
                anomalies.append(
                    Anomaly(kind=AnomalyKind.USAGE_SPIKE, severity=severity, resource=resource, trend=trend)
                )

        for budget in budgets:
            if budget.unbounded:
                continue
            if budget.remaining < budget.total * self._critical_ratio:
                anomalies.append(
                    Anomaly(
                        kind=AnomalyKind.BUDGET_CRITICAL,
                        severity=AnomalySeverity.HIGH,
                        budget_id=budget.budget_id,
                        remaining=budget.remaining,
                    )
                )

        return anomalies
