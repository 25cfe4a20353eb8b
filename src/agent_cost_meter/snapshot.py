"""Plain-data cost snapshots for hand-off to a persistence collaborator.

:func:`export_cost_data` gathers rate tables, per-agent usage totals,
budgets, the most recent global history and the prediction store into a
JSON-compatible dict.  :func:`parse_snapshot` validates such a dict against
:class:`CostSnapshot` and turns it into ledger and budget objects.  Nothing
here touches the filesystem.

Example
-------
>>> from agent_cost_meter.meter import ResourceMeter
>>> meter = ResourceMeter()
>>> data = meter.export_cost_data()
>>> sorted(data)
['budgets', 'history', 'models', 'predictions', 'usage']
>>> parse_snapshot(data).history
[]
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator

from agent_cost_meter.cost.budget import AlertThreshold, Budget
from agent_cost_meter.cost.ledger import HistoryEntry
from agent_cost_meter.cost.rates import ResourceType
from agent_cost_meter.exceptions import DataFormatError

if TYPE_CHECKING:
    from agent_cost_meter.cost.budget import BudgetManager
    from agent_cost_meter.cost.ledger import UsageLedger
    from agent_cost_meter.cost.rates import CostModel
    from agent_cost_meter.monitoring.prediction import PredictionEngine


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class HistoryRecord(BaseModel):
    """One exported global-history entry."""

    agent_id: str
    resource_type: ResourceType
    usage: float = Field(ge=0)
    cost: float = Field(ge=0)
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp", mode="after")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_entry(self) -> HistoryEntry:
        return HistoryEntry(
            agent_id=self.agent_id,
            resource_type=self.resource_type,
            usage=self.usage,
            cost=self.cost,
            timestamp=self.timestamp,
            metadata=dict(self.metadata),
        )


class AlertRecord(BaseModel):
    threshold: float = Field(gt=0, le=1)
    severity: str = Field(default="warning")


class BudgetRecord(BaseModel):
    """One exported budget.  ``total = None`` marks an unbounded budget."""

    id: str
    total: float | None = Field(default=None, ge=0)
    remaining: float | None = Field(default=None)
    limits: dict[str, float] = Field(default_factory=dict)
    alerts: list[AlertRecord] = Field(default_factory=list)
    created: datetime | None = Field(default=None)
    fired: list[float] = Field(default_factory=list)

    @field_validator("created", mode="after")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value) if value is not None else None

    def to_budget(self) -> Budget:
        total = math.inf if self.total is None else self.total
        if self.total is None:
            remaining = math.inf
        else:
            remaining = self.total if self.remaining is None else self.remaining
        return Budget(
            budget_id=self.id,
            total=total,
            remaining=remaining,
            limits=dict(self.limits),
            alert_thresholds=sorted(
                (AlertThreshold(a.threshold, a.severity) for a in self.alerts),
                key=lambda t: t.threshold,
            ),
            created_at=self.created,
            fired=set(self.fired),
            exceeded_signalled=not math.isinf(remaining) and remaining <= 0,
        )


class CostSnapshot(BaseModel):
    """Top-level snapshot schema.  Every section is optional on import."""

    model_config = {"extra": "allow"}

    models: dict[str, Any] | None = Field(default=None)
    usage: dict[str, Any] | None = Field(default=None)
    budgets: list[BudgetRecord] = Field(default_factory=list)
    history: list[HistoryRecord] = Field(default_factory=list)
    predictions: dict[str, Any] | None = Field(default=None)

    @field_validator("budgets", mode="after")
    @classmethod
    def unique_budget_ids(cls, values: list[BudgetRecord]) -> list[BudgetRecord]:
        seen: set[str] = set()
        for record in values:
            if record.id in seen:
                raise ValueError(f"Duplicate budget id in snapshot: {record.id}")
            seen.add(record.id)
        return values


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def export_cost_data(
    ledger: "UsageLedger",
    budgets: "BudgetManager",
    cost_model: "CostModel",
    predictions: "PredictionEngine",
    history_limit: int = 1000,
) -> dict[str, Any]:
    """Return the meter state as JSON-compatible plain data.

    Parameters
    ----------
    history_limit:
        Number of most recent global-history entries to include.

    Returns
    -------
    dict
        Keys ``models``, ``usage``, ``budgets``, ``history`` and
        ``predictions``.
    """
    history = ledger.history()
    recent = history[-history_limit:] if history_limit > 0 else []
    return {
        "models": cost_model.rate_tables(),
        "usage": ledger.usage_summary(),
        "budgets": [budget.to_dict() for budget in budgets.budgets()],
        "history": [
            HistoryRecord(
                agent_id=entry.agent_id,
                resource_type=entry.resource_type,
                usage=entry.usage,
                cost=entry.cost,
                timestamp=entry.timestamp,
                metadata=entry.metadata,
            ).model_dump(mode="json")
            for entry in recent
        ],
        "predictions": predictions.snapshot(),
    }


def parse_snapshot(data: Mapping[str, Any]) -> CostSnapshot:
    """Validate *data* as a :class:`CostSnapshot`.

    Raises
    ------
    DataFormatError
        When *data* is not a mapping or any section fails validation.
    """
    if not isinstance(data, Mapping):
        raise DataFormatError(f"Cost snapshot must be a mapping, got {type(data).__name__}")
    try:
        return CostSnapshot.model_validate(dict(data))
    except ValidationError as exc:
        raise DataFormatError(f"Invalid cost snapshot: {exc}") from exc
