"""ResourceMeter: main entry point wiring every cost subsystem together.

The meter owns one ledger, one budget manager, one cost model and one event
bus, and shares them with monitoring and planning.  Its public surface:

- ``set_budget`` / ``track_usage`` / ``get_remaining_budget``: metering
- ``estimate_task_cost`` / ``estimate_workflow_cost`` /
  ``select_optimal_agent_with_budget`` / ``optimize_workflow_for_cost``:
  planning
- ``get_metrics`` / ``get_usage_report`` / ``predictions``: reporting
- ``export_cost_data`` / ``import_cost_data``: snapshot hand-off
- ``start`` / ``stop`` / ``destroy``: background lifecycle

Nothing runs in the background until :meth:`ResourceMeter.start` is called.

Example
-------
>>> meter = ResourceMeter()
>>> budget = meter.set_budget("wf-1", total=10.0)
>>> cost = meter.track_usage("agent-1", "tokens", {"input": 1000, "output": 1000},
...                          {"model": "claude-3-sonnet", "workflow_id": "wf-1"})
>>> round(cost, 6)
0.018
>>> round(meter.get_remaining_budget("wf-1"), 6)
9.982
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from agent_cost_meter.config import MeterConfig
from agent_cost_meter.cost.budget import AlertThreshold, Budget, BudgetManager
from agent_cost_meter.cost.ledger import Clock, UsageLedger, utc_now
from agent_cost_meter.cost.rates import CostModel, ResourceType, Usage, normalize_usage, parse_resource_type
from agent_cost_meter.cost.reporter import UsageReport, UsageReporter
from agent_cost_meter.events import DataImported, EventBus, Handler, MeterEvent, UsageTracked
from agent_cost_meter.exceptions import DataFormatError
from agent_cost_meter.monitoring.anomaly import AnomalyDetector
from agent_cost_meter.monitoring.engine import Metrics, MonitoringEngine
from agent_cost_meter.monitoring.prediction import PredictionEngine
from agent_cost_meter.monitoring.scheduler import PeriodicTask
from agent_cost_meter.planning.estimator import CostEstimator, TaskEstimate, WorkflowEstimate, as_task
from agent_cost_meter.planning.models import AgentDescriptor, TaskDescriptor, Workflow
from agent_cost_meter.planning.optimizer import OptimizationResult, WorkflowOptimizer
from agent_cost_meter.snapshot import export_cost_data, parse_snapshot

logger = logging.getLogger(__name__)


class ResourceMeter:
    """Tracks, budgets, monitors and plans agent resource spend.

    Parameters
    ----------
    config:
        Meter configuration; defaults to :class:`MeterConfig` defaults.
    event_bus:
        Bus to publish on.  When omitted the meter creates and owns one.
    clock:
        Callable returning the current UTC datetime.
    """

    def __init__(
        self,
        config: MeterConfig | None = None,
        event_bus: EventBus | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._config = config or MeterConfig()
        self._owns_bus = event_bus is None
        self._bus = event_bus or EventBus()
        self._clock = clock

        cfg = self._config
        self._cost_model = CostModel(cfg.rates)
        self._ledger = UsageLedger(
            agent_history_size=cfg.ledger.agent_history_size,
            retention=timedelta(days=cfg.ledger.history_retention_days),
            clock=clock,
        )
        self._budgets = BudgetManager(
            default_alert_thresholds=cfg.budgets.default_alert_thresholds,
            dedupe_exceeded=cfg.budgets.dedupe_exceeded,
            event_bus=self._bus,
            clock=clock,
        )
        self._reporter = UsageReporter(self._ledger)
        self._monitoring = MonitoringEngine(
            self._ledger,
            self._budgets,
            interval_seconds=cfg.monitoring.interval_seconds,
            detector=AnomalyDetector(
                spike_threshold=cfg.monitoring.spike_threshold,
                high_spike_threshold=cfg.monitoring.high_spike_threshold,
                budget_critical_ratio=cfg.monitoring.budget_critical_ratio,
            ),
            predictions=PredictionEngine(),
            event_bus=self._bus,
            clock=clock,
        )
        self._cleanup = PeriodicTask(
            "history-cleanup",
            cfg.monitoring.cleanup_interval_seconds,
            self._ledger.prune,
        )
        self._estimator = CostEstimator(self._ledger, self._cost_model, cfg.estimation)
        self._optimizer = WorkflowOptimizer(self._estimator, cfg.optimization, self._bus)

    # ------------------------------------------------------------------
    # Metering
    # ------------------------------------------------------------------

    def set_budget(
        self,
        budget_id: str,
        total: float | None = None,
        limits: dict[str, float] | None = None,
        alert_thresholds: Iterable[AlertThreshold | Mapping[str, Any]] | None = None,
    ) -> Budget:
        """Create or replace a budget.  ``total=None`` means unbounded."""
        return self._budgets.set_budget(budget_id, total=total, limits=limits, alert_thresholds=alert_thresholds)

    def track_usage(
        self,
        agent_id: str,
        resource_type: ResourceType | str,
        usage: Usage | Mapping[str, Any] | float,
        metadata: Mapping[str, Any] | None = None,
        task: TaskDescriptor | Mapping[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> float:
        """Record, price and charge one usage event.

        Parameters
        ----------
        agent_id:
            Agent that consumed the resource.
        resource_type:
            ``tokens``, ``compute``, ``api`` or ``storage``.
        usage:
            ``{"input", "output"}`` for tokens, ``{"amount"}`` or a number
            otherwise.
        metadata:
            ``model`` / ``type`` select the rate, ``workflow_id`` selects the
            budget to charge and ``session_id`` feeds session subtotals.
        task:
            Task descriptor stored as ``task_type``, ``task_complexity`` and
            ``task_description`` so later estimates can find it.
        timestamp:
            Override the event timestamp.

        Returns
        -------
        float
            The cost charged.

        Raises
        ------
        InvalidUsage
            When the resource type is unknown or the usage is malformed.
        """
        rtype = parse_resource_type(resource_type)
        normalized = normalize_usage(rtype, usage)
        meta = dict(metadata or {})
        if task is not None:
            descriptor = as_task(task)
            meta.setdefault("task_type", descriptor.type)
            meta.setdefault("task_complexity", descriptor.complexity)
            meta.setdefault("task_description", descriptor.description)

        cost = self._cost_model.cost(rtype, normalized, meta)
        entry = self._ledger.record(agent_id, rtype, normalized, cost, meta, timestamp)

        workflow_id = meta.get("workflow_id")
        if workflow_id is not None:
            self._budgets.charge(str(workflow_id), cost)

        logger.debug("Tracked %s usage %.4f for %s at cost %.6f", rtype.value, normalized.amount, agent_id, cost)
        self._bus.publish(
            MeterEvent.USAGE_TRACKED,
            UsageTracked(
                agent_id=agent_id,
                resource_type=rtype.value,
                usage=normalized.amount,
                cost=cost,
                timestamp=entry.timestamp,
                metadata=meta,
            ),
        )
        return cost

    def get_remaining_budget(self, budget_id: str) -> float:
        """Remaining balance, or ``math.inf`` for an unknown budget."""
        return self._budgets.get_remaining_budget(budget_id)

    def agent_total(self, agent_id: str, resource_type: ResourceType | str) -> float:
        return self._ledger.agent_total(agent_id, resource_type)

    def session_total(self, agent_id: str, resource_type: ResourceType | str, session_id: str) -> float:
        return self._ledger.session_total(agent_id, resource_type, session_id)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def estimate_task_cost(
        self,
        task: TaskDescriptor | Mapping[str, Any],
        agent: AgentDescriptor | Mapping[str, Any],
    ) -> TaskEstimate:
        return self._estimator.estimate_task_cost(task, agent)

    def estimate_workflow_cost(self, workflow: Workflow | Mapping[str, Any]) -> WorkflowEstimate:
        return self._estimator.estimate_workflow_cost(workflow)

    def select_optimal_agent_with_budget(
        self,
        task: TaskDescriptor | Mapping[str, Any],
        candidates: Iterable[AgentDescriptor | Mapping[str, Any]],
        budget: float,
    ) -> AgentDescriptor | None:
        return self._estimator.select_optimal_agent_with_budget(task, candidates, budget)

    def optimize_workflow_for_cost(self, workflow: Workflow | Mapping[str, Any], target_budget: float) -> Workflow:
        """Return a rewritten copy of *workflow* aimed at *target_budget*."""
        return self._optimizer.optimize_workflow_for_cost(workflow, target_budget)

    def optimize(self, workflow: Workflow | Mapping[str, Any], target_budget: float) -> OptimizationResult:
        return self._optimizer.optimize(workflow, target_budget)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_metrics(self, now: datetime | None = None) -> Metrics:
        return self._monitoring.get_metrics(now)

    def get_usage_report(self, hours: float = 24.0, now: datetime | None = None) -> UsageReport:
        return self._reporter.usage_report(hours=hours, now=now or self._clock())

    def predictions(self) -> dict[str, Any]:
        """Return the latest prediction store as plain data."""
        return self._monitoring.predictions.snapshot()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export_cost_data(self) -> dict[str, Any]:
        """Return the meter state as JSON-compatible plain data."""
        return export_cost_data(
            self._ledger,
            self._budgets,
            self._cost_model,
            self._monitoring.predictions,
            history_limit=self._config.ledger.export_history_limit,
        )

    def import_cost_data(self, data: Mapping[str, Any]) -> DataImported:
        """Merge a snapshot produced by :meth:`export_cost_data`.

        The whole snapshot is validated before anything is applied, so a
        malformed snapshot leaves the meter untouched.  Rate tables extend
        the current ones, history entries are merged into the global
        history and budgets replace any live budget with the same id.

        Raises
        ------
        DataFormatError
            When any section fails validation.
        """
        snapshot = parse_snapshot(data)
        new_model: CostModel | None = None
        if snapshot.models:
            try:
                new_model = self._cost_model.with_rates(snapshot.models)
            except ValidationError as exc:
                raise DataFormatError(f"Invalid rate tables in snapshot: {exc}") from exc
        entries = [record.to_entry() for record in snapshot.history]
        budgets = [record.to_budget() for record in snapshot.budgets]

        if new_model is not None:
            self._cost_model = new_model
            self._estimator.cost_model = new_model
        kept = self._ledger.merge_history(entries)
        for budget in budgets:
            self._budgets.restore(budget)

        imported = DataImported(models=new_model is not None, history=kept, budgets=len(budgets))
        logger.info(
            "Imported cost data: models=%s history=%d budgets=%d",
            imported.models,
            imported.history,
            imported.budgets,
        )
        self._bus.publish(MeterEvent.DATA_IMPORTED, imported)
        return imported

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, event: MeterEvent | str, handler: Handler) -> None:
        self._bus.subscribe(MeterEvent(event), handler)

    def unsubscribe(self, event: MeterEvent | str, handler: Handler) -> bool:
        return self._bus.unsubscribe(MeterEvent(event), handler)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start background monitoring (when enabled) and history cleanup."""
        if self._config.monitoring.enabled:
            self._monitoring.start()
        self._cleanup.start()
        logger.info("ResourceMeter started")

    def stop(self) -> None:
        """Stop background work; safe to call repeatedly."""
        self._monitoring.stop()
        self._cleanup.stop()

    def destroy(self) -> None:
        """Stop background work and drop subscribers of an owned bus."""
        self.stop()
        if self._owns_bus:
            self._bus.clear()
        logger.info("ResourceMeter destroyed")

    def __enter__(self) -> "ResourceMeter":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> MeterConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def ledger(self) -> UsageLedger:
        return self._ledger

    @property
    def budgets(self) -> BudgetManager:
        return self._budgets

    @property
    def cost_model(self) -> CostModel:
        return self._cost_model

    @property
    def monitoring(self) -> MonitoringEngine:
        return self._monitoring

    @property
    def estimator(self) -> CostEstimator:
        return self._estimator

    @property
    def optimizer(self) -> WorkflowOptimizer:
        return self._optimizer

    def __repr__(self) -> str:
        return f"ResourceMeter(budgets={len(self._budgets.budgets())}, running={self._monitoring.running})"
