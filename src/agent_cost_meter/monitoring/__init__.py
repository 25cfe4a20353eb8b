"""Monitoring package for agent-cost-meter.

Provides the background scheduler, windowed metrics, anomaly detection, and
linear cost predictions.
"""
from __future__ import annotations

from agent_cost_meter.monitoring.anomaly import Anomaly, AnomalyDetector, AnomalyKind, AnomalySeverity
from agent_cost_meter.monitoring.engine import Metrics, MonitoringEngine, MonitoringUpdate
from agent_cost_meter.monitoring.prediction import BudgetExhaustion, Prediction, PredictionEngine
from agent_cost_meter.monitoring.scheduler import PeriodicTask

__all__ = [
    "Anomaly",
    "AnomalyDetector",
    "AnomalyKind",
    "AnomalySeverity",
    "BudgetExhaustion",
    "Metrics",
    "MonitoringEngine",
    "MonitoringUpdate",
    "PeriodicTask",
    "Prediction",
    "PredictionEngine",
]
