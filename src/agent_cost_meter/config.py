"""Meter configuration loader with Pydantic v2 validation.

Loads and validates a ``meter.yaml`` file into a typed :class:`MeterConfig`
object.  Every section is optional and falls back to built-in defaults, so
``MeterConfig()`` is a complete working configuration.  Rate tables supplied
by the caller extend the built-in tables key by key rather than replacing them.

Example
-------
>>> loader = ConfigLoader()
>>> config = loader.load_string("monitoring:\\n  interval_seconds: 30\\n")
>>> config.monitoring.interval_seconds
30.0
>>> config.rates.tokens["claude-3-sonnet"].input
0.003
"""
from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class TokenRate(BaseModel):
    """Per-1K-token input and output prices for one model."""

    input: float = Field(ge=0)
    output: float = Field(ge=0)


def _default_token_rates() -> dict[str, TokenRate]:
    return {
        "claude-3-opus": TokenRate(input=0.015, output=0.075),
        "claude-3-sonnet": TokenRate(input=0.003, output=0.015),
        "claude-3-haiku": TokenRate(input=0.00025, output=0.00125),
        "gpt-4": TokenRate(input=0.03, output=0.06),
        "gpt-3.5-turbo": TokenRate(input=0.0005, output=0.0015),
    }


def _default_compute_rates() -> dict[str, float]:
    return {"cpu-hour": 0.10, "gpu-hour": 0.50, "memory-gb-hour": 0.01}


def _default_api_rates() -> dict[str, float]:
    return {"api-call": 0.0001, "webhook": 0.0002}


def _default_storage_rates() -> dict[str, float]:
    return {"storage-gb": 0.023}


class RatesConfig(BaseModel):
    """Rate tables for every resource type."""

    model_config = {"extra": "allow"}

    default_model: str = Field(default="claude-3-sonnet")
    tokens: dict[str, TokenRate] = Field(default_factory=_default_token_rates)
    compute: dict[str, float] = Field(default_factory=_default_compute_rates)
    api: dict[str, float] = Field(default_factory=_default_api_rates)
    storage: dict[str, float] = Field(default_factory=_default_storage_rates)

    @field_validator("tokens", mode="after")
    @classmethod
    def merge_token_defaults(cls, values: dict[str, TokenRate]) -> dict[str, TokenRate]:
        return {**_default_token_rates(), **values}

    @field_validator("compute", mode="after")
    @classmethod
    def merge_compute_defaults(cls, values: dict[str, float]) -> dict[str, float]:
        return {**_default_compute_rates(), **_non_negative(values)}

    @field_validator("api", mode="after")
    @classmethod
    def merge_api_defaults(cls, values: dict[str, float]) -> dict[str, float]:
        return {**_default_api_rates(), **_non_negative(values)}

    @field_validator("storage", mode="after")
    @classmethod
    def merge_storage_defaults(cls, values: dict[str, float]) -> dict[str, float]:
        return {**_default_storage_rates(), **_non_negative(values)}


def _non_negative(values: dict[str, float]) -> dict[str, float]:
    for key, rate in values.items():
        if rate < 0:
            raise ValueError(f"Rate for '{key}' must be >= 0, got {rate}")
    return values


class AlertThresholdConfig(BaseModel):
    """One budget alert threshold: a fraction of the total and a severity."""

    threshold: float = Field(gt=0, le=1)
    severity: str = Field(default="warning")


def _default_alert_thresholds() -> list[AlertThresholdConfig]:
    return [
        AlertThresholdConfig(threshold=0.8, severity="warning"),
        AlertThresholdConfig(threshold=0.95, severity="critical"),
    ]


class LedgerConfig(BaseModel):
    """Retention bounds for the usage ledger."""

    model_config = {"extra": "allow"}

    agent_history_size: int = Field(default=1000, ge=1)
    history_retention_days: float = Field(default=30.0, gt=0)
    export_history_limit: int = Field(default=1000, ge=0)


class BudgetsConfig(BaseModel):
    """Defaults applied to budgets created without explicit thresholds."""

    model_config = {"extra": "allow"}

    default_alert_thresholds: list[AlertThresholdConfig] = Field(
        default_factory=_default_alert_thresholds
    )
    dedupe_exceeded: bool = Field(default=False)


class MonitoringConfig(BaseModel):
    """Background monitoring schedule and anomaly thresholds."""

    model_config = {"extra": "allow"}

    enabled: bool = Field(default=True)
    interval_seconds: float = Field(default=60.0, gt=0)
    cleanup_interval_seconds: float = Field(default=3600.0, gt=0)
    spike_threshold: float = Field(default=0.5, ge=0)
    high_spike_threshold: float = Field(default=1.0, ge=0)
    budget_critical_ratio: float = Field(default=0.10, ge=0, le=1)


class EstimationConfig(BaseModel):
    """Heuristics used when no historical analog task exists."""

    model_config = {"extra": "allow"}

    default_complexity: float = Field(default=5.0, gt=0)
    tokens_per_complexity: float = Field(default=1000.0, ge=0)
    input_token_share: float = Field(default=0.3, ge=0, le=1)
    compute_hours_per_complexity: float = Field(default=0.01, ge=0)
    api_calls_per_complexity: float = Field(default=2.0, ge=0)


class CheaperAlternative(BaseModel):
    """A documented cheaper substitute for an agent's model."""

    from_model: str
    to_model: str
    cost_reduction: float = Field(gt=0, lt=1)


def _default_alternatives() -> list[CheaperAlternative]:
    return [
        CheaperAlternative(from_model="claude-3-opus", to_model="claude-3-sonnet", cost_reduction=0.8),
        CheaperAlternative(from_model="gpt-4", to_model="gpt-3.5-turbo", cost_reduction=0.95),
    ]


class OptimizationConfig(BaseModel):
    """Knobs for the single-pass workflow cost optimizer."""

    model_config = {"extra": "allow"}

    max_parallel_branches: int = Field(default=3, ge=1)
    complexity_cap: float = Field(default=7.0, ge=1)
    simplification_factor: float = Field(default=0.7, gt=0, le=1)
    cheaper_alternatives: list[CheaperAlternative] = Field(default_factory=_default_alternatives)


class MeterConfig(BaseModel):
    """Top-level meter configuration schema.

    Loaded from ``meter.yaml``.  All sections are optional and fall back to
    sensible defaults.
    """

    model_config = {"extra": "allow"}

    version: str = Field(default="1")
    rates: RatesConfig = Field(default_factory=RatesConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    budgets: BudgetsConfig = Field(default_factory=BudgetsConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    estimation: EstimationConfig = Field(default_factory=EstimationConfig)
    optimization: OptimizationConfig = Field(default_factory=OptimizationConfig)


class ConfigLoader:
    """Loads and validates meter YAML configuration.

    Example
    -------
    >>> loader = ConfigLoader()
    >>> config = loader.load(Path("meter.yaml"))
    """

    def load(self, config_path: Path) -> MeterConfig:
        """Load and validate a meter YAML file.

        Parameters
        ----------
        config_path:
            Path to the ``meter.yaml`` file.

        Returns
        -------
        MeterConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        ValueError:
            When the YAML content fails Pydantic validation.
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Meter config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            raw: dict[str, object] = yaml.safe_load(fh) or {}

        return MeterConfig.model_validate(raw)

    def load_string(self, yaml_content: str) -> MeterConfig:
        """Load and validate a YAML string directly."""
        raw: dict[str, object] = yaml.safe_load(yaml_content) or {}
        return MeterConfig.model_validate(raw)

    def defaults(self) -> MeterConfig:
        """Return a default configuration with all defaults applied."""
        return MeterConfig()
