"""Cost model: prices metered usage with configurable rate tables.

CostModel maps ``(resource_type, usage, metadata)`` to a monetary cost.  It
holds no mutable state and performs no I/O, so the same inputs always yield
the same cost.  A rate key missing from the table (unknown model, compute
type, or API type) prices the usage at ``0.0`` rather than raising.

Pricing rules
-------------
- ``tokens``:  ``input/1000 * rate.input + output/1000 * rate.output`` using
  ``metadata["model"]`` or the configured default model.
- ``compute``: ``amount * compute[metadata["type"] or "cpu-hour"]``.
- ``api``:     ``amount * api[metadata["type"] or "api-call"]``.
- ``storage``: ``amount * storage["storage-gb"]``.

Example
-------
>>> model = CostModel()
>>> round(model.cost("tokens", {"input": 1000, "output": 1000}, {"model": "claude-3-sonnet"}), 6)
0.018
>>> model.cost("compute", {"amount": 2}, {"type": "quantum-hour"})
0.0
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any

from agent_cost_meter.config import RatesConfig, TokenRate
from agent_cost_meter.exceptions import InvalidUsage

STORAGE_RATE_KEY = "storage-gb"


class ResourceType(str, Enum):
    """Closed set of metered resource types."""

    TOKENS = "tokens"
    COMPUTE = "compute"
    API = "api"
    STORAGE = "storage"


@dataclass(frozen=True)
class Usage:
    """Normalised usage amount.

    Attributes
    ----------
    amount:
        Scalar amount recorded in the ledger.  For tokens this is
        ``input + output``.
    input:
        Input/prompt tokens (tokens only).
    output:
        Output/completion tokens (tokens only).
    """

    amount: float
    input: float = 0.0
    output: float = 0.0


def parse_resource_type(resource_type: ResourceType | str) -> ResourceType:
    """Coerce *resource_type* to :class:`ResourceType` or raise InvalidUsage."""
    try:
        return ResourceType(resource_type)
    except ValueError:
        raise InvalidUsage(str(resource_type), "unknown resource type") from None


def _checked(resource_type: ResourceType, name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidUsage(resource_type.value, f"{name} must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise InvalidUsage(resource_type.value, f"{name} must be finite, got {value!r}")
    if number < 0:
        raise InvalidUsage(resource_type.value, f"{name} must be >= 0, got {value!r}")
    return number


def normalize_usage(resource_type: ResourceType | str, usage: Usage | Mapping[str, Any] | float) -> Usage:
    """Validate a raw usage payload and return a :class:`Usage`.

    Token usage is a mapping with optional ``input`` and ``output`` counts.
    Every other resource accepts a mapping with an ``amount`` key or a bare
    number.

    Raises
    ------
    InvalidUsage
        When any amount is negative, non-finite, or not a number.
    """
    rtype = parse_resource_type(resource_type)
    if isinstance(usage, Usage):
        usage = {"amount": usage.amount, "input": usage.input, "output": usage.output}

    if rtype is ResourceType.TOKENS:
        if not isinstance(usage, Mapping):
            raise InvalidUsage(rtype.value, "token usage must be a mapping with input/output counts")
        input_tokens = _checked(rtype, "input", usage.get("input", 0))
        output_tokens = _checked(rtype, "output", usage.get("output", 0))
        return Usage(amount=input_tokens + output_tokens, input=input_tokens, output=output_tokens)

    if isinstance(usage, Mapping):
        if "amount" not in usage:
            raise InvalidUsage(rtype.value, "missing 'amount'")
        return Usage(amount=_checked(rtype, "amount", usage["amount"]))
    return Usage(amount=_checked(rtype, "amount", usage))


class CostModel:
    """Stateless pricing function over immutable rate tables.

    Parameters
    ----------
    rates:
        Rate tables to price with.  Defaults to the built-in tables.
    """

    def __init__(self, rates: RatesConfig | None = None) -> None:
        self._rates = (rates or RatesConfig()).model_copy(deep=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cost(
        self,
        resource_type: ResourceType | str,
        usage: Usage | Mapping[str, Any] | float,
        metadata: Mapping[str, Any] | None = None,
    ) -> float:
        """Return the cost of *usage*; ``0.0`` when the rate key is unknown."""
        rtype = parse_resource_type(resource_type)
        normalized = normalize_usage(rtype, usage)
        meta = metadata or {}

        match rtype:
            case ResourceType.TOKENS:
                rate = self._rates.tokens.get(meta.get("model") or self._rates.default_model)
                if rate is None:
                    return 0.0
                return normalized.input / 1000 * rate.input + normalized.output / 1000 * rate.output
            case ResourceType.COMPUTE:
                return normalized.amount * self._rates.compute.get(meta.get("type") or "cpu-hour", 0.0)
            case ResourceType.API:
                return normalized.amount * self._rates.api.get(meta.get("type") or "api-call", 0.0)
            case ResourceType.STORAGE:
                return normalized.amount * self._rates.storage.get(STORAGE_RATE_KEY, 0.0)

    def token_rate(self, model: str) -> TokenRate | None:
        """Return the per-1K token rate for *model*, or ``None``."""
        return self._rates.tokens.get(model)

    def rate_tables(self) -> dict[str, Any]:
        """Return the rate tables as plain JSON-compatible data."""
        return self._rates.model_dump(mode="json")

    def with_rates(self, tables: Mapping[str, Any]) -> "CostModel":
        """Return a new model whose tables extend this one's with *tables*.

        Raises
        ------
        pydantic.ValidationError
            When *tables* contains malformed rates.
        """
        current = self.rate_tables()
        merged: dict[str, Any] = dict(current)
        for key, value in tables.items():
            if isinstance(value, Mapping) and isinstance(current.get(key), Mapping):
                merged[key] = {**current[key], **value}
            else:
                merged[key] = value
        return CostModel(RatesConfig.model_validate(merged))

    @property
    def default_model(self) -> str:
        return self._rates.default_model

    @property
    def models(self) -> list[str]:
        """Token-priced model names, sorted."""
        return sorted(self._rates.tokens)
