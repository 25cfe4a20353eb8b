"""Exception types raised by agent-cost-meter.

All library errors derive from :class:`CostMeterError`.  The concrete
subclasses also inherit from the closest built-in exception so callers can
catch them generically (``ValueError``, ``KeyError``).
"""
from __future__ import annotations


class CostMeterError(Exception):
    """Base class for all agent-cost-meter errors."""


class InvalidUsage(CostMeterError, ValueError):
    """Raised when a usage amount is negative, non-finite, or not a number.

    Attributes
    ----------
    resource_type:
        Resource type the usage was reported for.
    detail:
        Human-readable explanation of what was wrong.
    """

    def __init__(self, resource_type: str, detail: str) -> None:
        self.resource_type = resource_type
        self.detail = detail
        super().__init__(f"Invalid {resource_type} usage: {detail}")


class DataFormatError(CostMeterError, ValueError):
    """Raised when an imported cost snapshot does not match the expected shape."""


class NoSuchBudget(CostMeterError, KeyError):
    """Raised by strict budget lookups when the budget id is unknown."""

    def __init__(self, budget_id: str) -> None:
        self.budget_id = budget_id
        super().__init__(f"No budget with id: {budget_id}")
