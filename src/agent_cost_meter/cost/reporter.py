"""Usage reporter.

Summarises the ledger's global history over a trailing time range with
breakdowns by agent and by resource type plus the top cost consumers.

Example
-------
>>> from agent_cost_meter.cost.ledger import UsageLedger
>>> reporter = UsageReporter(UsageLedger())
>>> reporter.usage_report(hours=24).total_cost
0.0
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from agent_cost_meter.cost.ledger import UsageLedger

TOP_CONSUMER_COUNT = 5


@dataclass
class AgentUsage:
    """Usage per resource type and total cost for one agent."""

    usage: dict[str, float] = field(default_factory=dict)
    cost: float = 0.0


@dataclass
class ResourceUsage:
    """Usage and cost totals for one resource type."""

    usage: float = 0.0
    cost: float = 0.0


@dataclass
class UsageReport:
    """Aggregated usage over a trailing time range.

    Attributes
    ----------
    hours:
        Length of the trailing range.
    by_agent:
        Per-agent usage by resource type and total cost.
    by_resource:
        Per-resource usage and cost.
    total_cost:
        Cost summed over the range.
    top_consumers:
        Up to five ``(agent_id, cost)`` pairs, highest cost first.
    """

    hours: float
    by_agent: dict[str, AgentUsage] = field(default_factory=dict)
    by_resource: dict[str, ResourceUsage] = field(default_factory=dict)
    total_cost: float = 0.0
    top_consumers: list[tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "time_range": {"hours": self.hours},
            "by_agent": {
                agent: {"usage": dict(data.usage), "cost": data.cost} for agent, data in self.by_agent.items()
            },
            "by_resource": {
                rtype: {"usage": data.usage, "cost": data.cost} for rtype, data in self.by_resource.items()
            },
            "total_cost": self.total_cost,
            "top_consumers": [{"agent": agent, "cost": cost} for agent, cost in self.top_consumers],
        }


class UsageReporter:
    """Generates usage reports from a :class:`UsageLedger`.

    Parameters
    ----------
    ledger:
        The ledger to report from.
    """

    def __init__(self, ledger: UsageLedger) -> None:
        self._ledger = ledger

    def usage_report(self, hours: float = 24.0, now: datetime | None = None) -> UsageReport:
        """Aggregate the global history over the trailing *hours*.

        Parameters
        ----------
        hours:
            Length of the trailing range.
        now:
            Override the range end (defaults to the ledger clock).
        """
        end = now or self._ledger.clock()
        cutoff = end - timedelta(hours=hours)
        report = UsageReport(hours=hours)

        for entry in self._ledger.history(since=cutoff):
            rtype = entry.resource_type.value
            agent = report.by_agent.setdefault(entry.agent_id, AgentUsage())
            agent.usage[rtype] = agent.usage.get(rtype, 0.0) + entry.usage
            agent.cost += entry.cost

            resource = report.by_resource.setdefault(rtype, ResourceUsage())
            resource.usage += entry.usage
            resource.cost += entry.cost

            report.total_cost += entry.cost

        ranked = sorted(report.by_agent.items(), key=lambda item: item[1].cost, reverse=True)
        report.top_consumers = [(agent_id, data.cost) for agent_id, data in ranked[:TOP_CONSUMER_COUNT]]
        return report
