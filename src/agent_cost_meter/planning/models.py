"""Descriptor schemas for tasks, agents and workflow graphs.

These documents are produced by external collaborators (persona composers,
workflow builders).  Unknown keys are preserved so a rewritten workflow can
be handed back without losing information.

Example
-------
>>> workflow = Workflow.model_validate({
...     "nodes": {
...         "design": {"task": {"type": "design", "complexity": 8},
...                    "agent": {"type": "architect", "name": "daedalus", "model": "claude-3-opus"}},
...     },
...     "parallelizable": {"level-0": ["design"]},
... })
>>> workflow.nodes["design"].agent.key
'architect:daedalus'
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator


class TaskDescriptor(BaseModel):
    """A unit of work to be estimated."""

    model_config = {"extra": "allow"}

    type: str | None = Field(default=None)
    complexity: float | None = Field(default=None, ge=0)
    description: str | None = Field(default=None)
    simplified: bool = Field(default=False)


class AgentDescriptor(BaseModel):
    """An agent able to run tasks."""

    model_config = {"extra": "allow"}

    type: str = Field(default="agent")
    name: str = Field(default="unnamed")
    model: str | None = Field(default=None)
    score: float = Field(default=0.0)
    cost_reduction: float | None = Field(default=None)

    @property
    def key(self) -> str:
        """Grouping key ``type:name``."""
        return f"{self.type}:{self.name}"


class WorkflowNode(BaseModel):
    """One node of a workflow graph: a task paired with an agent."""

    model_config = {"extra": "allow"}

    task: TaskDescriptor = Field(default_factory=TaskDescriptor)
    agent: AgentDescriptor = Field(default_factory=AgentDescriptor)


class Workflow(BaseModel):
    """A workflow graph with optional parallel execution levels.

    ``nodes`` may be given as a mapping of node id to node, as a list of
    nodes carrying an ``id`` key, or nested under ``graph.nodes``.
    """

    model_config = {"extra": "allow"}

    nodes: dict[str, WorkflowNode] = Field(default_factory=dict)
    parallelizable: dict[str, list[str]] | None = Field(default=None)

    @model_validator(mode="before")
    @classmethod
    def normalise_nodes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        graph = data.pop("graph", None)
        if "nodes" not in data and isinstance(graph, dict):
            data["nodes"] = graph.get("nodes", {})
        nodes = data.get("nodes")
        if isinstance(nodes, list):
            converted: dict[str, Any] = {}
            for index, node in enumerate(nodes):
                if not isinstance(node, dict):
                    raise ValueError(f"Workflow node at index {index} must be a mapping")
                node = dict(node)
                node_id = str(node.pop("id", f"node-{index}"))
                if node_id in converted:
                    raise ValueError(f"Duplicate workflow node id: {node_id}")
                converted[node_id] = node
            data["nodes"] = converted
        return data
