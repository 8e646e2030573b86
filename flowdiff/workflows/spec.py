"""
Document models for workflows, nodes and connections.

A workflow is stored as a document: a list of nodes plus a connection map keyed
by the *name* of the source node::

    {
        "name": "Lead intake",
        "nodes": [{"id": "a1", "name": "Webhook", "type": "n8n-nodes-base.webhook",
                   "typeVersion": 1, "position": [0, 0], "parameters": {}}],
        "connections": {
            "Webhook": {"main": [[{"node": "Check", "type": "main", "index": 0}]]}
        }
    }

Each output name holds an ordered list of slots (output indices) and each slot an
ordered list of targets, which models multi-output nodes and parallel wires.
"""

from __future__ import annotations

from typing import Any, Iterator, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectionTarget(BaseModel):
    """One wire end: target node name, target input name and input index."""

    model_config = ConfigDict(extra='ignore')

    node: str
    """Target node name"""

    type: str = 'main'
    """Target input name"""

    index: int = Field(default=0, ge=0)
    """Target input index"""


ConnectionSlot = list[ConnectionTarget]
OutputConnections = dict[str, list[ConnectionSlot]]
Connections = dict[str, OutputConnections]

Coordinate = Union[int, float]
Position = tuple[Coordinate, Coordinate]
"""Canvas position; integer coordinates stay integers."""


def normalize_connections(value: Any) -> Any:
    """Replace ``null`` slots with empty lists so slot positions are preserved."""
    if not isinstance(value, dict):
        return value
    normalized: dict[str, Any] = {}
    for source, outputs in value.items():
        if not isinstance(outputs, dict):
            normalized[source] = outputs
            continue
        normalized[source] = {
            output: [slot if slot is not None else [] for slot in slots] if isinstance(slots, list) else slots
            for output, slots in outputs.items()
        }
    return normalized


class WorkflowNode(BaseModel):
    """A typed, positioned unit of work."""

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    type_version: Union[int, float] = Field(default=1, alias='typeVersion')
    position: Position
    parameters: dict[str, Any] = Field(default_factory=dict)
    disabled: bool = False
    credentials: Optional[dict[str, Any]] = None
    notes: Optional[str] = None

    def to_document(self) -> dict[str, Any]:
        """Dump using the document field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Workflow(BaseModel):
    """The graph under edit: nodes, connections and workflow-level metadata."""

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    id: Optional[str] = None
    name: str
    nodes: list[WorkflowNode] = Field(default_factory=list)
    connections: Connections = Field(default_factory=dict)
    settings: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    active: bool = False

    @field_validator('connections', mode='before')
    @classmethod
    def fill_empty_slots(cls, value: Any) -> Any:
        return normalize_connections(value)

    @field_validator('tags', mode='before')
    @classmethod
    def flatten_tags(cls, value: Any) -> Any:
        """Accept tag objects (``{"id": ..., "name": ...}``) as well as plain names."""
        if not isinstance(value, list):
            return value
        return [tag.get('name') if isinstance(tag, dict) else tag for tag in value]

    def find_node_by_id(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def find_node_by_name(self, name: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def node_names(self) -> set[str]:
        return {node.name for node in self.nodes}

    def iter_connections(self) -> Iterator[tuple[str, str, int, ConnectionTarget]]:
        """Yield ``(source name, output name, slot index, target)`` for every wire."""
        for source, outputs in self.connections.items():
            for output, slots in outputs.items():
                for slot_index, slot in enumerate(slots):
                    for target in slot:
                        yield source, output, slot_index, target

    def to_document(self) -> dict[str, Any]:
        """Dump the workflow in document form (camelCase, no empty optionals)."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)
