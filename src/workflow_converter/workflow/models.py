"""
Workflow Models - Validated structures for n8n-style workflow documents.

Raw documents are checked by ``GraphValidator`` before these models are
built, so every instance satisfies the document invariants: unique node
ids and connection endpoints that reference existing nodes.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectionTarget(BaseModel):
    """
    One edge endpoint inside an output slot.

    Example: {"node": "b", "type": "main", "index": 0}
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    node: str = Field(..., description="Target node id")
    type: str = Field("main", description="Connection type")
    index: int = Field(0, ge=0, description="Target input index")
    output_index: int = Field(0, ge=0, description="Branch index within the source slot")


ConnectionMap = Dict[str, Dict[str, List[ConnectionTarget]]]


class NodePosition(BaseModel):
    """Node position in the editor canvas."""
    model_config = ConfigDict(frozen=True)

    x: float = 0
    y: float = 0


class WorkflowNode(BaseModel):
    """
    A node in a workflow.

    Matches the n8n workflow JSON node format.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str = Field(..., description="Unique node id")
    name: str = Field(..., description="Display name")
    type: str = Field(..., description="Node type (e.g., 'n8n-nodes-base.httpRequest')")
    type_version: Union[int, float] = Field(1, alias="typeVersion", description="Node type version")
    position: NodePosition = Field(default_factory=NodePosition)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    credentials: Dict[str, Any] = Field(default_factory=dict)
    disabled: bool = Field(False, description="If true, the node passes its input through")
    notes: Optional[str] = Field(None, description="Node notes")

    @field_validator("position", mode="before")
    @classmethod
    def _coerce_position(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)) and len(value) >= 2:
            return {"x": value[0], "y": value[1]}
        if value is None:
            return {}
        return value

    @field_validator("parameters", "credentials", mode="before")
    @classmethod
    def _default_mapping(cls, value: Any) -> Any:
        return {} if value is None else value


class WorkflowDocument(BaseModel):
    """
    Complete, validated workflow document.

    ``connections`` is keyed by source node id and every target references
    a node id, whatever form the raw document used.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: Optional[str] = Field(None, description="Workflow id")
    name: str = Field("Unnamed Workflow", description="Workflow name")
    active: bool = Field(False, description="Is workflow active?")
    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: ConnectionMap = Field(
        default_factory=dict,
        description="Edges: {source_id: {slot: [ConnectionTarget]}}",
    )
    settings: Dict[str, Any] = Field(default_factory=dict)
    tags: List[Any] = Field(default_factory=list)

    @property
    def node_ids(self) -> List[str]:
        """Node ids in declaration order."""
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Get node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def iter_edges(self) -> Iterator[Tuple[str, str, ConnectionTarget]]:
        """Yield (source_id, slot, target) for every connection in map order."""
        for source_id, slots in self.connections.items():
            for slot, targets in slots.items():
                for target in targets:
                    yield source_id, slot, target

    @property
    def connection_count(self) -> int:
        return sum(1 for _ in self.iter_edges())

    def get_upstream_ids(self, node_id: str) -> List[str]:
        """Ids of nodes feeding into node_id, without duplicates."""
        upstream: List[str] = []
        for source_id, _, target in self.iter_edges():
            if target.node == node_id and source_id not in upstream:
                upstream.append(source_id)
        return upstream

    def get_downstream_ids(self, node_id: str) -> List[str]:
        """Ids of nodes node_id feeds into, without duplicates."""
        downstream: List[str] = []
        for target in self._targets_of(node_id):
            if target.node not in downstream:
                downstream.append(target.node)
        return downstream

    def _targets_of(self, node_id: str) -> List[ConnectionTarget]:
        targets: List[ConnectionTarget] = []
        for slot_targets in self.connections.get(node_id, {}).values():
            targets.extend(slot_targets)
        return targets

    def to_connection_map(self) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
        """Plain-data connection map, as emitted into generated projects."""
        return {
            source_id: {
                slot: [
                    {
                        "node": target.node,
                        "type": target.type,
                        "index": target.index,
                        "output_index": target.output_index,
                    }
                    for target in targets
                ]
                for slot, targets in slots.items()
            }
            for source_id, slots in self.connections.items()
        }


__all__ = [
    "ConnectionTarget",
    "ConnectionMap",
    "NodePosition",
    "WorkflowNode",
    "WorkflowDocument",
]
