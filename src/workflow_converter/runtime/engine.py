"""
Execution Engine - Runs a generated workflow's nodes in dependency order.

Nodes run one at a time in topological order (Kahn's algorithm with
declaration-order tie-break). A failing node is recorded and the run
continues with the remaining nodes.
"""

from __future__ import annotations

import logging
import time
import traceback
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .node import BaseNode, BranchOutput


logger = logging.getLogger(__name__)


class NodeState(str, Enum):
    """Lifecycle of a node within one run."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class RuntimeExecutionError(RuntimeError):
    """A node raised while executing."""

    def __init__(self, node_id: str, message: str):
        super().__init__(f"Node '{node_id}' failed: {message}")
        self.node_id = node_id
        self.message = message


@dataclass
class NodeError:
    """Failure record of one node."""
    node_id: str
    node_name: str
    message: str
    error_type: str = "Exception"
    traceback: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "message": self.message,
            "error_type": self.error_type,
        }


@dataclass
class RunResult:
    """Summary of one workflow run."""
    run_id: str
    success: bool
    nodes_executed: int
    total_nodes: int
    execution_time_ms: float
    success_rate: float
    errors: List[NodeError] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)
    execution_order: List[str] = field(default_factory=list)
    states: Dict[str, NodeState] = field(default_factory=dict)
    node_durations_ms: Dict[str, float] = field(default_factory=dict)

    def to_dict(self, include_outputs: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "run_id": self.run_id,
            "success": self.success,
            "nodes_executed": self.nodes_executed,
            "total_nodes": self.total_nodes,
            "execution_time_ms": round(self.execution_time_ms, 3),
            "success_rate": self.success_rate,
            "execution_order": list(self.execution_order),
            "states": {node_id: state.value for node_id, state in self.states.items()},
            "errors": [error.to_dict() for error in self.errors],
        }
        if include_outputs:
            data["outputs"] = {
                node_id: value.to_dict() if isinstance(value, BranchOutput) else value
                for node_id, value in self.outputs.items()
            }
        return data


class ExecutionContext:
    """
    Per-run state visible to nodes.

    ``get_node_output`` accepts a node name (as used in expressions) or id.
    """

    def __init__(
        self,
        run_id: str,
        node_names: Mapping[str, str],
        trigger_data: Optional[Dict[str, Any]] = None,
    ):
        self.run_id = run_id
        self.trigger_data: Dict[str, Any] = dict(trigger_data or {})
        self.outputs: Dict[str, Any] = {}
        self.sequence: List[str] = []
        self.errors: List[NodeError] = []
        self._ids_by_name = {name: node_id for node_id, name in node_names.items()}

    def get_node_output(self, name_or_id: str) -> Any:
        node_id = self._ids_by_name.get(name_or_id, name_or_id)
        return self.outputs.get(node_id)

    def has_output(self, node_id: str) -> bool:
        return node_id in self.outputs


class ExecutionEngine:
    """
    Dependency-ordered scheduler for generated workflows.

    Usage:
        engine = ExecutionEngine({"a": TriggerNode(), "b": FetchNode()}, CONNECTIONS)
        result = engine.run()
        print(result.success, result.nodes_executed)
    """

    def __init__(
        self,
        nodes: Mapping[str, BaseNode],
        connections: Optional[Mapping[str, Mapping[str, List[Mapping[str, Any]]]]] = None,
    ):
        """
        Args:
            nodes: Node instances keyed by id, in declaration order
            connections: {source_id: {slot: [{"node", "index", "output_index"}]}}
        """
        self.nodes: Dict[str, BaseNode] = dict(nodes)
        self.connections = connections or {}

    def iter_edges(self) -> Iterator[Tuple[str, Mapping[str, Any]]]:
        """Yield (source_id, target) pairs between known nodes, in map order."""
        for source_id, slots in self.connections.items():
            if source_id not in self.nodes:
                continue
            for targets in slots.values():
                for target in targets:
                    if target.get("node") in self.nodes:
                        yield source_id, target

    def execution_order(self) -> List[str]:
        """
        Kahn's algorithm over the connection map.

        Falls back to declaration order, with a warning, when a cycle
        leaves nodes unordered.
        """
        declared = list(self.nodes)
        position = {node_id: i for i, node_id in enumerate(declared)}
        downstream: Dict[str, List[str]] = {node_id: [] for node_id in declared}
        in_degree: Dict[str, int] = {node_id: 0 for node_id in declared}

        for source_id, target in self.iter_edges():
            target_id = target["node"]
            if target_id not in downstream[source_id]:
                downstream[source_id].append(target_id)
                in_degree[target_id] += 1

        ready = [node_id for node_id in declared if in_degree[node_id] == 0]
        order: List[str] = []
        while ready:
            ready.sort(key=position.__getitem__)
            node_id = ready.pop(0)
            order.append(node_id)
            for child in downstream[node_id]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    ready.append(child)

        if len(order) != len(declared):
            logger.warning("Circular dependency detected, using declaration order")
            return declared
        return order

    def gather_input(
        self,
        node_id: str,
        context: ExecutionContext,
        pending: Iterable[str] = (),
    ) -> Tuple[Any, bool]:
        """
        Collect the input of node_id from its producers.

        Args:
            pending: Producers that have not run yet. Only a cycle in the
                connection map leaves any; they count as delivering no data.

        Returns:
            (input, skip): input is {} with no producers, the single value
            with one, or a list ordered by target input index with several.
            skip is True when the node has producers but none of them
            delivered data on the connected branch, none failed and none
            is still pending.
        """
        pending = set(pending)
        incoming: List[Tuple[int, str, int]] = []
        for source_id, target in self.iter_edges():
            if target["node"] == node_id:
                incoming.append(
                    (int(target.get("index", 0)), source_id, int(target.get("output_index", 0)))
                )
        incoming.sort(key=lambda entry: entry[0])

        if not incoming:
            return {}, False

        values: List[Any] = []
        run_anyway = False
        for _, source_id, output_index in incoming:
            if not context.has_output(source_id):
                if source_id in pending or any(error.node_id == source_id for error in context.errors):
                    run_anyway = True
                continue
            output = context.outputs[source_id]
            if isinstance(output, BranchOutput):
                if not output.has(output_index):
                    continue
                output = output.get(output_index)
            values.append(output)

        if not values:
            return {}, not run_anyway
        if len(values) == 1:
            return values[0], False
        return values, False

    def run(self, trigger_data: Optional[Dict[str, Any]] = None) -> RunResult:
        """
        Execute every node once.

        Args:
            trigger_data: Payload handed to trigger nodes via the context

        Returns:
            RunResult; success is False if any node failed
        """
        run_id = f"exec_{uuid.uuid4().hex[:12]}"
        context = ExecutionContext(
            run_id,
            {node_id: node.node_name or node_id for node_id, node in self.nodes.items()},
            trigger_data,
        )
        states: Dict[str, NodeState] = {node_id: NodeState.PENDING for node_id in self.nodes}
        durations: Dict[str, float] = {}

        start = time.perf_counter()
        order = self.execution_order()
        pending = set(order)
        logger.info("Run %s: executing %d node(s)", run_id, len(order))

        for node_id in order:
            pending.discard(node_id)
            node = self.nodes[node_id]
            input_data, skip = self.gather_input(node_id, context, pending)

            if node.disabled:
                states[node_id] = NodeState.SKIPPED
                if not skip:
                    context.outputs[node_id] = input_data
                logger.info("Node %s is disabled, passing input through", node_id)
                continue
            if skip:
                states[node_id] = NodeState.SKIPPED
                logger.info("Node %s skipped: no data on its input branch", node_id)
                continue

            states[node_id] = NodeState.RUNNING
            node_start = time.perf_counter()
            try:
                output = node.execute(input_data, context)
            except Exception as e:
                states[node_id] = NodeState.FAILED
                error = NodeError(
                    node_id=node_id,
                    node_name=node.node_name or node_id,
                    message=str(e) or type(e).__name__,
                    error_type=type(e).__name__,
                    traceback=traceback.format_exc(),
                )
                context.errors.append(error)
                logger.error("Node %s failed: %s", node_id, error.message)
            else:
                states[node_id] = NodeState.SUCCEEDED
                context.outputs[node_id] = output
                context.sequence.append(node_id)
                logger.info("Node %s succeeded", node_id)
            finally:
                durations[node_id] = (time.perf_counter() - node_start) * 1000

        elapsed_ms = (time.perf_counter() - start) * 1000
        succeeded = sum(1 for state in states.values() if state == NodeState.SUCCEEDED)
        total = len(self.nodes)
        success_rate = round(100.0 * succeeded / total, 2) if total else 0.0

        result = RunResult(
            run_id=run_id,
            success=not context.errors,
            nodes_executed=succeeded,
            total_nodes=total,
            execution_time_ms=elapsed_ms,
            success_rate=success_rate,
            errors=list(context.errors),
            outputs=dict(context.outputs),
            execution_order=order,
            states=states,
            node_durations_ms=durations,
        )
        logger.info(
            "Run %s finished: success=%s executed=%d/%d in %.1fms",
            run_id,
            result.success,
            succeeded,
            total,
            elapsed_ms,
        )
        return result

    def run_or_raise(self, trigger_data: Optional[Dict[str, Any]] = None) -> RunResult:
        """Like run(), but raise RuntimeExecutionError for the first failure."""
        result = self.run(trigger_data)
        if result.errors:
            first = result.errors[0]
            raise RuntimeExecutionError(first.node_id, first.message)
        return result


__all__ = [
    "ExecutionEngine",
    "ExecutionContext",
    "NodeState",
    "NodeError",
    "RunResult",
    "RuntimeExecutionError",
]
