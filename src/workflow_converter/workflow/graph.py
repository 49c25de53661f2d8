"""
Workflow Graph - Adjacency view over a workflow's connections.

Provides cycle search and a declaration-order-stable topological order.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .models import WorkflowDocument


logger = logging.getLogger(__name__)


class WorkflowGraph:
    """
    Directed dataflow graph over node ids.

    Edges pointing at unknown ids are ignored; the validator reports those
    separately.
    """

    def __init__(self, node_ids: Iterable[str], edges: Iterable[Tuple[str, str]]):
        self._order: List[str] = []
        self._downstream: Dict[str, List[str]] = {}
        self._upstream: Dict[str, List[str]] = {}

        for node_id in node_ids:
            if node_id not in self._downstream:
                self._order.append(node_id)
                self._downstream[node_id] = []
                self._upstream[node_id] = []

        for source, target in edges:
            if source not in self._downstream or target not in self._downstream:
                continue
            if target not in self._downstream[source]:
                self._downstream[source].append(target)
            if source not in self._upstream[target]:
                self._upstream[target].append(source)

    @classmethod
    def from_document(cls, document: WorkflowDocument) -> "WorkflowGraph":
        """Build the graph of a validated document."""
        return cls(
            document.node_ids,
            ((source, target.node) for source, _, target in document.iter_edges()),
        )

    @property
    def node_ids(self) -> List[str]:
        return list(self._order)

    def upstream(self, node_id: str) -> List[str]:
        return list(self._upstream.get(node_id, []))

    def downstream(self, node_id: str) -> List[str]:
        return list(self._downstream.get(node_id, []))

    def find_cycle(self) -> Optional[List[str]]:
        """
        Depth-first search with an on-stack set.

        Returns:
            The node ids forming the first cycle found (first id repeated at
            the end), or None if the graph is acyclic.
        """
        visited: set = set()
        on_stack: set = set()

        for root in self._order:
            if root in visited:
                continue

            # Iterative DFS: (node, index of next child to visit)
            path: List[str] = [root]
            cursors: List[int] = [0]
            visited.add(root)
            on_stack.add(root)

            while path:
                node = path[-1]
                children = self._downstream[node]
                cursor = cursors[-1]

                if cursor >= len(children):
                    on_stack.discard(node)
                    path.pop()
                    cursors.pop()
                    continue

                cursors[-1] = cursor + 1
                child = children[cursor]

                if child in on_stack:
                    start = path.index(child)
                    return path[start:] + [child]
                if child not in visited:
                    visited.add(child)
                    on_stack.add(child)
                    path.append(child)
                    cursors.append(0)

        return None

    def has_cycle(self) -> bool:
        return self.find_cycle() is not None

    def topological_order(self) -> List[str]:
        """
        Kahn's algorithm, picking the earliest-declared ready node each step.

        Nodes caught in a cycle are left out, so a short result means the
        graph is cyclic.
        """
        position = {node_id: i for i, node_id in enumerate(self._order)}
        in_degree = {node_id: len(self._upstream[node_id]) for node_id in self._order}
        ready = [node_id for node_id in self._order if in_degree[node_id] == 0]
        order: List[str] = []

        while ready:
            ready.sort(key=position.__getitem__)
            node_id = ready.pop(0)
            order.append(node_id)
            for child in self._downstream[node_id]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    ready.append(child)

        if len(order) != len(self._order):
            logger.debug(
                "Topological order incomplete: %d of %d nodes",
                len(order),
                len(self._order),
            )
        return order

    def execution_order(self) -> List[str]:
        """Topological order, or declaration order when the graph is cyclic."""
        order = self.topological_order()
        if len(order) != len(self._order):
            return list(self._order)
        return order


__all__ = ["WorkflowGraph"]
