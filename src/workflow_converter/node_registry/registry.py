"""
Node Type Registry - Lookup table from node type to descriptor.

Supports two discovery methods:
1. Manual registration
2. Entry-points (for plugin descriptor packs)
"""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .builtin import builtin_descriptors
from .models import (
    NodeTypeDescriptor,
    ResolvedNodeType,
    UnsupportedNodeType,
    descriptor_from_dict,
)


logger = logging.getLogger(__name__)

# Entry point group for descriptor packs
NODE_TYPE_ENTRY_POINT = "workflow_converter.node_types"


class NodeTypeRegistry:
    """
    Registry of supported node types.

    Usage:
        registry = NodeTypeRegistry.with_builtins()
        resolved = registry.lookup("n8n-nodes-base.httpRequest")
        if isinstance(resolved, UnsupportedNodeType):
            ...
    """

    def __init__(self, descriptors: Optional[Iterable[NodeTypeDescriptor]] = None):
        """Initialize registry, optionally pre-filled."""
        self._descriptors: Dict[str, NodeTypeDescriptor] = {}
        self._discovered = False
        for descriptor in descriptors or []:
            self.register(descriptor)

    @classmethod
    def with_builtins(cls) -> "NodeTypeRegistry":
        """Registry holding the built-in catalog."""
        return cls(builtin_descriptors())

    def register(self, descriptor: NodeTypeDescriptor, replace: bool = False) -> NodeTypeDescriptor:
        """
        Register a descriptor.

        Args:
            descriptor: Descriptor to add
            replace: Overwrite an existing descriptor of the same type

        Raises:
            ValueError: If the type is already registered and replace is False
        """
        if descriptor.type in self._descriptors and not replace:
            raise ValueError(f"Node type already registered: {descriptor.type}")
        self._descriptors[descriptor.type] = descriptor
        logger.debug(f"Registered node type: {descriptor.type}")
        return descriptor

    def discover_entry_points(self, force: bool = False) -> int:
        """
        Discover descriptor packs via entry points.

        Entry points are defined in pyproject.toml:

            [project.entry-points."workflow_converter.node_types"]
            mypack = "mypack:node_types"

        The entry point should be a callable returning an iterable of
        NodeTypeDescriptor instances or plain dicts.

        Args:
            force: Re-discover even if already done

        Returns:
            Number of descriptors registered
        """
        if self._discovered and not force:
            return 0

        count = 0
        for ep in entry_points(group=NODE_TYPE_ENTRY_POINT):
            try:
                provided = ep.load()()
                for item in provided:
                    descriptor = item if isinstance(item, NodeTypeDescriptor) else descriptor_from_dict(item)
                    self.register(descriptor, replace=True)
                    count += 1
                logger.info(f"Discovered node type pack: {ep.name}")
            except Exception as e:
                logger.error(f"Failed to load node type pack '{ep.name}': {e}")

        self._discovered = True
        return count

    def lookup(self, node_type: str) -> ResolvedNodeType:
        """
        Resolve a node type.

        Returns:
            The descriptor, or an UnsupportedNodeType naming the reason
        """
        descriptor = self._descriptors.get(node_type)
        if descriptor is not None:
            return descriptor
        return UnsupportedNodeType(
            type=node_type,
            reason=f"Node type '{node_type}' is not supported",
        )

    def get(self, node_type: str) -> Optional[NodeTypeDescriptor]:
        """Get descriptor by type."""
        return self._descriptors.get(node_type)

    def list_node_types(self) -> List[str]:
        """List all registered node types."""
        return list(self._descriptors.keys())

    def list_descriptors(self) -> List[NodeTypeDescriptor]:
        return list(self._descriptors.values())

    def summaries(self) -> List[Dict[str, Any]]:
        return [d.to_summary() for d in self._descriptors.values()]

    def has(self, node_type: str) -> bool:
        """Check if node type is registered."""
        return node_type in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[NodeTypeDescriptor]:
        return iter(self._descriptors.values())

    def __contains__(self, node_type: str) -> bool:
        return self.has(node_type)


# Default registry instance
_default_registry: Optional[NodeTypeRegistry] = None


def get_default_registry() -> NodeTypeRegistry:
    """Get the default registry (built-ins plus entry points, lazy initialized)."""
    global _default_registry
    if _default_registry is None:
        _default_registry = NodeTypeRegistry.with_builtins()
        _default_registry.discover_entry_points()
    return _default_registry


def reset_default_registry() -> None:
    """Drop the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None


__all__ = [
    "NodeTypeRegistry",
    "get_default_registry",
    "reset_default_registry",
    "NODE_TYPE_ENTRY_POINT",
]
