"""
Node Registry - Descriptors of the node types the converter can compile.

Usage:
    from workflow_converter.node_registry import get_default_registry

    registry = get_default_registry()
    resolved = registry.lookup("n8n-nodes-base.httpRequest")
"""

from .builtin import STICKY_NOTE_TYPE, builtin_descriptors
from .models import (
    NodeCategory,
    NodeTypeDescriptor,
    ParameterSchema,
    ParameterType,
    ResolvedNodeType,
    TemplateKind,
    UnsupportedNodeType,
    looks_like_expression,
)
from .registry import (
    NODE_TYPE_ENTRY_POINT,
    NodeTypeRegistry,
    get_default_registry,
    reset_default_registry,
)

__all__ = [
    "NodeCategory",
    "NodeTypeDescriptor",
    "ParameterSchema",
    "ParameterType",
    "ResolvedNodeType",
    "TemplateKind",
    "UnsupportedNodeType",
    "looks_like_expression",
    "builtin_descriptors",
    "STICKY_NOTE_TYPE",
    "NodeTypeRegistry",
    "get_default_registry",
    "reset_default_registry",
    "NODE_TYPE_ENTRY_POINT",
]
