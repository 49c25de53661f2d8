"""
Mapping - Resolution of workflow nodes against the node type registry.
"""

from .resolver import (
    MappedNode,
    NodeResolver,
    NodeValidation,
    ResolutionResult,
    class_name_for,
    env_placeholder,
    module_name_for,
)

__all__ = [
    "MappedNode",
    "NodeResolver",
    "NodeValidation",
    "ResolutionResult",
    "class_name_for",
    "env_placeholder",
    "module_name_for",
]
