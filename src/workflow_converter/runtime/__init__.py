"""
Runtime support shipped inside every generated project.

Modules here only depend on the standard library, except ``http``
(requests) and ``sandbox`` (RestrictedPython), which are emitted only
when a node needs them.
"""

from .engine import (
    ExecutionContext,
    ExecutionEngine,
    NodeError,
    NodeState,
    RunResult,
    RuntimeExecutionError,
)
from .node import BaseNode, BranchOutput, credential, env, resolve_path, to_text

__all__ = [
    "ExecutionContext",
    "ExecutionEngine",
    "NodeError",
    "NodeState",
    "RunResult",
    "RuntimeExecutionError",
    "BaseNode",
    "BranchOutput",
    "credential",
    "env",
    "resolve_path",
    "to_text",
]
