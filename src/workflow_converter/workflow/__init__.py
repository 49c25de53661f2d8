"""
Workflow - Parsing, validation and graph analysis of workflow documents.

Usage:
    from workflow_converter.workflow import GraphValidator

    result = GraphValidator().parse(text)
    if result.is_valid:
        document = result.document
"""

from .graph import WorkflowGraph
from .models import ConnectionMap, ConnectionTarget, NodePosition, WorkflowDocument, WorkflowNode
from .validator import GraphValidator, ParseResult, WorkflowMetadata, is_trigger_type

__all__ = [
    "ConnectionMap",
    "ConnectionTarget",
    "NodePosition",
    "WorkflowDocument",
    "WorkflowNode",
    "WorkflowGraph",
    "GraphValidator",
    "ParseResult",
    "WorkflowMetadata",
    "is_trigger_type",
]
