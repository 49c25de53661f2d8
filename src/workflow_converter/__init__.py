"""
Workflow Converter

Compiles n8n-style workflow documents into standalone Python projects:
validate -> resolve -> (enhance) -> assemble.
"""

__version__ = "0.1.0"

from workflow_converter.pipeline import ConversionResult, WorkflowConverter, convert_workflow

__all__ = [
    "__version__",
    "ConversionResult",
    "WorkflowConverter",
    "convert_workflow",
]
