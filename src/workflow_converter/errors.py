"""Error taxonomy and issue records for the conversion pipeline.

Compile stages collect ``Issue`` records instead of raising so that a single
call reports every problem at once. Exceptions exist for callers that prefer
them (``ConversionResult.raise_for_errors``) and for the enhancement stage,
which raises and recovers locally.
"""
from enum import Enum

from pydantic import BaseModel, Field


class IssueKind(str, Enum):
    """Which error class an issue belongs to."""

    DOCUMENT = "document"  # Fatal: input cannot be read as a workflow
    STRUCTURAL = "structural"  # Fatal: graph shape is unusable (cycles)
    NODE = "node"  # Non-fatal: one node is invalid
    ENHANCEMENT = "enhancement"  # Recovered: template body used instead
    WARNING = "warning"

    @property
    def is_fatal(self) -> bool:
        return self in (IssueKind.DOCUMENT, IssueKind.STRUCTURAL)


class Issue(BaseModel):
    """A single error or warning, attached to a node where applicable."""

    message: str = Field(..., description="Human-readable description")
    kind: IssueKind = Field(default=IssueKind.NODE, description="Error class")
    node_id: str | None = Field(default=None, description="Node the issue concerns")

    def __str__(self) -> str:
        if self.node_id:
            return f"[{self.node_id}] {self.message}"
        return self.message


class ConverterError(Exception):
    """Base error for the converter."""

    kind = IssueKind.NODE

    def __init__(self, message: str, node_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id

    def to_issue(self) -> Issue:
        return Issue(message=self.message, kind=self.kind, node_id=self.node_id)


class DocumentError(ConverterError):
    """The input is not a readable workflow document."""

    kind = IssueKind.DOCUMENT


class StructuralError(ConverterError):
    """The workflow graph cannot be scheduled."""

    kind = IssueKind.STRUCTURAL


class NodeValidationError(ConverterError):
    """A single node failed validation or resolution."""

    kind = IssueKind.NODE


class EnhancementError(ConverterError):
    """A generated candidate body was rejected or could not be produced."""

    kind = IssueKind.ENHANCEMENT


ERRORS_BY_KIND = {
    IssueKind.DOCUMENT: DocumentError,
    IssueKind.STRUCTURAL: StructuralError,
    IssueKind.NODE: NodeValidationError,
    IssueKind.ENHANCEMENT: EnhancementError,
}


def error_for_issue(issue: Issue) -> ConverterError:
    """Build the exception matching an issue's kind."""
    error_class = ERRORS_BY_KIND.get(issue.kind, ConverterError)
    return error_class(issue.message, node_id=issue.node_id)


__all__ = [
    "IssueKind",
    "Issue",
    "ConverterError",
    "DocumentError",
    "StructuralError",
    "NodeValidationError",
    "EnhancementError",
    "error_for_issue",
]
