"""
Workflow Converter - Orchestrates validation, resolution, enhancement and assembly.

Key behaviors:
- Fatal document/structural errors stop the run before any project is built
- Node-level problems are reported but the project is still emitted
- Enhancement is optional and never fails a conversion
- Each convert() call owns its state; the converter can be reused
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from workflow_converter.codegen.assembler import AssemblyConfig, GeneratedProject, ProjectAssembler
from workflow_converter.codegen.enhancement import (
    EnhancementGate,
    EnhancementTelemetry,
    default_prompt,
)
from workflow_converter.config import Settings, get_settings
from workflow_converter.errors import Issue, IssueKind, error_for_issue
from workflow_converter.expressions import ExpressionTranslator
from workflow_converter.mapping.resolver import MappedNode, NodeResolver, ResolutionResult
from workflow_converter.node_registry import NodeTypeRegistry, get_default_registry
from workflow_converter.observability import get_logger, with_conversion_context
from workflow_converter.workflow.validator import GraphValidator, ParseResult, WorkflowMetadata


logger = get_logger(__name__)


@dataclass
class ConversionResult:
    """Outcome of one conversion."""
    success: bool
    conversion_id: str
    project: Optional[GeneratedProject] = None
    metadata: Optional[WorkflowMetadata] = None
    mapped: List[MappedNode] = field(default_factory=list)
    errors: List[Issue] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)
    enhanced_nodes: List[str] = field(default_factory=list)

    @property
    def error_messages(self) -> List[str]:
        return [str(issue) for issue in self.errors]

    @property
    def warning_messages(self) -> List[str]:
        return [str(issue) for issue in self.warnings]

    def raise_for_errors(self) -> None:
        """
        Raise the exception for the most severe error, if any.

        Fatal issues (document, structural) take precedence over node issues.

        Raises:
            ConverterError: One of its subclasses, matching the issue kind
        """
        if not self.errors:
            return
        fatal = [issue for issue in self.errors if issue.kind.is_fatal]
        raise error_for_issue(fatal[0] if fatal else self.errors[0])


class WorkflowConverter:
    """
    Convert workflow documents into standalone Python projects.

    Usage:
        converter = WorkflowConverter()
        result = converter.convert(text)
        if result.project is not None:
            result.project.write_to(Path("out"))
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[NodeTypeRegistry] = None,
        generator: Optional[Callable[[str, Dict[str, Any]], Any]] = None,
        telemetry: Optional[EnhancementTelemetry] = None,
    ):
        """
        Initialize converter.

        Args:
            settings: Converter settings (defaults to the global settings)
            registry: Node type registry (defaults to built-ins plus plugins)
            generator: Optional ``(prompt, meta) -> GeneratorResponse`` used
                for enhancement
            telemetry: Where enhancement decisions are recorded
        """
        self.settings = settings or get_settings()
        self.registry = registry or get_default_registry()
        self.generator = generator
        self.telemetry = telemetry or EnhancementTelemetry(self.settings.enhancement_telemetry_size)

    def validate(self, text: Union[str, bytes]) -> ParseResult:
        """Run only the validation stage."""
        return GraphValidator(self.registry, self.settings.max_type_version).parse(text)

    def convert(
        self,
        text: Union[str, bytes],
        project_name: Optional[str] = None,
        enhance: Optional[bool] = None,
    ) -> ConversionResult:
        """
        Convert a workflow document.

        Args:
            text: Workflow JSON
            project_name: Name of the generated project (defaults to the
                slugified workflow name)
            enhance: Override ``settings.enhancement_enabled``

        Returns:
            ConversionResult; ``project`` is None when a fatal error occurred
        """
        conversion_id = f"conv_{uuid.uuid4().hex[:12]}"
        parse = self.validate(text)

        if parse.document is None:
            logger.warning(
                "Conversion stopped: %s",
                "; ".join(parse.error_messages) or "no document",
                extra=with_conversion_context(conversion_id=conversion_id),
            )
            return ConversionResult(
                success=False,
                conversion_id=conversion_id,
                metadata=parse.metadata,
                errors=list(parse.errors),
                warnings=list(parse.warnings),
            )

        document = parse.document
        extra = with_conversion_context(conversion_id=conversion_id, workflow_name=document.name)
        logger.info("Converting workflow with %d node(s)", len(document.nodes), extra=extra)

        resolver = NodeResolver(
            registry=self.registry,
            translator=ExpressionTranslator(),
            max_type_version=self.settings.max_type_version,
        )
        resolution = resolver.resolve(document.nodes)

        # The resolver re-checks every node, so its node issues replace the validator's
        errors = [issue for issue in parse.errors if issue.kind != IssueKind.NODE]
        errors.extend(resolution.errors)
        warnings = [issue for issue in parse.warnings if issue.node_id is None]
        warnings.extend(resolution.warnings)

        config = AssemblyConfig.from_settings(self.settings, project_name=project_name)
        assembler = ProjectAssembler(config)

        should_enhance = self.settings.enhancement_enabled if enhance is None else enhance
        enhanced_nodes: List[str] = []
        if should_enhance:
            enhanced_nodes = self._enhance(resolution, assembler, warnings, extra)

        project = assembler.assemble(resolution, document, parse.metadata)
        success = not errors
        logger.info(
            "Conversion %s: %d error(s), %d warning(s), %d enhanced node(s)",
            "succeeded" if success else "finished with errors",
            len(errors),
            len(warnings),
            len(enhanced_nodes),
            extra=extra,
        )
        return ConversionResult(
            success=success,
            conversion_id=conversion_id,
            project=project,
            metadata=parse.metadata,
            mapped=list(resolution.mapped),
            errors=errors,
            warnings=warnings,
            enhanced_nodes=enhanced_nodes,
        )

    def _enhance(
        self,
        resolution: ResolutionResult,
        assembler: ProjectAssembler,
        warnings: List[Issue],
        extra: Dict[str, Any],
    ) -> List[str]:
        """Swap accepted bodies into the resolution; returns enhanced node ids."""
        if self.generator is None:
            warnings.append(
                Issue(
                    message="Enhancement requested but no generator is configured",
                    kind=IssueKind.WARNING,
                )
            )
            return []

        gate = EnhancementGate(
            self.generator,
            timeout_s=self.settings.enhancement_timeout_s,
            min_code_length=self.settings.enhancement_min_code_length,
            max_workers=self.settings.enhancement_max_workers,
            telemetry=self.telemetry,
        )
        decisions = gate.enhance_all(
            resolution.mapped,
            lambda mapped: default_prompt(mapped, assembler.render_node_body(mapped)),
        )

        enhanced: List[str] = []
        for index, mapped in enumerate(resolution.mapped):
            decision = decisions.get(mapped.node_id)
            if decision is None:
                continue
            if decision.accepted:
                resolution.mapped[index] = dataclasses.replace(mapped, body=decision.body)
                enhanced.append(mapped.node_id)
            else:
                warnings.append(
                    Issue(
                        message=f"Node '{mapped.node_id}': enhancement rejected ({decision.reason}); using template",
                        kind=IssueKind.ENHANCEMENT,
                        node_id=mapped.node_id,
                    )
                )
        logger.info("Enhanced %d of %d node(s)", len(enhanced), len(decisions), extra=extra)
        return enhanced


def convert_workflow(text: Union[str, bytes], **kwargs: Any) -> ConversionResult:
    """Convert with a default-configured WorkflowConverter."""
    return WorkflowConverter().convert(text, **kwargs)


__all__ = [
    "ConversionResult",
    "WorkflowConverter",
    "convert_workflow",
]
