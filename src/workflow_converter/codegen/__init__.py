"""
Codegen - Node module templates, enhancement gate and project assembly.

Usage:
    from workflow_converter.codegen import ProjectAssembler

    project = ProjectAssembler().assemble(resolution, document, metadata)
    project.write_to(Path("out"))
"""

from .assembler import (
    AssemblyConfig,
    EnvVarSpec,
    GeneratedFile,
    GeneratedProject,
    ProjectAssembler,
    read_runtime_source,
    slugify,
)
from .enhancement import (
    CodeGenerator,
    EnhancementDecision,
    EnhancementGate,
    EnhancementTelemetry,
    GeneratorResponse,
    default_prompt,
    select_body,
    validate_candidate,
)
from .templates import render_literal, render_node_module

__all__ = [
    "AssemblyConfig",
    "EnvVarSpec",
    "GeneratedFile",
    "GeneratedProject",
    "ProjectAssembler",
    "read_runtime_source",
    "slugify",
    "CodeGenerator",
    "EnhancementDecision",
    "EnhancementGate",
    "EnhancementTelemetry",
    "GeneratorResponse",
    "default_prompt",
    "select_body",
    "validate_candidate",
    "render_literal",
    "render_node_module",
]
