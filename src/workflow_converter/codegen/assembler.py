"""
Project Assembler - Emits the standalone project for a resolved workflow.

The output is an in-memory ``GeneratedProject``; writing it to disk is a
separate step (``GeneratedProject.write_to``). Assembly is deterministic:
the same input always yields byte-identical files in the same order.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field, field_validator

from workflow_converter.config import Settings, get_settings
from workflow_converter.mapping.resolver import MappedNode, ResolutionResult
from workflow_converter.observability import get_logger
from workflow_converter.workflow.models import WorkflowDocument
from workflow_converter.workflow.validator import WorkflowMetadata

from .templates import INDENT, render_literal, render_node_module


logger = get_logger(__name__)

BASE_DEPENDENCIES = ["click>=8.1", "python-dotenv>=1.0"]

# Always emitted, in this order; optional modules follow when a node needs them
BASE_RUNTIME_MODULES = ["__init__", "node", "engine", "transforms"]
OPTIONAL_RUNTIME_MODULES = ["http", "sandbox"]

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")

GITIGNORE = """\
__pycache__/
*.py[cod]
.env
.venv/
venv/
build/
dist/
*.egg-info/
"""


def normalize_package_name(name: str) -> str:
    """PEP 503 style normalization: lowercase, runs of -_. become '-'."""
    return re.sub(r"[-_.]+", "-", name.strip()).lower()


def requirement_name(requirement: str) -> str:
    """'requests>=2.31' -> 'requests'."""
    match = _REQUIREMENT_NAME.match(requirement)
    return normalize_package_name(match.group(1) if match else requirement)


def slugify(name: str) -> str:
    """Workflow name -> project/package name."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "workflow"


class AssemblyConfig(BaseModel):
    """Options that shape the generated project."""

    project_name: Optional[str] = Field(None, description="Defaults to the slugified workflow name")
    project_version: str = Field("0.1.0", description="Version written to the manifest")
    python_requires: str = Field(">=3.10", description="requires-python of the manifest")
    dependency_denylist: List[str] = Field(default_factory=list)
    sandbox_timeout_s: int = Field(30, gt=0, description="Code node time limit")
    include_readme: bool = Field(True, description="Emit README.md")

    @field_validator("dependency_denylist")
    @classmethod
    def _normalize(cls, v: List[str]) -> List[str]:
        return [normalize_package_name(name) for name in v if name.strip()]

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides: Any) -> "AssemblyConfig":
        settings = settings or get_settings()
        values: Dict[str, Any] = {
            "python_requires": settings.python_requires,
            "dependency_denylist": list(settings.dependency_denylist),
            "sandbox_timeout_s": settings.sandbox_timeout_s,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass(frozen=True)
class GeneratedFile:
    """One emitted file."""
    path: str
    content: str


@dataclass(frozen=True)
class EnvVarSpec:
    """One environment variable the generated project reads."""
    name: str
    placeholder: str
    description: str = ""


@dataclass
class GeneratedProject:
    """In-memory generated project."""
    name: str
    files: List[GeneratedFile] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    excluded_dependencies: List[str] = field(default_factory=list)
    env_vars: List[EnvVarSpec] = field(default_factory=list)
    documentation: str = ""

    @property
    def paths(self) -> List[str]:
        return [f.path for f in self.files]

    def get(self, path: str) -> Optional[GeneratedFile]:
        for generated in self.files:
            if generated.path == path:
                return generated
        return None

    def content(self, path: str) -> str:
        generated = self.get(path)
        if generated is None:
            raise KeyError(path)
        return generated.content

    def write_to(self, directory: Path, overwrite: bool = False) -> List[Path]:
        """
        Write every file below directory.

        Raises:
            FileExistsError: If a file exists and overwrite is False
        """
        directory = Path(directory)
        written: List[Path] = []
        for generated in self.files:
            target = directory / generated.path
            if target.exists() and not overwrite:
                raise FileExistsError(f"Refusing to overwrite {target}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(generated.content, encoding="utf-8")
            written.append(target)
        return written


def read_runtime_source(module: str) -> str:
    """Source text of a runtime module shipped with this package."""
    package = resources.files("workflow_converter.runtime")
    return package.joinpath(f"{module}.py").read_text(encoding="utf-8")


def _toml_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class ProjectAssembler:
    """
    Build a GeneratedProject from resolved nodes.

    Usage:
        assembler = ProjectAssembler(AssemblyConfig.from_settings())
        project = assembler.assemble(resolution, document, metadata)
    """

    def __init__(self, config: Optional[AssemblyConfig] = None):
        self.config = config or AssemblyConfig.from_settings()

    def render_node_body(self, mapped: MappedNode, config: Optional[AssemblyConfig] = None) -> str:
        """Template module for one node (ignores any enhanced body)."""
        config = config or self.config
        return render_node_module(mapped, {"sandbox_timeout_s": config.sandbox_timeout_s})

    def assemble(
        self,
        resolution: ResolutionResult,
        document: WorkflowDocument,
        metadata: Optional[WorkflowMetadata] = None,
        config: Optional[AssemblyConfig] = None,
    ) -> GeneratedProject:
        """
        Emit the project files.

        Annotation-only nodes are left out entirely. Unsupported nodes are
        emitted as pass-through placeholders.
        """
        config = config or self.config
        name = config.project_name or slugify(document.name)
        emitted = [mapped for mapped in resolution.mapped if not mapped.annotation_only]
        emitted_ids = {mapped.node_id for mapped in emitted}

        dependencies, excluded = self._dependencies(resolution.dependencies, config)
        env_vars = [
            EnvVarSpec(
                name=var,
                placeholder=placeholder,
                description=resolution.env_var_descriptions.get(var, ""),
            )
            for var, placeholder in resolution.env_var_placeholders.items()
        ]
        runtime_modules = self._runtime_modules(emitted)

        files: List[GeneratedFile] = [
            GeneratedFile("pyproject.toml", self._render_manifest(name, document, dependencies, config)),
            GeneratedFile("requirements.txt", "".join(f"{dep}\n" for dep in dependencies)),
        ]
        documentation = self._render_readme(name, document, metadata, emitted, env_vars, resolution)
        if config.include_readme:
            files.append(GeneratedFile("README.md", documentation))
        files.extend(
            [
                GeneratedFile(".env.example", self._render_env_template(document, env_vars)),
                GeneratedFile(".gitignore", GITIGNORE),
                GeneratedFile("main.py", self._render_entry_point(document, emitted, emitted_ids, env_vars)),
            ]
        )
        for module in runtime_modules:
            files.append(GeneratedFile(f"runtime/{module}.py", read_runtime_source(module)))
        files.append(GeneratedFile("nodes/__init__.py", self._render_nodes_package(emitted)))
        for mapped in emitted:
            body = mapped.body or self.render_node_body(mapped, config)
            files.append(GeneratedFile(f"nodes/{mapped.module_name}.py", body))

        logger.info(
            "Assembled project '%s': %d file(s), %d dependencies, %d excluded",
            name,
            len(files),
            len(dependencies),
            len(excluded),
        )
        return GeneratedProject(
            name=name,
            files=files,
            dependencies=dependencies,
            excluded_dependencies=excluded,
            env_vars=env_vars,
            documentation=documentation,
        )

    def _dependencies(self, node_dependencies: Iterable[str], config: AssemblyConfig):
        denied = set(config.dependency_denylist)
        kept: Dict[str, str] = {}
        excluded: List[str] = []
        for requirement in sorted(set(BASE_DEPENDENCIES) | set(node_dependencies), key=str.lower):
            package = requirement_name(requirement)
            if package in denied:
                excluded.append(requirement)
                logger.warning("Dropping denylisted dependency: %s", requirement)
                continue
            kept.setdefault(package, requirement)
        return sorted(kept.values(), key=str.lower), excluded

    @staticmethod
    def _runtime_modules(emitted: List[MappedNode]) -> List[str]:
        needed: Set[str] = set()
        for mapped in emitted:
            if mapped.supported:
                needed.update(mapped.descriptor.runtime_modules)
        return BASE_RUNTIME_MODULES + [m for m in OPTIONAL_RUNTIME_MODULES if m in needed]

    def _render_manifest(
        self,
        name: str,
        document: WorkflowDocument,
        dependencies: List[str],
        config: AssemblyConfig,
    ) -> str:
        deps = "".join(f"    {_toml_string(dep)},\n" for dep in dependencies)
        return (
            "[build-system]\n"
            'requires = ["setuptools>=61.0"]\n'
            'build-backend = "setuptools.build_meta"\n'
            "\n"
            "[project]\n"
            f"name = {_toml_string(name)}\n"
            f"version = {_toml_string(config.project_version)}\n"
            f"description = {_toml_string(f'Standalone runner for the {document.name} workflow')}\n"
            f"requires-python = {_toml_string(config.python_requires)}\n"
            "dependencies = [\n"
            f"{deps}"
            "]\n"
            "\n"
            "[project.scripts]\n"
            f"{_toml_string(name)} = \"main:main\"\n"
            "\n"
            "[tool.setuptools]\n"
            'py-modules = ["main"]\n'
            'packages = ["nodes", "runtime"]\n'
        )

    @staticmethod
    def _render_env_template(document: WorkflowDocument, env_vars: List[EnvVarSpec]) -> str:
        lines = [
            f"# Environment for the '{document.name}' workflow",
            "# Copy to .env and replace the placeholder values.",
            "",
        ]
        for var in env_vars:
            if var.description:
                lines.append(f"# {var.description}")
            lines.append(f"{var.name}={var.placeholder}")
            lines.append("")
        lines.append("# Log level for the runner (optional)")
        lines.append("LOG_LEVEL=INFO")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _render_nodes_package(emitted: List[MappedNode]) -> str:
        lines = ['"""Generated node modules."""', ""]
        for mapped in emitted:
            lines.append(f"from .{mapped.module_name} import {mapped.class_name}")
        lines.append("")
        names = "".join(f"{INDENT}{mapped.class_name!r},\n" for mapped in emitted)
        lines.append("__all__ = [\n" + names + "]" if emitted else "__all__ = []")
        return "\n".join(lines) + "\n"

    def _render_entry_point(
        self,
        document: WorkflowDocument,
        emitted: List[MappedNode],
        emitted_ids: Set[str],
        env_vars: List[EnvVarSpec],
    ) -> str:
        connections = {
            source_id: {
                slot: [target for target in targets if target["node"] in emitted_ids]
                for slot, targets in slots.items()
            }
            for source_id, slots in document.to_connection_map().items()
            if source_id in emitted_ids
        }
        imports = "".join(
            f"from nodes.{mapped.module_name} import {mapped.class_name}\n" for mapped in emitted
        )
        instances = "".join(
            f"{INDENT * 2}{mapped.node_id!r}: {mapped.class_name}(),\n" for mapped in emitted
        )
        required = render_literal([var.name for var in env_vars], depth=0)
        return ENTRY_POINT_TEMPLATE.format(
            workflow_name=document.name,
            doc_name=" ".join(document.name.replace("\\", "/").replace("\"", "'").split()),
            imports=imports,
            required=required,
            connections=render_literal(connections, depth=0),
            instances=instances,
        )

    @staticmethod
    def _render_readme(
        name: str,
        document: WorkflowDocument,
        metadata: Optional[WorkflowMetadata],
        emitted: List[MappedNode],
        env_vars: List[EnvVarSpec],
        resolution: ResolutionResult,
    ) -> str:
        lines = [
            f"# {document.name}",
            "",
            f"Standalone Python runner generated from the `{document.name}` workflow.",
            "",
            "## Running",
            "",
            "```bash",
            "pip install -e .",
            "cp .env.example .env  # then fill in real values",
            f"{name} --show-outputs",
            "```",
            "",
            "Pass a trigger payload with `--input payload.json`.",
            "",
            "## Nodes",
            "",
            "| Id | Name | Type | Module |",
            "| --- | --- | --- | --- |",
        ]
        for mapped in emitted:
            lines.append(
                f"| {mapped.node_id} | {mapped.spec.name} | `{mapped.spec.type}` "
                f"| `nodes/{mapped.module_name}.py` |"
            )
        if metadata is not None:
            lines.extend(["", f"Execution order: {', '.join(metadata.execution_order)}"])

        lines.extend(["", "## Environment", ""])
        if env_vars:
            for var in env_vars:
                suffix = f": {var.description}" if var.description else ""
                lines.append(f"- `{var.name}`{suffix}")
        else:
            lines.append("No environment variables are required.")

        if resolution.unsupported_types:
            lines.extend(
                [
                    "",
                    "## Unsupported nodes",
                    "",
                    "These node types have no implementation and pass their input through:",
                    "",
                ]
            )
            lines.extend(f"- `{node_type}`" for node_type in resolution.unsupported_types)
        return "\n".join(lines) + "\n"


ENTRY_POINT_TEMPLATE = '''"""Runner for the {doc_name} workflow."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import click
from dotenv import load_dotenv

from runtime.engine import ExecutionEngine, RunResult
{imports}
WORKFLOW_NAME = {workflow_name!r}

REQUIRED_ENV_VARS = {required}

CONNECTIONS = {connections}

logger = logging.getLogger("workflow")


def build_nodes() -> Dict[str, Any]:
    """Node instances keyed by id, in declaration order."""
    return {{
{instances}    }}


def missing_env_vars() -> List[str]:
    return [name for name in REQUIRED_ENV_VARS if not os.environ.get(name)]


def run(trigger_data: Optional[Dict[str, Any]] = None) -> RunResult:
    """Execute the workflow once and return the run summary."""
    engine = ExecutionEngine(build_nodes(), CONNECTIONS)
    return engine.run(trigger_data)


@click.command()
@click.option("--input", "input_file", type=click.Path(exists=True, dir_okay=False), help="JSON file with the trigger payload")
@click.option("--env-file", default=".env", show_default=True, help="Environment file to load")
@click.option("--log-level", default="INFO", envvar="LOG_LEVEL", show_default=True)
@click.option("--show-outputs", is_flag=True, help="Include node outputs in the summary")
def main(input_file: Optional[str], env_file: str, log_level: str, show_outputs: bool) -> None:
    """Run the {doc_name} workflow."""
    load_dotenv(env_file)
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    missing = missing_env_vars()
    if missing:
        logger.error("Missing required environment variables: %s", ", ".join(missing))
        sys.exit(2)

    trigger_data = None
    if input_file:
        with open(input_file, encoding="utf-8") as handle:
            trigger_data = json.load(handle)

    result = run(trigger_data)
    click.echo(json.dumps(result.to_dict(include_outputs=show_outputs), indent=2, default=str))
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
'''


__all__ = [
    "AssemblyConfig",
    "EnvVarSpec",
    "GeneratedFile",
    "GeneratedProject",
    "ProjectAssembler",
    "normalize_package_name",
    "read_runtime_source",
    "requirement_name",
    "slugify",
]
