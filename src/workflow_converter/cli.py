"""
Workflow Converter CLI - Main entry point.

Provides commands for:
- Validating workflow documents
- Converting workflows into standalone projects
- Listing supported node types
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from workflow_converter import __version__
from workflow_converter.config import get_settings
from workflow_converter.node_registry import get_default_registry
from workflow_converter.observability import setup_logging


def _read_document(path: str) -> bytes:
    return Path(path).read_bytes()


def _echo_issues(title: str, issues) -> None:
    if not issues:
        return
    click.echo(f"\n{title}:")
    for issue in issues:
        click.echo(f"  - {issue}")


@click.group()
@click.version_option(__version__, prog_name="workflow-converter")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-q", "--quiet", is_flag=True, help="Suppress output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool):
    """Workflow Converter - Compile workflow JSON into standalone Python projects."""
    ctx.ensure_object(dict)
    setup_logging()

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif quiet:
        logging.getLogger().setLevel(logging.ERROR)

    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


@cli.command("validate")
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def validate(workflow_file: str, as_json: bool):
    """
    Validate a workflow document.

    Exits with status 1 when the document has errors.

    Examples:

        workflow-converter validate ./workflow.json
    """
    from workflow_converter.pipeline import WorkflowConverter

    result = WorkflowConverter().validate(_read_document(workflow_file))

    if as_json:
        click.echo(
            json.dumps(
                {
                    "is_valid": result.is_valid,
                    "metadata": result.metadata.model_dump() if result.metadata else None,
                    "errors": result.error_messages,
                    "warnings": result.warning_messages,
                },
                indent=2,
            )
        )
    else:
        click.echo(f"Workflow: {workflow_file}")
        click.echo(f"Valid: {'yes' if result.is_valid else 'no'}")
        if result.metadata is not None:
            metadata = result.metadata
            click.echo(f"Nodes: {metadata.node_count} ({metadata.trigger_count} trigger)")
            click.echo(f"Connections: {metadata.connection_count}")
            click.echo(f"Complexity: {metadata.complexity}")
            click.echo(f"Execution order: {' -> '.join(metadata.execution_order)}")
            if metadata.environment_variables:
                click.echo(f"Environment: {', '.join(metadata.environment_variables)}")
        _echo_issues("Errors", result.errors)
        _echo_issues("Warnings", result.warnings)

    if not result.is_valid:
        sys.exit(1)


@cli.command("convert")
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o",
    required=True,
    type=click.Path(file_okay=False),
    help="Directory the generated project is written to",
)
@click.option("--name", "-n", "project_name", help="Project name (defaults to the workflow name)")
@click.option(
    "--enhance/--no-enhance",
    default=None,
    help="Ask the configured model for improved node bodies",
)
@click.option("--force", is_flag=True, help="Overwrite existing files")
@click.pass_context
def convert(
    ctx: click.Context,
    workflow_file: str,
    output: str,
    project_name: Optional[str],
    enhance: Optional[bool],
    force: bool,
):
    """
    Convert a workflow into a standalone Python project.

    The project is written even when some nodes have errors; the command
    then exits with status 1. Fatal errors write nothing.

    Examples:

        workflow-converter convert ./workflow.json -o ./out

        workflow-converter convert ./workflow.json -o ./out --name my-flow --force
    """
    from workflow_converter.pipeline import WorkflowConverter

    settings = get_settings()
    should_enhance = settings.enhancement_enabled if enhance is None else enhance

    generator = None
    if should_enhance:
        from workflow_converter.llm import AnthropicCodeGenerator

        generator = AnthropicCodeGenerator(settings)

    converter = WorkflowConverter(settings=settings, generator=generator)
    result = converter.convert(
        _read_document(workflow_file),
        project_name=project_name,
        enhance=should_enhance,
    )

    if result.project is None:
        click.echo("Conversion failed:", err=True)
        for issue in result.errors:
            click.echo(f"  - {issue}", err=True)
        sys.exit(1)

    output_dir = Path(output)
    try:
        written = result.project.write_to(output_dir, overwrite=force)
    except FileExistsError as e:
        click.echo(f"Error: {e} (use --force to overwrite)", err=True)
        sys.exit(1)

    click.echo(f"Project: {result.project.name}")
    click.echo(f"Output: {output_dir}")
    click.echo(f"Files: {len(written)}")
    if ctx.obj.get("verbose"):
        for path in result.project.paths:
            click.echo(f"  {path}")
    if result.project.dependencies:
        click.echo(f"Dependencies: {', '.join(result.project.dependencies)}")
    if result.project.excluded_dependencies:
        click.echo(f"Excluded: {', '.join(result.project.excluded_dependencies)}")
    if result.enhanced_nodes:
        click.echo(f"Enhanced: {', '.join(result.enhanced_nodes)}")

    _echo_issues("Errors", result.errors)
    _echo_issues("Warnings", result.warnings)

    if not result.success:
        sys.exit(1)


@cli.command("node-types")
@click.option("--json", "as_json", is_flag=True, help="Print the registry as JSON")
def node_types(as_json: bool):
    """List the node types the converter can compile."""
    registry = get_default_registry()
    summaries = registry.summaries()

    if as_json:
        click.echo(json.dumps(summaries, indent=2))
        return

    click.echo(f"Node types ({len(summaries)}):")
    for summary in summaries:
        click.echo(f"  {summary['type']:<36} {summary['display_name']} [{summary['category']}]")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
