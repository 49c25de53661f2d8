"""
Node module templates.

Each supported template kind renders a complete Python module holding one
``BaseNode`` subclass. Parameter values are rendered as Python literals;
translated expressions are rendered as code inside ``parameters()`` so
they are evaluated per item at run time.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, List

from workflow_converter.expressions import CodeExpression
from workflow_converter.mapping.resolver import MappedNode
from workflow_converter.node_registry import TemplateKind


INDENT = "    "

MODULE_HEADER = '''"""{title}"""

from __future__ import annotations

import logging
from typing import Any, Dict

from runtime.node import BaseNode, BranchOutput, credential, env, resolve_path, to_text
{imports}
logger = logging.getLogger(__name__)
{constants}

class {class_name}(BaseNode):
    """{summary}"""

    node_id = {node_id!r}
    node_name = {node_name!r}
    node_type = {node_type!r}
    disabled = {disabled!r}

    def parameters(self, item: Any, context: Any) -> Dict[str, Any]:
        return {parameters}

    def execute(self, input_data: Any, context: Any) -> Any:
{body}

__all__ = [{class_name!r}]
'''


def render_literal(value: Any, depth: int = 2) -> str:
    """
    Render a parameter value as Python source.

    Dicts and lists are laid out one entry per line, indented for a body
    nested ``depth`` levels deep.
    """
    if isinstance(value, CodeExpression):
        return value.code
    if isinstance(value, float):
        if math.isnan(value):
            return "float('nan')"
        if math.isinf(value):
            return "float('inf')" if value > 0 else "float('-inf')"
        return repr(value)
    if value is None or isinstance(value, (bool, int, str)):
        return repr(value)

    inner = INDENT * (depth + 1)
    closing = INDENT * depth
    if isinstance(value, dict):
        if not value:
            return "{}"
        entries = [f"{inner}{str(key)!r}: {render_literal(item, depth + 1)}," for key, item in value.items()]
        return "{\n" + "\n".join(entries) + "\n" + closing + "}"
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        entries = [f"{inner}{render_literal(item, depth + 1)}," for item in value]
        return "[\n" + "\n".join(entries) + "\n" + closing + "]"
    return repr(str(value))


def render_source_lines(source: Any) -> str:
    """Render user source code as a joined list of line literals."""
    if not isinstance(source, str) or not source.strip():
        return "None"
    lines = source.splitlines()
    entries = "\n".join(f"{INDENT}{line!r}," for line in lines)
    return '"\\n".join([\n' + entries + "\n])"


def _docstring_text(text: str) -> str:
    return " ".join(text.replace("\\", "/").replace('"', "'").split())


def _body(lines: List[str]) -> str:
    return "\n".join(f"{INDENT * 2}{line}" if line else "" for line in lines) + "\n"


def _trigger(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "body": [
            "payload = dict(context.trigger_data)",
            "payload.setdefault('trigger', self.node_name)",
            "logger.info('Trigger %s fired', self.node_name)",
            "return payload",
        ],
    }


def _http_request(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "imports": ["from runtime.http import send_request"],
        "constants": [f"CREDENTIAL_KINDS = {mapped.credential_kinds!r}"],
        "body": [
            "params = self.parameters(input_data, context)",
            "return send_request(params, credential_kinds=CREDENTIAL_KINDS)",
        ],
    }


def _set(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "imports": ["from runtime.transforms import apply_assignments"],
        "body": [
            "params = self.parameters(input_data, context)",
            "options = params.get('options') or {}",
            "return apply_assignments(",
            "    input_data,",
            "    params.get('operations') or [],",
            "    dot_notation=options.get('dotNotation', True),",
            "    keep_only_set=options.get('keepOnlySet', False),",
            ")",
        ],
    }


def _code(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    mode = mapped.parameters.get("mode", "runOnceForAllItems")
    return {
        "imports": ["from runtime.sandbox import run_restricted"],
        "constants": [
            f"SOURCE = {render_source_lines(mapped.parameters.get('pythonCode'))}",
            f"MODE = {mode!r}",
            f"TIMEOUT_S = {int(options['sandbox_timeout_s'])}",
        ],
        "body": [
            "if SOURCE is None:",
            "    raise RuntimeError('Code node has no Python code to run')",
            "if MODE == 'runOnceForEachItem' and isinstance(input_data, list):",
            "    return [run_restricted(SOURCE, entry, TIMEOUT_S) for entry in input_data]",
            "return run_restricted(SOURCE, input_data, TIMEOUT_S)",
        ],
    }


def _if(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "imports": ["from runtime.transforms import evaluate_conditions"],
        "body": [
            "params = self.parameters(input_data, context)",
            "matched = evaluate_conditions(",
            "    params.get('conditions') or [],",
            "    params.get('combineOperation', 'all'),",
            ")",
            "return BranchOutput({0: input_data} if matched else {1: input_data})",
        ],
    }


def _merge(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "imports": ["from runtime.transforms import merge_inputs"],
        "body": [
            "params = self.parameters(input_data, context)",
            "return merge_inputs(input_data, params.get('mode', 'append'))",
        ],
    }


def _wait(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "imports": ["import time"],
        "constants": ["UNIT_SECONDS = {'seconds': 1, 'minutes': 60, 'hours': 3600}"],
        "body": [
            "params = self.parameters(input_data, context)",
            "seconds = float(params.get('amount', 1)) * UNIT_SECONDS[params.get('unit', 'seconds')]",
            "logger.info('Waiting %.1fs', seconds)",
            "time.sleep(seconds)",
            "return input_data",
        ],
    }


def _no_op(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    return {"body": ["return input_data"]}


TEMPLATES: Dict[TemplateKind, Callable[[MappedNode, Dict[str, Any]], Dict[str, Any]]] = {
    TemplateKind.TRIGGER: _trigger,
    TemplateKind.HTTP_REQUEST: _http_request,
    TemplateKind.SET: _set,
    TemplateKind.CODE: _code,
    TemplateKind.IF: _if,
    TemplateKind.MERGE: _merge,
    TemplateKind.WAIT: _wait,
    TemplateKind.NO_OP: _no_op,
}


def _placeholder(mapped: MappedNode, options: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "body": [
            "logger.warning(",
            "    'Node %s (%s) is not supported; passing input through',",
            "    self.node_name,",
            "    self.node_type,",
            ")",
            "return input_data",
        ],
    }


def render_node_module(mapped: MappedNode, options: Dict[str, Any]) -> str:
    """
    Render the template module for a mapped node.

    Args:
        mapped: Resolved node
        options: Rendering options; ``sandbox_timeout_s`` is required for
            code nodes

    Returns:
        Module source text
    """
    spec = mapped.spec
    if mapped.supported:
        descriptor = mapped.descriptor
        parts = TEMPLATES[descriptor.template](mapped, options)
        summary = f"{descriptor.display_name}: {descriptor.description}"
    else:
        parts = _placeholder(mapped, options)
        summary = f"Placeholder for unsupported node type {spec.type}"

    imports = "".join(f"{line}\n" for line in parts.get("imports", []))
    constants = "".join(f"\n{line}\n" for line in parts.get("constants", []))

    return MODULE_HEADER.format(
        title=_docstring_text(f"{spec.name}: {spec.type} (typeVersion {spec.type_version})."),
        imports=imports,
        constants=constants,
        class_name=mapped.class_name,
        summary=_docstring_text(summary),
        node_id=spec.id,
        node_name=spec.name,
        node_type=spec.type,
        disabled=bool(spec.disabled),
        parameters=render_literal(mapped.parameters),
        body=_body(parts["body"]),
    )


__all__ = [
    "render_literal",
    "render_source_lines",
    "render_node_module",
    "TEMPLATES",
]
