"""
Node Resolver - Maps workflow nodes onto registered node types.

For every node: look up its descriptor, fill parameter defaults, translate
expressions and coerce values to their declared types. Problems stay on
the node (``MappedNode.validation``) so one bad node never stops the
batch.

Precedence: an explicit parameter value always wins over the schema
default. When the explicit value cannot be coerced to the declared type,
the node gets an error and keeps the raw value; the default is not
substituted.
"""

from __future__ import annotations

import copy
import json
import keyword
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from workflow_converter.config import get_settings
from workflow_converter.errors import Issue, IssueKind
from workflow_converter.expressions import CodeExpression, ExpressionTranslator
from workflow_converter.node_registry import (
    NodeTypeDescriptor,
    NodeTypeRegistry,
    ParameterSchema,
    ParameterType,
    ResolvedNodeType,
    UnsupportedNodeType,
    get_default_registry,
)
from workflow_converter.observability import get_logger, with_conversion_context
from workflow_converter.runtime.node import credential_env_name
from workflow_converter.workflow.models import WorkflowNode


logger = get_logger(__name__)

_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INTEGER = re.compile(r"^[+-]?\d+$")


@dataclass
class NodeValidation:
    """Per-node validation outcome."""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class MappedNode:
    """
    A workflow node resolved against the registry.

    ``body`` holds an accepted enhanced module body; None means the
    assembler renders the template.
    """
    spec: WorkflowNode
    descriptor: ResolvedNodeType
    parameters: Dict[str, Any]
    validation: NodeValidation
    class_name: str
    module_name: str
    env_vars: List[str] = field(default_factory=list)
    node_refs: List[str] = field(default_factory=list)
    credential_kinds: List[str] = field(default_factory=list)
    body: Optional[str] = None

    @property
    def node_id(self) -> str:
        return self.spec.id

    @property
    def supported(self) -> bool:
        return isinstance(self.descriptor, NodeTypeDescriptor)

    @property
    def annotation_only(self) -> bool:
        return self.supported and self.descriptor.annotation_only


@dataclass
class ResolutionResult:
    """Output of NodeResolver.resolve."""
    mapped: List[MappedNode] = field(default_factory=list)
    unsupported_types: List[str] = field(default_factory=list)
    dependencies: Set[str] = field(default_factory=set)
    env_var_placeholders: Dict[str, str] = field(default_factory=dict)
    env_var_descriptions: Dict[str, str] = field(default_factory=dict)
    errors: List[Issue] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)

    def get(self, node_id: str) -> Optional[MappedNode]:
        for mapped in self.mapped:
            if mapped.node_id == node_id:
                return mapped
        return None


def env_placeholder(name: str) -> str:
    return f"your_{name.lower()}_here"


def _to_snake_case(name: str) -> str:
    """Convert CamelCase to snake_case."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def class_name_for(node_name: str) -> str:
    """'Fetch users (v2)' -> 'FetchUsersV2Node'."""
    words = re.findall(r"[A-Za-z0-9]+", node_name)
    base = "".join(word[:1].upper() + word[1:] for word in words) or "Workflow"
    if base[0].isdigit():
        base = "N" + base
    return base if base.endswith("Node") else base + "Node"


def module_name_for(class_name: str) -> str:
    """'FetchUsersNode' -> 'fetch_users'."""
    stem = class_name[:-4] if class_name.endswith("Node") and len(class_name) > 4 else class_name
    name = re.sub(r"_+", "_", _to_snake_case(stem)).strip("_") or "node"
    if keyword.iskeyword(name) or name in ("main", "runtime", "nodes"):
        name += "_node"
    return name


def _describe_consumers(names: List[str]) -> str:
    return ", ".join(names)


class NodeResolver:
    """
    Resolve workflow nodes into MappedNodes.

    Usage:
        resolver = NodeResolver()
        result = resolver.resolve(document.nodes)
        for mapped in result.mapped:
            print(mapped.node_id, mapped.validation.valid)
    """

    def __init__(
        self,
        registry: Optional[NodeTypeRegistry] = None,
        translator: Optional[ExpressionTranslator] = None,
        max_type_version: Optional[int] = None,
    ):
        self.registry = registry or get_default_registry()
        self.translator = translator or ExpressionTranslator()
        if max_type_version is None:
            max_type_version = get_settings().max_type_version
        self.max_type_version = max_type_version

    def resolve(self, nodes: Iterable[WorkflowNode]) -> ResolutionResult:
        """Resolve every node; never raises for node-level problems."""
        result = ResolutionResult()
        used_modules: Set[str] = set()
        env_consumers: Dict[str, List[str]] = {}
        credential_consumers: Dict[str, List[str]] = {}

        for node in nodes:
            mapped = self.resolve_node(node, used_modules)
            result.mapped.append(mapped)

            if not mapped.supported:
                if node.type not in result.unsupported_types:
                    result.unsupported_types.append(node.type)
            elif not mapped.annotation_only:
                result.dependencies.update(mapped.descriptor.dependencies)

            for name in mapped.env_vars:
                env_consumers.setdefault(name, []).append(node.name)
            for kind in mapped.credential_kinds:
                credential_consumers.setdefault(kind, []).append(node.name)

            for message in mapped.validation.errors:
                result.errors.append(
                    Issue(message=f"Node '{node.id}': {message}", kind=IssueKind.NODE, node_id=node.id)
                )
            for message in mapped.validation.warnings:
                result.warnings.append(
                    Issue(message=f"Node '{node.id}': {message}", kind=IssueKind.WARNING, node_id=node.id)
                )

        for name, consumers in env_consumers.items():
            result.env_var_placeholders[name] = env_placeholder(name)
            result.env_var_descriptions[name] = f"Referenced by: {_describe_consumers(consumers)}"
        for kind, consumers in credential_consumers.items():
            name = credential_env_name(kind)
            if name in result.env_var_placeholders:
                continue
            result.env_var_placeholders[name] = env_placeholder(name)
            result.env_var_descriptions[name] = (
                f"JSON-encoded '{kind}' credential used by: {_describe_consumers(consumers)}"
            )

        logger.info(
            "Resolved %d node(s): %d error(s), %d unsupported type(s)",
            len(result.mapped),
            len(result.errors),
            len(result.unsupported_types),
        )
        return result

    def resolve_node(self, node: WorkflowNode, used_modules: Optional[Set[str]] = None) -> MappedNode:
        """Resolve one node."""
        used_modules = used_modules if used_modules is not None else set()
        class_name, module_name = self._unique_names(node.name, used_modules)
        validation = NodeValidation()

        if node.type_version > self.max_type_version:
            validation.errors.append(
                f"typeVersion {node.type_version} exceeds supported maximum {self.max_type_version}"
            )

        descriptor = self.registry.lookup(node.type)
        if isinstance(descriptor, UnsupportedNodeType):
            validation.errors.append(descriptor.reason)
            logger.warning(
                descriptor.reason,
                extra=with_conversion_context(node_id=node.id, node_type=node.type),
            )
            return MappedNode(
                spec=node,
                descriptor=descriptor,
                parameters=copy.deepcopy(node.parameters),
                validation=validation,
                class_name=class_name,
                module_name=module_name,
            )

        parameters, env_vars, node_refs = self.transform_parameters(node, descriptor, validation)

        if descriptor.dynamic_code:
            self._check_code(parameters, validation)

        credential_kinds = list(node.credentials)
        for kind in credential_kinds:
            if descriptor.credential_kinds and kind not in descriptor.credential_kinds:
                validation.warnings.append(f"Credential kind '{kind}' is not used by {node.type}")

        if node.disabled:
            validation.warnings.append("Node is disabled and will pass its input through")

        return MappedNode(
            spec=node,
            descriptor=descriptor,
            parameters=parameters,
            validation=validation,
            class_name=class_name,
            module_name=module_name,
            env_vars=[] if descriptor.annotation_only else env_vars,
            node_refs=node_refs,
            credential_kinds=[] if descriptor.annotation_only else credential_kinds,
        )

    def transform_parameters(
        self,
        node: WorkflowNode,
        descriptor: NodeTypeDescriptor,
        validation: NodeValidation,
    ) -> Tuple[Dict[str, Any], List[str], List[str]]:
        """
        Apply defaults, translation and coercion to a node's parameters.

        Returns:
            (parameters, env_vars, node_refs). Schema parameters come first
            in schema order; unknown parameters follow unchanged.
        """
        raw = node.parameters
        parameters: Dict[str, Any] = {}
        env_vars: List[str] = []
        node_refs: List[str] = []

        for schema in descriptor.parameters:
            if schema.name in raw:
                value = raw[schema.name]
            elif schema.has_default:
                value = copy.deepcopy(schema.default)
            else:
                if schema.required:
                    validation.errors.append(f"Missing required parameter '{schema.name}'")
                continue

            if not schema.translate:
                parameters[schema.name] = self.coerce(schema, value, validation)
                continue

            translated = self.translator.translate(value, origin_node=node.id)
            for name in translated.env_vars:
                if name not in env_vars:
                    env_vars.append(name)
            for ref in translated.node_refs:
                if ref not in node_refs:
                    node_refs.append(ref)
            for opaque in translated.opaque:
                validation.warnings.append(
                    f"Expression {opaque} in '{schema.name}' is not supported and is kept as text"
                )

            parameters[schema.name] = self.coerce(schema, translated.value, validation)

        for name, value in raw.items():
            if descriptor.get_parameter(name) is None:
                parameters[name] = copy.deepcopy(value)

        return parameters, env_vars, node_refs

    def coerce(self, schema: ParameterSchema, value: Any, validation: NodeValidation) -> Any:
        """
        Coerce value to the schema type.

        Translated expressions are left alone. Failures are recorded on
        validation and the raw value is returned.
        """
        if isinstance(value, CodeExpression) or value is None:
            return value

        name = schema.name
        coerced = value

        if schema.type == ParameterType.NUMBER:
            if isinstance(value, bool):
                validation.errors.append(f"Parameter '{name}' must be a number, got boolean")
                return value
            if isinstance(value, (int, float)):
                coerced = value
            elif isinstance(value, str) and _NUMBER.match(value.strip()):
                text = value.strip()
                coerced = int(text) if _INTEGER.match(text) else float(text)
            else:
                validation.errors.append(f"Parameter '{name}' must be a number, got {value!r}")
                return value

        elif schema.type == ParameterType.BOOLEAN:
            if isinstance(value, bool):
                coerced = value
            elif isinstance(value, str) and value.strip().lower() in ("true", "false"):
                coerced = value.strip().lower() == "true"
            else:
                validation.errors.append(f"Parameter '{name}' must be a boolean, got {value!r}")
                return value

        elif schema.type == ParameterType.ARRAY:
            if not isinstance(value, list):
                validation.errors.append(f"Parameter '{name}' must be an array")
                return value

        elif schema.type == ParameterType.OBJECT:
            if isinstance(value, str):
                try:
                    parsed = json.loads(value)
                except json.JSONDecodeError:
                    validation.warnings.append(
                        f"Parameter '{name}' is not valid JSON; keeping it as a string"
                    )
                    return value
                if not isinstance(parsed, (dict, list)):
                    validation.warnings.append(
                        f"Parameter '{name}' does not hold a JSON object; keeping it as a string"
                    )
                    return value
                coerced = parsed
            elif not isinstance(value, (dict, list)):
                validation.errors.append(f"Parameter '{name}' must be an object")
                return value

        elif schema.type == ParameterType.STRING:
            if not isinstance(value, str):
                validation.errors.append(f"Parameter '{name}' must be a string, got {value!r}")
                return value

        if isinstance(coerced, str) and schema.choices and all(
            isinstance(c, str) and c.isupper() for c in schema.choices
        ):
            coerced = coerced.upper()

        if not _contains_code(coerced):
            problem = schema.check_raw(coerced)
            if problem:
                validation.errors.append(problem)
                return value
        return coerced

    @staticmethod
    def _check_code(parameters: Dict[str, Any], validation: NodeValidation) -> None:
        code = parameters.get("pythonCode")
        if isinstance(code, str) and code.strip():
            return
        if parameters.get("jsCode") or parameters.get("language") == "javaScript":
            validation.errors.append(
                "JavaScript code cannot run in the generated Python runtime; provide 'pythonCode'"
            )
        else:
            validation.errors.append("Missing required parameter 'pythonCode'")

    @staticmethod
    def _unique_names(node_name: str, used_modules: Set[str]) -> Tuple[str, str]:
        class_name = class_name_for(node_name)
        module_name = module_name_for(class_name)
        if module_name not in used_modules:
            used_modules.add(module_name)
            return class_name, module_name
        suffix = 2
        while f"{module_name}_{suffix}" in used_modules:
            suffix += 1
        used_modules.add(f"{module_name}_{suffix}")
        return f"{class_name}{suffix}", f"{module_name}_{suffix}"


def _contains_code(value: Any) -> bool:
    if isinstance(value, CodeExpression):
        return True
    if isinstance(value, dict):
        return any(_contains_code(v) for v in value.values())
    if isinstance(value, list):
        return any(_contains_code(v) for v in value)
    return False


__all__ = [
    "NodeResolver",
    "MappedNode",
    "NodeValidation",
    "ResolutionResult",
    "class_name_for",
    "module_name_for",
    "env_placeholder",
]
