"""
Graph Validator - Parses and validates raw workflow documents.

Turns JSON text into a WorkflowDocument plus metadata, collecting every
error and warning instead of stopping at the first one. Document and
structural errors are fatal (no document is returned); node errors are
attached to the node id and leave the document usable.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from workflow_converter.config import get_settings
from workflow_converter.errors import Issue, IssueKind
from workflow_converter.expressions import find_env_references
from workflow_converter.node_registry import (
    NodeTypeRegistry,
    UnsupportedNodeType,
    get_default_registry,
)
from workflow_converter.observability import get_logger

from .graph import WorkflowGraph
from .models import WorkflowDocument


logger = get_logger(__name__)

DEFAULT_WORKFLOW_NAME = "Unnamed Workflow"

# Trigger types recognized even without a registered descriptor
KNOWN_TRIGGER_TYPES = {
    "n8n-nodes-base.webhook",
    "n8n-nodes-base.cron",
    "n8n-nodes-base.manualTrigger",
    "n8n-nodes-base.emailTrigger",
    "n8n-nodes-base.fileTrigger",
    "n8n-nodes-base.scheduleTrigger",
}

REQUIRED_NODE_FIELDS = ("id", "name", "type", "typeVersion")


class WorkflowMetadata(BaseModel):
    """Summary facts about a validated workflow."""

    node_count: int = 0
    trigger_count: int = 0
    action_count: int = 0
    connection_count: int = 0
    node_types: List[str] = Field(default_factory=list)
    credential_types: List[str] = Field(default_factory=list)
    requires_credentials: bool = False
    environment_variables: List[str] = Field(default_factory=list)
    complexity: int = 0
    execution_order: List[str] = Field(default_factory=list)


class ParseResult(BaseModel):
    """Outcome of GraphValidator.parse."""

    is_valid: bool = False
    document: Optional[WorkflowDocument] = None
    metadata: Optional[WorkflowMetadata] = None
    errors: List[Issue] = Field(default_factory=list)
    warnings: List[Issue] = Field(default_factory=list)

    @property
    def fatal_errors(self) -> List[Issue]:
        return [issue for issue in self.errors if issue.kind.is_fatal]

    @property
    def is_fatal(self) -> bool:
        return bool(self.fatal_errors)

    @property
    def error_messages(self) -> List[str]:
        return [issue.message for issue in self.errors]

    @property
    def warning_messages(self) -> List[str]:
        return [issue.message for issue in self.warnings]

    def errors_for(self, node_id: str) -> List[Issue]:
        return [issue for issue in self.errors if issue.node_id == node_id]


def is_trigger_type(node_type: str, registry: NodeTypeRegistry) -> bool:
    """True if node_type starts a run."""
    resolved = registry.lookup(node_type)
    if isinstance(resolved, UnsupportedNodeType):
        return node_type in KNOWN_TRIGGER_TYPES or node_type.endswith("Trigger")
    return resolved.is_trigger


class _Collector:
    """Accumulates issues for one parse call."""

    def __init__(self) -> None:
        self.errors: List[Issue] = []
        self.warnings: List[Issue] = []

    def error(self, message: str, kind: IssueKind, node_id: Optional[str] = None) -> None:
        self.errors.append(Issue(message=message, kind=kind, node_id=node_id))

    def warn(self, message: str, node_id: Optional[str] = None) -> None:
        self.warnings.append(Issue(message=message, kind=IssueKind.WARNING, node_id=node_id))

    @property
    def has_fatal(self) -> bool:
        return any(issue.kind.is_fatal for issue in self.errors)


class GraphValidator:
    """
    Validate workflow documents and compute their metadata.

    Usage:
        result = GraphValidator().parse(text)
        if result.is_valid:
            print(result.metadata.execution_order)
    """

    def __init__(
        self,
        registry: Optional[NodeTypeRegistry] = None,
        max_type_version: Optional[int] = None,
    ):
        self.registry = registry or get_default_registry()
        if max_type_version is None:
            max_type_version = get_settings().max_type_version
        self.max_type_version = max_type_version

    def parse(self, text: Union[str, bytes]) -> ParseResult:
        """
        Parse and validate a workflow document.

        Never raises for bad input; problems are reported on the result.
        """
        collector = _Collector()

        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as e:
                collector.error(f"Workflow document is not valid UTF-8: {e}", IssueKind.DOCUMENT)
                return self._finish(collector)

        if not text or not text.strip():
            collector.error("Workflow document is empty", IssueKind.DOCUMENT)
            return self._finish(collector)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            collector.error(f"Invalid JSON: {e}", IssueKind.DOCUMENT)
            return self._finish(collector)

        return self.parse_data(data, _collector=collector)

    def parse_data(self, data: Any, _collector: Optional[_Collector] = None) -> ParseResult:
        """Validate an already-decoded workflow document."""
        collector = _collector or _Collector()

        if not isinstance(data, dict):
            collector.error("Workflow document must be a JSON object", IssueKind.DOCUMENT)
            return self._finish(collector)

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            collector.warn(f"Missing or invalid workflow name; using '{DEFAULT_WORKFLOW_NAME}'")
            name = DEFAULT_WORKFLOW_NAME

        raw_nodes = data.get("nodes")
        raw_connections = data.get("connections")

        if raw_nodes is None:
            collector.error("Missing required property: nodes", IssueKind.DOCUMENT)
        elif not isinstance(raw_nodes, list):
            collector.error("Property 'nodes' must be an array", IssueKind.DOCUMENT)
        elif not raw_nodes:
            collector.error("Workflow must contain at least one node", IssueKind.DOCUMENT)

        if raw_connections is None:
            collector.error("Missing required property: connections", IssueKind.DOCUMENT)
        elif not isinstance(raw_connections, dict):
            collector.error("Property 'connections' must be an object", IssueKind.DOCUMENT)

        if collector.has_fatal:
            return self._finish(collector)

        nodes = self._validate_nodes(raw_nodes, collector)
        if collector.has_fatal:
            return self._finish(collector)

        connections = self._normalize_connections(raw_connections, nodes, collector)
        if collector.has_fatal:
            return self._finish(collector)

        try:
            document = WorkflowDocument.model_validate(
                {
                    "id": None if data.get("id") is None else str(data["id"]),
                    "name": name,
                    "active": bool(data.get("active", False)),
                    "nodes": nodes,
                    "connections": connections,
                    "settings": data.get("settings") if isinstance(data.get("settings"), dict) else {},
                    "tags": data.get("tags") if isinstance(data.get("tags"), list) else [],
                }
            )
        except ValidationError as e:
            collector.error(f"Invalid workflow document: {e}", IssueKind.DOCUMENT)
            return self._finish(collector)

        graph = WorkflowGraph.from_document(document)
        cycle = graph.find_cycle()
        if cycle:
            collector.error(
                "Circular dependency detected in workflow connections: " + " -> ".join(cycle),
                IssueKind.STRUCTURAL,
            )

        metadata = self.compute_metadata(document, graph)
        if metadata.trigger_count == 0:
            collector.warn("Workflow has no trigger node")

        return self._finish(collector, document=document, metadata=metadata)

    def _validate_nodes(self, raw_nodes: List[Any], collector: _Collector) -> List[Dict[str, Any]]:
        """Check each node; returns the usable node dicts."""
        nodes: List[Dict[str, Any]] = []
        seen_ids: set = set()

        for index, raw in enumerate(raw_nodes):
            if not isinstance(raw, dict):
                collector.error(f"Node at index {index} must be an object", IssueKind.DOCUMENT)
                continue

            node_id = raw.get("id")
            if not isinstance(node_id, str) or not node_id:
                collector.error(
                    f"Node at index {index} missing required property: id",
                    IssueKind.DOCUMENT,
                )
                continue

            missing = [f for f in REQUIRED_NODE_FIELDS[1:] if raw.get(f) in (None, "")]
            for field_name in missing:
                collector.error(
                    f"Node '{node_id}' missing required property: {field_name}",
                    IssueKind.DOCUMENT,
                    node_id,
                )
            if missing:
                continue

            if node_id in seen_ids:
                collector.error(f"Duplicate node ID: {node_id}", IssueKind.DOCUMENT, node_id)
                continue
            seen_ids.add(node_id)

            if not isinstance(raw["name"], str) or not isinstance(raw["type"], str):
                collector.error(
                    f"Node '{node_id}' name and type must be strings",
                    IssueKind.DOCUMENT,
                    node_id,
                )
                continue

            version = raw["typeVersion"]
            if isinstance(version, bool) or not isinstance(version, (int, float)):
                collector.error(
                    f"Node '{node_id}' typeVersion must be a number",
                    IssueKind.DOCUMENT,
                    node_id,
                )
                continue

            bad_fields = [
                f for f in ("parameters", "credentials")
                if raw.get(f) is not None and not isinstance(raw.get(f), dict)
            ]
            for field_name in bad_fields:
                collector.error(
                    f"Node '{node_id}' {field_name} must be an object",
                    IssueKind.DOCUMENT,
                    node_id,
                )
            if bad_fields:
                continue

            self._check_node(raw, collector)
            nodes.append(raw)

        return nodes

    def _check_node(self, raw: Dict[str, Any], collector: _Collector) -> None:
        """Non-fatal checks: version ceiling and parameter schema."""
        node_id = raw["id"]
        node_type = raw["type"]

        if raw["typeVersion"] > self.max_type_version:
            collector.error(
                f"Node '{node_id}': typeVersion {raw['typeVersion']} exceeds "
                f"supported maximum {self.max_type_version}",
                IssueKind.NODE,
                node_id,
            )

        if raw.get("disabled"):
            collector.warn(f"Node '{node_id}': disabled, input passes through", node_id)

        resolved = self.registry.lookup(node_type)
        if isinstance(resolved, UnsupportedNodeType):
            collector.warn(f"No parameter schema available for node type: {node_type}", node_id)
            return

        for problem in resolved.check_parameters(raw.get("parameters") or {}):
            collector.error(f"Node '{node_id}': {problem}", IssueKind.NODE, node_id)

    def _normalize_connections(
        self,
        raw_connections: Dict[str, Any],
        nodes: List[Dict[str, Any]],
        collector: _Collector,
    ) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
        """
        Rewrite the raw map to {source_id: {slot: [target]}} with node ids.

        Endpoints may name a node by id or by its unique name. Slots may hold
        n8n branch lists ([[target, ...], ...]) or a flat list of targets.
        """
        ids = {node["id"] for node in nodes}
        names: Dict[str, List[str]] = {}
        for node in nodes:
            names.setdefault(node["name"], []).append(node["id"])

        def resolve(ref: Any) -> Optional[str]:
            if not isinstance(ref, str):
                return None
            if ref in ids:
                return ref
            matches = names.get(ref, [])
            return matches[0] if len(matches) == 1 else None

        normalized: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}

        for source_ref, slots in raw_connections.items():
            source_id = resolve(source_ref)
            if source_id is None:
                collector.error(
                    f"Invalid connection reference: node '{source_ref}' does not exist",
                    IssueKind.DOCUMENT,
                )
                continue
            if not isinstance(slots, dict):
                collector.error(
                    f"Connections of node '{source_ref}' must be an object",
                    IssueKind.DOCUMENT,
                    source_id,
                )
                continue

            for slot, branches in slots.items():
                targets = normalized.setdefault(source_id, {}).setdefault(slot, [])
                for output_index, raw_target in self._iter_slot(branches, source_ref, collector):
                    if not isinstance(raw_target, dict):
                        collector.error(
                            f"Connection from '{source_ref}' must be an object with a 'node' field",
                            IssueKind.DOCUMENT,
                            source_id,
                        )
                        continue
                    target_ref = raw_target.get("node")
                    target_id = resolve(target_ref)
                    if target_id is None:
                        collector.error(
                            f"Invalid connection reference: node '{target_ref}' does not exist",
                            IssueKind.DOCUMENT,
                            source_id,
                        )
                        continue
                    index = raw_target.get("index", 0)
                    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
                        collector.error(
                            f"Invalid connection index for node '{target_ref}': must be an integer >= 0",
                            IssueKind.DOCUMENT,
                            source_id,
                        )
                        continue
                    targets.append(
                        {
                            "node": target_id,
                            "type": raw_target.get("type") or slot,
                            "index": index,
                            "output_index": output_index,
                        }
                    )

        return normalized

    @staticmethod
    def _iter_slot(branches: Any, source_ref: str, collector: _Collector) -> List[Tuple[int, Any]]:
        if branches is None:
            return []
        if not isinstance(branches, list):
            collector.error(
                f"Connection slot of node '{source_ref}' must be an array",
                IssueKind.DOCUMENT,
            )
            return []
        flattened: List[Tuple[int, Any]] = []
        for position, branch in enumerate(branches):
            if isinstance(branch, list):
                flattened.extend((position, target) for target in branch)
            elif branch is None:
                continue
            else:
                flattened.append((0, branch))
        return flattened

    def _translated_parameters(self, node) -> Dict[str, Any]:
        """Parameters the generated module evaluates; unknown types emit none."""
        resolved = self.registry.lookup(node.type)
        if isinstance(resolved, UnsupportedNodeType):
            return {}
        translated = {schema.name for schema in resolved.parameters if schema.translate}
        return {name: value for name, value in node.parameters.items() if name in translated}

    def compute_metadata(
        self,
        document: WorkflowDocument,
        graph: Optional[WorkflowGraph] = None,
    ) -> WorkflowMetadata:
        """Summarize a document. List fields keep first-seen order."""
        graph = graph or WorkflowGraph.from_document(document)

        node_types: List[str] = []
        credential_types: List[str] = []
        env_vars: List[str] = []
        trigger_count = 0

        for node in document.nodes:
            if node.type not in node_types:
                node_types.append(node.type)
            for kind in node.credentials:
                if kind not in credential_types:
                    credential_types.append(kind)
            for name in find_env_references(self._translated_parameters(node)):
                if name not in env_vars:
                    env_vars.append(name)
            if is_trigger_type(node.type, self.registry):
                trigger_count += 1

        node_count = len(document.nodes)
        connection_count = document.connection_count
        requires_credentials = bool(credential_types)
        complexity = (
            node_count
            + connection_count
            + 2 * len(node_types)
            + (5 if requires_credentials else 0)
        )

        return WorkflowMetadata(
            node_count=node_count,
            trigger_count=trigger_count,
            action_count=node_count - trigger_count,
            connection_count=connection_count,
            node_types=node_types,
            credential_types=credential_types,
            requires_credentials=requires_credentials,
            environment_variables=env_vars,
            complexity=complexity,
            execution_order=graph.execution_order(),
        )

    def _finish(
        self,
        collector: _Collector,
        document: Optional[WorkflowDocument] = None,
        metadata: Optional[WorkflowMetadata] = None,
    ) -> ParseResult:
        fatal = collector.has_fatal
        if collector.errors:
            logger.info(
                "Workflow validation found %d error(s), %d warning(s)",
                len(collector.errors),
                len(collector.warnings),
            )
        return ParseResult(
            is_valid=not collector.errors,
            document=None if fatal else document,
            metadata=metadata,
            errors=collector.errors,
            warnings=collector.warnings,
        )


__all__ = [
    "GraphValidator",
    "ParseResult",
    "WorkflowMetadata",
    "is_trigger_type",
    "KNOWN_TRIGGER_TYPES",
    "DEFAULT_WORKFLOW_NAME",
]
