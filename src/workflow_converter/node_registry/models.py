"""
Node Registry Models - Descriptors for the node types the converter knows.

A lookup always yields one of two variants: a ``NodeTypeDescriptor`` for a
supported type, or an ``UnsupportedNodeType`` carrying the reason.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class NodeCategory(str, Enum):
    """Coarse role of a node type."""
    TRIGGER = "trigger"
    ACTION = "action"
    TRANSFORM = "transform"
    CONDITION = "condition"
    UTILITY = "utility"


class ParameterType(str, Enum):
    """Declared type of a node parameter."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


class TemplateKind(str, Enum):
    """Which body template the assembler emits for a node type."""
    TRIGGER = "trigger"
    HTTP_REQUEST = "http_request"
    SET = "set"
    CODE = "code"
    IF = "if"
    MERGE = "merge"
    WAIT = "wait"
    NO_OP = "no_op"


def looks_like_expression(value: Any) -> bool:
    """True for n8n expression strings ('={{ ... }}' or embedded '{{ ... }}')."""
    if not isinstance(value, str):
        return False
    return "{{" in value or "$env." in value


class ParameterSchema(BaseModel):
    """
    Schema entry for one parameter of a node type.

    Example: {"name": "url", "type": "string", "required": True}
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Parameter key in node.parameters")
    type: ParameterType = Field(ParameterType.STRING, description="Declared type")
    required: bool = Field(False, description="Must be present")
    default: Any = Field(None, description="Value used when the parameter is absent")
    choices: Optional[List[Any]] = Field(None, description="Allowed values")
    minimum: Optional[float] = Field(None, description="Lowest allowed number")
    description: str = Field("", description="Parameter description")
    translate: bool = Field(True, description="Rewrite embedded expressions; off for source code")
    allow_expression: bool = Field(True, description="Accept an expression in place of a literal value")

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def check_raw(self, value: Any) -> Optional[str]:
        """
        Check a raw document value against this schema.

        Expression strings are exempt since their type is only known at
        run time, unless the parameter is fixed at generation time
        (allow_expression=False). Coercible strings (e.g. "30" for a number) pass.

        Returns:
            An error message, or None when the value is acceptable.
        """
        if value is None:
            return None
        if self.allow_expression and looks_like_expression(value):
            return None

        if self.type == ParameterType.STRING:
            if not isinstance(value, str):
                return f"Parameter '{self.name}' must be a string"
        elif self.type == ParameterType.NUMBER:
            number = _as_number(value)
            if number is None:
                return f"Parameter '{self.name}' must be a number"
            if self.minimum is not None and number < self.minimum:
                return f"Parameter '{self.name}' must be >= {self.minimum:g}"
        elif self.type == ParameterType.BOOLEAN:
            if not isinstance(value, bool) and not (
                isinstance(value, str) and value.strip().lower() in ("true", "false")
            ):
                return f"Parameter '{self.name}' must be a boolean"
        elif self.type == ParameterType.ARRAY:
            if not isinstance(value, list):
                return f"Parameter '{self.name}' must be an array"
        elif self.type == ParameterType.OBJECT:
            if not isinstance(value, (dict, list, str)):
                return f"Parameter '{self.name}' must be an object"

        if self.choices is not None:
            if _normalize_choice(value, self.choices) not in self.choices:
                allowed = ", ".join(str(c) for c in self.choices)
                return f"Parameter '{self.name}' must be one of: {allowed}"
        return None


def _normalize_choice(value: Any, choices: List[Any]) -> Any:
    # Upper-case enums such as HTTP verbs compare case-insensitively
    if isinstance(value, str) and all(isinstance(c, str) and c.isupper() for c in choices):
        return value.upper()
    return value


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


class NodeTypeDescriptor(BaseModel):
    """
    Everything the converter knows about a supported node type.
    """
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Node type identifier")
    display_name: str = Field(..., description="Human-readable name")
    category: NodeCategory = Field(..., description="Node role")
    description: str = Field("", description="What the generated node does")
    parameters: List[ParameterSchema] = Field(default_factory=list)
    dependencies: List[str] = Field(
        default_factory=list,
        description="pip requirement strings the generated body needs",
    )
    credential_kinds: List[str] = Field(default_factory=list)
    template: TemplateKind = Field(TemplateKind.NO_OP, description="Body template")
    runtime_modules: List[str] = Field(
        default_factory=list,
        description="Extra runtime modules the generated body imports",
    )
    annotation_only: bool = Field(False, description="Editor-only node, never emitted")
    dynamic_code: bool = Field(False, description="Body runs user-supplied code")

    @property
    def is_trigger(self) -> bool:
        return self.category == NodeCategory.TRIGGER

    def get_parameter(self, name: str) -> Optional[ParameterSchema]:
        for schema in self.parameters:
            if schema.name == name:
                return schema
        return None

    def check_parameters(self, parameters: Dict[str, Any]) -> List[str]:
        """Schema violations of a raw parameter dict, in schema order."""
        problems: List[str] = []
        for schema in self.parameters:
            if schema.name not in parameters:
                if schema.required and not schema.has_default:
                    problems.append(f"Missing required parameter '{schema.name}'")
                continue
            problem = schema.check_raw(parameters[schema.name])
            if problem:
                problems.append(problem)
        return problems

    def to_summary(self) -> Dict[str, Any]:
        """Plain-data view used by the CLI listing."""
        return {
            "type": self.type,
            "display_name": self.display_name,
            "category": self.category.value,
            "parameters": [p.name for p in self.parameters],
            "dependencies": list(self.dependencies),
            "credential_kinds": list(self.credential_kinds),
        }


@dataclass(frozen=True)
class UnsupportedNodeType:
    """Registry answer for a type with no descriptor."""
    type: str
    reason: str

    @property
    def is_trigger(self) -> bool:
        return False


ResolvedNodeType = Union[NodeTypeDescriptor, UnsupportedNodeType]


def descriptor_from_dict(data: Dict[str, Any]) -> NodeTypeDescriptor:
    """Build a descriptor from plain data (entry points, JSON files)."""
    if isinstance(data, str):
        data = json.loads(data)
    return NodeTypeDescriptor.model_validate(data)


__all__ = [
    "NodeCategory",
    "ParameterType",
    "TemplateKind",
    "ParameterSchema",
    "NodeTypeDescriptor",
    "UnsupportedNodeType",
    "ResolvedNodeType",
    "looks_like_expression",
    "descriptor_from_dict",
]
