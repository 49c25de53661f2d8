"""
Base class and value helpers for generated node modules.

Generated nodes subclass ``BaseNode`` and use ``env``, ``credential``,
``resolve_path`` and ``to_text`` inside their ``parameters`` method, which
is where translated expressions end up.
"""

from __future__ import annotations

import json
import os
import re
from typing import Any, Dict, List, Optional


class CredentialError(RuntimeError):
    """A credential is missing from the environment or malformed."""


class BaseNode:
    """
    One executable node of a generated workflow.

    Subclasses set the class attributes and implement ``execute``.
    ``parameters`` returns the node's parameters evaluated for the
    current item; generated subclasses override it.
    """

    node_id: str = ""
    node_name: str = ""
    node_type: str = ""
    disabled: bool = False

    def parameters(self, item: Any, context: Any) -> Dict[str, Any]:
        return {}

    def execute(self, input_data: Any, context: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} does not implement execute()")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(node_id={self.node_id!r}, node_type={self.node_type!r})"


class BranchOutput:
    """
    Output of a node with several outputs (e.g. If).

    Only the branches present carry data; a downstream node connected to an
    absent branch is skipped.
    """

    def __init__(self, branches: Dict[int, Any]):
        self.branches = dict(branches)

    def has(self, index: int) -> bool:
        return index in self.branches

    def get(self, index: int) -> Any:
        return self.branches.get(index)

    def first(self) -> Any:
        if not self.branches:
            return None
        return self.branches[min(self.branches)]

    def to_dict(self) -> Dict[str, Any]:
        return {str(index): value for index, value in sorted(self.branches.items())}

    def __eq__(self, other: object) -> bool:
        return isinstance(other, BranchOutput) and other.branches == self.branches

    def __repr__(self) -> str:
        return f"BranchOutput({self.branches!r})"


def env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read an environment variable."""
    return os.environ.get(name, default)


def credential_env_name(kind: str) -> str:
    """Environment variable holding a credential, e.g. httpHeaderAuth -> CREDENTIAL_HTTP_HEADER_AUTH."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", kind)
    snake = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return "CREDENTIAL_" + re.sub(r"[^A-Za-z0-9]+", "_", snake).upper().strip("_")


def credential(kind: str) -> Dict[str, Any]:
    """
    Load a credential from its JSON-encoded environment variable.

    Raises:
        CredentialError: If the variable is unset or not a JSON object
    """
    name = credential_env_name(kind)
    raw = os.environ.get(name)
    if not raw:
        raise CredentialError(f"Credential '{kind}' is not configured; set {name}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CredentialError(f"{name} must hold a JSON object: {e}") from e
    if not isinstance(value, dict):
        raise CredentialError(f"{name} must hold a JSON object")
    return value


_PATH_TOKEN = re.compile(
    r"\.\s*([A-Za-z_$][\w$]*)(\(\))?"
    r"|\[\s*(?:(\d+)|'([^']*)'|\"([^\"]*)\")\s*\]"
)

# Segments that n8n uses for item plumbing; transparent when absent
_TRANSPARENT = {"json", "item"}


def parse_path(path: str) -> List[Any]:
    """Split '.a["b"][0].first()' into ['a', 'b', 0, 'first()']."""
    tokens: List[Any] = []
    for match in _PATH_TOKEN.finditer(path or ""):
        name, call, index, single, double = match.groups()
        if name is not None:
            tokens.append(name + "()" if call else name)
        elif index is not None:
            tokens.append(int(index))
        else:
            tokens.append(single if single is not None else double)
    return tokens


def resolve_path(value: Any, path: str) -> Any:
    """
    Follow a property path into value.

    Missing keys give None rather than raising. ``json`` and ``item``
    segments pass through when the current value has no such key, and
    ``first()`` / ``last()`` / ``all()`` select from lists.
    """
    current = value
    for token in parse_path(path):
        if isinstance(current, BranchOutput):
            current = current.first()
        if current is None:
            return None

        if isinstance(token, int):
            if isinstance(current, (list, tuple)) and -len(current) <= token < len(current):
                current = current[token]
            elif isinstance(current, dict):
                current = current.get(str(token))
            else:
                return None
            continue

        if token in ("first()", "item"):
            if isinstance(current, (list, tuple)):
                current = current[0] if current else None
                continue
            if token == "first()" or not (isinstance(current, dict) and "item" in current):
                continue
        if token == "last()":
            if isinstance(current, (list, tuple)):
                current = current[-1] if current else None
            continue
        if token == "all()":
            if not isinstance(current, (list, tuple)):
                current = [current]
            continue

        if isinstance(current, dict):
            if token in current:
                current = current[token]
            elif token in _TRANSPARENT:
                continue
            else:
                return None
        elif token in _TRANSPARENT:
            continue
        else:
            current = getattr(current, token, None) if not token.startswith("_") else None
    if isinstance(current, BranchOutput):
        current = current.first()
    return current


def to_text(value: Any) -> str:
    """Render a value for string concatenation."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


__all__ = [
    "BaseNode",
    "BranchOutput",
    "CredentialError",
    "env",
    "credential",
    "credential_env_name",
    "parse_path",
    "resolve_path",
    "to_text",
]
