"""
Expression translation - rewrites n8n ``{{ ... }}`` expressions into Python.

Recognized forms become code evaluated by the generated node at run time:

    {{ $env.API_KEY }}            -> env('API_KEY')
    {{ $json.user.id }}           -> resolve_path(item, '.user.id')
    {{ $node["Fetch"].json.id }}  -> resolve_path(context.get_node_output('Fetch'), '.json.id')
    {{ $('Fetch').item.json.id }} -> resolve_path(context.get_node_output('Fetch'), '.item.json.id')

Anything else is kept as an opaque string literal of its original text. It
is never dropped and never executed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple


MARKER_PATTERN = re.compile(r"\{\{\s*(.*?)\s*\}\}", re.DOTALL)

ENV_REFERENCE_PATTERN = re.compile(
    r"\$env(?:\.([A-Za-z_][A-Za-z0-9_]*)|\[\s*[\"']([A-Za-z_][A-Za-z0-9_]*)[\"']\s*\])"
)

_PATH = r"(?:\s*(?:\.[A-Za-z_$][\w$]*(?:\(\))?|\[\s*(?:\d+|'[^']*'|\"[^\"]*\")\s*\]))*"

_ENV_EXPR = re.compile(
    r"^\$env(?:\.([A-Za-z_][A-Za-z0-9_]*)|\[\s*[\"']([A-Za-z_][A-Za-z0-9_]*)[\"']\s*\])$"
)
_JSON_EXPR = re.compile(r"^\$json(" + _PATH + r")$")
_NODE_EXPR = re.compile(
    r"^(?:\$node\[\s*([\"'])(.+?)\1\s*\]|\$\(\s*([\"'])(.+?)\3\s*\))(" + _PATH + r")$"
)


@dataclass(frozen=True)
class CodeExpression:
    """A parameter value that is Python source evaluated at run time."""

    code: str
    source: str

    def __str__(self) -> str:
        return self.code


@dataclass
class TranslationResult:
    """Translated value plus what the translation discovered."""

    value: Any
    env_vars: List[str] = field(default_factory=list)
    node_refs: List[str] = field(default_factory=list)
    opaque: List[str] = field(default_factory=list)

    def _absorb(self, other: "TranslationResult") -> None:
        _extend_unique(self.env_vars, other.env_vars)
        _extend_unique(self.node_refs, other.node_refs)
        _extend_unique(self.opaque, other.opaque)


def _extend_unique(target: List[str], values: Iterable[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)


def _join_text(pieces: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Merge adjacent literal pieces and drop empty ones."""
    joined: List[Tuple[str, str]] = []
    for kind, payload in pieces:
        if kind == "text":
            if not payload:
                continue
            if joined and joined[-1][0] == "text":
                joined[-1] = ("text", joined[-1][1] + payload)
                continue
        joined.append((kind, payload))
    return joined


def find_env_references(value: Any) -> List[str]:
    """
    Recursively collect the ``$env`` names a value reads at run time.

    Covers bare references and recognized ``{{ }}`` expressions, the same
    names translation records. A reference inside an unrecognized
    expression is kept as text and not counted.
    Names keep first-seen order without duplicates.
    """
    return ExpressionTranslator().translate(value).env_vars


class ExpressionTranslator:
    """
    Translate expression strings inside parameter values.

    Stateless; one instance can be shared across conversions.
    """

    def translate(self, value: Any, origin_node: Optional[str] = None) -> TranslationResult:
        """
        Translate every string inside value, recursing into dicts and lists.

        Args:
            value: Raw parameter value
            origin_node: Node id the value belongs to (kept for diagnostics)

        Returns:
            TranslationResult whose value mirrors the input structure, with
            expression strings replaced by CodeExpression instances
        """
        if isinstance(value, dict):
            result = TranslationResult(value={})
            for key, item in value.items():
                child = self.translate(item, origin_node)
                result.value[key] = child.value
                result._absorb(child)
            return result
        if isinstance(value, list):
            result = TranslationResult(value=[])
            for item in value:
                child = self.translate(item, origin_node)
                result.value.append(child.value)
                result._absorb(child)
            return result
        if isinstance(value, str):
            return self._translate_string(value)
        return TranslationResult(value=value)

    def translate_expression(self, expression: str) -> Optional[Tuple[str, List[str], List[str]]]:
        """
        Translate the inside of one ``{{ }}`` marker.

        Returns:
            (code, env_vars, node_refs), or None for unrecognized expressions
        """
        expression = expression.strip()

        match = _ENV_EXPR.match(expression)
        if match:
            name = match.group(1) or match.group(2)
            return f"env({name!r})", [name], []

        match = _JSON_EXPR.match(expression)
        if match:
            rest = match.group(1).strip()
            if not rest:
                return "item", [], []
            return f"resolve_path(item, {rest!r})", [], []

        match = _NODE_EXPR.match(expression)
        if match:
            name = match.group(2) if match.group(2) is not None else match.group(4)
            rest = match.group(5).strip()
            target = f"context.get_node_output({name!r})"
            if not rest:
                return target, [], [name]
            return f"resolve_path({target}, {rest!r})", [], [name]

        return None

    def _translate_string(self, text: str) -> TranslationResult:
        body = text
        if body.startswith("=") and ("{{" in body or "$env" in body):
            body = body[1:]

        result = TranslationResult(value=text)
        # Each piece is ("text", literal) or ("code", python source)
        pieces: List[Tuple[str, str]] = []
        recognized = 0

        position = 0
        for match in MARKER_PATTERN.finditer(body):
            recognized += self._split_bare_env(body[position:match.start()], pieces, result)
            translated = self.translate_expression(match.group(1))
            if translated is None:
                pieces.append(("text", match.group(0)))
                _extend_unique(result.opaque, [match.group(0)])
            else:
                code, env_vars, node_refs = translated
                pieces.append(("code", code))
                _extend_unique(result.env_vars, env_vars)
                _extend_unique(result.node_refs, node_refs)
                recognized += 1
            position = match.end()
        recognized += self._split_bare_env(body[position:], pieces, result)

        if recognized == 0:
            return result

        pieces = _join_text(pieces)
        if len(pieces) == 1 and pieces[0][0] == "code":
            code = pieces[0][1]
        else:
            code = " + ".join(
                repr(payload) if kind == "text" else f"to_text({payload})"
                for kind, payload in pieces
            )
        result.value = CodeExpression(code=code, source=text)
        return result

    def _split_bare_env(
        self,
        segment: str,
        pieces: List[Tuple[str, str]],
        result: TranslationResult,
    ) -> int:
        """Split literal text around bare $env references; returns how many."""
        count = 0
        position = 0
        for match in ENV_REFERENCE_PATTERN.finditer(segment):
            name = match.group(1) or match.group(2)
            pieces.append(("text", segment[position:match.start()]))
            pieces.append(("code", f"env({name!r})"))
            _extend_unique(result.env_vars, [name])
            position = match.end()
            count += 1
        pieces.append(("text", segment[position:]))
        return count


__all__ = [
    "CodeExpression",
    "TranslationResult",
    "ExpressionTranslator",
    "find_env_references",
    "ENV_REFERENCE_PATTERN",
    "MARKER_PATTERN",
]
