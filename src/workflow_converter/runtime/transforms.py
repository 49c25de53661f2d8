"""Data helpers behind the Set, If and Merge node templates."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Iterable, List, Optional


def set_path(target: Dict[str, Any], path: str, value: Any, dot_notation: bool = True) -> None:
    """Assign value at path, creating intermediate dicts when dot_notation is on."""
    if not dot_notation or "." not in path:
        target[path] = value
        return
    parts = path.split(".")
    current = target
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def _assignment_name(operation: Dict[str, Any]) -> Optional[str]:
    for key in ("name", "field", "key"):
        if operation.get(key):
            return str(operation[key])
    return None


def apply_assignments(
    item: Any,
    operations: Iterable[Any],
    dot_notation: bool = True,
    keep_only_set: bool = False,
) -> Dict[str, Any]:
    """
    Build the Set node output.

    Each operation is {"name": path, "value": value}. The input item is
    copied unless keep_only_set is on.
    """
    result: Dict[str, Any] = {}
    if not keep_only_set and isinstance(item, dict):
        result = copy.deepcopy(item)

    for operation in operations or []:
        if not isinstance(operation, dict):
            raise ValueError(f"Set operation must be an object, got {type(operation).__name__}")
        name = _assignment_name(operation)
        if name is None:
            raise ValueError("Set operation is missing a field name")
        set_path(result, name, operation.get("value"), dot_notation)
    return result


def _as_float(value: Any) -> float:
    if value is None or value == "":
        raise ValueError("Cannot compare an empty value as a number")
    return float(value)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equal": lambda a, b: a == b,
    "equals": lambda a, b: a == b,
    "notEqual": lambda a, b: a != b,
    "notEquals": lambda a, b: a != b,
    "larger": lambda a, b: _as_float(a) > _as_float(b),
    "gt": lambda a, b: _as_float(a) > _as_float(b),
    "largerEqual": lambda a, b: _as_float(a) >= _as_float(b),
    "gte": lambda a, b: _as_float(a) >= _as_float(b),
    "smaller": lambda a, b: _as_float(a) < _as_float(b),
    "lt": lambda a, b: _as_float(a) < _as_float(b),
    "smallerEqual": lambda a, b: _as_float(a) <= _as_float(b),
    "lte": lambda a, b: _as_float(a) <= _as_float(b),
    "contains": lambda a, b: b in a if a is not None else False,
    "notContains": lambda a, b: b not in a if a is not None else True,
    "startsWith": lambda a, b: str(a).startswith(str(b)),
    "endsWith": lambda a, b: str(a).endswith(str(b)),
    "isEmpty": lambda a, _: _is_empty(a),
    "isNotEmpty": lambda a, _: not _is_empty(a),
    "exists": lambda a, _: a is not None,
    "notExists": lambda a, _: a is None,
    "true": lambda a, _: a is True,
    "false": lambda a, _: a is False,
}


def evaluate_condition(condition: Dict[str, Any]) -> bool:
    """
    Evaluate one condition.

    Accepts {"value1", "operation", "value2"} and the newer
    {"leftValue", "operator": {"operation"}, "rightValue"} shape.
    """
    if "leftValue" in condition or isinstance(condition.get("operator"), dict):
        left = condition.get("leftValue")
        right = condition.get("rightValue")
        operator = condition.get("operator") or {}
        operation = operator.get("operation") if isinstance(operator, dict) else operator
    else:
        left = condition.get("value1")
        right = condition.get("value2")
        operation = condition.get("operation", "equal")

    check = OPERATORS.get(str(operation))
    if check is None:
        raise ValueError(f"Unsupported condition operation: {operation}")
    return bool(check(left, right))


def evaluate_conditions(conditions: Iterable[Dict[str, Any]], combine: str = "all") -> bool:
    """Combine condition results with all (AND) or any (OR)."""
    results = [evaluate_condition(condition) for condition in conditions or []]
    if combine == "any":
        return any(results)
    return all(results)


def merge_inputs(input_data: Any, mode: str = "append") -> Any:
    """
    Combine the inputs of a Merge node.

    ``input_data`` is a list when several producers fed the node, as
    gathered by the engine.
    """
    inputs: List[Any] = input_data if isinstance(input_data, list) else [input_data]

    if mode == "append":
        merged: List[Any] = []
        for value in inputs:
            if isinstance(value, list):
                merged.extend(value)
            elif not _is_empty(value):
                merged.append(value)
        return merged
    if mode == "combine":
        combined: Dict[str, Any] = {}
        for value in inputs:
            if isinstance(value, dict):
                combined.update(value)
        return combined
    if mode == "chooseBranch":
        for value in inputs:
            if not _is_empty(value):
                return value
        return {}
    raise ValueError(f"Unsupported merge mode: {mode}")


__all__ = [
    "set_path",
    "apply_assignments",
    "evaluate_condition",
    "evaluate_conditions",
    "merge_inputs",
    "OPERATORS",
]
