"""
Restricted, timeout-bounded interpreter for Code node bodies.

User code is compiled with RestrictedPython and runs as the body of a
function receiving ``items`` (the node input as a list) and ``item`` (the
raw input). Its return value becomes the node output.
"""

from __future__ import annotations

import logging
import operator
import signal
import textwrap
import threading
from typing import Any, Dict, List

from RestrictedPython import compile_restricted, limited_builtins, safe_builtins, utility_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30

USER_FUNCTION = "workflow_user_code"

EXTRA_BUILTINS = {
    "dict": dict,
    "list": list,
    "set": set,
    "sum": sum,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
    "map": map,
    "filter": filter,
    "enumerate": enumerate,
    "reversed": reversed,
}

INPLACE_OPERATORS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
}


class SandboxError(RuntimeError):
    """User code could not be compiled or raised while running."""


class SandboxTimeoutError(SandboxError):
    """User code exceeded its time limit."""


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    func = INPLACE_OPERATORS.get(op)
    if func is None:
        raise SandboxError(f"Operator {op} is not allowed")
    return func(target, value)


def _build_globals() -> Dict[str, Any]:
    builtins = dict(safe_builtins)
    builtins.update(limited_builtins)
    builtins.update(utility_builtins)
    builtins.update(EXTRA_BUILTINS)
    return {
        "__builtins__": builtins,
        "__name__": "workflow_sandbox",
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_print_": PrintCollector,
    }


def wrap_user_code(source: str) -> str:
    """Wrap user statements in a function so a top-level 'return' works."""
    body = textwrap.indent(textwrap.dedent(source).strip() or "pass", "    ")
    return f"def {USER_FUNCTION}(items, item):\n{body}\n"


def compile_user_code(source: str, filename: str = "<code node>") -> Any:
    """
    Compile user code under RestrictedPython policy.

    Raises:
        SandboxError: On syntax errors or disallowed constructs
    """
    try:
        return compile_restricted(wrap_user_code(source), filename=filename, mode="exec")
    except SyntaxError as e:
        raise SandboxError(f"Code rejected: {e}") from e


def _as_items(input_data: Any) -> List[Any]:
    if input_data is None:
        return []
    if isinstance(input_data, list):
        return list(input_data)
    return [input_data]


def _call_with_alarm(func: Any, timeout_s: int) -> Any:
    def timeout_handler(signum, frame):
        raise SandboxTimeoutError(f"Code execution timed out after {timeout_s}s")

    old_handler = signal.signal(signal.SIGALRM, timeout_handler)
    signal.alarm(timeout_s)
    try:
        return func()
    finally:
        signal.alarm(0)
        signal.signal(signal.SIGALRM, old_handler)


def _call_with_thread(func: Any, timeout_s: int) -> Any:
    # Outside the main thread signals are unavailable; bound the wait instead
    outcome: Dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["value"] = func()
        except BaseException as e:  # re-raised in the calling thread
            outcome["error"] = e

    worker = threading.Thread(target=target, name="workflow-sandbox", daemon=True)
    worker.start()
    worker.join(timeout_s)
    if worker.is_alive():
        raise SandboxTimeoutError(f"Code execution timed out after {timeout_s}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


def run_restricted(source: str, input_data: Any = None, timeout_s: int = DEFAULT_TIMEOUT_S) -> Any:
    """
    Run user code and return what it returns.

    Args:
        source: Function body written by the workflow author
        input_data: Node input; exposed as ``item`` and, as a list, ``items``
        timeout_s: Wall-clock limit in seconds

    Raises:
        SandboxTimeoutError: If the limit is exceeded
        SandboxError: If compilation fails
    """
    code = compile_user_code(source)
    scope = _build_globals()
    exec(code, scope)
    user_function = scope[USER_FUNCTION]
    items = _as_items(input_data)

    def call() -> Any:
        return user_function(items, input_data)

    use_alarm = (
        hasattr(signal, "SIGALRM")
        and threading.current_thread() is threading.main_thread()
    )
    if use_alarm:
        return _call_with_alarm(call, max(1, int(timeout_s)))
    return _call_with_thread(call, timeout_s)


__all__ = [
    "run_restricted",
    "compile_user_code",
    "wrap_user_code",
    "SandboxError",
    "SandboxTimeoutError",
]
