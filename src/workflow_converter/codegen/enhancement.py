"""
Enhancement Gate - Optional generator-produced node bodies with template fallback.

An injected generator ``(prompt, meta) -> GeneratorResponse`` may propose a
replacement module for a node. The gate validates the candidate and keeps
it only when every check passes; in every other case the template body is
used. Two pure steps make up the decision:

    attempt = gate.attempt_enhancement(mapped, prompt)
    selection = select_body(attempt, fallback=template_body)
"""

from __future__ import annotations

import ast
import json
import re
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Protocol, Tuple

from workflow_converter.errors import EnhancementError
from workflow_converter.mapping.resolver import MappedNode
from workflow_converter.observability import get_logger, with_conversion_context


logger = get_logger(__name__)

_FENCE = re.compile(r"^\s*```[\w+-]*\s*\n(.*?)\n\s*```\s*$", re.DOTALL)

BRACKET_PAIRS = (("{", "}"), ("[", "]"), ("(", ")"))


@dataclass
class GeneratorResponse:
    """What a generator returns: success plus code, or an error."""
    success: bool
    code: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> "GeneratorResponse":
        """Accept a GeneratorResponse or a {success, code, error} dict."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls(
                success=bool(value.get("success")),
                code=value.get("code"),
                error=value.get("error"),
            )
        raise EnhancementError(f"Generator returned unsupported value of type {type(value).__name__}")


class CodeGenerator(Protocol):
    """Injected code generator."""

    def __call__(self, prompt: str, meta: Dict[str, Any]) -> Any:
        ...


@dataclass
class EnhancementAttempt:
    """Outcome of asking the generator for one node."""
    node_id: str
    ok: bool
    code: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BodySelection:
    """The body chosen for a node and why."""
    body: str
    enhanced: bool
    reason: Optional[str] = None


@dataclass
class EnhancementDecision:
    """Final per-node decision reported to callers."""
    node_id: str
    accepted: bool
    body: Optional[str] = None
    reason: Optional[str] = None


class EnhancementTelemetry:
    """Bounded in-memory record of recent decisions."""

    def __init__(self, max_entries: int = 256):
        self._entries: Deque[EnhancementDecision] = deque(maxlen=max_entries)

    def record(self, decision: EnhancementDecision) -> None:
        self._entries.append(decision)

    @property
    def entries(self) -> List[EnhancementDecision]:
        return list(self._entries)

    def acceptance_rate(self) -> float:
        if not self._entries:
            return 0.0
        accepted = sum(1 for entry in self._entries if entry.accepted)
        return accepted / len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def strip_code_fences(code: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    match = _FENCE.match(code)
    return match.group(1) if match else code


def brackets_balanced(code: str) -> bool:
    """Count-based check that every bracket kind opens as often as it closes."""
    return all(code.count(opening) == code.count(closing) for opening, closing in BRACKET_PAIRS)


def validate_candidate(
    code: Optional[str],
    class_name: str,
    min_length: int = 100,
) -> Optional[str]:
    """
    Check a candidate node module.

    Returns:
        A rejection reason, or None when the candidate is acceptable
    """
    if not code or not code.strip():
        return "empty candidate"
    if len(code) < min_length:
        return f"candidate shorter than {min_length} characters"
    if code.lstrip().startswith(("{", "[")):
        reason = validate_json_candidate(code)
        if reason:
            return reason
    if not re.search(rf"^class\s+{re.escape(class_name)}\s*\(", code, re.MULTILINE):
        return f"candidate does not define class {class_name}"
    if not brackets_balanced(code):
        return "unbalanced brackets"
    try:
        ast.parse(code)
    except SyntaxError as e:
        return f"candidate does not parse: {e.msg} (line {e.lineno})"
    return None


def validate_json_candidate(content: str) -> Optional[str]:
    """Check a candidate JSON file."""
    try:
        json.loads(content)
    except json.JSONDecodeError as e:
        return f"invalid JSON: {e}"
    return None


def select_body(attempt: EnhancementAttempt, fallback: str) -> BodySelection:
    """Use the attempt's code when it succeeded, else the fallback."""
    if attempt.ok and attempt.code:
        return BodySelection(body=attempt.code, enhanced=True)
    return BodySelection(body=fallback, enhanced=False, reason=attempt.error)


def default_prompt(mapped: MappedNode, template_body: str) -> str:
    """Prompt asking for an improved version of the template module."""
    return (
        f"Improve this generated Python module for the workflow node "
        f"'{mapped.spec.name}' of type {mapped.spec.type}.\n"
        f"Keep the class name {mapped.class_name}, its base class, its node_id and "
        f"its parameters() method. Only use the imports already present.\n"
        f"Return the complete module as a single Python code block.\n\n"
        f"{template_body}"
    )


class EnhancementGate:
    """
    Validates generator output and decides which body each node gets.

    Usage:
        gate = EnhancementGate(generator, timeout_s=60)
        decision = gate.try_enhance(mapped, prompt)
        body = decision.body if decision.accepted else template_body
    """

    def __init__(
        self,
        generator: Optional[Callable[[str, Dict[str, Any]], Any]],
        timeout_s: float = 60.0,
        min_code_length: int = 100,
        max_workers: int = 4,
        telemetry: Optional[EnhancementTelemetry] = None,
    ):
        self.generator = generator
        self.timeout_s = timeout_s
        self.min_code_length = min_code_length
        self.max_workers = max_workers
        self.telemetry = telemetry

    @staticmethod
    def eligible(mapped: MappedNode) -> bool:
        """Only supported, emitted, valid nodes are sent to the generator."""
        return mapped.supported and not mapped.annotation_only and mapped.validation.valid

    def _call_generator(self, prompt: str, meta: Dict[str, Any]) -> GeneratorResponse:
        if self.generator is None:
            raise EnhancementError("No generator configured")
        return GeneratorResponse.from_value(self.generator(prompt, meta))

    def attempt_enhancement(self, mapped: MappedNode, prompt: str) -> EnhancementAttempt:
        """
        Ask the generator for a candidate and validate it.

        Never raises; failures are reported on the attempt.
        """
        node_id = mapped.node_id
        if not self.eligible(mapped):
            return EnhancementAttempt(node_id=node_id, ok=False, error="node not eligible")

        meta = {
            "node_id": node_id,
            "node_name": mapped.spec.name,
            "node_type": mapped.spec.type,
            "class_name": mapped.class_name,
        }
        try:
            response = self._call_generator(prompt, meta)
        except EnhancementError as e:
            return EnhancementAttempt(node_id=node_id, ok=False, error=e.message)
        except Exception as e:
            logger.warning(
                "Generator raised: %s",
                e,
                extra=with_conversion_context(node_id=node_id, node_type=mapped.spec.type),
            )
            return EnhancementAttempt(node_id=node_id, ok=False, error=f"generator raised: {e}")

        if not response.success:
            return EnhancementAttempt(
                node_id=node_id,
                ok=False,
                error=response.error or "generator reported failure",
            )

        code = strip_code_fences(response.code or "")
        reason = validate_candidate(code, mapped.class_name, self.min_code_length)
        if reason:
            return EnhancementAttempt(node_id=node_id, ok=False, error=reason)
        if not code.endswith("\n"):
            code += "\n"
        return EnhancementAttempt(node_id=node_id, ok=True, code=code)

    def try_enhance(self, mapped: MappedNode, context_prompt: str) -> EnhancementDecision:
        """Attempt, then turn the attempt into a decision."""
        attempt = self.attempt_enhancement(mapped, context_prompt)
        return self._decide(mapped, attempt)

    def _decide(self, mapped: MappedNode, attempt: EnhancementAttempt) -> EnhancementDecision:
        decision = EnhancementDecision(
            node_id=mapped.node_id,
            accepted=attempt.ok,
            body=attempt.code if attempt.ok else None,
            reason=attempt.error,
        )
        if self.telemetry is not None:
            self.telemetry.record(decision)
        extra = with_conversion_context(node_id=mapped.node_id, node_type=mapped.spec.type)
        if decision.accepted:
            logger.info("Enhanced body accepted", extra=extra)
        else:
            logger.info("Enhanced body rejected: %s", decision.reason, extra=extra)
        return decision

    def _start(self, mapped: MappedNode, prompt: str) -> Future:
        """Run one attempt on a daemon thread, so an abandoned call cannot block exit."""
        future: Future = Future()
        future.set_running_or_notify_cancel()

        def target() -> None:
            try:
                future.set_result(self.attempt_enhancement(mapped, prompt))
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(target=target, name=f"enhance-{mapped.node_id}", daemon=True).start()
        return future

    def enhance_all(
        self,
        nodes: Iterable[MappedNode],
        prompt_builder: Callable[[MappedNode], str],
    ) -> Dict[str, EnhancementDecision]:
        """
        Enhance eligible nodes concurrently.

        At most ``max_workers`` generator calls are in flight. Each call's
        ``timeout_s`` runs from the moment it starts; a call past its
        deadline is abandoned and frees its slot for the next node.
        Returns decisions keyed by node id, in input order.
        """
        candidates = [mapped for mapped in nodes if self.eligible(mapped)]
        decisions: Dict[str, EnhancementDecision] = {}
        if not candidates or self.generator is None:
            return decisions

        attempts: Dict[str, EnhancementAttempt] = {}
        waiting = deque(candidates)
        running: List[Tuple[MappedNode, Future, float]] = []
        while waiting or running:
            while waiting and len(running) < self.max_workers:
                mapped = waiting.popleft()
                future = self._start(mapped, prompt_builder(mapped))
                running.append((mapped, future, time.monotonic() + self.timeout_s))

            next_deadline = min(deadline for _, _, deadline in running)
            wait(
                [future for _, future, _ in running],
                timeout=max(0.0, next_deadline - time.monotonic()),
                return_when=FIRST_COMPLETED,
            )

            now = time.monotonic()
            still_running = []
            for mapped, future, deadline in running:
                if future.done():
                    attempts[mapped.node_id] = future.result()
                elif now >= deadline:
                    attempts[mapped.node_id] = EnhancementAttempt(
                        node_id=mapped.node_id,
                        ok=False,
                        error=f"generator timed out after {self.timeout_s}s",
                    )
                else:
                    still_running.append((mapped, future, deadline))
            running = still_running

        for mapped in candidates:
            decisions[mapped.node_id] = self._decide(mapped, attempts[mapped.node_id])
        return decisions


__all__ = [
    "GeneratorResponse",
    "CodeGenerator",
    "EnhancementAttempt",
    "BodySelection",
    "EnhancementDecision",
    "EnhancementTelemetry",
    "EnhancementGate",
    "select_body",
    "validate_candidate",
    "validate_json_candidate",
    "strip_code_fences",
    "brackets_balanced",
    "default_prompt",
]
