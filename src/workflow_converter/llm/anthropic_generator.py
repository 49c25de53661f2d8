"""Anthropic-backed code generator for the enhancement gate."""
import time
from typing import Any

import httpx

from workflow_converter.codegen.enhancement import GeneratorResponse, strip_code_fences
from workflow_converter.config import Settings, get_settings
from workflow_converter.observability import get_logger, with_conversion_context

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You write small, self-contained Python modules for a workflow runtime. "
    "Reply with one Python code block and nothing else."
)


class GeneratorRequestError(Exception):
    """Raised internally when the Messages API call cannot be completed."""

    pass


class AnthropicCodeGenerator:
    """
    Calls the Anthropic Messages API and returns the reply as a candidate body.

    The instance is a ``(prompt, meta) -> GeneratorResponse`` callable and
    never raises: transport failures, HTTP errors and empty replies are
    returned as ``GeneratorResponse(success=False, error=...)``.

    Usage:
        generator = AnthropicCodeGenerator()
        response = generator(prompt, {"node_id": "a"})
    """

    def __init__(
        self,
        settings: Settings | None = None,
        model: str | None = None,
        client: httpx.Client | None = None,
    ):
        self.settings = settings or get_settings()
        self.model = model or self.settings.anthropic_default_model
        self._client = client

    def __call__(self, prompt: str, meta: dict[str, Any]) -> GeneratorResponse:
        extra = with_conversion_context(
            node_id=meta.get("node_id"),
            node_type=meta.get("node_type"),
        )

        if self.settings.anthropic_api_key is None:
            return GeneratorResponse(
                success=False,
                error="CONVERTER_ANTHROPIC_API_KEY is not configured",
            )

        try:
            response_data = self._call_anthropic_api(prompt, extra)
        except GeneratorRequestError as e:
            logger.warning(f"Generator request failed: {e}", extra=extra)
            return GeneratorResponse(success=False, error=str(e))

        text = self._extract_text(response_data)
        if not text.strip():
            return GeneratorResponse(success=False, error="Empty response from model")
        return GeneratorResponse(success=True, code=strip_code_fences(text))

    def build_request(self, prompt: str) -> dict[str, Any]:
        """Messages API request body for a prompt."""
        return {
            "model": self.model,
            "max_tokens": self.settings.enhancement_max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.0,
        }

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.settings.anthropic_api_key.get_secret_value(),
            "anthropic-version": self.settings.anthropic_version,
            "content-type": "application/json",
        }

    def _post(self, url: str, body: dict[str, Any], timeout: httpx.Timeout) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, json=body, headers=self._headers(), timeout=timeout)
        with httpx.Client(timeout=timeout) as client:
            return client.post(url, json=body, headers=self._headers())

    def _call_anthropic_api(self, prompt: str, extra: dict[str, Any]) -> dict[str, Any]:
        """
        Post the prompt, retrying rate limits, server errors and timeouts.

        All attempts together stay within ``enhancement_timeout_s``: each
        read timeout is capped by the time left, and no retry starts once
        its backoff would pass the deadline.

        Raises:
            GeneratorRequestError: If the call fails after all retries
        """
        request_body = self.build_request(prompt)
        budget_s = self.settings.enhancement_timeout_s
        deadline = time.monotonic() + budget_s
        max_retries = self.settings.enhancement_max_retries
        url = f"{self.settings.anthropic_base_url.rstrip('/')}/v1/messages"

        for attempt in range(max_retries + 1):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise GeneratorRequestError(f"Gave up after {budget_s}s")
            timeout = httpx.Timeout(connect=5.0, read=remaining, write=5.0, pool=5.0)
            wait_time = 0.5 * (2**attempt)
            can_retry = attempt < max_retries and time.monotonic() + wait_time < deadline

            try:
                response = self._post(url, request_body, timeout)

                if response.status_code == 429 or 500 <= response.status_code < 600:
                    if can_retry:
                        logger.warning(
                            f"Transient status {response.status_code}, retrying in {wait_time}s",
                            extra=extra,
                        )
                        time.sleep(wait_time)
                        continue
                    response.raise_for_status()

                elif response.status_code >= 400:
                    # Client errors other than 429 are not retried
                    response.raise_for_status()

                return response.json()

            except httpx.TimeoutException as e:
                if attempt < max_retries and time.monotonic() + wait_time < deadline:
                    logger.warning(f"Request timeout, retrying in {wait_time}s", extra=extra)
                    time.sleep(wait_time)
                    continue
                raise GeneratorRequestError(f"Request timeout: {e}") from e

            except httpx.HTTPError as e:
                raise GeneratorRequestError(f"HTTP error: {e}") from e

            except ValueError as e:
                raise GeneratorRequestError(f"Invalid JSON in response: {e}") from e

        raise GeneratorRequestError("Max retries exceeded")

    @staticmethod
    def _extract_text(response_data: dict[str, Any]) -> str:
        content_blocks = response_data.get("content", [])
        text_parts = []
        for block in content_blocks:
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
        return "".join(text_parts)


__all__ = ["AnthropicCodeGenerator", "GeneratorRequestError", "SYSTEM_PROMPT"]
