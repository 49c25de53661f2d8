"""LLM-backed generators for the enhancement gate."""
from workflow_converter.llm.anthropic_generator import (
    AnthropicCodeGenerator,
    GeneratorRequestError,
)

__all__ = ["AnthropicCodeGenerator", "GeneratorRequestError"]
