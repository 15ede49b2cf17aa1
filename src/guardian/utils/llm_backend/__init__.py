"""llm backend package: a small interface over the anthropic sdk."""

from .base import LLMResponse, LLMBackend
from .claude import ClaudeBackend
from .factory import create_backend


__all__ = [
    "LLMResponse",
    "LLMBackend",
    "ClaudeBackend",
    "create_backend",
]
