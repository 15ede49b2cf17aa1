"""llm backend factory. guardian only talks to anthropic models."""

import logging
from typing import Optional

from guardian.config import config
from guardian.utils.llm_backend.base import LLMBackend
from guardian.utils.llm_backend.claude import ClaudeBackend

logger = logging.getLogger(__name__)


def create_backend(
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    **kwargs
) -> Optional[LLMBackend]:
    """claude backend for the given model, or None when no credentials are configured."""
    api_key = api_key or config.ANTHROPIC_API_KEY
    if not api_key:
        logger.warning("[LLMFactory] ANTHROPIC_API_KEY not set, returning no backend")
        return None

    return ClaudeBackend(model=model or config.REASONING_MODEL, api_key=api_key, **kwargs)
