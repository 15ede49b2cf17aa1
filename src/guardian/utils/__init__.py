"""utilities for guardian"""
from .logging import AnalysisLogger, LogCategory
from .cost_manager import CostManager
from .caching import TTLCache
from .correlation import AnalysisContext, get_analysis_id
from .llm_backend import LLMBackend, create_backend, LLMResponse, ClaudeBackend
from guardian.errors import BudgetExceededError

__all__ = [
    "AnalysisLogger",
    "LogCategory",
    "CostManager",
    "BudgetExceededError",
    "TTLCache",
    "AnalysisContext",
    "get_analysis_id",
    "LLMBackend",
    "ClaudeBackend",
    "create_backend",
    "LLMResponse",
]
