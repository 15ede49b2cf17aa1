"""dual-layer (json + sqlite) analysis logging"""

from .types import LogCategory, LogEntry
from .core import AnalysisLogger

__all__ = [
    "LogCategory",
    "LogEntry",
    "AnalysisLogger",
]
