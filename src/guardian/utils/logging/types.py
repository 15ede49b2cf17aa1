"""logging types: categories map to raw json subdirectories."""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, Any, Optional


class LogCategory(Enum):
    AI_CALL = "ai_calls"
    DECISION = "decisions"
    TOOL_CALL = "tool_calls"
    THREAT_FEED = "threat_feed"
    RESULT = "results"
    ERROR = "errors"


@dataclass
class LogEntry:
    """one row as read back from the database"""
    timestamp: str
    category: str
    event_type: str
    stage: Optional[str]
    analysis_id: Optional[str]
    iteration: Optional[int]
    data: Dict[str, Any]
    metadata: Dict[str, Any]
