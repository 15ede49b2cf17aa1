"""escalating language model analysis"""

from .parsing import ParseOutcome, parse_response
from .pipeline import (
    DeepResult,
    EscalatingPipeline,
    PipelineResult,
    ReasoningResult,
    TriageResult,
)
from .request import PipelineRequest

__all__ = [
    "ParseOutcome",
    "parse_response",
    "DeepResult",
    "EscalatingPipeline",
    "PipelineResult",
    "ReasoningResult",
    "TriageResult",
    "PipelineRequest",
]
