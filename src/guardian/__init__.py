"""guardian: risk analysis for proposed move transactions"""

from .analyzer import InMemoryResultStore, ResultStore, RiskAnalyzer, SimulationClient, analyze
from .config import config
from .errors import BudgetExceededError, GuardianError, InvalidCallError, StageUnavailableError
from .models import (
    AnalysisResult,
    CallDescriptor,
    Category,
    Finding,
    RiskRating,
    Severity,
    SimulatedEffects,
)

__version__ = "0.1.0"

__all__ = [
    "InMemoryResultStore",
    "ResultStore",
    "RiskAnalyzer",
    "SimulationClient",
    "analyze",
    "config",
    "BudgetExceededError",
    "GuardianError",
    "InvalidCallError",
    "StageUnavailableError",
    "AnalysisResult",
    "CallDescriptor",
    "Category",
    "Finding",
    "RiskRating",
    "Severity",
    "SimulatedEffects",
]
