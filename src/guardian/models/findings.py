from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from datetime import datetime, UTC


class Category(Enum):
    """risk classification"""
    EXPLOIT = "EXPLOIT"
    RUG_PULL = "RUG_PULL"
    EXCESSIVE_COST = "EXCESSIVE_COST"
    PERMISSION = "PERMISSION"


class Severity(Enum):
    """severity classification, weight feeds the risk score"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHTS[self]

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


SEVERITY_WEIGHTS = {
    Severity.LOW: 10,
    Severity.MEDIUM: 30,
    Severity.HIGH: 60,
    Severity.CRITICAL: 100,
}

# most severe first
SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]


class RiskRating(Enum):
    """overall verdict"""
    SAFE = "SAFE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Provenance(Enum):
    PATTERN = "pattern"
    LLM = "llm"


class ConfidenceLevel:
    """shared confidence presets"""
    VERY_HIGH = 0.95
    HIGH = 0.85
    MEDIUM = 0.70
    LOW = 0.60
    MINIMAL = 0.50


def coerce_category(raw: Any) -> Category:
    """normalize model output, unknown values become exploit"""
    if isinstance(raw, Category):
        return raw
    text = str(raw or "").strip().upper().replace("-", "_").replace(" ", "_")
    try:
        return Category(text)
    except ValueError:
        return Category.EXPLOIT


def coerce_severity(raw: Any) -> Severity:
    """normalize model output, unknown values become medium"""
    if isinstance(raw, Severity):
        return raw
    text = str(raw or "").strip().upper()
    try:
        return Severity(text)
    except ValueError:
        return Severity.MEDIUM


def clamp_confidence(raw: Any, default: float = 0.5) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if value != value:  # nan
        return default
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class Finding:
    """single detected risk"""
    pattern_id: str
    category: Category
    severity: Severity
    title: str
    description: str
    recommendation: str = ""
    confidence: float = ConfidenceLevel.MEDIUM
    source: Provenance = Provenance.PATTERN
    evidence: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence {self.confidence} outside [0, 1] for {self.pattern_id}")

    @property
    def dedup_key(self) -> tuple:
        return (self.category, self.title.strip().lower())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern_id": self.pattern_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "confidence": self.confidence,
            "source": self.source.value,
            "evidence": self.evidence,
        }

    def __repr__(self) -> str:
        return f"Finding([{self.severity.value}] {self.title})"


@dataclass(frozen=True)
class ModuleVerification:
    """on-chain check that the called module and function exist"""
    status: str
    module_exists: bool = False
    function_exists: bool = False
    is_framework_module: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "module_exists": self.module_exists,
            "function_exists": self.function_exists,
            "is_framework_module": self.is_framework_module,
            "error": self.error,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """terminal verdict, created once per request"""
    share_id: str
    function: str
    network: str
    rating: RiskRating
    score: float
    findings: List[Finding] = field(default_factory=list)
    timings_ms: Dict[str, int] = field(default_factory=dict)
    stages_completed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    simulation_status: str = "skipped"
    whitelisted: bool = False
    summary: Optional[str] = None
    module_verification: Optional[ModuleVerification] = None
    analysis_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def get_critical_findings(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == Severity.CRITICAL]

    def _count_by_severity(self) -> Dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "share_id": self.share_id,
            "analysis_id": self.analysis_id,
            "function": self.function,
            "network": self.network,
            "rating": self.rating.value,
            "score": self.score,
            "findings": [f.to_dict() for f in self.findings],
            "stats": {
                "total_findings": len(self.findings),
                "by_severity": self._count_by_severity(),
            },
            "timings_ms": dict(self.timings_ms),
            "stages_completed": list(self.stages_completed),
            "warnings": list(self.warnings),
            "simulation_status": self.simulation_status,
            "whitelisted": self.whitelisted,
            "summary": self.summary,
            "module_verification": self.module_verification.to_dict() if self.module_verification else None,
            "created_at": self.created_at.isoformat(),
        }

    def to_json(self, indent: int = 2) -> str:
        import json
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def __repr__(self) -> str:
        return f"AnalysisResult({self.function}, {self.rating.value}, score={self.score:.0f}, {len(self.findings)} findings)"
