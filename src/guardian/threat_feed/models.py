from dataclasses import dataclass, field, replace
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

from guardian.models import Severity


@dataclass(frozen=True)
class ThreatSourceResult:
    """one source's answer, confidence is 0 to 100"""
    source: str
    is_malicious: bool = False
    confidence: int = 0
    risk_type: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    latency_ms: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "is_malicious": self.is_malicious,
            "confidence": self.confidence,
            "risk_type": self.risk_type,
            "details": self.details,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


@dataclass(frozen=True)
class ThreatFeedResponse:
    address: str
    network: str
    is_malicious: bool
    confidence: int
    risk_score: int
    risk_level: Severity
    sources: List[ThreatSourceResult] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    description: str = ""
    queried_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    cache_hit: bool = False
    sources_queried: int = 0
    sources_responded: int = 0
    expires_at: Optional[datetime] = None

    @property
    def is_unknown(self) -> bool:
        return self.sources_responded == 0

    @property
    def flagged_by(self) -> List[str]:
        return [s.source for s in self.sources if s.ok and s.is_malicious]

    def as_cache_hit(self) -> "ThreatFeedResponse":
        return replace(self, cache_hit=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "network": self.network,
            "is_malicious": self.is_malicious,
            "is_unknown": self.is_unknown,
            "confidence": self.confidence,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "sources": [s.to_dict() for s in self.sources],
            "tags": list(self.tags),
            "description": self.description,
            "queried_at": self.queried_at.isoformat(),
            "cache_hit": self.cache_hit,
            "sources_queried": self.sources_queried,
            "sources_responded": self.sources_responded,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
