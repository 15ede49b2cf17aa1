"""merges findings from every analysis layer into one score and rating"""

import logging
from typing import Dict, Iterable, List, Tuple

from guardian.models import Finding, RiskRating, Severity

logger = logging.getLogger(__name__)

RATING_THRESHOLDS = [
    (80, RiskRating.CRITICAL),
    (60, RiskRating.HIGH),
    (30, RiskRating.MEDIUM),
]


def rating_for(score: float, has_critical: bool = False) -> RiskRating:
    if has_critical:
        return RiskRating.CRITICAL
    for threshold, rating in RATING_THRESHOLDS:
        if score >= threshold:
            return rating
    return RiskRating.LOW if score > 0 else RiskRating.SAFE


class RiskAggregator:

    def contribution(self, finding: Finding, pipeline_confidence: float) -> float:
        # zero confidence means the producer did not set one
        confidence = finding.confidence or pipeline_confidence
        return finding.severity.weight * confidence

    def aggregate(self, findings: Iterable[Finding], pipeline_confidence: float = 0.0) -> Tuple[float, RiskRating]:
        """(score 0 to 100, rating). no findings is (0, SAFE)"""
        findings = list(findings)
        if not findings:
            return 0.0, RiskRating.SAFE

        contributions = [self.contribution(f, pipeline_confidence) for f in findings]
        highest = max(contributions)
        mean = sum(contributions) / len(contributions)
        score = min(100.0, max(highest, mean))

        has_critical = any(f.severity == Severity.CRITICAL for f in findings)
        return round(score, 2), rating_for(score, has_critical)

    def deduplicate(self, findings: Iterable[Finding]) -> List[Finding]:
        """one finding per (category, title), higher confidence wins, first-seen order"""
        kept: Dict[tuple, Finding] = {}
        for finding in findings:
            key = finding.dedup_key
            existing = kept.get(key)
            if existing is None or finding.confidence > existing.confidence:
                kept[key] = finding
        return list(kept.values())

    def sort_by_severity(self, findings: Iterable[Finding]) -> List[Finding]:
        """critical first, stable within a severity"""
        return sorted(findings, key=lambda f: f.severity.rank)

    def merge(self, findings: Iterable[Finding], pipeline_confidence: float = 0.0) -> Tuple[List[Finding], float, RiskRating]:
        merged = self.sort_by_severity(self.deduplicate(findings))
        score, rating = self.aggregate(merged, pipeline_confidence)
        logger.debug(f"[RiskAggregator] {len(merged)} findings -> {rating.value} ({score})")
        return merged, score, rating
