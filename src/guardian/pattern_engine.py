"""deterministic rule matching over a call and its simulated effects"""

import logging
from typing import Iterable, List, Optional

from guardian.models import CallDescriptor, Finding, SimulatedEffects
from guardian.patterns import ALL_PATTERNS, PatternContext, RiskPattern

logger = logging.getLogger(__name__)


class PatternEngine:
    """runs every registered rule, at most one finding per rule"""

    def __init__(self, patterns: Optional[Iterable[RiskPattern]] = None):
        self.patterns: List[RiskPattern] = list(patterns) if patterns is not None else list(ALL_PATTERNS)

    def match(self, call: CallDescriptor, effects: Optional[SimulatedEffects] = None) -> List[Finding]:
        try:
            ctx = PatternContext.build(call, effects)
        except Exception as e:
            logger.warning(f"[PatternEngine] could not read amounts of {call.function}, matching without them: {e}")
            ctx = PatternContext.build(call, effects, numeric=False)
        findings = []
        for pattern in self.patterns:
            try:
                finding = pattern.evaluate(ctx)
            except Exception as e:
                logger.warning(f"[PatternEngine] rule {pattern.id} failed on {call.function}: {e}")
                continue
            if finding is not None:
                findings.append(finding)
        if findings:
            logger.debug(f"[PatternEngine] {call.function}: {len(findings)} findings")
        return findings
