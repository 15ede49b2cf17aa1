"""rule definition shared by every pattern category"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from guardian.models import (
    CallDescriptor,
    Category,
    ConfidenceLevel,
    Finding,
    ListValue,
    Provenance,
    Severity,
    SimulatedEffects,
    TextValue,
)


@dataclass(frozen=True)
class IssueTemplate:
    title: str
    description: str
    recommendation: str


@dataclass(frozen=True)
class Match:
    """what a predicate reports, turned into a Finding by the rule"""
    severity: Optional[Severity] = None
    confidence: float = ConfidenceLevel.MEDIUM
    category: Optional[Category] = None
    evidence: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PatternContext:
    call: CallDescriptor
    effects: SimulatedEffects
    function_lower: str
    numeric_args: Tuple[int, ...]

    @classmethod
    def build(
        cls, call: CallDescriptor, effects: Optional[SimulatedEffects] = None, numeric: bool = True
    ) -> "PatternContext":
        """numeric=False leaves the amount view empty, for arguments that cannot be read as integers"""
        return cls(
            call=call,
            effects=effects or SimulatedEffects.empty(),
            function_lower=call.function_name.lower(),
            numeric_args=tuple(call.numeric_arguments()) if numeric else (),
        )

    @property
    def events(self):
        return self.effects.events

    @property
    def gas_used(self) -> int:
        return self.effects.gas_used

    def name_has(self, *keywords: str) -> bool:
        return any(keyword in self.function_lower for keyword in keywords)

    def address_arguments(self) -> List[str]:
        return [
            arg.value for arg in self.call.arguments
            if isinstance(arg, TextValue) and arg.value.startswith("0x")
        ]

    def list_arguments(self) -> List[ListValue]:
        return [arg for arg in self.call.arguments if isinstance(arg, ListValue)]


Predicate = Callable[[PatternContext], Optional[Match]]


@dataclass(frozen=True)
class RiskPattern:
    """one detection rule.

    prefilters gate the predicate: when function or module regexes are given at
    least one must match, and a gas threshold requires gas_used above it. a rule
    without a predicate matches on its prefilters alone.
    """
    id: str
    category: Category
    severity: Severity
    name: str
    description: str
    template: IssueTemplate
    predicate: Optional[Predicate] = None
    function_patterns: Tuple[Pattern, ...] = ()
    module_patterns: Tuple[Pattern, ...] = ()
    gas_threshold: Optional[int] = None

    def prefilter(self, ctx: PatternContext) -> bool:
        if self.function_patterns:
            if not any(p.search(ctx.call.function) or p.search(ctx.call.function_name) for p in self.function_patterns):
                return False
        if self.module_patterns:
            module_path = f"{ctx.call.module_address}::{ctx.call.module_name}"
            if not any(p.search(module_path) for p in self.module_patterns):
                return False
        if self.gas_threshold is not None and ctx.gas_used <= self.gas_threshold:
            return False
        return True

    def evaluate(self, ctx: PatternContext) -> Optional[Finding]:
        if not self.prefilter(ctx):
            return None
        if self.predicate is None:
            match = Match(confidence=self._prefilter_confidence())
        else:
            match = self.predicate(ctx)
        if match is None:
            return None
        return self.to_finding(match)

    def _prefilter_confidence(self) -> float:
        if self.gas_threshold is not None:
            return ConfidenceLevel.HIGH
        if self.function_patterns:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    def to_finding(self, match: Match) -> Finding:
        return Finding(
            pattern_id=self.id,
            category=match.category or self.category,
            severity=match.severity or self.severity,
            title=self.template.title,
            description=self.template.description,
            recommendation=self.template.recommendation,
            confidence=match.confidence,
            source=Provenance.PATTERN,
            evidence=dict(match.evidence),
        )

    def summary(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "name": self.name,
            "description": self.description,
        }


def fn_patterns(*names: str) -> Tuple[Pattern, ...]:
    """regexes matching ::name anywhere in the function path"""
    return tuple(re.compile(rf"::{re.escape(name)}", re.IGNORECASE) for name in names)
