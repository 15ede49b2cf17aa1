"""rule registry"""

from typing import Dict, List, Optional

from guardian.models import Category

from .advanced import get_advanced_patterns
from .base import IssueTemplate, Match, PatternContext, RiskPattern, fn_patterns
from .cost import get_cost_patterns
from .exploit import get_exploit_patterns
from .permission import get_permission_patterns
from .rugpull import get_rugpull_patterns

ALL_PATTERNS: List[RiskPattern] = [
    *get_exploit_patterns(),
    *get_rugpull_patterns(),
    *get_cost_patterns(),
    *get_permission_patterns(),
    *get_advanced_patterns(),
]

PATTERN_MAP: Dict[str, RiskPattern] = {pattern.id: pattern for pattern in ALL_PATTERNS}


def get_pattern_by_id(pattern_id: str) -> Optional[RiskPattern]:
    return PATTERN_MAP.get(pattern_id)


def get_patterns_by_category(category: Category) -> List[RiskPattern]:
    return [pattern for pattern in ALL_PATTERNS if pattern.category == category]


def pattern_summary() -> List[Dict[str, str]]:
    return [pattern.summary() for pattern in ALL_PATTERNS]


PATTERN_STATS = {
    "total": len(ALL_PATTERNS),
    "by_category": {category.value: len(get_patterns_by_category(category)) for category in Category},
}

__all__ = [
    "ALL_PATTERNS",
    "PATTERN_MAP",
    "PATTERN_STATS",
    "IssueTemplate",
    "Match",
    "PatternContext",
    "RiskPattern",
    "fn_patterns",
    "get_pattern_by_id",
    "get_patterns_by_category",
    "pattern_summary",
]
