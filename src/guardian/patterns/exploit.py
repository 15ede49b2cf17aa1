"""exploit patterns: overflow-prone math, unconstrained generics, mutable refs, flash loans"""

import re
from typing import List, Optional

from guardian.models import Category, Severity
from guardian.models.values import iter_text
from guardian.patterns.base import IssueTemplate, Match, PatternContext, RiskPattern, fn_patterns

# integer-mate and friends, the cetus overflow came from checked_shlw
VULNERABLE_LIBRARY_NAMES = ("integer_mate", "checked_shlw", "checked_shl", "full_mul", "mul_shr")

# a bare placeholder such as T or CoinType, no module path
GENERIC_PLACEHOLDER = re.compile(r"^[A-Z][A-Za-z0-9_]*$")

TRANSFER_LIKE = ("transfer", "withdraw")


def _vulnerable_library(ctx: PatternContext) -> Optional[Match]:
    module = ctx.call.module_name.lower()
    hits = [name for name in VULNERABLE_LIBRARY_NAMES if name in module or name in ctx.function_lower]
    if not hits:
        return None
    critical = "checked_shlw" in hits
    return Match(
        severity=Severity.CRITICAL if critical else Severity.HIGH,
        confidence=0.85 if critical else 0.75,
        evidence={"matched": hits, "module": ctx.call.module_name, "function": ctx.call.function_name},
    )


def _unconstrained_generic(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has(*TRANSFER_LIKE):
        return None
    placeholders = [t for t in ctx.call.type_arguments if GENERIC_PLACEHOLDER.match(t.strip())]
    if not placeholders:
        return None
    return Match(confidence=0.6, evidence={"type_arguments": placeholders})


def _mutable_reference(ctx: PatternContext) -> Optional[Match]:
    sources = list(ctx.call.type_arguments)
    for arg in ctx.call.arguments:
        sources.extend(iter_text(arg))
    exposed = [s for s in sources if "&mut" in s]
    if not exposed:
        return None
    return Match(confidence=0.7, evidence={"references": exposed[:5]})


def _flash_loan(ctx: PatternContext) -> Optional[Match]:
    kind = "flash_swap" if "flash_swap" in ctx.function_lower else "flash_loan"
    return Match(confidence=0.7, evidence={"function": ctx.call.function_name, "kind": kind})


def get_exploit_patterns() -> List[RiskPattern]:
    patterns = []

    patterns.append(RiskPattern(
        id="exploit:overflow:vulnerable_library",
        category=Category.EXPLOIT,
        severity=Severity.HIGH,
        name="Overflow-Prone Math Library",
        description="Call touches a math routine from a library with known shift/multiply overflow bugs",
        template=IssueTemplate(
            title="Overflow-Prone Math Library Usage",
            description=(
                "This call goes through an arithmetic routine (integer-mate style shifts or wide "
                "multiplication) that has been exploited through integer overflow. Crafted inputs can "
                "make the protocol miscompute liquidity or balances."
            ),
            recommendation="Check that the protocol has patched its integer library and bounds shift amounts.",
        ),
        predicate=_vulnerable_library,
    ))

    patterns.append(RiskPattern(
        id="exploit:generic:unconstrained",
        category=Category.EXPLOIT,
        severity=Severity.MEDIUM,
        name="Unconstrained Generic Transfer",
        description="Transfer-like call instantiated with a bare generic placeholder instead of a concrete type",
        template=IssueTemplate(
            title="Unconstrained Generic Type in Transfer",
            description=(
                "A transfer or withdraw function is called with a type argument that is a bare generic "
                "placeholder. Functions that accept any coin type can be tricked into moving a type the "
                "caller did not intend."
            ),
            recommendation="Pass the fully qualified coin type and verify it matches the asset you expect to move.",
        ),
        predicate=_unconstrained_generic,
    ))

    patterns.append(RiskPattern(
        id="exploit:reference:mutable",
        category=Category.EXPLOIT,
        severity=Severity.HIGH,
        name="Mutable Reference Exposure",
        description="Type or argument text exposes a mutable reference",
        template=IssueTemplate(
            title="Public Mutable Reference Exposure",
            description=(
                "The call passes or instantiates a mutable reference (&mut). Exposing mutable references "
                "through public functions lets callers modify protocol state directly."
            ),
            recommendation="Review which resource the reference points to before signing.",
        ),
        predicate=_mutable_reference,
    ))

    patterns.append(RiskPattern(
        id="exploit:flash_loan:entry",
        category=Category.EXPLOIT,
        severity=Severity.MEDIUM,
        name="Flash Loan Entry",
        description="Flash loan or flash swap entry point",
        template=IssueTemplate(
            title="Flash Loan Entry Point",
            description=(
                "This call opens a flash loan or flash swap. Flash loans are a common building block for "
                "price manipulation and oracle attacks."
            ),
            recommendation="Make sure the borrowed amount is repaid in the same transaction and the counterparties are known.",
        ),
        predicate=_flash_loan,
        function_patterns=fn_patterns("flash_loan", "flash_swap"),
    ))

    return patterns
