"""excessive cost patterns: gas, slippage, trade size, unprotected dex calls, batches"""

import re
from typing import List, Optional, Tuple

from guardian.models import Category, Severity
from guardian.patterns import thresholds
from guardian.patterns.base import IssueTemplate, Match, PatternContext, RiskPattern

PRICE_EVENT = re.compile(r"price|oracle|quote", re.IGNORECASE)


def _gas_spike(ctx: PatternContext) -> Optional[Match]:
    gas = ctx.gas_used
    if gas > thresholds.GAS_EXTREME:
        severity, confidence, threshold = Severity.HIGH, 0.95, thresholds.GAS_EXTREME
    elif gas > thresholds.GAS_HIGH:
        severity, confidence, threshold = Severity.HIGH, 0.9, thresholds.GAS_HIGH
    else:
        severity, confidence, threshold = Severity.MEDIUM, 0.8, thresholds.GAS_ELEVATED
    return Match(
        severity=severity,
        confidence=confidence,
        evidence={
            "gas_used": gas,
            "threshold": threshold,
            "multiplier": round(gas / thresholds.GAS_ELEVATED, 2),
        },
    )


def slippage_pair(numeric_args: Tuple[int, ...]) -> Optional[Tuple[int, int]]:
    """(amount_in, min_out) guess: first number, then the first later one below it"""
    if len(numeric_args) < 2:
        return None
    amount_in = numeric_args[0]
    if amount_in <= 0:
        return None
    for value in numeric_args[1:]:
        if 0 < value < amount_in:
            return amount_in, value
    return None


def slippage_percent(amount_in: int, min_out: int) -> float:
    # basis points in integer math, then two decimals
    return ((amount_in - min_out) * 10_000 // amount_in) / 100


def _high_slippage(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("swap", "exchange", "trade"):
        return None
    pair = slippage_pair(ctx.numeric_args)
    if pair is None:
        return Match(
            severity=Severity.LOW,
            confidence=0.5,
            evidence={
                "function": ctx.call.function_name,
                "note": "Swap detected but slippage parameters unclear",
                "heuristic": True,
            },
        )
    amount_in, min_out = pair
    percent = slippage_percent(amount_in, min_out)
    if percent <= thresholds.SLIPPAGE_HIGH_PCT:
        return None
    return Match(
        severity=Severity.CRITICAL if percent > thresholds.SLIPPAGE_CRITICAL_PCT else Severity.HIGH,
        confidence=0.85,
        evidence={
            "amount_in": str(amount_in),
            "min_out": str(min_out),
            "estimated_slippage": f"{percent:.2f}%",
            "heuristic": True,
        },
    )


def _large_trade(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("swap", "liquidity", "trade"):
        return None
    if not any(value > thresholds.LARGE_TRADE for value in ctx.numeric_args):
        return None
    return Match(confidence=0.7, evidence={"function": ctx.call.function_name, "note": "Large trade amount detected"})


def _no_price_check(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("swap", "liquidity"):
        return None
    has_price_event = any(PRICE_EVENT.search(event.type) for event in ctx.events)
    has_deadline = any(thresholds.DEADLINE_MIN < value < thresholds.DEADLINE_MAX for value in ctx.numeric_args)
    if has_price_event or has_deadline:
        return None
    return Match(
        severity=Severity.LOW,
        confidence=0.5,
        evidence={"function": ctx.call.function_name, "has_price_event": False, "has_deadline": False},
    )


def _batch_operation(ctx: PatternContext) -> Optional[Match]:
    is_batch = ctx.name_has("batch", "multi", "bulk")
    many_events = len(ctx.events) > thresholds.BATCH_EVENT_COUNT
    large_list = any(len(arg) > thresholds.BATCH_LIST_LENGTH for arg in ctx.list_arguments())
    if not (is_batch or many_events or large_list):
        return None
    return Match(
        confidence=0.6,
        evidence={
            "is_batch_function": is_batch,
            "event_count": len(ctx.events),
            "has_large_list_argument": large_list,
        },
    )


def get_cost_patterns() -> List[RiskPattern]:
    patterns = []

    patterns.append(RiskPattern(
        id="cost:gas:spike",
        category=Category.EXCESSIVE_COST,
        severity=Severity.MEDIUM,
        name="High Gas Usage",
        description="Simulation used far more gas than a typical call",
        template=IssueTemplate(
            title="High Gas Consumption",
            description=(
                "The simulated execution consumed an unusually large amount of gas. Heavy execution can "
                "point to loops over user-controlled data or griefing."
            ),
            recommendation="Check whether the gas cost is expected for this operation before paying it.",
        ),
        predicate=_gas_spike,
        gas_threshold=thresholds.GAS_ELEVATED,
    ))

    patterns.append(RiskPattern(
        id="cost:slippage:high",
        category=Category.EXCESSIVE_COST,
        severity=Severity.HIGH,
        name="High Slippage Risk",
        description="Swap accepts a large gap between amount in and minimum out",
        template=IssueTemplate(
            title="High Slippage Tolerance",
            description=(
                "The swap tolerates a wide gap between what you pay and the minimum you accept back. "
                "That leaves room for sandwich attacks and front-running."
            ),
            recommendation="Lower the slippage tolerance or split large swaps.",
        ),
        predicate=_high_slippage,
    ))

    patterns.append(RiskPattern(
        id="cost:size:large_trade",
        category=Category.EXCESSIVE_COST,
        severity=Severity.MEDIUM,
        name="Large Transaction",
        description="Trade big enough to move the market",
        template=IssueTemplate(
            title="Large Transaction Size",
            description=(
                "The trade amount is large enough to move prices noticeably. Large trades suffer more "
                "slippage and attract MEV bots."
            ),
            recommendation="Split the trade or use MEV protection.",
        ),
        predicate=_large_trade,
    ))

    patterns.append(RiskPattern(
        id="cost:dex:no_price_check",
        category=Category.EXCESSIVE_COST,
        severity=Severity.LOW,
        name="No Price Verification",
        description="DEX call with no oracle event and no deadline argument",
        template=IssueTemplate(
            title="No Price Verification Detected",
            description=(
                "This DEX interaction neither consults a price oracle nor carries a deadline, so it may "
                "execute at a stale or manipulated price."
            ),
            recommendation="Verify the quoted price yourself or use a router that enforces a deadline.",
        ),
        predicate=_no_price_check,
    ))

    patterns.append(RiskPattern(
        id="cost:batch:multiple_ops",
        category=Category.EXCESSIVE_COST,
        severity=Severity.LOW,
        name="Batch Operation",
        description="Several operations bundled into one transaction",
        template=IssueTemplate(
            title="Batch Operation Detected",
            description=(
                "This transaction bundles many operations. If any step misbehaves the whole batch is "
                "affected, and batches are harder to review."
            ),
            recommendation="Review every operation in the batch before signing.",
        ),
        predicate=_batch_operation,
    ))

    return patterns
