"""advanced patterns: approvals, proxies, destruction, big state moves, fan-out transfers, re-entry"""

import re
from collections import Counter
from typing import List, Optional

from guardian.models import Category, MapValue, Severity, numeric_value
from guardian.models.transaction import ChangeType
from guardian.patterns import thresholds
from guardian.patterns.base import IssueTemplate, Match, PatternContext, RiskPattern
from guardian.whitelist import normalize_address

DESTRUCTION_EVENT = re.compile(r"destroy|delete|drop|burn", re.IGNORECASE)
TRANSFER_EVENT = re.compile(r"transfer|coin.*deposit|withdraw", re.IGNORECASE)


def stored_amount(payload: Optional[MapValue]) -> Optional[int]:
    """numeric view of a resource payload: value, amount or coin.value"""
    if payload is None:
        return None
    direct = numeric_value(payload)
    if direct is not None:
        return direct
    return numeric_value(payload.path("coin", "value"))


def _approval(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("approve", "allowance", "delegation"):
        return None
    unlimited = [value for value in ctx.numeric_args if thresholds.is_near_unlimited(value)]
    if unlimited:
        return Match(
            severity=Severity.CRITICAL,
            category=Category.EXPLOIT,
            confidence=0.9,
            evidence={
                "function": ctx.call.function_name,
                "approval_amount": str(unlimited[0]),
                "sender": ctx.call.sender,
            },
        )
    return Match(
        severity=Severity.MEDIUM,
        category=Category.PERMISSION,
        confidence=0.7,
        evidence={"function": ctx.call.function_name, "sender": ctx.call.sender},
    )


def _proxy(ctx: PatternContext) -> Optional[Match]:
    module = ctx.call.module_name.lower()
    is_proxy = ctx.name_has("proxy", "delegate", "forward") or "proxy" in module or "upgradeable" in module
    is_upgrade_policy = "upgrade_policy" in ctx.function_lower or "upgrade_policy" in module
    if not (is_proxy or is_upgrade_policy):
        return None
    return Match(
        confidence=0.8,
        evidence={
            "function": ctx.call.function,
            "module_address": ctx.call.module_address,
            "is_upgrade_policy": is_upgrade_policy,
        },
    )


def _destruction(ctx: PatternContext) -> Optional[Match]:
    by_name = ctx.name_has("destroy", "delete", "drop", "remove_resource", "burn_resource", "dissolve")
    by_event = any(DESTRUCTION_EVENT.search(event.type) for event in ctx.events)
    if not (by_name or by_event):
        return None
    return Match(
        confidence=0.75,
        evidence={"function": ctx.call.function_name, "has_destruction_event": by_event},
    )


def _large_state_change(ctx: PatternContext) -> Optional[Match]:
    large = []
    for change in ctx.effects.state_changes:
        if change.change_type != ChangeType.MODIFY:
            continue
        before, after = stored_amount(change.before), stored_amount(change.after)
        if before is None or after is None:
            continue
        diff = abs(after - before)
        if diff > thresholds.LARGE_STATE_CHANGE:
            large.append({
                "resource": change.resource,
                "old_value": str(before),
                "new_value": str(after),
                "magnitude": str(diff),
            })
    if not large:
        return None
    return Match(confidence=0.7, evidence={"large_changes": large, "count": len(large)})


def _multi_recipient(ctx: PatternContext) -> Optional[Match]:
    is_batch = ctx.name_has("batch", "multi", "airdrop", "distribute")
    transfers = [event for event in ctx.events if TRANSFER_EVENT.search(event.type)]
    if not (is_batch or len(transfers) > thresholds.MULTI_TRANSFER_EVENTS):
        return None
    return Match(
        severity=Severity.HIGH if len(transfers) > thresholds.MULTI_TRANSFER_HIGH else Severity.MEDIUM,
        confidence=0.65,
        evidence={
            "function": ctx.call.function_name,
            "transfer_count": len(transfers),
            "is_batch_function": is_batch,
        },
    )


def _self_reference(ctx: PatternContext) -> Optional[Match]:
    address = normalize_address(ctx.call.module_address)
    own = [
        event.type for event in ctx.events
        if normalize_address(event.type.split("::", 1)[0]) == address
    ]
    if len(own) < 2:
        return None
    repeated = [event_type for event_type, count in Counter(own).items() if count > 1]
    if not repeated:
        return None
    return Match(
        confidence=0.6,
        evidence={
            "module_address": ctx.call.module_address,
            "event_count": len(own),
            "unique_event_types": len(set(own)),
            "repeated": repeated,
        },
    )


def get_advanced_patterns() -> List[RiskPattern]:
    patterns = []

    patterns.append(RiskPattern(
        id="advanced:approval:unlimited",
        category=Category.EXPLOIT,
        severity=Severity.CRITICAL,
        name="Unlimited Token Approval",
        description="Spending approval, critical when the amount is effectively unlimited",
        template=IssueTemplate(
            title="Token Approval Detected",
            description=(
                "This transaction lets another address spend your tokens. An unlimited approval lets the "
                "spender take every token of this type at any time."
            ),
            recommendation="Approve only the amount you need and revoke approvals you no longer use.",
        ),
        predicate=_approval,
    ))

    patterns.append(RiskPattern(
        id="advanced:proxy:interaction",
        category=Category.PERMISSION,
        severity=Severity.HIGH,
        name="Proxy Contract Interaction",
        description="Call routed through a proxy or upgradeable module",
        template=IssueTemplate(
            title="Proxy Contract Detected",
            description=(
                "This call goes through a proxy or upgradeable module whose implementation the owner can "
                "swap out."
            ),
            recommendation="Check that upgrades are timelocked and the current implementation is trusted.",
        ),
        predicate=_proxy,
    ))

    patterns.append(RiskPattern(
        id="advanced:resource:destruction",
        category=Category.EXPLOIT,
        severity=Severity.HIGH,
        name="Resource Destruction",
        description="Move resource destroyed or dropped",
        template=IssueTemplate(
            title="Resource Destruction Detected",
            description=(
                "This transaction permanently destroys a Move resource. Its data cannot be recovered "
                "afterwards."
            ),
            recommendation="Make sure the destruction is intended and does not affect other users.",
        ),
        predicate=_destruction,
    ))

    patterns.append(RiskPattern(
        id="advanced:state:large_change",
        category=Category.EXPLOIT,
        severity=Severity.HIGH,
        name="Large Value State Change",
        description="Stored amount changed by more than 1e18 base units",
        template=IssueTemplate(
            title="Large Value State Change",
            description="Stored values change by an unusually large amount, which can mean a large fund movement.",
            recommendation="Compare the amounts against what you expect the call to move.",
        ),
        predicate=_large_state_change,
    ))

    patterns.append(RiskPattern(
        id="advanced:transfer:multi_recipient",
        category=Category.RUG_PULL,
        severity=Severity.MEDIUM,
        name="Multi-Recipient Transfer",
        description="Tokens fanned out to many recipients",
        template=IssueTemplate(
            title="Multi-Recipient Transfer",
            description=(
                "Tokens go to many recipients in one transaction. Airdrops and payroll do this, so do "
                "airdrop scams."
            ),
            recommendation="Check where the tokens come from before interacting with them.",
        ),
        predicate=_multi_recipient,
    ))

    patterns.append(RiskPattern(
        id="advanced:callback:self_reference",
        category=Category.EXPLOIT,
        severity=Severity.HIGH,
        name="Self-Referential Call",
        description="Same module event emitted repeatedly, a re-entry hint",
        template=IssueTemplate(
            title="Self-Referential Call Pattern",
            description=(
                "The called module emits the same event several times in one transaction. That shape can "
                "come from a callback loop or re-entry."
            ),
            recommendation="Review the call sequence and check that state is settled before external calls.",
        ),
        predicate=_self_reference,
    ))

    return patterns
