"""rug pull patterns: liquidity pulls, ownership moves, blacklists, minting, drains, fee hikes"""

import re
from typing import List, Optional

from guardian.models import Category, Severity
from guardian.patterns import thresholds
from guardian.patterns.base import IssueTemplate, Match, PatternContext, RiskPattern

LP_EVENT = re.compile(r"liquidity|lp|pool", re.IGNORECASE)


def _liquidity_removal(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("remove_liquidity", "withdraw_liquidity", "burn_lp", "exit_pool"):
        return None
    is_large = any(value > thresholds.LARGE_LIQUIDITY_REMOVAL for value in ctx.numeric_args)
    has_lp_event = any(LP_EVENT.search(event.type) for event in ctx.events)
    return Match(
        severity=Severity.CRITICAL if is_large else Severity.HIGH,
        confidence=0.9 if is_large else 0.75,
        evidence={
            "function": ctx.call.function_name,
            "is_large_removal": is_large,
            "has_lp_event": has_lp_event,
        },
    )


def _ownership_transfer(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("transfer_ownership", "set_owner", "set_admin", "change_owner", "renounce"):
        return None
    plain = ctx.call.plain_arguments()
    return Match(
        confidence=0.95,
        evidence={"function": ctx.call.function_name, "new_owner": plain[0] if plain else None},
    )


def _blacklist(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("blacklist", "block_address", "freeze", "ban"):
        return None
    return Match(
        confidence=0.9,
        evidence={"function": ctx.call.function_name, "target_addresses": ctx.address_arguments()},
    )


def _large_mint(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("mint", "issue", "create_token"):
        return None
    largest = max(ctx.numeric_args, default=0)
    is_large = largest > thresholds.LARGE_MINT
    return Match(
        severity=Severity.CRITICAL if is_large else Severity.HIGH,
        confidence=0.9 if is_large else 0.7,
        evidence={"function": ctx.call.function_name, "amount": str(largest), "is_large_mint": is_large},
    )


def _emergency_drain(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("emergency", "drain", "rescue", "sweep", "withdraw_all"):
        return None
    return Match(confidence=0.85, evidence={"function": ctx.call.function_name})


def _fee_increase(ctx: PatternContext) -> Optional[Match]:
    if not ctx.name_has("fee", "tax", "commission"):
        return None
    high = [value for value in ctx.numeric_args if value > thresholds.HIGH_FEE_BPS]
    return Match(
        severity=Severity.CRITICAL if high else Severity.HIGH,
        confidence=0.8,
        evidence={
            "function": ctx.call.function_name,
            "high_fee_values": [str(value) for value in high],
            "threshold_bps": thresholds.HIGH_FEE_BPS,
        },
    )


def get_rugpull_patterns() -> List[RiskPattern]:
    patterns = []

    patterns.append(RiskPattern(
        id="rugpull:lp:remove_liquidity",
        category=Category.RUG_PULL,
        severity=Severity.HIGH,
        name="Liquidity Removal",
        description="Liquidity pulled from a pool",
        template=IssueTemplate(
            title="Large Liquidity Removal Detected",
            description=(
                "This transaction pulls liquidity out of a pool. Big withdrawals move the token price "
                "and are the classic way a rug pull is executed."
            ),
            recommendation="Confirm the sender is trusted and the removal matches what the project announced.",
        ),
        predicate=_liquidity_removal,
    ))

    patterns.append(RiskPattern(
        id="rugpull:ownership:transfer",
        category=Category.RUG_PULL,
        severity=Severity.CRITICAL,
        name="Ownership Transfer",
        description="Contract ownership handed to another address",
        template=IssueTemplate(
            title="Ownership Transfer Detected",
            description=(
                "Control of the contract is moving to a new address. Unexpected ownership changes often "
                "come right before a rug pull."
            ),
            recommendation="Check that the new owner is trusted and that the handover was planned.",
        ),
        predicate=_ownership_transfer,
    ))

    patterns.append(RiskPattern(
        id="rugpull:blacklist:add",
        category=Category.RUG_PULL,
        severity=Severity.HIGH,
        name="Blacklist Function",
        description="Addresses blocked from transacting",
        template=IssueTemplate(
            title="Blacklist Function Called",
            description=(
                "Addresses are being added to a blacklist or frozen. A token that can lock holders out "
                "can trap funds at the owner's discretion."
            ),
            recommendation="Treat tokens with blacklist powers with caution and verify this is a compliance action.",
        ),
        predicate=_blacklist,
    ))

    patterns.append(RiskPattern(
        id="rugpull:mint:unlimited",
        category=Category.RUG_PULL,
        severity=Severity.HIGH,
        name="Unlimited Minting",
        description="Token supply inflated by a mint",
        template=IssueTemplate(
            title="Large Token Minting Detected",
            description=(
                "New tokens are being minted. Minting without caps dilutes every holder and is a common "
                "rug pull vector."
            ),
            recommendation="Compare the amount with the published tokenomics and look for mint caps or governance.",
        ),
        predicate=_large_mint,
    ))

    patterns.append(RiskPattern(
        id="rugpull:emergency:drain",
        category=Category.RUG_PULL,
        severity=Severity.CRITICAL,
        name="Emergency Drain",
        description="Emergency withdrawal or sweep of protocol funds",
        template=IssueTemplate(
            title="Emergency Fund Drain Detected",
            description=(
                "This transaction calls an emergency withdraw, sweep or rescue function that can move "
                "all protocol funds at once."
            ),
            recommendation="Only sign if governance approved the action and the destination is known.",
        ),
        predicate=_emergency_drain,
    ))

    patterns.append(RiskPattern(
        id="rugpull:fee:hidden_increase",
        category=Category.RUG_PULL,
        severity=Severity.HIGH,
        name="Fee Modification",
        description="Trading fee or tax changed",
        template=IssueTemplate(
            title="Fee Modification Detected",
            description=(
                "Fees or taxes are being changed. Raising fees sharply is how honeypot tokens trap "
                "buyers and extract value on every sale."
            ),
            recommendation="Review the new fee. Anything above 5 to 10 percent deserves suspicion.",
        ),
        predicate=_fee_increase,
    ))

    return patterns
