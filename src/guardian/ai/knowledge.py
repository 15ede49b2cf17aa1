"""move vulnerability knowledge injected into reasoning prompts, plus input hygiene for prompts"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Tuple

MAX_PROMPT_FIELD_CHARS = 10000

_FILTERED = "[filtered]"

# phrasing in user-controlled data that reads like instructions to the model
_INSTRUCTION_PHRASES = [
    re.compile(r"ignore.*instruction", re.IGNORECASE),
    re.compile(r"system.*prompt", re.IGNORECASE),
    re.compile(r"you are", re.IGNORECASE),
    re.compile(r"respond with", re.IGNORECASE),
    re.compile(r"output.*json", re.IGNORECASE),
]

_INJECTION_PATTERNS = [
    re.compile(r"ignore.*previous", re.IGNORECASE),
    re.compile(r"forget.*instructions", re.IGNORECASE),
    re.compile(r"new.*system.*prompt", re.IGNORECASE),
    re.compile(r"you.*are.*now", re.IGNORECASE),
    re.compile(r"disregard.*above", re.IGNORECASE),
]


@dataclass(frozen=True)
class VulnerabilityKnowledge:
    name: str
    description: str
    real_world_example: str
    patterns: Tuple[str, ...]
    severity: str
    move_specific: bool


MOVE_VULNERABILITY_KNOWLEDGE: Tuple[VulnerabilityKnowledge, ...] = (
    VulnerabilityKnowledge(
        name="integer_overflow",
        description="Integer overflow/underflow in Move can occur with shift operations and unchecked arithmetic",
        real_world_example="Cetus Protocol hack (May 2025), $223M lost due to unchecked shifts in integer-mate library",
        patterns=("shl", "shr", "checked_shlw", "full_mul", "as u64", "as u128"),
        severity="CRITICAL",
        move_specific=True,
    ),
    VulnerabilityKnowledge(
        name="resource_drain",
        description="Move resources can be drained if signer capabilities are mishandled",
        real_world_example="Thala Protocol hack, misconfigured admin access allowed unauthorized withdrawals",
        patterns=("move_from", "borrow_global_mut", "signer::address_of", "extract"),
        severity="CRITICAL",
        move_specific=True,
    ),
    VulnerabilityKnowledge(
        name="capability_leak",
        description="Move capabilities (signer, &mut references) can be stored and reused maliciously",
        real_world_example="DeFi exploits where capabilities were stored in global storage",
        patterns=("store", "key", "&signer", "copy", "drop"),
        severity="HIGH",
        move_specific=True,
    ),
    VulnerabilityKnowledge(
        name="flash_loan_attack",
        description="Flash loans enable atomic arbitrage and oracle manipulation",
        real_world_example="Multiple DeFi protocols exploited via flash loan and oracle manipulation",
        patterns=("flash_loan", "swap", "price_update", "borrow", "repay"),
        severity="HIGH",
        move_specific=False,
    ),
    VulnerabilityKnowledge(
        name="admin_backdoor",
        description="Admin functions that can drain funds or modify critical parameters",
        real_world_example="Rug pulls where admin keys were compromised or malicious",
        patterns=("set_admin", "transfer_ownership", "emergency_withdraw", "pause", "upgrade"),
        severity="CRITICAL",
        move_specific=False,
    ),
    VulnerabilityKnowledge(
        name="oracle_manipulation",
        description="Price oracle updates before swaps indicate potential manipulation",
        real_world_example="Mango Markets exploit, $100M+ via oracle manipulation",
        patterns=("update_price", "set_price", "price_feed", "oracle"),
        severity="CRITICAL",
        move_specific=False,
    ),
    VulnerabilityKnowledge(
        name="cross_module_call",
        description="Move prevents classic reentrancy but cross-module calls can still be exploited",
        real_world_example="Cross-contract call vulnerabilities in Aptos DeFi",
        patterns=("public(friend)", "entry", "call", "invoke"),
        severity="HIGH",
        move_specific=True,
    ),
    VulnerabilityKnowledge(
        name="liquidity_removal",
        description="LP token burns or large withdrawals can indicate a rug pull",
        real_world_example="Numerous DeFi rug pulls via LP removal",
        patterns=("remove_liquidity", "burn", "withdraw_all", "emergency_exit"),
        severity="HIGH",
        move_specific=False,
    ),
)


def to_prompt_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=str)


def sanitize_for_llm(value: Any, max_chars: int = MAX_PROMPT_FIELD_CHARS) -> str:
    """truncate user-controlled data and neutralize instruction-like phrasing"""
    text = to_prompt_text(value)
    if len(text) > max_chars:
        text = text[:max_chars] + "...[truncated]"
    for pattern in _INSTRUCTION_PHRASES:
        text = pattern.sub(_FILTERED, text)
    return text


def detect_prompt_injection(text: str) -> bool:
    return any(pattern.search(text or "") for pattern in _INJECTION_PATTERNS)


def relevant_knowledge(function_name: str, arguments_text: str) -> List[VulnerabilityKnowledge]:
    """snippets whose patterns occur in the function name or the serialized arguments"""
    function_name = (function_name or "").lower()
    arguments_text = (arguments_text or "").lower()
    matched = []
    for knowledge in MOVE_VULNERABILITY_KNOWLEDGE:
        for pattern in knowledge.patterns:
            if pattern in function_name or pattern in arguments_text:
                matched.append(knowledge)
                break
    return matched
