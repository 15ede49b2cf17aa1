"""on-chain module interface analysis.

the called module's abi is fetched from the fullnode, so what gets checked is
what is actually deployed and not what the caller claims.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from guardian.analyzers.chain_client import ChainClient, ModuleABI, ModuleFunction
from guardian.models import Category, ConfidenceLevel, Finding, ModuleVerification, Severity
from guardian.whitelist import is_framework_address

logger = logging.getLogger(__name__)

DANGEROUS_FUNCTION_PATTERNS = {
    "critical_mutators": [
        re.compile(p, re.IGNORECASE) for p in (
            r"^set_owner$", r"^transfer_ownership$", r"^set_admin$", r"^upgrade", r"^migrate",
            r"^emergency", r"^pause$", r"^unpause$", r"^freeze$", r"^blacklist", r"^set_fee",
            r"^withdraw_all", r"^drain",
        )
    ],
    "fund_handlers": [
        re.compile(p, re.IGNORECASE) for p in (
            r"^withdraw", r"^transfer", r"^mint$", r"^burn$", r"^deposit", r"^claim",
        )
    ],
    "unlimited_access": [
        re.compile(p, re.IGNORECASE) for p in (r"^approve", r"^set_allowance", r"^grant", r"^authorize")
    ],
}

PATTERN_CATEGORIES = {
    "critical_mutators": Category.PERMISSION,
    "fund_handlers": Category.RUG_PULL,
    "unlimited_access": Category.EXPLOIT,
}

PATTERN_RECOMMENDATIONS = {
    "critical_mutators": "Verify the caller is authorized. Check for proper access controls and governance mechanisms.",
    "fund_handlers": "Review fund flow logic. Ensure proper balance checks and access controls are in place.",
    "unlimited_access": "Check for unlimited approvals or grants. Set limits and consider time-based expirations.",
}


def _pattern_severity(kind: str, fn: ModuleFunction) -> Severity:
    if kind == "critical_mutators":
        return Severity.CRITICAL if fn.is_entry else Severity.HIGH
    if kind == "fund_handlers":
        return Severity.HIGH if fn.is_public_entry else Severity.MEDIUM
    return Severity.HIGH


def dangerous_kind(name: str) -> Optional[str]:
    for kind, patterns in DANGEROUS_FUNCTION_PATTERNS.items():
        if any(p.search(name) for p in patterns):
            return kind
    return None


def analyze_abi(abi: ModuleABI) -> List[Finding]:
    findings = []

    for fn in abi.functions:
        kind = dangerous_kind(fn.name)
        if kind:
            findings.append(Finding(
                pattern_id=f"bytecode:function:{kind}",
                category=PATTERN_CATEGORIES[kind],
                severity=_pattern_severity(kind, fn),
                title=f"Dangerous Function: {fn.name}",
                description=(
                    f'The module exposes a {fn.visibility} function "{fn.name}" in the '
                    f'"{kind}" category. Verified against the deployed module.'
                ),
                recommendation=PATTERN_RECOMMENDATIONS[kind],
                confidence=ConfidenceLevel.VERY_HIGH,
                evidence={
                    "function_name": fn.name,
                    "visibility": fn.visibility,
                    "is_entry": fn.is_entry,
                    "params": list(fn.params),
                    "verified_on_chain": True,
                },
            ))

        if fn.is_public_entry and not fn.params:
            findings.append(Finding(
                pattern_id="bytecode:function:no_params_entry",
                category=Category.PERMISSION,
                severity=Severity.LOW,
                title="Public Entry Function Without Parameters",
                description=(
                    f'"{fn.name}" is a public entry function with no parameters. Anyone can call it, '
                    "which may be intended but can also be a denial of service vector."
                ),
                recommendation="Verify this function should be callable by anyone without restrictions.",
                confidence=ConfidenceLevel.MEDIUM,
                evidence={"function_name": fn.name, "verified_on_chain": True},
            ))

        if any("signer" in r or "Capability" in r for r in fn.returns):
            findings.append(Finding(
                pattern_id="bytecode:function:returns_capability",
                category=Category.PERMISSION,
                severity=Severity.HIGH,
                title="Function Returns Signer/Capability",
                description=f'"{fn.name}" returns a signer or capability that could be used to escalate privileges.',
                recommendation="Ensure capability and signer returns cannot reach unauthorized callers.",
                confidence=ConfidenceLevel.HIGH,
                evidence={"function_name": fn.name, "return_types": list(fn.returns), "verified_on_chain": True},
            ))

    for struct in abi.structs:
        if struct.has("copy") and not struct.has("drop"):
            findings.append(Finding(
                pattern_id="bytecode:struct:copy_without_drop",
                category=Category.EXPLOIT,
                severity=Severity.MEDIUM,
                title="Resource with Copy but No Drop",
                description=f'"{struct.name}" can be copied but not dropped, which can lead to duplication issues.',
                recommendation="Review whether this struct needs copy. Consider adding drop if appropriate.",
                confidence=ConfidenceLevel.HIGH,
                evidence={"struct_name": struct.name, "abilities": list(struct.abilities), "verified_on_chain": True},
            ))

    if abi.friends:
        findings.append(Finding(
            pattern_id="bytecode:module:has_friends",
            category=Category.PERMISSION,
            severity=Severity.LOW,
            title="Module Has Friend Declarations",
            description=(
                f"This module declares {len(abi.friends)} friend module(s): {', '.join(abi.friends)}. "
                "Friend modules can call its friend-visible functions."
            ),
            recommendation="Review friend modules to ensure they are trusted and their access is necessary.",
            confidence=ConfidenceLevel.VERY_HIGH,
            evidence={"friends": list(abi.friends), "verified_on_chain": True},
        ))

    return findings


@dataclass
class BytecodeReport:
    module_exists: bool
    function_exists: bool = False
    function: Optional[ModuleFunction] = None
    findings: List[Finding] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    abi: Optional[ModuleABI] = None

    def verification(self) -> ModuleVerification:
        meta = self.metadata
        if not self.module_exists:
            return ModuleVerification(
                status="module_not_found",
                error=f"{meta.get('module_address')}::{meta.get('module_name')} not found on {meta.get('network')}",
            )
        if self.function is None:
            return ModuleVerification(
                status="function_not_found",
                module_exists=True,
                error=f"Function \"{meta.get('claimed_function')}\" not found in module",
                metadata={"available_functions": [f.name for f in self.abi.functions][:20]} if self.abi else {},
            )
        fn = self.function
        return ModuleVerification(
            status="verified",
            module_exists=True,
            function_exists=True,
            metadata={"visibility": fn.visibility, "is_entry": fn.is_entry, "params": list(fn.params)},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_exists": self.module_exists,
            "function_exists": self.function_exists,
            "function": self.function.name if self.function else None,
            "findings": [f.to_dict() for f in self.findings],
            "metadata": dict(self.metadata),
        }


class BytecodeAnalyzer:

    def __init__(self, chain_client: ChainClient):
        self.chain_client = chain_client

    async def fetch(self, network: str, address: str, module: str) -> Optional[ModuleABI]:
        return await self.chain_client.get_module(network, address, module)

    async def analyze(self, network: str, address: str, module: str, function: str) -> BytecodeReport:
        abi = await self.fetch(network, address, module)
        if abi is None:
            return BytecodeReport(
                module_exists=False,
                findings=[Finding(
                    pattern_id="bytecode:module:not_found",
                    category=Category.EXPLOIT,
                    severity=Severity.HIGH,
                    title="Module Not Found On-Chain",
                    description=(
                        f"The module {address}::{module} could not be found on {network}. This can mean a "
                        "non-existent contract, the wrong network, or a scam."
                    ),
                    recommendation="Verify the module address and name, and check you are on the right network.",
                    confidence=ConfidenceLevel.VERY_HIGH,
                    evidence={"module_address": address, "module_name": module, "network": network},
                )],
                metadata={"module_address": address, "module_name": module, "network": network, "total_functions": 0},
            )

        findings = analyze_abi(abi)
        fn = abi.function(function)
        if fn is None:
            findings.insert(0, Finding(
                pattern_id="bytecode:function:not_found",
                category=Category.EXPLOIT,
                severity=Severity.CRITICAL,
                title="Function Not Found In Module",
                description=f'Function "{function}" does not exist in module {abi.address}::{abi.name}.',
                recommendation=(
                    "Verify you are calling the correct function. This could be an attempt to trick you "
                    "into signing a malicious transaction."
                ),
                confidence=ConfidenceLevel.VERY_HIGH,
                evidence={"claimed_function": function, "available_functions": [f.name for f in abi.functions]},
            ))

        return BytecodeReport(
            module_exists=True,
            function_exists=fn is not None,
            function=fn,
            findings=findings,
            metadata={
                "module_address": abi.address,
                "module_name": abi.name,
                "network": network,
                "claimed_function": function,
                "total_functions": len(abi.functions),
                "entry_functions": len(abi.entry_functions),
                "has_resource_abilities": any(s.has("key") or s.has("store") for s in abi.structs),
                "friend_modules": list(abi.friends),
            },
            abi=abi,
        )

    async def verify(self, network: str, address: str, module: str, function: str) -> ModuleVerification:
        """existence check only, for the result record"""
        if is_framework_address(address):
            return ModuleVerification(
                status="framework", module_exists=True, function_exists=True, is_framework_module=True
            )
        report = await self.analyze(network, address, module, function)
        return report.verification()
