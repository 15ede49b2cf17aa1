"""integer overflow exposure of a deployed module, judged from its interface"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from guardian.analyzers.chain_client import ChainClient, ModuleABI
from guardian.models import Category, ConfidenceLevel, Finding, Severity

logger = logging.getLogger(__name__)

RISK_LEVELS = ("none", "low", "medium", "high", "critical")


@dataclass(frozen=True)
class VulnerableLibrary:
    name: str
    vulnerable_functions: Tuple[str, ...]
    vulnerability: str
    severity: Severity
    incident: Optional[str] = None


VULNERABLE_LIBRARIES: Tuple[VulnerableLibrary, ...] = (
    VulnerableLibrary(
        name="integer-mate",
        vulnerable_functions=("checked_shlw", "checked_shl", "full_mul", "mul_shr"),
        vulnerability="Unchecked shift operations can overflow with malicious input",
        severity=Severity.CRITICAL,
        incident="Cetus Protocol Hack (2025-05-22, $223,000,000)",
    ),
    VulnerableLibrary(
        name="u256",
        vulnerable_functions=("mul", "shl", "pow"),
        vulnerability="Large number arithmetic without overflow protection",
        severity=Severity.HIGH,
    ),
    VulnerableLibrary(
        name="fixed_point32",
        vulnerable_functions=("multiply_u64", "divide_u64"),
        vulnerability="Fixed-point arithmetic can lose precision or overflow",
        severity=Severity.MEDIUM,
    ),
    VulnerableLibrary(
        name="fixed_point64",
        vulnerable_functions=("multiply_u128", "divide_u128"),
        vulnerability="Fixed-point arithmetic can lose precision or overflow",
        severity=Severity.MEDIUM,
    ),
    VulnerableLibrary(
        name="math64",
        vulnerable_functions=("pow", "mul_div"),
        vulnerability="Exponentiation and combined operations can overflow",
        severity=Severity.HIGH,
    ),
    VulnerableLibrary(
        name="math128",
        vulnerable_functions=("pow", "mul_div", "sqrt"),
        vulnerability="Large number math without overflow protection",
        severity=Severity.HIGH,
    ),
)

# (name pattern, operation, risk)
DANGEROUS_ARITHMETIC_PATTERNS = [
    (re.compile(r"^(mul|multiply|mult)_", re.IGNORECASE), "multiplication", "high"),
    (re.compile(r"^(shl|shift_left|left_shift)", re.IGNORECASE), "left shift", "critical"),
    (re.compile(r"^(pow|power|exp)", re.IGNORECASE), "exponentiation", "critical"),
    (re.compile(r"^(full_mul|wide_mul)", re.IGNORECASE), "wide multiplication", "high"),
    (re.compile(r"_unchecked$", re.IGNORECASE), "unchecked operation", "critical"),
    (re.compile(r"^unsafe_", re.IGNORECASE), "unsafe operation", "high"),
]

SAFE_ARITHMETIC_PATTERNS = [
    re.compile(r"^checked_", re.IGNORECASE),
    re.compile(r"^safe_", re.IGNORECASE),
    re.compile(r"_overflow$", re.IGNORECASE),
    re.compile(r"_saturating$", re.IGNORECASE),
    re.compile(r"^try_", re.IGNORECASE),
]

LARGE_INT_ARITHMETIC = re.compile(r"mul|add|sub|pow|shift", re.IGNORECASE)


def _uses(function_name: str, library_function: str) -> bool:
    return re.search(rf"(^|_){re.escape(library_function)}($|_)", function_name) is not None


def is_safe_arithmetic(name: str) -> bool:
    return any(p.search(name) for p in SAFE_ARITHMETIC_PATTERNS)


def quick_overflow_check(function_name: str, param_types: List[str]) -> Optional[Tuple[str, str]]:
    """(operation, risk) when the signature alone suggests overflow exposure"""
    for pattern, operation, risk in DANGEROUS_ARITHMETIC_PATTERNS:
        if pattern.search(function_name):
            return operation, risk
    if is_safe_arithmetic(function_name):
        return None
    large_ints = any("u128" in t or "u256" in t for t in param_types)
    if large_ints and LARGE_INT_ARITHMETIC.search(function_name):
        return "large integer arithmetic", "low"
    return None


@dataclass
class LibraryUsage:
    library: str
    function: str
    caller: str
    vulnerability: str
    severity: Severity
    incident: Optional[str] = None


@dataclass
class OverflowReport:
    risk_level: str = "none"
    library_usage: List[LibraryUsage] = field(default_factory=list)
    risky_functions: List[Dict[str, str]] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)

    @property
    def has_overflow_risk(self) -> bool:
        return self.risk_level != "none"

    @property
    def summary(self) -> str:
        if not self.has_overflow_risk:
            return "No integer overflow exposure detected."
        lines = [f"Overflow risk: {self.risk_level.upper()}"]
        for usage in self.library_usage:
            line = f"- {usage.library}::{usage.function} used by {usage.caller}"
            if usage.incident:
                line += f" ({usage.incident})"
            lines.append(line)
        for fn in self.risky_functions:
            lines.append(f"- {fn['function']}: {fn['operation']} ({fn['risk']} risk)")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_overflow_risk": self.has_overflow_risk,
            "risk_level": self.risk_level,
            "vulnerable_library_usage": [
                {
                    "library": u.library,
                    "function": u.function,
                    "caller": u.caller,
                    "severity": u.severity.value,
                    "incident": u.incident,
                }
                for u in self.library_usage
            ],
            "risky_functions": list(self.risky_functions),
            "findings": [f.to_dict() for f in self.findings],
            "summary": self.summary,
        }


def _risk_level(usages: List[LibraryUsage], risky: List[Dict[str, str]]) -> str:
    risks = [u.severity.value.lower() for u in usages] + [r["risk"] for r in risky]
    if not risks:
        return "none"
    # library severities and arithmetic risks share the same names
    return max(risks, key=RISK_LEVELS.index)


def overflow_report(abi: ModuleABI) -> OverflowReport:
    usages = []
    risky = []
    for fn in abi.functions:
        for library in VULNERABLE_LIBRARIES:
            for vulnerable in library.vulnerable_functions:
                if _uses(fn.name, vulnerable):
                    usages.append(LibraryUsage(
                        library=library.name,
                        function=vulnerable,
                        caller=fn.name,
                        vulnerability=library.vulnerability,
                        severity=library.severity,
                        incident=library.incident,
                    ))
        hit = quick_overflow_check(fn.name, list(fn.params))
        if hit:
            operation, risk = hit
            risky.append({"function": fn.name, "operation": operation, "risk": risk})

    findings = []
    for usage in usages:
        findings.append(Finding(
            pattern_id=f"overflow:vulnerable_library:{usage.library}",
            category=Category.EXPLOIT,
            severity=usage.severity,
            title=f"Usage of Vulnerable Library: {usage.library}",
            description=(
                f"Function '{usage.caller}' uses '{usage.function}' from '{usage.library}'. {usage.vulnerability}."
                + (f" This library was involved in the {usage.incident}." if usage.incident else "")
            ),
            recommendation="Audit usage carefully, add input validation, or use safer alternatives.",
            confidence=ConfidenceLevel.HIGH if usage.incident else ConfidenceLevel.MEDIUM,
            evidence={
                "library": usage.library,
                "function": usage.function,
                "caller": usage.caller,
                "known_incident": usage.incident or "none",
            },
        ))
    for fn in risky:
        if fn["risk"] not in ("high", "critical"):
            continue
        findings.append(Finding(
            pattern_id=f"overflow:arithmetic:{fn['operation'].replace(' ', '_')}",
            category=Category.EXPLOIT,
            severity=Severity.HIGH if fn["risk"] == "critical" else Severity.MEDIUM,
            title=f"Unchecked Arithmetic: {fn['function']}",
            description=(
                f"Function '{fn['function']}' performs {fn['operation']} without a checked or safe variant. "
                "Unchecked shifts are the class of bug behind the Cetus overflow."
            ),
            recommendation="Bound inputs before arithmetic and prefer checked_* variants.",
            confidence=ConfidenceLevel.MEDIUM,
            evidence=dict(fn),
        ))

    return OverflowReport(
        risk_level=_risk_level(usages, risky),
        library_usage=usages,
        risky_functions=risky,
        findings=findings,
    )


class OverflowAnalyzer:

    def __init__(self, chain_client: ChainClient):
        self.chain_client = chain_client

    async def analyze(self, network: str, address: str, module: str, abi: Optional[ModuleABI] = None) -> OverflowReport:
        if abi is None:
            abi = await self.chain_client.get_module(network, address, module)
        if abi is None:
            logger.info(f"[Overflow] {address}::{module} not found on {network}")
            return OverflowReport()
        return overflow_report(abi)
