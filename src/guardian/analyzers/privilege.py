"""privileged entry points and escalation paths of a deployed module"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from guardian.analyzers.chain_client import ChainClient, ModuleABI, ModuleFunction
from guardian.models import Category, ConfidenceLevel, Finding, Severity

logger = logging.getLogger(__name__)

ADMIN_NAME = re.compile(r"admin|owner|set_|update_|upgrade|pause|unpause|emergency", re.IGNORECASE)
OWNERSHIP_TRANSFER = re.compile(r"transfer.*owner|set.*owner|change.*owner|update.*admin", re.IGNORECASE)
UPGRADE = re.compile(r"upgrade|migrate|set.*impl|set.*code", re.IGNORECASE)

# exact names, risk, reason
HIGH_RISK_FUNCTIONS = {
    "set_admin": ("critical", "Direct admin assignment"),
    "transfer_ownership": ("critical", "Ownership transfer"),
    "upgrade": ("critical", "Contract upgrade"),
    "pause": ("high", "Can halt operations"),
    "emergency_withdraw": ("high", "Emergency extraction"),
    "mint": ("high", "Token creation"),
    "set_fee": ("medium", "Fee manipulation"),
    "blacklist": ("medium", "User blocking"),
    "burn": ("medium", "Token destruction"),
}


def is_high_risk_function(name: str) -> Optional[Dict[str, str]]:
    entry = HIGH_RISK_FUNCTIONS.get(name.lower())
    if entry is None:
        return None
    return {"risk": entry[0], "reason": entry[1]}


@dataclass
class AdminFunction:
    name: str
    is_public_entry: bool
    takes_signer: bool
    risk: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "is_public_entry": self.is_public_entry,
            "takes_signer": self.takes_signer,
            "risk": self.risk,
        }


@dataclass
class EscalationPath:
    kind: str
    function: str
    severity: Severity
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "function": self.function,
            "severity": self.severity.value,
            "description": self.description,
        }


@dataclass
class PrivilegeReport:
    admin_functions: List[AdminFunction] = field(default_factory=list)
    escalation_paths: List[EscalationPath] = field(default_factory=list)
    stored_signer_structs: List[str] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)

    @property
    def has_escalation(self) -> bool:
        return bool(self.escalation_paths)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_escalation": self.has_escalation,
            "admin_functions": [a.to_dict() for a in self.admin_functions],
            "escalation_paths": [p.to_dict() for p in self.escalation_paths],
            "stored_signer_structs": list(self.stored_signer_structs),
            "findings": [f.to_dict() for f in self.findings],
        }


def _admin_risk(fn: ModuleFunction) -> str:
    known = is_high_risk_function(fn.name)
    if fn.is_public_entry and not fn.takes_signer:
        return "critical"
    if known:
        return known["risk"]
    return "medium" if fn.visibility == "public" else "low"


def privilege_report(abi: ModuleABI) -> PrivilegeReport:
    report = PrivilegeReport()

    for fn in abi.functions:
        if ADMIN_NAME.search(fn.name) or is_high_risk_function(fn.name):
            report.admin_functions.append(AdminFunction(
                name=fn.name,
                is_public_entry=fn.is_public_entry,
                takes_signer=fn.takes_signer,
                risk=_admin_risk(fn),
            ))

            if fn.is_public_entry and not fn.takes_signer:
                report.escalation_paths.append(EscalationPath(
                    kind="unchecked_admin",
                    function=fn.name,
                    severity=Severity.CRITICAL,
                    description=f"Admin function '{fn.name}' is a public entry point without a signer parameter",
                ))

        if fn.visibility == "public" and OWNERSHIP_TRANSFER.search(fn.name):
            report.escalation_paths.append(EscalationPath(
                kind="ownership_transfer",
                function=fn.name,
                severity=Severity.CRITICAL,
                description=f"Ownership can be transferred through public function '{fn.name}'",
            ))

        if fn.visibility == "public" and UPGRADE.search(fn.name):
            report.escalation_paths.append(EscalationPath(
                kind="upgradeable",
                function=fn.name,
                severity=Severity.MEDIUM,
                description=f"Public function '{fn.name}' can replace module logic",
            ))

    for struct in abi.structs:
        if any("SignerCapability" in field_type for _, field_type in struct.fields):
            report.stored_signer_structs.append(struct.name)
    if report.stored_signer_structs:
        report.escalation_paths.append(EscalationPath(
            kind="stored_signer",
            function="",
            severity=Severity.CRITICAL,
            description=(
                f"Module stores signer capabilities in {', '.join(report.stored_signer_structs)}, "
                "which can be used to act as the original signer indefinitely"
            ),
        ))

    for path in report.escalation_paths:
        report.findings.append(_path_finding(path))
    return report


RECOMMENDATIONS = {
    "unchecked_admin": "Add a signer parameter and verify it against the stored admin address.",
    "ownership_transfer": "Require multi-sig or a timelock for ownership changes.",
    "upgradeable": "Use a timelock and multi-sig for upgrade functions.",
    "stored_signer": "Use resource accounts or generate fresh signers instead of storing capabilities.",
}

TITLES = {
    "unchecked_admin": "Unchecked Admin Function",
    "ownership_transfer": "Unprotected Ownership Transfer",
    "upgradeable": "Upgradeable Contract Risk",
    "stored_signer": "Stored Signer Capability Detected",
}


def _path_finding(path: EscalationPath) -> Finding:
    title = TITLES[path.kind]
    if path.function:
        title = f"{title}: {path.function}"
    return Finding(
        pattern_id=f"priv:{path.kind}",
        category=Category.PERMISSION,
        severity=path.severity,
        title=title,
        description=path.description + ".",
        recommendation=RECOMMENDATIONS[path.kind],
        confidence=ConfidenceLevel.MEDIUM if path.kind == "upgradeable" else ConfidenceLevel.HIGH,
        evidence=path.to_dict(),
    )


class PrivilegeAnalyzer:

    def __init__(self, chain_client: ChainClient):
        self.chain_client = chain_client

    async def analyze(self, network: str, address: str, module: str, abi: Optional[ModuleABI] = None) -> PrivilegeReport:
        if abi is None:
            abi = await self.chain_client.get_module(network, address, module)
        if abi is None:
            logger.info(f"[Privilege] {address}::{module} not found on {network}")
            return PrivilegeReport()
        return privilege_report(abi)
