"""investigation without a model: run the module analyzers and denylist directly"""

import logging
from typing import Iterable, List, Optional

from guardian.ai.request import PipelineRequest
from guardian.analyzers.bytecode import BytecodeAnalyzer
from guardian.analyzers.chain_client import ChainClient
from guardian.analyzers.overflow import OverflowAnalyzer
from guardian.analyzers.privilege import PrivilegeAnalyzer
from guardian.models import Category, Finding, Provenance, Severity
from guardian.threat_feed import LocalDenylist

logger = logging.getLogger(__name__)

FOCUS_AREAS = ("overflow", "privileges", "threats", "bytecode")

RESOURCE_PATTERNS = ("bytecode:function:returns_capability", "bytecode:struct:copy_without_drop")


def _finding(pattern_id: str, category: Category, severity: Severity, title: str, description: str,
             recommendation: str, confidence: float) -> Finding:
    return Finding(
        pattern_id=pattern_id,
        category=category,
        severity=severity,
        title=title,
        description=description,
        recommendation=recommendation,
        confidence=confidence,
        source=Provenance.LLM,
    )


async def _overflow(request: PipelineRequest, module: str, chain_client: ChainClient) -> List[Finding]:
    report = await OverflowAnalyzer(chain_client).analyze(request.call.network, request.module_address, module)
    if not report.has_overflow_risk or report.risk_level == "low":
        return []
    return [_finding(
        "ai:quick:overflow",
        Category.EXPLOIT,
        Severity.CRITICAL if report.risk_level == "critical" else Severity.HIGH,
        "Integer Overflow Risk Detected",
        f"Module has {len(report.risky_functions)} risky arithmetic functions and "
        f"{len(report.library_usage)} uses of vulnerable math libraries (risk {report.risk_level}).",
        "Verify arithmetic operations are bounds-checked.",
        0.8,
    )]


async def _privileges(request: PipelineRequest, module: str, chain_client: ChainClient) -> List[Finding]:
    report = await PrivilegeAnalyzer(chain_client).analyze(request.call.network, request.module_address, module)
    if not report.has_escalation:
        return []
    return [_finding(
        "ai:quick:privilege",
        Category.PERMISSION,
        Severity.HIGH,
        "Privilege Escalation Risk",
        f"Found {len(report.escalation_paths)} potential escalation paths.",
        "Review access control and signer requirements.",
        0.75,
    )]


def _threats(request: PipelineRequest, denylist: LocalDenylist) -> List[Finding]:
    findings = []
    module_entry = denylist.lookup(request.module_address)
    if module_entry:
        findings.append(_finding(
            "ai:quick:malicious",
            Category.EXPLOIT,
            Severity.CRITICAL,
            "Known Malicious Address",
            f"Module address belongs to {module_entry.actor_name} ({module_entry.incident}).",
            "Do not interact with this contract.",
            0.95,
        ))
    sender = request.call.sender
    if sender:
        sender_entry = denylist.lookup(sender)
        if sender_entry:
            findings.append(_finding(
                "ai:quick:malicious-sender",
                Category.EXPLOIT,
                Severity.HIGH,
                "Sender Associated with Threats",
                f"Transaction sender matches {sender_entry.actor_name} in the threat database.",
                "Verify sender identity and intent.",
                0.9,
            ))
    return findings


async def _bytecode(request: PipelineRequest, module: str, chain_client: ChainClient) -> List[Finding]:
    call = request.call
    report = await BytecodeAnalyzer(chain_client).analyze(call.network, call.module_address, module, call.function_name)
    if not report.module_exists:
        return []
    findings = []
    resource_risks = [f for f in report.findings if f.pattern_id in RESOURCE_PATTERNS]
    if resource_risks:
        findings.append(_finding(
            "ai:quick:bytecode:resource",
            Category.PERMISSION,
            Severity.MEDIUM,
            "Resource Access Patterns",
            f"Module has {len(resource_risks)} resource access patterns that warrant review.",
            "Review resource access control.",
            0.6,
        ))
    if any(f.pattern_id == "bytecode:function:critical_mutators" for f in report.findings):
        findings.append(_finding(
            "ai:quick:bytecode:privileged",
            Category.PERMISSION,
            Severity.MEDIUM,
            "Privileged Functions Detected",
            "Module contains functions that require elevated permissions.",
            "Verify signer requirements for privileged operations.",
            0.65,
        ))
    return findings


async def quick_check(
    request: PipelineRequest,
    focus_areas: Iterable[str],
    chain_client: ChainClient,
    denylist: Optional[LocalDenylist] = None,
) -> List[Finding]:
    """a failing focus area is logged and skipped, the others still run"""
    denylist = denylist or LocalDenylist()
    module = request.call.module_name or "unknown"
    findings: List[Finding] = []

    for focus in focus_areas:
        try:
            if focus == "overflow":
                findings.extend(await _overflow(request, module, chain_client))
            elif focus == "privileges":
                findings.extend(await _privileges(request, module, chain_client))
            elif focus == "threats":
                findings.extend(_threats(request, denylist))
            elif focus == "bytecode":
                findings.extend(await _bytecode(request, module, chain_client))
            else:
                logger.warning(f"[QuickCheck] unknown focus area {focus}")
        except Exception as e:
            logger.warning(f"[QuickCheck] {focus} check failed: {e}")

    return findings
