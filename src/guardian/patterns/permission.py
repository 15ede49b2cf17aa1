"""permission patterns: admin calls, pause toggles, upgrades, role grants, config, timelocks"""

from typing import List, Optional

from guardian.models import Category, Severity
from guardian.patterns.base import IssueTemplate, Match, PatternContext, RiskPattern
from guardian.whitelist import normalize_address

ADMIN_PREFIXES = ("set_", "update_", "admin_", "configure_", "modify_", "change_")
ADMIN_KEYWORDS = ("admin", "owner", "governance", "manager", "operator", "controller")

UNPAUSE_KEYWORDS = ("unpause", "unfreeze", "resume")
PAUSE_KEYWORDS = ("pause", "freeze", "halt", "stop", "emergency_stop")

UPGRADE_KEYWORDS = ("upgrade", "migrate", "set_implementation", "update_code", "publish_package", "deploy")
CODE_MODULE = (normalize_address("0x1"), "code")


def _admin_call(ctx: PatternContext) -> Optional[Match]:
    if ctx.function_lower.startswith(ADMIN_PREFIXES):
        return Match(confidence=0.85, evidence={"function": ctx.call.function_name, "matched_by": "prefix"})
    keywords = [k for k in ADMIN_KEYWORDS if k in ctx.function_lower]
    if keywords:
        return Match(confidence=0.7, evidence={"function": ctx.call.function_name, "matched_by": keywords})
    return None


def _pause_toggle(ctx: PatternContext) -> Optional[Match]:
    # unpause contains pause, so it is checked first
    if ctx.name_has(*UNPAUSE_KEYWORDS):
        return Match(severity=Severity.MEDIUM, confidence=0.9, evidence={"function": ctx.call.function_name, "pausing": False})
    if ctx.name_has(*PAUSE_KEYWORDS):
        return Match(severity=Severity.HIGH, confidence=0.9, evidence={"function": ctx.call.function_name, "pausing": True})
    return None


def _upgrade(ctx: PatternContext) -> Optional[Match]:
    into_code = (normalize_address(ctx.call.module_address), ctx.call.module_name) == CODE_MODULE
    if not (into_code or ctx.name_has(*UPGRADE_KEYWORDS)):
        return None
    return Match(confidence=0.95, evidence={"function": ctx.call.function, "code_module": into_code})


def _keyword_rule(keywords, confidence: float):
    def predicate(ctx: PatternContext) -> Optional[Match]:
        hits = [k for k in keywords if k in ctx.function_lower]
        if not hits:
            return None
        return Match(confidence=confidence, evidence={"function": ctx.call.function_name, "keywords": hits})
    return predicate


def get_permission_patterns() -> List[RiskPattern]:
    patterns = []

    patterns.append(RiskPattern(
        id="permission:admin:privileged_call",
        category=Category.PERMISSION,
        severity=Severity.HIGH,
        name="Admin Function",
        description="Call to a function that needs elevated privileges",
        template=IssueTemplate(
            title="Admin Function Detected",
            description=(
                "This transaction calls an administrative function. Admin functions can change how the "
                "contract behaves for every user."
            ),
            recommendation="Make sure the action is expected and went through the project's governance.",
        ),
        predicate=_admin_call,
    ))

    patterns.append(RiskPattern(
        id="permission:pause:toggle",
        category=Category.PERMISSION,
        severity=Severity.HIGH,
        name="Pause Toggle",
        description="Contract paused or unpaused",
        template=IssueTemplate(
            title="Contract Pause State Change",
            description=(
                "The pause state of the contract is changing. A paused contract can lock user funds until "
                "it is resumed."
            ),
            recommendation="Check whether this is an emergency response or routine maintenance.",
        ),
        predicate=_pause_toggle,
    ))

    patterns.append(RiskPattern(
        id="permission:upgrade:contract",
        category=Category.PERMISSION,
        severity=Severity.CRITICAL,
        name="Contract Upgrade",
        description="Code published, upgraded or migrated",
        template=IssueTemplate(
            title="Contract Upgrade Detected",
            description=(
                "Contract code is being upgraded or replaced. An upgrade can change every rule the "
                "contract enforces."
            ),
            recommendation="Review the new code and confirm it has been audited and approved.",
        ),
        predicate=_upgrade,
    ))

    patterns.append(RiskPattern(
        id="permission:emergency:action",
        category=Category.PERMISSION,
        severity=Severity.HIGH,
        name="Emergency Function",
        description="Emergency or recovery entry point",
        template=IssueTemplate(
            title="Emergency Function Invoked",
            description=(
                "An emergency function is being called. These usually skip the normal checks and can make "
                "sweeping state changes."
            ),
            recommendation="Confirm there is a real emergency and the caller is authorized.",
        ),
        predicate=_keyword_rule(("emergency", "urgent", "critical", "rescue", "recover", "salvage"), 0.9),
    ))

    patterns.append(RiskPattern(
        id="permission:role:grant",
        category=Category.PERMISSION,
        severity=Severity.HIGH,
        name="Role Grant",
        description="Role or permission granted to an address",
        template=IssueTemplate(
            title="Permission/Role Grant Detected",
            description=(
                "A role or permission is being granted. The recipient gains elevated privileges within "
                "the contract."
            ),
            recommendation="Verify the recipient and what the role allows it to do.",
        ),
        predicate=_keyword_rule(
            ("grant_role", "add_role", "set_role", "authorize", "add_operator", "add_minter",
             "add_admin", "grant_permission", "add_signer"),
            0.85,
        ),
    ))

    patterns.append(RiskPattern(
        id="permission:config:change",
        category=Category.PERMISSION,
        severity=Severity.MEDIUM,
        name="Config Change",
        description="Protocol parameter changed",
        template=IssueTemplate(
            title="Configuration Change Detected",
            description="Protocol configuration parameters are being modified.",
            recommendation="Check that the new values are within sensible ranges and properly authorized.",
        ),
        predicate=_keyword_rule(
            ("set_config", "update_config", "set_param", "set_parameter", "configure",
             "set_threshold", "set_limit", "set_delay"),
            0.8,
        ),
    ))

    patterns.append(RiskPattern(
        id="permission:timelock:bypass",
        category=Category.PERMISSION,
        severity=Severity.CRITICAL,
        name="Timelock Bypass",
        description="Action executed without waiting for the timelock",
        template=IssueTemplate(
            title="Timelock Bypass Detected",
            description=(
                "This transaction appears to skip the timelock delay that gives users time to react to "
                "governance decisions."
            ),
            recommendation="Only accept a bypass for a documented emergency with governance approval.",
        ),
        predicate=_keyword_rule(("skip_timelock", "bypass", "force_execute", "immediate", "override", "expedite"), 0.85),
    ))

    return patterns
