"""semantic state analysis

judges a transaction by what it does to state rather than by what its
functions are called. balance deltas, permission grants and resource
lifecycle are read straight from the simulated write set, then turned into
sender-relative findings.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from guardian.models import (
    Category,
    ChangeType,
    ConfidenceLevel,
    Event,
    Finding,
    MapValue,
    Provenance,
    Severity,
    StateChange,
    numeric_value,
    to_plain,
)
from guardian.models.values import BoolValue
from guardian.patterns.thresholds import MAX_U128, MAX_U64
from guardian.whitelist import normalize_address

logger = logging.getLogger(__name__)

RESOURCE_PATTERNS = {
    "coin": [
        re.compile(r"::coin::CoinStore<", re.IGNORECASE),
        re.compile(r"::coin::Coin<", re.IGNORECASE),
        re.compile(r"::fungible_asset::FungibleStore", re.IGNORECASE),
        re.compile(r"::primary_fungible_store", re.IGNORECASE),
    ],
    "nft": [
        re.compile(r"::token::TokenStore", re.IGNORECASE),
        re.compile(r"::token::Token", re.IGNORECASE),
        re.compile(r"::object::ObjectCore", re.IGNORECASE),
        re.compile(r"::collection::Collection", re.IGNORECASE),
    ],
    "approval": [
        re.compile(r"::coin::SupplyConfig", re.IGNORECASE),
        re.compile(r"::coin::CoinInfo", re.IGNORECASE),
        re.compile(r"Allowance", re.IGNORECASE),
        re.compile(r"Approval", re.IGNORECASE),
        re.compile(r"Operator", re.IGNORECASE),
    ],
    "ownership": [
        re.compile(r"OwnerCapability", re.IGNORECASE),
        re.compile(r"AdminCapability", re.IGNORECASE),
        re.compile(r"::object::ObjectGroup", re.IGNORECASE),
        re.compile(r"::object::TransferRef", re.IGNORECASE),
    ],
    "stake": [
        re.compile(r"::stake::StakePool", re.IGNORECASE),
        re.compile(r"::staking_contract", re.IGNORECASE),
        re.compile(r"::delegation_pool", re.IGNORECASE),
    ],
}

KNOWN_TOKENS = {
    "0x1::aptos_coin::AptosCoin": {"symbol": "APT", "decimals": 8},
}

PERMISSION_EVENT = re.compile(r"Approval|Approve|SetOperator|OwnershipTransfer", re.IGNORECASE)
DEPOSIT_EVENT = re.compile(r"deposit|transfer.*to", re.IGNORECASE)
TOKEN_TYPE = re.compile(r"<(.+)>")
LEADING_ADDRESS = re.compile(r"^(0x[a-fA-F0-9]+)")

NET_LOSS_HIGH = 1_000_000_000
NET_LOSS_MEDIUM = 100_000_000
LARGE_PERCENTAGE = 50


def resource_kinds(resource: str) -> Set[str]:
    return {kind for kind, patterns in RESOURCE_PATTERNS.items() if any(p.search(resource) for p in patterns)}


def _leading_address(resource: str) -> str:
    match = LEADING_ADDRESS.match(resource)
    return match.group(1) if match else "unknown"


def _balance(payload: Optional[MapValue]) -> int:
    if payload is None:
        return 0
    coin_value = numeric_value(payload.path("coin", "value"))
    if coin_value is not None:
        return coin_value
    value = numeric_value(payload.get("value"))
    return value if value is not None else 0


def percentage_change(before: int, delta: int) -> float:
    """absolute percent moved, integer basis points rendered to two decimals"""
    if before > 0:
        return (abs(delta) * 10_000 // before) / 100
    return 100.0 if delta > 0 else 0.0


@dataclass(frozen=True)
class BalanceChange:
    address: str
    token_type: str
    before: int
    after: int
    token_symbol: Optional[str] = None

    @property
    def delta(self) -> int:
        return self.after - self.before

    @property
    def is_gain(self) -> bool:
        return self.delta > 0

    @property
    def is_loss(self) -> bool:
        return self.delta < 0

    @property
    def percentage(self) -> float:
        return percentage_change(self.before, self.delta)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "token_type": self.token_type,
            "token_symbol": self.token_symbol,
            "before": str(self.before),
            "after": str(self.after),
            "delta": str(self.delta),
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class PermissionChange:
    kind: str  # approval | ownership
    grantor: str
    grantee: str
    resource: str
    scope: str = "limited"  # limited | unlimited | revoked
    previous_state: Optional[Dict[str, Any]] = None
    new_state: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "grantor": self.grantor,
            "grantee": self.grantee,
            "resource": self.resource,
            "scope": self.scope,
        }


@dataclass(frozen=True)
class ResourceChange:
    kind: str  # created | destroyed
    resource_type: str
    owner: str
    value: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "resource_type": self.resource_type, "owner": self.owner}


@dataclass
class RiskIndicators:
    net_value_change: int = 0
    is_net_loss: bool = False
    has_unlimited_approval: bool = False
    has_ownership_transfer: bool = False
    affects_multiple_tokens: bool = False
    large_percentage_of_holdings: bool = False
    drain_pattern: bool = False
    honeypot_indicators: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "net_value_change": str(self.net_value_change),
            "is_net_loss": self.is_net_loss,
            "has_unlimited_approval": self.has_unlimited_approval,
            "has_ownership_transfer": self.has_ownership_transfer,
            "affects_multiple_tokens": self.affects_multiple_tokens,
            "large_percentage_of_holdings": self.large_percentage_of_holdings,
            "drain_pattern": self.drain_pattern,
            "honeypot_indicators": self.honeypot_indicators,
        }


@dataclass
class SemanticResult:
    balance_changes: List[BalanceChange] = field(default_factory=list)
    permission_changes: List[PermissionChange] = field(default_factory=list)
    resource_changes: List[ResourceChange] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)
    indicators: RiskIndicators = field(default_factory=RiskIndicators)
    you_will_send: List[BalanceChange] = field(default_factory=list)
    you_will_receive: List[BalanceChange] = field(default_factory=list)

    @property
    def permissions_granted(self) -> List[PermissionChange]:
        return [p for p in self.permission_changes if p.scope != "revoked"]

    @property
    def permissions_revoked(self) -> List[PermissionChange]:
        return [p for p in self.permission_changes if p.scope == "revoked"]

    @property
    def ownership_changes(self) -> List[PermissionChange]:
        return [p for p in self.permission_changes if p.kind == "ownership"]

    @property
    def resources_created(self) -> List[ResourceChange]:
        return [r for r in self.resource_changes if r.kind == "created"]

    @property
    def resources_destroyed(self) -> List[ResourceChange]:
        return [r for r in self.resource_changes if r.kind == "destroyed"]

    @property
    def summary(self) -> str:
        """plain-text account of what the user sends, receives and grants"""
        lines = []
        if self.you_will_send:
            lines.append("YOU WILL SEND:")
            lines.extend(f"  - {format_token_amount(c.delta, c.token_symbol)}" for c in self.you_will_send)
        if self.you_will_receive:
            lines.append("YOU WILL RECEIVE:")
            lines.extend(f"  + {format_token_amount(c.delta, c.token_symbol)}" for c in self.you_will_receive)
        elif self.you_will_send:
            lines.append("YOU WILL RECEIVE: NOTHING")
        if self.permissions_granted:
            lines.append("PERMISSIONS GRANTED:")
            for perm in self.permissions_granted:
                scope = "UNLIMITED" if perm.scope == "unlimited" else "limited"
                lines.append(f"  - {perm.kind} to {perm.grantee} ({scope})")
        if self.ownership_changes:
            lines.append("OWNERSHIP CHANGES:")
            lines.extend(f"  - transferring to {c.grantee}" for c in self.ownership_changes)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balance_changes": [c.to_dict() for c in self.balance_changes],
            "permission_changes": [p.to_dict() for p in self.permission_changes],
            "resource_changes": [r.to_dict() for r in self.resource_changes],
            "findings": [f.to_dict() for f in self.findings],
            "indicators": self.indicators.to_dict(),
            "summary": self.summary,
        }


def format_token_amount(delta: int, symbol: Optional[str] = None) -> str:
    amount = abs(delta)
    decimals = 8
    for info in KNOWN_TOKENS.values():
        if info["symbol"] == symbol:
            decimals = info["decimals"]
    whole, frac = divmod(amount, 10 ** decimals)
    text = f"{whole:,}"
    if frac:
        text += "." + f"{frac:0{decimals}d}".rstrip("0")
    return f"{text} {symbol or 'tokens'}"


def _payload_dict(payload: Optional[MapValue]) -> Optional[Dict[str, Any]]:
    return to_plain(payload) if payload is not None else None


class SemanticStateAnalyzer:

    def analyze(
        self,
        sender: Optional[str],
        state_changes: Iterable[StateChange],
        events: Iterable[Event],
    ) -> SemanticResult:
        state_changes = list(state_changes)
        events = list(events)

        result = SemanticResult(
            balance_changes=self.parse_balance_changes(state_changes),
            permission_changes=self.parse_permission_changes(state_changes, events),
            resource_changes=self.parse_resource_changes(state_changes),
        )
        indicators = result.indicators
        indicators.has_unlimited_approval = any(
            p.scope == "unlimited" and p.kind == "approval" for p in result.permission_changes
        )
        indicators.has_ownership_transfer = bool(result.ownership_changes)
        indicators.affects_multiple_tokens = len({c.token_type for c in result.balance_changes}) > 1
        indicators.honeypot_indicators = detect_honeypot_indicators(state_changes, events)

        if sender:
            self._sender_findings(result, sender)
        self._permission_findings(result)

        if result.findings:
            logger.debug(f"[Semantic] {len(result.findings)} findings from {len(state_changes)} state changes")
        return result

    def parse_balance_changes(self, state_changes: List[StateChange]) -> List[BalanceChange]:
        changes = []
        for change in state_changes:
            if "coin" not in resource_kinds(change.resource):
                continue
            before, after = _balance(change.before), _balance(change.after)
            if before == after:
                continue
            token = TOKEN_TYPE.search(change.resource)
            token_type = token.group(1) if token else "unknown"
            known = KNOWN_TOKENS.get(token_type)
            changes.append(BalanceChange(
                address=change.address or _leading_address(change.resource),
                token_type=token_type,
                before=before,
                after=after,
                token_symbol=known["symbol"] if known else None,
            ))
        return changes

    def parse_permission_changes(self, state_changes: List[StateChange], events: List[Event]) -> List[PermissionChange]:
        permissions = []
        for change in state_changes:
            kinds = resource_kinds(change.resource)
            if "approval" not in kinds and "ownership" not in kinds:
                continue
            grantee = "unknown"
            scope = "limited"
            if change.after is not None:
                # later keys win: new_owner over owner over operator over spender
                for key in ("spender", "operator", "owner", "new_owner"):
                    value = change.after.text(key)
                    if value:
                        grantee = value
                amount = numeric_value(change.after.get("amount"))
                if amount in (MAX_U64, MAX_U128):
                    scope = "unlimited"
            if change.change_type == ChangeType.DELETE:
                scope = "revoked"
            permissions.append(PermissionChange(
                kind="ownership" if "ownership" in kinds else "approval",
                grantor=change.address or _leading_address(change.resource),
                grantee=grantee,
                resource=change.resource,
                scope=scope,
                previous_state=_payload_dict(change.before),
                new_state=_payload_dict(change.after),
            ))

        for event in events:
            if not PERMISSION_EVENT.search(event.type):
                continue
            data = event.data
            permissions.append(PermissionChange(
                kind="ownership" if "owner" in event.type.lower() else "approval",
                grantor=data.text("owner") or data.text("from") or "unknown",
                grantee=data.text("spender") or data.text("operator") or data.text("to") or "unknown",
                resource=event.type,
            ))
        return permissions

    def parse_resource_changes(self, state_changes: List[StateChange]) -> List[ResourceChange]:
        resources = []
        for change in state_changes:
            owner = change.address or _leading_address(change.resource)
            if change.change_type == ChangeType.CREATE and change.before is None:
                resources.append(ResourceChange("created", change.resource, owner, _payload_dict(change.after)))
            elif change.change_type == ChangeType.DELETE:
                resources.append(ResourceChange("destroyed", change.resource, owner, _payload_dict(change.before)))
        return resources

    def _sender_findings(self, result: SemanticResult, sender: str):
        sender_key = normalize_address(sender)
        mine = [c for c in result.balance_changes if normalize_address(c.address) == sender_key]
        result.you_will_send = [c for c in mine if c.is_loss]
        result.you_will_receive = [c for c in mine if c.is_gain]

        indicators = result.indicators
        total_loss = sum(-c.delta for c in result.you_will_send)
        total_gain = sum(c.delta for c in result.you_will_receive)
        indicators.net_value_change = sum(c.delta for c in mine)
        indicators.is_net_loss = indicators.net_value_change < 0
        indicators.drain_pattern = total_loss > 0 and total_gain * 10 < total_loss
        large = [c for c in mine if c.before > 0 and c.percentage > LARGE_PERCENTAGE]
        indicators.large_percentage_of_holdings = bool(large)

        if total_loss > 0 and total_gain == 0:
            if total_loss > NET_LOSS_HIGH:
                severity = Severity.HIGH
            elif total_loss > NET_LOSS_MEDIUM:
                severity = Severity.MEDIUM
            else:
                severity = Severity.LOW
            sends = ", ".join(format_token_amount(c.delta, c.token_symbol) for c in result.you_will_send)
            result.findings.append(Finding(
                pattern_id="semantic:net_loss",
                category=Category.EXCESSIVE_COST,
                severity=severity,
                title="Transaction Results in Net Loss",
                description=f"This transaction makes you lose tokens. You will send: {sends}. You will receive: NOTHING.",
                recommendation="Verify this is the outcome you expect. If you expected tokens back, this may be a scam.",
                confidence=ConfidenceLevel.VERY_HIGH,
                source=Provenance.PATTERN,
                evidence={
                    "net_change": str(indicators.net_value_change),
                    "sends": [{"token": c.token_type, "amount": str(c.delta)} for c in result.you_will_send],
                    "receives": [],
                },
            ))

        if indicators.drain_pattern:
            result.findings.append(Finding(
                pattern_id="semantic:drain_pattern",
                category=Category.RUG_PULL,
                severity=Severity.CRITICAL,
                title="Drain Pattern Detected",
                description=(
                    "You lose significant token value and receive little or nothing in return. "
                    "This is how wallet drainers steal funds."
                ),
                recommendation="Do not sign this transaction unless you know exactly where the tokens are going.",
                confidence=0.9,
                source=Provenance.PATTERN,
                evidence={"total_lost": str(total_loss), "total_received": str(total_gain)},
            ))

        if large:
            affected = ", ".join(f"{c.token_symbol or c.token_type} ({c.percentage:.1f}%)" for c in large)
            result.findings.append(Finding(
                pattern_id="semantic:large_percentage",
                category=Category.PERMISSION,
                severity=Severity.HIGH,
                title="Large Percentage of Holdings Affected",
                description=f"This transaction moves more than half of your holdings for: {affected}.",
                recommendation="Transactions touching most of a balance deserve extra scrutiny.",
                confidence=ConfidenceLevel.HIGH,
                source=Provenance.PATTERN,
                evidence={"affected_tokens": [{"token": c.token_type, "percentage": c.percentage} for c in large]},
            ))

    def _permission_findings(self, result: SemanticResult):
        if result.indicators.has_unlimited_approval:
            unlimited = [p for p in result.permission_changes if p.scope == "unlimited"]
            result.findings.append(Finding(
                pattern_id="semantic:unlimited_approval",
                category=Category.EXPLOIT,
                severity=Severity.CRITICAL,
                title="Unlimited Approval Granted",
                description=(
                    f"This transaction grants unlimited spending approval to {', '.join(p.grantee for p in unlimited)}. "
                    "They can take every token of this type from your wallet at any time."
                ),
                recommendation="Approve only the exact amount needed.",
                confidence=ConfidenceLevel.VERY_HIGH,
                source=Provenance.PATTERN,
                evidence={"approvals": [{"grantee": p.grantee, "resource": p.resource} for p in unlimited]},
            ))

        if result.indicators.has_ownership_transfer:
            owners = result.ownership_changes
            result.findings.append(Finding(
                pattern_id="semantic:ownership_transfer",
                category=Category.RUG_PULL,
                severity=Severity.CRITICAL,
                title="Ownership Transfer in State Changes",
                description=(
                    f"Control is being handed to {', '.join(p.grantee for p in owners)}. "
                    "Ownership transfers are usually irreversible."
                ),
                recommendation="Only sign if you intend to give up control.",
                confidence=0.9,
                source=Provenance.PATTERN,
                evidence={
                    "ownership_changes": [
                        {"from": p.grantor, "to": p.grantee, "resource": p.resource} for p in owners
                    ],
                },
            ))

        destroyed = result.resources_destroyed
        if destroyed:
            result.findings.append(Finding(
                pattern_id="semantic:resource_destruction",
                category=Category.PERMISSION,
                severity=Severity.MEDIUM,
                title="Resources Being Permanently Destroyed",
                description=(
                    f"This transaction permanently destroys {len(destroyed)} resource(s): "
                    f"{', '.join(r.resource_type for r in destroyed)}."
                ),
                recommendation="Verify the destruction is intended. Some resources cannot be recreated.",
                confidence=ConfidenceLevel.MEDIUM,
                source=Provenance.PATTERN,
                evidence={"destroyed": [{"type": r.resource_type, "owner": r.owner} for r in destroyed]},
            ))


def detect_honeypot_indicators(state_changes: List[StateChange], events: List[Event]) -> bool:
    """deposit events alongside a write that disables withdrawals"""
    has_deposit = any(DEPOSIT_EVENT.search(event.type) for event in events)
    if not has_deposit:
        return False
    for change in state_changes:
        if change.after is None:
            continue
        for key in ("withdraw_disabled", "locked"):
            flag = change.after.get(key)
            if isinstance(flag, BoolValue) and flag.value:
                return True
    return False
