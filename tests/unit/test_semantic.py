"""tests for balance, permission and resource semantics of simulated state changes"""

from guardian.models import Category, Event, Severity, StateChange
from guardian.patterns.thresholds import MAX_U64
from guardian.semantic import (
    SemanticStateAnalyzer,
    detect_honeypot_indicators,
    format_token_amount,
    percentage_change,
    resource_kinds,
)

from tests.conftest import APT_STORE, RECIPIENT, SENDER, coin_change

OTHER_STORE = "0x1::coin::CoinStore<0xabc::usdc::USDC>"


def _changes(*raw):
    return [StateChange.from_dict(c) for c in raw]


def _ids(result):
    return {f.pattern_id: f for f in result.findings}


class TestBalanceChanges:

    def test_plain_send(self):
        changes = _changes(
            coin_change(SENDER, 1_000_000_000, 900_000_000),
            coin_change(RECIPIENT, 0, 100_000_000),
        )
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])

        assert len(result.balance_changes) == 2
        assert result.balance_changes[0].token_symbol == "APT"
        assert [c.delta for c in result.you_will_send] == [-100_000_000]
        assert result.you_will_receive == []
        assert result.indicators.is_net_loss
        assert result.indicators.drain_pattern

        findings = _ids(result)
        assert findings["semantic:net_loss"].severity == Severity.LOW
        assert findings["semantic:drain_pattern"].severity == Severity.CRITICAL
        assert findings["semantic:drain_pattern"].category == Category.RUG_PULL
        assert "semantic:large_percentage" not in findings

    def test_net_loss_severity_scales(self):
        changes = _changes(coin_change(SENDER, 10_000_000_000, 8_000_000_000))
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        assert _ids(result)["semantic:net_loss"].severity == Severity.HIGH

    def test_swap_is_not_a_drain(self):
        changes = _changes(
            coin_change(SENDER, 2_000_000_000, 1_000_000_000),
            coin_change(SENDER, 0, 500_000_000, resource=OTHER_STORE),
        )
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        assert not result.indicators.drain_pattern
        assert result.indicators.affects_multiple_tokens
        assert "semantic:net_loss" not in _ids(result)
        assert "semantic:drain_pattern" not in _ids(result)

    def test_drain_ratio_exact_for_large_amounts(self):
        gain = 10**18
        # a float division rounds (10 * gain + 1) / 10 down to gain
        drained = _changes(
            coin_change(SENDER, 10 * gain + 1, 0),
            coin_change(SENDER, 0, gain, resource=OTHER_STORE),
        )
        assert SemanticStateAnalyzer().analyze(SENDER, drained, []).indicators.drain_pattern

        tenth = _changes(
            coin_change(SENDER, 10 * gain, 0),
            coin_change(SENDER, 0, gain, resource=OTHER_STORE),
        )
        assert not SemanticStateAnalyzer().analyze(SENDER, tenth, []).indicators.drain_pattern

    def test_large_percentage(self):
        changes = _changes(coin_change(SENDER, 1000, 100), coin_change(SENDER, 0, 5000, resource=OTHER_STORE))
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        finding = _ids(result)["semantic:large_percentage"]
        assert finding.evidence["affected_tokens"][0]["percentage"] == 90.0

    def test_no_sender_no_sender_findings(self):
        changes = _changes(coin_change(SENDER, 1_000_000_000, 0))
        result = SemanticStateAnalyzer().analyze(None, changes, [])
        assert result.findings == []
        assert len(result.balance_changes) == 1

    def test_padded_sender_address_matches(self):
        padded = "0x" + "0" * 59 + "a11ce"
        changes = _changes(coin_change(SENDER, 500, 100))
        result = SemanticStateAnalyzer().analyze(padded, changes, [])
        assert len(result.you_will_send) == 1

    def test_unchanged_balance_ignored(self):
        changes = _changes(coin_change(SENDER, 500, 500))
        assert SemanticStateAnalyzer().analyze(SENDER, changes, []).balance_changes == []

    def test_non_coin_resource_ignored(self):
        changes = _changes(coin_change(SENDER, 1, 2, resource="0xabc::game::Score"))
        assert SemanticStateAnalyzer().analyze(SENDER, changes, []).balance_changes == []


class TestPermissions:

    def test_unlimited_approval(self):
        changes = _changes({
            "address": SENDER,
            "resource": "0xabc::token::Approval",
            "type": "modify",
            "after": {"spender": "0xevil", "amount": str(MAX_U64)},
        })
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        assert result.indicators.has_unlimited_approval
        finding = _ids(result)["semantic:unlimited_approval"]
        assert finding.severity == Severity.CRITICAL
        assert "0xevil" in finding.description
        assert "UNLIMITED" in result.summary

    def test_limited_approval_no_finding(self):
        changes = _changes({
            "address": SENDER,
            "resource": "0xabc::token::Allowance",
            "after": {"spender": "0xdex", "amount": "100"},
        })
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        assert result.permission_changes[0].scope == "limited"
        assert "semantic:unlimited_approval" not in _ids(result)

    def test_ownership_transfer(self):
        changes = _changes({
            "address": SENDER,
            "resource": "0xabc::vault::OwnerCapability",
            "after": {"owner": "0xold", "new_owner": "0xnew"},
        })
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        assert result.ownership_changes[0].grantee == "0xnew"
        assert _ids(result)["semantic:ownership_transfer"].category == Category.RUG_PULL

    def test_deleted_approval_is_revoked(self):
        changes = _changes({
            "address": SENDER,
            "resource": "0xabc::token::Approval",
            "type": "delete_resource",
            "before": {"spender": "0xdex", "amount": "5"},
        })
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        assert len(result.permissions_revoked) == 1
        assert result.permissions_granted == []

    def test_approval_event(self):
        events = [Event.from_dict({"type": "0xabc::token::ApprovalEvent", "data": {"owner": SENDER, "spender": "0xdex"}})]
        result = SemanticStateAnalyzer().analyze(SENDER, [], events)
        assert result.permission_changes[0].grantee == "0xdex"
        assert result.permission_changes[0].grantor == SENDER


class TestResources:

    def test_destroyed_resource(self):
        changes = _changes({"address": SENDER, "resource": "0xabc::nft::Ticket", "type": "delete", "before": {"id": "1"}})
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        assert len(result.resources_destroyed) == 1
        assert _ids(result)["semantic:resource_destruction"].severity == Severity.MEDIUM

    def test_created_resource(self):
        changes = _changes({"address": SENDER, "resource": "0xabc::nft::Ticket", "type": "create", "after": {"id": "1"}})
        result = SemanticStateAnalyzer().analyze(SENDER, changes, [])
        assert result.resources_created[0].owner == SENDER
        assert result.findings == []


class TestHelpers:

    def test_format_token_amount(self):
        assert format_token_amount(-150_000_000, "APT") == "1.5 APT"
        assert format_token_amount(100_000_000_000) == "1,000 tokens"

    def test_percentage_change(self):
        assert percentage_change(1000, -333) == 33.3
        assert percentage_change(0, 5) == 100.0
        assert percentage_change(0, 0) == 0.0

    def test_resource_kinds(self):
        assert resource_kinds(APT_STORE) == {"coin"}
        assert "ownership" in resource_kinds("0x1::object::TransferRef")

    def test_honeypot(self):
        changes = _changes({"address": "0xabc", "resource": "0xabc::pool::Config", "after": {"withdraw_disabled": True}})
        deposit = [Event.from_dict({"type": "0x1::coin::DepositEvent"})]
        assert detect_honeypot_indicators(changes, deposit)
        assert not detect_honeypot_indicators(changes, [])

    def test_summary_lists_sends(self):
        changes = _changes(coin_change(SENDER, 1_000_000_000, 900_000_000))
        summary = SemanticStateAnalyzer().analyze(SENDER, changes, []).summary
        assert "YOU WILL SEND:" in summary
        assert "1 APT" in summary
        assert "YOU WILL RECEIVE: NOTHING" in summary
