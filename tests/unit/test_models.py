"""tests for findings, call descriptors and argument values"""

import json
import sys

import pytest

from guardian.errors import GuardianError, InvalidCallError
from guardian.models import (
    AnalysisResult,
    BoolValue,
    Category,
    ChangeType,
    Finding,
    ListValue,
    MapValue,
    NumberValue,
    RiskRating,
    Severity,
    SimulatedEffects,
    StateChange,
    TextValue,
    CallDescriptor,
    clamp_confidence,
    coerce_category,
    coerce_severity,
    numeric_value,
    parse_function_path,
    to_plain,
    to_value,
)
from guardian.models.values import iter_text


def _finding(**overrides):
    fields = dict(
        pattern_id="test:rule",
        category=Category.EXPLOIT,
        severity=Severity.HIGH,
        title="Test Finding",
        description="a test",
    )
    fields.update(overrides)
    return Finding(**fields)


class TestEnums:

    def test_severity_weights(self):
        assert Severity.LOW.weight == 10
        assert Severity.MEDIUM.weight == 30
        assert Severity.HIGH.weight == 60
        assert Severity.CRITICAL.weight == 100

    def test_severity_rank_orders_critical_first(self):
        ranked = sorted(Severity, key=lambda s: s.rank)
        assert ranked == [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]

    def test_coerce_category(self):
        assert coerce_category("rug pull") == Category.RUG_PULL
        assert coerce_category("rug-pull") == Category.RUG_PULL
        assert coerce_category("permission") == Category.PERMISSION
        assert coerce_category("nonsense") == Category.EXPLOIT
        assert coerce_category(None) == Category.EXPLOIT

    def test_coerce_severity(self):
        assert coerce_severity("critical") == Severity.CRITICAL
        assert coerce_severity(" low ") == Severity.LOW
        assert coerce_severity("extreme") == Severity.MEDIUM

    def test_clamp_confidence(self):
        assert clamp_confidence(1.7) == 1.0
        assert clamp_confidence(-2) == 0.0
        assert clamp_confidence("0.3") == 0.3
        assert clamp_confidence("high") == 0.5
        assert clamp_confidence(float("nan"), default=0.2) == 0.2


class TestFinding:

    def test_confidence_outside_unit_interval_rejected(self):
        with pytest.raises(ValueError):
            _finding(confidence=1.2)
        with pytest.raises(ValueError):
            _finding(confidence=-0.1)

    def test_dedup_key_ignores_case_and_whitespace(self):
        a = _finding(title="Ownership Transfer ")
        b = _finding(title="ownership transfer", pattern_id="other")
        assert a.dedup_key == b.dedup_key

    def test_to_dict(self):
        data = _finding(evidence={"amount": 5}).to_dict()
        assert data["category"] == "EXPLOIT"
        assert data["severity"] == "HIGH"
        assert data["source"] == "pattern"
        assert data["evidence"] == {"amount": 5}


class TestAnalysisResult:

    def test_critical_findings_and_stats(self):
        result = AnalysisResult(
            share_id="abc",
            function="0x1::coin::transfer",
            network="testnet",
            rating=RiskRating.CRITICAL,
            score=90.0,
            findings=[_finding(severity=Severity.CRITICAL), _finding(title="other", severity=Severity.LOW)],
        )
        assert len(result.get_critical_findings()) == 1
        data = result.to_dict()
        assert data["stats"]["total_findings"] == 2
        assert data["stats"]["by_severity"]["CRITICAL"] == 1
        assert data["stats"]["by_severity"]["MEDIUM"] == 0
        assert data["module_verification"] is None

    def test_to_json_is_valid(self):
        result = AnalysisResult(share_id="x", function="0x1::a::b", network="mainnet", rating=RiskRating.SAFE, score=0.0)
        data = json.loads(result.to_json())
        assert data["rating"] == "SAFE"
        assert data["whitelisted"] is False


class TestValues:

    def test_bool_is_not_a_number(self):
        assert to_value(True) == BoolValue(True)
        assert numeric_value(to_value(True)) is None

    def test_none_becomes_empty_text(self):
        assert to_value(None) == TextValue("")

    def test_numeric_value_variants(self):
        assert numeric_value(to_value("2000000000")) == 2_000_000_000
        assert numeric_value(to_value(12)) == 12
        assert numeric_value(to_value("0xbob")) is None
        assert numeric_value(to_value({"amount": "7"})) == 7
        assert numeric_value(to_value([1, 2])) is None

    def test_non_finite_and_oversized_numbers_are_not_amounts(self):
        assert numeric_value(to_value(json.loads("1e400"))) is None
        assert numeric_value(to_value(float("nan"))) is None
        assert numeric_value(to_value("9" * (sys.get_int_max_str_digits() + 1))) is None
        assert numeric_value(to_value(2.5)) == 2

    def test_nested_conversion(self):
        value = to_value({"coin": {"value": "5"}, "tags": ["a", 1]})
        assert isinstance(value, MapValue)
        assert value.path("coin", "value") == TextValue("5")
        assert value.path("coin", "missing", "deeper") is None
        assert isinstance(value.get("tags"), ListValue)
        assert value.text("missing") is None

    def test_to_plain_keeps_large_ints_exact(self):
        big = 2 ** 128 - 1
        assert to_plain(NumberValue(big)) == str(big)
        assert to_plain(NumberValue(42)) == 42
        assert to_plain(to_value({"a": [True, "x"]})) == {"a": [True, "x"]}

    def test_iter_text_walks_all_leaves(self):
        value = to_value({"a": "one", "b": ["two", 3, {"c": "three"}]})
        assert sorted(iter_text(value)) == ["one", "three", "two"]


class TestCallDescriptor:

    def test_from_dict_defaults(self):
        call = CallDescriptor.from_dict({"function": "0x1::coin::transfer", "arguments": ["0xbob", "100"]})
        assert call.network == "testnet"
        assert call.module_address == "0x1"
        assert call.module_name == "coin"
        assert call.function_name == "transfer"
        assert call.numeric_arguments() == [100]
        assert call.plain_arguments() == ["0xbob", "100"]

    def test_from_dict_camel_case(self):
        call = CallDescriptor.from_dict({
            "functionName": "0xabc::pool::swap",
            "typeArguments": ["0x1::aptos_coin::AptosCoin"],
            "network": "MAINNET",
            "simulationId": "sim-1",
            "estimatedValueUSD": "2500",
        })
        assert call.network == "mainnet"
        assert call.type_arguments == ("0x1::aptos_coin::AptosCoin",)
        assert call.simulation_id == "sim-1"
        assert call.estimated_value_usd == 2500.0

    @pytest.mark.parametrize("payload", [
        {"function": "0x1::coin"},
        {"function": 5},
        {"function": "0x1::coin::transfer", "network": "localnet"},
        {"function": "0x1::coin::transfer", "arguments": "0xbob"},
        ["not", "a", "dict"],
    ])
    def test_invalid_payloads(self, payload):
        with pytest.raises(InvalidCallError):
            CallDescriptor.from_dict(payload)

    def test_invalid_call_error_hierarchy(self):
        assert issubclass(InvalidCallError, GuardianError)
        assert issubclass(InvalidCallError, ValueError)

    def test_parse_function_path_short(self):
        path = parse_function_path("0x1")
        assert path.address == "0x1"
        assert path.module == ""


class TestEffects:

    def test_state_change_types(self):
        assert StateChange.from_dict({"type": "write_resource"}).change_type == ChangeType.MODIFY
        assert StateChange.from_dict({"type": "delete_resource"}).change_type == ChangeType.DELETE
        assert StateChange.from_dict({"change_type": "create"}).change_type == ChangeType.CREATE

    def test_state_change_data_alias(self):
        change = StateChange.from_dict({"address": "0x1", "resource": "R", "data": {"value": "3"}})
        assert change.after.path("value") == TextValue("3")
        assert change.to_dict()["after"] == {"value": "3"}

    def test_effects_from_camel_case(self):
        effects = SimulatedEffects.from_dict({
            "success": False,
            "stateChanges": [{"address": "0x1", "resource": "R"}],
            "events": [{"type": "0x1::coin::WithdrawEvent", "data": {"amount": "10"}}],
            "gasUsed": "1200",
            "error": "ABORTED",
        })
        assert effects.success is False
        assert len(effects.state_changes) == 1
        assert effects.events[0].data.text("amount") == "10"
        assert effects.gas_used == 1200
        assert effects.error == "ABORTED"

    def test_empty(self):
        effects = SimulatedEffects.empty()
        assert effects.success
        assert effects.state_changes == ()
