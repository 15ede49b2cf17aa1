"""tests for the command line entry point"""

import json
from unittest.mock import patch

import pytest

from guardian.models import AnalysisResult, Category, Finding, RiskRating, Severity
from scripts.guardian_cli import format_text, load_request, main, parse_args


def _result(**kwargs):
    defaults = dict(
        share_id="abc123",
        function="0xdead::pool::remove_liquidity_all",
        network="testnet",
        rating=RiskRating.CRITICAL,
        score=100.0,
        findings=[Finding(
            pattern_id="rugpull:remove_all_liquidity",
            category=Category.RUG_PULL,
            severity=Severity.CRITICAL,
            title="Complete Liquidity Removal",
            description="All liquidity leaves the pool.",
            recommendation="Do not sign.",
            confidence=0.9,
        )],
        stages_completed=["patterns", "semantic"],
        warnings=["AI analysis unavailable: no language model backend configured"],
        timings_ms={"patterns": 1},
    )
    defaults.update(kwargs)
    return AnalysisResult(**defaults)


class TestParseArgs:

    def test_function_with_args(self):
        args = parse_args(["--function", "0x1::coin::transfer", "--arg", '"0xb0b"', "--arg", "100", "--no-agent"])
        assert args.function == "0x1::coin::transfer"
        assert args.arg == ['"0xb0b"', "100"]
        assert args.agent is False
        assert args.output_format == "text"

    def test_requires_input(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_function_and_request_exclusive(self, tmp_path):
        with pytest.raises(SystemExit):
            parse_args(["--function", "0x1::coin::transfer", "--request", str(tmp_path / "call.json")])

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(SystemExit):
            parse_args(["--function", "0x1::coin::transfer", "--timeout", "0"])

    def test_show_config_needs_no_input(self):
        assert parse_args(["--show-config"]).show_config


class TestLoadRequest:

    def test_from_flags(self):
        args = parse_args([
            "--function", "0xdead::pool::swap",
            "--arg", "100", "--arg", "not-json",
            "--type-arg", "0x1::aptos_coin::AptosCoin",
            "--sender", "0xa11ce",
            "--value-usd", "2500",
        ])
        data = load_request(args)
        assert data["arguments"] == [100, "not-json"]
        assert data["type_arguments"] == ["0x1::aptos_coin::AptosCoin"]
        assert data["estimated_value_usd"] == 2500.0

    def test_from_file(self, tmp_path):
        path = tmp_path / "call.json"
        path.write_text(json.dumps({"call": {"function": "0x1::coin::transfer"}, "effects": {"success": True}}))
        data = load_request(parse_args(["--request", str(path)]))
        assert data["call"]["function"] == "0x1::coin::transfer"


def test_format_text():
    text = format_text(_result())
    assert "Rating: CRITICAL   Score: 100/100" in text
    assert "[CRITICAL] Complete Liquidity Removal (RUG_PULL, 90%, pattern)" in text
    assert "-> Do not sign." in text
    assert "Stages: patterns -> semantic" in text
    assert "AI analysis unavailable" in text


class TestMain:

    def test_show_config(self, capsys):
        assert main(["--show-config"]) == 0
        assert "Guardian Configuration:" in capsys.readouterr().out

    def test_json_output(self, capsys):
        with patch("scripts.guardian_cli.analyze", return_value=_result()) as analyze:
            code = main(["--function", "0xdead::pool::remove_liquidity_all", "--arg", "2000000000",
                         "--no-agent", "--timeout", "30", "-f", "json"])
        assert code == 0
        call, effects = analyze.call_args.args
        assert call.function == "0xdead::pool::remove_liquidity_all"
        assert effects is None
        assert analyze.call_args.kwargs == {"enable_agentic": False, "timeout": 30.0}
        assert json.loads(capsys.readouterr().out)["rating"] == "CRITICAL"

    def test_invalid_request_file(self, tmp_path, capsys):
        path = tmp_path / "call.json"
        path.write_text("[1, 2]")
        assert main(["--request", str(path)]) == 2
        assert "error:" in capsys.readouterr().err

    def test_invalid_function_path(self, capsys):
        assert main(["--function", "not-a-path"]) == 2
