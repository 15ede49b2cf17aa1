"""tests for the agentic investigator and the model-free quick check"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from guardian.agent import (
    FOCUS_AREAS,
    AgenticInvestigator,
    AgentToolExecutor,
    build_agent_prompt,
    conclusion_findings,
    quick_check,
)
from guardian.ai import PipelineRequest
from guardian.analyzers import StaticChainClient
from guardian.models import Category, Finding, Provenance, Severity
from guardian.utils.cost_manager import CostManager
from guardian.utils.logging import AnalysisLogger

from tests.conftest import SENDER, FakeClock, make_call, tool_backend, tool_call

THALA = "0xfda62e5263fd11e40e7cbce67c780fb07a1cc25aa46ab9d6a3de2d5a3be18c36"

CONCLUSION = {
    "summary": "admin can drain the pool",
    "risk_level": "high",
    "issues": [{
        "category": "RUG_PULL",
        "severity": "CRITICAL",
        "title": "Unchecked Admin",
        "description": "set_admin has no signer check.",
        "evidence": "set_admin(address)",
    }],
}


def _request(function="0xdead::pool::swap", **extra):
    return PipelineRequest(call=make_call(function, ["100", "90"], sender=SENDER, **extra))


def _investigator(backend, chain_client, **kwargs):
    kwargs.setdefault("tool_timeout", 5.0)
    return AgenticInvestigator(backend, AgentToolExecutor(chain_client), **kwargs)


class TestInvestigate:

    async def test_concludes_after_tools(self, chain_client):
        backend = tool_backend(
            [
                tool_call("fetch_module_abi", {"module_address": "0xdead", "module_name": "pool"}),
                tool_call("check_address_threats", {"address": SENDER}),
            ],
            [tool_call("conclude_analysis", CONCLUSION)],
        )
        result = await _investigator(backend, chain_client).investigate(_request())

        assert result.success and result.concluded
        assert result.iterations == 2
        assert result.tools_used == ["fetch_module_abi", "check_address_threats", "conclude_analysis"]
        assert result.risk_level == "HIGH"
        assert result.reasoning == "admin can drain the pool"
        (issue,) = result.issues
        assert issue.pattern_id == "ai:agent:rug_pull"
        assert issue.confidence == 0.85
        assert issue.source == Provenance.LLM
        assert "swap" in json.dumps(result.raw_tool_results["fetch_module_abi_1"])

        messages = backend.generate_with_tools_multi_turn.call_args.kwargs["messages"]
        assert messages[1]["role"] == "assistant"
        assert messages[1]["content"][0]["type"] == "tool_use"
        results = messages[2]["content"]
        assert [block["tool_use_id"] for block in results] == ["toolu_fetch_module_abi", "toolu_check_address_threats"]

    async def test_string_tool_input_parsed(self, chain_client):
        backend = tool_backend([tool_call("conclude_analysis", json.dumps(CONCLUSION))])
        result = await _investigator(backend, chain_client).investigate(_request())
        assert result.success and result.concluded
        assert result.iterations == 1
        assert result.tools_used == ["conclude_analysis"]
        (issue,) = result.issues
        assert issue.title == "Unchecked Admin"
        assert issue.severity == Severity.CRITICAL

    async def test_no_tool_calls_ends_without_conclusion(self, chain_client):
        backend = tool_backend([])
        result = await _investigator(backend, chain_client).investigate(_request())
        assert not result.success
        assert result.iterations == 1
        assert result.reasoning == "Investigation ended without a conclusion"

    async def test_iteration_cap(self, chain_client):
        turn = [tool_call("get_transaction_history", {"address": SENDER})]
        backend = tool_backend(turn, turn, turn)
        result = await _investigator(backend, chain_client, max_iterations=2).investigate(_request())
        assert result.iterations == 2
        assert not result.concluded
        assert backend.generate_with_tools_multi_turn.call_count == 2

    async def test_time_budget(self, chain_client):
        backend = tool_backend([tool_call("conclude_analysis", CONCLUSION)])
        investigator = _investigator(backend, chain_client, clock=FakeClock(), max_seconds=0)
        result = await investigator.investigate(_request())
        assert result.iterations == 0
        backend.generate_with_tools_multi_turn.assert_not_called()

    async def test_no_backend(self, chain_client):
        result = await _investigator(None, chain_client).investigate(_request())
        assert not result.success
        assert result.reasoning == "No language model backend configured"

    async def test_backend_failure(self, chain_client):
        backend = tool_backend()
        backend.generate_with_tools_multi_turn.side_effect = RuntimeError("overloaded")
        result = await _investigator(backend, chain_client).investigate(_request())
        assert not result.success
        assert result.reasoning == "Analysis failed: overloaded"

    async def test_cost_gate(self, chain_client):
        backend = tool_backend([tool_call("conclude_analysis", CONCLUSION)])
        costs = CostManager(max_cost_per_analysis=0.01)
        result = await _investigator(backend, chain_client, cost_manager=costs).investigate(_request())
        assert not result.success
        assert "would exceed the analysis cost limit" in result.reasoning
        backend.generate_with_tools_multi_turn.assert_not_called()

    async def test_tool_errors_returned_to_model(self, chain_client):
        backend = tool_backend([tool_call("bogus", {})], [tool_call("conclude_analysis", CONCLUSION)])
        analysis_log = MagicMock(spec=AnalysisLogger)
        investigator = _investigator(backend, chain_client, analysis_logger=analysis_log)
        result = await investigator.investigate(_request())
        assert result.raw_tool_results["bogus_1"] == {"error": "Unknown tool: bogus"}
        statuses = [c.kwargs["status"] for c in analysis_log.log_tool_call.call_args_list]
        assert statuses == ["error", "ok"]
        assert analysis_log.log_ai_call.call_count == 2

    async def test_slow_tool_times_out(self):
        class SlowChain(StaticChainClient):
            async def get_module(self, network, address, name):
                await asyncio.sleep(1)

        backend = tool_backend(
            [tool_call("fetch_module_abi", {"module_address": "0xdead", "module_name": "pool"})],
            [tool_call("conclude_analysis", CONCLUSION)],
        )
        investigator = _investigator(backend, SlowChain(), tool_timeout=0.01)
        result = await investigator.investigate(_request())
        assert result.raw_tool_results["fetch_module_abi_1"]["error"].startswith("Tool timed out")
        assert result.concluded

    async def test_tool_exception_logged_as_error(self):
        class BrokenChain(StaticChainClient):
            async def get_module(self, network, address, name):
                raise RuntimeError("rpc down")

        backend = tool_backend(
            [tool_call("fetch_module_abi", {"module_address": "0xdead", "module_name": "pool"})],
            [tool_call("conclude_analysis", CONCLUSION)],
        )
        analysis_log = MagicMock(spec=AnalysisLogger)
        investigator = _investigator(backend, BrokenChain(), analysis_logger=analysis_log)
        result = await investigator.investigate(_request())

        assert result.raw_tool_results["fetch_module_abi_1"] == {"error": "Tool execution failed: rpc down"}
        assert result.concluded
        analysis_log.log_error.assert_called_once()
        component, operation, message, context = analysis_log.log_error.call_args.args
        assert (component, operation, message) == ("agent", "fetch_module_abi", "rpc down")
        assert context["iteration"] == 1

    async def test_backend_failure_logged_as_error(self, chain_client):
        backend = tool_backend()
        backend.generate_with_tools_multi_turn.side_effect = RuntimeError("overloaded")
        analysis_log = MagicMock(spec=AnalysisLogger)
        await _investigator(backend, chain_client, analysis_logger=analysis_log).investigate(_request())
        analysis_log.log_error.assert_called_once_with("agent", "investigation", "overloaded", {"iterations": 1})

    async def test_executor_follows_call_network(self, chain_client):
        backend = tool_backend([tool_call("conclude_analysis", CONCLUSION)])
        executor = AgentToolExecutor(chain_client)
        investigator = AgenticInvestigator(backend, executor)
        await investigator.investigate(_request(network="mainnet"))
        assert executor.network == "testnet"


class TestHelpers:

    def test_conclusion_findings(self):
        assert conclusion_findings({"issues": "none"}) == []
        findings = conclusion_findings({"issues": ["junk", {"category": "?", "severity": "?"}]})
        (finding,) = findings
        assert finding.category == Category.EXPLOIT
        assert finding.severity == Severity.MEDIUM
        assert finding.title == "Agent Finding"
        assert finding.evidence == {}

    def test_prompt_lists_prior_findings(self):
        prior = Finding(
            pattern_id="rugpull:remove_all_liquidity",
            category=Category.RUG_PULL,
            severity=Severity.CRITICAL,
            title="Complete Liquidity Removal",
            description="All liquidity leaves the pool.",
        )
        request = PipelineRequest(
            call=make_call("0xdead::pool::remove_liquidity_all", ["2000000000"], sender=SENDER),
            prior_findings=(prior,),
        )
        prompt = build_agent_prompt(request)
        assert "- Module Name: pool" in prompt
        assert f"- Sender: {SENDER}" in prompt
        assert "- [CRITICAL] Complete Liquidity Removal: All liquidity leaves the pool." in prompt


class TestQuickCheck:

    async def test_all_focus_areas(self, chain_client):
        findings = await quick_check(_request(), FOCUS_AREAS, chain_client)
        assert [f.pattern_id for f in findings] == [
            "ai:quick:overflow",
            "ai:quick:privilege",
            "ai:quick:bytecode:privileged",
        ]
        assert findings[0].severity == Severity.CRITICAL
        assert all(f.source == Provenance.LLM for f in findings)

    async def test_known_malicious_sender(self, chain_client):
        request = PipelineRequest(call=make_call("0xdead::pool::swap", sender=THALA))
        findings = await quick_check(request, ["threats"], chain_client)
        assert [f.pattern_id for f in findings] == ["ai:quick:malicious-sender"]

    async def test_missing_module(self, chain_client):
        findings = await quick_check(_request("0xdead::ghost::swap"), FOCUS_AREAS, chain_client)
        assert findings == []

    async def test_failing_area_skipped(self):
        class BrokenChain(StaticChainClient):
            async def get_module(self, network, address, name):
                raise RuntimeError("fullnode down")

        request = PipelineRequest(call=make_call("0xdead::pool::swap", sender=THALA))
        findings = await quick_check(request, ["overflow", "bogus", "threats"], BrokenChain())
        assert [f.pattern_id for f in findings] == ["ai:quick:malicious-sender"]
