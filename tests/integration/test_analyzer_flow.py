"""end-to-end runs of RiskAnalyzer over stubbed chain, feed and model backends"""

import time
from unittest.mock import MagicMock

import pytest

from guardian.agent import AgenticInvestigator, AgentToolExecutor
from guardian.ai import EscalatingPipeline
from guardian.analyzer import InMemoryResultStore, ResultStore, RiskAnalyzer, SimulationClient, analyze
from guardian.models import Category, RiskRating, Severity
from guardian.threat_feed import ThreatFeedAggregator, ThreatSource, ThreatSourceResult
from guardian.utils.cost_manager import CostManager
from guardian.utils.logging import AnalysisLogger

from tests.conftest import (
    RECIPIENT,
    SENDER,
    as_json,
    coin_change,
    fake_backend,
    llm_response,
    make_call,
    make_effects,
    tool_backend,
    tool_call,
)

SAFE_TRIAGE = as_json({"classification": "SAFE", "confidence": 0.9, "reasoning": "read-only call"})

AGENT_CONCLUSION = {
    "summary": "admin setter lets anyone take the pool",
    "risk_level": "CRITICAL",
    "issues": [{
        "category": "PERMISSION",
        "severity": "CRITICAL",
        "title": "Pool Takeover",
        "description": "set_admin accepts any address without a signer.",
    }],
}


class CountingSource(ThreatSource):

    def __init__(self, name="stub", is_malicious=False, confidence=90):
        self.name = name
        self.is_malicious = is_malicious
        self.confidence = confidence
        self.calls = 0

    async def query(self, address, network):
        self.calls += 1
        return ThreatSourceResult(
            source=self.name,
            is_malicious=self.is_malicious,
            confidence=self.confidence,
            risk_type="Phishing" if self.is_malicious else None,
        )


class FailingSimulator(SimulationClient):

    def __init__(self):
        self.calls = 0

    async def simulate(self, call):
        self.calls += 1
        raise RuntimeError("node unreachable")


class BrokenStore(ResultStore):

    def save(self, result):
        raise OSError("disk full")


def _slow_analyzer(timeout):
    """triage backend that sleeps past the analysis budget"""
    backend = fake_backend()

    def slow(*args, **kwargs):
        time.sleep(0.3)
        return llm_response(SAFE_TRIAGE)

    backend.generate.side_effect = slow
    return RiskAnalyzer(pipeline=EscalatingPipeline(triage_backend=backend), timeout=timeout, enable_agentic=False)


@pytest.fixture
def store():
    return InMemoryResultStore()


def _analyzer(**kwargs):
    kwargs.setdefault("enable_agentic", False)
    kwargs.setdefault("timeout", 30.0)
    return RiskAnalyzer(**kwargs)


class TestWhitelist:

    async def test_framework_transfer_is_safe(self, chain_client, store):
        feed_source = CountingSource()
        analyzer = _analyzer(
            chain_client=chain_client,
            threat_feed=ThreatFeedAggregator(sources=[feed_source]),
            result_store=store,
        )
        call = make_call("0x1::coin::transfer", [RECIPIENT, "100"], sender=SENDER)
        effects = make_effects([coin_change(SENDER, 1000, 900), coin_change(RECIPIENT, 0, 100)])

        result = await analyzer.analyze(call, effects)

        assert result.whitelisted
        assert result.rating == RiskRating.SAFE
        assert result.score == 0
        assert result.findings == []
        assert result.stages_completed == ["whitelist"]
        assert result.module_verification.status == "framework"
        assert result.simulation_status == "success"
        assert feed_source.calls == 0
        assert store.get(result.share_id) is result

    async def test_key_rotation_gets_full_analysis(self):
        call = make_call("0x1::account::rotate_authentication_key", ["0", "0x00", "0", "0x00", "0x00", "0x00"])
        result = await _analyzer().analyze(call)
        assert not result.whitelisted
        assert result.stages_completed != ["whitelist"]


class TestDeterministicLayers:

    async def test_liquidity_drain_is_critical(self, chain_client, store):
        analyzer = _analyzer(chain_client=chain_client, result_store=store)
        call = make_call("0xdead::pool::remove_liquidity_all", ["2000000000"], sender=SENDER)

        result = await analyzer.analyze(call)

        ids = {f.pattern_id for f in result.findings}
        assert "rugpull:lp:remove_liquidity" in ids
        assert "bytecode:function:critical_mutators" in ids
        assert "overflow:vulnerable_library:integer-mate" in ids
        assert "priv:unchecked_admin" in ids
        assert result.rating == RiskRating.CRITICAL
        assert 0 <= result.score <= 100
        assert result.findings[0].severity == Severity.CRITICAL
        assert any(f.category == Category.RUG_PULL for f in result.findings)

        # no model backend, so the escalation falls back to the model-free check
        assert result.stages_completed == ["quick_check"]
        assert "AI analysis unavailable: no language model backend configured" in result.warnings
        assert "Critical integer overflow exposure detected (Cetus-type)." in result.warnings
        assert result.module_verification.status == "verified"
        assert result.simulation_status == "skipped"
        assert {"patterns", "module", "total"} <= set(result.timings_ms)
        assert store.get(result.share_id) is result

    async def test_findings_are_deduplicated(self, chain_client):
        result = await _analyzer(chain_client=chain_client).analyze(
            make_call("0xdead::pool::remove_liquidity_all", ["2000000000"], sender=SENDER)
        )
        keys = [(f.category, f.title) for f in result.findings]
        assert len(keys) == len(set(keys))

    async def test_missing_function_warns(self, chain_client):
        result = await _analyzer(chain_client=chain_client).analyze(make_call("0xdead::pool::steal", ["1"]))
        assert result.module_verification.status == "function_not_found"
        assert 'Function "steal" does not exist in the on-chain module.' in result.warnings
        assert result.rating == RiskRating.CRITICAL

    async def test_missing_module_warns(self, chain_client):
        result = await _analyzer(chain_client=chain_client).analyze(make_call("0xdead::ghost::view_art", ["1"]))
        assert result.module_verification.status == "module_not_found"
        assert any(w.startswith("Module not found on-chain") for w in result.warnings)

    async def test_semantic_summary_from_supplied_effects(self):
        call = make_call("0xbeef::gallery::view_art", ["1"], sender=SENDER)
        effects = make_effects([coin_change(SENDER, 1000, 0), coin_change(RECIPIENT, 0, 1000)])
        result = await _analyzer().analyze(call, effects)
        assert result.simulation_status == "success"
        assert result.summary
        assert result.findings


class TestSimulation:

    async def test_failure_becomes_warning(self):
        simulator = FailingSimulator()
        result = await _analyzer(simulation_client=simulator).analyze(make_call("0xbeef::gallery::view_art", ["1"]))
        assert simulator.calls == 1
        assert result.simulation_status == "failed"
        assert "Simulation failed: node unreachable. Continuing with pattern analysis only." in result.warnings
        assert "simulation" in result.timings_ms

    async def test_presimulated_call_not_resimulated(self):
        simulator = FailingSimulator()
        call = make_call("0xbeef::gallery::view_art", ["1"], simulation_id="sim-42")
        result = await _analyzer(simulation_client=simulator).analyze(call)
        assert simulator.calls == 0
        assert result.simulation_status == "skipped"


class TestThreatFeed:

    async def test_malicious_addresses_flagged(self):
        feed = ThreatFeedAggregator(sources=[CountingSource(is_malicious=True)])
        result = await _analyzer(threat_feed=feed).analyze(
            make_call("0xbeef::gallery::view_art", ["1"], sender=SENDER)
        )
        titles = {f.title for f in result.findings}
        assert "Malicious Module Address Detected (1 sources)" in titles
        assert "Malicious Sender Detected (1 sources)" in titles
        assert result.rating == RiskRating.CRITICAL

    async def test_second_analysis_served_from_cache(self):
        source = CountingSource()
        analyzer = _analyzer(threat_feed=ThreatFeedAggregator(sources=[source]))
        call = make_call("0xbeef::gallery::view_art", ["1"], sender=SENDER)

        await analyzer.analyze(call)
        assert source.calls == 2
        second = await analyzer.analyze(call)
        assert source.calls == 2
        assert second.rating == RiskRating.SAFE

    async def test_framework_module_not_queried(self):
        source = CountingSource()
        analyzer = _analyzer(threat_feed=ThreatFeedAggregator(sources=[source]))
        await analyzer.analyze(make_call("0x1::code::publish_package_txn", ["0x00", "0x00"], sender=SENDER))
        assert source.calls == 1


class TestModelStages:

    async def test_safe_triage_stops_early(self, store):
        triage = fake_backend(SAFE_TRIAGE)
        analyzer = _analyzer(pipeline=EscalatingPipeline(triage_backend=triage), result_store=store)

        result = await analyzer.analyze(make_call("0xbeef::gallery::view_art", ["1"], sender=SENDER))

        assert result.stages_completed == ["triage"]
        assert result.rating == RiskRating.SAFE
        assert result.score == 0
        assert result.findings == []
        assert triage.generate.call_count == 1

    async def test_agent_conclusion_merged(self, chain_client):
        backend = tool_backend([tool_call("conclude_analysis", AGENT_CONCLUSION)])
        investigator = AgenticInvestigator(backend, AgentToolExecutor(chain_client), tool_timeout=5.0)
        analyzer = _analyzer(chain_client=chain_client, investigator=investigator, enable_agentic=True)

        result = await analyzer.analyze(make_call("0xdead::pool::swap", ["100", "99"], sender=SENDER))

        assert result.stages_completed == ["agent"]
        agent = [f for f in result.findings if f.title == "Pool Takeover"]
        assert len(agent) == 1
        assert agent[0].severity == Severity.CRITICAL
        assert result.rating == RiskRating.CRITICAL
        assert "agent" in result.timings_ms

    async def test_disabled_agent_uses_quick_check(self, chain_client):
        backend = tool_backend([tool_call("conclude_analysis", AGENT_CONCLUSION)])
        investigator = AgenticInvestigator(backend, AgentToolExecutor(chain_client))
        analyzer = _analyzer(chain_client=chain_client, investigator=investigator, enable_agentic=False)

        result = await analyzer.analyze(make_call("0xdead::pool::swap", ["100", "99"], sender=SENDER))

        assert result.stages_completed == ["quick_check"]
        backend.generate_with_tools_multi_turn.assert_not_called()

    async def test_analysis_budget_stops_model_stages(self):
        analyzer = _slow_analyzer(timeout=0.05)
        result = await analyzer.analyze(make_call("0xbeef::gallery::view_art", ["1"]))
        assert any(w.startswith("AI analysis stopped: exceeded the") for w in result.warnings)
        assert result.stages_completed == []


class TestStorage:

    async def test_store_failure_does_not_raise(self):
        result = await _analyzer(result_store=BrokenStore()).analyze(make_call("0xbeef::gallery::view_art", ["1"]))
        assert result.rating == RiskRating.SAFE

    async def test_share_ids_are_unique(self, store):
        analyzer = _analyzer(result_store=store)
        call = make_call("0xbeef::gallery::view_art", ["1"])
        first = await analyzer.analyze(call)
        second = await analyzer.analyze(call)
        assert first.share_id != second.share_id
        assert len(store.results) == 2

    async def test_logger_failure_does_not_raise(self, store):
        analysis_logger = MagicMock(spec=AnalysisLogger)
        analysis_logger.log_result.side_effect = OSError("disk full")
        analyzer = _analyzer(result_store=store, analysis_logger=analysis_logger)

        result = await analyzer.analyze(make_call("0xbeef::gallery::view_art", ["1"]))

        assert result.rating == RiskRating.SAFE
        analysis_logger.log_result.assert_called_once()
        assert store.get(result.share_id) is result

    async def test_finished_analyses_leave_no_cost_entries(self):
        cost_manager = CostManager(max_cost_per_analysis=1.0)
        analyzer = _analyzer(cost_manager=cost_manager)
        call = make_call("0xbeef::gallery::view_art", ["1"])

        await analyzer.analyze(call)
        await analyzer.analyze(call)

        assert cost_manager.costs_by_analysis == {}
        assert cost_manager.current_analysis is None


def test_blocking_entry_point_accepts_dict(store):
    analyzer = _analyzer(result_store=store)
    result = analyze({"function": "0x1::coin::transfer", "arguments": [RECIPIENT, "5"]}, analyzer=analyzer)
    assert result.whitelisted
    assert store.get(result.share_id) is result
