"""end-to-end risk analysis of one proposed call.

cheap deterministic layers always run; the language model stages only run
when a backend is configured, and only as deep as the call warrants. a hard
wall-clock budget bounds the model-backed phases. failures in any phase are
recorded as warnings, analyze() itself does not raise for upstream errors.
"""

import asyncio
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from guardian.agent import FOCUS_AREAS, AgentToolExecutor, AgenticInvestigator, quick_check
from guardian.aggregator import RiskAggregator
from guardian.ai import EscalatingPipeline, PipelineRequest, PipelineResult
from guardian.analyzers import (
    BytecodeAnalyzer,
    ChainClient,
    FullnodeClient,
    overflow_report,
    privilege_report,
)
from guardian.config import config
from guardian.models import (
    AnalysisResult,
    CallDescriptor,
    Finding,
    ModuleVerification,
    RiskRating,
    SimulatedEffects,
)
from guardian.pattern_engine import PatternEngine
from guardian.semantic import SemanticStateAnalyzer
from guardian.threat_feed import ThreatFeedAggregator, response_to_finding
from guardian.utils.correlation import AnalysisContext
from guardian.utils.cost_manager import CostManager
from guardian.utils.logging import AnalysisLogger
from guardian.whitelist import check_whitelist, is_framework_address

logger = logging.getLogger(__name__)

SHARE_ID_BYTES = 8


class SimulationClient(ABC):

    @abstractmethod
    async def simulate(self, call: CallDescriptor) -> SimulatedEffects:
        """dry-run the call and report its effects"""


class ResultStore(ABC):

    @abstractmethod
    def save(self, result: AnalysisResult) -> None:
        pass


class InMemoryResultStore(ResultStore):

    def __init__(self):
        self.results: Dict[str, AnalysisResult] = {}

    def save(self, result: AnalysisResult) -> None:
        self.results[result.share_id] = result

    def get(self, share_id: str) -> Optional[AnalysisResult]:
        return self.results.get(share_id)


@dataclass
class _Run:
    """mutable state of one analysis while it is being assembled"""
    call: CallDescriptor
    started: float
    findings: List[Finding] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    timings_ms: Dict[str, int] = field(default_factory=dict)
    stages: List[str] = field(default_factory=list)
    effects: Optional[SimulatedEffects] = None
    simulation_status: str = "skipped"
    summary: Optional[str] = None
    verification: Optional[ModuleVerification] = None
    has_overflow_risk: bool = False
    has_escalation: bool = False
    pipeline: Optional[PipelineResult] = None


class RiskAnalyzer:

    def __init__(
        self,
        pattern_engine: Optional[PatternEngine] = None,
        semantic_analyzer: Optional[SemanticStateAnalyzer] = None,
        pipeline: Optional[EscalatingPipeline] = None,
        investigator: Optional[AgenticInvestigator] = None,
        chain_client: Optional[ChainClient] = None,
        threat_feed: Optional[ThreatFeedAggregator] = None,
        simulation_client: Optional[SimulationClient] = None,
        result_store: Optional[ResultStore] = None,
        aggregator: Optional[RiskAggregator] = None,
        cost_manager: Optional[CostManager] = None,
        analysis_logger: Optional[AnalysisLogger] = None,
        enable_agentic: Optional[bool] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.pattern_engine = pattern_engine or PatternEngine()
        self.semantic_analyzer = semantic_analyzer or SemanticStateAnalyzer()
        self.aggregator = aggregator or RiskAggregator()
        self.pipeline = pipeline or EscalatingPipeline(aggregator=self.aggregator)
        self.investigator = investigator
        self.chain_client = chain_client
        self.threat_feed = threat_feed
        self.simulation_client = simulation_client
        self.result_store = result_store
        self.cost_manager = cost_manager
        self.analysis_logger = analysis_logger
        self.enable_agentic = config.ENABLE_AGENTIC_ANALYSIS if enable_agentic is None else enable_agentic
        self.timeout = timeout if timeout is not None else config.ANALYSIS_TIMEOUT_SECONDS
        self._clock = clock

    @classmethod
    def from_config(cls, **kwargs) -> "RiskAnalyzer":
        """wire every component from the environment; kwargs override single components"""
        cost_manager = kwargs.pop("cost_manager", None) or CostManager(
            max_cost_per_analysis=config.COST_LIMIT_PER_ANALYSIS
        )
        analysis_logger = kwargs.pop("analysis_logger", None)
        if analysis_logger is None and config.ENABLE_LOGGING:
            analysis_logger = AnalysisLogger()
        chain_client = kwargs.pop("chain_client", None) or FullnodeClient()
        threat_feed = kwargs.pop("threat_feed", None) or ThreatFeedAggregator()
        aggregator = kwargs.pop("aggregator", None) or RiskAggregator()

        pipeline = kwargs.pop("pipeline", None) or EscalatingPipeline.from_config(
            aggregator=aggregator, cost_manager=cost_manager, analysis_logger=analysis_logger
        )
        investigator = kwargs.pop("investigator", None) or AgenticInvestigator.from_config(
            AgentToolExecutor(chain_client, threat_feed),
            cost_manager=cost_manager,
            analysis_logger=analysis_logger,
        )
        return cls(
            pipeline=pipeline,
            investigator=investigator,
            chain_client=chain_client,
            threat_feed=threat_feed,
            aggregator=aggregator,
            cost_manager=cost_manager,
            analysis_logger=analysis_logger,
            **kwargs,
        )

    async def aclose(self):
        if self.chain_client:
            await self.chain_client.aclose()
        if self.threat_feed:
            await self.threat_feed.aclose()

    def _elapsed_ms(self, since: float) -> int:
        return int((self._clock() - since) * 1000)

    def _remaining(self, run: _Run) -> float:
        return self.timeout - (self._clock() - run.started)

    async def _simulate(self, run: _Run, effects: Optional[SimulatedEffects]):
        if effects is not None:
            run.effects = effects
            run.simulation_status = "success"
            return
        if run.call.simulation_id or self.simulation_client is None:
            return
        start = self._clock()
        try:
            run.effects = await self.simulation_client.simulate(run.call)
            run.simulation_status = "success"
        except Exception as e:
            logger.warning(f"[Guardian] simulation failed for {run.call.function}: {e}")
            run.simulation_status = "failed"
            run.warnings.append(f"Simulation failed: {e}. Continuing with pattern analysis only.")
        run.timings_ms["simulation"] = self._elapsed_ms(start)

    def _patterns(self, run: _Run):
        start = self._clock()
        try:
            run.findings.extend(self.pattern_engine.match(run.call, run.effects))
        except Exception as e:
            logger.warning(f"[Guardian] pattern analysis failed: {e}")
            run.warnings.append(f"Pattern analysis failed: {e}")
        run.timings_ms["patterns"] = self._elapsed_ms(start)

    def _semantic(self, run: _Run):
        if run.effects is None:
            return
        start = self._clock()
        try:
            result = self.semantic_analyzer.analyze(run.call.sender, run.effects.state_changes, run.effects.events)
            run.findings.extend(result.findings)
            run.summary = result.summary or None
        except Exception as e:
            logger.warning(f"[Guardian] semantic analysis failed: {e}")
            run.warnings.append(f"Semantic analysis failed: {e}")
        run.timings_ms["semantic"] = self._elapsed_ms(start)

    async def _module(self, run: _Run):
        call = run.call
        if self.chain_client is None:
            return
        if is_framework_address(call.module_address):
            run.verification = ModuleVerification(
                status="framework", module_exists=True, function_exists=True, is_framework_module=True
            )
            return

        start = self._clock()
        try:
            report = await BytecodeAnalyzer(self.chain_client).analyze(
                call.network, call.module_address, call.module_name, call.function_name
            )
        except Exception as e:
            logger.warning(f"[Guardian] module verification failed for {call.module_address}::{call.module_name}: {e}")
            run.verification = ModuleVerification(status="error", error=str(e))
            run.warnings.append(f"Could not verify module on-chain: {e}")
            run.timings_ms["module"] = self._elapsed_ms(start)
            return

        run.verification = report.verification()
        run.findings.extend(report.findings)
        if not report.module_exists:
            run.warnings.append("Module not found on-chain. This could indicate a non-existent contract or wrong network.")
        elif not report.function_exists:
            run.warnings.append(f'Function "{call.function_name}" does not exist in the on-chain module.')

        if report.abi is not None:
            overflow = overflow_report(report.abi)
            privilege = privilege_report(report.abi)
            run.findings.extend(overflow.findings)
            run.findings.extend(privilege.findings)
            run.has_overflow_risk = overflow.has_overflow_risk
            run.has_escalation = privilege.has_escalation
            if overflow.risk_level == "critical":
                run.warnings.append("Critical integer overflow exposure detected (Cetus-type).")
        run.timings_ms["module"] = self._elapsed_ms(start)

    async def _threats(self, run: _Run):
        if self.threat_feed is None:
            return
        call = run.call
        subjects = []
        if not is_framework_address(call.module_address):
            subjects.append(("Module Address", call.module_address))
        if call.sender:
            subjects.append(("Sender", call.sender))
        if not subjects:
            return

        start = self._clock()
        responses = await asyncio.gather(
            *(self.threat_feed.query(address, call.network) for _, address in subjects),
            return_exceptions=True,
        )
        for (subject, address), response in zip(subjects, responses):
            if isinstance(response, Exception):
                logger.warning(f"[Guardian] threat feed query failed for {address}: {response}")
                run.warnings.append(f"Threat feed unavailable for {subject.lower()}: {response}")
                continue
            finding = response_to_finding(response, subject)
            if finding:
                run.findings.append(finding)
        run.timings_ms["threat_feed"] = self._elapsed_ms(start)

    def _request(self, run: _Run) -> PipelineRequest:
        return PipelineRequest(call=run.call, effects=run.effects, prior_findings=tuple(run.findings))

    async def _ai(self, run: _Run):
        remaining = self._remaining(run)
        if remaining <= 0:
            run.warnings.append("AI analysis skipped: analysis time budget exhausted")
            return
        start = self._clock()
        try:
            result = await asyncio.wait_for(self.pipeline.run(self._request(run)), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning(f"[Guardian] ai analysis exceeded {self.timeout:.0f}s budget")
            run.warnings.append(f"AI analysis stopped: exceeded the {self.timeout:.0f}s analysis budget")
            result = None
        except Exception as e:
            logger.warning(f"[Guardian] ai analysis failed: {e}")
            run.warnings.append(f"AI analysis failed: {e}")
            result = None
        run.timings_ms["ai"] = self._elapsed_ms(start)
        if result is None:
            return
        run.pipeline = result
        run.findings.extend(result.findings)
        run.stages.extend(result.stages_completed)
        run.warnings.extend(result.warnings)

    def _needs_investigation(self, run: _Run) -> bool:
        ai_rating = run.pipeline.rating if run.pipeline else RiskRating.SAFE
        return ai_rating in (RiskRating.HIGH, RiskRating.CRITICAL) or run.has_overflow_risk or run.has_escalation

    def _agent_available(self) -> bool:
        if not self.enable_agentic or self.investigator is None:
            return False
        backend = self.investigator.backend
        return backend is not None and backend.is_available()

    async def _investigate(self, run: _Run):
        if not self._needs_investigation(run):
            return
        start = self._clock()

        if not self._agent_available():
            if self.chain_client is None:
                return
            try:
                found = await quick_check(
                    self._request(run), FOCUS_AREAS, self.chain_client,
                    self.threat_feed.denylist if self.threat_feed else None,
                )
            except Exception as e:
                logger.warning(f"[Guardian] quick check failed: {e}")
                run.warnings.append(f"Quick check failed: {e}")
            else:
                run.findings.extend(found)
                run.stages.append("quick_check")
            run.timings_ms["agent"] = self._elapsed_ms(start)
            return

        remaining = self._remaining(run)
        if remaining <= 0:
            run.warnings.append("Agentic investigation skipped: analysis time budget exhausted")
            return
        try:
            result = await asyncio.wait_for(self.investigator.investigate(self._request(run)), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning(f"[Guardian] agentic investigation exceeded {self.timeout:.0f}s budget")
            run.warnings.append(f"Agentic investigation stopped: exceeded the {self.timeout:.0f}s analysis budget")
        except Exception as e:
            logger.warning(f"[Guardian] agentic investigation failed: {e}")
            run.warnings.append(f"Agentic investigation failed: {e}")
        else:
            run.findings.extend(result.issues)
            if result.concluded:
                run.stages.append("agent")
            else:
                run.warnings.append(f"Agentic investigation incomplete: {result.reasoning}")
            logger.info(
                f"[Guardian] agent used {', '.join(result.tools_used) or 'no tools'} "
                f"({result.iterations} iterations, {result.elapsed_ms}ms)"
            )
        run.timings_ms["agent"] = self._elapsed_ms(start)

    def _result(self, run: _Run, share_id: str, analysis_id: str, **overrides) -> AnalysisResult:
        confidence = run.pipeline.confidence if run.pipeline else 0.0
        findings, score, rating = self.aggregator.merge(run.findings, confidence)
        run.timings_ms["total"] = self._elapsed_ms(run.started)
        fields = dict(
            share_id=share_id,
            function=run.call.function,
            network=run.call.network,
            rating=rating,
            score=score,
            findings=findings,
            timings_ms=dict(run.timings_ms),
            stages_completed=list(run.stages),
            warnings=list(run.warnings),
            simulation_status=run.simulation_status,
            summary=run.summary,
            module_verification=run.verification,
            analysis_id=analysis_id,
        )
        fields.update(overrides)
        return AnalysisResult(**fields)

    def _store(self, result: AnalysisResult):
        if self.analysis_logger:
            try:
                self.analysis_logger.log_result(result.to_dict())
            except Exception as e:
                logger.warning(f"[Guardian] could not log result {result.share_id}: {e}")
        if self.result_store is None:
            return
        try:
            self.result_store.save(result)
        except Exception as e:
            logger.warning(f"[Guardian] could not store result {result.share_id}: {e}")

    async def analyze(self, call: CallDescriptor, effects: Optional[SimulatedEffects] = None) -> AnalysisResult:
        share_id = secrets.token_urlsafe(SHARE_ID_BYTES)
        with AnalysisContext() as analysis_id:
            if self.cost_manager is None:
                return await self._analyze(call, effects, share_id, analysis_id)
            self.cost_manager.start_analysis(analysis_id)
            try:
                return await self._analyze(call, effects, share_id, analysis_id)
            finally:
                self.cost_manager.end_analysis(analysis_id)

    async def _analyze(
        self, call: CallDescriptor, effects: Optional[SimulatedEffects], share_id: str, analysis_id: str
    ) -> AnalysisResult:
        run = _Run(call=call, started=self._clock())

        await self._simulate(run, effects)

        whitelist = check_whitelist(call.module_address, call.module_name, call.function_name)
        if whitelist.is_whitelisted:
            logger.info(f"[Guardian] whitelisted {call.function}: {whitelist.reason}")
            run.findings = []
            result = self._result(
                run, share_id, analysis_id,
                whitelisted=True,
                stages_completed=["whitelist"],
                summary=whitelist.reason,
                module_verification=ModuleVerification(
                    status="framework",
                    module_exists=True,
                    function_exists=True,
                    is_framework_module=True,
                    metadata={"whitelist_reason": whitelist.reason},
                ),
            )
            self._store(result)
            return result

        self._patterns(run)
        self._semantic(run)
        await self._module(run)
        await self._threats(run)
        await self._ai(run)
        await self._investigate(run)

        result = self._result(run, share_id, analysis_id)
        logger.info(
            f"[Guardian] {call.function}: {result.rating.value} score={result.score} "
            f"findings={len(result.findings)} stages={result.stages_completed} ({result.timings_ms['total']}ms)"
        )
        self._store(result)
        return result


def analyze(
    call: Union[CallDescriptor, Dict[str, Any]],
    effects: Optional[SimulatedEffects] = None,
    analyzer: Optional[RiskAnalyzer] = None,
    **overrides,
) -> AnalysisResult:
    """blocking entry point. builds an analyzer from the environment (plus overrides) when none is given."""
    if not isinstance(call, CallDescriptor):
        call = CallDescriptor.from_dict(call)

    async def _run() -> AnalysisResult:
        owned = analyzer is None
        instance = analyzer or RiskAnalyzer.from_config(**overrides)
        try:
            return await instance.analyze(call, effects)
        finally:
            if owned:
                await instance.aclose()

    return asyncio.run(_run())
