"""escalating ai pipeline: fast triage, structured reasoning, deep reasoning.

each stage is more expensive than the last and only runs when the previous
one was inconclusive or the stakes are high. a stage that cannot run (no
backend, rate limited, over budget, timed out, unparseable answer) is
skipped with a warning; the pipeline itself never raises.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from guardian.aggregator import RiskAggregator
from guardian.ai.parsing import ParseOutcome, parse_response
from guardian.ai.prompts import (
    DEEP_SYSTEM_PROMPT,
    REASONING_SYSTEM_PROMPT,
    TRIAGE_SYSTEM_PROMPT,
    build_deep_prompt,
    build_reasoning_prompt,
    build_triage_prompt,
)
from guardian.ai.request import PipelineRequest
from guardian.ai.schemas import DeepResponse, IssueSchema, ReasoningResponse, TriageResponse
from guardian.config import config
from guardian.errors import BudgetExceededError, StageUnavailableError
from guardian.models import (
    Finding,
    Provenance,
    RiskRating,
    Severity,
    clamp_confidence,
    coerce_category,
    coerce_severity,
)
from guardian.rate_limiter import RateLimit, RateLimiter
from guardian.utils.correlation import get_analysis_id
from guardian.utils.cost_manager import CostManager
from guardian.utils.llm_backend.base import LLMBackend, LLMResponse
from guardian.utils.llm_backend.factory import create_backend
from guardian.utils.logging import AnalysisLogger

logger = logging.getLogger(__name__)

STAGE_TRIAGE = "triage"
STAGE_REASONING = "reasoning"
STAGE_DEEP = "deep"

STAGE_LABELS = {
    STAGE_TRIAGE: "Triage",
    STAGE_REASONING: "Reasoning",
    STAGE_DEEP: "Deep reasoning",
}


@dataclass
class TriageResult:
    classification: str
    confidence: float
    reasoning: str
    findings: List[Finding] = field(default_factory=list)
    parse_mode: str = "strict"

    @property
    def is_confident_safe(self) -> bool:
        return self.classification == "SAFE" and self.confidence >= config.TRIAGE_SAFE_CONFIDENCE


@dataclass
class ReasoningResult:
    confidence: float
    reasoning: str
    findings: List[Finding] = field(default_factory=list)
    needs_deep_analysis: bool = False
    steps: List[Dict[str, Any]] = field(default_factory=list)
    parse_mode: str = "strict"


@dataclass
class DeepResult:
    confidence: float
    reasoning: str
    findings: List[Finding] = field(default_factory=list)
    thinking: Optional[str] = None
    final_risk_score: int = 50
    parse_mode: str = "strict"


@dataclass
class PipelineResult:
    findings: List[Finding] = field(default_factory=list)
    score: float = 0.0
    rating: RiskRating = RiskRating.SAFE
    confidence: float = 0.0
    reasoning: str = ""
    thinking: Optional[str] = None
    stages_completed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def deepest_stage(self) -> Optional[str]:
        return self.stages_completed[-1] if self.stages_completed else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "score": self.score,
            "rating": self.rating.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "thinking": self.thinking,
            "stages_completed": list(self.stages_completed),
            "deepest_stage": self.deepest_stage,
            "warnings": list(self.warnings),
            "elapsed_ms": self.elapsed_ms,
        }


def issue_to_finding(issue: IssueSchema, stage: str, confidence: float, recommendation: str = "") -> Finding:
    category = coerce_category(issue.category)
    evidence = {}
    if issue.evidence:
        evidence["text"] = issue.evidence
    if issue.attack_scenario:
        evidence["attack_scenario"] = issue.attack_scenario
    return Finding(
        pattern_id=f"ai:{stage}:{category.value.lower()}",
        category=category,
        severity=coerce_severity(issue.severity),
        title=issue.title,
        description=issue.description,
        recommendation=issue.recommendation or recommendation,
        confidence=clamp_confidence(confidence),
        source=Provenance.LLM,
        evidence=evidence,
    )


def is_duplicate(candidate: Finding, existing: List[Finding]) -> bool:
    """same title, or an existing description already contains the start of this one"""
    title = candidate.title.lower()
    prefix = candidate.description.lower()[:50]
    for finding in existing:
        if finding.title.lower() == title:
            return True
        if prefix and prefix in finding.description.lower():
            return True
    return False


class EscalatingPipeline:

    def __init__(
        self,
        triage_backend: Optional[LLMBackend] = None,
        reasoning_backend: Optional[LLMBackend] = None,
        deep_backend: Optional[LLMBackend] = None,
        rate_limiter: Optional[RateLimiter] = None,
        aggregator: Optional[RiskAggregator] = None,
        cost_manager: Optional[CostManager] = None,
        analysis_logger: Optional[AnalysisLogger] = None,
        stage_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.backends: Dict[str, Optional[LLMBackend]] = {
            STAGE_TRIAGE: triage_backend,
            STAGE_REASONING: reasoning_backend,
            STAGE_DEEP: deep_backend,
        }
        self.rate_limiter = rate_limiter or RateLimiter()
        self.aggregator = aggregator or RiskAggregator()
        self.cost_manager = cost_manager
        self.analysis_logger = analysis_logger
        self.stage_timeout = stage_timeout if stage_timeout is not None else config.LLM_STAGE_TIMEOUT
        self._clock = clock
        self.rate_limits = {
            STAGE_TRIAGE: RateLimit.per_minute(config.TRIAGE_RATE_PER_MINUTE),
            STAGE_REASONING: RateLimit.per_minute(config.REASONING_RATE_PER_MINUTE),
            STAGE_DEEP: RateLimit.per_minute(config.DEEP_RATE_PER_MINUTE),
        }

    @classmethod
    def from_config(cls, **kwargs) -> "EscalatingPipeline":
        """one claude backend per stage model, none when no api key is set"""
        return cls(
            triage_backend=create_backend(config.TRIAGE_MODEL),
            reasoning_backend=create_backend(config.REASONING_MODEL),
            deep_backend=create_backend(config.DEEP_MODEL),
            **kwargs,
        )

    def _available(self, stage: str) -> bool:
        backend = self.backends.get(stage)
        return backend is not None and backend.is_available()

    def _deep_cost_estimate(self) -> float:
        backend = self.backends.get(STAGE_DEEP)
        pricing = config.get_model_pricing(getattr(backend, "model", None) or config.DEEP_MODEL)
        return config.DEEP_MAX_TOKENS * pricing["output"] / 1_000_000

    async def _generate(
        self,
        stage: str,
        prompt: str,
        system_prompt: str,
        max_tokens: int,
        thinking_budget: Optional[int] = None,
    ) -> LLMResponse:
        if not self._available(stage):
            raise StageUnavailableError(stage, "no language model backend configured")
        if not self.rate_limiter.try_acquire(f"ai:{stage}", self.rate_limits[stage]):
            raise StageUnavailableError(stage, "rate limited")
        if self.cost_manager:
            self.cost_manager.check_budget()

        backend = self.backends[stage]
        kwargs = {"system_prompt": system_prompt, "max_tokens": max_tokens}
        if thinking_budget:
            kwargs["thinking_budget"] = thinking_budget

        start = time.perf_counter()
        response = await asyncio.wait_for(
            asyncio.to_thread(backend.generate, prompt, **kwargs),
            timeout=self.stage_timeout,
        )
        duration = time.perf_counter() - start

        if self.cost_manager:
            self.cost_manager.log_cost(stage, get_analysis_id() or "unknown", 0, "generate", response.cost)
        if self.analysis_logger:
            self.analysis_logger.log_ai_call(
                stage=stage,
                prompt=prompt,
                response=response.text,
                thinking=response.thinking,
                cost=response.cost,
                duration_seconds=duration,
                model=response.model,
                prompt_tokens=response.prompt_tokens,
                output_tokens=response.output_tokens,
                thinking_tokens=response.thinking_tokens,
            )
        return response

    def _parsed(self, stage: str, outcome: ParseOutcome, warnings: List[str]):
        if outcome.warning:
            warnings.append(f"{STAGE_LABELS[stage]}: {outcome.warning}")
        if not outcome.ok:
            raise StageUnavailableError(stage, "response could not be parsed")
        return outcome.value

    async def _triage(self, request: PipelineRequest, warnings: List[str]) -> TriageResult:
        response = await self._generate(
            STAGE_TRIAGE, build_triage_prompt(request), TRIAGE_SYSTEM_PROMPT, config.TRIAGE_MAX_TOKENS
        )
        outcome = parse_response(response.text, TriageResponse)
        parsed: TriageResponse = self._parsed(STAGE_TRIAGE, outcome, warnings)

        findings = []
        if parsed.classification == "DANGEROUS":
            provisional = parsed.confidence * config.TRIAGE_DANGEROUS_FACTOR
            findings = [
                issue_to_finding(issue, STAGE_TRIAGE, provisional, recommendation="Requires deeper analysis")
                for issue in parsed.quick_issues
            ]
        return TriageResult(
            classification=parsed.classification,
            confidence=parsed.confidence,
            reasoning=parsed.reasoning,
            findings=findings,
            parse_mode=outcome.mode,
        )

    async def _reason(self, request: PipelineRequest, warnings: List[str], triage: Optional[TriageResult]) -> ReasoningResult:
        response = await self._generate(
            STAGE_REASONING,
            build_reasoning_prompt(request, triage),
            REASONING_SYSTEM_PROMPT,
            config.REASONING_MAX_TOKENS,
        )
        outcome = parse_response(response.text, ReasoningResponse)
        parsed: ReasoningResponse = self._parsed(STAGE_REASONING, outcome, warnings)
        return ReasoningResult(
            confidence=parsed.confidence,
            reasoning=parsed.overall_assessment,
            findings=[issue_to_finding(issue, STAGE_REASONING, parsed.confidence) for issue in parsed.issues],
            needs_deep_analysis=parsed.needs_deep_analysis,
            steps=[step.model_dump() for step in parsed.steps],
            parse_mode=outcome.mode,
        )

    async def _deep(self, request: PipelineRequest, warnings: List[str], reasoning: ReasoningResult) -> DeepResult:
        if self.cost_manager and self.cost_manager.would_exceed_budget(self._deep_cost_estimate()):
            raise BudgetExceededError("deep reasoning would exceed the analysis cost limit")
        response = await self._generate(
            STAGE_DEEP,
            build_deep_prompt(request, reasoning),
            DEEP_SYSTEM_PROMPT,
            config.DEEP_MAX_TOKENS,
            thinking_budget=config.DEEP_THINKING_BUDGET,
        )
        outcome = parse_response(response.text, DeepResponse)
        parsed: DeepResponse = self._parsed(STAGE_DEEP, outcome, warnings)
        return DeepResult(
            confidence=parsed.confidence,
            reasoning=parsed.deep_analysis,
            findings=[issue_to_finding(issue, STAGE_DEEP, parsed.confidence) for issue in parsed.additional_issues],
            thinking=response.thinking,
            final_risk_score=parsed.final_risk_score,
            parse_mode=outcome.mode,
        )

    async def _run_stage(self, stage: str, warnings: List[str], fn, *args):
        label = STAGE_LABELS[stage]
        try:
            return await fn(*args)
        except StageUnavailableError as e:
            warnings.append(f"{label} skipped: {e.reason}")
        except BudgetExceededError as e:
            warnings.append(f"{label} skipped: {e}")
        except asyncio.TimeoutError:
            logger.warning(f"[Pipeline] {stage} timed out after {self.stage_timeout}s")
            warnings.append(f"{label} skipped: timed out after {self.stage_timeout:.0f}s")
        except Exception as e:
            logger.warning(f"[Pipeline] {stage} failed: {e}")
            warnings.append(f"{label} skipped: {type(e).__name__}: {e}")
            if self.analysis_logger:
                self.analysis_logger.log_error("pipeline", stage, str(e), {"exception": type(e).__name__})
        self._log_decision(stage, "skip", warnings[-1], 0.0)
        return None

    def _log_decision(self, stage: str, decision: str, reasoning: str, confidence: float, findings_count: int = 0):
        if self.analysis_logger:
            self.analysis_logger.log_stage_decision(
                stage=stage,
                decision=decision,
                reasoning=reasoning,
                confidence=confidence,
                findings_count=findings_count,
            )

    def needs_deep(self, request: PipelineRequest, reasoning: ReasoningResult, findings: List[Finding]) -> bool:
        return (
            reasoning.needs_deep_analysis
            or reasoning.confidence < config.DEEP_CONFIDENCE_THRESHOLD
            or request.value_usd >= config.MIN_VALUE_FOR_DEEP_USD
            or any(f.severity == Severity.CRITICAL for f in findings)
        )

    def _finish(self, start: float, findings: List[Finding], confidence: float, **kwargs) -> PipelineResult:
        findings = self.aggregator.deduplicate(findings)
        score, rating = self.aggregator.aggregate(findings, confidence)
        return PipelineResult(
            findings=findings,
            score=score,
            rating=rating,
            confidence=confidence,
            elapsed_ms=int((self._clock() - start) * 1000),
            **kwargs,
        )

    async def run(self, request: PipelineRequest) -> PipelineResult:
        start = self._clock()
        findings: List[Finding] = []
        warnings: List[str] = []
        stages: List[str] = []
        confidence = 0.0
        reasoning_text = ""
        thinking = None

        if not any(self._available(stage) for stage in self.backends):
            warnings.append("AI analysis unavailable: no language model backend configured")
            return self._finish(start, findings, confidence, stages_completed=stages, warnings=warnings)

        triage = None
        complexity = request.complexity
        if complexity <= config.MAX_COMPLEXITY_FOR_TRIAGE:
            triage = await self._run_stage(STAGE_TRIAGE, warnings, self._triage, request, warnings)
            if triage is not None:
                stages.append(STAGE_TRIAGE)
                confidence = triage.confidence
                reasoning_text = triage.reasoning
                if triage.is_confident_safe:
                    self._log_decision(STAGE_TRIAGE, "stop", triage.reasoning, triage.confidence)
                    return self._finish(
                        start, [], confidence,
                        reasoning=reasoning_text, stages_completed=stages, warnings=warnings,
                    )
                findings.extend(triage.findings)
                self._log_decision(STAGE_TRIAGE, "escalate", triage.reasoning, triage.confidence, len(triage.findings))
        else:
            warnings.append(f"Triage skipped: complexity {complexity} exceeds {config.MAX_COMPLEXITY_FOR_TRIAGE}")

        reasoning = await self._run_stage(STAGE_REASONING, warnings, self._reason, request, warnings, triage)
        if reasoning is not None:
            stages.append(STAGE_REASONING)
            confidence = reasoning.confidence
            reasoning_text = reasoning.reasoning
            findings.extend(reasoning.findings)

            if self.needs_deep(request, reasoning, findings):
                self._log_decision(STAGE_REASONING, "escalate", reasoning.reasoning, confidence, len(reasoning.findings))
                deep = await self._run_stage(STAGE_DEEP, warnings, self._deep, request, warnings, reasoning)
                if deep is not None:
                    stages.append(STAGE_DEEP)
                    confidence = max(confidence, deep.confidence)
                    reasoning_text = deep.reasoning or reasoning_text
                    thinking = deep.thinking
                    added = [f for f in deep.findings if not is_duplicate(f, findings)]
                    findings.extend(added)
                    self._log_decision(STAGE_DEEP, "stop", reasoning_text, confidence, len(added))
            else:
                self._log_decision(STAGE_REASONING, "stop", reasoning.reasoning, confidence, len(reasoning.findings))

        result = self._finish(
            start, findings, confidence,
            reasoning=reasoning_text, thinking=thinking, stages_completed=stages, warnings=warnings,
        )
        logger.info(
            f"[Pipeline] {request.function}: stages={stages} rating={result.rating.value} "
            f"score={result.score} findings={len(result.findings)}"
        )
        return result
