"""autonomous tool-use investigation of a call.

the model is handed the call, whatever earlier stages found, and the tool
catalogue. it investigates until it calls conclude_analysis, stops calling
tools, runs out of iterations, or runs out of time.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from guardian.agent.tools import CONCLUDE_TOOL, AgentToolExecutor, get_agent_tools
from guardian.ai.knowledge import sanitize_for_llm
from guardian.ai.request import PipelineRequest
from guardian.config import config
from guardian.errors import BudgetExceededError
from guardian.models import (
    Finding,
    Provenance,
    coerce_category,
    coerce_severity,
)
from guardian.utils.correlation import get_analysis_id
from guardian.utils.cost_manager import CostManager
from guardian.utils.llm_backend.base import LLMBackend, LLMResponse
from guardian.utils.llm_backend.factory import create_backend
from guardian.utils.logging import AnalysisLogger

logger = logging.getLogger(__name__)

STAGE_AGENT = "agent"
AGENT_FINDING_CONFIDENCE = 0.85

AGENT_SYSTEM_PROMPT = """You are a blockchain security agent investigating a Move transaction for potential risks.

Investigate the transaction with the available tools and decide whether it is safe or malicious.

## Investigation strategy
1. Check whether any address involved is a known threat
2. Analyze the called module for dangerous functions
3. Look for overflow risk (the Cetus hack lost $223M to an unchecked shift)
4. Check for privilege escalation paths
5. Conclude with conclude_analysis once you have enough information

## Attack patterns to watch for
- Cetus-style overflow: shifts without bounds checks
- Flash loan attacks: borrow, manipulate, profit and repay in one transaction
- Oracle manipulation: price updates immediately before swaps
- Rug pull setup: admin functions, pause switches, upgradeable modules
- Unlimited approvals

Call tools only when they add information. Multiple independent indicators
strengthen a conclusion. A function called "emergency_withdraw" means something
different in a DAO than in a honeypot.

Use conclude_analysis for your final assessment."""


def build_agent_prompt(request: PipelineRequest) -> str:
    call = request.call
    lines = [
        "Investigate this transaction for security risks:",
        "",
        "## Transaction Details",
        f"- Function: {sanitize_for_llm(call.function, 500)}",
        f"- Module Address: {call.module_address}",
        f"- Module Name: {sanitize_for_llm(call.module_name, 200)}",
        f"- Type Arguments: {sanitize_for_llm(json.dumps(list(call.type_arguments)), 2000)}",
        f"- Arguments: {sanitize_for_llm(json.dumps(call.plain_arguments(), indent=2, default=str), 5000)}",
    ]
    if call.sender:
        lines.append(f"- Sender: {call.sender}")
    lines.append(f"- Network: {call.network}")

    if request.prior_findings:
        lines += ["", "## Previous Analysis Findings", "Earlier analysis already found these issues:"]
        for finding in request.prior_findings:
            lines.append(f"- [{finding.severity.value}] {finding.title}: {finding.description}")
        lines += ["", "Investigate these and look for additional risks."]

    lines += ["", "Use the available tools to investigate, then conclude with your assessment."]
    return "\n".join(lines)


@dataclass
class AgenticResult:
    success: bool
    concluded: bool = False
    issues: List[Finding] = field(default_factory=list)
    tools_used: List[str] = field(default_factory=list)
    iterations: int = 0
    reasoning: str = ""
    risk_level: Optional[str] = None
    raw_tool_results: Dict[str, Any] = field(default_factory=dict)
    elapsed_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "concluded": self.concluded,
            "issues": [f.to_dict() for f in self.issues],
            "tools_used": list(self.tools_used),
            "iterations": self.iterations,
            "reasoning": self.reasoning,
            "risk_level": self.risk_level,
            "raw_tool_results": dict(self.raw_tool_results),
            "elapsed_ms": self.elapsed_ms,
        }


def conclusion_findings(conclusion: Dict[str, Any]) -> List[Finding]:
    issues = conclusion.get("issues")
    if not isinstance(issues, list):
        return []
    findings = []
    for issue in issues:
        if not isinstance(issue, dict):
            continue
        category = coerce_category(issue.get("category"))
        evidence = issue.get("evidence")
        findings.append(Finding(
            pattern_id=f"ai:agent:{category.value.lower()}",
            category=category,
            severity=coerce_severity(issue.get("severity")),
            title=str(issue.get("title") or "Agent Finding"),
            description=str(issue.get("description") or ""),
            recommendation=str(issue.get("recommendation") or ""),
            confidence=AGENT_FINDING_CONFIDENCE,
            source=Provenance.LLM,
            evidence={"text": str(evidence)} if evidence else {},
        ))
    return findings


def _assistant_content(response: LLMResponse) -> List[Dict[str, Any]]:
    raw_content = response.metadata.get("raw_content")
    if raw_content:
        return list(raw_content)
    content = []
    if response.text:
        content.append({"type": "text", "text": response.text})
    for tool_call in response.tool_calls:
        content.append({
            "type": "tool_use",
            "id": tool_call["id"],
            "name": tool_call["name"],
            "input": tool_call.get("input") or {}
        })
    return content


def _tool_input(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {"raw": raw}
        return parsed if isinstance(parsed, dict) else {"raw": parsed}
    return {}


class AgenticInvestigator:

    def __init__(
        self,
        backend: Optional[LLMBackend],
        executor: AgentToolExecutor,
        clock: Callable[[], float] = time.monotonic,
        max_iterations: Optional[int] = None,
        max_seconds: Optional[float] = None,
        tool_timeout: Optional[float] = None,
        cost_manager: Optional[CostManager] = None,
        analysis_logger: Optional[AnalysisLogger] = None,
    ):
        self.backend = backend
        self.executor = executor
        self._clock = clock
        self.max_iterations = max_iterations if max_iterations is not None else config.AGENT_MAX_ITERATIONS
        self.max_seconds = max_seconds if max_seconds is not None else config.AGENT_MAX_SECONDS
        self.tool_timeout = tool_timeout if tool_timeout is not None else config.AGENT_TOOL_TIMEOUT
        self.cost_manager = cost_manager
        self.analysis_logger = analysis_logger

    @classmethod
    def from_config(cls, executor: AgentToolExecutor, **kwargs) -> "AgenticInvestigator":
        return cls(create_backend(config.AGENT_MODEL), executor, **kwargs)

    def _turn_cost_estimate(self) -> float:
        pricing = config.get_model_pricing(getattr(self.backend, "model", None) or config.AGENT_MODEL)
        return config.AGENT_MAX_TOKENS * pricing["output"] / 1_000_000

    async def _call_model(self, messages: List[Dict[str, Any]], iteration: int) -> LLMResponse:
        start = time.perf_counter()
        response = await asyncio.to_thread(
            self.backend.generate_with_tools_multi_turn,
            messages=messages,
            tools=get_agent_tools(),
            system_prompt=AGENT_SYSTEM_PROMPT,
            max_tokens=config.AGENT_MAX_TOKENS,
        )
        duration = time.perf_counter() - start

        if self.cost_manager:
            self.cost_manager.log_cost(STAGE_AGENT, get_analysis_id() or "unknown", iteration, "tool_turn", response.cost)
        if self.analysis_logger:
            self.analysis_logger.log_ai_call(
                stage=STAGE_AGENT,
                prompt=json.dumps(messages[-1], default=str),
                response=response.text,
                thinking=response.thinking,
                cost=response.cost,
                duration_seconds=duration,
                model=response.model,
                prompt_tokens=response.prompt_tokens,
                output_tokens=response.output_tokens,
                thinking_tokens=response.thinking_tokens,
                iteration=iteration,
                metadata={"tool_calls": [c.get("name") for c in response.tool_calls]},
            )
        return response

    async def _run_tool(self, executor: AgentToolExecutor, tool_call: Dict[str, Any], iteration: int) -> Dict[str, Any]:
        name = tool_call.get("name", "")
        tool_input = _tool_input(tool_call.get("input"))
        start = time.perf_counter()
        status = "ok"
        try:
            result = await asyncio.wait_for(executor.execute(name, tool_input), timeout=self.tool_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Agent] tool {name} timed out after {self.tool_timeout}s")
            result = {"error": f"Tool timed out after {self.tool_timeout:.0f}s"}
        except Exception as e:
            logger.warning(f"[Agent] tool {name} failed: {e}")
            result = {"error": f"Tool execution failed: {e}"}
            if self.analysis_logger:
                self.analysis_logger.log_error("agent", name, str(e), {"iteration": iteration, "input": tool_input})
        if "error" in result:
            status = "error"
        if self.analysis_logger:
            self.analysis_logger.log_tool_call(
                tool_name=name,
                tool_input=tool_input,
                output=result,
                status=status,
                iteration=iteration,
                duration_seconds=time.perf_counter() - start,
            )
        return result

    async def investigate(self, request: PipelineRequest) -> AgenticResult:
        start = self._clock()

        def elapsed_ms() -> int:
            return int((self._clock() - start) * 1000)

        if self.backend is None or not self.backend.is_available():
            return AgenticResult(success=False, reasoning="No language model backend configured")

        executor = self.executor.with_network(request.call.network)
        messages: List[Dict[str, Any]] = [{"role": "user", "content": build_agent_prompt(request)}]
        tools_used: List[str] = []
        raw_tool_results: Dict[str, Any] = {}
        iterations = 0
        conclusion: Optional[Dict[str, Any]] = None

        try:
            while iterations < self.max_iterations and conclusion is None:
                if self._clock() - start >= self.max_seconds:
                    logger.warning(f"[Agent] time budget of {self.max_seconds:.0f}s spent after {iterations} iterations")
                    break
                if self.cost_manager:
                    self.cost_manager.check_budget()
                    if self.cost_manager.would_exceed_budget(self._turn_cost_estimate()):
                        raise BudgetExceededError("next investigation turn would exceed the analysis cost limit")

                iterations += 1
                response = await self._call_model(messages, iterations)
                messages.append({"role": "assistant", "content": _assistant_content(response)})

                if not response.tool_calls:
                    break

                results = await asyncio.gather(
                    *(self._run_tool(executor, call, iterations) for call in response.tool_calls)
                )

                tool_result_blocks = []
                for tool_call, result in zip(response.tool_calls, results):
                    name = tool_call.get("name", "")
                    if name not in tools_used:
                        tools_used.append(name)
                    raw_tool_results[f"{name}_{iterations}"] = result
                    tool_result_blocks.append({
                        "type": "tool_result",
                        "tool_use_id": tool_call.get("id"),
                        "content": json.dumps(result, default=str),
                    })
                    if name == CONCLUDE_TOOL and conclusion is None:
                        conclusion = _tool_input(tool_call.get("input"))
                messages.append({"role": "user", "content": tool_result_blocks})
        except Exception as e:
            logger.warning(f"[Agent] investigation failed after {iterations} iterations: {e}")
            if self.analysis_logger:
                self.analysis_logger.log_error("agent", "investigation", str(e), {"iterations": iterations})
            return AgenticResult(
                success=False,
                tools_used=tools_used,
                iterations=iterations,
                reasoning=f"Analysis failed: {e}",
                raw_tool_results=raw_tool_results,
                elapsed_ms=elapsed_ms(),
            )

        if conclusion is None:
            return AgenticResult(
                success=False,
                tools_used=tools_used,
                iterations=iterations,
                reasoning="Investigation ended without a conclusion",
                raw_tool_results=raw_tool_results,
                elapsed_ms=elapsed_ms(),
            )

        issues = conclusion_findings(conclusion)
        risk_level = str(conclusion.get("risk_level") or "").upper() or None
        logger.info(
            f"[Agent] concluded after {iterations} iterations: risk={risk_level} "
            f"issues={len(issues)} tools={tools_used}"
        )
        return AgenticResult(
            success=True,
            concluded=True,
            issues=issues,
            tools_used=tools_used,
            iterations=iterations,
            reasoning=str(conclusion.get("summary") or "Analysis completed"),
            risk_level=risk_level,
            raw_tool_results=raw_tool_results,
            elapsed_ms=elapsed_ms(),
        )
