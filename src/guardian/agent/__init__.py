"""tool-using investigation of a call, with a model-free fallback"""

from .investigator import AgenticInvestigator, AgenticResult, build_agent_prompt, conclusion_findings
from .quick_check import FOCUS_AREAS, quick_check
from .tools import CONCLUDE_TOOL, AgentToolExecutor, get_agent_tools

__all__ = [
    "AgenticInvestigator",
    "AgenticResult",
    "build_agent_prompt",
    "conclusion_findings",
    "FOCUS_AREAS",
    "quick_check",
    "CONCLUDE_TOOL",
    "AgentToolExecutor",
    "get_agent_tools",
]
