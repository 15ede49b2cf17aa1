"""llm backend base classes. every stage and the investigator talk to a model through these."""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field


@dataclass
class LLMResponse:
    """unified response format from any llm backend."""
    text: str
    thinking: Optional[str] = None
    prompt_tokens: int = 0
    output_tokens: int = 0
    thinking_tokens: int = 0
    cost: float = 0.0
    model: str = ""
    metadata: Dict[str, Any] = None
    parsed: Any = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.output_tokens + self.thinking_tokens


class LLMBackend(ABC):
    """abstract base class for all llm backends."""

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 4000,
        temperature: float = 0.7,
        **kwargs
    ) -> LLMResponse:
        """single-turn completion. kwargs may carry thinking_budget."""

    @abstractmethod
    def is_available(self) -> bool:
        """true when credentials and client are ready."""

    def generate_with_tools_multi_turn(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        thinking_budget: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """one turn of a tool-use conversation. tool calls come back as {"id", "name", "input"} dicts."""
        raise NotImplementedError(f"{type(self).__name__} does not support tool use")
