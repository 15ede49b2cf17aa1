import logging
from typing import Any, Dict, List, Optional

import anthropic
import httpx

from guardian.config import config
from guardian.utils.llm_backend.base import LLMBackend, LLMResponse

logger = logging.getLogger(__name__)

# anthropic rejects smaller thinking budgets
MIN_THINKING_BUDGET = 1024
# room left for the verdict once thinking has used its budget
THINKING_ANSWER_TOKENS = 4000

CONNECT_TIMEOUT = 10.0


def _block_to_dict(block: Any) -> Dict[str, Any]:
    if isinstance(block, dict):
        return block
    if hasattr(block, "model_dump"):
        return block.model_dump(exclude_none=True)
    return {"type": getattr(block, "type", "text"), "text": getattr(block, "text", "")}


def request_timeout() -> httpx.Timeout:
    """http timeout slightly above the stage timeout so the pipeline's own deadline fires first"""
    read = config.LLM_STAGE_TIMEOUT + 5.0
    return httpx.Timeout(timeout=read, read=read, write=30.0, connect=CONNECT_TIMEOUT)


class ClaudeBackend(LLMBackend):
    """anthropic messages api. one instance per model, shared by every stage that uses it."""

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None, client: Any = None):
        super().__init__(model or config.REASONING_MODEL)
        if client is None:
            api_key = api_key or config.ANTHROPIC_API_KEY
            if not api_key:
                raise ValueError(
                    "ANTHROPIC_API_KEY not set in environment. "
                    "Set it with: export ANTHROPIC_API_KEY='your-key-here'"
                )
            client = anthropic.Anthropic(api_key=api_key, timeout=request_timeout())
        self.client = client
        self.available = True

    def is_available(self) -> bool:
        return self.available

    def _params(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str],
        max_tokens: Optional[int],
        temperature: Optional[float],
        thinking_budget: Optional[int],
    ) -> Dict[str, Any]:
        max_tokens = max_tokens or config.REASONING_MAX_TOKENS
        budget = thinking_budget or 0
        if 0 < budget < MIN_THINKING_BUDGET:
            logger.warning(f"[ClaudeBackend] thinking budget {budget} below minimum {MIN_THINKING_BUDGET}, increasing")
            budget = MIN_THINKING_BUDGET

        params: Dict[str, Any] = {"model": self.model, "messages": messages}
        if budget > 0:
            # extended thinking only accepts temperature 1
            params["temperature"] = config.EXTENDED_THINKING_TEMPERATURE
            params["thinking"] = {"type": "enabled", "budget_tokens": budget}
            if max_tokens <= budget:
                max_tokens = budget + THINKING_ANSWER_TOKENS
        else:
            params["temperature"] = config.NORMAL_TEMPERATURE if temperature is None else temperature
        params["max_tokens"] = max_tokens
        if system_prompt:
            params["system"] = system_prompt
        return params

    def _cost(self, prompt_tokens: int, output_tokens: int) -> float:
        pricing = config.get_model_pricing(self.model)
        return (prompt_tokens * pricing["input"] + output_tokens * pricing["output"]) / 1_000_000

    def _send(self, params: Dict[str, Any]) -> LLMResponse:
        if config.DEBUG_LLM_CALLS:
            logger.debug(
                f"[ClaudeBackend] {self.model} messages={len(params['messages'])} "
                f"tools={len(params.get('tools', []))} max_tokens={params['max_tokens']}"
            )
        message = self.client.messages.create(**params)

        text = ""
        thinking = None
        tool_calls = []
        for block in message.content:
            if block.type == "thinking":
                thinking = block.thinking
            elif block.type == "text":
                text += block.text
            elif block.type == "tool_use":
                tool_calls.append({"id": block.id, "name": block.name, "input": block.input})

        if message.stop_reason == "max_tokens":
            logger.warning(f"[ClaudeBackend] {self.model} hit max_tokens={params['max_tokens']}, verdict may be truncated")

        usage = message.usage
        thinking_tokens = getattr(usage, "thinking_tokens", 0) or 0
        return LLMResponse(
            text=text,
            thinking=thinking,
            prompt_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            thinking_tokens=thinking_tokens,
            cost=self._cost(usage.input_tokens, usage.output_tokens + thinking_tokens),
            model=self.model,
            tool_calls=tool_calls,
            metadata={
                "stop_reason": message.stop_reason,
                "stop_sequence": message.stop_sequence,
                "raw_content": [_block_to_dict(block) for block in message.content],
            },
        )

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        thinking_budget: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        messages = [{"role": "user", "content": prompt}]
        return self._send(self._params(messages, system_prompt, max_tokens, temperature, thinking_budget))

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
        params = self._params(messages, system_prompt, max_tokens, temperature, thinking_budget)
        params["tools"] = list(tools or [])
        return self._send(params)
