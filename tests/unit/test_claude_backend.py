"""tests for the anthropic backend and the backend factory"""

import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from guardian.config import MODEL_SONNET
from guardian.utils.llm_backend import ClaudeBackend, LLMBackend, create_backend


def _message(*blocks, input_tokens=1000, output_tokens=200, stop_reason="end_turn"):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
        stop_reason=stop_reason,
        stop_sequence=None,
    )


def _text(text):
    return SimpleNamespace(type="text", text=text)


class TestClaudeBackend(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.backend = ClaudeBackend(model=MODEL_SONNET, client=self.client)

    def test_injected_client_is_available(self):
        self.assertTrue(self.backend.is_available())
        self.assertIsInstance(self.backend, LLMBackend)

    def test_generate(self):
        self.client.messages.create.return_value = _message(_text('{"classification": '), _text('"SAFE"}'))

        response = self.backend.generate("prompt", system_prompt="sys", max_tokens=512)

        self.assertEqual(response.text, '{"classification": "SAFE"}')
        self.assertEqual(response.prompt_tokens, 1000)
        self.assertEqual(response.model, MODEL_SONNET)
        # sonnet: $3 in, $15 out per million
        self.assertAlmostEqual(response.cost, 1000 * 3 / 1e6 + 200 * 15 / 1e6)
        self.assertEqual(response.metadata["stop_reason"], "end_turn")

        params = self.client.messages.create.call_args.kwargs
        self.assertEqual(params["system"], "sys")
        self.assertEqual(params["max_tokens"], 512)
        self.assertEqual(params["temperature"], 0.2)
        self.assertNotIn("thinking", params)

    def test_thinking_budget(self):
        thinking = SimpleNamespace(type="thinking", thinking="step one")
        self.client.messages.create.return_value = _message(thinking, _text("{}"))

        response = self.backend.generate("prompt", max_tokens=16000, thinking_budget=10000)

        self.assertEqual(response.thinking, "step one")
        params = self.client.messages.create.call_args.kwargs
        self.assertEqual(params["thinking"], {"type": "enabled", "budget_tokens": 10000})
        self.assertEqual(params["temperature"], 1.0)
        self.assertEqual(params["max_tokens"], 16000)

    def test_small_thinking_budget_raised(self):
        self.client.messages.create.return_value = _message(_text("{}"))

        self.backend.generate("prompt", max_tokens=512, thinking_budget=100)

        params = self.client.messages.create.call_args.kwargs
        self.assertEqual(params["thinking"]["budget_tokens"], 1024)
        self.assertEqual(params["max_tokens"], 1024 + 4000)

    def test_tool_use_turn(self):
        tool_use = SimpleNamespace(type="tool_use", id="toolu_1", name="get_module_abi", input={"address": "0x1"})
        self.client.messages.create.return_value = _message(_text("checking"), tool_use, stop_reason="tool_use")
        messages = [{"role": "user", "content": "investigate"}]
        tools = [{"name": "get_module_abi", "input_schema": {"type": "object"}}]

        response = self.backend.generate_with_tools_multi_turn(messages, tools, system_prompt="agent")

        self.assertEqual(response.tool_calls, [{"id": "toolu_1", "name": "get_module_abi", "input": {"address": "0x1"}}])
        params = self.client.messages.create.call_args.kwargs
        self.assertEqual(params["tools"], tools)
        self.assertEqual(params["messages"], messages)

    def test_missing_key_raises(self):
        with patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(ValueError):
                ClaudeBackend(model=MODEL_SONNET)


class TestCreateBackend(unittest.TestCase):

    def test_no_key_returns_none(self):
        with patch.dict("os.environ", {}, clear=True):
            self.assertIsNone(create_backend(MODEL_SONNET))

    def test_with_key(self):
        with patch("anthropic.Anthropic") as anthropic_class:
            backend = create_backend(MODEL_SONNET, api_key="sk-ant-test-key-000000000")
        self.assertIsInstance(backend, ClaudeBackend)
        self.assertEqual(backend.model, MODEL_SONNET)
        anthropic_class.assert_called_once()


if __name__ == "__main__":
    unittest.main()
