"""shared builders for guardian tests"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from guardian.analyzers.chain_client import ModuleABI, StaticChainClient
from guardian.models import CallDescriptor, SimulatedEffects
from guardian.utils.llm_backend import LLMBackend, LLMResponse

SENDER = "0xa11ce"
RECIPIENT = "0xb0b"
APT_STORE = "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"


class FakeClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_call(function: str, arguments: Optional[List[Any]] = None, **extra) -> CallDescriptor:
    data = {"function": function, "arguments": arguments or []}
    data.update(extra)
    return CallDescriptor.from_dict(data)


def coin_change(address: str, before: int, after: int, resource: str = APT_STORE) -> Dict[str, Any]:
    return {
        "address": address,
        "resource": resource,
        "type": "modify",
        "before": {"coin": {"value": str(before)}},
        "after": {"coin": {"value": str(after)}},
    }


def make_effects(state_changes=None, events=None, gas_used: int = 0) -> SimulatedEffects:
    return SimulatedEffects.from_dict({
        "success": True,
        "state_changes": state_changes or [],
        "events": events or [],
        "gas_used": gas_used,
    })


def llm_response(text: str = "", tool_calls=None, cost: float = 0.001, model: str = "test-model") -> LLMResponse:
    return LLMResponse(
        text=text,
        cost=cost,
        model=model,
        prompt_tokens=100,
        output_tokens=50,
        tool_calls=list(tool_calls or []),
    )


def fake_backend(*texts: str, model: str = "test-model") -> MagicMock:
    """backend whose generate() answers with the given texts in order"""
    backend = MagicMock(spec=LLMBackend)
    backend.model = model
    backend.is_available.return_value = True
    backend.generate.side_effect = [llm_response(t, model=model) for t in texts]
    return backend


def tool_backend(*turns: List[Dict[str, Any]], model: str = "test-model") -> MagicMock:
    """backend whose tool turns return the given tool call lists in order"""
    backend = MagicMock(spec=LLMBackend)
    backend.model = model
    backend.is_available.return_value = True
    backend.generate_with_tools_multi_turn.side_effect = [
        llm_response(tool_calls=calls, model=model) for calls in turns
    ]
    return backend


def tool_call(name: str, tool_input: Dict[str, Any], call_id: Optional[str] = None) -> Dict[str, Any]:
    return {"id": call_id or f"toolu_{name}", "name": name, "input": tool_input}


def as_json(data: Dict[str, Any]) -> str:
    return json.dumps(data)


def module_abi(address: str, name: str, functions=None, structs=None, friends=None) -> ModuleABI:
    return ModuleABI.from_dict({
        "address": address,
        "name": name,
        "friends": friends or [],
        "exposed_functions": functions or [],
        "structs": structs or [],
    })


def fn_abi(name: str, visibility: str = "public", is_entry: bool = True, params=None, returns=None) -> Dict[str, Any]:
    return {
        "name": name,
        "visibility": visibility,
        "is_entry": is_entry,
        "is_view": False,
        "generic_type_params": [],
        "params": params if params is not None else ["&signer"],
        "return": returns or [],
    }


@pytest.fixture
def chain_client() -> StaticChainClient:
    pool = module_abi("0xdead", "pool", functions=[
        fn_abi("swap", params=["&signer", "u64", "u64"]),
        fn_abi("remove_liquidity_all", params=["&signer", "u64"]),
        fn_abi("set_admin", params=["address"]),
        fn_abi("checked_shlw", visibility="public", is_entry=False, params=["u256", "u8"]),
    ])
    return StaticChainClient(
        modules={("0xdead", "pool"): pool},
        transactions={SENDER: [
            {"type": "user_transaction", "success": True, "payload": {"function": "0x1::coin::transfer"}},
        ]},
    )
