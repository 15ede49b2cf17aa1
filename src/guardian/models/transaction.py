"""call descriptor and simulated effects"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from guardian.errors import InvalidCallError
from guardian.models.values import ArgValue, MapValue, numeric_value, to_map, to_plain, to_value

NETWORKS = ("mainnet", "testnet", "devnet")


class ChangeType(Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"

    @classmethod
    def parse(cls, raw: Any) -> "ChangeType":
        text = str(raw or "").lower()
        # fullnode write-set names
        if text in ("create", "create_resource"):
            return cls.CREATE
        if text in ("delete", "delete_resource"):
            return cls.DELETE
        return cls.MODIFY


@dataclass(frozen=True)
class FunctionPath:
    address: str
    module: str
    function: str


def parse_function_path(path: str) -> FunctionPath:
    """split 0x1::coin::transfer into its parts"""
    parts = (path or "").split("::")
    if len(parts) < 3:
        return FunctionPath(address=parts[0] if parts else "", module="", function="")
    return FunctionPath(address=parts[0], module=parts[1], function="::".join(parts[2:]))


@dataclass(frozen=True)
class CallDescriptor:
    """the proposed invocation, immutable input to every component"""
    function: str
    arguments: Tuple[ArgValue, ...] = ()
    type_arguments: Tuple[str, ...] = ()
    network: str = "testnet"
    sender: Optional[str] = None
    simulation_id: Optional[str] = None
    estimated_value_usd: Optional[float] = None

    @property
    def path(self) -> FunctionPath:
        return parse_function_path(self.function)

    @property
    def module_address(self) -> str:
        return self.path.address

    @property
    def module_name(self) -> str:
        return self.path.module

    @property
    def function_name(self) -> str:
        return self.path.function

    def numeric_arguments(self) -> List[int]:
        values = []
        for arg in self.arguments:
            number = numeric_value(arg)
            if number is not None:
                values.append(number)
        return values

    def plain_arguments(self) -> List[Any]:
        return [to_plain(arg) for arg in self.arguments]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallDescriptor":
        if not isinstance(data, dict):
            raise InvalidCallError("call descriptor must be an object")
        function = data.get("function") or data.get("functionName")
        if not isinstance(function, str) or function.count("::") < 2:
            raise InvalidCallError(f"function must look like address::module::function, got {function!r}")
        network = str(data.get("network") or "testnet").lower()
        if network not in NETWORKS:
            raise InvalidCallError(f"unknown network {network!r}")
        arguments = data.get("arguments") or []
        type_arguments = data.get("type_arguments") or data.get("typeArguments") or []
        if not isinstance(arguments, list) or not isinstance(type_arguments, list):
            raise InvalidCallError("arguments and type_arguments must be lists")
        value_usd = data.get("estimated_value_usd", data.get("estimatedValueUSD"))
        return cls(
            function=function,
            arguments=tuple(to_value(arg) for arg in arguments),
            type_arguments=tuple(str(t) for t in type_arguments),
            network=network,
            sender=data.get("sender"),
            simulation_id=data.get("simulation_id") or data.get("simulationId"),
            estimated_value_usd=float(value_usd) if value_usd is not None else None,
        )


@dataclass(frozen=True)
class StateChange:
    address: str
    resource: str
    change_type: ChangeType = ChangeType.MODIFY
    before: Optional[MapValue] = None
    after: Optional[MapValue] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateChange":
        return cls(
            address=str(data.get("address", "")),
            resource=str(data.get("resource", "")),
            change_type=ChangeType.parse(data.get("type") or data.get("change_type")),
            before=to_map(data.get("before")),
            after=to_map(data.get("after") if "after" in data else data.get("data")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "resource": self.resource,
            "type": self.change_type.value,
            "before": to_plain(self.before) if self.before is not None else None,
            "after": to_plain(self.after) if self.after is not None else None,
        }


@dataclass(frozen=True)
class Event:
    type: str
    data: MapValue = field(default_factory=MapValue)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        return cls(type=str(data.get("type", "")), data=to_map(data.get("data")) or MapValue())

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "data": to_plain(self.data)}


@dataclass(frozen=True)
class SimulatedEffects:
    """externally computed effects, trusted as given"""
    success: bool = True
    state_changes: Tuple[StateChange, ...] = ()
    events: Tuple[Event, ...] = ()
    gas_used: int = 0
    error: Optional[str] = None

    @classmethod
    def empty(cls) -> "SimulatedEffects":
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulatedEffects":
        gas = data.get("gas_used", data.get("gasUsed", 0))
        return cls(
            success=bool(data.get("success", True)),
            state_changes=tuple(
                StateChange.from_dict(c) for c in (data.get("state_changes") or data.get("stateChanges") or [])
            ),
            events=tuple(Event.from_dict(e) for e in (data.get("events") or [])),
            gas_used=int(gas or 0),
            error=data.get("error"),
        )
