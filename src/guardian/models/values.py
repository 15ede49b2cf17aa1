"""typed argument and payload values

call arguments, event data and resource payloads arrive as decoded json with
no fixed schema. they are converted once into a small tagged union so the
pattern rules and the semantic analyzer can branch on the variant instead of
probing untyped dicts. numbers keep python's arbitrary precision, u128 and
u256 amounts included.
"""

from __future__ import annotations

import math
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple, Union

DIGITS = re.compile(r"^\d+$")

# above this a json number loses precision in most consumers
_SAFE_JSON_INT = 2 ** 53 - 1


@dataclass(frozen=True)
class TextValue:
    value: str


@dataclass(frozen=True)
class NumberValue:
    value: Union[int, float]


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class ListValue:
    items: Tuple["ArgValue", ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator["ArgValue"]:
        return iter(self.items)


@dataclass(frozen=True)
class MapValue:
    entries: Dict[str, "ArgValue"] = field(default_factory=dict)

    def get(self, key: str) -> Optional["ArgValue"]:
        return self.entries.get(key)

    def path(self, *keys: str) -> Optional["ArgValue"]:
        """walk nested maps, returns none as soon as a step is missing"""
        current: Optional[ArgValue] = self
        for key in keys:
            if not isinstance(current, MapValue):
                return None
            current = current.entries.get(key)
        return current

    def text(self, key: str) -> Optional[str]:
        value = self.entries.get(key)
        if isinstance(value, TextValue):
            return value.value
        if isinstance(value, NumberValue):
            return str(value.value)
        return None

    def __contains__(self, key: str) -> bool:
        return key in self.entries


ArgValue = Union[TextValue, NumberValue, BoolValue, ListValue, MapValue]


def to_value(raw: Any) -> ArgValue:
    """convert decoded json into the tagged union"""
    if isinstance(raw, (TextValue, NumberValue, BoolValue, ListValue, MapValue)):
        return raw
    # bool is a subclass of int, check it first
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, (int, float)):
        return NumberValue(raw)
    if isinstance(raw, str):
        return TextValue(raw)
    if isinstance(raw, (list, tuple)):
        return ListValue(tuple(to_value(item) for item in raw))
    if isinstance(raw, dict):
        return MapValue({str(k): to_value(v) for k, v in raw.items()})
    if raw is None:
        return TextValue("")
    return TextValue(str(raw))


def to_map(raw: Any) -> Optional[MapValue]:
    if raw is None:
        return None
    value = to_value(raw)
    return value if isinstance(value, MapValue) else MapValue({"value": value})


def numeric_value(value: Optional[ArgValue]) -> Optional[int]:
    """integer view of a value, none when it is not amount-like"""
    if value is None:
        return None
    if isinstance(value, BoolValue):
        return None
    if isinstance(value, NumberValue):
        if isinstance(value.value, float) and not math.isfinite(value.value):
            return None
        return int(value.value)
    if isinstance(value, TextValue):
        text = value.value.strip()
        if not DIGITS.match(text):
            return None
        limit = sys.get_int_max_str_digits()
        if limit and len(text) > limit:
            return None
        return int(text)
    if isinstance(value, MapValue):
        for key in ("value", "amount"):
            inner = numeric_value(value.get(key))
            if inner is not None:
                return inner
        return None
    return None


def to_plain(value: ArgValue) -> Any:
    """back to json-compatible data, large ints rendered as strings"""
    if isinstance(value, TextValue):
        return value.value
    if isinstance(value, BoolValue):
        return value.value
    if isinstance(value, NumberValue):
        if isinstance(value.value, int) and abs(value.value) > _SAFE_JSON_INT:
            return str(value.value)
        return value.value
    if isinstance(value, ListValue):
        return [to_plain(item) for item in value.items]
    if isinstance(value, MapValue):
        return {key: to_plain(item) for key, item in value.entries.items()}
    raise TypeError(f"not an argument value: {type(value).__name__}")


def iter_text(value: ArgValue) -> Iterator[str]:
    """every string leaf, used for keyword scans over arguments"""
    if isinstance(value, TextValue):
        yield value.value
    elif isinstance(value, ListValue):
        for item in value.items:
            yield from iter_text(item)
    elif isinstance(value, MapValue):
        for item in value.entries.values():
            yield from iter_text(item)
