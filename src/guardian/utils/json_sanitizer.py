"""extract and repair json from llm responses"""

from __future__ import annotations

import json
import re
from typing import Any, List, Optional

CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
COMMENT_PATTERN = re.compile(r"(?<![:\"'])//[^\n\"]*?$|/\*.*?\*/", re.DOTALL | re.MULTILINE)
TRAILING_COMMA = re.compile(r",(\s*[}\]])")
SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})


def _strip_code_fence(text: str) -> str:
    match = CODE_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _extract_json_object(text: str) -> str:
    """first balanced {...} block, string-aware. falls back to the input."""
    start = text.find("{")
    if start < 0:
        return text
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    # unbalanced, hand back the tail so repair has a chance
    return text[start:]


def repair_json(text: str) -> str:
    """remove comments and trailing commas, normalize smart quotes"""
    text = text.translate(SMART_QUOTES)
    text = COMMENT_PATTERN.sub("", text)
    text = TRAILING_COMMA.sub(r"\1", text)
    return text.strip()


def extract_json_payload(text: str) -> str:
    """extract json from model response"""
    candidate = _strip_code_fence(text or "")
    candidate = _extract_json_object(candidate)
    candidate = repair_json(candidate)
    return candidate


def safe_json_loads(text: str) -> Any:
    """parse text as json after repair"""
    payload = extract_json_payload(text)
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse JSON payload: {exc}") from exc


def extract_string_field(text: str, name: str) -> Optional[str]:
    """value of "name": "..." anywhere in text, for payloads json.loads rejects"""
    match = re.search(rf'"{re.escape(name)}"\s*:\s*"((?:[^"\\]|\\.)*)"', text or "", re.DOTALL)
    if not match:
        return None
    raw = match.group(1)
    try:
        return json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        return raw


def extract_number_field(text: str, name: str) -> Optional[float]:
    match = re.search(rf'"{re.escape(name)}"\s*:\s*"?(-?\d+(?:\.\d+)?)', text or "")
    if not match:
        return None
    return float(match.group(1))


def extract_bool_field(text: str, name: str) -> Optional[bool]:
    match = re.search(rf'"{re.escape(name)}"\s*:\s*(true|false)', text or "", re.IGNORECASE)
    if not match:
        return None
    return match.group(1).lower() == "true"


def extract_object_list(text: str, name: str) -> List[dict]:
    """every parseable object inside the "name": [...] array, skipping broken ones"""
    match = re.search(rf'"{re.escape(name)}"\s*:\s*\[', text or "")
    if not match:
        return []
    items = []
    rest = text[match.end():]
    while True:
        rest = rest.lstrip(" \n\r\t,")
        if not rest.startswith("{"):
            break
        chunk = _extract_json_object(rest)
        try:
            value = json.loads(repair_json(chunk))
        except json.JSONDecodeError:
            break
        if isinstance(value, dict):
            items.append(value)
        rest = rest[len(chunk):]
    return items
