"""strict -> lenient -> empty parse chain for model responses.

strict validates the repaired json against the stage schema. lenient pulls
the fields it can find out of whatever came back, the decoded object if there
is one, the raw text otherwise. empty means nothing usable was found.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from guardian.ai.schemas import TRIAGE_CLASSES, DeepResponse, IssueSchema, ReasoningResponse, TriageResponse
from guardian.models import clamp_confidence
from guardian.utils.json_sanitizer import (
    extract_bool_field,
    extract_number_field,
    extract_object_list,
    extract_string_field,
    safe_json_loads,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

MODE_STRICT = "strict"
MODE_LENIENT = "lenient"
MODE_EMPTY = "empty"


@dataclass(frozen=True)
class ParseOutcome(Generic[T]):
    ok: bool
    value: Optional[T]
    mode: str
    warning: Optional[str] = None


class _Fields:
    """field lookup over a decoded object, falling back to regex over the raw text"""

    def __init__(self, text: str, data: Optional[Dict[str, Any]]):
        self.text = text or ""
        self.data = data or {}

    def _raw(self, names):
        for name in names:
            if name in self.data:
                return True, self.data[name]
        return False, None

    def string(self, *names: str) -> Optional[str]:
        found, value = self._raw(names)
        if found and value is not None:
            return value if isinstance(value, str) else json.dumps(value, default=str)
        for name in names:
            value = extract_string_field(self.text, name)
            if value is not None:
                return value
        return None

    def number(self, *names: str) -> Optional[float]:
        found, value = self._raw(names)
        if found:
            try:
                return float(value)
            except (TypeError, ValueError):
                pass
        for name in names:
            value = extract_number_field(self.text, name)
            if value is not None:
                return value
        return None

    def boolean(self, *names: str) -> Optional[bool]:
        found, value = self._raw(names)
        if found and isinstance(value, bool):
            return value
        for name in names:
            value = extract_bool_field(self.text, name)
            if value is not None:
                return value
        return None

    def issues(self, *names: str) -> List[IssueSchema]:
        found, value = self._raw(names)
        raw_items = value if found and isinstance(value, list) else []
        if not raw_items:
            for name in names:
                raw_items = extract_object_list(self.text, name)
                if raw_items:
                    break
        issues = []
        for item in raw_items:
            issue = lenient_issue(item)
            if issue is not None:
                issues.append(issue)
        return issues


def _evidence_text(value: Any) -> str:
    if not value:
        return ""
    return value if isinstance(value, str) else json.dumps(value, default=str)


def lenient_issue(item: Any) -> Optional[IssueSchema]:
    """an issue needs at least a title, everything else has a default"""
    if not isinstance(item, dict):
        return None
    title = item.get("title")
    if not isinstance(title, str) or not title.strip():
        return None
    try:
        return IssueSchema(
            category=str(item.get("category") or "EXPLOIT"),
            severity=str(item.get("severity") or "MEDIUM"),
            title=title,
            description=str(item.get("description") or ""),
            recommendation=str(item.get("recommendation") or ""),
            evidence=_evidence_text(item.get("evidence")),
            attack_scenario=item.get("attack_scenario") or item.get("attackScenario"),
        )
    except ValidationError:
        return None


def _lenient_triage(fields: _Fields) -> Optional[TriageResponse]:
    classification = (fields.string("classification") or "").strip().upper().replace(" ", "_")
    if classification not in TRIAGE_CLASSES:
        return None
    confidence = fields.number("confidence")
    return TriageResponse(
        classification=classification,
        confidence=clamp_confidence(confidence, default=0.5),
        quick_issues=fields.issues("quick_issues", "quickIssues"),
        reasoning=fields.string("reasoning") or "",
    )


def _lenient_reasoning(fields: _Fields) -> Optional[ReasoningResponse]:
    assessment = fields.string("overall_assessment", "overallAssessment")
    confidence = fields.number("confidence")
    issues = fields.issues("issues")
    if assessment is None and confidence is None and not issues:
        return None
    needs_deep = fields.boolean("needs_deep_analysis", "needsDeepAnalysis")
    return ReasoningResponse(
        steps=[],
        issues=issues,
        overall_assessment=assessment or "Analysis incomplete",
        confidence=clamp_confidence(confidence, default=0.5),
        # a partial answer is not a confident one
        needs_deep_analysis=True if needs_deep is None else needs_deep,
    )


def _lenient_deep(fields: _Fields) -> Optional[DeepResponse]:
    analysis = fields.string("deep_analysis", "deepAnalysis")
    issues = fields.issues("additional_issues", "additionalIssues")
    confidence = fields.number("confidence")
    if analysis is None and not issues and confidence is None:
        return None
    score = fields.number("final_risk_score", "finalRiskScore")
    return DeepResponse(
        deep_analysis=analysis or "",
        additional_issues=issues,
        final_risk_score=int(max(0, min(100, score))) if score is not None else 50,
        confidence=clamp_confidence(confidence, default=0.7),
    )


LENIENT_PARSERS: Dict[Type[BaseModel], Callable[[_Fields], Optional[BaseModel]]] = {
    TriageResponse: _lenient_triage,
    ReasoningResponse: _lenient_reasoning,
    DeepResponse: _lenient_deep,
}


def parse_response(text: str, model: Type[T]) -> ParseOutcome[T]:
    """never raises"""
    data = None
    strict_error = None
    try:
        data = safe_json_loads(text)
        if not isinstance(data, dict):
            raise ValueError("response is not a json object")
        return ParseOutcome(ok=True, value=model.model_validate(data), mode=MODE_STRICT)
    except ValueError as e:
        strict_error = str(e).splitlines()[0] if str(e) else type(e).__name__

    lenient = LENIENT_PARSERS.get(model)
    if lenient is not None:
        try:
            value = lenient(_Fields(text, data if isinstance(data, dict) else None))
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning(f"[Parser] lenient {model.__name__} parse failed: {e}")
            value = None
        if value is not None:
            return ParseOutcome(
                ok=True,
                value=value,
                mode=MODE_LENIENT,
                warning=f"{model.__name__} recovered leniently ({strict_error})",
            )

    return ParseOutcome(
        ok=False,
        value=None,
        mode=MODE_EMPTY,
        warning=f"{model.__name__} could not be parsed ({strict_error})",
    )
