"""Response parsing and guardrail enforcement for remote LLM output.

The model is asked for a bare JSON array of insights but routinely wraps it
in prose. Parsing therefore locates the first balanced ``[...]`` span, then
decodes it against a strict schema: any malformed element rejects the whole
array. Whether a rejection degrades to :data:`FALLBACK_INSIGHT` or raises is
the caller's choice (``fallback_enabled``).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from healthhub.core.storage.models import AnalyzedInsight

logger = logging.getLogger(__name__)


class InsightParseError(Exception):
    """Raised when a model response does not contain a valid insight array."""


class InsightPayload(BaseModel):
    """Schema for one insight object in a model response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["correlation", "prediction", "recommendation"]
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    related_metrics: list[str] = Field(default_factory=list, alias="relatedMetrics")


_INSIGHT_LIST = TypeAdapter(list[InsightPayload])

FALLBACK_INSIGHT = AnalyzedInsight(
    type="recommendation",
    title="Start logging more data",
    description="Log symptoms, caffeine intake, and sleep to get personalized AI insights.",
    confidence=0.9,
    related_metrics=["manual_logs"],
    source="llm",
)


@dataclass
class ParsedInsights:
    """Outcome of parsing one model response."""

    insights: list[AnalyzedInsight]
    used_fallback: bool = False
    error: str | None = None


def extract_insight_array(content: str) -> str | None:
    """Return the first balanced ``[...]`` span in ``content``, or None.

    Brackets inside JSON string literals are ignored. A span that never
    closes (e.g. a truncated response) yields None.
    """
    start = content.find("[")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(content)):
        char = content[index]
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
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return content[start:index + 1]
    return None


def decode_insights(content: str) -> list[AnalyzedInsight]:
    """Strictly decode the insight array embedded in a model response.

    Raises:
        InsightParseError: If no array is present, it is not JSON, or any
            element fails schema validation.
    """
    span = extract_insight_array(content)
    if span is None:
        raise InsightParseError("No JSON array found in model response")
    try:
        raw = json.loads(span)
    except json.JSONDecodeError as exc:
        raise InsightParseError(f"Insight array is not valid JSON: {exc.msg}") from exc
    try:
        payloads = _INSIGHT_LIST.validate_python(raw)
    except ValidationError as exc:
        raise InsightParseError(
            f"Insight array failed validation ({exc.error_count()} errors)"
        ) from exc

    return [
        AnalyzedInsight(
            type=p.type,
            title=p.title,
            description=p.description,
            confidence=p.confidence,
            related_metrics=p.related_metrics,
            source="llm",
        )
        for p in payloads
    ]


def parse_insight_response(content: str, *, fallback_enabled: bool = True) -> ParsedInsights:
    """Decode insights, substituting the fallback on rejection if enabled.

    Raises:
        InsightParseError: If decoding fails and the fallback is disabled.
    """
    try:
        return ParsedInsights(insights=decode_insights(content))
    except InsightParseError as exc:
        if not fallback_enabled:
            raise
        logger.warning("Malformed insight response, using fallback insight: %s", exc)
        return ParsedInsights(
            insights=[FALLBACK_INSIGHT],
            used_fallback=True,
            error=str(exc),
        )


# ---------------------------------------------------------------------------
# Guardrails
# ---------------------------------------------------------------------------

_PROHIBITED_INDICATORS: dict[str, tuple[str, ...]] = {
    "diagnosis": (
        "you have been diagnosed",
        "you are suffering from",
        "you have a condition",
        "this is a sign of",
    ),
    "prescription": (
        "take this medication",
        "stop taking your medication",
        "increase your dose",
        "i prescribe",
    ),
    "disease prediction": (
        "you will develop",
        "guaranteed to cure",
        "you are at high risk of dying",
    ),
}


@dataclass
class GuardrailCheck:
    """Result of checking text for medical-advice framing."""

    passed: bool
    flags: list[str] = field(default_factory=list)


def check_guardrails(content: str) -> GuardrailCheck:
    """Flag diagnostic or prescriptive phrasing in model output."""
    content_lower = content.lower()
    flags = [
        f"prohibited_pattern_detected: {category} ('{pattern}')"
        for category, patterns in _PROHIBITED_INDICATORS.items()
        for pattern in patterns
        if pattern in content_lower
    ]
    return GuardrailCheck(passed=not flags, flags=flags)


def filter_guarded_insights(
    insights: list[AnalyzedInsight],
) -> tuple[list[AnalyzedInsight], list[str]]:
    """Drop insights whose title or description fails the guardrails.

    Returns:
        ``(kept, flags)`` where ``flags`` lists every pattern that caused a drop.
    """
    kept: list[AnalyzedInsight] = []
    flags: list[str] = []
    for insight in insights:
        check = check_guardrails(f"{insight.title} {insight.description}")
        if check.passed:
            kept.append(insight)
        else:
            flags.extend(check.flags)
    if flags:
        logger.warning("Dropped %d insights on guardrails: %s", len(insights) - len(kept), flags)
    return kept, flags
