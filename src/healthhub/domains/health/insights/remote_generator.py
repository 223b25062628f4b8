"""Remote LLM insight generator.

Ships the last 30 days of a user's data (at most 100 metrics, 50 logs and
50 calendar events, filtered by the privacy mode) to the configured model.

* With a question, the model's text is returned verbatim as the answer.
* Without one, the response is decoded as an insight array. A malformed
  array degrades to the fixed fallback insight when fallback is enabled,
  or raises :class:`InsightParseError` when it is not. Insights that fail
  the guardrails are dropped; the rest are persisted as an ``llm`` batch.

Every call, successful or not, is audited as a disclosure.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from healthhub.core.audit.logger import AuditLogger
from healthhub.core.llm.provider import LLMProvider, ProviderError
from healthhub.core.llm.response import (
    InsightParseError,
    check_guardrails,
    filter_guarded_insights,
    parse_insight_response,
)
from healthhub.core.llm.system_prompt import (
    INSIGHT_ARRAY_INSTRUCTIONS,
    INSIGHT_SYSTEM_PROMPT,
    QUESTION_INSTRUCTIONS,
)
from healthhub.core.privacy.policy import PrivacyMode, build_llm_data_context
from healthhub.core.storage.models import AnalyzedInsight
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import utc_now

logger = logging.getLogger(__name__)

METRIC_LIMIT = 100
LOG_LIMIT = 50
EVENT_LIMIT = 50


@dataclass
class GenerationResult:
    """Outcome of one remote generation call."""

    insights: list[AnalyzedInsight] = field(default_factory=list)
    answer: str | None = None
    batch_id: str | None = None
    used_fallback: bool = False
    parse_error: str | None = None
    guardrail_flags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if self.answer is not None:
            return {
                "answer": self.answer,
                "guardrail_flags": self.guardrail_flags,
            }
        return {
            "insights": [i.to_dict() for i in self.insights],
            "batch_id": self.batch_id,
            "used_fallback": self.used_fallback,
            "parse_error": self.parse_error,
            "guardrail_flags": self.guardrail_flags,
        }


def build_user_prompt(data: dict[str, list[dict[str, Any]]], question: str | None = None) -> str:
    """Render the data prompt, followed by the question or the array instructions."""
    sections = [
        "Here is the user's health data from the last 30 days:",
        "HEALTH METRICS (steps, sleep, heart rate, etc):\n"
        + json.dumps(data["metrics"], indent=2),
        "MANUAL LOGS (symptoms, caffeine, bristol scale, custom entries):\n"
        + json.dumps(data["logs"], indent=2),
        "CALENDAR EVENTS (work shifts, appointments, etc):\n"
        + json.dumps(data["events"], indent=2),
    ]
    if question:
        sections.append(f"User's question: {question}\n\n{QUESTION_INSTRUCTIONS}")
    else:
        sections.append(INSIGHT_ARRAY_INSTRUCTIONS)
    return "\n\n".join(sections)


class RemoteInsightGenerator:
    """Generates insights or answers with a remote model.

    Usage::

        generator = RemoteInsightGenerator(repo, provider, audit_logger=audit)
        result = await generator.generate("user-1")
        answer = (await generator.generate("user-1", "Why am I tired?")).answer
    """

    def __init__(
        self,
        repository: HealthRepository,
        provider: LLMProvider,
        *,
        audit_logger: AuditLogger | None = None,
        privacy_mode: PrivacyMode = "standard",
        fallback_enabled: bool = True,
        max_tokens: int = 1500,
        window_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._provider = provider
        self._audit = audit_logger
        self._privacy_mode = privacy_mode
        self._fallback_enabled = fallback_enabled
        self._max_tokens = max_tokens
        self._window_days = window_days
        self._clock = clock

    async def _collect(self, user_id: str, now: datetime) -> dict[str, list[dict[str, Any]]]:
        since = now - timedelta(days=self._window_days)
        metrics, logs, events = await asyncio.gather(
            asyncio.to_thread(
                self._repo.get_metrics, user_id, since=since, until=now, limit=METRIC_LIMIT
            ),
            asyncio.to_thread(
                self._repo.get_manual_logs, user_id, since=since, until=now, limit=LOG_LIMIT
            ),
            asyncio.to_thread(self._repo.get_calendar_events, user_id, since=since, until=now),
        )
        return build_llm_data_context(
            metrics=metrics,
            logs=logs,
            events=events[:EVENT_LIMIT],
            privacy_mode=self._privacy_mode,
        )

    def _audit_call(self, user_id: str, question: str | None, start: float, **kwargs: Any) -> None:
        if self._audit is None:
            return
        self._audit.log_llm_generation(
            user_id,
            llm_provider=self._provider.name,
            privacy_mode=self._privacy_mode,
            question=question,
            duration_ms=round((time.monotonic() - start) * 1000, 1),
            **kwargs,
        )

    async def generate(self, user_id: str, question: str | None = None) -> GenerationResult:
        """Call the model and return insights, or the answer to ``question``.

        Raises:
            ProviderError: If the model call fails.
            InsightParseError: If the response is malformed and fallback is off.
        """
        start = time.monotonic()
        now = self._clock()
        data = await self._collect(user_id, now)
        prompt = build_user_prompt(data, question)

        try:
            response = await self._provider.generate(
                INSIGHT_SYSTEM_PROMPT, prompt, max_tokens=self._max_tokens
            )
        except ProviderError as exc:
            logger.error("Remote generation failed for %s: %s", user_id, exc)
            self._audit_call(user_id, question, start, status="failure", error_type=type(exc).__name__)
            raise

        if question:
            check = check_guardrails(response.content)
            if not check.passed:
                logger.warning("Answer for %s tripped guardrails: %s", user_id, check.flags)
            self._audit_call(
                user_id, question, start,
                metadata={"model": response.model, "guardrail_flags": len(check.flags)},
            )
            return GenerationResult(answer=response.content, guardrail_flags=check.flags)

        try:
            parsed = parse_insight_response(response.content, fallback_enabled=self._fallback_enabled)
        except InsightParseError as exc:
            self._audit_call(user_id, None, start, status="failure", error_type=type(exc).__name__)
            raise

        kept, flags = filter_guarded_insights(parsed.insights)
        batch = await asyncio.to_thread(
            self._repo.save_insight_batch, user_id, "llm", kept, run_at=now
        )
        self._audit_call(
            user_id, None, start,
            batch_id=batch.batch_id,
            used_fallback=parsed.used_fallback,
            metadata={
                "model": response.model,
                "insight_count": len(kept),
                "guardrail_dropped": len(parsed.insights) - len(kept),
            },
        )
        return GenerationResult(
            insights=batch.insights,
            batch_id=batch.batch_id,
            used_fallback=parsed.used_fallback,
            parse_error=parsed.error,
            guardrail_flags=flags,
        )
