"""Symptom passes: recurring symptoms and day-of-week triggers."""

from __future__ import annotations

from collections import Counter, defaultdict

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    insight,
    sample_confidence,
    symptom_name,
)
from healthhub.domains.health.domain_logic.timezones import WEEKDAY_NAMES, local_weekday


def _most_common(counter: Counter[str]) -> tuple[str, int]:
    # Ties break alphabetically so repeated runs agree
    return min(counter.items(), key=lambda kv: (-kv[1], kv[0]))


def analyze_recurring_symptom(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """The most frequently logged symptom, once it has 3+ occurrences.

    Confidence: ``min(0.85, 0.55 + 0.03 * min(occurrences, 10))``.
    """
    logs = ctx.logs_of("symptom")
    if len(logs) < 3:
        return []
    name, count = _most_common(Counter(symptom_name(log) for log in logs))
    if count < 3:
        return []
    share = round(count / len(logs) * 100)
    return [insight(
        "correlation",
        f"Recurring {name}",
        f"You've logged {name} {count} times ({share}% of all symptoms). "
        "Review your notes for common triggers such as sleep, stress or diet.",
        sample_confidence(count, base=0.55, step=0.03, cap=0.85, saturation=10),
        ["symptom", name],
    )]


def analyze_weekday_symptoms(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """A local weekday that collects a disproportionate share of symptoms.

    Needs 5 symptom logs; fires when one weekday has 3+ logs and at least
    twice its even share (logs / 7). Weekdays are read in the user's
    timezone. Confidence: ``min(0.85, 0.55 + 0.04 * min(count_on_day, 7))``.
    """
    logs = ctx.logs_of("symptom")
    if len(logs) < 5:
        return []
    by_weekday: dict[int, Counter[str]] = defaultdict(Counter)
    for log in logs:
        by_weekday[local_weekday(log.logged_at, ctx.timezone)][symptom_name(log)] += 1

    weekday, names = min(by_weekday.items(), key=lambda kv: (-sum(kv[1].values()), kv[0]))
    count = sum(names.values())
    if count < 3 or count < 2 * len(logs) / 7:
        return []
    top, top_count = _most_common(names)
    day_name = WEEKDAY_NAMES[weekday]
    return [insight(
        "correlation",
        f"{day_name}s trigger symptoms (mainly {top})",
        f"You report symptoms on {day_name}s {count} times, most often {top} "
        f"({top_count} times). Consider what changes in your routine that day.",
        sample_confidence(count, base=0.55, step=0.04, cap=0.85, saturation=7),
        ["symptom", top],
    )]
