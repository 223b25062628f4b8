"""Bristol stool passes: caffeine and supplement triggers, overall consistency.

Types 3-4 are the healthy middle of the scale; 1-2 lean hard, 6-7 loose.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date

from healthhub.core.storage.models import AnalyzedInsight, ManualLog
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    insight,
    mean,
    sample_confidence,
)
from healthhub.domains.health.domain_logic.timezones import local_date, to_local

IDEAL_TYPE = 3.5
DEFAULT_TYPE = 4
CAFFEINE_WINDOW_HOURS = 2.0


def stool_type(log: ManualLog) -> int:
    digits = "".join(ch for ch in log.value if ch.isdigit())
    if not digits:
        return DEFAULT_TYPE
    return min(7, max(1, int(digits)))


def _local_hours(value: str, ctx: AnalysisContext) -> float:
    local = to_local(value, ctx.timezone)
    return local.hour + local.minute / 60


def analyze_bristol_triggers(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Bowel movements soon after caffeine, and supplements vs stool type.

    Needs 5 Bristol logs.

    * Caffeine (5+ logs): share of movements, on caffeine days, that come
      within 2h after that day's first caffeine. Fires above 40% with 5+
      movements counted.
      Confidence: ``min(0.82, 0.6 + 0.03 * min(movements, 7))``.
    * Supplements (5+ logs): mean stool type on supplement vs other days
      (2+ days each). Fires when supplement days sit 0.5+ closer to 3.5.
      Confidence: ``min(0.76, 0.55 + 0.03 * min(compared_days, 7))``.
    """
    stools = ctx.logs_of("bristol_stool")
    if len(stools) < 5:
        return []
    results: list[AnalyzedInsight] = []

    caffeine = ctx.logs_of("caffeine")
    if len(caffeine) >= 5:
        first_dose: dict[date, float] = {}
        for log in caffeine:
            day = local_date(log.logged_at, ctx.timezone)
            hour = _local_hours(log.logged_at, ctx)
            first_dose[day] = min(hour, first_dose.get(day, hour))
        counted = soon_after = 0
        for log in stools:
            day = local_date(log.logged_at, ctx.timezone)
            if day not in first_dose:
                continue
            counted += 1
            if 0 < _local_hours(log.logged_at, ctx) - first_dose[day] <= CAFFEINE_WINDOW_HOURS:
                soon_after += 1
        if counted >= 5 and soon_after / counted > 0.4:
            results.append(insight(
                "correlation",
                "Caffeine triggers BMs",
                f"{round(soon_after / counted * 100)}% of bowel movements occur within 2h of caffeine.",
                sample_confidence(counted, base=0.6, step=0.03, cap=0.82, saturation=7),
                ["bristol", "caffeine"],
            ))

    supplements = ctx.logs_of("supplement")
    if len(supplements) >= 5:
        supplement_days = {local_date(log.logged_at, ctx.timezone) for log in supplements}
        types_by_day: dict[date, list[float]] = defaultdict(list)
        for log in stools:
            types_by_day[local_date(log.logged_at, ctx.timezone)].append(float(stool_type(log)))
        with_supp = [mean(t) for d, t in types_by_day.items() if d in supplement_days]
        without = [mean(t) for d, t in types_by_day.items() if d not in supplement_days]
        if len(with_supp) >= 2 and len(without) >= 2:
            closer = abs(mean(without) - IDEAL_TYPE) - abs(mean(with_supp) - IDEAL_TYPE)
            if closer > 0.5:
                results.append(insight(
                    "correlation",
                    "Supplements improve digestion",
                    "Bristol scores are closer to ideal (3-4) on days you take supplements.",
                    sample_confidence(len(with_supp) + len(without), base=0.55, step=0.03, cap=0.76, saturation=7),
                    ["bristol", "supplement"],
                ))
    return results


def analyze_bristol_pattern(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Average stool type below 3 (hard) or above 5 (loose) over 5+ logs.

    Confidence is fixed at 0.8.
    """
    stools = ctx.logs_of("bristol_stool")
    if len(stools) < 5:
        return []
    avg = mean([float(stool_type(log)) for log in stools])
    if avg < 3:
        return [insight(
            "recommendation",
            "Consider more fiber & water",
            f"Your average Bristol type is {avg:.1f} (hard). Increase fiber and hydration.",
            0.8,
            ["bristol"],
        )]
    if avg > 5:
        return [insight(
            "recommendation",
            "Monitor loose stools",
            f"Your average Bristol type is {avg:.1f} (loose). Track food triggers.",
            0.8,
            ["bristol"],
        )]
    return []
