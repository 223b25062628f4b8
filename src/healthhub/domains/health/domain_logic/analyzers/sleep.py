"""Sleep passes: duration, consistency, sleep vs symptoms and sleep vs food."""

from __future__ import annotations

import statistics
from collections import Counter
from datetime import date

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    daily_values,
    food_totals,
    insight,
    mean,
    percent_more,
    sample_confidence,
    sleep_by_night,
    split_by_average,
    symptoms_by_day,
)
from healthhub.domains.health.domain_logic.timezones import local_date, local_hour

RECOMMENDED_HOURS = 7.0
SHORT_SLEEP_HOURS = 7.0
RESTED_SLEEP_HOURS = 7.5
LATE_MEAL_HOUR = 21


def analyze_sleep_duration(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Average below 7h over at least 3 nights.

    Confidence: ``min(0.9, 0.6 + 0.03 * min(nights, 10))``.
    """
    nights = daily_values(ctx.metrics_of("sleep"), ctx)
    if len(nights) < 3:
        return []
    avg = mean(list(nights.values()))
    if avg >= RECOMMENDED_HOURS:
        return []
    return [insight(
        "recommendation",
        "Improve sleep duration",
        f"Your average sleep is {avg:.1f} hours. Aim for 7-9 hours.",
        sample_confidence(len(nights), base=0.6, step=0.03, cap=0.9, saturation=10),
        ["sleep"],
    )]


def analyze_sleep_consistency(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Spread of the last 7 nights.

    Needs 7 nights. Population stdev above 1.5h is flagged; below 0.5h with a
    mean of 7h or more is praised. Confidence is fixed at 0.82 / 0.88.
    """
    nights = daily_values(ctx.metrics_of("sleep"), ctx)
    if len(nights) < 7:
        return []
    recent = [nights[day] for day in sorted(nights, reverse=True)[:7]]
    spread = statistics.pstdev(recent)
    if spread > 1.5:
        return [insight(
            "recommendation",
            "Inconsistent sleep schedule",
            f"Your sleep varies by ±{spread:.1f}h. Consistent timing improves sleep quality.",
            0.82,
            ["sleep"],
        )]
    if spread < 0.5 and mean(recent) >= RECOMMENDED_HOURS:
        return [insight(
            "recommendation",
            "Excellent sleep consistency",
            f"Your sleep varies only ±{spread:.1f}h. Keep the routine.",
            0.88,
            ["sleep"],
        )]
    return []


def analyze_sleep_symptoms(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Symptoms on days that followed short sleep.

    A sleep value is paired with symptoms logged on the same local day (the
    day you woke up). Needs at least 5 paired days and 3 symptom days.

    * With at least 2 short (<7h) and 2 rested (>=7.5h) days, fires when
      short days average 0.3+ more symptoms.
    * When nearly every night is short (no rested contrast), fires when
      symptoms appear on at least 60% of the short-sleep days.

    Confidence: ``min(0.95, 0.5 + 0.05 * min(paired_days, 9))``.
    """
    nights = daily_values(ctx.metrics_of("sleep"), ctx)
    symptoms = symptoms_by_day(ctx)
    if len(nights) < 5 or len(symptoms) < 3:
        return []

    short = [day for day, hours in nights.items() if hours < SHORT_SLEEP_HOURS]
    rested = [day for day, hours in nights.items() if hours >= RESTED_SLEEP_HOURS]
    confidence = sample_confidence(len(nights))
    counts = Counter(name for day in short for name in symptoms.get(day, []))
    top = [name for name, _ in counts.most_common(2)]
    related = ["sleep", "symptom", *top]

    if len(short) >= 2 and len(rested) >= 2:
        short_avg = mean([len(symptoms.get(day, [])) for day in short])
        rested_avg = mean([len(symptoms.get(day, [])) for day in rested])
        if short_avg - rested_avg <= 0.3:
            return []
        return [insight(
            "correlation",
            "Poor sleep = more symptoms",
            f"You report {percent_more(short_avg, rested_avg)}% more symptoms after "
            f"nights under {SHORT_SLEEP_HOURS:g}h.",
            confidence,
            related,
        )]

    if len(short) < 5:
        return []
    symptom_days = sum(1 for day in short if symptoms.get(day))
    rate = symptom_days / len(short)
    if rate < 0.6:
        return []
    avg_short = mean([nights[day] for day in short])
    named = f" (mostly {top[0]})" if top else ""
    return [insight(
        "correlation",
        "Short sleep and frequent symptoms",
        f"You averaged {avg_short:.1f}h of sleep and logged symptoms{named} on "
        f"{symptom_days} of {len(short)} short-sleep days.",
        confidence,
        related,
    )]


def analyze_sleep_food(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Sleep after late dinners and after salty days.

    Needs 5 food entries and 5 nights; each comparison needs 2 nights per
    side and fires at a 0.4h+ gap.

    * Timing: the day's last meal at 21:00 local or later vs between 17:00
      and 19:59.
    * Sodium (3+ days with sodium): above 1.3x vs below 0.7x the mean.

    Confidence: ``min(0.82, 0.6 + 0.03 * min(compared_nights, 7))``.
    """
    nights = sleep_by_night(ctx)
    if len(ctx.foods) < 5 or len(nights) < 5:
        return []
    results: list[AnalyzedInsight] = []

    last_meal: dict[date, int] = {}
    for food in ctx.foods:
        day = local_date(food.logged_at, ctx.timezone)
        last_meal[day] = max(local_hour(food.logged_at, ctx.timezone), last_meal.get(day, 0))
    late = [nights[d] for d, hour in last_meal.items() if d in nights and hour >= LATE_MEAL_HOUR]
    early = [nights[d] for d, hour in last_meal.items() if d in nights and 17 <= hour < 20]
    if len(late) >= 2 and len(early) >= 2 and mean(early) - mean(late) > 0.4:
        results.append(insight(
            "correlation",
            "Late eating affects sleep",
            f"Eating after 9pm correlates with {mean(early) - mean(late):.1f}h less sleep.",
            sample_confidence(len(late) + len(early), base=0.6, step=0.03, cap=0.82, saturation=7),
            ["sleep", "food"],
        ))

    sodium = food_totals(ctx, "sodium")
    if len(sodium) >= 3:
        salty, light = split_by_average(sodium)
        high = [nights[d] for d in salty if d in nights]
        low = [nights[d] for d in light if d in nights]
        if len(high) >= 2 and len(low) >= 2 and mean(low) - mean(high) > 0.4:
            results.append(insight(
                "correlation",
                "High sodium disrupts sleep",
                f"You sleep {mean(low) - mean(high):.1f}h less on high-sodium days.",
                sample_confidence(len(high) + len(low), base=0.6, step=0.03, cap=0.82, saturation=7),
                ["sleep", "food", "sodium"],
            ))
    return results
