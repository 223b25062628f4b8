"""Heart passes: what moves HRV, what moves resting heart rate, and overtraining."""

from __future__ import annotations

from datetime import date, timedelta

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    BUSY_DAY_EVENTS,
    CALM_DAY_EVENTS,
    daily_values,
    events_per_day,
    food_totals,
    insight,
    mean,
    sample_confidence,
    split_by_average,
    symptoms_by_day,
)
from healthhub.domains.health.domain_logic.analyzers.exercise import workouts
from healthhub.domains.health.domain_logic.timezones import local_date

OVERTRAINING_STREAK_DAYS = 6


def _confidence(n: int, cap: float) -> float:
    return sample_confidence(n, base=0.6, step=0.03, cap=cap, saturation=7)


def _compare(higher: list[float], lower: list[float], threshold: float) -> float | None:
    """``mean(higher) - mean(lower)`` when both sides have 2+ days and the gap beats ``threshold``."""
    if len(higher) < 2 or len(lower) < 2:
        return None
    gap = mean(higher) - mean(lower)
    return gap if gap > threshold else None


def analyze_hrv_factors(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """HRV against sleep, busy days, dairy, sodium and symptoms.

    Needs 5 HRV days; every comparison needs 2 days per side.

    * Sleep: HRV after 7h+ nights vs under 6h, fires at a 5+ ms gap.
    * Calendar (5+ events): next-morning HRV after busy (4+ events) vs
      calm (0-1) days, 5+ ms.
    * Dairy (5+ food entries): food-logged days with vs without dairy, 5+ ms.
    * Sodium (3+ days with sodium): days above 1.3x vs below 0.7x the
      mean, 4+ ms.
    * Symptoms (5+ logs): HRV on symptom days vs symptom-free days, 4+ ms.

    Confidence: ``min(0.83, 0.6 + 0.03 * min(compared_days, 7))``.
    """
    hrv = daily_values(ctx.metrics_of("hrv"), ctx)
    if len(hrv) < 5:
        return []
    results: list[AnalyzedInsight] = []

    # Sleep is dated by the morning it ended, the same morning HRV is read
    sleep = daily_values(ctx.metrics_of("sleep"), ctx)
    rested = [hrv[d] for d, hours in sleep.items() if d in hrv and hours >= 7]
    short = [hrv[d] for d, hours in sleep.items() if d in hrv and hours < 6]
    gap = _compare(rested, short, 5)
    if gap is not None:
        results.append(insight(
            "correlation",
            "Sleep boosts HRV",
            f"Your HRV is {round(gap)}ms higher after 7+ hours of sleep.",
            _confidence(len(rested) + len(short), 0.83),
            ["hrv", "sleep"],
        ))

    if len(ctx.events) >= 5:
        events = events_per_day(ctx)
        busy: list[float] = []
        calm: list[float] = []
        for day, value in hrv.items():
            count = events.get(day - timedelta(days=1), 0)
            if count >= BUSY_DAY_EVENTS:
                busy.append(value)
            elif count <= CALM_DAY_EVENTS:
                calm.append(value)
        gap = _compare(calm, busy, 5)
        if gap is not None:
            results.append(insight(
                "correlation",
                "Busy days stress your body",
                f"Your HRV is {round(gap)}ms lower the morning after busy days.",
                _confidence(len(busy) + len(calm), 0.8),
                ["hrv", "calendar"],
            ))

    if len(ctx.foods) >= 5:
        logged = {local_date(f.logged_at, ctx.timezone) for f in ctx.foods}
        dairy = {local_date(f.logged_at, ctx.timezone) for f in ctx.foods if f.contains_dairy}
        with_dairy = [hrv[d] for d in sorted(dairy) if d in hrv]
        without = [hrv[d] for d in sorted(logged - dairy) if d in hrv]
        gap = _compare(without, with_dairy, 5)
        if gap is not None:
            results.append(insight(
                "correlation",
                "Dairy may affect HRV",
                f"Your HRV is {round(gap)}ms lower on days with dairy.",
                _confidence(len(with_dairy) + len(without), 0.78),
                ["hrv", "food", "dairy"],
            ))

    sodium = food_totals(ctx, "sodium")
    if len(sodium) >= 3:
        salty, light = split_by_average(sodium)
        high = [hrv[d] for d in salty if d in hrv]
        low = [hrv[d] for d in light if d in hrv]
        gap = _compare(low, high, 4)
        if gap is not None:
            results.append(insight(
                "correlation",
                "Sodium lowers HRV",
                f"High-sodium days show {round(gap)}ms lower HRV.",
                _confidence(len(high) + len(low), 0.78),
                ["hrv", "food", "sodium"],
            ))

    if len(ctx.logs_of("symptom")) >= 5:
        symptoms = symptoms_by_day(ctx)
        sick = [value for day, value in hrv.items() if symptoms.get(day)]
        well = [value for day, value in hrv.items() if not symptoms.get(day)]
        gap = _compare(well, sick, 4)
        if gap is not None:
            results.append(insight(
                "correlation",
                "Low HRV predicts symptoms",
                f"Your HRV averages {round(gap)}ms lower on days you report symptoms.",
                _confidence(len(sick) + len(well), 0.82),
                ["hrv", "symptom"],
            ))
    return results


def analyze_resting_hr(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Resting heart rate against sleep debt and symptoms.

    Needs 5 resting HR days.

    * Sleep debt (7+ nights): the nights ending on that morning and the two
      before it (2+ recorded) average under 6.5h vs 7.5h+; fires when
      resting HR is 3+ bpm higher under debt.
    * Symptoms (5+ logs): days above 1.1x the mean resting HR vs below
      0.9x; fires at 0.3+ more symptoms per day.

    Confidence: ``min(0.82, 0.6 + 0.03 * min(compared_days, 7))``.
    """
    rhr = daily_values(ctx.metrics_of("resting_heart_rate"), ctx)
    if len(rhr) < 5:
        return []
    results: list[AnalyzedInsight] = []

    sleep = daily_values(ctx.metrics_of("sleep"), ctx)
    if len(sleep) >= 7:
        debt: list[float] = []
        rested: list[float] = []
        for day, value in rhr.items():
            recent = [sleep[d] for d in (day - timedelta(days=n) for n in range(3)) if d in sleep]
            if len(recent) < 2:
                continue
            if mean(recent) < 6.5:
                debt.append(value)
            elif mean(recent) >= 7.5:
                rested.append(value)
        gap = _compare(debt, rested, 3)
        if gap is not None:
            results.append(insight(
                "correlation",
                "Sleep debt raises resting HR",
                f"Your resting HR is {round(gap)} bpm higher when sleep-deprived.",
                _confidence(len(debt) + len(rested), 0.82),
                ["resting_heart_rate", "sleep"],
            ))

    if len(ctx.logs_of("symptom")) >= 5:
        symptoms = symptoms_by_day(ctx)
        elevated, low = split_by_average(rhr, high=1.1, low=0.9)
        high_counts = [float(len(symptoms.get(d, []))) for d in elevated]
        low_counts = [float(len(symptoms.get(d, []))) for d in low]
        gap = _compare(high_counts, low_counts, 0.3)
        if gap is not None:
            results.append(insight(
                "correlation",
                "High HR correlates with symptoms",
                f"You log {gap:.1f} more symptoms per day when resting HR is elevated.",
                _confidence(len(high_counts) + len(low_counts), 0.8),
                ["resting_heart_rate", "symptom"],
            ))
    return results


def _streak_ending(days: set[date], last: date) -> int:
    length = 0
    while last - timedelta(days=length) in days:
        length += 1
    return length


def analyze_overtraining(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Six or more consecutive workout days with resting HR climbing.

    The streak must run through today or yesterday (local). Needs 5 of the
    last 7 resting HR readings; fires when the later half averages 3+ bpm
    above the earlier half. Confidence is fixed at 0.78.
    """
    days = {session.day for session in workouts(ctx)}
    if len(days) < OVERTRAINING_STREAK_DAYS:
        return []
    today = local_date(ctx.now, ctx.timezone)
    streak = max(_streak_ending(days, today), _streak_ending(days, today - timedelta(days=1)))
    if streak < OVERTRAINING_STREAK_DAYS:
        return []

    rhr = daily_values(ctx.metrics_of("resting_heart_rate"), ctx)
    recent = [rhr[day] for day in sorted(rhr)[-7:]]
    if len(recent) < 5:
        return []
    half = len(recent) // 2
    if mean(recent[half:]) - mean(recent[:half]) <= 3:
        return []
    return [insight(
        "recommendation",
        "Possible overtraining",
        f"{streak} consecutive workout days with rising resting HR. Consider a rest day.",
        0.78,
        ["resting_heart_rate", "exercise"],
    )]
