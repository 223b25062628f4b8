"""Step passes: overall activity level, steps vs sleep/HRV/mood, weather vs steps."""

from __future__ import annotations

from collections import defaultdict
from datetime import date

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.connectors.weather import is_rainy_day
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    daily_values,
    insight,
    mean,
    percent_more,
    sample_confidence,
    sleep_by_night,
    split_by_average,
)
from healthhub.domains.health.domain_logic.timezones import local_date

LOW_ACTIVITY_STEPS = 5000
HIGH_ACTIVITY_STEPS = 10000
MOOD_SYMPTOMS = ("anxiety", "stress", "depression", "fatigue", "low energy", "irritability", "mood")


def _confidence(n: int, cap: float = 0.82) -> float:
    return sample_confidence(n, base=0.6, step=0.03, cap=cap, saturation=7)


def analyze_activity_level(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Average daily steps below 5,000 or at 10,000+ over at least 5 days.

    Confidence is fixed at 0.8 / 0.9.
    """
    steps = daily_values(ctx.metrics_of("steps"), ctx)
    if len(steps) < 5:
        return []
    avg = mean(list(steps.values()))
    if avg < LOW_ACTIVITY_STEPS:
        return [insight(
            "recommendation",
            "Increase daily movement",
            f"Your average is {round(avg):,} steps. Aim for 7,000-10,000.",
            0.8,
            ["steps"],
        )]
    if avg >= HIGH_ACTIVITY_STEPS:
        return [insight(
            "recommendation",
            "Great activity level!",
            f"Averaging {round(avg):,} steps/day. Excellent movement!",
            0.9,
            ["steps"],
        )]
    return []


def analyze_steps_correlations(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Sleep, HRV and mood symptoms on active vs sedentary days.

    Needs 5 step days. Active days are above 1.2x the mean, sedentary below
    0.8x; each comparison needs 2 days per side and 5 readings of the other
    signal:

    * sleep the following night 0.3h+ longer after active days,
    * same-day HRV 3+ ms higher on active days,
    * 0.3+ fewer mood symptoms (anxiety, stress, fatigue and the like).

    Confidence: ``min(0.82, 0.6 + 0.03 * min(compared_days, 7))``.
    """
    steps = daily_values(ctx.metrics_of("steps"), ctx)
    if len(steps) < 5:
        return []
    active, sedentary = split_by_average(steps, high=1.2, low=0.8)
    results: list[AnalyzedInsight] = []

    nights = sleep_by_night(ctx)
    if len(nights) >= 5:
        high = [nights[d] for d in active if d in nights]
        low = [nights[d] for d in sedentary if d in nights]
        if len(high) >= 2 and len(low) >= 2 and mean(high) - mean(low) > 0.3:
            results.append(insight(
                "correlation",
                "Active days = better sleep",
                f"You sleep {mean(high) - mean(low):.1f}h more after high-step days.",
                _confidence(len(high) + len(low)),
                ["steps", "sleep"],
            ))

    hrv = daily_values(ctx.metrics_of("hrv"), ctx)
    if len(hrv) >= 5:
        high = [hrv[d] for d in active if d in hrv]
        low = [hrv[d] for d in sedentary if d in hrv]
        if len(high) >= 2 and len(low) >= 2 and mean(high) - mean(low) > 3:
            results.append(insight(
                "correlation",
                "Walking boosts HRV",
                f"Your HRV is {round(mean(high) - mean(low))}ms higher on active days.",
                _confidence(len(high) + len(low)),
                ["steps", "hrv"],
            ))

    symptom_logs = ctx.logs_of("symptom")
    if len(symptom_logs) >= 5:
        mood: dict[date, int] = defaultdict(int)
        for log in symptom_logs:
            if any(word in log.value.lower() for word in MOOD_SYMPTOMS):
                mood[local_date(log.logged_at, ctx.timezone)] += 1
        high = [float(mood.get(d, 0)) for d in active]
        low = [float(mood.get(d, 0)) for d in sedentary]
        if len(high) >= 2 and len(low) >= 2 and mean(low) - mean(high) > 0.3:
            results.append(insight(
                "correlation",
                "More steps = better mood",
                f"You report {percent_more(mean(low), mean(high))}% fewer mood symptoms on active days.",
                _confidence(len(high) + len(low)),
                ["steps", "symptom", "mood"],
            ))
    return results


def analyze_weather_activity(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Steps on rainy, hot and cold days vs dry or mild ones.

    Needs 5 weather days and 5 step days. Rainy days have more than 1mm of
    precipitation or a rain weather code, dry days none. Hot is a high above
    30°C, cold below 5°C, mild 15-25°C. Each comparison needs 2 days per
    side; rain fires at 1,000+ fewer steps, heat and cold at 1,500+.

    Confidence: ``min(0.8, 0.6 + 0.03 * min(compared_days, 7))``.
    """
    steps = daily_values(ctx.metrics_of("steps"), ctx)
    if len(ctx.weather) < 5 or len(steps) < 5:
        return []
    weather = {date.fromisoformat(w.date): w for w in ctx.weather}
    rainy: list[float] = []
    dry: list[float] = []
    hot: list[float] = []
    cold: list[float] = []
    mild: list[float] = []
    for day, count in steps.items():
        record = weather.get(day)
        if record is None:
            continue
        if record.precipitation_mm > 1 or is_rainy_day(record):
            rainy.append(count)
        elif record.precipitation_mm == 0:
            dry.append(count)
        high = record.temperature_high
        if high is None:
            continue
        if high > 30:
            hot.append(count)
        elif 15 <= high <= 25:
            mild.append(count)
        elif high < 5:
            cold.append(count)

    checks = [
        ("Rain reduces activity", "on rainy days", rainy, dry, 1000),
        ("Heat reduces activity", "when it's over 30°C", hot, mild, 1500),
        ("Cold reduces activity", "when it's below 5°C", cold, mild, 1500),
    ]
    results: list[AnalyzedInsight] = []
    for title, when, exposed, control, threshold in checks:
        if len(exposed) < 2 or len(control) < 2:
            continue
        gap = mean(control) - mean(exposed)
        if gap <= threshold:
            continue
        results.append(insight(
            "correlation",
            title,
            f"You walk {round(gap):,} fewer steps {when}.",
            _confidence(len(exposed) + len(control), cap=0.8),
            ["steps", "weather"],
        ))
    return results
