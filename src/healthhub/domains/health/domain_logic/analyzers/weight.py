"""Weight passes on the 7-day moving average: what moves it, and where it is heading.

Daily weigh-ins swing with water and meal timing, so every comparison here
reads the trailing average over the last 7 weigh-ins instead of the raw
value.
"""

from __future__ import annotations

from datetime import date, timedelta

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    daily_values,
    food_totals,
    insight,
    mean,
    sample_confidence,
    sleep_by_night,
    split_by_average,
)
from healthhub.domains.health.domain_logic.timezones import local_date, local_hour

MOVING_AVERAGE_WEIGH_INS = 7
LATE_MEAL_HOUR = 21


def moving_average(by_day: dict[date, float]) -> dict[date, float]:
    days = sorted(by_day)
    smoothed: dict[date, float] = {}
    for i, day in enumerate(days):
        window = days[max(0, i - MOVING_AVERAGE_WEIGH_INS + 1):i + 1]
        smoothed[day] = mean([by_day[d] for d in window])
    return smoothed


def _next_day_change(smoothed: dict[date, float]) -> dict[date, float]:
    """Change in the moving average from each day to the calendar day after it."""
    return {
        day: smoothed[day + timedelta(days=1)] - value
        for day, value in smoothed.items()
        if day + timedelta(days=1) in smoothed
    }


def analyze_weight_factors(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Next-day change in the weight average after sodium, calories, poor sleep and late meals.

    Needs 5 weigh-in days; each comparison needs 2 days per side.

    * Sodium (5+ food entries, 3+ sodium days): above 1.3x vs below 0.7x the
      mean, fires at 0.15+ kg.
    * Calories (5+ calorie days): same split, 0.15+ kg.
    * Sleep: that night under 6h vs 7.5h+, 0.08+ kg.
    * Late meals (5+ food entries): a meal at 21:00 local or later vs other
      food-logged days, 0.1+ kg.

    Confidence: ``min(0.8, 0.6 + 0.03 * min(compared_days, 7))``.
    """
    raw = daily_values(ctx.metrics_of("weight"), ctx)
    if len(raw) < 5:
        return []
    change = _next_day_change(moving_average(raw))
    results: list[AnalyzedInsight] = []

    def compare(title: str, exposed: list[date], control: list[date], threshold: float,
                description: str, related: list[str]) -> None:
        hit = [change[d] for d in exposed if d in change]
        miss = [change[d] for d in control if d in change]
        if len(hit) < 2 or len(miss) < 2:
            return
        gap = mean(hit) - mean(miss)
        if gap <= threshold:
            return
        results.append(insight(
            "correlation",
            title,
            description.format(gap=gap),
            sample_confidence(len(hit) + len(miss), base=0.6, step=0.03, cap=0.8, saturation=7),
            related,
        ))

    if len(ctx.foods) >= 5:
        sodium = food_totals(ctx, "sodium")
        if len(sodium) >= 3:
            high, low = split_by_average(sodium)
            compare(
                "Sodium causes water weight", high, low, 0.15,
                "Weight (7-day avg) rises {gap:.2f}kg more after high-sodium days.",
                ["weight", "food", "sodium"],
            )

    calories = food_totals(ctx, "calories")
    if len(calories) >= 5:
        surplus, deficit = split_by_average(calories)
        compare(
            "Calories affect weight trend", surplus, deficit, 0.15,
            "Weight (7-day avg) rises {gap:.2f}kg more after surplus days than deficit days.",
            ["weight", "food", "calories"],
        )

    nights = sleep_by_night(ctx)
    compare(
        "Poor sleep affects weight",
        [d for d, hours in nights.items() if hours < 6],
        [d for d, hours in nights.items() if hours >= 7.5],
        0.08,
        "Weight (7-day avg) trends {gap:.2f}kg higher after poor sleep.",
        ["weight", "sleep"],
    )

    if len(ctx.foods) >= 5:
        logged = {local_date(f.logged_at, ctx.timezone) for f in ctx.foods}
        late = {
            local_date(f.logged_at, ctx.timezone)
            for f in ctx.foods
            if local_hour(f.logged_at, ctx.timezone) >= LATE_MEAL_HOUR
        }
        compare(
            "Late eating affects weight", sorted(late), sorted(logged - late), 0.1,
            "Weight (7-day avg) trends {gap:.2f}kg higher after eating past 9pm.",
            ["weight", "food"],
        )
    return results


def analyze_weight_trend(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """First vs last 7 weigh-ins of the moving average over 14+ days.

    Fires on a change above 0.5kg. Confidence is fixed at 0.85.
    """
    raw = daily_values(ctx.metrics_of("weight"), ctx)
    if len(raw) < 14:
        return []
    smoothed = moving_average(raw)
    days = sorted(smoothed)
    diff = mean([smoothed[d] for d in days[-7:]]) - mean([smoothed[d] for d in days[:7]])
    if abs(diff) <= 0.5:
        return []
    return [insight(
        "prediction",
        f"Weight trending {'up' if diff > 0 else 'down'}",
        f"You've {'gained' if diff > 0 else 'lost'} ~{abs(diff):.1f}kg (7-day avg) over the tracking period.",
        0.85,
        ["weight"],
    )]
