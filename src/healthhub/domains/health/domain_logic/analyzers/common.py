"""Shared bucketing and scoring helpers for analyzer passes.

Every day bucket here is a local calendar date in the context's timezone.
"""

from __future__ import annotations

import statistics
from collections import defaultdict
from datetime import date, timedelta

from healthhub.core.storage.models import AnalyzedInsight, HealthMetric, ManualLog
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.timezones import local_date

# Event counts that make a day busy or calm
BUSY_DAY_EVENTS = 4
CALM_DAY_EVENTS = 1


def sample_confidence(
    sample_size: int,
    *,
    base: float = 0.5,
    step: float = 0.05,
    cap: float = 0.95,
    saturation: int = 9,
) -> float:
    """``min(cap, base + step * min(sample_size, saturation))``.

    A heuristic weight that grows with evidence, not a probability.
    """
    return round(min(cap, base + step * min(sample_size, saturation)), 2)


def insight(
    kind: str,
    title: str,
    description: str,
    confidence: float,
    related: list[str],
) -> AnalyzedInsight:
    return AnalyzedInsight(
        type=kind,
        title=title,
        description=description,
        confidence=confidence,
        related_metrics=related,
        source="heuristic",
    )


def daily_values(metrics: list[HealthMetric], ctx: AnalysisContext) -> dict[date, float]:
    """Latest value per local day (inputs are newest first)."""
    by_day: dict[date, float] = {}
    for metric in metrics:
        by_day.setdefault(local_date(metric.recorded_at, ctx.timezone), float(metric.value))
    return by_day


def sleep_by_night(ctx: AnalysisContext) -> dict[date, float]:
    """Sleep hours keyed by the evening the night started.

    Sleep is recorded at wake-up, so the night of day D is the value dated D+1.
    """
    by_wake_day = daily_values(ctx.metrics_of("sleep"), ctx)
    return {day - timedelta(days=1): hours for day, hours in by_wake_day.items()}


def symptoms_by_day(ctx: AnalysisContext) -> dict[date, list[str]]:
    by_day: dict[date, list[str]] = defaultdict(list)
    for log in ctx.logs_of("symptom"):
        by_day[local_date(log.logged_at, ctx.timezone)].append(symptom_name(log))
    return dict(by_day)


def symptom_name(log: ManualLog) -> str:
    return log.value.strip().lower()


def events_per_day(ctx: AnalysisContext) -> dict[date, int]:
    counts: dict[date, int] = defaultdict(int)
    for event in ctx.events:
        if event.title.lower().startswith("[auto]") or event.is_all_day:
            continue
        start = local_date(event.start_time, ctx.timezone)
        if start <= local_date(ctx.now, ctx.timezone):
            counts[start] += 1
    return dict(counts)


def mean(values: list[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def percent_more(higher: float, lower: float) -> int:
    return round((higher - lower) / (lower or 1) * 100)


def food_totals(ctx: AnalysisContext, nutrient: str) -> dict[date, float]:
    """Per-day sum of one ``FoodEntry`` nutrient; days where it is never set are left out."""
    totals: dict[date, float] = defaultdict(float)
    for food in ctx.foods:
        amount = getattr(food, nutrient)
        if amount:
            totals[local_date(food.logged_at, ctx.timezone)] += float(amount)
    return dict(totals)


def split_by_average(
    values: dict[date, float],
    *,
    high: float = 1.3,
    low: float = 0.7,
) -> tuple[list[date], list[date]]:
    """Days above ``high`` x the mean and days below ``low`` x the mean."""
    avg = mean(list(values.values()))
    return (
        sorted(day for day, value in values.items() if value > avg * high),
        sorted(day for day, value in values.items() if value < avg * low),
    )
