"""Calendar passes: schedule load vs sleep, and look-ahead predictions."""

from __future__ import annotations

from datetime import timedelta

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    BUSY_DAY_EVENTS,
    CALM_DAY_EVENTS,
    events_per_day,
    insight,
    mean,
    sample_confidence,
    sleep_by_night,
)
from healthhub.domains.health.domain_logic.timezones import local_date, to_local

EARLY_START_HOUR = 8
HEAVY_WEEK_EVENTS = 15


def analyze_calendar_sleep(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Sleep after busy (4+ events) vs calm (0-1 event) days.

    Needs 5 events, 5 nights and 2 paired days per side; fires when calm
    days are followed by 0.4h+ more sleep.
    Confidence: ``min(0.9, 0.55 + 0.05 * min(paired_days, 7))``.
    """
    counts = events_per_day(ctx)
    nights = sleep_by_night(ctx)
    if sum(counts.values()) < 5 or len(nights) < 5:
        return []

    busy = [nights[d] for d, n in counts.items() if d in nights and n >= BUSY_DAY_EVENTS]
    calm_days = [d for d in nights if counts.get(d, 0) <= CALM_DAY_EVENTS]
    calm = [nights[d] for d in calm_days]
    if len(busy) < 2 or len(calm) < 2:
        return []
    gap = mean(calm) - mean(busy)
    if gap <= 0.4:
        return []
    return [insight(
        "correlation",
        "Busy days hurt sleep",
        f"You sleep {gap:.1f}h less after days with {BUSY_DAY_EVENTS}+ events.",
        sample_confidence(len(busy) + len(calm), base=0.55, step=0.05, cap=0.9, saturation=7),
        ["calendar", "sleep"],
    )]


def analyze_calendar_lookahead(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Predictions from upcoming events.

    * Early start tomorrow: a timed event before 08:00 local tomorrow
      (confidence 0.92).
    * Heavy week ahead: 15+ events in the next 7 days (confidence 0.88).
    """
    results: list[AnalyzedInsight] = []
    upcoming = [
        e for e in ctx.events
        if not e.title.lower().startswith("[auto]")
    ]
    tomorrow = local_date(ctx.now, ctx.timezone) + timedelta(days=1)

    early = sorted(
        (
            e for e in upcoming
            if not e.is_all_day
            and local_date(e.start_time, ctx.timezone) == tomorrow
            and to_local(e.start_time, ctx.timezone).hour < EARLY_START_HOUR
        ),
        key=lambda e: e.start_time,
    )
    if early:
        first = early[0]
        starts = to_local(first.start_time, ctx.timezone).strftime("%H:%M")
        results.append(insight(
            "prediction",
            "Early start tomorrow",
            f'"{first.title}" at {starts}. Consider going to bed early tonight.',
            0.92,
            ["calendar", "sleep"],
        ))

    week_end = ctx.now + timedelta(days=7)
    next_week = [
        e for e in upcoming
        if ctx.now <= to_local(e.start_time, ctx.timezone) <= week_end
    ]
    if len(next_week) >= HEAVY_WEEK_EVENTS:
        results.append(insight(
            "prediction",
            "Heavy week ahead",
            f"{len(next_week)} events in the next 7 days. Plan recovery time and prioritize sleep.",
            0.88,
            ["calendar"],
        ))
    return results
