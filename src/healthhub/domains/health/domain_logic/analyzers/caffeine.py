"""Caffeine passes: timing vs sleep, recent late intake, dose vs HRV.

"Late" means a local hour of 14 or later; the hour is always read in the
user's timezone.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta

from healthhub.core.storage.models import AnalyzedInsight, ManualLog
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    daily_values,
    insight,
    mean,
    sample_confidence,
    sleep_by_night,
)
from healthhub.domains.health.domain_logic.timezones import local_date, local_hour, to_local

LATE_HOUR = 14
DEFAULT_DOSE_MG = 100


def _dose_mg(log: ManualLog) -> float:
    digits = "".join(ch for ch in log.value if ch.isdigit() or ch == ".")
    try:
        return float(digits) if digits else DEFAULT_DOSE_MG
    except ValueError:
        return DEFAULT_DOSE_MG


def _late_by_day(logs: list[ManualLog], ctx: AnalysisContext) -> dict[date, bool]:
    days: dict[date, bool] = {}
    for log in logs:
        day = local_date(log.logged_at, ctx.timezone)
        days[day] = days.get(day, False) or local_hour(log.logged_at, ctx.timezone) >= LATE_HOUR
    return days


def analyze_caffeine_timing(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Sleep on nights after late vs early-only caffeine days.

    Needs 3 caffeine logs, and 2 paired nights on each side; fires when the
    early-only nights are 0.5h+ longer.

    Confidence: ``min(0.9, 0.6 + 0.04 * min(paired_nights, 7))``.
    """
    logs = ctx.logs_of("caffeine")
    nights = sleep_by_night(ctx)
    if len(logs) < 3 or len(nights) < 3:
        return []

    late: list[float] = []
    early: list[float] = []
    for day, is_late in _late_by_day(logs, ctx).items():
        if day not in nights:
            continue
        (late if is_late else early).append(nights[day])
    if len(late) < 2 or len(early) < 2:
        return []

    late_avg, early_avg = mean(late), mean(early)
    if early_avg - late_avg <= 0.5:
        return []
    return [insight(
        "correlation",
        "Late caffeine hurts sleep",
        f"You sleep {early_avg - late_avg:.1f}h less after caffeine past 2pm "
        f"({late_avg:.1f}h vs {early_avg:.1f}h).",
        sample_confidence(len(late) + len(early), base=0.6, step=0.04, cap=0.9, saturation=7),
        ["sleep", "caffeine"],
    )]


def analyze_recent_late_caffeine(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Most of the past week's caffeine taken late.

    Needs 5 logs in the last 7 days with at least 3 late; fires above a 60%
    late share. Confidence: ``min(0.9, 0.6 + 0.03 * min(recent_logs, 10))``.
    """
    cutoff = ctx.now - timedelta(days=7)
    recent = [
        log for log in ctx.logs_of("caffeine")
        if to_local(log.logged_at, ctx.timezone) >= cutoff
    ]
    late = [log for log in recent if local_hour(log.logged_at, ctx.timezone) >= LATE_HOUR]
    if len(recent) < 5 or len(late) < 3:
        return []
    ratio = len(late) / len(recent)
    if ratio <= 0.6:
        return []
    return [insight(
        "recommendation",
        "Consider earlier caffeine",
        f"{round(ratio * 100)}% of your caffeine in the past week was after 2pm. "
        "This may affect sleep.",
        sample_confidence(len(recent), base=0.6, step=0.03, cap=0.9, saturation=10),
        ["caffeine", "sleep"],
    )]


def analyze_caffeine_hrv(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """HRV on high (>200mg) vs low (<100mg) caffeine days.

    Needs 5 HRV readings and 5 caffeine logs, 2 days per side, and a 5ms+
    gap. Confidence: ``min(0.85, 0.6 + 0.04 * min(paired_days, 6))``.
    """
    logs = ctx.logs_of("caffeine")
    hrv = daily_values(ctx.metrics_of("hrv"), ctx)
    if len(logs) < 5 or len(hrv) < 5:
        return []

    totals: dict[date, float] = defaultdict(float)
    for log in logs:
        totals[local_date(log.logged_at, ctx.timezone)] += _dose_mg(log)

    high = [hrv[day] for day, mg in totals.items() if day in hrv and mg > 200]
    low = [hrv[day] for day, mg in totals.items() if day in hrv and mg < 100]
    if len(high) < 2 or len(low) < 2:
        return []
    gap = mean(low) - mean(high)
    if gap <= 5:
        return []
    return [insight(
        "correlation",
        "High caffeine lowers HRV",
        f"Days with 200mg+ caffeine show {round(gap)}ms lower HRV.",
        sample_confidence(len(high) + len(low), base=0.6, step=0.04, cap=0.85, saturation=6),
        ["caffeine", "hrv"],
    )]
