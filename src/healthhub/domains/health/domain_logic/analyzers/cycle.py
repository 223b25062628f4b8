"""Cycle passes: symptom load by phase, and the next expected period."""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    insight,
    mean,
    sample_confidence,
    symptoms_by_day,
)
from healthhub.domains.health.domain_logic.cycle import (
    MAX_PREDICTION_DAYS,
    cycle_length,
    current_phase,
    period_starts,
    tag_phases,
)
from healthhub.domains.health.domain_logic.timezones import local_date

PERIOD_WARNING_DAYS = 3


def analyze_cycle_symptoms(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Symptom rate per phase compared with the rest of the cycle.

    Every day in the window is phase-tagged first. A phase fires when it has
    3+ symptom days and its symptoms-per-day rate is at least 1.5x the rate
    over all other tagged days (each side needs 3+ tagged days). Only the
    strongest phase is reported, with a heads-up when today falls in it.

    Confidence: ``min(0.9, 0.55 + 0.05 * min(symptom_days_in_phase, 7))``.
    """
    if not ctx.cycle_entries:
        return []
    symptoms = symptoms_by_day(ctx)
    if len(symptoms) < 3:
        return []

    start = local_date(ctx.window_start, ctx.timezone)
    end = local_date(ctx.now, ctx.timezone)
    phases = tag_phases(ctx.cycle_entries, start, end)

    days_by_phase: dict[str, list[int]] = defaultdict(list)
    for day, phase in phases.items():
        days_by_phase[phase].append(len(symptoms.get(day, [])))

    best: tuple[float, str, int] | None = None
    for phase in sorted(days_by_phase):
        counts = days_by_phase[phase]
        others = [c for other, vals in days_by_phase.items() if other != phase for c in vals]
        symptom_days = sum(1 for c in counts if c)
        if len(counts) < 3 or len(others) < 3 or symptom_days < 3:
            continue
        rate, other_rate = mean(counts), mean(others)
        if rate < 1.5 * other_rate or rate == 0:
            continue
        ratio = rate / other_rate if other_rate else float("inf")
        if best is None or ratio > best[0]:
            best = (ratio, phase, symptom_days)

    if best is None:
        return []
    ratio, phase, symptom_days = best
    if ratio == float("inf"):
        detail = f"Your symptoms were logged only during {phase} days."
    else:
        detail = f"You log {ratio:.1f}x more symptoms per day during {phase} than in the rest of your cycle."
    if current_phase(ctx.cycle_entries, end) == phase:
        detail += " You are in this phase now."
    return [insight(
        "correlation",
        f"Symptoms cluster in your {phase} phase",
        detail,
        sample_confidence(symptom_days, base=0.55, step=0.05, cap=0.9, saturation=7),
        ["symptom", "cycle", phase],
    )]


def analyze_period_prediction(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Next period expected within 3 days.

    Uses the mean cycle length; skipped when the last logged start is more
    than 35 days old. Confidence: 0.7 with one logged start, else
    ``min(0.9, 0.65 + 0.05 * min(starts, 5))``.
    """
    starts = period_starts(ctx.cycle_entries)
    if not starts:
        return []
    today = local_date(ctx.now, ctx.timezone)
    if (today - starts[-1]).days > MAX_PREDICTION_DAYS:
        return []

    expected = starts[-1] + timedelta(days=cycle_length(starts))
    days_until = (expected - today).days
    if not 0 <= days_until <= PERIOD_WARNING_DAYS:
        return []
    when = "today" if days_until == 0 else f"in {days_until} day{'s' if days_until > 1 else ''}"
    confidence = 0.7 if len(starts) < 2 else sample_confidence(len(starts), base=0.65, step=0.05, cap=0.9, saturation=5)
    return [insight(
        "prediction",
        "Period expected soon",
        f"Based on a {cycle_length(starts)}-day cycle your next period is expected {when}.",
        confidence,
        ["cycle"],
    )]
