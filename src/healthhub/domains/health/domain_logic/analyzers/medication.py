"""Medication passes: adherence trend and symptoms on missed days."""

from __future__ import annotations

from collections import Counter
from datetime import date

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import insight, symptoms_by_day
from healthhub.domains.health.domain_logic.timezones import local_date


def _taken_by_day(ctx: AnalysisContext) -> dict[date, bool]:
    """Latest medication status per local day (inputs newest first)."""
    days: dict[date, bool] = {}
    for log in ctx.medications:
        days.setdefault(local_date(log.logged_at, ctx.timezone), log.took_medication)
    return days


def analyze_medication_adherence(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Adherence over logged days, and its recent direction.

    Needs 7 logs. Below 70% adherence is flagged, 90%+ praised (confidence
    0.82 / 0.90). With 14+ logged days the newer half is compared with the
    older half; a drop of 20+ points is reported as a trend (confidence 0.78).
    """
    if len(ctx.medications) < 7:
        return []
    taken = _taken_by_day(ctx)
    results: list[AnalyzedInsight] = []

    rate = sum(taken.values()) / len(taken)
    if rate < 0.7:
        results.append(insight(
            "recommendation",
            "Medication consistency",
            f"You've taken medication on {round(rate * 100)}% of logged days. "
            "Try setting a daily reminder.",
            0.82,
            ["medication"],
        ))
    elif rate >= 0.9:
        results.append(insight(
            "recommendation",
            "Great medication habits",
            f"{round(rate * 100)}% adherence rate. Keep it up!",
            0.9,
            ["medication"],
        ))

    if len(taken) >= 14:
        ordered = [taken[day] for day in sorted(taken)]
        half = len(ordered) // 2
        older = sum(ordered[:half]) / half
        newer = sum(ordered[half:]) / (len(ordered) - half)
        if older - newer >= 0.2:
            results.append(insight(
                "prediction",
                "Adherence is slipping",
                f"Adherence fell from {round(older * 100)}% to {round(newer * 100)}% "
                "over your logged period.",
                0.78,
                ["medication"],
            ))
    return results


def analyze_missed_medication_symptoms(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """One symptom that shows up far more often on missed days.

    Needs 5 medication logs and 5 symptom logs. A symptom qualifies when it
    appears on 2+ missed days and its per-day rate when missed exceeds 1.5x
    the rate when taken.

    Confidence: ``min(0.88, 0.68 + 0.02 * missed_occurrences)``.
    """
    symptom_logs = ctx.logs_of("symptom")
    if len(ctx.medications) < 5 or len(symptom_logs) < 5:
        return []
    taken = _taken_by_day(ctx)
    taken_days = sum(taken.values())
    missed_days = len(taken) - taken_days
    if missed_days < 2:
        return []

    with_med: Counter[str] = Counter()
    without_med: Counter[str] = Counter()
    for day, names in symptoms_by_day(ctx).items():
        if day not in taken:
            continue
        for name in set(names):
            (with_med if taken[day] else without_med)[name] += 1

    for name, missed in sorted(without_med.items(), key=lambda kv: (-kv[1], kv[0])):
        if missed < 2:
            continue
        rate_missed = missed / missed_days
        rate_taken = with_med[name] / taken_days if taken_days else 0.0
        if rate_missed <= rate_taken * 1.5:
            continue
        increase = round((rate_missed - rate_taken) / rate_taken * 100) if rate_taken else 100
        return [insight(
            "correlation",
            f"{name.capitalize()} linked to missed meds",
            f"You report {name} {increase}% more on days you skip medication.",
            round(min(0.88, 0.68 + 0.02 * missed), 2),
            ["symptom", "medication", name],
        )]
    return []
