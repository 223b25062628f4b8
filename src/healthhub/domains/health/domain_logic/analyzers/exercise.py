"""Exercise passes: training load vs recovery, workout timing vs sleep,
activities vs symptoms, and the weekly workout count.

Exercise logs store ``{"activity", "duration_minutes", "intensity"}`` as
JSON. A session's load is its duration weighted by intensity; a log that
is not JSON is read as a bare activity name with a 30-minute default.
"""

from __future__ import annotations

import json
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta

from healthhub.core.storage.models import AnalyzedInsight, ManualLog
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    daily_values,
    insight,
    mean,
    sample_confidence,
    sleep_by_night,
    split_by_average,
    symptoms_by_day,
)
from healthhub.domains.health.domain_logic.timezones import local_date, to_local

DEFAULT_DURATION_MINUTES = 30.0
INTENSITY_WEIGHTS = {"low": 1.0, "moderate": 1.5, "high": 2.0}
MORNING_BEFORE_HOUR = 12
EVENING_FROM_HOUR = 18
STRONG_WEEK_DAYS = 4


@dataclass(frozen=True)
class Workout:
    day: date
    hour: int
    activity: str
    load: float


def _duration(value: object) -> float:
    if not isinstance(value, (int, float, str)):
        return DEFAULT_DURATION_MINUTES
    try:
        minutes = float(value)
    except ValueError:
        return DEFAULT_DURATION_MINUTES
    return minutes if minutes > 0 else DEFAULT_DURATION_MINUTES


def parse_workout(log: ManualLog, ctx: AnalysisContext) -> Workout:
    try:
        payload = json.loads(log.value)
    except json.JSONDecodeError:
        payload = {"activity": log.value}
    if not isinstance(payload, dict):
        payload = {"activity": str(payload)}

    activity = str(payload.get("activity") or "exercise").strip().lower()
    intensity = str(payload.get("intensity") or "moderate").lower()
    weight = INTENSITY_WEIGHTS.get(intensity, INTENSITY_WEIGHTS["moderate"])
    local = to_local(log.logged_at, ctx.timezone)
    return Workout(
        day=local.date(),
        hour=local.hour,
        activity=activity,
        load=_duration(payload.get("duration_minutes")) * weight,
    )


def workouts(ctx: AnalysisContext) -> list[Workout]:
    return [parse_workout(log, ctx) for log in ctx.logs_of("exercise")]


def daily_load(sessions: list[Workout]) -> dict[date, float]:
    load: dict[date, float] = defaultdict(float)
    for session in sessions:
        load[session.day] += session.load
    return dict(load)


def analyze_exercise_recovery(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Next-day resting HR and HRV after intense vs light training days.

    Needs 3 workouts on 3 days. Days above 1.3x the mean load are intense,
    below 0.7x are light; each side needs 2 days with a reading the next
    morning. Fires when resting HR is 3+ bpm higher, or HRV 5+ ms lower,
    after intense days. Separately, HRV on rest days vs workout days fires
    "Rest days boost HRV" at a 5+ ms gap.

    Confidence: ``min(0.82, 0.6 + 0.03 * min(compared_days, 7))``.
    """
    sessions = workouts(ctx)
    load = daily_load(sessions)
    if len(sessions) < 3 or len(load) < 3:
        return []
    intense, light = split_by_average(load)
    rhr = daily_values(ctx.metrics_of("resting_heart_rate"), ctx)
    hrv = daily_values(ctx.metrics_of("hrv"), ctx)

    def next_day(days: list[date], readings: dict[date, float]) -> list[float]:
        return [readings[d + timedelta(days=1)] for d in days if d + timedelta(days=1) in readings]

    def confidence(n: int) -> float:
        return sample_confidence(n, base=0.6, step=0.03, cap=0.82, saturation=7)

    results: list[AnalyzedInsight] = []
    if len(rhr) >= 5:
        hard, easy = next_day(intense, rhr), next_day(light, rhr)
        if len(hard) >= 2 and len(easy) >= 2 and mean(hard) - mean(easy) > 3:
            results.append(insight(
                "correlation",
                "Intense workouts elevate resting HR",
                f"Resting HR is {round(mean(hard) - mean(easy))} bpm higher the day after intense workouts.",
                confidence(len(hard) + len(easy)),
                ["exercise", "resting_heart_rate"],
            ))

    if len(hrv) >= 5:
        hard, easy = next_day(intense, hrv), next_day(light, hrv)
        if len(hard) >= 2 and len(easy) >= 2 and mean(easy) - mean(hard) > 5:
            results.append(insight(
                "correlation",
                "Intense exercise lowers HRV",
                f"HRV drops {round(mean(easy) - mean(hard))}ms the day after intense workouts. "
                "Allow recovery.",
                confidence(len(hard) + len(easy)),
                ["exercise", "hrv"],
            ))

        rest = [value for day, value in hrv.items() if day not in load]
        active = [value for day, value in hrv.items() if day in load]
        if len(rest) >= 2 and len(active) >= 2 and mean(rest) - mean(active) > 5:
            results.append(insight(
                "correlation",
                "Rest days boost HRV",
                f"Your HRV is {round(mean(rest) - mean(active))}ms higher on rest days. Recovery matters!",
                confidence(len(rest) + len(active)),
                ["exercise", "hrv"],
            ))
    return results


def analyze_exercise_sleep(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Sleep the night after morning (before noon) vs evening (18:00+) workouts.

    Needs 5 nights and 2 sessions on each side with a night recorded;
    fires when morning sessions are followed by 0.4h+ more sleep.

    Confidence: ``min(0.8, 0.6 + 0.03 * min(paired_sessions, 7))``.
    """
    nights = sleep_by_night(ctx)
    if len(nights) < 5:
        return []
    morning: list[float] = []
    evening: list[float] = []
    for session in workouts(ctx):
        if session.day not in nights:
            continue
        if session.hour < MORNING_BEFORE_HOUR:
            morning.append(nights[session.day])
        elif session.hour >= EVENING_FROM_HOUR:
            evening.append(nights[session.day])
    if len(morning) < 2 or len(evening) < 2:
        return []
    gap = mean(morning) - mean(evening)
    if gap <= 0.4:
        return []
    return [insight(
        "correlation",
        "Morning workouts = better sleep",
        f"You sleep {gap:.1f}h more after morning workouts than after evening ones.",
        sample_confidence(len(morning) + len(evening), base=0.6, step=0.03, cap=0.8, saturation=7),
        ["exercise", "sleep"],
    )]


def analyze_exercise_symptoms(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Activities followed by symptoms on most of the days they are done.

    Needs 3 symptom logs. An activity needs 3 days and fires when symptoms
    were logged on more than half of them.

    Confidence: ``min(0.8, 0.55 + 0.04 * min(activity_days, 6))``.
    """
    if len(ctx.logs_of("symptom")) < 3:
        return []
    symptoms = symptoms_by_day(ctx)
    days_by_activity: dict[str, set[date]] = defaultdict(set)
    for session in workouts(ctx):
        days_by_activity[session.activity].add(session.day)

    results: list[AnalyzedInsight] = []
    for activity in sorted(days_by_activity):
        days = days_by_activity[activity]
        if len(days) < 3:
            continue
        rate = sum(1 for day in days if symptoms.get(day)) / len(days)
        if rate <= 0.5:
            continue
        results.append(insight(
            "correlation",
            f"{activity.capitalize()} may trigger symptoms",
            f"You report symptoms on {round(rate * 100)}% of {activity} days.",
            sample_confidence(len(days), base=0.55, step=0.04, cap=0.8, saturation=6),
            ["exercise", "symptom", activity],
        ))
    return results


def analyze_workout_week(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Four or more workout days in the last 7 local days. Confidence is fixed at 0.85."""
    today = local_date(ctx.now, ctx.timezone)
    week = {s.day for s in workouts(ctx) if today - timedelta(days=6) <= s.day <= today}
    if len(week) < STRONG_WEEK_DAYS:
        return []
    return [insight(
        "recommendation",
        "Strong workout week!",
        f"{len(week)} workout days this week. Remember to include rest for recovery.",
        0.85,
        ["exercise"],
    )]
