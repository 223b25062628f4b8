"""Heuristic analyzer passes.

Each pass is a pure function ``(AnalysisContext) -> list[AnalyzedInsight]``
with its own minimum-data threshold; below it the pass returns ``[]``.
"""

from __future__ import annotations

from collections.abc import Callable

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.bristol import (
    analyze_bristol_pattern,
    analyze_bristol_triggers,
)
from healthhub.domains.health.domain_logic.analyzers.caffeine import (
    analyze_caffeine_hrv,
    analyze_caffeine_timing,
    analyze_recent_late_caffeine,
)
from healthhub.domains.health.domain_logic.analyzers.calendar import (
    analyze_calendar_lookahead,
    analyze_calendar_sleep,
)
from healthhub.domains.health.domain_logic.analyzers.cycle import (
    analyze_cycle_symptoms,
    analyze_period_prediction,
)
from healthhub.domains.health.domain_logic.analyzers.exercise import (
    analyze_exercise_recovery,
    analyze_exercise_sleep,
    analyze_exercise_symptoms,
    analyze_workout_week,
)
from healthhub.domains.health.domain_logic.analyzers.food import analyze_food_symptoms
from healthhub.domains.health.domain_logic.analyzers.heart import (
    analyze_hrv_factors,
    analyze_overtraining,
    analyze_resting_hr,
)
from healthhub.domains.health.domain_logic.analyzers.medication import (
    analyze_medication_adherence,
    analyze_missed_medication_symptoms,
)
from healthhub.domains.health.domain_logic.analyzers.sleep import (
    analyze_sleep_consistency,
    analyze_sleep_duration,
    analyze_sleep_food,
    analyze_sleep_symptoms,
)
from healthhub.domains.health.domain_logic.analyzers.steps import (
    analyze_activity_level,
    analyze_steps_correlations,
    analyze_weather_activity,
)
from healthhub.domains.health.domain_logic.analyzers.symptoms import (
    analyze_recurring_symptom,
    analyze_weekday_symptoms,
)
from healthhub.domains.health.domain_logic.analyzers.weather import analyze_weather_symptoms
from healthhub.domains.health.domain_logic.analyzers.weight import (
    analyze_weight_factors,
    analyze_weight_trend,
)

AnalyzerPass = Callable[[AnalysisContext], list[AnalyzedInsight]]

DEFAULT_PASSES: tuple[tuple[str, AnalyzerPass], ...] = (
    ("sleep_duration", analyze_sleep_duration),
    ("sleep_consistency", analyze_sleep_consistency),
    ("sleep_symptoms", analyze_sleep_symptoms),
    ("sleep_food", analyze_sleep_food),
    ("caffeine_timing", analyze_caffeine_timing),
    ("recent_late_caffeine", analyze_recent_late_caffeine),
    ("caffeine_hrv", analyze_caffeine_hrv),
    ("calendar_sleep", analyze_calendar_sleep),
    ("calendar_lookahead", analyze_calendar_lookahead),
    ("cycle_symptoms", analyze_cycle_symptoms),
    ("period_prediction", analyze_period_prediction),
    ("medication_adherence", analyze_medication_adherence),
    ("missed_medication_symptoms", analyze_missed_medication_symptoms),
    ("weather_symptoms", analyze_weather_symptoms),
    ("recurring_symptom", analyze_recurring_symptom),
    ("weekday_symptoms", analyze_weekday_symptoms),
    ("food_symptoms", analyze_food_symptoms),
    ("exercise_recovery", analyze_exercise_recovery),
    ("exercise_sleep", analyze_exercise_sleep),
    ("exercise_symptoms", analyze_exercise_symptoms),
    ("workout_week", analyze_workout_week),
    ("activity_level", analyze_activity_level),
    ("steps_correlations", analyze_steps_correlations),
    ("weather_activity", analyze_weather_activity),
    ("hrv_factors", analyze_hrv_factors),
    ("resting_hr", analyze_resting_hr),
    ("overtraining", analyze_overtraining),
    ("bristol_triggers", analyze_bristol_triggers),
    ("bristol_pattern", analyze_bristol_pattern),
    ("weight_factors", analyze_weight_factors),
    ("weight_trend", analyze_weight_trend),
)

__all__ = ["AnalyzerPass", "DEFAULT_PASSES"]
