"""Tests for the heuristic analyzer passes."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from healthhub.core.storage.models import (
    CalendarEvent,
    CycleEntry,
    FoodEntry,
    HealthMetric,
    ManualLog,
    MedicationLog,
    WeatherRecord,
)
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
from healthhub.domains.health.domain_logic.analyzers.common import sample_confidence
from healthhub.domains.health.domain_logic.analyzers.cycle import (
    analyze_cycle_symptoms,
    analyze_period_prediction,
)
from healthhub.domains.health.domain_logic.analyzers.exercise import (
    analyze_exercise_recovery,
    analyze_exercise_sleep,
    analyze_exercise_symptoms,
    analyze_workout_week,
    parse_workout,
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

# Wednesday
NOW = datetime(2026, 3, 18, 15, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def _ctx(**sources) -> AnalysisContext:
    ctx = AnalysisContext(
        user_id="user-1",
        timezone=ZoneInfo("UTC"),
        timezone_name="UTC",
        window_start=NOW - timedelta(days=30),
        now=NOW,
    )
    for name, values in sources.items():
        setattr(ctx, name, values)
    return ctx


def _at(day: date, hour: int, minute: int = 0) -> str:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc).isoformat()


def _days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


def _sleep(day: date, hours: float) -> HealthMetric:
    return HealthMetric(
        metric_type="sleep", value=hours, unit="hours", source="fitbit",
        recorded_at=_at(day, 7), metadata={"date": day.isoformat()},
    )


def _symptom(day: date, name: str = "headache", hour: int = 12) -> ManualLog:
    return ManualLog(log_type="symptom", value=name, logged_at=_at(day, hour), severity=5)


def _caffeine(day: date, hour: int, mg: int = 95) -> ManualLog:
    return ManualLog(log_type="caffeine", value=str(mg), logged_at=_at(day, hour))


def _metric(metric_type: str, day: date, value: float, hour: int = 6) -> HealthMetric:
    return HealthMetric(
        metric_type=metric_type, value=value, unit="", source="fitbit", recorded_at=_at(day, hour),
    )


def _workout(day: date, hour: int = 7, activity: str = "run", minutes: int = 30,
             intensity: str = "moderate") -> ManualLog:
    payload = {"activity": activity, "duration_minutes": minutes, "intensity": intensity}
    return ManualLog(log_type="exercise", value=json.dumps(payload), logged_at=_at(day, hour))


class TestSampleConfidence:
    def test_grows_and_caps(self):
        assert sample_confidence(1) == 0.55
        assert sample_confidence(9) == 0.95
        assert sample_confidence(50) == 0.95


class TestSleep:
    def _short_sleep_with_headaches(self) -> AnalysisContext:
        days = [_days_ago(n) for n in range(1, 11)]
        metrics = [_sleep(d, 5.0 if i % 2 else 6.0) for i, d in enumerate(days)]
        logs = [_symptom(d) for d in days[:8]]
        return _ctx(metrics=metrics, logs=logs)

    def test_short_sleep_and_headaches_correlate(self):
        [result] = analyze_sleep_symptoms(self._short_sleep_with_headaches())
        assert result.type == "correlation"
        assert "sleep" in result.related_metrics
        assert "headache" in result.related_metrics
        assert 0 < result.confidence <= 0.95
        assert "5.5h" in result.description
        assert "8 of 10" in result.description

    def test_contrast_between_short_and_rested_nights(self):
        days = [_days_ago(n) for n in range(1, 7)]
        metrics = [_sleep(d, h) for d, h in zip(days, [5.5, 6.0, 5.0, 8.0, 7.8, 8.2])]
        logs = [_symptom(days[0]), _symptom(days[0], "nausea"), _symptom(days[1]), _symptom(days[2])]
        [result] = analyze_sleep_symptoms(_ctx(metrics=metrics, logs=logs))
        assert result.title == "Poor sleep = more symptoms"

    def test_too_few_nights(self):
        ctx = _ctx(metrics=[_sleep(_days_ago(1), 5.0)], logs=[_symptom(_days_ago(1))] * 3)
        assert analyze_sleep_symptoms(ctx) == []

    def test_duration_recommendation(self):
        [result] = analyze_sleep_duration(self._short_sleep_with_headaches())
        assert result.type == "recommendation"
        assert "5.5 hours" in result.description
        assert result.confidence == 0.9

    def test_duration_fine(self):
        metrics = [_sleep(_days_ago(n), 7.5) for n in range(1, 5)]
        assert analyze_sleep_duration(_ctx(metrics=metrics)) == []

    def test_consistency_flags_erratic_week(self):
        metrics = [_sleep(_days_ago(n), h) for n, h in zip(range(1, 8), [4, 9, 4, 9, 4, 9, 4])]
        [result] = analyze_sleep_consistency(_ctx(metrics=metrics))
        assert result.title == "Inconsistent sleep schedule"

    def test_consistency_praises_steady_week(self):
        metrics = [_sleep(_days_ago(n), 7.6) for n in range(1, 8)]
        [result] = analyze_sleep_consistency(_ctx(metrics=metrics))
        assert result.title == "Excellent sleep consistency"


class TestCaffeine:
    def test_late_caffeine_shortens_sleep(self):
        late_days = [_days_ago(5), _days_ago(4)]
        early_days = [_days_ago(3), _days_ago(2)]
        logs = [_caffeine(d, 16) for d in late_days] + [_caffeine(d, 9) for d in early_days]
        # Sleep is dated by the morning after
        metrics = [_sleep(d + timedelta(days=1), 5.5) for d in late_days]
        metrics += [_sleep(d + timedelta(days=1), 7.5) for d in early_days]

        [result] = analyze_caffeine_timing(_ctx(logs=logs, metrics=metrics))
        assert result.related_metrics == ["sleep", "caffeine"]
        assert "2.0h less" in result.description
        assert result.confidence == 0.76

    def test_early_caffeine_in_tokyo_is_not_late(self):
        tokyo = ZoneInfo("Asia/Tokyo")
        # 05:30 local in Tokyo, 20:30 UTC the previous day
        logs = [
            ManualLog(log_type="caffeine", value="80", logged_at=_at(_days_ago(n + 1), 20, 30))
            for n in range(5)
        ]
        ctx = _ctx(logs=logs)
        ctx.timezone = tokyo
        assert analyze_recent_late_caffeine(ctx) == []

        ctx.timezone = ZoneInfo("UTC")
        [result] = analyze_recent_late_caffeine(ctx)
        assert "100% of your caffeine" in result.description

    def test_high_dose_lowers_hrv(self):
        days = [_days_ago(n) for n in range(1, 6)]
        logs = [_caffeine(d, 9, mg) for d, mg in zip(days, [250, 300, 50, 60, 150])]
        metrics = [
            HealthMetric(metric_type="hrv", value=v, unit="ms", source="fitbit", recorded_at=_at(d, 6))
            for d, v in zip(days, [30, 32, 48, 50, 40])
        ]
        [result] = analyze_caffeine_hrv(_ctx(logs=logs, metrics=metrics))
        assert "18ms lower HRV" in result.description


class TestCalendar:
    def test_busy_days_hurt_sleep(self):
        busy = [_days_ago(6), _days_ago(5)]
        calm = [_days_ago(4), _days_ago(3), _days_ago(2)]
        events = [
            CalendarEvent(title=f"Meeting {i}", start_time=_at(d, 9 + i))
            for d in busy for i in range(4)
        ]
        metrics = [_sleep(d + timedelta(days=1), 5.5) for d in busy]
        metrics += [_sleep(d + timedelta(days=1), 7.5) for d in calm]

        [result] = analyze_calendar_sleep(_ctx(events=events, metrics=metrics))
        assert result.title == "Busy days hurt sleep"
        assert result.confidence == 0.8

    def test_early_start_tomorrow(self):
        events = [
            CalendarEvent(title="Flight to Lisbon", start_time=_at(TODAY + timedelta(days=1), 6, 30)),
            CalendarEvent(title="[auto] Reminder", start_time=_at(TODAY + timedelta(days=1), 5)),
        ]
        [result] = analyze_calendar_lookahead(_ctx(events=events))
        assert result.type == "prediction"
        assert result.confidence == 0.92
        assert '"Flight to Lisbon" at 06:30' in result.description

    def test_heavy_week_ahead(self):
        events = [
            CalendarEvent(title=f"Call {i}", start_time=_at(TODAY + timedelta(days=2 + i % 4), 10 + i % 6))
            for i in range(15)
        ]
        results = analyze_calendar_lookahead(_ctx(events=events))
        assert [r.title for r in results] == ["Heavy week ahead"]


class TestCycle:
    def test_symptoms_cluster_in_menstruation(self):
        entries = [
            CycleEntry(date=f"2026-03-0{d}", phase="menstruation", flow="normal") for d in range(1, 6)
        ]
        logs = [_symptom(date(2026, 3, d), "cramps") for d in (1, 2, 3)]
        [result] = analyze_cycle_symptoms(_ctx(cycle_entries=entries, logs=logs))
        assert result.title == "Symptoms cluster in your menstruation phase"
        assert result.related_metrics == ["symptom", "cycle", "menstruation"]
        assert result.confidence == 0.7

    def test_flags_phase_in_progress(self):
        entries = [CycleEntry(date=f"2026-03-0{d}", phase="menstruation") for d in range(1, 6)]
        entries += [CycleEntry(date=f"2026-03-{d}", phase="luteal") for d in range(14, 19)]
        logs = [_symptom(date(2026, 3, d), "bloating") for d in (14, 15, 16)]
        [result] = analyze_cycle_symptoms(_ctx(cycle_entries=entries, logs=logs))
        assert result.title == "Symptoms cluster in your luteal phase"
        assert result.description.endswith("You are in this phase now.")

    def test_no_heads_up_outside_phase(self):
        entries = [
            CycleEntry(date=f"2026-03-0{d}", phase="menstruation", flow="normal") for d in range(1, 6)
        ]
        logs = [_symptom(date(2026, 3, d), "cramps") for d in (1, 2, 3)]
        [result] = analyze_cycle_symptoms(_ctx(cycle_entries=entries, logs=logs))
        assert "in this phase now" not in result.description

    def test_no_cycle_data(self):
        assert analyze_cycle_symptoms(_ctx(logs=[_symptom(_days_ago(n)) for n in range(3)])) == []

    def test_period_expected_in_two_days(self):
        entries = [
            CycleEntry(date=d, phase="menstruation")
            for d in ("2026-01-23", "2026-01-24", "2026-02-20", "2026-02-21")
        ]
        [result] = analyze_period_prediction(_ctx(cycle_entries=entries))
        assert "in 2 days" in result.description
        assert "28-day cycle" in result.description
        assert result.confidence == 0.75

    def test_stale_period_not_predicted(self):
        entries = [CycleEntry(date="2026-01-01", phase="menstruation")]
        assert analyze_period_prediction(_ctx(cycle_entries=entries)) == []


class TestMedication:
    def test_slipping_adherence(self):
        logs = [
            MedicationLog(logged_at=_at(_days_ago(n), 8), took_medication=n > 7)
            for n in range(1, 15)
        ]
        titles = [r.title for r in analyze_medication_adherence(_ctx(medications=logs))]
        assert titles == ["Medication consistency", "Adherence is slipping"]

    def test_great_adherence(self):
        logs = [MedicationLog(logged_at=_at(_days_ago(n), 8), took_medication=True) for n in range(1, 8)]
        [result] = analyze_medication_adherence(_ctx(medications=logs))
        assert result.title == "Great medication habits"

    def test_missed_days_bring_headaches(self):
        missed = [_days_ago(1), _days_ago(3), _days_ago(5)]
        taken = [_days_ago(2), _days_ago(4), _days_ago(6)]
        meds = [MedicationLog(logged_at=_at(d, 8), took_medication=False) for d in missed]
        meds += [MedicationLog(logged_at=_at(d, 8), took_medication=True) for d in taken]
        logs = [_symptom(d) for d in missed] + [_symptom(d, "nausea") for d in taken[:2]]

        [result] = analyze_missed_medication_symptoms(_ctx(medications=meds, logs=logs))
        assert result.title == "Headache linked to missed meds"
        assert result.confidence == 0.74


class TestWeather:
    def test_low_pressure_days(self):
        low = [_days_ago(n) for n in (1, 3, 5)]
        high = [_days_ago(n) for n in (2, 4, 6)]
        weather = [WeatherRecord(date=d.isoformat(), pressure_hpa=990) for d in low]
        weather += [WeatherRecord(date=d.isoformat(), pressure_hpa=1020) for d in high]
        logs = [_symptom(d, name) for d in low for name in ("headache", "fatigue")]

        [result] = analyze_weather_symptoms(_ctx(weather=weather, logs=logs))
        assert result.title == "Low pressure triggers symptoms"
        assert result.related_metrics == ["symptom", "weather", "pressure"]
        assert "200% more" in result.description

    def test_absolute_low_pressure_near_the_mean(self):
        # 998 hPa sits within 5 hPa of the window mean but is still low
        low = [_days_ago(1), _days_ago(2)]
        mild = [_days_ago(n) for n in (3, 4, 5, 6)]
        high = [_days_ago(7), _days_ago(8)]
        weather = [WeatherRecord(date=d.isoformat(), pressure_hpa=998) for d in low]
        weather += [WeatherRecord(date=d.isoformat(), pressure_hpa=1002) for d in mild]
        weather += [WeatherRecord(date=d.isoformat(), pressure_hpa=1010) for d in high]
        logs = [_symptom(d, name) for d in low for name in ("headache", "fatigue")]
        logs.append(_symptom(mild[0]))

        [result] = analyze_weather_symptoms(_ctx(weather=weather, logs=logs))
        assert result.title == "Low pressure triggers symptoms"

    def test_absolute_high_humidity_near_the_mean(self):
        humid = [_days_ago(1), _days_ago(2)]
        mild = [_days_ago(n) for n in (3, 4, 5, 6)]
        dry = [_days_ago(7), _days_ago(8)]
        weather = [WeatherRecord(date=d.isoformat(), humidity_avg=82) for d in humid]
        weather += [WeatherRecord(date=d.isoformat(), humidity_avg=78) for d in mild]
        weather += [WeatherRecord(date=d.isoformat(), humidity_avg=55) for d in dry]
        logs = [_symptom(d, name) for d in humid for name in ("headache", "fatigue")]
        logs.append(_symptom(mild[0]))

        [result] = analyze_weather_symptoms(_ctx(weather=weather, logs=logs))
        assert result.title == "High humidity worsens symptoms"
        assert result.related_metrics == ["symptom", "weather", "humidity"]


class TestSymptoms:
    def test_recurring_symptom(self):
        logs = [_symptom(_days_ago(n)) for n in range(1, 4)] + [_symptom(_days_ago(4), "nausea")]
        [result] = analyze_recurring_symptom(_ctx(logs=logs))
        assert result.title == "Recurring headache"
        assert "75%" in result.description

    def test_monday_cluster(self):
        mondays = [date(2026, 3, 16), date(2026, 3, 9), date(2026, 3, 2)]
        logs = [_symptom(d, "migraine") for d in mondays]
        logs += [_symptom(date(2026, 3, 17), "fatigue"), _symptom(date(2026, 3, 12), "fatigue")]
        [result] = analyze_weekday_symptoms(_ctx(logs=logs))
        assert result.title == "Mondays trigger symptoms (mainly migraine)"


class TestFood:
    def test_dairy_days(self):
        dairy_days = [_days_ago(1), _days_ago(2)]
        plain_days = [_days_ago(3), _days_ago(4), _days_ago(5)]
        foods = [
            FoodEntry(name="Cheese toastie", logged_at=_at(d, 12), contains_dairy=True, contains_gluten=True)
            for d in dairy_days
        ]
        foods += [FoodEntry(name="Rice bowl", logged_at=_at(d, 12)) for d in plain_days]
        logs = [_symptom(d, "bloating", 18) for d in dairy_days for _ in range(2)]
        logs.append(_symptom(plain_days[0], "bloating", 18))

        titles = [r.title for r in analyze_food_symptoms(_ctx(foods=foods, logs=logs))]
        assert titles == ["Dairy may trigger symptoms", "Gluten may trigger symptoms"]


class TestSleepFood:
    def test_late_dinners_cost_sleep(self):
        late = [_days_ago(6), _days_ago(4)]
        early = [_days_ago(5), _days_ago(3)]
        midday = [_days_ago(2), _days_ago(1)]
        foods = [FoodEntry(name="Pasta", logged_at=_at(d, 22)) for d in late]
        foods += [FoodEntry(name="Soup", logged_at=_at(d, 18)) for d in early]
        foods += [FoodEntry(name="Salad", logged_at=_at(d, 12)) for d in midday]
        metrics = [_sleep(d + timedelta(days=1), 6.0) for d in late]
        metrics += [_sleep(d + timedelta(days=1), 7.5) for d in early]
        metrics += [_sleep(d + timedelta(days=1), 7.0) for d in midday]

        [result] = analyze_sleep_food(_ctx(foods=foods, metrics=metrics))
        assert result.title == "Late eating affects sleep"
        assert "1.5h less sleep" in result.description

    def test_salty_days_cost_sleep(self):
        sodium = {6: 4000, 4: 4000, 5: 500, 3: 500, 2: 2000, 1: 2000}
        hours = {6: 6.0, 4: 6.0, 5: 7.5, 3: 7.5, 2: 7.0, 1: 7.0}
        foods = [FoodEntry(name="Lunch", logged_at=_at(_days_ago(n), 12), sodium=mg) for n, mg in sodium.items()]
        metrics = [_sleep(_days_ago(n) + timedelta(days=1), h) for n, h in hours.items()]

        [result] = analyze_sleep_food(_ctx(foods=foods, metrics=metrics))
        assert result.title == "High sodium disrupts sleep"
        assert result.related_metrics == ["sleep", "food", "sodium"]


class TestExercise:
    def test_parse_workout(self):
        ctx = _ctx()
        plain = parse_workout(ManualLog(log_type="exercise", value="Swim", logged_at=_at(TODAY, 7)), ctx)
        assert (plain.activity, plain.load, plain.hour) == ("swim", 45.0, 7)
        hard = parse_workout(_workout(TODAY, minutes=60, intensity="high"), ctx)
        assert hard.load == 120.0
        odd = parse_workout(
            ManualLog(log_type="exercise", value='{"activity": "Row", "duration_minutes": "abc"}',
                      logged_at=_at(TODAY, 7)),
            ctx,
        )
        assert (odd.activity, odd.load) == ("row", 45.0)

    def test_intense_days_slow_recovery(self):
        logs = [_workout(_days_ago(n), minutes=90, intensity="high") for n in (8, 6)]
        logs += [_workout(_days_ago(n), minutes=20, intensity="low") for n in (4, 2)]
        metrics = [_metric("resting_heart_rate", _days_ago(n), 64) for n in (7, 5)]
        metrics += [_metric("resting_heart_rate", _days_ago(n), 58) for n in (3, 1)]
        metrics.append(_metric("resting_heart_rate", TODAY, 60))
        metrics += [_metric("hrv", _days_ago(n), 40) for n in (7, 5)]
        metrics += [_metric("hrv", _days_ago(n), 55) for n in (3, 1)]
        metrics.append(_metric("hrv", TODAY, 50))

        results = analyze_exercise_recovery(_ctx(logs=logs, metrics=metrics))
        assert [r.title for r in results] == ["Intense workouts elevate resting HR", "Intense exercise lowers HRV"]
        assert "6 bpm higher" in results[0].description
        assert "15ms" in results[1].description
        assert results[0].confidence == 0.72

    def test_rest_days_boost_hrv(self):
        logs = [_workout(_days_ago(n)) for n in (1, 3, 5)]
        metrics = [_metric("hrv", _days_ago(n), 40) for n in (1, 3, 5)]
        metrics += [_metric("hrv", _days_ago(n), 50) for n in (2, 4, 6)]
        [result] = analyze_exercise_recovery(_ctx(logs=logs, metrics=metrics))
        assert result.title == "Rest days boost HRV"
        assert "10ms higher" in result.description

    def test_morning_workouts_sleep_better(self):
        morning, evening = [_days_ago(6), _days_ago(4)], [_days_ago(5), _days_ago(3)]
        logs = [_workout(d, hour=7) for d in morning] + [_workout(d, hour=19) for d in evening]
        # Sleep is dated by the morning after the workout
        metrics = [_sleep(d + timedelta(days=1), 7.8) for d in morning]
        metrics += [_sleep(d + timedelta(days=1), 6.5) for d in evening]
        metrics += [_sleep(_days_ago(n), 7.0) for n in (1, 0)]

        [result] = analyze_exercise_sleep(_ctx(logs=logs, metrics=metrics))
        assert result.title == "Morning workouts = better sleep"
        assert "1.3h more" in result.description

    def test_activity_followed_by_symptoms(self):
        logs = [_workout(_days_ago(n), activity="Running") for n in (1, 2, 3)]
        logs += [_workout(_days_ago(n), activity="yoga") for n in (4, 5, 6)]
        logs += [_symptom(_days_ago(n), "knee pain", 18) for n in (1, 2, 7)]

        [result] = analyze_exercise_symptoms(_ctx(logs=logs))
        assert result.title == "Running may trigger symptoms"
        assert "67% of running days" in result.description
        assert result.related_metrics == ["exercise", "symptom", "running"]
        assert result.confidence == 0.67

    def test_strong_workout_week(self):
        logs = [_workout(_days_ago(n)) for n in (0, 1, 3, 5)]
        logs.append(ManualLog(log_type="exercise", value="swim", logged_at=_at(_days_ago(2), 18)))
        [result] = analyze_workout_week(_ctx(logs=logs))
        assert result.title == "Strong workout week!"
        assert result.description.startswith("5 workout days")

    def test_old_workouts_do_not_count_toward_week(self):
        logs = [_workout(_days_ago(n)) for n in (8, 9, 10, 11, 12)]
        assert analyze_workout_week(_ctx(logs=logs)) == []


class TestSteps:
    def test_low_activity(self):
        metrics = [_metric("steps", _days_ago(n), 3000, hour=22) for n in range(1, 6)]
        [result] = analyze_activity_level(_ctx(metrics=metrics))
        assert result.title == "Increase daily movement"
        assert "3,000 steps" in result.description

    def test_high_activity(self):
        metrics = [_metric("steps", _days_ago(n), 12000, hour=22) for n in range(1, 6)]
        [result] = analyze_activity_level(_ctx(metrics=metrics))
        assert result.title == "Great activity level!"
        assert result.confidence == 0.9

    def test_active_days_sleep_hrv_and_mood(self):
        steps = {6: 12000, 4: 12000, 5: 4000, 3: 4000, 2: 8000, 1: 8000}
        hours = {6: 7.8, 4: 7.8, 5: 6.5, 3: 6.5, 2: 7.0, 1: 7.0}
        hrv = {6: 55, 4: 55, 5: 45, 3: 45, 2: 50, 1: 50}
        metrics = [_metric("steps", _days_ago(n), v, hour=22) for n, v in steps.items()]
        metrics += [_sleep(_days_ago(n) + timedelta(days=1), h) for n, h in hours.items()]
        metrics += [_metric("hrv", _days_ago(n), v) for n, v in hrv.items()]
        logs = [_symptom(_days_ago(n), "anxiety", hour) for n in (5, 3) for hour in (10, 16)]
        logs.append(_symptom(_days_ago(6)))

        results = analyze_steps_correlations(_ctx(metrics=metrics, logs=logs))
        assert [r.title for r in results] == [
            "Active days = better sleep",
            "Walking boosts HRV",
            "More steps = better mood",
        ]
        assert "1.3h more" in results[0].description
        assert "10ms higher" in results[1].description

    def test_rain_and_heat_reduce_steps(self):
        steps = {1: 4000, 2: 4000, 3: 9000, 4: 9000, 5: 5000, 6: 5000}
        metrics = [_metric("steps", _days_ago(n), v, hour=22) for n, v in steps.items()]
        weather = [WeatherRecord(date=_days_ago(n).isoformat(), precipitation_mm=5.0) for n in (1, 2)]
        weather += [WeatherRecord(date=_days_ago(n).isoformat(), temperature_high=20) for n in (3, 4)]
        weather += [WeatherRecord(date=_days_ago(n).isoformat(), temperature_high=35) for n in (5, 6)]

        results = analyze_weather_activity(_ctx(metrics=metrics, weather=weather))
        assert [r.title for r in results] == ["Rain reduces activity", "Heat reduces activity"]
        assert "3,000 fewer steps on rainy days" in results[0].description
        assert "4,000 fewer steps" in results[1].description


class TestHeart:
    def test_sleep_boosts_hrv(self):
        metrics = [_sleep(_days_ago(n), 7.5) for n in (1, 2, 3)]
        metrics += [_sleep(_days_ago(n), 5.5) for n in (4, 5, 6)]
        metrics += [_metric("hrv", _days_ago(n), 60) for n in (1, 2, 3)]
        metrics += [_metric("hrv", _days_ago(n), 45) for n in (4, 5, 6)]
        [result] = analyze_hrv_factors(_ctx(metrics=metrics))
        assert result.title == "Sleep boosts HRV"
        assert "15ms higher" in result.description

    def test_busy_days_lower_next_morning_hrv(self):
        events = [
            CalendarEvent(title=f"Meeting {i}", start_time=_at(_days_ago(n), 9 + i))
            for n in (6, 4) for i in range(4)
        ]
        metrics = [_metric("hrv", _days_ago(n), 40) for n in (5, 3)]
        metrics += [_metric("hrv", _days_ago(n), 55) for n in (2, 1, 0)]
        [result] = analyze_hrv_factors(_ctx(events=events, metrics=metrics))
        assert result.title == "Busy days stress your body"
        assert "15ms lower" in result.description

    def test_dairy_and_sodium_lower_hrv(self):
        sodium = {1: 3000, 2: 3000, 3: 500, 4: 500, 5: 1500, 6: 1500}
        foods = [
            FoodEntry(name="Meal", logged_at=_at(_days_ago(n), 12), sodium=mg, contains_dairy=n <= 2)
            for n, mg in sodium.items()
        ]
        metrics = [_metric("hrv", _days_ago(n), 40 if n <= 2 else 50) for n in range(1, 7)]

        results = analyze_hrv_factors(_ctx(foods=foods, metrics=metrics))
        assert [r.title for r in results] == ["Dairy may affect HRV", "Sodium lowers HRV"]

    def test_sleep_debt_raises_resting_hr(self):
        metrics = [_sleep(_days_ago(n), 5.5) for n in (8, 7, 6, 5, 4)]
        metrics += [_sleep(_days_ago(n), 8.0) for n in (3, 2, 1, 0)]
        rhr = {6: 64, 5: 64, 4: 64, 3: 64, 2: 60, 1: 57, 0: 57}
        metrics += [_metric("resting_heart_rate", _days_ago(n), v) for n, v in rhr.items()]

        [result] = analyze_resting_hr(_ctx(metrics=metrics))
        assert result.title == "Sleep debt raises resting HR"
        assert "7 bpm higher" in result.description

    def test_elevated_hr_with_symptoms(self):
        rhr = {1: 70, 2: 70, 3: 50, 4: 50, 5: 60, 6: 60}
        metrics = [_metric("resting_heart_rate", _days_ago(n), v) for n, v in rhr.items()]
        logs = [_symptom(_days_ago(n), name) for n in (1, 2) for name in ("dizziness", "fatigue")]
        logs.append(_symptom(_days_ago(5)))

        [result] = analyze_resting_hr(_ctx(metrics=metrics, logs=logs))
        assert result.title == "High HR correlates with symptoms"
        assert "2.0 more symptoms" in result.description

    def test_overtraining(self):
        logs = [_workout(_days_ago(n)) for n in range(7)]
        rhr = {6: 55, 5: 55, 4: 56, 3: 60, 2: 61, 1: 62, 0: 62}
        metrics = [_metric("resting_heart_rate", _days_ago(n), v) for n, v in rhr.items()]

        [result] = analyze_overtraining(_ctx(logs=logs, metrics=metrics))
        assert result.type == "recommendation"
        assert result.description.startswith("7 consecutive workout days")

    def test_finished_streak_is_not_overtraining(self):
        logs = [_workout(_days_ago(n)) for n in range(14, 21)]
        rhr = {6: 55, 5: 55, 4: 56, 3: 60, 2: 61, 1: 62, 0: 62}
        metrics = [_metric("resting_heart_rate", _days_ago(n), v) for n, v in rhr.items()]
        assert analyze_overtraining(_ctx(logs=logs, metrics=metrics)) == []


class TestBristol:
    @staticmethod
    def _stool(day: date, stool_type: int, hour: int = 9) -> ManualLog:
        return ManualLog(log_type="bristol_stool", value=str(stool_type), logged_at=_at(day, hour))

    def test_caffeine_triggers_movements(self):
        logs = [_caffeine(_days_ago(n), 8) for n in range(1, 6)]
        logs += [self._stool(_days_ago(n), 4) for n in range(1, 5)]
        logs.append(self._stool(_days_ago(5), 4, hour=15))

        [result] = analyze_bristol_triggers(_ctx(logs=logs))
        assert result.title == "Caffeine triggers BMs"
        assert result.description.startswith("80%")
        assert result.confidence == 0.75

    def test_supplements_improve_digestion(self):
        logs = [
            ManualLog(log_type="supplement", value=json.dumps({"name": "psyllium", "dose": "5 g"}),
                      logged_at=_at(_days_ago(n), 8))
            for n in range(1, 6)
        ]
        logs += [self._stool(_days_ago(n), t) for n, t in ((1, 4), (2, 4), (3, 3), (6, 1), (7, 1))]

        [result] = analyze_bristol_triggers(_ctx(logs=logs))
        assert result.title == "Supplements improve digestion"

    def test_hard_stools(self):
        logs = [self._stool(_days_ago(n), 2) for n in range(1, 6)]
        [result] = analyze_bristol_pattern(_ctx(logs=logs))
        assert result.title == "Consider more fiber & water"
        assert "2.0 (hard)" in result.description

    def test_loose_stools(self):
        logs = [self._stool(_days_ago(n), 6) for n in range(1, 6)]
        [result] = analyze_bristol_pattern(_ctx(logs=logs))
        assert result.title == "Monitor loose stools"

    def test_too_few_logs(self):
        logs = [self._stool(_days_ago(n), 1) for n in range(1, 5)]
        assert analyze_bristol_pattern(_ctx(logs=logs)) == []


class TestWeight:
    # Moving average over these weigh-ins rises after days 5 and 4 ago and falls after 3 and 2
    WEIGHTS = (70, 70, 71, 71, 70, 70)

    def _weigh_ins(self) -> list[HealthMetric]:
        return [
            _metric("weight", _days_ago(6 - i), kg, hour=7) for i, kg in enumerate(self.WEIGHTS)
        ]

    def test_sodium_moves_weight(self):
        sodium = (1500, 4000, 4000, 500, 500, 1500)
        foods = [
            FoodEntry(name="Meal", logged_at=_at(_days_ago(6 - i), 12), sodium=mg)
            for i, mg in enumerate(sodium)
        ]
        [result] = analyze_weight_factors(_ctx(metrics=self._weigh_ins(), foods=foods))
        assert result.title == "Sodium causes water weight"
        assert "0.33kg" in result.description

    def test_late_meals_move_weight(self):
        foods = [
            FoodEntry(name="Meal", logged_at=_at(_days_ago(6 - i), 22 if i in (1, 2) else 12))
            for i in range(6)
        ]
        [result] = analyze_weight_factors(_ctx(metrics=self._weigh_ins(), foods=foods))
        assert result.title == "Late eating affects weight"

    def test_trend_up(self):
        metrics = [_metric("weight", _days_ago(14 - i), 70 + 0.2 * i, hour=7) for i in range(14)]
        [result] = analyze_weight_trend(_ctx(metrics=metrics))
        assert result.title == "Weight trending up"
        assert "gained ~1.1kg" in result.description

    def test_trend_needs_two_weeks(self):
        metrics = [_metric("weight", _days_ago(n), 70 + n, hour=7) for n in range(1, 10)]
        assert analyze_weight_trend(_ctx(metrics=metrics)) == []
