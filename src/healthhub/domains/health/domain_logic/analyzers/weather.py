"""Weather passes: barometric pressure, humidity and rain vs symptoms."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

from healthhub.core.storage.models import AnalyzedInsight, WeatherRecord
from healthhub.domains.health.connectors.weather import (
    is_high_humidity,
    is_low_pressure,
    is_rainy_day,
)
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    insight,
    mean,
    percent_more,
    sample_confidence,
    symptoms_by_day,
)


def _split(
    weather: dict[date, WeatherRecord],
    symptoms: dict[date, list[str]],
    exposed: Callable[[WeatherRecord], bool],
    control: Callable[[WeatherRecord], bool],
) -> tuple[list[int], list[int]]:
    hit: list[int] = []
    miss: list[int] = []
    for day, record in weather.items():
        count = len(symptoms.get(day, []))
        if exposed(record):
            hit.append(count)
        elif control(record):
            miss.append(count)
    return hit, miss


def analyze_weather_symptoms(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Symptoms per day on low- vs high-pressure, humid vs dry and rainy vs dry days.

    Needs 5 weather days and 5 symptom logs. Pressure splits at the window
    mean ±5 hPa, humidity at the mean ±10 points. A day below 1000 hPa always
    counts as low pressure and a day above 80% humidity always counts as
    humid, even when it sits close to the mean. Each comparison needs
    2 days per side and fires when the exposed side averages 0.4+ more
    symptoms.

    Confidence: ``min(0.85, 0.55 + 0.04 * min(compared_days, 7))``.
    """
    if len(ctx.weather) < 5 or len(ctx.logs_of("symptom")) < 5:
        return []
    weather = {date.fromisoformat(w.date): w for w in ctx.weather}
    symptoms = symptoms_by_day(ctx)
    pressure_mean = mean([w.pressure_hpa for w in ctx.weather])
    humidities = [w.humidity_avg for w in ctx.weather if w.humidity_avg is not None]
    humidity_mean = mean(humidities)

    checks = [
        (
            "Low pressure triggers symptoms",
            "on low-pressure days",
            lambda w: is_low_pressure(w) or w.pressure_hpa < pressure_mean - 5,
            lambda w: not is_low_pressure(w) and w.pressure_hpa > pressure_mean + 5,
            "pressure",
        ),
        (
            "High humidity worsens symptoms",
            "on humid days",
            lambda w: is_high_humidity(w) or (
                w.humidity_avg is not None and w.humidity_avg > humidity_mean + 10
            ),
            lambda w: not is_high_humidity(w) and (
                w.humidity_avg is not None and w.humidity_avg < humidity_mean - 10
            ),
            "humidity",
        ),
        (
            "Rainy days bring more symptoms",
            "on rainy days",
            is_rainy_day,
            lambda w: not is_rainy_day(w),
            "precipitation",
        ),
    ]

    results: list[AnalyzedInsight] = []
    for title, when, exposed, control, factor in checks:
        hit, miss = _split(weather, symptoms, exposed, control)
        if len(hit) < 2 or len(miss) < 2:
            continue
        hit_avg, miss_avg = mean(hit), mean(miss)
        if hit_avg - miss_avg <= 0.4:
            continue
        results.append(insight(
            "correlation",
            title,
            f"You report {percent_more(hit_avg, miss_avg)}% more symptoms {when}.",
            sample_confidence(len(hit) + len(miss), base=0.55, step=0.04, cap=0.85, saturation=7),
            ["symptom", "weather", factor],
        ))
    return results
