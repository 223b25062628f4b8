"""Food passes: dairy and gluten days vs symptoms."""

from __future__ import annotations

from healthhub.core.storage.models import AnalyzedInsight
from healthhub.domains.health.domain_logic.aggregator import AnalysisContext
from healthhub.domains.health.domain_logic.analyzers.common import (
    insight,
    mean,
    percent_more,
    sample_confidence,
    symptoms_by_day,
)
from healthhub.domains.health.domain_logic.timezones import local_date


def analyze_food_symptoms(ctx: AnalysisContext) -> list[AnalyzedInsight]:
    """Symptoms per day on days with vs without a tagged ingredient.

    Needs 5 food entries and 3 symptom days. Only days with at least one
    food entry are compared. Each ingredient needs 2 days per side and fires
    when ingredient days average 0.4+ more symptoms.

    Confidence: ``min(0.85, 0.55 + 0.04 * min(compared_days, 7))``.
    """
    symptoms = symptoms_by_day(ctx)
    if len(ctx.foods) < 5 or len(symptoms) < 3:
        return []

    logged_days = {local_date(f.logged_at, ctx.timezone) for f in ctx.foods}
    results: list[AnalyzedInsight] = []
    for ingredient in ("dairy", "gluten"):
        tagged = {
            local_date(f.logged_at, ctx.timezone)
            for f in ctx.foods
            if getattr(f, f"contains_{ingredient}")
        }
        with_it = [len(symptoms.get(day, [])) for day in sorted(tagged)]
        without = [len(symptoms.get(day, [])) for day in sorted(logged_days - tagged)]
        if len(with_it) < 2 or len(without) < 2:
            continue
        with_avg, without_avg = mean(with_it), mean(without)
        if with_avg - without_avg <= 0.4:
            continue
        results.append(insight(
            "correlation",
            f"{ingredient.capitalize()} may trigger symptoms",
            f"You report {percent_more(with_avg, without_avg)}% more symptoms on {ingredient} days.",
            sample_confidence(len(with_it) + len(without), base=0.55, step=0.04, cap=0.85, saturation=7),
            ["symptom", "food", ingredient],
        ))
    return results
