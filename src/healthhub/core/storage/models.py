"""Data models for the shared store.

All timestamps are ISO 8601 strings normalized to UTC; local-time bucketing
happens in the analysis layer using the user's timezone.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

MetricType = Literal[
    "steps",
    "heart_rate",
    "resting_heart_rate",
    "hrv",
    "sleep",
    "weight",
    "active_calories",
    "calories_burned",
    "calories_consumed",
]

LogType = Literal[
    "symptom",
    "bristol_stool",
    "caffeine",
    "exercise",
    "supplement",
    "medication",
    "weight",
    "cycle",
    "custom",
]

InsightType = Literal["correlation", "prediction", "recommendation"]
InsightSource = Literal["heuristic", "llm"]
CyclePhase = Literal["menstruation", "follicular", "ovulation", "luteal"]


@dataclass
class HealthMetric:
    """A single quantitative measurement from one source."""

    metric_type: str
    value: float
    unit: str
    source: str  # 'fitbit', 'apple_health', 'manual'
    recorded_at: str
    metadata: dict[str, Any] = field(default_factory=dict)
    user_id: str = ""
    id: str = ""


@dataclass
class ManualLog:
    """A user-entered record. ``value`` encoding depends on ``log_type``."""

    log_type: str
    value: str
    logged_at: str
    severity: int | None = None
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    user_id: str = ""
    id: str = ""


@dataclass
class FoodEntry:
    """A nutrition entry with ingredient flags derived at ingestion time."""

    name: str
    logged_at: str
    source: str = "manual"
    external_id: str | None = None
    brand: str | None = None
    meal_type: str | None = None
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None
    fiber: float | None = None
    sodium: float | None = None
    sugar: float | None = None
    contains_dairy: bool = False
    contains_gluten: bool = False
    contains_caffeine: bool = False
    user_id: str = ""
    id: str = ""


@dataclass
class CalendarEvent:
    title: str
    start_time: str
    end_time: str | None = None
    event_type: str | None = None
    is_all_day: bool = False
    description: str | None = None
    location: str | None = None
    google_event_id: str | None = None
    user_id: str = ""
    id: str = ""


@dataclass
class WeatherRecord:
    """Daily weather aggregate, one per (user, date)."""

    date: str  # YYYY-MM-DD
    temperature_high: float | None = None
    temperature_low: float | None = None
    precipitation_mm: float = 0.0
    humidity_avg: float | None = None
    pressure_hpa: float = 1013.0
    weather_code: int | None = None
    weather_description: str | None = None
    location_city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    user_id: str = ""
    id: str = ""


@dataclass
class MedicationLog:
    logged_at: str
    took_medication: bool
    notes: str | None = None
    user_id: str = ""
    id: str = ""


@dataclass
class Integration:
    """Per (user, provider) OAuth connection state. Tokens are plaintext here."""

    user_id: str
    provider: str  # 'fitbit', 'google_calendar', 'apple_health'
    is_connected: bool = True
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: str | None = None
    last_sync_at: str | None = None
    connected_at: str | None = None
    id: str = ""


@dataclass
class CycleEntry:
    """A logged cycle day. Stored encrypted."""

    date: str  # YYYY-MM-DD
    phase: str
    flow: str | None = None  # 'light' | 'normal' | 'heavy'
    notes: str | None = None
    user_id: str = ""
    id: str = ""


@dataclass
class Profile:
    user_id: str
    timezone: str | None = None
    location_city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    analysis_frequency: str | None = None


@dataclass
class AnalyzedInsight:
    """A generated observation with a heuristic or model-reported confidence.

    ``source`` records which path produced it; confidences from the two
    paths are not comparable.
    """

    type: str
    title: str
    description: str
    confidence: float
    related_metrics: list[str] = field(default_factory=list)
    source: str = "heuristic"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class InsightBatch:
    """Insights persisted together by one analysis or generation run."""

    batch_id: str
    source: str
    created_at: str
    insights: list[AnalyzedInsight] = field(default_factory=list)


@dataclass
class AnalysisRun:
    user_id: str
    source: str
    batch_id: str
    last_run_at: str
    insight_count: int = 0
