"""Privacy policy for controlling which fields reach the remote LLM prompt.

Every mode sends the quantitative core of each record (type, value, time).
Free text that users type (log notes, event descriptions, locations) can
carry far more than the analysis needs, so it is only included on explicit
opt-in:

- ``strict``: core fields only, floats rounded, no metadata
- ``standard``: core fields plus provider metadata (e.g. sleep efficiency)
- ``explicit``: everything stored, including notes and event details
"""

from __future__ import annotations

from typing import Any, Literal

from healthhub.core.storage.models import CalendarEvent, HealthMetric, ManualLog

PrivacyMode = Literal["strict", "standard", "explicit"]


def _round_floats(obj: Any, ndigits: int = 2) -> Any:
    if isinstance(obj, float):
        return round(obj, ndigits)
    if isinstance(obj, dict):
        return {k: _round_floats(v, ndigits=ndigits) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_round_floats(v, ndigits=ndigits) for v in obj]
    return obj


def metric_record(metric: HealthMetric, privacy_mode: PrivacyMode) -> dict[str, Any]:
    record: dict[str, Any] = {
        "metric_type": metric.metric_type,
        "value": metric.value,
        "unit": metric.unit,
        "source": metric.source,
        "recorded_at": metric.recorded_at,
    }
    if privacy_mode != "strict" and metric.metadata:
        record["metadata"] = metric.metadata
    return _round_floats(record) if privacy_mode == "strict" else record


def log_record(log: ManualLog, privacy_mode: PrivacyMode) -> dict[str, Any]:
    record: dict[str, Any] = {
        "log_type": log.log_type,
        "value": log.value,
        "logged_at": log.logged_at,
    }
    if log.severity is not None:
        record["severity"] = log.severity
    if privacy_mode != "strict" and log.metadata:
        record["metadata"] = log.metadata
    if privacy_mode == "explicit" and log.notes:
        record["notes"] = log.notes
    return record


def event_record(event: CalendarEvent, privacy_mode: PrivacyMode) -> dict[str, Any]:
    record: dict[str, Any] = {
        "title": event.title,
        "start_time": event.start_time,
        "end_time": event.end_time,
        "event_type": event.event_type,
        "is_all_day": event.is_all_day,
    }
    if privacy_mode == "explicit":
        if event.description:
            record["description"] = event.description
        if event.location:
            record["location"] = event.location
    return record


def build_llm_data_context(
    *,
    metrics: list[HealthMetric],
    logs: list[ManualLog],
    events: list[CalendarEvent],
    privacy_mode: PrivacyMode,
) -> dict[str, list[dict[str, Any]]]:
    """Project stored rows into the minimized records rendered into the prompt."""
    return {
        "metrics": [metric_record(m, privacy_mode) for m in metrics],
        "logs": [log_record(log, privacy_mode) for log in logs],
        "events": [event_record(e, privacy_mode) for e in events],
    }
