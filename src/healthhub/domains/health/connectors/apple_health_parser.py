"""Apple Health XML export parser.

Parses the ``export.xml`` file produced by Apple Health (iOS -> Share ->
Export Health Data) with iterparse, so multi-gigabyte exports stream in
constant memory.

HealthKit type mappings:
- HKQuantityTypeIdentifierStepCount -> steps (daily sum)
- HKQuantityTypeIdentifierHeartRate -> heart_rate (daily mean)
- HKQuantityTypeIdentifierRestingHeartRate -> resting_heart_rate (daily mean)
- HKQuantityTypeIdentifierHeartRateVariabilitySDNN -> hrv (daily mean, ms)
- HKQuantityTypeIdentifierActiveEnergyBurned -> active_calories (daily sum)
- HKQuantityTypeIdentifierBodyMass -> weight (latest of the day, kg)
- HKCategoryTypeIdentifierSleepAnalysis -> sleep (hours asleep, by wake-up day)
"""

from __future__ import annotations

import logging
import statistics
import xml.etree.ElementTree as ET
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from pathlib import Path

from healthhub.core.storage.models import HealthMetric
from healthhub.core.storage.timestamps import to_utc_iso

logger = logging.getLogger(__name__)

_STEPS = "HKQuantityTypeIdentifierStepCount"
_HR = "HKQuantityTypeIdentifierHeartRate"
_RESTING_HR = "HKQuantityTypeIdentifierRestingHeartRate"
_HRV = "HKQuantityTypeIdentifierHeartRateVariabilitySDNN"
_ACTIVE_ENERGY = "HKQuantityTypeIdentifierActiveEnergyBurned"
_BODY_MASS = "HKQuantityTypeIdentifierBodyMass"
_SLEEP = "HKCategoryTypeIdentifierSleepAnalysis"

# HealthKit type -> (metric_type, unit, aggregation)
_QUANTITY_TYPES: dict[str, tuple[str, str, str]] = {
    _STEPS: ("steps", "steps", "sum"),
    _HR: ("heart_rate", "bpm", "mean"),
    _RESTING_HR: ("resting_heart_rate", "bpm", "mean"),
    _HRV: ("hrv", "ms", "mean"),
    _ACTIVE_ENERGY: ("active_calories", "kcal", "sum"),
    _BODY_MASS: ("weight", "kg", "last"),
}

_LB_TO_KG = 0.45359237


class AppleHealthParseError(Exception):
    """Raised when parsing Apple Health export XML fails."""


@dataclass
class Sample:
    metric_type: str
    value: float
    start: datetime
    end: datetime


def _parse_date(date_str: str) -> datetime:
    """Parse Apple Health date format: '2025-12-01 08:30:00 -0500'."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        return datetime.fromisoformat(date_str)


def _quantity_value(rec_type: str, value: float, unit: str) -> float:
    if rec_type == _BODY_MASS and unit == "lb":
        return value * _LB_TO_KG
    if rec_type == _ACTIVE_ENERGY and unit == "kJ":
        return value / 4.184
    return value


def parse_apple_health_export(export_path: str | Path, since: datetime) -> list[Sample]:
    """Stream an export and return samples that end at or after ``since``.

    Sleep samples are kept only for asleep stages; ``InBed`` intervals are
    used when a night has no stage data at all.

    Raises:
        AppleHealthParseError: If the file is missing or not valid XML.
    """
    path = Path(export_path)
    if not path.exists():
        raise AppleHealthParseError(f"Export file not found: {path}")

    samples: list[Sample] = []
    in_bed: list[Sample] = []

    try:
        for _event, elem in ET.iterparse(str(path), events=("end",)):
            if elem.tag != "Record":
                continue
            rec_type = elem.get("type", "")
            start_str = elem.get("startDate", "")
            end_str = elem.get("endDate", "") or start_str
            try:
                if not start_str:
                    continue
                start = _parse_date(start_str)
                end = _parse_date(end_str)
                if end < since:
                    continue

                if rec_type in _QUANTITY_TYPES:
                    value_str = elem.get("value", "")
                    if value_str:
                        metric_type = _QUANTITY_TYPES[rec_type][0]
                        value = _quantity_value(rec_type, float(value_str), elem.get("unit", ""))
                        samples.append(Sample(metric_type, value, start, end))
                elif rec_type == _SLEEP:
                    stage = elem.get("value", "")
                    hours = (end - start).total_seconds() / 3600
                    if "Asleep" in stage:
                        samples.append(Sample("sleep", hours, start, end))
                    elif "InBed" in stage:
                        in_bed.append(Sample("sleep", hours, start, end))
            except (ValueError, TypeError):
                logger.debug("Skipping unreadable %s record", rec_type)
            finally:
                elem.clear()
    except ET.ParseError as exc:
        raise AppleHealthParseError(f"Invalid XML: {exc}") from exc

    if not any(s.metric_type == "sleep" for s in samples):
        samples.extend(in_bed)

    logger.info("Parsed Apple Health export: %d samples since %s", len(samples), since.isoformat())
    return samples


def daily_metrics(samples: list[Sample], user_id: str, tz: tzinfo) -> dict[date, list[HealthMetric]]:
    """Aggregate samples into one metric per (local day, metric type).

    Quantities are bucketed by the local day of their start; sleep by the
    local day it ended (the morning you woke up).
    """
    aggregation = {metric: (unit, how) for metric, unit, how in _QUANTITY_TYPES.values()}
    aggregation["sleep"] = ("hours", "sum")

    buckets: dict[tuple[date, str], list[Sample]] = defaultdict(list)
    for sample in samples:
        anchor = sample.end if sample.metric_type == "sleep" else sample.start
        buckets[(anchor.astimezone(tz).date(), sample.metric_type)].append(sample)

    by_day: dict[date, list[HealthMetric]] = defaultdict(list)
    for (day, metric_type), group in sorted(buckets.items()):
        unit, how = aggregation[metric_type]
        group.sort(key=lambda s: s.end)
        if how == "sum":
            value = sum(s.value for s in group)
        elif how == "mean":
            value = statistics.mean(s.value for s in group)
        else:
            value = group[-1].value

        metadata = {"date": day.isoformat(), "samples": len(group)}
        by_day[day].append(HealthMetric(
            user_id=user_id,
            metric_type=metric_type,
            value=round(value, 1),
            unit=unit,
            source="apple_health",
            recorded_at=to_utc_iso(group[-1].end),
            metadata=metadata,
        ))
    return dict(by_day)
