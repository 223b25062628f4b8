"""Menstrual cycle phase model.

Logged menstruation days anchor a fixed-length cycle. Each day after the
most recent period start is assigned a phase by its position in the cycle:

- day 0-4: menstruation
- day 5-13: follicular
- day 14-15: ovulation
- day 16+: luteal

Cycle length is the mean gap between logged period starts, or 28 days with
fewer than two starts. Days more than 35 days past the last start are left
untagged rather than guessed.
"""

from __future__ import annotations

from datetime import date, timedelta

from healthhub.core.storage.models import CycleEntry

DEFAULT_CYCLE_LENGTH = 28
MAX_PREDICTION_DAYS = 35
PHASES = ("menstruation", "follicular", "ovulation", "luteal")

# Two menstruation days further apart than this start a new period
_PERIOD_BREAK_DAYS = 2


def phase_for_day(day_in_cycle: int) -> str:
    if day_in_cycle < 5:
        return "menstruation"
    if day_in_cycle < 14:
        return "follicular"
    if day_in_cycle < 16:
        return "ovulation"
    return "luteal"


def period_starts(entries: list[CycleEntry]) -> list[date]:
    """First day of each run of logged menstruation days, oldest first."""
    days = sorted({date.fromisoformat(e.date) for e in entries if e.phase == "menstruation"})
    starts: list[date] = []
    previous: date | None = None
    for day in days:
        if previous is None or (day - previous).days > _PERIOD_BREAK_DAYS:
            starts.append(day)
        previous = day
    return starts


def cycle_length(starts: list[date]) -> int:
    if len(starts) < 2:
        return DEFAULT_CYCLE_LENGTH
    gaps = [(b - a).days for a, b in zip(starts, starts[1:])]
    return max(1, round(sum(gaps) / len(gaps)))


def tag_phases(entries: list[CycleEntry], start: date, end: date) -> dict[date, str]:
    """Assign a phase to every day in [start, end] that can be placed.

    Logged entries win over predictions for their own date. Days before the
    first logged period start, or beyond the prediction horizon, are omitted.
    """
    logged = {date.fromisoformat(e.date): e.phase for e in entries if e.phase}
    starts = period_starts(entries)
    length = cycle_length(starts)

    phases: dict[date, str] = {}
    day = start
    while day <= end:
        if day in logged:
            phases[day] = logged[day]
        else:
            anchor = next((s for s in reversed(starts) if s <= day), None)
            if anchor is not None:
                offset = (day - anchor).days
                if offset <= MAX_PREDICTION_DAYS:
                    phases[day] = phase_for_day(offset % length)
        day += timedelta(days=1)
    return phases


def current_phase(entries: list[CycleEntry], today: date) -> str | None:
    return tag_phases(entries, today, today).get(today)
