"""Tests for the menstrual cycle phase model."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from healthhub.core.storage.models import CycleEntry
from healthhub.domains.health.domain_logic.cycle import (
    DEFAULT_CYCLE_LENGTH,
    current_phase,
    cycle_length,
    period_starts,
    phase_for_day,
    tag_phases,
)


def _period(start: date, days: int = 4) -> list[CycleEntry]:
    return [
        CycleEntry(date=(start + timedelta(days=i)).isoformat(), phase="menstruation", flow="normal")
        for i in range(days)
    ]


class TestPhaseForDay:
    @pytest.mark.parametrize(
        "offset, phase",
        [
            (0, "menstruation"),
            (4, "menstruation"),
            (5, "follicular"),
            (13, "follicular"),
            (14, "ovulation"),
            (15, "ovulation"),
            (16, "luteal"),
            (27, "luteal"),
        ],
    )
    def test_boundaries(self, offset, phase):
        assert phase_for_day(offset) == phase


class TestPeriodStarts:
    def test_consecutive_days_form_one_period(self):
        entries = _period(date(2026, 1, 20)) + _period(date(2026, 2, 17))
        assert period_starts(entries) == [date(2026, 1, 20), date(2026, 2, 17)]

    def test_non_menstruation_entries_ignored(self):
        entries = [CycleEntry(date="2026-03-01", phase="luteal")]
        assert period_starts(entries) == []

    def test_short_gap_still_same_period(self):
        entries = [
            CycleEntry(date="2026-03-01", phase="menstruation"),
            CycleEntry(date="2026-03-03", phase="menstruation"),
        ]
        assert period_starts(entries) == [date(2026, 3, 1)]


class TestCycleLength:
    def test_default_with_single_start(self):
        assert cycle_length([date(2026, 3, 1)]) == DEFAULT_CYCLE_LENGTH

    def test_mean_gap(self):
        starts = [date(2026, 1, 1), date(2026, 1, 31), date(2026, 2, 28)]
        assert cycle_length(starts) == 29


class TestTagPhases:
    def test_predicted_phases_from_last_start(self):
        entries = _period(date(2026, 3, 1), days=2)
        phases = tag_phases(entries, date(2026, 2, 25), date(2026, 3, 20))

        assert date(2026, 2, 28) not in phases
        assert phases[date(2026, 3, 4)] == "menstruation"
        assert phases[date(2026, 3, 10)] == "follicular"
        assert phases[date(2026, 3, 15)] == "ovulation"
        assert phases[date(2026, 3, 20)] == "luteal"

    def test_logged_entry_wins(self):
        entries = _period(date(2026, 3, 1)) + [CycleEntry(date="2026-03-10", phase="ovulation")]
        assert tag_phases(entries, date(2026, 3, 10), date(2026, 3, 10)) == {
            date(2026, 3, 10): "ovulation",
        }

    def test_beyond_prediction_horizon_untagged(self):
        entries = _period(date(2026, 1, 1))
        assert current_phase(entries, date(2026, 2, 10)) is None

    def test_current_phase(self):
        assert current_phase(_period(date(2026, 3, 1)), date(2026, 3, 18)) == "luteal"
