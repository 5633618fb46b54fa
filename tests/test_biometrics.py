"""Tests for baseline formulas, heart-rate zones and helpers."""

from datetime import date

import pytest

from tri_planner.analysis.biometrics import (
    ZONE_METHOD_KARVONEN,
    ZONE_METHOD_STANDARD,
    calculate_age,
    calculate_css,
    calculate_ftp,
    calculate_threshold_pace,
    calculate_watts_per_kg,
    estimate_calories,
    experience_to_volume_tier,
    format_pace,
    get_heart_rate_zones,
    get_max_hr,
    round_half_up,
    zone_midpoint,
)
from tri_planner.domain import Sport
from tri_planner.exceptions import InvalidInputError


class TestBaselineFormulas:
    """Test field-test to baseline conversions."""

    def test_css_from_400m(self):
        """CSS is time/4 + 3 and is not rounded."""
        assert calculate_css(247) == 64.75
        assert calculate_css(400) == 103.0

    def test_ftp_from_20min(self):
        """FTP is 95% of 20 minute power, rounded half up."""
        assert calculate_ftp(250) == 238
        assert calculate_ftp(200) == 190

    def test_threshold_pace_from_mile(self):
        """Threshold pace is mile time * 1.15, rounded."""
        assert calculate_threshold_pace(420) == 483
        assert calculate_threshold_pace(360) == 414

    def test_round_half_up(self):
        """Halves round up, not to even."""
        assert round_half_up(2.5) == 3
        assert round_half_up(237.5) == 238
        assert round_half_up(2.49) == 2


class TestHeartRate:
    """Test max HR and zone tables."""

    def test_age_respects_birthday(self):
        """Age only increments on or after the birthday."""
        dob = date(1990, 6, 15)
        assert calculate_age(dob, date(2025, 6, 14)) == 34
        assert calculate_age(dob, date(2025, 6, 15)) == 35

    def test_max_hr_prefers_athlete_value(self):
        """A positive athlete value wins over the age formula."""
        dob = date(1990, 1, 1)
        today = date(2025, 1, 8)
        assert get_max_hr(None, dob, today) == 185
        assert get_max_hr(0, dob, today) == 185
        assert get_max_hr(192, dob, today) == 192
        assert get_max_hr(None, None, today) is None

    def test_standard_zones(self):
        """Standard zones are percentages of max HR; zone 5 tops out at max."""
        zones, method = get_heart_rate_zones(200)
        assert method == ZONE_METHOD_STANDARD
        assert (zones[1].min_bpm, zones[1].max_bpm) == (100, 120)
        assert (zones[5].min_bpm, zones[5].max_bpm) == (190, 200)
        assert zone_midpoint(zones, 2) == 135

    def test_karvonen_zones_with_resting_hr(self):
        """Resting HR switches to heart-rate reserve zones."""
        zones, method = get_heart_rate_zones(200, 60)
        assert method == ZONE_METHOD_KARVONEN
        assert (zones[1].min_bpm, zones[1].max_bpm) == (130, 144)
        assert zones[5].max_bpm == 200

    def test_zones_are_contiguous(self):
        """Each zone starts where the previous one ends."""
        zones, _ = get_heart_rate_zones(180)
        for number in range(2, 6):
            assert zones[number].min_bpm == zones[number - 1].max_bpm


class TestHelpers:
    """Test formatting and auxiliary calculations."""

    def test_format_pace(self):
        """Pace formats as m:ss with a suffix."""
        assert format_pace(483) == "8:03/mi"
        assert format_pace(64.75, "/100m") == "1:05/100m"

    def test_volume_tier_from_experience(self):
        """Experience maps to tiers 1-3, case-insensitively."""
        assert experience_to_volume_tier("beginner") == 1
        assert experience_to_volume_tier("intermediate") == 2
        assert experience_to_volume_tier("ADVANCED") == 3

    def test_unknown_experience_rejected(self):
        """Unknown experience levels are an input error, not a default."""
        with pytest.raises(InvalidInputError):
            experience_to_volume_tier("elite")

    def test_watts_per_kg(self):
        """Power to weight, zero for bad weight."""
        assert calculate_watts_per_kg(250, 70) == 3.57
        assert calculate_watts_per_kg(250, 0) == 0.0

    def test_calorie_estimate(self):
        """Moderate-intensity hour of running at 70kg."""
        assert estimate_calories(Sport.RUN, 60, 70) == 693
        assert estimate_calories(Sport.RUN, 60, 70, intensity=5) > estimate_calories(Sport.RUN, 60, 70, intensity=1)
