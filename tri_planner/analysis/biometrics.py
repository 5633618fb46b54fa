"""Biometric model: test results to baseline scalars, heart-rate zones and helpers."""

import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, Optional, Tuple

from ..domain import ExperienceLevel, Sport, parse_enum


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


# Swimming

def calculate_css(time_400m: float) -> float:
    """Critical Swim Speed from a 400m time trial.

    CSS (sec/100m) = time_400m / 4 + 3.0. The 3 second offset accounts for
    fade over longer distances. Not rounded.
    """
    return time_400m / 4 + 3.0


# Running

def calculate_threshold_pace(time_1mile: float) -> int:
    """Threshold run pace (sec/mile) from a 1 mile time trial: time * 1.15."""
    return round_half_up(time_1mile * 1.15)


def format_pace(seconds: float, suffix: str = "/mi") -> str:
    """Format a pace in seconds as m:ss with a unit suffix."""
    total = round_half_up(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}{suffix}"


# Cycling

def calculate_ftp(avg_power_20min: float) -> int:
    """Functional Threshold Power from a 20 minute test: average power * 0.95."""
    return round_half_up(avg_power_20min * 0.95)


def calculate_watts_per_kg(ftp: float, weight_kg: float) -> float:
    """Power-to-weight ratio, two decimals. Zero for a non-positive weight."""
    if weight_kg <= 0:
        return 0.0
    return round(ftp / weight_kg, 2)


# Age and max heart rate

def calculate_age(date_of_birth: date, today: date) -> int:
    """Age in whole years on `today`."""
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def calculate_max_hr(age: int) -> int:
    """Max heart rate estimate: 220 - age."""
    return 220 - age


def get_max_hr(athlete_max_hr: Optional[int], date_of_birth: Optional[date], today: date) -> Optional[int]:
    """Athlete-supplied max HR when positive, otherwise estimated from age."""
    if athlete_max_hr and athlete_max_hr > 0:
        return athlete_max_hr
    if date_of_birth is None:
        return None
    return calculate_max_hr(calculate_age(date_of_birth, today))


# Heart rate zones

@dataclass
class HeartRateZone:
    """One heart-rate zone in bpm."""

    min_bpm: int
    max_bpm: int
    name: str

    def to_dict(self) -> Dict:
        return {"min": self.min_bpm, "max": self.max_bpm, "name": self.name}


# (lower %, upper %, name); zone 5 tops out at max HR
HR_ZONE_BANDS: Dict[int, Tuple[float, float, str]] = {
    1: (0.50, 0.60, "Recovery"),
    2: (0.60, 0.75, "Endurance"),
    3: (0.75, 0.85, "Tempo"),
    4: (0.85, 0.95, "Threshold"),
    5: (0.95, 1.00, "VO2 Max"),
}

ZONE_METHOD_STANDARD = "STANDARD"
ZONE_METHOD_KARVONEN = "KARVONEN"


def calculate_standard_hr_zones(max_hr: int) -> Dict[int, HeartRateZone]:
    """Five zones as a percentage of max HR."""
    zones = {}
    for number, (low, high, name) in HR_ZONE_BANDS.items():
        upper = max_hr if number == 5 else round_half_up(max_hr * high)
        zones[number] = HeartRateZone(round_half_up(max_hr * low), upper, name)
    return zones


def calculate_karvonen_hr_zones(max_hr: int, resting_hr: int) -> Dict[int, HeartRateZone]:
    """Five zones on heart-rate reserve: (max - resting) * pct + resting."""
    reserve = max_hr - resting_hr

    def karvonen(pct: float) -> int:
        return round_half_up(reserve * pct + resting_hr)

    zones = {}
    for number, (low, high, name) in HR_ZONE_BANDS.items():
        upper = max_hr if number == 5 else karvonen(high)
        zones[number] = HeartRateZone(karvonen(low), upper, name)
    return zones


def get_heart_rate_zones(max_hr: int, resting_hr: Optional[int] = None) -> Tuple[Dict[int, HeartRateZone], str]:
    """Karvonen zones when resting HR is known, standard zones otherwise.

    Returns:
        Tuple of (zones keyed 1-5, method name)
    """
    if resting_hr and resting_hr > 0:
        return calculate_karvonen_hr_zones(max_hr, resting_hr), ZONE_METHOD_KARVONEN
    return calculate_standard_hr_zones(max_hr), ZONE_METHOD_STANDARD


def zone_midpoint(zones: Dict[int, HeartRateZone], zone_number: int) -> int:
    """Target heart rate for a zone: the rounded midpoint of its bounds."""
    zone = zones[zone_number]
    return round_half_up((zone.min_bpm + zone.max_bpm) / 2)


# Volume tier

_VOLUME_TIERS = {
    ExperienceLevel.BEGINNER: 1,  # 4-6 hrs/week
    ExperienceLevel.INTERMEDIATE: 2,  # 7-10 hrs/week
    ExperienceLevel.ADVANCED: 3,  # 11+ hrs/week
}


def experience_to_volume_tier(experience) -> int:
    """Map an experience level (enum or string) to volume tier 1-3."""
    level = parse_enum(ExperienceLevel, experience, "experience_level")
    return _VOLUME_TIERS[level]


# Calories

_BASE_MET = {
    Sport.SWIM: 8.0,
    Sport.BIKE: 7.0,
    Sport.RUN: 9.0,
    Sport.STRENGTH: 5.0,
    Sport.BRICK: 8.5,
}


def estimate_calories(sport: Sport, duration_minutes: float, weight_kg: float, intensity: int = 3) -> int:
    """MET-based calorie estimate.

    Args:
        sport: Session discipline
        duration_minutes: Session length in minutes
        weight_kg: Body weight
        intensity: 1-5, scales MET from 0.9x to 1.3x

    Returns:
        Estimated kcal
    """
    met = _BASE_MET[sport] * (0.8 + intensity * 0.1)
    return round_half_up(met * weight_kg * (duration_minutes / 60))
