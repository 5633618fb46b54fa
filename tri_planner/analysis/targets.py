"""Workout target calculator.

Turns an abstract template (step types and zones) into concrete per-step
targets for one athlete:

    power  = FTP * midpoint(zone FTP range) * intensity_scalar
    pace   = baseline pace / midpoint(zone pace range) / intensity_scalar
    HR     = max HR * midpoint(zone HR range)

Durations are scaled by phase, and priority-1 sessions get an extra 1.3x.
A missing baseline leaves that target unset; it is never an error.
"""

from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional, Tuple

from ..domain import (
    Baselines,
    FocusType,
    Phase,
    Sport,
    StepType,
    Template,
    Workout,
    WorkoutStep,
    WorkoutStructure,
)
from .biometrics import round_half_up

# zone -> (name, FTP fraction range, pace fraction range)
ZONES: Dict[int, Tuple[str, Tuple[float, float], Tuple[float, float]]] = {
    1: ("Recovery", (0.0, 0.55), (0.75, 0.85)),
    2: ("Endurance", (0.56, 0.75), (0.85, 0.90)),
    3: ("Tempo", (0.76, 0.90), (0.90, 0.95)),
    4: ("Threshold", (0.91, 1.05), (0.95, 1.0)),
    5: ("VO2 Max", (1.06, 1.20), (1.0, 1.05)),
    6: ("Anaerobic", (1.21, 1.50), (1.05, 1.15)),
}

# zone -> fraction of max HR
HR_ZONES: Dict[int, Tuple[float, float]] = {
    1: (0.50, 0.60),
    2: (0.60, 0.70),
    3: (0.70, 0.80),
    4: (0.80, 0.90),
    5: (0.90, 0.95),
    6: (0.95, 1.00),
}

PHASE_DURATION_MULTIPLIERS = {
    Phase.BASE: 0.85,
    Phase.BUILD: 1.0,
    Phase.PEAK: 1.1,
    Phase.TAPER: 0.6,
}

PHASE_INTENSITY_MODIFIERS = {
    Phase.BASE: 0.85,
    Phase.BUILD: 1.0,
    Phase.PEAK: 1.1,
    Phase.TAPER: 0.9,
}

KEY_SESSION_DURATION_MULTIPLIER = 1.3

TARGET_RPE_BY_PRIORITY = {1: 7, 2: 6, 3: 4}

_PHASE_DESCRIPTIONS = {
    Phase.BASE: "Building your aerobic foundation",
    Phase.BUILD: "Increasing intensity to build race fitness",
    Phase.PEAK: "Fine-tuning for optimal race performance",
    Phase.TAPER: "Recovering and sharpening for race day",
}

_SPORT_DESCRIPTIONS = {
    Sport.SWIM: "Improving technique and aquatic endurance",
    Sport.BIKE: "Building cycling power and efficiency",
    Sport.RUN: "Developing running economy and speed",
    Sport.BRICK: "Practicing the bike-to-run transition",
    Sport.STRENGTH: "Building muscular endurance and injury prevention",
}

_PRIORITY_PREFIXES = {1: "Key session: ", 2: "Quality work: ", 3: "Recovery focus: "}


def default_zone(step_type: StepType) -> int:
    """Zone used when a template step does not name one."""
    if step_type in (StepType.WARMUP, StepType.COOLDOWN, StepType.REST):
        return 1
    if step_type in (StepType.MAIN, StepType.INTERVAL):
        return 4
    return 2


def scale_duration(duration: int, phase: Phase, priority: int) -> int:
    multiplier = PHASE_DURATION_MULTIPLIERS[phase]
    if priority == 1:
        multiplier *= KEY_SESSION_DURATION_MULTIPLIER
    return round_half_up(duration * multiplier)


def _midpoint(bounds: Tuple[float, float]) -> float:
    return (bounds[0] + bounds[1]) / 2


def target_power(zone: int, ftp: Optional[float], intensity_scalar: float = 1.0) -> Optional[int]:
    if not ftp or zone not in ZONES:
        return None
    return round_half_up(ftp * _midpoint(ZONES[zone][1]) * intensity_scalar)


def target_pace(zone: int, base_pace: Optional[float], intensity_scalar: float = 1.0) -> Optional[int]:
    """Higher zone fraction gives a numerically smaller (faster) pace."""
    if not base_pace or zone not in ZONES:
        return None
    return round_half_up(base_pace / _midpoint(ZONES[zone][2]) / intensity_scalar)


def target_heart_rate(zone: int, max_hr: Optional[int]) -> Optional[int]:
    if not max_hr or zone not in HR_ZONES:
        return None
    return round_half_up(max_hr * _midpoint(HR_ZONES[zone]))


def step_description(step_type: StepType, zone: int) -> str:
    zone_name = ZONES[zone][0] if zone in ZONES else "Easy"
    if step_type == StepType.WARMUP:
        return "Gradual warm-up to prepare your body"
    if step_type == StepType.COOLDOWN:
        return "Easy effort to aid recovery"
    if step_type == StepType.REST:
        return "Active recovery between efforts"
    if step_type == StepType.INTERVAL:
        return f"{zone_name} effort - push yourself!"
    return f"Main set at {zone_name} intensity"


def workout_description(sport: Sport, phase: Phase, priority: int) -> str:
    prefix = _PRIORITY_PREFIXES.get(priority, "")
    return f"{prefix}{_SPORT_DESCRIPTIONS.get(sport, 'Building fitness')}. {_PHASE_DESCRIPTIONS[phase]}"


def resolve_step(
    step: WorkoutStep,
    sport: Sport,
    baselines: Optional[Baselines],
    intensity_scalar: float = 1.0,
) -> WorkoutStep:
    """Fill in zone, description and numeric targets for one step; duration is kept."""
    zone = step.target_zone or default_zone(step.step_type)
    power = pace = heart_rate = None
    if baselines is not None:
        if sport == Sport.BIKE:
            power = target_power(zone, baselines.functional_threshold_power, intensity_scalar)
        elif sport == Sport.SWIM:
            pace = target_pace(zone, baselines.critical_swim_speed, intensity_scalar)
        elif sport == Sport.RUN:
            pace = target_pace(zone, baselines.threshold_run_pace, intensity_scalar)
        heart_rate = target_heart_rate(zone, baselines.max_heart_rate)

    return replace(
        step,
        target_zone=zone,
        description=step.description or step_description(step.step_type, zone),
        target_power=power,
        target_pace=pace,
        target_heart_rate=heart_rate,
    )


def calculate_targets(
    template: Template,
    baselines: Optional[Baselines],
    phase: Phase,
    priority: int = 2,
    intensity_scalar: Optional[float] = None,
) -> List[WorkoutStep]:
    """Concrete steps for a template.

    Args:
        template: Catalog template with abstract steps
        baselines: Latest athlete baselines (may be None or partial)
        phase: Training phase, drives duration scaling
        priority: Session priority; 1 adds the key-session multiplier
        intensity_scalar: Target scaling, defaults to the phase intensity modifier

    Returns:
        New list of steps with durations scaled and targets resolved
    """
    if intensity_scalar is None:
        intensity_scalar = PHASE_INTENSITY_MODIFIERS[phase]
    steps = []
    for step in template.steps:
        scaled = replace(step, duration=scale_duration(step.duration, phase, priority))
        steps.append(resolve_step(scaled, template.sport, baselines, intensity_scalar))
    return steps


def build_workout(
    plan_id: int,
    template: Template,
    scheduled_date: date,
    priority: int,
    baselines: Optional[Baselines],
    phase: Phase,
    intensity_scalar: Optional[float] = None,
) -> Workout:
    """A planned workout generated from a catalog template."""
    if intensity_scalar is None:
        intensity_scalar = PHASE_INTENSITY_MODIFIERS[phase]
    steps = calculate_targets(template, baselines, phase, priority, intensity_scalar)
    structure = WorkoutStructure(
        title=template.name,
        description=template.description or workout_description(template.sport, phase, priority),
        steps=steps,
    )
    return Workout(
        plan_id=plan_id,
        scheduled_date=scheduled_date,
        sport=template.sport,
        priority=priority,
        structure=structure,
        intensity_scalar=intensity_scalar,
        target_rpe=TARGET_RPE_BY_PRIORITY.get(priority),
        template_id=template.id,
    )


_PLACEHOLDER_DURATIONS = {
    Sport.SWIM: 2400,
    Sport.BIKE: 3600,
    Sport.RUN: 2700,
    Sport.STRENGTH: 2400,
    Sport.BRICK: 4200,
}

_PRIORITY_LABELS = {1: "Key", 2: "Quality", 3: "Easy"}


def build_placeholder_workout(
    plan_id: int,
    scheduled_date: date,
    sport: Sport,
    priority: int,
    focus: Optional[FocusType],
    baselines: Optional[Baselines],
    intensity_scalar: float = 1.0,
) -> Workout:
    """Three-step workout used when the catalog has nothing for a sport."""
    focus = focus or FocusType.ENDURANCE
    factor = 1.5 if priority == 1 else 0.7 if priority == 3 else 1.0
    duration = round_half_up(_PLACEHOLDER_DURATIONS.get(sport, 3000) * factor)
    main_rpe = TARGET_RPE_BY_PRIORITY[priority]
    focus_name = focus.name.lower()

    raw_steps = [
        WorkoutStep(StepType.WARMUP, round_half_up(duration * 0.15), target_zone=1, target_rpe=3,
                    description="Easy warm-up"),
        WorkoutStep(StepType.MAIN, round_half_up(duration * 0.7), target_zone=2 if priority == 3 else 3,
                    target_rpe=main_rpe, description=f"Main {focus_name} set"),
        WorkoutStep(StepType.COOLDOWN, round_half_up(duration * 0.15), target_zone=1, target_rpe=2,
                    description="Easy cooldown"),
    ]
    steps = [resolve_step(step, sport, baselines, intensity_scalar) for step in raw_steps]

    structure = WorkoutStructure(
        title=f"{focus.name.capitalize()} {sport.value.capitalize()}",
        description=f"{_PRIORITY_LABELS[priority]} {sport.value} session.",
        steps=steps,
    )
    return Workout(
        plan_id=plan_id,
        scheduled_date=scheduled_date,
        sport=sport,
        priority=priority,
        structure=structure,
        intensity_scalar=intensity_scalar,
        target_rpe=main_rpe,
    )
