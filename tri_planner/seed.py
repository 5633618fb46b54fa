"""Starter workout template catalog."""

import logging
from typing import List

from .db.store import RecordStore
from .domain import Sport, StepType, Template, WorkoutStep

logger = logging.getLogger(__name__)

W, M, I, R, C = StepType.WARMUP, StepType.MAIN, StepType.INTERVAL, StepType.REST, StepType.COOLDOWN


def _steps(*specs) -> List[WorkoutStep]:
    """Build steps from (type, seconds, zone, description[, percent_ftp]) tuples."""
    steps = []
    for row in specs:
        step_type, duration, zone, description = row[:4]
        percent_ftp = row[4] if len(row) > 4 else None
        steps.append(WorkoutStep(step_type, duration, target_zone=zone, description=description, percent_ftp=percent_ftp))
    return steps


def _repeat(work, rest, count: int) -> list:
    """`count` work steps separated by rest steps."""
    specs = []
    for n in range(count):
        specs.append(work)
        if n < count - 1:
            specs.append(rest)
    return specs


STARTER_TEMPLATES = [
    # Swim
    Template("Endurance Swim", Sport.SWIM, 2, _steps(
        (W, 600, 1, "Easy freestyle"),
        (M, 1800, 2, "Steady-state swimming"),
        (C, 300, 1, "Easy backstroke or choice"),
    ), "Building aerobic capacity in the water"),
    Template("Threshold Intervals", Sport.SWIM, 4, _steps(
        (W, 600, 1, "Easy swimming with drills"),
        *_repeat((I, 120, 4, "100m hard"), (R, 30, 1, "Rest at wall"), 4),
        (C, 300, 1, "Easy swimming"),
    ), "Building speed and lactate threshold"),
    Template("Technique & Drills", Sport.SWIM, 2, _steps(
        (W, 400, 1, "Easy freestyle"),
        (M, 300, 2, "Catch-up drill"),
        (M, 300, 2, "Fingertip drag drill"),
        (M, 300, 2, "Single-arm freestyle"),
        (M, 600, 2, "Full stroke focus"),
        (C, 300, 1, "Easy choice stroke"),
    ), "Improving swim efficiency"),

    # Bike
    Template("Endurance Ride", Sport.BIKE, 2, _steps(
        (W, 600, 1, "Easy spinning"),
        (M, 3600, 2, "Steady endurance pace"),
        (C, 300, 1, "Easy spin down"),
    ), "Building aerobic base on the bike"),
    Template("Threshold Intervals", Sport.BIKE, 4, _steps(
        (W, 900, 1, "Easy spinning with accelerations"),
        *_repeat((I, 480, 4, "8 min at threshold", 1.0), (R, 120, 1, "Easy spinning"), 4),
        (C, 600, 1, "Easy spin down"),
    ), "Building FTP and sustainable power"),
    Template("VO2 Max Intervals", Sport.BIKE, 5, _steps(
        (W, 900, 1, "Progressive warmup"),
        *_repeat((I, 180, 5, "3 min VO2 effort", 1.15), (R, 180, 1, "Recovery spin"), 4),
        (C, 600, 1, "Easy spin down"),
    ), "Pushing aerobic ceiling"),
    Template("Long Ride", Sport.BIKE, 3, _steps(
        (W, 600, 1, "Easy warmup"),
        (M, 7200, 2, "Steady endurance effort"),
        (C, 600, 1, "Easy cool down"),
    ), "Building endurance for race distance"),

    # Run
    Template("Easy Run", Sport.RUN, 1, _steps(
        (M, 2400, 1, "Easy conversational pace"),
    ), "Recovery and aerobic maintenance"),
    Template("Tempo Run", Sport.RUN, 3, _steps(
        (W, 600, 1, "Easy jog"),
        (M, 1200, 4, "Tempo effort, comfortably hard"),
        (C, 600, 1, "Easy jog"),
    ), "Building lactate threshold"),
    Template("Interval Run", Sport.RUN, 4, _steps(
        (W, 600, 1, "Easy jog with strides"),
        *_repeat((I, 180, 5, "3 min hard"), (R, 120, 1, "Easy jog recovery"), 4),
        (C, 600, 1, "Easy jog"),
    ), "Speed development and VO2 Max"),
    Template("Long Run", Sport.RUN, 3, _steps(
        (W, 300, 1, "Easy start"),
        (M, 5400, 2, "Steady endurance pace"),
        (C, 300, 1, "Easy finish"),
    ), "Building endurance for race day"),
    Template("Fartlek Run", Sport.RUN, 3, _steps(
        (W, 600, 1, "Easy jog"),
        (M, 1800, 3, "Fartlek: alternate hard/easy by feel"),
        (C, 600, 1, "Easy jog"),
    ), "Unstructured speed play"),

    # Brick
    Template("Bike-Run Brick", Sport.BRICK, 4, _steps(
        (W, 600, 1, "Easy bike warmup"),
        (M, 2700, 3, "Tempo bike"),
        (M, 300, 1, "Quick transition"),
        (M, 1200, 3, "Tempo run off the bike"),
        (C, 300, 1, "Easy jog"),
    ), "Practicing the T2 transition"),

    # Strength
    Template("Core & Stability", Sport.STRENGTH, 2, _steps(
        (W, 300, 1, "Dynamic stretching"),
        (M, 1800, 2, "Core circuit: plank, side plank, dead bug, bird dog"),
        (C, 300, 1, "Static stretching"),
    ), "Building core strength for triathlon"),
    Template("Functional Strength", Sport.STRENGTH, 3, _steps(
        (W, 300, 1, "Dynamic warmup"),
        (M, 2400, 3, "Squats, lunges, deadlifts, rows, pushups"),
        (C, 300, 1, "Foam rolling and stretching"),
    ), "Building triathlon-specific strength"),
]


def seed_templates(store: RecordStore) -> int:
    """Load the starter catalog into an empty template table.

    Returns:
        Number of templates added (0 if the catalog already had entries)
    """
    if store.list_templates():
        logger.info("Template catalog already populated, skipping seed")
        return 0
    added = store.add_templates(STARTER_TEMPLATES)
    logger.info(f"Seeded {len(added)} workout templates")
    return len(added)
