"""Rolling maintenance plans for athletes without a target event.

A 4-week cycle repeats indefinitely: weeks 1-2 zone-2 load, week 3 zone-3
load, week 4 recovery at 70% volume. Workouts are generated a couple of
weeks at a time and topped up by the daily job to keep a 14-day buffer.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import config
from ..db.store import AthleteLocks, RecordStore, athlete_locks
from ..domain import Baselines, FocusType, Phase, Plan, PlanKind, Sport, Template, Workout
from ..exceptions import InvalidInputError, PersistenceError
from .biometrics import round_half_up
from .periodization import group_templates, next_monday
from .targets import build_placeholder_workout, build_workout

logger = logging.getLogger(__name__)

MAINTENANCE_INTENSITY = 0.85
MAINTENANCE_PRIORITY = 2
MAX_TOP_UP_WEEKS = 8


@dataclass(frozen=True)
class WeekPattern:
    week_number: int  # 1-4
    volume_modifier: float
    zone_focus: int

    @property
    def is_recovery(self) -> bool:
        return self.week_number == 4


MAINTENANCE_PATTERNS = [
    WeekPattern(1, 1.0, 2),
    WeekPattern(2, 1.0, 2),
    WeekPattern(3, 1.0, 3),
    WeekPattern(4, 0.7, 2),
]

# sessions per week by volume tier
MAINTENANCE_VOLUME_TIERS: Dict[int, Dict[Sport, int]] = {
    1: {Sport.SWIM: 1, Sport.BIKE: 1, Sport.RUN: 1},
    2: {Sport.SWIM: 2, Sport.BIKE: 2, Sport.RUN: 2},
    3: {Sport.SWIM: 2, Sport.BIKE: 3, Sport.RUN: 2},
}


@dataclass
class MaintenanceCheckResult:
    plans_checked: int = 0
    weeks_generated: int = 0
    workouts_created: int = 0
    failed_plans: List[int] = field(default_factory=list)


def pattern_for_week(plan_start: date, week_start: date) -> WeekPattern:
    """Cycle position counted from the plan start, so top-ups continue the cycle."""
    week_index = max(0, (week_start - plan_start).days // 7)
    return MAINTENANCE_PATTERNS[week_index % 4]


def weekly_schedule(volume_tier: int) -> List[Tuple[int, Sport]]:
    """(day offset, sport) pairs: Mon swim, Tue bike, Wed run, then doubles Thu-Sat. Sunday is rest."""
    counts = MAINTENANCE_VOLUME_TIERS[volume_tier]
    schedule = []
    for offset, sport in enumerate((Sport.SWIM, Sport.BIKE, Sport.RUN)):
        if counts[sport] > 0:
            schedule.append((offset, sport))
    for offset, sport in enumerate((Sport.SWIM, Sport.BIKE, Sport.RUN), start=3):
        if counts[sport] > 1:
            schedule.append((offset, sport))
    return schedule


def _has_zone(template: Template, predicate) -> bool:
    return any(predicate(step.target_zone or 2) for step in template.steps)


def select_maintenance_template(templates: Sequence[Template], pattern: WeekPattern) -> Optional[Template]:
    """First template matching the week's zone focus, else the first template."""
    if not templates:
        return None
    if pattern.is_recovery or pattern.zone_focus == 2:
        matches = [t for t in templates if _has_zone(t, lambda z: z <= 2)]
    else:
        matches = [t for t in templates if _has_zone(t, lambda z: z == 3)]
    return matches[0] if matches else templates[0]


def _scale_volume(workout: Workout, modifier: float) -> Workout:
    steps = [replace(step, duration=round_half_up(step.duration * modifier)) for step in workout.structure.steps]
    workout.structure = replace(workout.structure, steps=steps)
    return workout


class MaintenanceGenerator:
    """Creates maintenance plans and keeps them topped up."""

    def __init__(self, store: RecordStore, locks: Optional[AthleteLocks] = None):
        self.store = store
        self.locks = locks or athlete_locks

    def generate_maintenance_plan(
        self,
        athlete_id: str,
        today: date,
        volume_tier: int,
        baselines: Optional[Baselines] = None,
    ) -> Plan:
        """Create a maintenance plan with its first batch, or top up an existing one."""
        if volume_tier not in MAINTENANCE_VOLUME_TIERS:
            raise InvalidInputError(f"Volume tier must be 1-3, got {volume_tier}", details={"volume_tier": volume_tier})

        with self.locks.hold(athlete_id):
            existing = self.store.get_active_plan(athlete_id)
            if existing is not None and existing.kind == PlanKind.MAINTENANCE and not existing.is_calibration:
                logger.info(f"Athlete {athlete_id} already has maintenance plan {existing.id}, topping up")
                self._top_up(existing, today, baselines)
                return existing

            start_date = next_monday(today)
            plan = self.store.create_plan(
                Plan(
                    athlete_id=athlete_id,
                    start_date=start_date,
                    kind=PlanKind.MAINTENANCE,
                    name="Maintenance Training",
                    current_phase=Phase.BASE,
                    volume_tier=volume_tier,
                    total_weeks=None,
                )
            )
            created = self.generate_maintenance_workouts(
                plan, start_date, baselines, config.MAINTENANCE_BATCH_WEEKS
            )

        logger.info(f"Maintenance plan {plan.id} created for {athlete_id} with {len(created)} workouts")
        return plan

    def generate_maintenance_workouts(
        self,
        plan: Plan,
        start_date: date,
        baselines: Optional[Baselines],
        weeks: int,
    ) -> List[Workout]:
        """Generate and insert `weeks` weeks of workouts starting on the Monday `start_date`."""
        templates = group_templates(self.store.list_templates())
        workouts = []
        for week in range(weeks):
            week_start = start_date + timedelta(weeks=week)
            pattern = pattern_for_week(plan.start_date, week_start)
            workouts.extend(self._build_week(plan, week_start, pattern, templates, baselines))

        created = self.store.insert_workouts(workouts)
        logger.info(f"Generated {len(created)} maintenance workouts for plan {plan.id} from {start_date}")
        return created

    def _build_week(
        self,
        plan: Plan,
        week_start: date,
        pattern: WeekPattern,
        templates: Dict[Sport, List[Template]],
        baselines: Optional[Baselines],
    ) -> List[Workout]:
        focus = FocusType.ENDURANCE if pattern.zone_focus == 2 else FocusType.TEMPO
        workouts = []
        for offset, sport in weekly_schedule(plan.volume_tier):
            day = week_start + timedelta(days=offset)
            template = select_maintenance_template(templates.get(sport, []), pattern)
            if template is not None:
                workout = build_workout(
                    plan.id, template, day, MAINTENANCE_PRIORITY, baselines, Phase.BASE, MAINTENANCE_INTENSITY
                )
            else:
                workout = build_placeholder_workout(
                    plan.id, day, sport, MAINTENANCE_PRIORITY, focus, baselines, MAINTENANCE_INTENSITY
                )
            if pattern.volume_modifier < 1.0:
                workout = _scale_volume(workout, pattern.volume_modifier)
            workouts.append(workout)
        return workouts

    def _top_up(self, plan: Plan, today: date, baselines: Optional[Baselines] = None) -> Tuple[int, int]:
        """Add weeks until the furthest workout is at least the buffer away.

        Returns:
            Tuple of (weeks added, workouts created)
        """
        if baselines is None:
            baselines = self.store.get_latest_baselines(plan.athlete_id)

        latest = self.store.latest_workout_date(plan.id)
        if latest is None:
            start = plan.start_date if plan.start_date >= today else next_monday(today)
            created = self.generate_maintenance_workouts(plan, start, baselines, config.MAINTENANCE_BATCH_WEEKS)
            return config.MAINTENANCE_BATCH_WEEKS, len(created)

        weeks_added = workouts_created = 0
        while (latest - today).days < config.MAINTENANCE_BUFFER_DAYS and weeks_added < MAX_TOP_UP_WEEKS:
            start = max(next_monday(latest), next_monday(today))
            created = self.generate_maintenance_workouts(plan, start, baselines, 1)
            weeks_added += 1
            workouts_created += len(created)
            if not created:
                break
            latest = max(w.scheduled_date for w in created)
        return weeks_added, workouts_created

    def check_and_generate_maintenance_workouts(self, today: date) -> MaintenanceCheckResult:
        """Scan active maintenance plans and restore each one's buffer."""
        result = MaintenanceCheckResult()
        for plan in self.store.list_active_plans(PlanKind.MAINTENANCE):
            result.plans_checked += 1
            try:
                with self.locks.hold(plan.athlete_id):
                    weeks, workouts = self._top_up(plan, today)
            except PersistenceError as e:
                logger.warning(f"Maintenance top-up failed for plan {plan.id}: {e}")
                result.failed_plans.append(plan.id)
                continue
            result.weeks_generated += weeks
            result.workouts_created += workouts

        logger.info(
            f"Maintenance check: {result.plans_checked} plans, {result.weeks_generated} weeks, "
            f"{result.workouts_created} workouts"
        )
        return result
