"""Training periodization and race-prep plan generation."""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import config
from ..db.store import AthleteLocks, RecordStore, athlete_locks
from ..domain import (
    Baselines,
    DistanceClass,
    FocusType,
    Phase,
    Plan,
    PlanKind,
    Sport,
    Template,
    Workout,
)
from ..exceptions import InvalidInputError, PersistenceError
from .targets import PHASE_INTENSITY_MODIFIERS, build_placeholder_workout, build_workout

logger = logging.getLogger(__name__)


@dataclass
class DayPlan:
    """One day of a weekly pattern. `sport` is None on rest days."""

    sport: Optional[Sport]
    priority: int
    focus: Optional[FocusType] = None

    @property
    def is_rest(self) -> bool:
        return self.sport is None


@dataclass
class PlanGenerationResult:
    plan: Plan
    phases: List[Tuple[Phase, int]]
    workouts: List[Workout] = field(default_factory=list)
    weeks_to_event: int = 0

    @property
    def workouts_created(self) -> int:
        return len(self.workouts)


def next_monday(today: date) -> date:
    """The Monday strictly after `today` (a Monday maps to the following week)."""
    return today + timedelta(days=7 - today.weekday())


def weeks_between(start: date, end: date) -> int:
    return math.ceil((end - start).days / 7)


def get_phase_distribution(weeks_to_event: int) -> List[Tuple[Phase, int]]:
    """Ordered (phase, weeks) pairs for a horizon.

    Short horizons use fixed tables; beyond 12 weeks the split is
    30% base / 40% build / 15% peak / remainder taper, each with a floor.
    The plan length is the sum of the returned weeks.
    """
    if weeks_to_event <= 4:
        return [(Phase.BUILD, 2), (Phase.TAPER, 2)]
    if weeks_to_event <= 8:
        return [(Phase.BASE, 2), (Phase.BUILD, 4), (Phase.TAPER, 2)]
    if weeks_to_event <= 12:
        return [(Phase.BASE, 4), (Phase.BUILD, 5), (Phase.PEAK, 1), (Phase.TAPER, 2)]

    base_weeks = math.floor(weeks_to_event * 0.3)
    build_weeks = math.floor(weeks_to_event * 0.4)
    peak_weeks = math.floor(weeks_to_event * 0.15)
    taper_weeks = weeks_to_event - base_weeks - build_weeks - peak_weeks
    return [
        (Phase.BASE, max(3, base_weeks)),
        (Phase.BUILD, max(4, build_weeks)),
        (Phase.PEAK, max(1, peak_weeks)),
        (Phase.TAPER, max(2, taper_weeks)),
    ]


def phase_for_date(plan: Plan, day: date) -> Optional[Phase]:
    """Phase a race-prep plan is in on `day`, or None outside the plan."""
    if plan.kind != PlanKind.RACE_PREP or plan.event_date is None or plan.is_calibration:
        return None
    if day < plan.start_date:
        return None
    week_index = (day - plan.start_date).days // 7
    for phase, weeks in get_phase_distribution(weeks_between(plan.start_date, plan.event_date)):
        if week_index < weeks:
            return phase
        week_index -= weeks
    return None


def get_weekly_structure(volume_tier: int, phase: Phase) -> List[DayPlan]:
    """Seven-day pattern (Monday first) for a volume tier and phase."""
    base_focus = FocusType.ENDURANCE if phase == Phase.BASE else FocusType.TEMPO
    build_focus = FocusType.INTERVALS if phase == Phase.BUILD else FocusType.TEMPO

    if volume_tier == 1:
        week = [
            DayPlan(Sport.SWIM, 2, base_focus),
            DayPlan(None, 3),
            DayPlan(Sport.BIKE, 2, base_focus),
            DayPlan(Sport.RUN, 2, base_focus),
            DayPlan(None, 3),
            DayPlan(Sport.BRICK, 1),
            DayPlan(None, 3),
        ]
    elif volume_tier == 2:
        week = [
            DayPlan(Sport.SWIM, 2, FocusType.ENDURANCE),
            DayPlan(Sport.BIKE, 2, build_focus),
            DayPlan(Sport.RUN, 2, build_focus),
            DayPlan(Sport.SWIM, 2, FocusType.TEMPO),
            DayPlan(Sport.BIKE, 1, FocusType.ENDURANCE),  # long ride
            DayPlan(Sport.RUN, 1, FocusType.ENDURANCE),  # long run
            DayPlan(None, 3),
        ]
    elif volume_tier == 3:
        week = [
            DayPlan(Sport.SWIM, 2, FocusType.TEMPO),
            DayPlan(Sport.BIKE, 2, FocusType.INTERVALS),
            DayPlan(Sport.RUN, 2, FocusType.INTERVALS),
            DayPlan(Sport.SWIM, 2, FocusType.INTERVALS),
            DayPlan(Sport.BIKE, 1, FocusType.ENDURANCE),
            DayPlan(Sport.BRICK, 1),
            DayPlan(Sport.RUN, 1, FocusType.ENDURANCE),
        ]
    else:
        raise InvalidInputError(f"Volume tier must be 1-3, got {volume_tier}", details={"volume_tier": volume_tier})

    if phase == Phase.TAPER:
        return [DayPlan(d.sport, min(3, d.priority + 1), FocusType.RECOVERY) for d in week]
    return week


def select_template(templates: Sequence[Template], focus: Optional[FocusType]) -> Optional[Template]:
    """Template whose difficulty tier is closest to the focus tier; first wins ties."""
    if not templates:
        return None
    target_tier = (focus or FocusType.ENDURANCE).value
    return min(templates, key=lambda t: abs(t.difficulty_tier - target_tier))


def group_templates(templates: Sequence[Template]) -> Dict[Sport, List[Template]]:
    grouped: Dict[Sport, List[Template]] = {}
    for template in templates:
        grouped.setdefault(template.sport, []).append(template)
    return grouped


class PlanGenerator:
    """Builds periodized race-prep plans."""

    def __init__(self, store: RecordStore, locks: Optional[AthleteLocks] = None):
        self.store = store
        self.locks = locks or athlete_locks

    def generate_plan(
        self,
        athlete_id: str,
        today: date,
        volume_tier: int,
        baselines: Optional[Baselines] = None,
        event_id: Optional[int] = None,
        distance_class: DistanceClass = DistanceClass.OLYMPIC,
    ) -> PlanGenerationResult:
        """Create and persist a race-prep plan, archiving any other active plan.

        Args:
            athlete_id: Owner of the plan
            today: Reference date; the plan starts the following Monday
            volume_tier: 1-3, picks the weekly day pattern
            baselines: Latest baselines, used for numeric targets
            event_id: Target event; a missing event falls back to a 12-week horizon
            distance_class: Race distance, used when the event does not carry one

        Returns:
            PlanGenerationResult with the stored plan and generated workouts
        """
        if volume_tier not in (1, 2, 3):
            raise InvalidInputError(f"Volume tier must be 1-3, got {volume_tier}", details={"volume_tier": volume_tier})

        event = self.store.get_event(event_id) if event_id is not None else None
        if event is not None:
            event_date = event.event_date
            name = f"Road to {event.name}"
            distance_class = event.distance_class
        else:
            if event_id is not None:
                logger.warning(f"Event {event_id} not found, using a {config.DEFAULT_EVENT_DAYS}-day placeholder")
            event_date = today + timedelta(days=config.DEFAULT_EVENT_DAYS)
            name = f"{distance_class.value.upper()} Training"

        start_date = next_monday(today)
        weeks_to_event = weeks_between(start_date, event_date)
        phases = get_phase_distribution(weeks_to_event)
        total_weeks = sum(weeks for _, weeks in phases)

        logger.info(
            f"Generating plan for {athlete_id}: {weeks_to_event} weeks to event, "
            f"phases {' -> '.join(f'{p.value}({w}w)' for p, w in phases)}"
        )

        with self.locks.hold(athlete_id):
            plan = self.store.create_plan(
                Plan(
                    athlete_id=athlete_id,
                    start_date=start_date,
                    kind=PlanKind.RACE_PREP,
                    name=name,
                    event_id=event.id if event else None,
                    event_date=event_date,
                    distance_class=distance_class,
                    current_phase=phases[0][0],
                    volume_tier=volume_tier,
                    total_weeks=total_weeks,
                )
            )

            workouts = self.build_workouts(plan, phases, baselines)
            result = PlanGenerationResult(plan=plan, phases=phases, weeks_to_event=weeks_to_event)
            try:
                result.workouts = self.store.insert_workouts(workouts)
            except PersistenceError as e:
                # Plan metadata stays committed; regenerating recreates the workouts.
                logger.warning(f"Plan {plan.id} created but inserting {len(workouts)} workouts failed: {e}")

        logger.info(f"Plan {plan.id} created with {result.workouts_created} workouts over {total_weeks} weeks")
        return result

    def build_workouts(
        self,
        plan: Plan,
        phases: List[Tuple[Phase, int]],
        baselines: Optional[Baselines],
    ) -> List[Workout]:
        """Expand the phase sequence into dated workouts, one week at a time."""
        templates = group_templates(self.store.list_templates())
        placeholder_sports = set()
        workouts = []
        current = plan.start_date

        for phase, weeks in phases:
            intensity = PHASE_INTENSITY_MODIFIERS[phase]
            for _ in range(weeks):
                for day in get_weekly_structure(plan.volume_tier, phase):
                    if not day.is_rest:
                        template = select_template(templates.get(day.sport, []), day.focus)
                        if template is not None:
                            workout = build_workout(plan.id, template, current, day.priority, baselines, phase, intensity)
                        else:
                            if day.sport not in placeholder_sports:
                                logger.warning(f"No {day.sport.value} templates, using placeholder workouts")
                                placeholder_sports.add(day.sport)
                            workout = build_placeholder_workout(
                                plan.id, current, day.sport, day.priority, day.focus, baselines, intensity
                            )
                        workouts.append(workout)
                    current += timedelta(days=1)
        return workouts
