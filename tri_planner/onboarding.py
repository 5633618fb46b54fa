"""Engine services: onboarding, event transition and the daily job.

These sit above the individual generators and pick which one runs. The
onboarding fork is:

    no event and no full plan requested  -> maintenance plan
    any baseline supplied                -> full race-prep plan
    otherwise                            -> calibration week
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from .analysis.adaptation import AdaptationEngine, Notifier
from .analysis.biometrics import (
    HeartRateZone,
    experience_to_volume_tier,
    get_heart_rate_zones,
    get_max_hr,
)
from .analysis.calibration import CalibrationWeekGenerator
from .analysis.maintenance import MaintenanceCheckResult, MaintenanceGenerator
from .analysis.periodization import PlanGenerationResult, PlanGenerator, phase_for_date
from .analysis.scheduler import PriorityRescheduler, ReschedulerResult
from .db.store import AthleteLocks, RecordStore, athlete_locks
from .domain import Baselines, DistanceClass, FatigueState, Plan, PlanKind, parse_enum
from .exceptions import InvalidInputError, NotFoundError
from .lifecycle import PlanState, transition

logger = logging.getLogger(__name__)

# Used when neither the athlete nor a date of birth gives a max HR
DEFAULT_MAX_HR = 185


@dataclass
class OnboardingRequest:
    athlete_id: str
    experience_level: str
    date_of_birth: Optional[date] = None
    max_heart_rate: Optional[int] = None
    resting_heart_rate: Optional[int] = None
    event_id: Optional[int] = None
    distance_class: str = DistanceClass.OLYMPIC.value
    wants_full_plan: bool = False
    critical_swim_speed: Optional[float] = None
    functional_threshold_power: Optional[float] = None
    threshold_run_pace: Optional[float] = None


@dataclass
class OnboardingOutcome:
    plan: Plan
    heart_rate_zones: Dict[int, HeartRateZone]
    zone_method: str
    calibration_required: bool
    volume_tier: int
    max_heart_rate: int
    generated: Optional[PlanGenerationResult] = None


@dataclass
class DailyJobResult:
    rescheduler: ReschedulerResult
    maintenance: MaintenanceCheckResult
    phases_updated: List[int] = field(default_factory=list)


class TrainingService:
    """Wires the generators, rescheduler and adaptation engine over one record store."""

    def __init__(
        self,
        store: RecordStore,
        locks: Optional[AthleteLocks] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.locks = locks or athlete_locks
        self.plan_generator = PlanGenerator(store, self.locks)
        self.calibration = CalibrationWeekGenerator(store, self.locks, self.plan_generator)
        self.maintenance = MaintenanceGenerator(store, self.locks)
        self.rescheduler = PriorityRescheduler(store, self.locks)
        self.adaptation = AdaptationEngine(store, self.locks, notifier)

    def complete_onboarding(self, request: OnboardingRequest, today: date) -> OnboardingOutcome:
        """Record the athlete's starting point and create their first plan.

        Args:
            request: Onboarding answers; manual baselines are optional
            today: Reference date for age and plan start

        Returns:
            OnboardingOutcome with the new plan and heart-rate zones
        """
        volume_tier = experience_to_volume_tier(request.experience_level)
        distance_class = parse_enum(DistanceClass, request.distance_class, "distance_class")
        self._check_manual_baselines(request)

        max_hr = get_max_hr(request.max_heart_rate, request.date_of_birth, today)
        if max_hr is None:
            logger.warning(f"No max HR or date of birth for {request.athlete_id}, assuming {DEFAULT_MAX_HR}")
            max_hr = DEFAULT_MAX_HR
        zones, method = get_heart_rate_zones(max_hr, request.resting_heart_rate)

        with self.locks.hold(request.athlete_id):
            baselines = self.store.upsert_baselines(
                Baselines(
                    athlete_id=request.athlete_id,
                    critical_swim_speed=request.critical_swim_speed,
                    threshold_run_pace=request.threshold_run_pace,
                    functional_threshold_power=request.functional_threshold_power,
                    max_heart_rate=max_hr,
                    resting_heart_rate=request.resting_heart_rate,
                )
            )
            self._reset_fatigue(request.athlete_id)

            calibration_required = not baselines.has_any_test
            generated = None
            if request.event_id is None and not request.wants_full_plan:
                logger.info(f"Onboarding {request.athlete_id}: maintenance plan (no event)")
                plan = self.maintenance.generate_maintenance_plan(request.athlete_id, today, volume_tier, baselines)
            elif not calibration_required:
                logger.info(f"Onboarding {request.athlete_id}: full plan from supplied baselines")
                generated = self.plan_generator.generate_plan(
                    request.athlete_id, today, volume_tier, baselines, request.event_id, distance_class
                )
                plan = generated.plan
            else:
                logger.info(f"Onboarding {request.athlete_id}: calibration week")
                plan = self.calibration.generate_calibration_week(
                    request.athlete_id, today, volume_tier, request.event_id, distance_class
                )

        return OnboardingOutcome(
            plan=plan,
            heart_rate_zones=zones,
            zone_method=method,
            calibration_required=calibration_required,
            volume_tier=volume_tier,
            max_heart_rate=max_hr,
            generated=generated,
        )

    def transition_to_event(self, athlete_id: str, event_id: int, today: date) -> PlanGenerationResult:
        """Replace an athlete's maintenance plan with race prep for an event.

        Raises:
            NotFoundError: no active maintenance plan, or unknown event
        """
        with self.locks.hold(athlete_id):
            plan = self.store.get_active_plan(athlete_id)
            if plan is None or plan.kind != PlanKind.MAINTENANCE:
                raise NotFoundError(
                    f"No active maintenance plan for {athlete_id}", details={"athlete_id": athlete_id}
                )
            event = self.store.get_event(event_id)
            if event is None:
                raise NotFoundError(f"Event {event_id} not found", details={"event_id": event_id})

            removed = self.store.delete_workouts_from(plan.id, today)
            logger.info(f"Removed {removed} upcoming maintenance workouts from plan {plan.id}")
            transition(self.store, plan, PlanState.ACTIVE_RACE_PREP)

            baselines = self.store.get_latest_baselines(athlete_id)
            return self.plan_generator.generate_plan(
                athlete_id, today, plan.volume_tier, baselines, event.id, event.distance_class
            )

    def run_daily_jobs(self, today: date, max_workers: Optional[int] = None) -> DailyJobResult:
        """Rescheduler for yesterday's unmet workouts, then the maintenance buffer check."""
        logger.info(f"Daily jobs for {today}")
        rescheduled = self.rescheduler.process_missed_workouts(today, max_workers=max_workers)
        maintained = self.maintenance.check_and_generate_maintenance_workouts(today)
        result = DailyJobResult(rescheduler=rescheduled, maintenance=maintained)

        for plan in self.store.list_active_plans(PlanKind.RACE_PREP):
            phase = phase_for_date(plan, today)
            if phase is not None and phase != plan.current_phase:
                self.store.set_current_phase(plan.id, phase)
                result.phases_updated.append(plan.id)
                logger.info(f"Plan {plan.id} entered {phase.value}")
        return result

    def _reset_fatigue(self, athlete_id: str) -> FatigueState:
        state = self.store.get_fatigue_state(athlete_id)
        state.current_strikes = 0
        state.last_strike_date = None
        state.consecutive_completes = 0
        state.total_adaptations = 0
        return self.store.save_fatigue_state(state)

    @staticmethod
    def _check_manual_baselines(request: OnboardingRequest):
        for name in ("critical_swim_speed", "functional_threshold_power", "threshold_run_pace"):
            value = getattr(request, name)
            if value is not None and value <= 0:
                raise InvalidInputError(f"{name} must be positive, got {value}", details={name: value})
