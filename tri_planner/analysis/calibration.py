"""Calibration week: three field tests that establish swim, bike and run baselines."""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from ..config import config
from ..db.store import AthleteLocks, RecordStore, athlete_locks
from ..domain import (
    Baselines,
    CalibrationTest,
    DistanceClass,
    Plan,
    PlanKind,
    Sport,
    StepType,
    Workout,
    WorkoutStep,
    WorkoutStructure,
    parse_enum,
)
from ..exceptions import InvalidInputError
from ..lifecycle import PlanState, transition
from .biometrics import calculate_css, calculate_ftp, calculate_threshold_pace
from .periodization import PlanGenerationResult, PlanGenerator, next_monday

logger = logging.getLogger(__name__)

# test -> (baseline field, metric name, formula)
_TESTS = {
    CalibrationTest.SWIM_400M: ("critical_swim_speed", "Critical Swim Speed", calculate_css),
    CalibrationTest.BIKE_20MIN: ("functional_threshold_power", "Functional Threshold Power", calculate_ftp),
    CalibrationTest.RUN_1MILE: ("threshold_run_pace", "Threshold Run Pace", calculate_threshold_pace),
}


@dataclass
class CalibrationOutcome:
    test_type: CalibrationTest
    calculated_value: float
    metric: str
    all_tests_complete: bool
    baselines: Baselines
    generated: Optional[PlanGenerationResult] = None


def _step(step_type: StepType, duration: int, zone: int, description: str, rpe: Optional[int] = None) -> WorkoutStep:
    return WorkoutStep(step_type, duration, target_zone=zone, description=description, target_rpe=rpe)


def build_calibration_workouts(plan_id: int, monday: date) -> List[Workout]:
    """The fixed calibration week: tests on days 1, 3 and 5, easy sessions on days 6 and 7."""
    swim_test = WorkoutStructure(
        title="Swim Test: 400m Time Trial",
        description=(
            "Establishes your Critical Swim Speed. After a proper warm-up, swim 400 meters as fast "
            "as you can sustain. CSS = (400m time / 4) + 3 seconds."
        ),
        steps=[
            _step(StepType.WARMUP, 600, 1, "Easy swimming, mix of freestyle and drill work", 3),
            _step(StepType.MAIN, 420, 5, "400m time trial. Record your exact time.", 9),
            _step(StepType.REST, 180, 1, "Rest and recover"),
            _step(StepType.COOLDOWN, 300, 1, "Easy swimming to flush out lactate", 2),
        ],
    )
    bike_test = WorkoutStructure(
        title="Bike Test: 20-Minute FTP Test",
        description=(
            "Establishes your Functional Threshold Power. After warming up, ride at the hardest "
            "effort you can sustain for 20 minutes. FTP = average power x 0.95."
        ),
        steps=[
            _step(StepType.WARMUP, 600, 1, "Easy spinning, gradually increasing effort", 2),
            _step(StepType.INTERVAL, 60, 4, "Hard effort to open up the legs", 7),
            _step(StepType.REST, 300, 1, "Easy spinning recovery", 2),
            _step(StepType.MAIN, 1200, 4, "20 minute max effort. Record your average power.", 9),
            _step(StepType.COOLDOWN, 600, 1, "Easy spinning to recover", 2),
        ],
    )
    run_test = WorkoutStructure(
        title="Run Test: 1 Mile Time Trial",
        description=(
            "Establishes your Threshold Pace. After warming up, run 1 mile as fast as you can. "
            "Threshold pace = mile time x 1.15."
        ),
        steps=[
            _step(StepType.WARMUP, 600, 1, "Easy jogging with dynamic stretches", 3),
            _step(StepType.INTERVAL, 60, 3, "4 x 15-second strides at 80% effort", 5),
            _step(StepType.REST, 180, 1, "Easy walking or jogging"),
            _step(StepType.MAIN, 600, 5, "1 mile time trial. Record your exact time.", 9),
            _step(StepType.COOLDOWN, 600, 1, "Easy jogging to cool down", 2),
        ],
    )
    recovery_spin = WorkoutStructure(
        title="Recovery Spin",
        description="Active recovery after testing. Keep the effort very light.",
        steps=[_step(StepType.MAIN, 2400, 1, "Easy spinning, keep it relaxed", 3)],
    )
    recovery_jog = WorkoutStructure(
        title="Recovery Jog",
        description="Easy jog to finish the calibration week. Your training plan starts next week.",
        steps=[_step(StepType.MAIN, 1800, 1, "Easy jogging, conversational pace only", 3)],
    )

    def test(offset: int, sport: Sport, structure: WorkoutStructure) -> Workout:
        return Workout(
            plan_id=plan_id,
            scheduled_date=monday + timedelta(days=offset),
            sport=sport,
            priority=2,
            structure=structure,
            is_calibration_test=True,
            target_rpe=9,
        )

    def easy(offset: int, sport: Sport, structure: WorkoutStructure) -> Workout:
        return Workout(
            plan_id=plan_id,
            scheduled_date=monday + timedelta(days=offset),
            sport=sport,
            priority=3,
            structure=structure,
            target_rpe=3,
        )

    return [
        test(0, Sport.SWIM, swim_test),
        test(2, Sport.BIKE, bike_test),
        test(4, Sport.RUN, run_test),
        easy(5, Sport.BIKE, recovery_spin),
        easy(6, Sport.RUN, recovery_jog),
    ]


class CalibrationWeekGenerator:
    """Creates calibration weeks and ingests their test results."""

    def __init__(
        self,
        store: RecordStore,
        locks: Optional[AthleteLocks] = None,
        plan_generator: Optional[PlanGenerator] = None,
    ):
        self.store = store
        self.locks = locks or athlete_locks
        self.plan_generator = plan_generator or PlanGenerator(store, self.locks)

    def generate_calibration_week(
        self,
        athlete_id: str,
        today: date,
        volume_tier: int,
        event_id: Optional[int] = None,
        distance_class: DistanceClass = DistanceClass.OLYMPIC,
    ) -> Plan:
        """Create the calibration plan, archiving any other active plan."""
        if volume_tier not in (1, 2, 3):
            raise InvalidInputError(f"Volume tier must be 1-3, got {volume_tier}", details={"volume_tier": volume_tier})

        event = self.store.get_event(event_id) if event_id is not None else None
        if event is not None:
            event_date = event.event_date
            distance_class = event.distance_class
        else:
            if event_id is not None:
                logger.warning(f"Event {event_id} not found, using a {config.CALIBRATION_EVENT_DAYS}-day placeholder")
            event_date = today + timedelta(days=config.CALIBRATION_EVENT_DAYS)

        start_date = next_monday(today)
        with self.locks.hold(athlete_id):
            plan = self.store.create_plan(
                Plan(
                    athlete_id=athlete_id,
                    start_date=start_date,
                    kind=PlanKind.RACE_PREP,
                    name="Calibration Week",
                    event_id=event.id if event else None,
                    event_date=event_date,
                    distance_class=distance_class,
                    volume_tier=volume_tier,
                    total_weeks=None,
                    is_calibration=True,
                )
            )
            self.store.insert_workouts(build_calibration_workouts(plan.id, start_date))

        logger.info(f"Calibration week created for {athlete_id} starting {start_date}")
        return plan

    def process_calibration_result(
        self,
        athlete_id: str,
        test_type,
        raw_result: float,
        today: date,
    ) -> CalibrationOutcome:
        """Record one test result as a new baseline row.

        Args:
            athlete_id: Athlete who ran the test
            test_type: swim_400m (seconds), bike_20min (average watts) or run_1mile (seconds)
            raw_result: Raw measurement, must be positive
            today: Reference date for any plan generated on completion

        Returns:
            CalibrationOutcome; `generated` is set only on the submission that
            completes all three tests while a calibration plan is active.
            Retests outside calibration are recorded without touching the plan.
        """
        test = parse_enum(CalibrationTest, test_type, "test_type")
        if raw_result is None or raw_result <= 0:
            raise InvalidInputError(
                f"Calibration result must be positive, got {raw_result}",
                details={"test_type": test.value, "raw_result": raw_result},
            )
        field_name, metric, formula = _TESTS[test]
        value = formula(raw_result)

        with self.locks.hold(athlete_id):
            latest = self.store.get_latest_baselines(athlete_id) or Baselines(athlete_id=athlete_id)
            baselines = self.store.upsert_baselines(latest.with_updates(**{field_name: value}))
            complete = baselines.has_all_tests
            logger.info(f"Calibration {test.value} for {athlete_id}: {metric} = {value}")

            outcome = CalibrationOutcome(
                test_type=test,
                calculated_value=value,
                metric=metric,
                all_tests_complete=complete,
                baselines=baselines,
            )
            if complete:
                outcome.generated = self._finish_calibration(athlete_id, baselines, today)
        return outcome

    def _finish_calibration(self, athlete_id: str, baselines: Baselines, today: date) -> Optional[PlanGenerationResult]:
        plan = self.store.get_active_plan(athlete_id)
        if plan is None or not plan.is_calibration:
            return None

        logger.info(
            f"All calibration tests complete for {athlete_id}: CSS {baselines.critical_swim_speed}, "
            f"FTP {baselines.functional_threshold_power}, TP {baselines.threshold_run_pace}"
        )
        transition(self.store, plan, PlanState.ACTIVE_RACE_PREP)
        return self.plan_generator.generate_plan(
            athlete_id,
            today,
            plan.volume_tier,
            baselines,
            event_id=plan.event_id,
            distance_class=plan.distance_class,
        )
