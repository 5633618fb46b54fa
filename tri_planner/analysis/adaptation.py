"""Adaptation engine: the fatigue "strike" state machine.

A strike is a harder-than-expected rating, an RPE more than 2 above target,
or a skip for fatigue or sickness. Reaching the strike threshold fires an
adaptation: the next quality sessions get a 15% intensity cut, the next key
session becomes a half-length recovery session, and strikes reset to zero.
Five or more consecutive clean sessions remove one outstanding strike.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, List, Optional

from ..config import config
from ..db.store import AthleteLocks, RecordStore, athlete_locks
from ..domain import (
    AdaptationLogEntry,
    Baselines,
    FatigueState,
    FeedbackRating,
    FeedbackRecord,
    SkipReason,
    StepType,
    Workout,
    WorkoutStatus,
    WorkoutStep,
    WorkoutStructure,
    parse_enum,
)
from ..exceptions import InvalidInputError, NotFoundError
from .biometrics import round_half_up
from .targets import resolve_step

logger = logging.getLogger(__name__)

STRIKE_SUBJECTIVE = "SUBJECTIVE"
STRIKE_OBJECTIVE = "OBJECTIVE"
STRIKE_COMPLIANCE = "COMPLIANCE"

TRIGGER_REASONS = {
    STRIKE_SUBJECTIVE: "FATIGUE_STRIKES",
    STRIKE_OBJECTIVE: "RPE_EXCEEDED",
    STRIKE_COMPLIANCE: "COMPLIANCE",
}

# Planned workouts fetched when choosing what to adapt
UPCOMING_WINDOW = 6

Notifier = Callable[[str, str], None]


@dataclass
class StrikeCheck:
    should_strike: bool
    reason: Optional[str] = None


@dataclass
class FeedbackOutcome:
    strike_triggered: bool
    adaptation_triggered: bool
    current_strikes: int
    adaptation: Optional[AdaptationLogEntry] = None


@dataclass
class FatigueReport:
    current_strikes: int
    is_near_threshold: bool
    last_adaptation_date: Optional[date]
    consecutive_completes: int
    total_adaptations: int


def check_for_strike(
    rating: Optional[FeedbackRating] = None,
    actual_rpe: Optional[int] = None,
    target_rpe: Optional[int] = None,
    skip_reason: Optional[SkipReason] = None,
) -> StrikeCheck:
    """Decide whether one piece of feedback counts as a fatigue strike."""
    if rating == FeedbackRating.HARDER:
        return StrikeCheck(True, STRIKE_SUBJECTIVE)
    if actual_rpe is not None and target_rpe is not None and actual_rpe > target_rpe + 2:
        return StrikeCheck(True, STRIKE_OBJECTIVE)
    if skip_reason in (SkipReason.TOO_TIRED, SkipReason.SICK):
        return StrikeCheck(True, STRIKE_COMPLIANCE)
    return StrikeCheck(False)


def apply_intensity_cut(structure: WorkoutStructure, scalar: float) -> WorkoutStructure:
    """Scale power down and pace up (slower); step count, types and durations are kept."""
    steps = [
        replace(
            step,
            target_power=round_half_up(step.target_power * scalar) if step.target_power else step.target_power,
            target_pace=round_half_up(step.target_pace / scalar) if step.target_pace else step.target_pace,
        )
        for step in structure.steps
    ]
    return replace(structure, steps=steps)


def build_recovery_structure(workout: Workout, multiplier: float, baselines: Optional[Baselines]) -> WorkoutStructure:
    """Half-length (by default) zone 1-2 replacement for a key session."""
    duration = round_half_up(workout.structure.total_duration * multiplier)
    steps = [
        WorkoutStep(StepType.WARMUP, round_half_up(duration * 0.1), target_zone=1, description="Easy warm-up"),
        WorkoutStep(StepType.MAIN, round_half_up(duration * 0.8), target_zone=2, target_rpe=3,
                    description="Easy steady effort. Zone 2 only."),
        WorkoutStep(StepType.COOLDOWN, round_half_up(duration * 0.1), target_zone=1, description="Easy cooldown"),
    ]
    return WorkoutStructure(
        title=f"Recovery {workout.sport.value.capitalize()}",
        description="Easy effort. Focus on movement quality and recovery.",
        steps=[resolve_step(step, workout.sport, baselines) for step in steps],
    )


class AdaptationEngine:
    """Consumes completions, skips and feedback; mutates upcoming workouts on fatigue."""

    def __init__(
        self,
        store: RecordStore,
        locks: Optional[AthleteLocks] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.locks = locks or athlete_locks
        self.notifier = notifier

    # Entry points

    def submit_feedback(
        self,
        athlete_id: str,
        workout_id: int,
        rating,
        today: date,
        rpe: Optional[int] = None,
    ) -> FeedbackOutcome:
        """Record post-workout feedback and update the strike count.

        Raises:
            InvalidInputError: unknown rating or RPE outside 1-10
            NotFoundError: workout unknown or not owned by the athlete
        """
        rating = parse_enum(FeedbackRating, rating, "rating")
        if rpe is not None and (not isinstance(rpe, int) or isinstance(rpe, bool) or not 1 <= rpe <= 10):
            raise InvalidInputError(f"RPE must be an integer 1-10, got {rpe!r}", details={"rpe": rpe})

        with self.locks.hold(athlete_id):
            workout = self._get_owned_workout(athlete_id, workout_id)
            self.store.insert_feedback(FeedbackRecord(athlete_id=athlete_id, workout_id=workout.id, rating=rating, rpe=rpe))
            check = check_for_strike(rating, rpe, workout.target_rpe)
            return self._register(athlete_id, check, today)

    def complete_workout(
        self,
        athlete_id: str,
        workout_id: int,
        today: date,
        rating=None,
        rpe: Optional[int] = None,
    ) -> FeedbackOutcome:
        """Mark a workout completed; feedback given with it goes through submit_feedback."""
        if rating is not None:
            rating = parse_enum(FeedbackRating, rating, "rating")
        with self.locks.hold(athlete_id):
            workout = self._get_owned_workout(athlete_id, workout_id)
            self.store.update_workout(workout.id, status=WorkoutStatus.COMPLETED)
            if rating is not None:
                return self.submit_feedback(athlete_id, workout_id, rating, today, rpe)
            return self._register(athlete_id, StrikeCheck(False), today)

    def skip_workout(self, athlete_id: str, workout_id: int, reason, today: date) -> FeedbackOutcome:
        """Mark a workout skipped; fatigue and sickness count as a strike."""
        reason = parse_enum(SkipReason, reason, "skip_reason")
        with self.locks.hold(athlete_id):
            workout = self._get_owned_workout(athlete_id, workout_id)
            self.store.update_workout(workout.id, status=WorkoutStatus.SKIPPED, skip_reason=reason)
            check = check_for_strike(skip_reason=reason)
            if not check.should_strike:
                state = self.store.get_fatigue_state(athlete_id)
                return FeedbackOutcome(False, False, state.current_strikes)
            return self._register(athlete_id, check, today)

    def check_positive_trend(self, athlete_id: str) -> bool:
        """Drop one strike after enough consecutive clean sessions. Returns True if a strike was removed."""
        with self.locks.hold(athlete_id):
            state = self.store.get_fatigue_state(athlete_id)
            if self._relieve(state):
                self.store.save_fatigue_state(state)
                return True
            return False

    def check_fatigue(self, athlete_id: str) -> FatigueReport:
        state = self.store.get_fatigue_state(athlete_id)
        return FatigueReport(
            current_strikes=state.current_strikes,
            is_near_threshold=state.current_strikes >= config.FATIGUE_STRIKE_THRESHOLD - 1,
            last_adaptation_date=state.last_adaptation_date,
            consecutive_completes=state.consecutive_completes,
            total_adaptations=state.total_adaptations,
        )

    # State machine

    def _register(self, athlete_id: str, check: StrikeCheck, today: date) -> FeedbackOutcome:
        state = self.store.get_fatigue_state(athlete_id)

        if not check.should_strike:
            state.consecutive_completes += 1
            self._relieve(state)
            state = self.store.save_fatigue_state(state)
            return FeedbackOutcome(False, False, state.current_strikes)

        state.current_strikes += 1
        state.last_strike_date = today
        state.consecutive_completes = 0
        logger.warning(f"Strike added for {athlete_id} ({check.reason}), total {state.current_strikes}")

        entry = None
        if state.current_strikes >= config.FATIGUE_STRIKE_THRESHOLD:
            entry = self.trigger_adaptation(athlete_id, state.current_strikes, check.reason, today)
            state.current_strikes = 0
            state.last_adaptation_date = today
            state.total_adaptations += 1

        state = self.store.save_fatigue_state(state)
        return FeedbackOutcome(True, entry is not None, state.current_strikes, entry)

    def _relieve(self, state: FatigueState) -> bool:
        if state.consecutive_completes >= config.POSITIVE_TREND_COMPLETES and state.current_strikes > 0:
            state.current_strikes -= 1
            logger.info(f"Strike removed for {state.athlete_id} after {state.consecutive_completes} clean sessions")
            return True
        return False

    # Adaptation event

    def trigger_adaptation(self, athlete_id: str, strikes: int, reason: str, today: date) -> AdaptationLogEntry:
        """Cut intensity on upcoming quality sessions and convert one key session to recovery."""
        logger.info(f"Triggering adaptation for {athlete_id} ({strikes} strikes)")
        actions = {"intensity_cuts": [], "volume_conversions": [], "notification_sent": False}

        plan = self.store.get_active_plan(athlete_id)
        if plan is None:
            logger.warning(f"No active plan for {athlete_id}, adaptation has nothing to modify")
            upcoming: List[Workout] = []
        else:
            upcoming = self.store.query_workouts(
                plan.id, start=today, status=WorkoutStatus.PLANNED, limit=UPCOMING_WINDOW
            )

        to_cut = [w for w in upcoming if w.priority <= 2 and not w.was_adapted][: config.INTENSITY_CUT_WORKOUTS]
        cut_ids = {w.id for w in to_cut}
        to_convert = [
            w for w in upcoming if w.priority == 1 and not w.was_adapted and w.id not in cut_ids
        ][: config.VOLUME_CUT_WORKOUTS]

        for workout in to_cut:
            self.store.update_workout(
                workout.id,
                structure=apply_intensity_cut(workout.structure, config.INTENSITY_CUT_SCALAR),
                intensity_scalar=round(workout.intensity_scalar * config.INTENSITY_CUT_SCALAR, 4),
                was_adapted=True,
                original_template_id=workout.original_template_id or workout.template_id,
            )
            actions["intensity_cuts"].append(workout.id)
            logger.info(f"  Intensity cut applied to workout {workout.id}")

        if to_convert:
            baselines = self.store.get_latest_baselines(athlete_id)
            for workout in to_convert:
                structure = build_recovery_structure(workout, config.VOLUME_CUT_MULTIPLIER, baselines)
                self.store.update_workout(
                    workout.id,
                    structure=structure,
                    priority=3,
                    target_rpe=3,
                    was_adapted=True,
                    original_template_id=workout.original_template_id or workout.template_id,
                )
                actions["volume_conversions"].append(workout.id)
                logger.info(
                    f"  Workout {workout.id} converted to recovery "
                    f"({workout.structure.total_duration}s -> {structure.total_duration}s)"
                )

        if self.notifier is not None:
            try:
                self.notifier(athlete_id, "Plan adapted: intensity reduced due to high fatigue.")
                actions["notification_sent"] = True
            except Exception as e:
                logger.warning(f"Adaptation notification failed for {athlete_id}: {e}")

        affected = len(actions["intensity_cuts"]) + len(actions["volume_conversions"])
        entry = self.store.insert_adaptation_log(
            AdaptationLogEntry(
                athlete_id=athlete_id,
                trigger_reason=TRIGGER_REASONS.get(reason, "FATIGUE_STRIKES"),
                strikes_at_trigger=strikes,
                workouts_affected=affected,
                actions=actions,
            )
        )
        logger.info(f"Adaptation complete for {athlete_id}: {affected} workouts modified")
        return entry

    def _get_owned_workout(self, athlete_id: str, workout_id: int) -> Workout:
        workout = self.store.get_workout(workout_id)
        plan = self.store.get_plan(workout.plan_id) if workout is not None else None
        if workout is None or plan is None or plan.athlete_id != athlete_id:
            raise NotFoundError(
                f"Workout {workout_id} not found for athlete {athlete_id}",
                details={"athlete_id": athlete_id, "workout_id": workout_id},
            )
        return workout
