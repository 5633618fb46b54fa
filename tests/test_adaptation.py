"""Tests for the fatigue strike state machine and adaptation events."""

from datetime import date, timedelta

import pytest

from tri_planner.analysis.adaptation import (
    STRIKE_COMPLIANCE,
    STRIKE_OBJECTIVE,
    STRIKE_SUBJECTIVE,
    AdaptationEngine,
    check_for_strike,
)
from tri_planner.domain import (
    Baselines,
    FeedbackRating,
    Plan,
    SkipReason,
    Sport,
    StepType,
    Workout,
    WorkoutStatus,
    WorkoutStep,
    WorkoutStructure,
)
from tri_planner.exceptions import InvalidInputError, NotFoundError

TODAY = date(2025, 1, 8)


def _workout(plan_id, offset, sport, priority, steps, template_id=None):
    return Workout(
        plan_id=plan_id,
        scheduled_date=TODAY + timedelta(days=offset),
        sport=sport,
        priority=priority,
        structure=WorkoutStructure(title=f"{sport.value} {offset}", description="", steps=steps),
        target_rpe=6,
        template_id=template_id,
    )


class TestCheckForStrike:
    """Test strike classification."""

    def test_harder_rating(self):
        check = check_for_strike(FeedbackRating.HARDER)
        assert check.should_strike and check.reason == STRIKE_SUBJECTIVE

    def test_rpe_more_than_two_over_target(self):
        """RPE must exceed target by more than two."""
        assert check_for_strike(FeedbackRating.SAME, 9, 6).reason == STRIKE_OBJECTIVE
        assert not check_for_strike(FeedbackRating.SAME, 8, 6).should_strike

    def test_compliance_skips(self):
        """Fatigue and sickness skips strike; schedule conflicts do not."""
        assert check_for_strike(skip_reason=SkipReason.TOO_TIRED).reason == STRIKE_COMPLIANCE
        assert check_for_strike(skip_reason=SkipReason.SICK).should_strike
        assert not check_for_strike(skip_reason=SkipReason.SCHEDULE_CONFLICT).should_strike

    def test_easier_is_not_a_strike(self):
        assert not check_for_strike(FeedbackRating.EASIER, 3, 6).should_strike


class TestAdaptationEngine:
    """Test feedback processing against a stored plan."""

    @pytest.fixture(autouse=True)
    def setup_plan(self, store, locks):
        self.store = store
        self.notifications = []
        self.engine = AdaptationEngine(store, locks, notifier=lambda athlete, msg: self.notifications.append(athlete))
        self.plan = store.create_plan(Plan(athlete_id="a1", start_date=TODAY - timedelta(days=2)))
        store.upsert_baselines(Baselines("a1", functional_threshold_power=250, max_heart_rate=200))

        bike_steps = [
            WorkoutStep(StepType.WARMUP, 600, target_zone=1, target_power=100, target_heart_rate=110),
            WorkoutStep(StepType.INTERVAL, 480, target_zone=4, target_power=200, target_heart_rate=170),
            WorkoutStep(StepType.COOLDOWN, 600, target_zone=1, target_power=100),
        ]
        run_steps = [
            WorkoutStep(StepType.WARMUP, 600, target_zone=1, target_pace=600),
            WorkoutStep(StepType.MAIN, 1800, target_zone=4, target_pace=500, target_heart_rate=170),
        ]
        long_ride = [WorkoutStep(StepType.MAIN, 3600, target_zone=2, target_power=160)]
        swim = [WorkoutStep(StepType.MAIN, 1800, target_zone=2, target_pace=95)]

        (
            self.done,
            self.quality_today,
            self.key_run,
            self.key_ride,
            self.easy_swim,
            self.later_run,
        ) = store.insert_workouts([
            _workout(self.plan.id, -1, Sport.RUN, 2, run_steps),
            _workout(self.plan.id, 0, Sport.BIKE, 2, bike_steps, template_id=4),
            _workout(self.plan.id, 1, Sport.RUN, 1, run_steps),
            _workout(self.plan.id, 2, Sport.BIKE, 1, long_ride, template_id=7),
            _workout(self.plan.id, 3, Sport.SWIM, 3, swim),
            _workout(self.plan.id, 4, Sport.RUN, 2, run_steps),
        ])

    def harder(self):
        return self.engine.submit_feedback("a1", self.done.id, "harder", TODAY)

    def test_first_strike_does_not_adapt(self):
        outcome = self.harder()
        assert outcome.strike_triggered
        assert not outcome.adaptation_triggered
        assert outcome.current_strikes == 1
        assert self.engine.check_fatigue("a1").is_near_threshold

    def test_second_strike_adapts_and_resets(self):
        """Two strikes fire exactly one adaptation and reset to zero."""
        self.harder()
        outcome = self.harder()

        assert outcome.adaptation_triggered
        assert outcome.current_strikes == 0
        assert outcome.adaptation.workouts_affected == 3
        assert outcome.adaptation.trigger_reason == "FATIGUE_STRIKES"
        assert outcome.adaptation.strikes_at_trigger == 2
        assert len(self.store.list_adaptation_logs("a1")) == 1

        state = self.store.get_fatigue_state("a1")
        assert state.total_adaptations == 1
        assert state.last_adaptation_date == TODAY

    def test_third_strike_starts_fresh(self):
        """After a reset the count starts again at one."""
        self.harder()
        self.harder()
        outcome = self.harder()
        assert outcome.current_strikes == 1
        assert not outcome.adaptation_triggered

    def test_intensity_cut_keeps_shape(self):
        """Cut sessions keep their steps; power x0.85, pace /0.85, HR unchanged."""
        self.harder()
        self.harder()

        bike = self.store.get_workout(self.quality_today.id)
        assert [s.step_type for s in bike.structure.steps] == [StepType.WARMUP, StepType.INTERVAL, StepType.COOLDOWN]
        assert [s.duration for s in bike.structure.steps] == [600, 480, 600]
        assert [s.target_power for s in bike.structure.steps] == [85, 170, 85]
        assert bike.structure.steps[1].target_heart_rate == 170
        assert bike.was_adapted
        assert bike.intensity_scalar == 0.85
        assert bike.original_template_id == 4

        run = self.store.get_workout(self.key_run.id)
        assert [s.target_pace for s in run.structure.steps] == [706, 588]
        assert run.priority == 1

    def test_key_session_converted_to_recovery(self):
        """The next uncut key session becomes a half-length zone 2 session."""
        self.harder()
        self.harder()

        ride = self.store.get_workout(self.key_ride.id)
        assert ride.priority == 3
        assert ride.target_rpe == 3
        assert ride.structure.title == "Recovery Bike"
        assert [s.duration for s in ride.structure.steps] == [180, 1440, 180]
        assert [s.target_zone for s in ride.structure.steps] == [1, 2, 1]
        assert ride.structure.steps[1].target_power == 164
        assert ride.original_template_id == 7

    def test_untouched_workouts(self):
        """Easy and later sessions are left alone."""
        self.harder()
        self.harder()
        assert not self.store.get_workout(self.easy_swim.id).was_adapted
        assert not self.store.get_workout(self.later_run.id).was_adapted
        assert self.store.get_workout(self.done.id).structure.steps[1].target_pace == 500

    def test_adapted_workouts_not_cut_twice(self):
        """A second adaptation moves on to the next unadapted quality session."""
        for _ in range(4):
            self.harder()

        assert self.store.get_workout(self.quality_today.id).structure.steps[1].target_power == 170
        assert self.store.get_workout(self.later_run.id).was_adapted

    def test_notifier_called(self):
        self.harder()
        outcome = self.harder()
        assert self.notifications == ["a1"]
        assert outcome.adaptation.actions["notification_sent"] is True

    def test_notifier_failure_is_not_fatal(self, store, locks):
        def broken(athlete_id, message):
            raise ConnectionError("push service down")

        engine = AdaptationEngine(store, locks, notifier=broken)
        engine.submit_feedback("a1", self.done.id, "harder", TODAY)
        outcome = engine.submit_feedback("a1", self.done.id, "harder", TODAY)
        assert outcome.adaptation_triggered
        assert outcome.adaptation.actions["notification_sent"] is False

    def test_objective_strike_from_rpe(self):
        """RPE 9 against a target of 6 counts as a strike."""
        outcome = self.engine.submit_feedback("a1", self.done.id, "same", TODAY, rpe=9)
        assert outcome.strike_triggered

    def test_invalid_feedback(self):
        """Bad ratings and out-of-range RPE are rejected."""
        with pytest.raises(InvalidInputError):
            self.engine.submit_feedback("a1", self.done.id, "meh", TODAY)
        with pytest.raises(InvalidInputError):
            self.engine.submit_feedback("a1", self.done.id, "same", TODAY, rpe=11)
        with pytest.raises(InvalidInputError):
            self.engine.submit_feedback("a1", self.done.id, "same", TODAY, rpe=0)

    def test_other_athletes_workout(self):
        with pytest.raises(NotFoundError):
            self.engine.submit_feedback("intruder", self.done.id, "harder", TODAY)

    def test_skip_for_fatigue_strikes(self):
        outcome = self.engine.skip_workout("a1", self.done.id, "TOO_TIRED", TODAY)
        skipped = self.store.get_workout(self.done.id)
        assert skipped.status == WorkoutStatus.SKIPPED
        assert skipped.skip_reason == SkipReason.TOO_TIRED
        assert outcome.strike_triggered

    def test_skip_for_schedule_is_not_a_strike(self):
        outcome = self.engine.skip_workout("a1", self.done.id, "SCHEDULE_CONFLICT", TODAY)
        assert not outcome.strike_triggered
        assert self.store.get_fatigue_state("a1").current_strikes == 0

    def test_complete_counts_clean_session(self):
        outcome = self.engine.complete_workout("a1", self.done.id, TODAY)
        assert self.store.get_workout(self.done.id).status == WorkoutStatus.COMPLETED
        assert not outcome.strike_triggered
        assert self.store.get_fatigue_state("a1").consecutive_completes == 1

    def test_complete_with_harder_rating(self):
        outcome = self.engine.complete_workout("a1", self.done.id, TODAY, rating="harder")
        assert outcome.strike_triggered
        assert self.store.get_fatigue_state("a1").consecutive_completes == 0

    def test_positive_trend_removes_strike(self):
        """The fifth consecutive clean session removes one strike."""
        state = self.store.get_fatigue_state("a1")
        state.current_strikes = 1
        state.consecutive_completes = 4
        self.store.save_fatigue_state(state)

        outcome = self.engine.complete_workout("a1", self.done.id, TODAY)
        assert outcome.current_strikes == 0

    def test_check_positive_trend(self):
        state = self.store.get_fatigue_state("a1")
        state.current_strikes = 1
        state.consecutive_completes = 5
        self.store.save_fatigue_state(state)

        assert self.engine.check_positive_trend("a1")
        assert self.store.get_fatigue_state("a1").current_strikes == 0
        assert not self.engine.check_positive_trend("a1")

    def test_adaptation_without_plan(self):
        """No active plan: the event is still logged, with nothing modified."""
        entry = self.engine.trigger_adaptation("nobody", 2, STRIKE_SUBJECTIVE, TODAY)
        assert entry.workouts_affected == 0
        assert entry.id is not None
