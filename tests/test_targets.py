"""Tests for the workout target calculator."""

from datetime import date

from tri_planner.analysis.targets import (
    build_placeholder_workout,
    build_workout,
    calculate_targets,
    default_zone,
    scale_duration,
    target_heart_rate,
    target_pace,
    target_power,
)
from tri_planner.domain import Baselines, FocusType, Phase, Sport, StepType, Template, WorkoutStep


def _template(sport, steps, name="Test Session"):
    return Template(name=name, sport=sport, difficulty_tier=2, steps=steps, id=7)


BASELINES = Baselines(
    athlete_id="a1",
    critical_swim_speed=90.0,
    threshold_run_pace=483.0,
    functional_threshold_power=250.0,
    max_heart_rate=200,
)

ENDURANCE_STEPS = [
    WorkoutStep(StepType.WARMUP, 600, target_zone=1),
    WorkoutStep(StepType.MAIN, 3600, target_zone=2),
    WorkoutStep(StepType.COOLDOWN, 300, target_zone=1),
]


class TestTargetFormulas:
    """Test per-zone numeric targets."""

    def test_power_uses_zone_midpoint(self):
        """Zone 4 midpoint is 98% FTP."""
        assert target_power(4, 250) == 245
        assert target_power(2, 250) == 164

    def test_power_scaled_by_intensity(self):
        """Intensity scalar multiplies power."""
        assert target_power(2, 250, 0.85) == 139

    def test_higher_zone_is_faster_pace(self):
        """Pace divides by the zone fraction, so harder zones are smaller numbers."""
        assert target_pace(2, 483) == 552
        assert target_pace(4, 483) < target_pace(2, 483)

    def test_pace_scalar_slows_pace(self):
        """An intensity scalar below 1 gives a slower (larger) pace."""
        assert target_pace(2, 483, 0.85) > target_pace(2, 483)

    def test_heart_rate_target(self):
        """HR target is max HR times the zone midpoint."""
        assert target_heart_rate(2, 200) == 130

    def test_missing_baseline_leaves_target_unset(self):
        """No baseline means no target, never an error."""
        assert target_power(3, None) is None
        assert target_pace(3, None) is None
        assert target_heart_rate(3, None) is None

    def test_default_zones(self):
        """Unzoned main work defaults to threshold, easy steps to recovery."""
        assert default_zone(StepType.MAIN) == 4
        assert default_zone(StepType.INTERVAL) == 4
        assert default_zone(StepType.WARMUP) == 1
        assert default_zone(StepType.REST) == 1


class TestCalculateTargets:
    """Test template to concrete steps."""

    def test_duration_scaling(self):
        """Phase multiplier, with the key-session bonus for priority 1."""
        assert scale_duration(1000, Phase.BASE, 2) == 850
        assert scale_duration(1000, Phase.BASE, 1) == 1105
        assert scale_duration(1000, Phase.TAPER, 2) == 600

    def test_bike_gets_power_and_heart_rate(self):
        """Bike steps get power targets; no pace."""
        steps = calculate_targets(_template(Sport.BIKE, ENDURANCE_STEPS), BASELINES, Phase.BUILD)
        main = steps[1]
        assert main.target_power == 164
        assert main.target_heart_rate == 130
        assert main.target_pace is None
        assert main.duration == 3600

    def test_swim_uses_css(self):
        """Swim steps get a pace from CSS and no power."""
        steps = calculate_targets(_template(Sport.SWIM, ENDURANCE_STEPS), BASELINES, Phase.BUILD)
        assert steps[1].target_power is None
        assert steps[1].target_pace == target_pace(2, 90.0)

    def test_brick_gets_heart_rate_only(self):
        """Brick sessions have no single pace or power baseline."""
        steps = calculate_targets(_template(Sport.BRICK, ENDURANCE_STEPS), BASELINES, Phase.BUILD)
        assert all(s.target_power is None and s.target_pace is None for s in steps)
        assert all(s.target_heart_rate for s in steps)

    def test_phase_intensity_default(self):
        """Without an explicit scalar the phase modifier is applied."""
        steps = calculate_targets(_template(Sport.BIKE, ENDURANCE_STEPS), BASELINES, Phase.BASE)
        assert steps[1].target_power == target_power(2, 250, 0.85)

    def test_template_is_not_mutated(self):
        """Calculated steps are copies."""
        template = _template(Sport.BIKE, ENDURANCE_STEPS)
        calculate_targets(template, BASELINES, Phase.PEAK, priority=1)
        assert template.steps[1].duration == 3600
        assert template.steps[1].target_power is None

    def test_no_baselines(self):
        """Targets stay empty but structure is still produced."""
        steps = calculate_targets(_template(Sport.RUN, ENDURANCE_STEPS), None, Phase.BUILD)
        assert len(steps) == 3
        assert all(s.target_pace is None and s.target_heart_rate is None for s in steps)
        assert steps[1].description


class TestBuildWorkout:
    """Test workout construction."""

    def test_template_workout(self):
        """Workout carries template id, scalar and RPE by priority."""
        workout = build_workout(1, _template(Sport.RUN, ENDURANCE_STEPS), date(2025, 1, 13), 1, BASELINES, Phase.BASE)
        assert workout.template_id == 7
        assert workout.intensity_scalar == 0.85
        assert workout.target_rpe == 7
        assert workout.structure.title == "Test Session"

    def test_placeholder_workout(self):
        """Placeholders are three steps scaled by priority."""
        workout = build_placeholder_workout(
            1, date(2025, 1, 13), Sport.BIKE, 1, FocusType.ENDURANCE, BASELINES
        )
        durations = [s.duration for s in workout.structure.steps]
        assert durations == [810, 3780, 810]
        assert workout.structure.title == "Endurance Bike"
        assert workout.structure.steps[1].target_zone == 3
        assert workout.structure.steps[1].target_power is not None
        assert workout.template_id is None

    def test_easy_placeholder_stays_in_zone_2(self):
        """Priority 3 placeholders are shorter and easier."""
        workout = build_placeholder_workout(1, date(2025, 1, 13), Sport.RUN, 3, None, None)
        assert workout.structure.steps[1].duration == 1323
        assert workout.structure.steps[1].target_zone == 2
        assert workout.target_rpe == 4
