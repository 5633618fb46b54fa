"""Tests for periodization and race-prep plan generation."""

from datetime import date, timedelta

import pytest

from tri_planner.analysis.periodization import (
    PlanGenerator,
    get_phase_distribution,
    get_weekly_structure,
    next_monday,
    phase_for_date,
    select_template,
    weeks_between,
)
from tri_planner.domain import (
    PHASE_ORDER,
    Baselines,
    DistanceClass,
    Event,
    FocusType,
    Phase,
    PlanStatus,
    Sport,
    Template,
    WorkoutStep,
    StepType,
)
from tri_planner.exceptions import InvalidInputError


class TestPhaseDistribution:
    """Test phase allocation by horizon."""

    def test_short_horizon(self):
        """Four weeks or fewer: build then taper."""
        assert get_phase_distribution(3) == [(Phase.BUILD, 2), (Phase.TAPER, 2)]

    def test_twelve_weeks(self):
        """Twelve weeks uses the fixed table."""
        assert get_phase_distribution(12) == [(Phase.BASE, 4), (Phase.BUILD, 5), (Phase.PEAK, 1), (Phase.TAPER, 2)]

    def test_long_horizon_split(self):
        """Longer horizons split by percentage and sum to the horizon."""
        phases = get_phase_distribution(20)
        assert phases == [(Phase.BASE, 6), (Phase.BUILD, 8), (Phase.PEAK, 3), (Phase.TAPER, 3)]
        assert sum(w for _, w in phases) == 20

    def test_phase_order_never_reversed(self):
        """Phases always appear in BASE, BUILD, PEAK, TAPER order."""
        for weeks in range(1, 60):
            order = [PHASE_ORDER.index(p) for p, _ in get_phase_distribution(weeks)]
            assert order == sorted(order)
            assert all(w > 0 for _, w in get_phase_distribution(weeks))


class TestWeeklyStructure:
    """Test day patterns by volume tier."""

    def test_tier_one(self):
        """Tier 1 has four sessions and a priority-1 brick on Saturday."""
        week = get_weekly_structure(1, Phase.BASE)
        assert len(week) == 7
        assert [d.is_rest for d in week] == [False, True, False, False, True, False, True]
        assert week[5].sport == Sport.BRICK and week[5].priority == 1

    def test_tier_three_has_no_rest(self):
        """Tier 3 trains every day."""
        assert not any(d.is_rest for d in get_weekly_structure(3, Phase.BUILD))

    def test_taper_lowers_priority(self):
        """Taper drops each session one priority level and focuses on recovery."""
        build = get_weekly_structure(2, Phase.BUILD)
        taper = get_weekly_structure(2, Phase.TAPER)
        for b, t in zip(build, taper):
            assert t.priority == min(3, b.priority + 1)
            assert t.focus == FocusType.RECOVERY

    def test_invalid_tier(self):
        """Tier outside 1-3 is rejected."""
        with pytest.raises(InvalidInputError):
            get_weekly_structure(4, Phase.BASE)


class TestTemplateSelection:
    """Test nearest-tier template choice."""

    def _template(self, name, tier):
        return Template(name, Sport.RUN, tier, [WorkoutStep(StepType.MAIN, 600, target_zone=2)])

    def test_nearest_tier(self):
        """Closest difficulty tier to the focus wins."""
        templates = [self._template("a", 2), self._template("b", 4), self._template("c", 5)]
        assert select_template(templates, FocusType.INTERVALS).name == "b"

    def test_tie_goes_to_first(self):
        """Equal distance keeps catalog order."""
        templates = [self._template("a", 1), self._template("b", 3)]
        assert select_template(templates, FocusType.ENDURANCE).name == "a"

    def test_empty_catalog(self):
        assert select_template([], FocusType.TEMPO) is None


class TestDates:
    """Test date helpers."""

    def test_next_monday(self):
        """Always strictly after today."""
        assert next_monday(date(2025, 1, 8)) == date(2025, 1, 13)
        assert next_monday(date(2025, 1, 13)) == date(2025, 1, 20)
        assert next_monday(date(2025, 1, 12)) == date(2025, 1, 13)

    def test_weeks_between_rounds_up(self):
        assert weeks_between(date(2025, 1, 13), date(2025, 4, 2)) == 12


class TestPlanGenerator:
    """Test plan generation against the record store."""

    def test_default_horizon(self, seeded_store, locks, today):
        """Without an event the plan targets 84 days out."""
        result = PlanGenerator(seeded_store, locks).generate_plan("a1", today, 1)
        plan = result.plan

        assert plan.start_date == date(2025, 1, 13)
        assert plan.event_date == today + timedelta(days=84)
        assert plan.name == "OLYMPIC Training"
        assert plan.total_weeks == 12
        assert plan.current_phase == Phase.BASE
        assert result.workouts_created == 48

    def test_phase_totals_match_plan(self, seeded_store, locks, today):
        """Sum of phase weeks equals total weeks."""
        event = seeded_store.add_event(Event("Autumn Tri", date(2025, 9, 14), DistanceClass.HALF))
        result = PlanGenerator(seeded_store, locks).generate_plan("a1", today, 2, event_id=event.id)

        assert sum(w for _, w in result.phases) == result.plan.total_weeks
        assert result.plan.name == "Road to Autumn Tri"
        assert result.plan.distance_class == DistanceClass.HALF
        assert max(w.scheduled_date for w in result.workouts) < result.plan.start_date + timedelta(
            weeks=result.plan.total_weeks
        )

    def test_missing_event_falls_back(self, seeded_store, locks, today):
        """An unknown event id degrades to the default horizon."""
        result = PlanGenerator(seeded_store, locks).generate_plan("a1", today, 1, event_id=999)
        assert result.plan.event_id is None
        assert result.plan.event_date == today + timedelta(days=84)

    def test_single_active_plan(self, seeded_store, locks, today):
        """Generating twice leaves exactly one active plan."""
        generator = PlanGenerator(seeded_store, locks)
        first = generator.generate_plan("a1", today, 1).plan
        second = generator.generate_plan("a1", today, 1).plan

        statuses = {p.id: p.status for p in seeded_store.list_plans("a1")}
        assert statuses == {first.id: PlanStatus.ARCHIVED, second.id: PlanStatus.ACTIVE}
        assert seeded_store.get_active_plan("a1").id == second.id

    def test_targets_use_baselines(self, seeded_store, locks, today):
        """Bike workouts carry power targets when FTP is known."""
        baselines = Baselines("a1", critical_swim_speed=90, threshold_run_pace=483, functional_threshold_power=250)
        result = PlanGenerator(seeded_store, locks).generate_plan("a1", today, 1, baselines)
        bike = next(w for w in result.workouts if w.sport == Sport.BIKE)
        assert any(s.target_power for s in bike.structure.steps)

    def test_intensity_follows_phase(self, seeded_store, locks, today):
        """Base weeks run at 0.85, build weeks at 1.0."""
        result = PlanGenerator(seeded_store, locks).generate_plan("a1", today, 1)
        start = result.plan.start_date
        assert all(w.intensity_scalar == 0.85 for w in result.workouts if w.scheduled_date < start + timedelta(weeks=4))
        build_week = [w for w in result.workouts if start + timedelta(weeks=4) <= w.scheduled_date < start + timedelta(weeks=5)]
        assert build_week and all(w.intensity_scalar == 1.0 for w in build_week)

    def test_placeholders_without_catalog(self, store, locks, today):
        """An empty catalog still yields a full schedule."""
        result = PlanGenerator(store, locks).generate_plan("a1", today, 1)
        assert result.workouts_created == 48
        assert all(w.template_id is None for w in result.workouts)

    def test_invalid_tier(self, seeded_store, locks, today):
        with pytest.raises(InvalidInputError):
            PlanGenerator(seeded_store, locks).generate_plan("a1", today, 0)

    def test_phase_for_date(self, seeded_store, locks, today):
        """Phase lookup follows the stored plan's distribution."""
        plan = PlanGenerator(seeded_store, locks).generate_plan("a1", today, 1).plan
        assert phase_for_date(plan, plan.start_date) == Phase.BASE
        assert phase_for_date(plan, plan.start_date + timedelta(weeks=4)) == Phase.BUILD
        assert phase_for_date(plan, plan.start_date + timedelta(weeks=11)) == Phase.TAPER
        assert phase_for_date(plan, today) is None
