"""Command-line interface for the triathlon training plan engine."""

import logging
from datetime import date, timedelta

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .analysis.biometrics import format_pace
from .config import config
from .db import RecordStore, get_db
from .domain import CalibrationTest, DistanceClass, Event, ExperienceLevel, FeedbackRating, SkipReason, parse_enum
from .exceptions import PlannerError
from .onboarding import OnboardingRequest, TrainingService
from .seed import seed_templates

console = Console()

DATE_TYPE = click.DateTime(formats=["%Y-%m-%d"])


def today_option(func):
    return click.option(
        "--today", type=DATE_TYPE, default=None, help="Reference date (YYYY-MM-DD), defaults to the local date"
    )(func)


def resolve_today(value) -> date:
    return value.date() if value is not None else date.today()


def get_service() -> TrainingService:
    return TrainingService(RecordStore(get_db()))


def print_error(error: Exception):
    console.print(f"[red]❌ {escape(str(error))}[/red]")


def _choices(enum_cls):
    return click.Choice([m.value for m in enum_cls], case_sensitive=False)


@click.group()
def cli():
    """Triathlon training plan engine."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("init-db")
def init_db():
    """Create database tables."""
    try:
        config.validate()
    except ValueError as e:
        console.print(f"[red]❌ Configuration Error: {e}[/red]")
        return
    get_db().create_tables()
    console.print(f"[green]✅ Database ready at {config.DATABASE_URL}[/green]")


@cli.command()
def seed():
    """Load the starter workout template catalog."""
    added = seed_templates(RecordStore(get_db()))
    if added:
        console.print(f"[green]✅ Added {added} workout templates[/green]")
    else:
        console.print("[yellow]Template catalog already populated.[/yellow]")


@cli.command("add-event")
@click.option("--name", required=True, help="Event name")
@click.option("--date", "event_date", type=DATE_TYPE, required=True, help="Event date (YYYY-MM-DD)")
@click.option("--distance", type=_choices(DistanceClass), default=DistanceClass.OLYMPIC.value, help="Race distance")
def add_event(name, event_date, distance):
    """Add an event to the catalog."""
    try:
        event = RecordStore(get_db()).add_event(
            Event(name=name, event_date=event_date.date(), distance_class=parse_enum(DistanceClass, distance, "distance"))
        )
    except PlannerError as e:
        print_error(e)
        return
    console.print(f"[green]✅ Event {event.id}: {event.name} on {event.event_date}[/green]")


@cli.command()
@click.option("--athlete", required=True, help="Athlete id")
@click.option("--experience", type=_choices(ExperienceLevel), required=True, help="Experience level")
@click.option("--dob", type=DATE_TYPE, help="Date of birth (YYYY-MM-DD)")
@click.option("--max-hr", type=int, help="Known max heart rate")
@click.option("--resting-hr", type=int, help="Resting heart rate (enables Karvonen zones)")
@click.option("--event", "event_id", type=int, help="Target event id")
@click.option("--distance", type=_choices(DistanceClass), default=DistanceClass.OLYMPIC.value, help="Race distance")
@click.option("--full-plan", is_flag=True, help="Race-prep plan even without an event")
@click.option("--css", type=float, help="Critical swim speed (sec/100m)")
@click.option("--ftp", type=float, help="Functional threshold power (watts)")
@click.option("--threshold-pace", type=float, help="Threshold run pace (sec/mile)")
@today_option
def onboard(athlete, experience, dob, max_hr, resting_hr, event_id, distance, full_plan, css, ftp, threshold_pace, today):
    """Onboard an athlete and create their first plan."""
    console.print(Panel.fit(f"🏁 Onboarding {athlete}", style="bold blue"))
    request = OnboardingRequest(
        athlete_id=athlete,
        experience_level=experience,
        date_of_birth=dob.date() if dob else None,
        max_heart_rate=max_hr,
        resting_heart_rate=resting_hr,
        event_id=event_id,
        distance_class=distance,
        wants_full_plan=full_plan,
        critical_swim_speed=css,
        functional_threshold_power=ftp,
        threshold_run_pace=threshold_pace,
    )
    try:
        outcome = get_service().complete_onboarding(request, resolve_today(today))
    except PlannerError as e:
        print_error(e)
        return

    console.print(f"[green]✅ Plan {outcome.plan.id}: {outcome.plan.name} (starts {outcome.plan.start_date})[/green]")
    console.print(f"  • Volume tier: {outcome.volume_tier}")
    console.print(f"  • Max HR: {outcome.max_heart_rate} bpm")
    if outcome.calibration_required:
        console.print("[yellow]  • Calibration week scheduled: submit results with 'tri-planner calibrate'[/yellow]")

    table = Table(title=f"Heart Rate Zones ({outcome.zone_method.title()})", box=box.ROUNDED)
    table.add_column("Zone", style="bold")
    table.add_column("Name")
    table.add_column("Range", style="green")
    for number, zone in outcome.heart_rate_zones.items():
        table.add_row(str(number), zone.name, f"{zone.min_bpm}-{zone.max_bpm} bpm")
    console.print(table)


@cli.command()
@click.option("--athlete", required=True, help="Athlete id")
@click.option("--test", "test_type", type=_choices(CalibrationTest), required=True, help="Calibration test")
@click.option("--result", type=float, required=True, help="400m/1 mile time in seconds, or 20 min average watts")
@today_option
def calibrate(athlete, test_type, result, today):
    """Submit a calibration test result."""
    try:
        outcome = get_service().calibration.process_calibration_result(athlete, test_type, result, resolve_today(today))
    except PlannerError as e:
        print_error(e)
        return

    console.print(f"[green]✅ {outcome.metric}: {outcome.calculated_value}[/green]")
    if outcome.generated is not None:
        plan = outcome.generated.plan
        console.print(
            f"[green]🎯 All tests complete. Plan {plan.id} generated with "
            f"{outcome.generated.workouts_created} workouts over {plan.total_weeks} weeks.[/green]"
        )
    elif outcome.all_tests_complete:
        console.print("[black]All tests complete.[/black]")
    else:
        console.print("[yellow]More calibration tests remaining.[/yellow]")


def _print_feedback_outcome(outcome):
    if outcome.adaptation_triggered:
        entry = outcome.adaptation
        console.print(
            f"[orange1]⚠️  Fatigue threshold reached: {entry.workouts_affected} upcoming workouts adapted.[/orange1]"
        )
    elif outcome.strike_triggered:
        console.print(f"[yellow]Strike recorded ({outcome.current_strikes}/{config.FATIGUE_STRIKE_THRESHOLD}).[/yellow]")
    else:
        console.print(f"[green]✅ Recorded. Current strikes: {outcome.current_strikes}[/green]")


@cli.command()
@click.option("--athlete", required=True, help="Athlete id")
@click.option("--workout", "workout_id", type=int, required=True, help="Workout id")
@click.option("--rating", type=_choices(FeedbackRating), help="How it felt compared with the plan")
@click.option("--rpe", type=int, help="Perceived exertion 1-10")
@today_option
def complete(athlete, workout_id, rating, rpe, today):
    """Mark a workout completed."""
    try:
        outcome = get_service().adaptation.complete_workout(athlete, workout_id, resolve_today(today), rating, rpe)
    except PlannerError as e:
        print_error(e)
        return
    _print_feedback_outcome(outcome)


@cli.command()
@click.option("--athlete", required=True, help="Athlete id")
@click.option("--workout", "workout_id", type=int, required=True, help="Workout id")
@click.option("--reason", type=_choices(SkipReason), required=True, help="Why the workout was skipped")
@today_option
def skip(athlete, workout_id, reason, today):
    """Skip a workout with a reason."""
    try:
        outcome = get_service().adaptation.skip_workout(athlete, workout_id, reason, resolve_today(today))
    except PlannerError as e:
        print_error(e)
        return
    _print_feedback_outcome(outcome)


@cli.command()
@click.option("--athlete", required=True, help="Athlete id")
@click.option("--workout", "workout_id", type=int, required=True, help="Workout id")
@click.option("--rating", type=_choices(FeedbackRating), required=True, help="How it felt compared with the plan")
@click.option("--rpe", type=int, help="Perceived exertion 1-10")
@today_option
def feedback(athlete, workout_id, rating, rpe, today):
    """Submit post-workout feedback."""
    try:
        outcome = get_service().adaptation.submit_feedback(athlete, workout_id, rating, resolve_today(today), rpe)
    except PlannerError as e:
        print_error(e)
        return
    _print_feedback_outcome(outcome)


@cli.command()
@click.option("--athlete", required=True, help="Athlete id")
@click.option("--event", "event_id", type=int, required=True, help="Target event id")
@today_option
def transition(athlete, event_id, today):
    """Switch from maintenance to race prep for an event."""
    try:
        result = get_service().transition_to_event(athlete, event_id, resolve_today(today))
    except PlannerError as e:
        print_error(e)
        return
    console.print(
        f"[green]✅ {result.plan.name}: {result.workouts_created} workouts over {result.plan.total_weeks} weeks[/green]"
    )


@cli.command()
@click.option("--workers", type=int, help="Max concurrent athletes for the rescheduler")
@today_option
def daily(workers, today):
    """Run the daily rescheduler and maintenance top-up."""
    day = resolve_today(today)
    console.print(Panel.fit(f"🗓️  Daily jobs for {day}", style="bold blue"))
    try:
        result = get_service().run_daily_jobs(day, max_workers=workers)
    except PlannerError as e:
        print_error(e)
        return

    r = result.rescheduler
    table = Table(title="Rescheduler", box=box.ROUNDED)
    table.add_column("Processed")
    table.add_column("Rescheduled", style="green")
    table.add_column("Bumped", style="yellow")
    table.add_column("Missed", style="red")
    table.add_row(str(r.processed), str(r.rescheduled), str(r.bumped), str(r.missed))
    console.print(table)
    if r.skipped_athletes or r.failed_athletes:
        console.print(f"[orange1]⚠️  Skipped: {r.skipped_athletes}  Failed: {r.failed_athletes}[/orange1]")

    m = result.maintenance
    console.print(
        f"Maintenance: {m.plans_checked} plans checked, {m.weeks_generated} weeks added, "
        f"{m.workouts_created} workouts created"
    )


def _format_targets(workout) -> str:
    main = [s for s in workout.structure.steps if s.step_type.value in ("main", "interval")]
    if not main:
        return "-"
    step = main[0]
    if step.target_power:
        return f"{step.target_power} W"
    if step.target_pace:
        return format_pace(step.target_pace, "/100m" if workout.sport.value == "swim" else "/mi")
    if step.target_heart_rate:
        return f"{step.target_heart_rate} bpm"
    return f"Z{step.target_zone}" if step.target_zone else "-"


@cli.command()
@click.option("--athlete", required=True, help="Athlete id")
@click.option("--days", default=14, help="Number of days to show")
@today_option
def plan(athlete, days, today):
    """Show the athlete's upcoming workouts."""
    store = RecordStore(get_db())
    day = resolve_today(today)
    try:
        active = store.get_active_plan(athlete)
    except PlannerError as e:
        print_error(e)
        return
    if active is None:
        console.print(f"[yellow]No active plan for {athlete}.[/yellow]")
        return

    console.print(Panel.fit(f"📅 {active.name} ({active.kind.value}, {active.current_phase.value})", style="bold blue"))
    workouts = store.query_workouts(active.id, start=day, end=day + timedelta(days=days - 1))
    if not workouts:
        console.print("[yellow]No workouts in this window.[/yellow]")
        return

    table = Table(box=box.ROUNDED)
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Sport")
    table.add_column("Workout")
    table.add_column("Min", justify="right")
    table.add_column("P", justify="center")
    table.add_column("Target", style="green")
    table.add_column("Status")
    for w in workouts:
        title = w.structure.title + (" *" if w.was_adapted else "")
        table.add_row(
            str(w.id),
            w.scheduled_date.strftime("%a %m-%d"),
            w.sport.value,
            title,
            str(w.structure.total_duration // 60),
            str(w.priority),
            _format_targets(w),
            w.status.value,
        )
    console.print(table)


@cli.command()
@click.option("--athlete", required=True, help="Athlete id")
def fatigue(athlete):
    """Show the athlete's fatigue strike state."""
    report = get_service().adaptation.check_fatigue(athlete)
    style = "orange1" if report.is_near_threshold else "green"
    console.print(
        Panel(
            f"[bold]Strikes:[/bold] [{style}]{report.current_strikes}/{config.FATIGUE_STRIKE_THRESHOLD}[/{style}]\n"
            f"[bold]Consecutive clean sessions:[/bold] {report.consecutive_completes}\n"
            f"[bold]Adaptations:[/bold] {report.total_adaptations}\n"
            f"[bold]Last adaptation:[/bold] {report.last_adaptation_date or '-'}",
            title=f"Fatigue: {athlete}",
            box=box.ROUNDED,
        )
    )


@cli.command()
def reset():
    """Drop and recreate all tables."""
    if not click.confirm("This will delete all data. Are you sure?"):
        console.print("[black]Operation cancelled.[/black]")
        return
    db = get_db()
    db.drop_tables()
    db.create_tables()
    console.print("[green]✅ Database reset.[/green]")


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[orange1]Operation cancelled by user.[/orange1]")


if __name__ == "__main__":
    main()
