"""Record store used by the planning engine.

All reads return plain domain dataclasses; ORM rows never leave a session.
Write failures surface as PersistenceError.
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterator, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain import (
    AdaptationLogEntry,
    Baselines,
    DistanceClass,
    Event,
    FatigueState,
    FeedbackRecord,
    Phase,
    Plan,
    PlanKind,
    PlanStatus,
    SkipReason,
    Sport,
    Template,
    Workout,
    WorkoutStatus,
    WorkoutStep,
    WorkoutStructure,
)
from ..exceptions import ConcurrentModificationError, NotFoundError, PersistenceError, StateInvariantError
from .database import Database
from .models import (
    AdaptationLog,
    AthleteBaseline,
    EventRow,
    FatigueStateRow,
    FeedbackLog,
    ScheduledWorkout,
    TrainingPlan,
    WorkoutTemplateRow,
)

logger = logging.getLogger(__name__)


class AthleteLocks:
    """Registry of re-entrant locks, one per athlete.

    Every entry point that mutates an athlete's plan or fatigue state holds
    the athlete's lock for the whole read-modify-write sequence.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, athlete_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(athlete_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[athlete_id] = lock
            return lock

    @contextmanager
    def hold(self, athlete_id: str) -> Iterator[None]:
        lock = self.get(athlete_id)
        with lock:
            yield


athlete_locks = AthleteLocks()


# Row <-> dataclass mapping

def _plan_from_row(row: TrainingPlan) -> Plan:
    return Plan(
        id=row.id,
        athlete_id=row.athlete_id,
        name=row.name or "",
        kind=PlanKind(row.kind),
        status=PlanStatus(row.status),
        start_date=row.start_date,
        event_id=row.event_id,
        event_date=row.event_date,
        distance_class=DistanceClass(row.distance_class or DistanceClass.OLYMPIC.value),
        current_phase=Phase(row.current_phase or Phase.BASE.value),
        volume_tier=row.volume_tier,
        total_weeks=row.total_weeks,
        is_calibration=bool(row.is_calibration),
    )


def _workout_from_row(row: ScheduledWorkout) -> Workout:
    return Workout(
        id=row.id,
        plan_id=row.plan_id,
        scheduled_date=row.scheduled_date,
        sport=Sport(row.sport),
        priority=row.priority_level,
        status=WorkoutStatus(row.status),
        is_calibration_test=bool(row.is_calibration_test),
        structure=WorkoutStructure.from_dict(json.loads(row.structure_json)),
        intensity_scalar=row.intensity_scalar if row.intensity_scalar is not None else 1.0,
        was_adapted=bool(row.was_adapted),
        target_rpe=row.target_rpe,
        template_id=row.template_id,
        original_template_id=row.original_template_id,
        skip_reason=SkipReason(row.skip_reason) if row.skip_reason else None,
    )


def _workout_to_row(workout: Workout) -> ScheduledWorkout:
    return ScheduledWorkout(
        plan_id=workout.plan_id,
        scheduled_date=workout.scheduled_date,
        sport=workout.sport.value,
        priority_level=workout.priority,
        status=workout.status.value,
        is_calibration_test=workout.is_calibration_test,
        structure_json=json.dumps(workout.structure.to_dict()),
        intensity_scalar=workout.intensity_scalar,
        was_adapted=workout.was_adapted,
        target_rpe=workout.target_rpe,
        template_id=workout.template_id,
        original_template_id=workout.original_template_id,
        skip_reason=workout.skip_reason.value if workout.skip_reason else None,
    )


def _baselines_from_row(row: AthleteBaseline) -> Baselines:
    return Baselines(
        id=row.id,
        athlete_id=row.athlete_id,
        critical_swim_speed=row.critical_swim_speed,
        threshold_run_pace=row.threshold_run_pace,
        functional_threshold_power=row.functional_threshold_power,
        max_heart_rate=row.max_heart_rate,
        resting_heart_rate=row.resting_heart_rate,
        recorded_at=row.recorded_at,
    )


def _fatigue_from_row(row: FatigueStateRow) -> FatigueState:
    return FatigueState(
        athlete_id=row.athlete_id,
        current_strikes=row.current_strikes,
        last_strike_date=row.last_strike_date,
        last_adaptation_date=row.last_adaptation_date,
        consecutive_completes=row.consecutive_completes,
        total_adaptations=row.total_adaptations,
        version=row.version,
    )


def _template_from_row(row: WorkoutTemplateRow) -> Template:
    return Template(
        id=row.id,
        name=row.name,
        sport=Sport(row.sport),
        difficulty_tier=row.difficulty_tier,
        description=row.description or "",
        steps=[WorkoutStep.from_dict(s) for s in json.loads(row.steps_json)],
    )


def _event_from_row(row: EventRow) -> Event:
    return Event(
        id=row.id,
        name=row.name,
        event_date=row.event_date,
        distance_class=DistanceClass(row.distance_class or DistanceClass.OLYMPIC.value),
        swim_distance_m=row.swim_distance_m,
        bike_distance_m=row.bike_distance_m,
        run_distance_m=row.run_distance_m,
    )


# Partial-update field name -> (column, converter)
_WORKOUT_FIELDS = {
    "scheduled_date": ("scheduled_date", lambda v: v),
    "status": ("status", lambda v: v.value),
    "priority": ("priority_level", int),
    "structure": ("structure_json", lambda v: json.dumps(v.to_dict())),
    "intensity_scalar": ("intensity_scalar", float),
    "was_adapted": ("was_adapted", bool),
    "target_rpe": ("target_rpe", lambda v: v),
    "template_id": ("template_id", lambda v: v),
    "original_template_id": ("original_template_id", lambda v: v),
    "skip_reason": ("skip_reason", lambda v: v.value if v else None),
}


class RecordStore:
    """Repository over the relational schema."""

    def __init__(self, db: Database):
        self.db = db

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.db.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Record store operation failed: {e}")
            raise PersistenceError(f"Record store operation failed: {e}") from e

    # Plans

    def get_active_plan(self, athlete_id: str) -> Optional[Plan]:
        with self._session() as session:
            rows = (
                session.query(TrainingPlan)
                .filter(TrainingPlan.athlete_id == athlete_id, TrainingPlan.status == PlanStatus.ACTIVE.value)
                .all()
            )
            if len(rows) > 1:
                raise StateInvariantError(
                    f"Athlete {athlete_id} has {len(rows)} active plans",
                    details={"athlete_id": athlete_id, "plan_ids": [r.id for r in rows]},
                )
            return _plan_from_row(rows[0]) if rows else None

    def create_plan(self, plan: Plan) -> Plan:
        """Insert a plan, archiving every other active plan of the athlete in the same transaction."""
        with self._session() as session:
            archived = (
                session.query(TrainingPlan)
                .filter(TrainingPlan.athlete_id == plan.athlete_id, TrainingPlan.status == PlanStatus.ACTIVE.value)
                .update({TrainingPlan.status: PlanStatus.ARCHIVED.value}, synchronize_session=False)
            )
            if archived:
                logger.info(f"Archived {archived} active plan(s) for athlete {plan.athlete_id}")

            row = TrainingPlan(
                athlete_id=plan.athlete_id,
                name=plan.name,
                kind=plan.kind.value,
                status=PlanStatus.ACTIVE.value,
                start_date=plan.start_date,
                event_id=plan.event_id,
                event_date=plan.event_date,
                distance_class=plan.distance_class.value,
                current_phase=plan.current_phase.value,
                volume_tier=plan.volume_tier,
                total_weeks=plan.total_weeks,
                is_calibration=plan.is_calibration,
            )
            session.add(row)
            session.flush()
            return _plan_from_row(row)

    def archive_plan(self, plan_id: int) -> None:
        with self._session() as session:
            row = session.query(TrainingPlan).filter_by(id=plan_id).first()
            if row is None:
                raise NotFoundError(f"Plan {plan_id} not found", details={"plan_id": plan_id})
            row.status = PlanStatus.ARCHIVED.value

    def set_current_phase(self, plan_id: int, phase: Phase) -> None:
        with self._session() as session:
            session.query(TrainingPlan).filter_by(id=plan_id).update({TrainingPlan.current_phase: phase.value})

    def get_plan(self, plan_id: int) -> Optional[Plan]:
        with self._session() as session:
            row = session.query(TrainingPlan).filter_by(id=plan_id).first()
            return _plan_from_row(row) if row else None

    def list_plans(self, athlete_id: str) -> List[Plan]:
        with self._session() as session:
            rows = session.query(TrainingPlan).filter_by(athlete_id=athlete_id).order_by(TrainingPlan.id).all()
            return [_plan_from_row(r) for r in rows]

    def list_active_plans(self, kind: Optional[PlanKind] = None) -> List[Plan]:
        with self._session() as session:
            query = session.query(TrainingPlan).filter(TrainingPlan.status == PlanStatus.ACTIVE.value)
            if kind is not None:
                query = query.filter(TrainingPlan.kind == kind.value)
            return [_plan_from_row(r) for r in query.order_by(TrainingPlan.id).all()]

    # Workouts

    def insert_workouts(self, workouts: Sequence[Workout]) -> List[Workout]:
        """Insert a batch of workouts in one transaction."""
        if not workouts:
            return []
        with self._session() as session:
            rows = [_workout_to_row(w) for w in workouts]
            session.add_all(rows)
            session.flush()
            return [_workout_from_row(r) for r in rows]

    def get_workout(self, workout_id: int) -> Optional[Workout]:
        with self._session() as session:
            row = session.query(ScheduledWorkout).filter_by(id=workout_id).first()
            return _workout_from_row(row) if row else None

    def update_workout(self, workout_id: int, **fields) -> Workout:
        """Apply a partial update; field names follow the Workout dataclass."""
        unknown = set(fields) - set(_WORKOUT_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update workout fields: {sorted(unknown)}")

        with self._session() as session:
            row = session.query(ScheduledWorkout).filter_by(id=workout_id).first()
            if row is None:
                raise NotFoundError(f"Workout {workout_id} not found", details={"workout_id": workout_id})
            for name, value in fields.items():
                column, convert = _WORKOUT_FIELDS[name]
                setattr(row, column, convert(value) if value is not None else None)
            session.flush()
            return _workout_from_row(row)

    def delete_workout(self, workout_id: int) -> bool:
        with self._session() as session:
            deleted = session.query(ScheduledWorkout).filter_by(id=workout_id).delete()
            return deleted > 0

    def delete_workouts_from(self, plan_id: int, from_date: date) -> int:
        """Delete a plan's workouts dated on or after from_date."""
        with self._session() as session:
            return (
                session.query(ScheduledWorkout)
                .filter(ScheduledWorkout.plan_id == plan_id, ScheduledWorkout.scheduled_date >= from_date)
                .delete(synchronize_session=False)
            )

    def query_workouts(
        self,
        plan_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[WorkoutStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Workout]:
        """Workouts of a plan in date order, optionally bounded (inclusive) and filtered by status."""
        with self._session() as session:
            query = session.query(ScheduledWorkout).filter(ScheduledWorkout.plan_id == plan_id)
            if start is not None:
                query = query.filter(ScheduledWorkout.scheduled_date >= start)
            if end is not None:
                query = query.filter(ScheduledWorkout.scheduled_date <= end)
            if status is not None:
                query = query.filter(ScheduledWorkout.status == status.value)
            query = query.order_by(ScheduledWorkout.scheduled_date, ScheduledWorkout.id)
            if limit is not None:
                query = query.limit(limit)
            return [_workout_from_row(r) for r in query.all()]

    def get_missed_workouts(self, day: date) -> Dict[str, List[Workout]]:
        """Still-planned workouts on `day` in active plans, grouped by athlete."""
        with self._session() as session:
            rows = (
                session.query(ScheduledWorkout, TrainingPlan.athlete_id)
                .join(TrainingPlan, ScheduledWorkout.plan_id == TrainingPlan.id)
                .filter(
                    ScheduledWorkout.scheduled_date == day,
                    ScheduledWorkout.status == WorkoutStatus.PLANNED.value,
                    TrainingPlan.status == PlanStatus.ACTIVE.value,
                )
                .order_by(TrainingPlan.athlete_id, ScheduledWorkout.id)
                .all()
            )
            grouped: Dict[str, List[Workout]] = {}
            for row, athlete_id in rows:
                grouped.setdefault(athlete_id, []).append(_workout_from_row(row))
            return grouped

    def latest_workout_date(self, plan_id: int) -> Optional[date]:
        with self._session() as session:
            return (
                session.query(func.max(ScheduledWorkout.scheduled_date))
                .filter(ScheduledWorkout.plan_id == plan_id)
                .scalar()
            )

    # Baselines

    def get_latest_baselines(self, athlete_id: str) -> Optional[Baselines]:
        with self._session() as session:
            row = (
                session.query(AthleteBaseline)
                .filter_by(athlete_id=athlete_id)
                .order_by(AthleteBaseline.recorded_at.desc(), AthleteBaseline.id.desc())
                .first()
            )
            return _baselines_from_row(row) if row else None

    def upsert_baselines(self, baselines: Baselines) -> Baselines:
        """Record a new baseline row. Existing rows are never modified."""
        with self._session() as session:
            row = AthleteBaseline(
                athlete_id=baselines.athlete_id,
                critical_swim_speed=baselines.critical_swim_speed,
                threshold_run_pace=baselines.threshold_run_pace,
                functional_threshold_power=baselines.functional_threshold_power,
                max_heart_rate=baselines.max_heart_rate,
                resting_heart_rate=baselines.resting_heart_rate,
            )
            if baselines.recorded_at is not None:
                row.recorded_at = baselines.recorded_at
            session.add(row)
            session.flush()
            return _baselines_from_row(row)

    # Fatigue state

    def get_fatigue_state(self, athlete_id: str) -> FatigueState:
        """Current fatigue state; a fresh zeroed state if none has been saved."""
        with self._session() as session:
            row = session.query(FatigueStateRow).filter_by(athlete_id=athlete_id).first()
            return _fatigue_from_row(row) if row else FatigueState(athlete_id=athlete_id)

    def save_fatigue_state(self, state: FatigueState) -> FatigueState:
        """Write the state if nobody else has since the read; returns it with the new version."""
        values = {
            FatigueStateRow.current_strikes: state.current_strikes,
            FatigueStateRow.last_strike_date: state.last_strike_date,
            FatigueStateRow.last_adaptation_date: state.last_adaptation_date,
            FatigueStateRow.consecutive_completes: state.consecutive_completes,
            FatigueStateRow.total_adaptations: state.total_adaptations,
            FatigueStateRow.version: state.version + 1,
        }
        with self._session() as session:
            updated = (
                session.query(FatigueStateRow)
                .filter(FatigueStateRow.athlete_id == state.athlete_id, FatigueStateRow.version == state.version)
                .update(values, synchronize_session=False)
            )
            if not updated:
                exists = session.query(FatigueStateRow.athlete_id).filter_by(athlete_id=state.athlete_id).first()
                if exists is not None or state.version != 0:
                    raise ConcurrentModificationError(
                        f"Fatigue state for {state.athlete_id} changed since version {state.version}",
                        details={"athlete_id": state.athlete_id, "version": state.version},
                    )
                session.add(
                    FatigueStateRow(
                        athlete_id=state.athlete_id,
                        current_strikes=state.current_strikes,
                        last_strike_date=state.last_strike_date,
                        last_adaptation_date=state.last_adaptation_date,
                        consecutive_completes=state.consecutive_completes,
                        total_adaptations=state.total_adaptations,
                        version=1,
                    )
                )
        state.version += 1
        return state

    # Feedback and adaptation logs

    def insert_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        with self._session() as session:
            row = FeedbackLog(
                athlete_id=record.athlete_id,
                workout_id=record.workout_id,
                rating=record.rating.value,
                rpe=record.rpe,
            )
            session.add(row)
            session.flush()
            record.id = row.id
            record.created_at = row.created_at
            return record

    def insert_adaptation_log(self, entry: AdaptationLogEntry) -> AdaptationLogEntry:
        with self._session() as session:
            row = AdaptationLog(
                athlete_id=entry.athlete_id,
                trigger_reason=entry.trigger_reason,
                strikes_at_trigger=entry.strikes_at_trigger,
                workouts_affected=entry.workouts_affected,
                actions_json=json.dumps(entry.actions),
            )
            session.add(row)
            session.flush()
            entry.id = row.id
            entry.triggered_at = row.triggered_at
            return entry

    def list_adaptation_logs(self, athlete_id: str) -> List[AdaptationLogEntry]:
        with self._session() as session:
            rows = session.query(AdaptationLog).filter_by(athlete_id=athlete_id).order_by(AdaptationLog.id).all()
            return [
                AdaptationLogEntry(
                    id=r.id,
                    athlete_id=r.athlete_id,
                    trigger_reason=r.trigger_reason,
                    strikes_at_trigger=r.strikes_at_trigger,
                    workouts_affected=r.workouts_affected,
                    actions=json.loads(r.actions_json),
                    triggered_at=r.triggered_at,
                )
                for r in rows
            ]

    # Catalogs

    def list_templates(self, sport: Optional[Sport] = None) -> List[Template]:
        with self._session() as session:
            query = session.query(WorkoutTemplateRow)
            if sport is not None:
                query = query.filter(WorkoutTemplateRow.sport == sport.value)
            return [_template_from_row(r) for r in query.order_by(WorkoutTemplateRow.id).all()]

    def add_templates(self, templates: Sequence[Template]) -> List[Template]:
        with self._session() as session:
            rows = [
                WorkoutTemplateRow(
                    name=t.name,
                    sport=t.sport.value,
                    difficulty_tier=t.difficulty_tier,
                    description=t.description,
                    steps_json=json.dumps([s.to_dict() for s in t.steps]),
                )
                for t in templates
            ]
            session.add_all(rows)
            session.flush()
            return [_template_from_row(r) for r in rows]

    def get_event(self, event_id: int) -> Optional[Event]:
        with self._session() as session:
            row = session.query(EventRow).filter_by(id=event_id).first()
            return _event_from_row(row) if row else None

    def add_event(self, event: Event) -> Event:
        with self._session() as session:
            row = EventRow(
                name=event.name,
                event_date=event.event_date,
                distance_class=event.distance_class.value,
                swim_distance_m=event.swim_distance_m,
                bike_distance_m=event.bike_distance_m,
                run_distance_m=event.run_distance_m,
            )
            session.add(row)
            session.flush()
            return _event_from_row(row)
