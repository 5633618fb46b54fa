"""Database models for plans, workouts, baselines and fatigue tracking."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Boolean, Text, ForeignKey, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AthleteBaseline(Base):
    """Physiological baseline recording. Rows are never updated in place."""

    __tablename__ = "athlete_baselines"

    id = Column(Integer, primary_key=True)
    athlete_id = Column(String(50), nullable=False, index=True)
    critical_swim_speed = Column(Float)  # sec/100m
    threshold_run_pace = Column(Float)  # sec/mile
    functional_threshold_power = Column(Float)  # watts
    max_heart_rate = Column(Integer)  # bpm
    resting_heart_rate = Column(Integer)  # bpm
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AthleteBaseline(athlete_id={self.athlete_id}, recorded_at={self.recorded_at})>"


class TrainingPlan(Base):
    """One periodization effort for an athlete."""

    __tablename__ = "training_plans"

    id = Column(Integer, primary_key=True)
    athlete_id = Column(String(50), nullable=False, index=True)
    name = Column(String(255))
    kind = Column(String(20), nullable=False, default="race_prep")  # race_prep, maintenance
    status = Column(String(20), nullable=False, default="active")  # active, archived
    start_date = Column(Date, nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"))
    event_date = Column(Date)
    distance_class = Column(String(20), default="olympic")
    current_phase = Column(String(20), default="BASE")
    volume_tier = Column(Integer, nullable=False, default=1)
    total_weeks = Column(Integer)  # NULL for maintenance / calibration
    is_calibration = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<TrainingPlan(id={self.id}, athlete_id={self.athlete_id}, kind={self.kind}, status={self.status})>"


class ScheduledWorkout(Base):
    """A workout scheduled on a calendar date within a plan."""

    __tablename__ = "scheduled_workouts"
    __table_args__ = (
        Index("ix_scheduled_workouts_plan_date", "plan_id", "scheduled_date"),
        Index("ix_scheduled_workouts_date_status", "scheduled_date", "status"),
    )

    id = Column(Integer, primary_key=True)
    plan_id = Column(Integer, ForeignKey("training_plans.id"), nullable=False)
    scheduled_date = Column(Date, nullable=False)
    sport = Column(String(20), nullable=False)  # swim, bike, run, brick, strength
    priority_level = Column(Integer, nullable=False)  # 1=key, 2=quality, 3=easy
    status = Column(String(20), nullable=False, default="planned")
    is_calibration_test = Column(Boolean, default=False)
    structure_json = Column(Text, nullable=False)  # JSON: title, description, steps
    intensity_scalar = Column(Float, default=1.0)
    was_adapted = Column(Boolean, default=False)
    target_rpe = Column(Integer)
    template_id = Column(Integer, ForeignKey("workout_templates.id"))
    original_template_id = Column(Integer)
    skip_reason = Column(String(30))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ScheduledWorkout(id={self.id}, date={self.scheduled_date}, sport={self.sport}, status={self.status})>"


class FatigueStateRow(Base):
    """Strike counters for the adaptation engine (one row per athlete)."""

    __tablename__ = "fatigue_states"

    athlete_id = Column(String(50), primary_key=True)
    current_strikes = Column(Integer, nullable=False, default=0)
    last_strike_date = Column(Date)
    last_adaptation_date = Column(Date)
    consecutive_completes = Column(Integer, nullable=False, default=0)
    total_adaptations = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)  # optimistic concurrency
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<FatigueStateRow(athlete_id={self.athlete_id}, strikes={self.current_strikes})>"


class FeedbackLog(Base):
    """Post-workout feedback. Append-only."""

    __tablename__ = "feedback_records"

    id = Column(Integer, primary_key=True)
    athlete_id = Column(String(50), nullable=False, index=True)
    workout_id = Column(Integer, ForeignKey("scheduled_workouts.id"), nullable=False)
    rating = Column(String(10), nullable=False)  # easier, same, harder
    rpe = Column(Integer)  # 1-10
    created_at = Column(DateTime, default=datetime.utcnow)


class AdaptationLog(Base):
    """Audit record of each adaptation event. Append-only."""

    __tablename__ = "adaptation_logs"

    id = Column(Integer, primary_key=True)
    athlete_id = Column(String(50), nullable=False, index=True)
    triggered_at = Column(DateTime, default=datetime.utcnow)
    trigger_reason = Column(String(30), nullable=False)  # FATIGUE_STRIKES, RPE_EXCEEDED, COMPLIANCE
    strikes_at_trigger = Column(Integer, nullable=False)
    workouts_affected = Column(Integer, nullable=False)
    actions_json = Column(Text, nullable=False)

    def __repr__(self):
        return f"<AdaptationLog(athlete_id={self.athlete_id}, reason={self.trigger_reason})>"


class WorkoutTemplateRow(Base):
    """Read-only workout template catalog."""

    __tablename__ = "workout_templates"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    sport = Column(String(20), nullable=False, index=True)
    difficulty_tier = Column(Integer, nullable=False)
    description = Column(Text)
    steps_json = Column(Text, nullable=False)

    def __repr__(self):
        return f"<WorkoutTemplateRow(name={self.name}, sport={self.sport}, tier={self.difficulty_tier})>"


class EventRow(Base):
    """Read-only race/event catalog."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    event_date = Column(Date, nullable=False)
    distance_class = Column(String(20), default="olympic")
    swim_distance_m = Column(Float)
    bike_distance_m = Column(Float)
    run_distance_m = Column(Float)

    def __repr__(self):
        return f"<EventRow(name={self.name}, date={self.event_date})>"
