"""Domain types shared by the record store and the planning engine."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from .exceptions import InvalidInputError

E = TypeVar("E", bound=Enum)


class Sport(Enum):
    """Session disciplines."""

    SWIM = "swim"
    BIKE = "bike"
    RUN = "run"
    BRICK = "brick"  # bike immediately followed by run
    STRENGTH = "strength"


class StepType(Enum):
    """Kinds of step inside a workout structure."""

    WARMUP = "warmup"
    MAIN = "main"
    INTERVAL = "interval"
    REST = "rest"
    COOLDOWN = "cooldown"


class Phase(Enum):
    """Periodization phases, in training order."""

    BASE = "BASE"
    BUILD = "BUILD"
    PEAK = "PEAK"
    TAPER = "TAPER"


PHASE_ORDER = [Phase.BASE, Phase.BUILD, Phase.PEAK, Phase.TAPER]


class PlanKind(Enum):
    RACE_PREP = "race_prep"
    MAINTENANCE = "maintenance"


class PlanStatus(Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class WorkoutStatus(Enum):
    PLANNED = "planned"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    MISSED = "missed"


class FocusType(Enum):
    """Day focus; the value is the template difficulty tier it targets."""

    RECOVERY = 1
    ENDURANCE = 2
    TEMPO = 3
    INTERVALS = 4


class FeedbackRating(Enum):
    EASIER = "easier"
    SAME = "same"
    HARDER = "harder"


class SkipReason(Enum):
    TOO_TIRED = "TOO_TIRED"
    SICK = "SICK"
    SCHEDULE_CONFLICT = "SCHEDULE_CONFLICT"
    OTHER = "OTHER"


class CalibrationTest(Enum):
    SWIM_400M = "swim_400m"
    BIKE_20MIN = "bike_20min"
    RUN_1MILE = "run_1mile"


class ExperienceLevel(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class DistanceClass(Enum):
    SPRINT = "sprint"
    OLYMPIC = "olympic"
    HALF = "70.3"
    FULL = "140.6"


def parse_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Resolve a raw value to an enum member, rejecting anything unknown."""
    if isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if member.value == value:
            return member
        if isinstance(value, str) and isinstance(member.value, str) and member.value.lower() == value.lower():
            return member
    allowed = ", ".join(str(m.value) for m in enum_cls)
    raise InvalidInputError(
        f"Invalid {field_name}: {value!r} (expected one of {allowed})",
        details={"field": field_name, "value": value},
    )


@dataclass
class WorkoutStep:
    """One step of a workout. Targets are optional per dimension."""

    step_type: StepType
    duration: int  # seconds
    target_zone: Optional[int] = None
    description: str = ""
    target_pace: Optional[int] = None  # sec/100m for swim, sec/mile for run
    target_power: Optional[int] = None  # watts
    target_heart_rate: Optional[int] = None  # bpm
    target_rpe: Optional[int] = None
    percent_ftp: Optional[float] = None

    @property
    def is_high_intensity(self) -> bool:
        return self.step_type == StepType.INTERVAL or (self.target_zone or 0) >= 4

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.step_type.value,
            "duration": self.duration,
            "target_zone": self.target_zone,
            "description": self.description,
            "target_pace": self.target_pace,
            "target_power": self.target_power,
            "target_heart_rate": self.target_heart_rate,
            "target_rpe": self.target_rpe,
            "percent_ftp": self.percent_ftp,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkoutStep":
        return cls(
            step_type=StepType(data["type"]),
            duration=int(data.get("duration", 0)),
            target_zone=data.get("target_zone"),
            description=data.get("description", ""),
            target_pace=data.get("target_pace"),
            target_power=data.get("target_power"),
            target_heart_rate=data.get("target_heart_rate"),
            target_rpe=data.get("target_rpe"),
            percent_ftp=data.get("percent_ftp"),
        )


@dataclass
class WorkoutStructure:
    """Ordered steps of a scheduled workout plus display text."""

    title: str
    description: str
    steps: List[WorkoutStep] = field(default_factory=list)

    @property
    def total_duration(self) -> int:
        return sum(step.duration for step in self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "total_duration": self.total_duration,
            "steps": [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkoutStructure":
        return cls(
            title=data.get("title", ""),
            description=data.get("description", ""),
            steps=[WorkoutStep.from_dict(s) for s in data.get("steps", [])],
        )


@dataclass
class Template:
    """Catalog entry: abstract steps without athlete-specific targets."""

    name: str
    sport: Sport
    difficulty_tier: int
    steps: List[WorkoutStep]
    description: str = ""
    id: Optional[int] = None


@dataclass
class Event:
    name: str
    event_date: date
    distance_class: DistanceClass = DistanceClass.OLYMPIC
    swim_distance_m: Optional[float] = None
    bike_distance_m: Optional[float] = None
    run_distance_m: Optional[float] = None
    id: Optional[int] = None


@dataclass
class Baselines:
    """One baseline recording; the most recent row is authoritative."""

    athlete_id: str
    critical_swim_speed: Optional[float] = None  # sec/100m
    threshold_run_pace: Optional[float] = None  # sec/mile
    functional_threshold_power: Optional[float] = None  # watts
    max_heart_rate: Optional[int] = None
    resting_heart_rate: Optional[int] = None
    recorded_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def has_any_test(self) -> bool:
        return any([self.critical_swim_speed, self.threshold_run_pace, self.functional_threshold_power])

    @property
    def has_all_tests(self) -> bool:
        return all([self.critical_swim_speed, self.threshold_run_pace, self.functional_threshold_power])

    def with_updates(self, **changes) -> "Baselines":
        """Copy for a new recording; ids and timestamps are reassigned on insert."""
        return replace(self, id=None, recorded_at=None, **changes)


@dataclass
class Plan:
    athlete_id: str
    start_date: date
    kind: PlanKind = PlanKind.RACE_PREP
    status: PlanStatus = PlanStatus.ACTIVE
    name: str = ""
    event_id: Optional[int] = None
    event_date: Optional[date] = None
    distance_class: DistanceClass = DistanceClass.OLYMPIC
    current_phase: Phase = Phase.BASE
    volume_tier: int = 1
    total_weeks: Optional[int] = None
    is_calibration: bool = False
    id: Optional[int] = None


@dataclass
class Workout:
    plan_id: int
    scheduled_date: date
    sport: Sport
    priority: int
    structure: WorkoutStructure
    status: WorkoutStatus = WorkoutStatus.PLANNED
    is_calibration_test: bool = False
    intensity_scalar: float = 1.0
    was_adapted: bool = False
    target_rpe: Optional[int] = None
    template_id: Optional[int] = None
    original_template_id: Optional[int] = None
    skip_reason: Optional[SkipReason] = None
    id: Optional[int] = None

    @property
    def is_high_intensity(self) -> bool:
        """Interval/quality session: priority 1-2 with an interval step or zone >= 4."""
        if self.priority > 2:
            return False
        return any(step.is_high_intensity for step in self.structure.steps)


@dataclass
class FatigueState:
    athlete_id: str
    current_strikes: int = 0
    last_strike_date: Optional[date] = None
    last_adaptation_date: Optional[date] = None
    consecutive_completes: int = 0
    total_adaptations: int = 0
    version: int = 0


@dataclass
class FeedbackRecord:
    athlete_id: str
    workout_id: int
    rating: FeedbackRating
    rpe: Optional[int] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class AdaptationLogEntry:
    athlete_id: str
    trigger_reason: str
    strikes_at_trigger: int
    workouts_affected: int
    actions: Dict[str, Any]
    triggered_at: Optional[datetime] = None
    id: Optional[int] = None
