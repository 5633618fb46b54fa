"""Analysis module: plan generation, rescheduling and adaptation."""

from .adaptation import AdaptationEngine, check_for_strike
from .calibration import CalibrationWeekGenerator
from .maintenance import MaintenanceGenerator
from .periodization import PlanGenerator, get_phase_distribution
from .scheduler import PriorityRescheduler
from .targets import calculate_targets

__all__ = [
    "AdaptationEngine",
    "check_for_strike",
    "CalibrationWeekGenerator",
    "MaintenanceGenerator",
    "PlanGenerator",
    "get_phase_distribution",
    "PriorityRescheduler",
    "calculate_targets",
]
