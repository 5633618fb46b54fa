"""Configuration management for the training plan engine."""

import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./tri_planner.db")
    STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))

    # Application
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Daily batch (rescheduler / maintenance top-up)
    RESCHEDULER_MAX_WORKERS: int = int(os.getenv("RESCHEDULER_MAX_WORKERS", "4"))
    ATHLETE_TIMEOUT_SECONDS: float = float(os.getenv("ATHLETE_TIMEOUT_SECONDS", "30"))
    BUMP_SEARCH_DAYS: int = int(os.getenv("BUMP_SEARCH_DAYS", "3"))

    # Adaptation ("2-strike" rule)
    FATIGUE_STRIKE_THRESHOLD: int = int(os.getenv("FATIGUE_STRIKE_THRESHOLD", "2"))
    POSITIVE_TREND_COMPLETES: int = int(os.getenv("POSITIVE_TREND_COMPLETES", "5"))
    INTENSITY_CUT_SCALAR: float = float(os.getenv("INTENSITY_CUT_SCALAR", "0.85"))
    VOLUME_CUT_MULTIPLIER: float = float(os.getenv("VOLUME_CUT_MULTIPLIER", "0.5"))
    INTENSITY_CUT_WORKOUTS: int = int(os.getenv("INTENSITY_CUT_WORKOUTS", "2"))
    VOLUME_CUT_WORKOUTS: int = int(os.getenv("VOLUME_CUT_WORKOUTS", "1"))

    # Plan horizons
    DEFAULT_EVENT_DAYS: int = int(os.getenv("DEFAULT_EVENT_DAYS", "84"))  # 12 weeks
    CALIBRATION_EVENT_DAYS: int = int(os.getenv("CALIBRATION_EVENT_DAYS", "90"))
    MAINTENANCE_BUFFER_DAYS: int = int(os.getenv("MAINTENANCE_BUFFER_DAYS", "14"))
    MAINTENANCE_BATCH_WEEKS: int = int(os.getenv("MAINTENANCE_BATCH_WEEKS", "2"))

    @classmethod
    def validate(cls) -> bool:
        """Validate engine configuration."""
        if cls.FATIGUE_STRIKE_THRESHOLD < 1:
            raise ValueError("FATIGUE_STRIKE_THRESHOLD must be at least 1")
        if not 0 < cls.INTENSITY_CUT_SCALAR <= 1:
            raise ValueError("INTENSITY_CUT_SCALAR must be in (0, 1]")
        if not 0 < cls.VOLUME_CUT_MULTIPLIER <= 1:
            raise ValueError("VOLUME_CUT_MULTIPLIER must be in (0, 1]")
        if cls.RESCHEDULER_MAX_WORKERS < 1:
            raise ValueError("RESCHEDULER_MAX_WORKERS must be positive")
        if cls.MAINTENANCE_BUFFER_DAYS < 1 or cls.MAINTENANCE_BATCH_WEEKS < 1:
            raise ValueError("Maintenance buffer and batch size must be positive")
        return True

    @classmethod
    def get_worker_count(cls, requested: Optional[int] = None) -> int:
        """Bounded worker count for the daily batch."""
        if requested is None:
            return cls.RESCHEDULER_MAX_WORKERS
        return max(1, min(requested, cls.RESCHEDULER_MAX_WORKERS))


config = Config()
