"""Database module for the training plan engine."""

from .database import Database, get_db, close_db
from .store import RecordStore, AthleteLocks, athlete_locks

__all__ = ["Database", "get_db", "close_db", "RecordStore", "AthleteLocks", "athlete_locks"]
