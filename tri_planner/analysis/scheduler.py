"""Priority rescheduler for missed workouts (daily batch).

Priority 1 = long/key, 2 = intervals/tempo, 3 = recovery/easy. Lower number
means more important. For each workout still planned on the previous day:

1. Priority 3 is marked missed.
2. If it and today's workout are both high intensity, it is marked missed.
3. If it is more important than today's workout it takes today's slot and
   today's workout is bumped into the next open day within the search window.
   With nothing on today it simply moves to today.
4. Otherwise it is marked missed.
"""

import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional

from ..config import config
from ..db.store import AthleteLocks, RecordStore, athlete_locks
from ..domain import SkipReason, Workout, WorkoutStatus

logger = logging.getLogger(__name__)

PRIORITY_NAMES = {1: "Long/Key", 2: "Intervals/Tempo", 3: "Recovery/Easy"}


@dataclass
class ReschedulerResult:
    processed: int = 0
    missed: int = 0
    rescheduled: int = 0
    bumped: int = 0
    skipped_athletes: List[str] = field(default_factory=list)
    failed_athletes: List[str] = field(default_factory=list)

    def merge(self, other: "ReschedulerResult"):
        self.processed += other.processed
        self.missed += other.missed
        self.rescheduled += other.rescheduled
        self.bumped += other.bumped


class PriorityRescheduler:
    """Resolves yesterday's unmet workouts against today's plan."""

    def __init__(self, store: RecordStore, locks: Optional[AthleteLocks] = None):
        self.store = store
        self.locks = locks or athlete_locks

    def process_missed_workouts(
        self,
        today: date,
        max_workers: Optional[int] = None,
        athlete_timeout: Optional[float] = None,
    ) -> ReschedulerResult:
        """Run the rescheduler for workouts left planned on `today - 1`.

        Athletes are processed concurrently on a bounded pool. An athlete whose
        resolution times out or fails is logged and skipped, and the batch
        carries on with the next athlete. A timed-out athlete is flagged so its
        worker stops before the next missed workout; a workout already being
        resolved (a swap and its bump) is allowed to finish.

        Args:
            today: Reference date
            max_workers: Worker cap (bounded by RESCHEDULER_MAX_WORKERS)
            athlete_timeout: Seconds to wait for each athlete

        Returns:
            ReschedulerResult with counts and skipped/failed athletes
        """
        yesterday = today - timedelta(days=1)
        timeout = athlete_timeout if athlete_timeout is not None else config.ATHLETE_TIMEOUT_SECONDS
        result = ReschedulerResult()

        missed_by_athlete = self.store.get_missed_workouts(yesterday)
        if not missed_by_athlete:
            logger.info(f"No missed workouts on {yesterday}")
            return result

        logger.info(
            f"Rescheduler for {yesterday}: {sum(len(w) for w in missed_by_athlete.values())} missed workout(s) "
            f"across {len(missed_by_athlete)} athlete(s)"
        )

        workers = config.get_worker_count(max_workers)
        if workers > 1 and self.store.db.is_in_memory:
            logger.info("In-memory database shares one connection, rescheduling athletes sequentially")
            workers = 1

        cancelled = {athlete_id: threading.Event() for athlete_id in missed_by_athlete}
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers)
        try:
            futures = {
                athlete_id: executor.submit(self._process_athlete, athlete_id, workouts, today, cancelled[athlete_id])
                for athlete_id, workouts in missed_by_athlete.items()
            }
            for athlete_id, future in futures.items():
                try:
                    result.merge(future.result(timeout=timeout))
                except concurrent.futures.TimeoutError:
                    cancelled[athlete_id].set()
                    logger.warning(f"Rescheduling timed out for athlete {athlete_id}, skipping")
                    result.skipped_athletes.append(athlete_id)
                except Exception as e:
                    logger.error(f"Rescheduling failed for athlete {athlete_id}: {e}")
                    result.failed_athletes.append(athlete_id)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            f"Rescheduler summary: processed {result.processed}, rescheduled {result.rescheduled}, "
            f"missed {result.missed}, bumped {result.bumped}, skipped {len(result.skipped_athletes)}, "
            f"failed {len(result.failed_athletes)}"
        )
        return result

    def _process_athlete(
        self,
        athlete_id: str,
        workouts: List[Workout],
        today: date,
        cancelled: Optional[threading.Event] = None,
    ) -> ReschedulerResult:
        result = ReschedulerResult()
        with self.locks.hold(athlete_id):
            for workout in workouts:
                if cancelled is not None and cancelled.is_set():
                    logger.warning(f"Stopping rescheduling for {athlete_id} after timeout, workout {workout.id} left planned")
                    break
                result.processed += 1
                self.resolve_missed_workout(workout, today, result)
        return result

    def resolve_missed_workout(self, missed: Workout, today: date, result: ReschedulerResult):
        """Apply the gates to one missed workout. Writes are sequential per athlete."""
        if missed.priority == 3:
            self._mark_missed(missed, "low priority")
            result.missed += 1
            return

        todays = self._workout_on(missed.plan_id, today)

        if todays is not None and missed.is_high_intensity and todays.is_high_intensity:
            self._mark_missed(missed, "cannot stack high-intensity sessions")
            result.missed += 1
            return

        if todays is None:
            self.store.update_workout(missed.id, scheduled_date=today)
            result.rescheduled += 1
            logger.info(f"Workout {missed.id} moved to {today}")
            return

        if missed.priority < todays.priority:
            self.store.update_workout(missed.id, scheduled_date=today)
            result.rescheduled += 1
            result.bumped += 1
            logger.info(
                f"Swapped: {missed.id} ({PRIORITY_NAMES[missed.priority]}) moved to {today}, "
                f"{todays.id} ({PRIORITY_NAMES[todays.priority]}) bumped"
            )
            self._handle_bumped(todays, today)
        else:
            self._mark_missed(missed, "not more important than today's workout")
            result.missed += 1

    def _workout_on(self, plan_id: int, day: date) -> Optional[Workout]:
        """Most important planned workout of a plan on `day`."""
        planned = self.store.query_workouts(plan_id, start=day, end=day, status=WorkoutStatus.PLANNED)
        if not planned:
            return None
        return min(planned, key=lambda w: (w.priority, w.id))

    def _handle_bumped(self, workout: Workout, today: date):
        """Move a bumped workout to the first open day in the window, or drop it if low priority."""
        for offset in range(1, config.BUMP_SEARCH_DAYS + 1):
            candidate = today + timedelta(days=offset)
            occupied = self.store.query_workouts(
                workout.plan_id, start=candidate, end=candidate, status=WorkoutStatus.PLANNED
            )
            if not occupied:
                self.store.update_workout(workout.id, scheduled_date=candidate)
                logger.info(f"  Bumped workout {workout.id} moved to open day {candidate}")
                return

        if workout.priority == 3:
            self._mark_missed(workout, "bumped with no open slot")
        else:
            # Left planned on its original date; the next run re-evaluates it.
            logger.info(f"  Bumped workout {workout.id} stays on {workout.scheduled_date} (no open slot)")

    def _mark_missed(self, workout: Workout, reason: str):
        self.store.update_workout(workout.id, status=WorkoutStatus.MISSED, skip_reason=SkipReason.SCHEDULE_CONFLICT)
        logger.info(f"  Workout {workout.id} marked missed: {reason}")

