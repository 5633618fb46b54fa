"""Plan lifecycle state machine.

    CALIBRATING -> ACTIVE_RACE_PREP | ACTIVE_MAINTENANCE -> ARCHIVED

Any active state may also go straight to ARCHIVED, and a maintenance plan
may be replaced by race prep when the athlete picks an event. Successor
plans are new rows, so every transition archives the source plan; the
caller then generates the successor.
"""

import logging
from enum import Enum

from .db.store import RecordStore
from .domain import Plan, PlanKind, PlanStatus
from .exceptions import StateInvariantError

logger = logging.getLogger(__name__)


class PlanState(Enum):
    CALIBRATING = "calibrating"
    ACTIVE_RACE_PREP = "active_race_prep"
    ACTIVE_MAINTENANCE = "active_maintenance"
    ARCHIVED = "archived"


ALLOWED_TRANSITIONS = {
    PlanState.CALIBRATING: {PlanState.ACTIVE_RACE_PREP, PlanState.ACTIVE_MAINTENANCE, PlanState.ARCHIVED},
    PlanState.ACTIVE_MAINTENANCE: {PlanState.ACTIVE_RACE_PREP, PlanState.ARCHIVED},
    PlanState.ACTIVE_RACE_PREP: {PlanState.ARCHIVED},
    PlanState.ARCHIVED: set(),
}


def plan_state(plan: Plan) -> PlanState:
    if plan.status == PlanStatus.ARCHIVED:
        return PlanState.ARCHIVED
    if plan.is_calibration:
        return PlanState.CALIBRATING
    if plan.kind == PlanKind.MAINTENANCE:
        return PlanState.ACTIVE_MAINTENANCE
    return PlanState.ACTIVE_RACE_PREP


def can_transition(plan: Plan, target: PlanState) -> bool:
    return target in ALLOWED_TRANSITIONS[plan_state(plan)]


def transition(store: RecordStore, plan: Plan, target: PlanState) -> PlanState:
    """Validate a lifecycle move and archive the source plan.

    Raises:
        StateInvariantError: if the move is not allowed from the plan's state
    """
    source = plan_state(plan)
    if target not in ALLOWED_TRANSITIONS[source]:
        raise StateInvariantError(
            f"Plan {plan.id} cannot move from {source.value} to {target.value}",
            details={"plan_id": plan.id, "from": source.value, "to": target.value},
        )

    store.archive_plan(plan.id)
    plan.status = PlanStatus.ARCHIVED
    logger.info(f"Plan {plan.id} ({plan.athlete_id}): {source.value} -> {target.value}")
    return target
