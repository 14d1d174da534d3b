from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from app.models.work_order import WorkOrder


class WorkOrderStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


VALID_TRANSITIONS = {
    WorkOrderStatus.SCHEDULED: [WorkOrderStatus.STARTED, WorkOrderStatus.CANCELLED],
    WorkOrderStatus.STARTED: [WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED],
    WorkOrderStatus.COMPLETED: [],
    WorkOrderStatus.CANCELLED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: WorkOrderStatus, to_state: WorkOrderStatus):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


class WorkOrderNotStartedError(InvalidTransitionError):
    def __init__(self, status: WorkOrderStatus):
        super().__init__(status, WorkOrderStatus.STARTED)
        self.args = (f"Work order is {status.value}, start the job first",)


def can_transition(from_state: WorkOrderStatus, to_state: WorkOrderStatus) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: WorkOrderStatus, to_state: WorkOrderStatus) -> WorkOrderStatus:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def start(work_order: WorkOrder, now: Optional[datetime] = None) -> bool:
    """Move a work order to STARTED.

    Returns False when it was already STARTED (no change). actual_start is
    only stamped the first time.
    """
    current = WorkOrderStatus(work_order.status)
    if current == WorkOrderStatus.STARTED:
        return False
    work_order.status = transition(current, WorkOrderStatus.STARTED).value
    if work_order.actual_start is None:
        work_order.actual_start = now or datetime.now(timezone.utc)
    return True


def complete(work_order: WorkOrder, now: Optional[datetime] = None) -> None:
    """STARTED -> COMPLETED, stamping actual_end."""
    current = WorkOrderStatus(work_order.status)
    work_order.status = transition(current, WorkOrderStatus.COMPLETED).value
    work_order.actual_end = now or datetime.now(timezone.utc)


def cancel(work_order: WorkOrder) -> None:
    current = WorkOrderStatus(work_order.status)
    work_order.status = transition(current, WorkOrderStatus.CANCELLED).value


def require_started(work_order: WorkOrder) -> None:
    """Raise unless the work order is STARTED; task mutations need a running job."""
    current = WorkOrderStatus(work_order.status)
    if current != WorkOrderStatus.STARTED:
        raise WorkOrderNotStartedError(current)
