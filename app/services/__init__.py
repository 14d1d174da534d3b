from app.services.errors import DeliveryError, NotFoundError
from app.services.result import Result
from app.services.work_order_state import (
    InvalidTransitionError,
    WorkOrderStatus,
    can_transition,
    transition,
)
