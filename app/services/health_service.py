from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import ChecklistLocation, ChecklistTask, WorkOrder
from app.services.inspection_service import LocationStatus, TaskStatus
from app.services.redis_client import get_redis
from app.services.work_order_state import WorkOrderStatus

logger = get_logger("health_service")


def check_and_heal_inspections(db: Session) -> dict:
    """Check data invariants the assistant relies on and repair violations."""
    healed = []

    # Invariant 1: location is DONE iff it has tasks and all are COMPLETED
    for location in db.query(ChecklistLocation).all():
        tasks = location.tasks
        done = bool(tasks) and all(task.status == TaskStatus.COMPLETED.value for task in tasks)
        expected = LocationStatus.DONE.value if done else LocationStatus.PENDING.value
        if location.status != expected:
            healed.append(
                {
                    "location_id": location.id,
                    "issue": f"location_{location.status.lower()}_with_{'all' if done else 'open'}_tasks",
                    "action": f"set_{expected.lower()}",
                }
            )
            location.status = expected
            logger.warning(f"Healed location {location.id}: status -> {expected}")

    # Invariant 2: started/completed work orders carry their timestamps
    now = datetime.now(timezone.utc)
    for work_order in (
        db.query(WorkOrder)
        .filter(WorkOrder.status.in_([WorkOrderStatus.STARTED.value, WorkOrderStatus.COMPLETED.value]))
        .all()
    ):
        if work_order.actual_start is None:
            work_order.actual_start = now
            healed.append({"work_order_id": work_order.id, "issue": "no_actual_start", "action": "stamped_now"})
            logger.warning(f"Healed work order {work_order.id}: missing actual_start")
        if work_order.status == WorkOrderStatus.COMPLETED.value and work_order.actual_end is None:
            work_order.actual_end = now
            healed.append({"work_order_id": work_order.id, "issue": "no_actual_end", "action": "stamped_now"})
            logger.warning(f"Healed work order {work_order.id}: missing actual_end")

    if healed:
        db.commit()

    return {"healed_count": len(healed), "healed": healed, "checked_at": now.isoformat()}


async def check_redis(redis_client=None) -> bool:
    try:
        redis_client = redis_client or get_redis()
        return bool(await redis_client.ping())
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return False


async def get_system_health(db: Session, redis_client=None) -> dict:
    """Work order and task counts plus shared-store reachability."""
    work_orders = {
        status.value.lower(): db.query(WorkOrder).filter(WorkOrder.status == status.value).count()
        for status in WorkOrderStatus
    }
    tasks = {
        status.value.lower(): db.query(ChecklistTask).filter(ChecklistTask.status == status.value).count()
        for status in TaskStatus
    }
    return {
        "work_orders": work_orders,
        "tasks": tasks,
        "redis": "ok" if await check_redis(redis_client) else "unavailable",
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
