"""Inspection domain operations used by the WhatsApp assistant tools.

Every function takes a SQLAlchemy session and returns plain dataclasses so the
tool layer can serialize them without touching ORM objects.
"""

import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import get_logger
from app.models import ChecklistLocation, ChecklistTask, ContractChecklistItem, Inspector, WorkOrder
from app.services import work_order_state
from app.services.errors import NotFoundError
from app.services.phone import phone_variants
from app.services.work_order_state import WorkOrderStatus

logger = get_logger("inspection_service")

DONE_SUFFIX = " (Done)"
_LOCATION_NOISE = re.compile(r"[^0-9a-z]")
_TIME_OF_DAY = re.compile(r"(\d{1,2}):?(\d{2})?\s*(am|pm)?")
JOB_DURATION = timedelta(hours=2)


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class LocationStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"


class JobUpdateType(str, Enum):
    CUSTOMER = "customer"
    ADDRESS = "address"
    TIME = "time"
    STATUS = "status"


class TaskCondition(str, Enum):
    GOOD = "GOOD"
    FAIR = "FAIR"
    UNSATISFACTORY = "UNSATISFACTORY"
    UN_OBSERVABLE = "UN_OBSERVABLE"
    NOT_APPLICABLE = "NOT_APPLICABLE"

    @classmethod
    def from_number(cls, number: int) -> "TaskCondition":
        """Map the 1-5 rating inspectors type in chat."""
        try:
            return _CONDITION_BY_NUMBER[number]
        except KeyError:
            raise ValueError(f"Condition number must be 1-5, got {number}") from None


_CONDITION_BY_NUMBER = {
    1: TaskCondition.GOOD,
    2: TaskCondition.FAIR,
    3: TaskCondition.UNSATISFACTORY,
    4: TaskCondition.UN_OBSERVABLE,
    5: TaskCondition.NOT_APPLICABLE,
}


@dataclass
class InspectorInfo:
    id: str
    name: str
    mobile_phone: Optional[str]


@dataclass
class JobSummary:
    id: str
    property_address: str
    customer_name: str
    inspection_type: str
    scheduled_start: datetime
    status: str
    priority: str
    notes: str


@dataclass
class WorkOrderDetail:
    id: str
    property_address: str
    customer_name: str
    inspection_type: str
    status: str
    inspector_names: list[str]
    scheduled_start: datetime
    scheduled_end: datetime
    actual_start: Optional[datetime]
    actual_end: Optional[datetime]


@dataclass
class LocationSummary:
    name: str
    display_name: str
    is_completed: bool
    total_tasks: int
    completed_tasks: int
    condition: Optional[str] = None


@dataclass
class TaskSummary:
    id: str
    display_index: int
    name: str
    location: str
    status: str
    condition: Optional[str]
    notes: Optional[str]
    entered_on: Optional[datetime]


@dataclass
class TaskMedia:
    id: str
    name: str
    location: str
    notes: Optional[str]
    photos: list[str]
    videos: list[str]
    photo_count: int
    video_count: int


@dataclass
class WorkOrderProgress:
    total_tasks: int
    completed_tasks: int
    pending_tasks: int


def normalize_location_name(name: str) -> str:
    """Case- and punctuation-insensitive key; tolerates a trailing '(Done)'."""
    key = name.strip().lower()
    if key.endswith(DONE_SUFFIX.strip().lower()):
        key = key[: -len(DONE_SUFFIX.strip())]
    return _LOCATION_NOISE.sub("", key)


def _inspector_info(inspector: Inspector) -> InspectorInfo:
    return InspectorInfo(id=inspector.id, name=inspector.name, mobile_phone=inspector.mobile_phone)


def get_inspector_by_phone(db: Session, phone: str) -> Optional[InspectorInfo]:
    """Find an ACTIVE inspector by mobile number, with or without '+'."""
    variants = phone_variants(phone)
    if not variants:
        return None
    inspector = (
        db.query(Inspector).filter(Inspector.mobile_phone.in_(variants), Inspector.status == "ACTIVE").first()
    )
    return _inspector_info(inspector) if inspector else None


def find_inspector(db: Session, name: str, phone: str) -> Optional[InspectorInfo]:
    """Identify an inspector who gave their details in chat: phone first, then name."""
    by_phone = get_inspector_by_phone(db, phone)
    if by_phone:
        return by_phone
    inspector = (
        db.query(Inspector)
        .filter(func.lower(Inspector.name) == name.strip().lower(), Inspector.status == "ACTIVE")
        .first()
    )
    return _inspector_info(inspector) if inspector else None


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    local_now = now.astimezone(ZoneInfo(settings.inspection_timezone))
    start_local = datetime.combine(local_now.date(), time.min, tzinfo=local_now.tzinfo)
    end_local = start_local + timedelta(days=1)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def _job_summary(work_order: WorkOrder) -> JobSummary:
    contract = work_order.contract
    return JobSummary(
        id=work_order.id,
        property_address=contract.full_address,
        customer_name=contract.customer.name,
        inspection_type=f"{contract.property_type or 'Property'} Inspection",
        scheduled_start=work_order.scheduled_start,
        status=work_order.status,
        priority="high" if work_order.status == WorkOrderStatus.STARTED.value else "normal",
        notes=work_order.remarks or "",
    )


def _work_order_detail(work_order: WorkOrder) -> WorkOrderDetail:
    contract = work_order.contract
    return WorkOrderDetail(
        id=work_order.id,
        property_address=contract.full_address,
        customer_name=contract.customer.name,
        inspection_type=f"{contract.property_type or 'Property'} Inspection",
        status=work_order.status,
        inspector_names=[inspector.name for inspector in work_order.inspectors],
        scheduled_start=work_order.scheduled_start,
        scheduled_end=work_order.scheduled_end,
        actual_start=work_order.actual_start,
        actual_end=work_order.actual_end,
    )


def list_today_jobs(db: Session, inspector_id: str, *, now: Optional[datetime] = None) -> list[JobSummary]:
    """Work orders assigned to the inspector whose scheduled start falls on today."""
    inspector = db.query(Inspector).filter(Inspector.id == inspector_id).first()
    if not inspector:
        raise NotFoundError("Inspector", inspector_id)

    day_start, day_end = _day_bounds(now or datetime.now(timezone.utc))
    work_orders = (
        db.query(WorkOrder)
        .join(WorkOrder.inspectors)
        .filter(
            Inspector.id == inspector_id,
            WorkOrder.scheduled_start >= day_start,
            WorkOrder.scheduled_start < day_end,
        )
        .order_by(WorkOrder.scheduled_start.asc())
        .all()
    )
    return [_job_summary(wo) for wo in work_orders]


def _load_work_order(db: Session, work_order_id: str) -> WorkOrder:
    work_order = db.query(WorkOrder).filter(WorkOrder.id == work_order_id).first()
    if not work_order:
        raise NotFoundError("Work order", work_order_id)
    return work_order


def get_work_order(db: Session, work_order_id: str) -> WorkOrderDetail:
    return _work_order_detail(_load_work_order(db, work_order_id))


def start_job(db: Session, work_order_id: str) -> WorkOrderDetail:
    """SCHEDULED -> STARTED. A second start is a no-op."""
    work_order = _load_work_order(db, work_order_id)
    if work_order_state.start(work_order):
        db.commit()
        logger.info("Work order started", extra={"context": {"work_order_id": work_order_id}})
    return _work_order_detail(work_order)


def complete_job(db: Session, work_order_id: str) -> WorkOrderDetail:
    """STARTED -> COMPLETED, stamping actual_end."""
    work_order = _load_work_order(db, work_order_id)
    work_order_state.complete(work_order)
    db.commit()
    logger.info("Work order completed", extra={"context": {"work_order_id": work_order_id}})
    return _work_order_detail(work_order)


def _grouped_locations(work_order: WorkOrder) -> dict[str, list[ChecklistLocation]]:
    """Checklist locations keyed by normalized name, in checklist order."""
    grouped: dict[str, list[ChecklistLocation]] = {}
    for item in work_order.contract.checklist_items:
        for location in item.locations:
            grouped.setdefault(normalize_location_name(location.name), []).append(location)
    return grouped


def _tasks_of(locations: list[ChecklistLocation]) -> list[ChecklistTask]:
    tasks = [task for location in locations for task in location.tasks]
    return sorted(tasks, key=lambda task: (task.created_on, task.id))


def list_locations(db: Session, work_order_id: str) -> list[LocationSummary]:
    work_order = _load_work_order(db, work_order_id)
    summaries = []
    for locations in _grouped_locations(work_order).values():
        tasks = _tasks_of(locations)
        completed = sum(1 for task in tasks if task.status == TaskStatus.COMPLETED.value)
        is_completed = bool(tasks) and completed == len(tasks)
        name = locations[0].name
        summaries.append(
            LocationSummary(
                name=name,
                display_name=f"{name}{DONE_SUFFIX}" if is_completed else name,
                is_completed=is_completed,
                total_tasks=len(tasks),
                completed_tasks=completed,
                condition=locations[0].condition,
            )
        )
    return summaries


def list_tasks(db: Session, work_order_id: str, location_name: str) -> list[TaskSummary]:
    """Tasks of one location in creation order. Unknown location gives []."""
    work_order = _load_work_order(db, work_order_id)
    locations = _grouped_locations(work_order).get(normalize_location_name(location_name), [])
    return [
        TaskSummary(
            id=task.id,
            display_index=index,
            name=task.name,
            location=task.location.name,
            status=task.status,
            condition=task.condition,
            notes=task.notes,
            entered_on=task.entered_on,
        )
        for index, task in enumerate(_tasks_of(locations), start=1)
    ]


def _refresh_location_status(location: ChecklistLocation) -> None:
    tasks = location.tasks
    done = bool(tasks) and all(task.status == TaskStatus.COMPLETED.value for task in tasks)
    location.status = LocationStatus.DONE.value if done else LocationStatus.PENDING.value


def _owning_work_order(
    db: Session, task: ChecklistTask, work_order_id: Optional[str]
) -> WorkOrder:
    contract_id = task.location.item.contract_id
    if work_order_id:
        work_order = _load_work_order(db, work_order_id)
        if work_order.contract_id != contract_id:
            raise NotFoundError("Task", f"{task.id} in work order {work_order_id}")
        return work_order

    work_orders = db.query(WorkOrder).filter(WorkOrder.contract_id == contract_id).all()
    for work_order in work_orders:
        if work_order.status == WorkOrderStatus.STARTED.value:
            return work_order
    if not work_orders:
        raise NotFoundError("Work order", f"for contract {contract_id}")
    return work_orders[0]


def complete_task(
    db: Session,
    task_id: str,
    notes: Optional[str] = None,
    *,
    condition: Optional[TaskCondition] = None,
    work_order_id: Optional[str] = None,
) -> bool:
    """Mark one task COMPLETED. Its work order must be STARTED."""
    task = db.query(ChecklistTask).filter(ChecklistTask.id == task_id).first()
    if not task:
        raise NotFoundError("Task", task_id)

    work_order_state.require_started(_owning_work_order(db, task, work_order_id))

    task.status = TaskStatus.COMPLETED.value
    task.entered_on = datetime.now(timezone.utc)
    if notes:
        task.notes = notes
    if condition:
        task.condition = condition.value
    _refresh_location_status(task.location)
    db.commit()

    logger.info("Task completed", extra={"context": {"task_id": task_id, "work_order_id": work_order_id}})
    return True


def _items_of(locations: list[ChecklistLocation]) -> list[ContractChecklistItem]:
    items: dict[str, ContractChecklistItem] = {}
    for location in locations:
        items.setdefault(location.item_id, location.item)
    return list(items.values())


def _stamp_items(items: list[ContractChecklistItem], entered_on: datetime, inspector_id: Optional[str]) -> None:
    for item in items:
        item.entered_on = entered_on
        if inspector_id:
            item.entered_by_id = inspector_id


def _started_locations(db: Session, work_order_id: str, location_name: str) -> list[ChecklistLocation]:
    work_order = _load_work_order(db, work_order_id)
    work_order_state.require_started(work_order)
    locations = _grouped_locations(work_order).get(normalize_location_name(location_name), [])
    if not locations:
        raise NotFoundError("Location", location_name)
    return locations


def complete_all_tasks(
    db: Session,
    work_order_id: str,
    location_name: str,
    notes: Optional[str] = None,
    *,
    inspector_id: Optional[str] = None,
) -> bool:
    """Complete every task of a location in one transaction with one shared timestamp.

    The owning checklist items are stamped with the same timestamp and the
    inspector who completed them.
    """
    work_order = _load_work_order(db, work_order_id)
    work_order_state.require_started(work_order)

    locations = _grouped_locations(work_order).get(normalize_location_name(location_name), [])
    tasks = _tasks_of(locations)
    if not tasks:
        raise NotFoundError("Tasks for location", location_name)

    entered_on = datetime.now(timezone.utc)
    try:
        for task in tasks:
            task.status = TaskStatus.COMPLETED.value
            task.entered_on = entered_on
            if notes:
                task.notes = notes
        for location in locations:
            _refresh_location_status(location)
        _stamp_items(_items_of(locations), entered_on, inspector_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Location completed",
        extra={
            "context": {
                "work_order_id": work_order_id,
                "location": location_name,
                "tasks": len(tasks),
                "inspector_id": inspector_id,
            }
        },
    )
    return True


def set_location_condition(
    db: Session, work_order_id: str, location_name: str, condition: TaskCondition
) -> bool:
    """Record the overall 1-5 rating of a location."""
    locations = _started_locations(db, work_order_id, location_name)
    for location in locations:
        location.condition = condition.value
    db.commit()
    logger.info(
        "Location condition set",
        extra={"context": {"work_order_id": work_order_id, "location": location_name, "condition": condition.value}},
    )
    return True


def add_location_remarks(
    db: Session,
    work_order_id: str,
    location_name: str,
    remarks: str,
    *,
    inspector_id: Optional[str] = None,
) -> bool:
    """Save the inspector's remarks on the checklist item(s) owning a location."""
    locations = _started_locations(db, work_order_id, location_name)
    items = _items_of(locations)
    for item in items:
        item.remarks = remarks
    _stamp_items(items, datetime.now(timezone.utc), inspector_id)
    db.commit()
    logger.info(
        "Location remarks saved",
        extra={"context": {"work_order_id": work_order_id, "location": location_name, "inspector_id": inspector_id}},
    )
    return True


def parse_time_of_day(value: str) -> time:
    """Parse '2pm', '14:30', '2:30 pm' or '1430' into a wall-clock time."""
    match = _TIME_OF_DAY.fullmatch(value.strip().lower())
    if not match:
        raise ValueError(f"Could not read a time from {value!r}")
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    meridiem = match.group(3)
    if meridiem == "pm" and hours != 12:
        hours += 12
    elif meridiem == "am" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        raise ValueError(f"Could not read a time from {value!r}")
    return time(hours, minutes)


def _reschedule(work_order: WorkOrder, new_value: str) -> None:
    tz = ZoneInfo(settings.inspection_timezone)
    current = work_order.scheduled_start or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    local_day = current.astimezone(tz).date()
    start = datetime.combine(local_day, parse_time_of_day(new_value), tzinfo=tz).astimezone(timezone.utc)
    work_order.scheduled_start = start
    work_order.scheduled_end = start + JOB_DURATION


def _change_status(work_order: WorkOrder, new_value: str) -> None:
    try:
        target = WorkOrderStatus(new_value.strip().upper())
    except ValueError:
        raise ValueError(f"Unknown work order status: {new_value}") from None

    if target == WorkOrderStatus.STARTED:
        work_order_state.start(work_order)
    elif target == WorkOrderStatus.COMPLETED:
        work_order_state.complete(work_order)
    elif target == WorkOrderStatus.CANCELLED:
        work_order_state.cancel(work_order)
    else:
        work_order.status = work_order_state.transition(WorkOrderStatus(work_order.status), target).value


def update_job_details(db: Session, work_order_id: str, update_type: JobUpdateType, new_value: str) -> WorkOrderDetail:
    """Correct a job's customer name, address, start time or status from chat."""
    work_order = _load_work_order(db, work_order_id)
    contract = work_order.contract
    new_value = new_value.strip()
    if not new_value:
        raise ValueError(f"A new {update_type.value} is required")

    if update_type == JobUpdateType.CUSTOMER:
        contract.customer.name = new_value
    elif update_type == JobUpdateType.ADDRESS:
        address, _, postal_code = (part.strip() for part in new_value.partition(","))
        contract.address = address
        contract.postal_code = postal_code or None
    elif update_type == JobUpdateType.TIME:
        _reschedule(work_order, new_value)
    else:
        _change_status(work_order, new_value)

    db.commit()
    logger.info(
        "Work order details updated",
        extra={"context": {"work_order_id": work_order_id, "update_type": update_type.value}},
    )
    return _work_order_detail(work_order)


def get_task_media(db: Session, task_id: str) -> TaskMedia:
    task = db.query(ChecklistTask).filter(ChecklistTask.id == task_id).first()
    if not task:
        raise NotFoundError("Task", task_id)
    photos = list(task.photos or [])
    videos = list(task.videos or [])
    return TaskMedia(
        id=task.id,
        name=task.name,
        location=task.location.name,
        notes=task.notes,
        photos=photos,
        videos=videos,
        photo_count=len(photos),
        video_count=len(videos),
    )


def get_work_order_progress(db: Session, work_order_id: str) -> WorkOrderProgress:
    work_order = _load_work_order(db, work_order_id)
    tasks = [task for locations in _grouped_locations(work_order).values() for task in _tasks_of(locations)]
    completed = sum(1 for task in tasks if task.status == TaskStatus.COMPLETED.value)
    return WorkOrderProgress(total_tasks=len(tasks), completed_tasks=completed, pending_tasks=len(tasks) - completed)

