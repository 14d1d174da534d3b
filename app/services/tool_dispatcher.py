"""Runs the assistant's function calls against the inspection domain.

dispatch_tool never raises: every failure becomes {"success": False, "error": ...}
so the run can continue and the assistant can explain the problem.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.schemas.tools import (
    COMPLETE_ALL_TASKS,
    TOOL_ARGUMENTS,
    AddLocationRemarksArgs,
    CollectInspectorInfoArgs,
    CompleteJobArgs,
    CompleteTaskArgs,
    GetJobLocationsArgs,
    GetJobProgressArgs,
    GetTasksForLocationArgs,
    GetTaskMediaArgs,
    GetTodayJobsArgs,
    SelectJobArgs,
    SetLocationConditionArgs,
    ToolArguments,
    UpdateJobDetailsArgs,
)
from app.services import inspection_service
from app.services.errors import NotFoundError
from app.services.inspection_service import JobUpdateType, TaskCondition
from app.services.phone import with_country_code
from app.services.result import Result
from app.services.work_order_state import InvalidTransitionError

logger = get_logger("tool_dispatcher")

MEDIA_REQUIRED_CONDITIONS = (TaskCondition.FAIR, TaskCondition.UNSATISFACTORY)


@dataclass
class ToolContext:
    """Per-inspector conversation state the tools read and update."""

    phone: str
    inspector_id: Optional[str] = None
    inspector_name: Optional[str] = None
    work_order_id: Optional[str] = None
    current_location: Optional[str] = None

    @classmethod
    def from_session(cls, phone: str, stored: dict[str, str]) -> "ToolContext":
        return cls(
            phone=phone,
            inspector_id=stored.get("inspector_id"),
            inspector_name=stored.get("inspector_name"),
            work_order_id=stored.get("work_order_id"),
            current_location=stored.get("current_location"),
        )

    def to_session(self) -> dict[str, Optional[str]]:
        return {
            "inspector_id": self.inspector_id,
            "inspector_name": self.inspector_name,
            "work_order_id": self.work_order_id,
            "current_location": self.current_location,
        }


def _rows(items) -> list[dict[str, Any]]:
    return [asdict(item) for item in items]


def _get_today_jobs(db: Session, args: GetTodayJobsArgs, context: ToolContext) -> Result[dict]:
    inspector_id = context.inspector_id
    if args.inspectorPhone or not inspector_id:
        inspector = inspection_service.get_inspector_by_phone(db, args.inspectorPhone or context.phone)
        if not inspector:
            return Result.failure(
                "Inspector not found for this phone number. Ask for the inspector's name and phone number.",
                "inspector_not_found",
            )
        inspector_id = inspector.id
        context.inspector_id = inspector.id
        context.inspector_name = inspector.name

    jobs = inspection_service.list_today_jobs(db, inspector_id)
    return Result.success({"inspector": context.inspector_name, "count": len(jobs), "jobs": _rows(jobs)})


def _select_job(db: Session, args: SelectJobArgs, context: ToolContext) -> Result[dict]:
    job = inspection_service.start_job(db, args.jobId)
    locations = inspection_service.list_locations(db, args.jobId)
    context.work_order_id = args.jobId
    context.current_location = None
    return Result.success({"job": asdict(job), "locations": _rows(locations)})


def _get_job_locations(db: Session, args: GetJobLocationsArgs, context: ToolContext) -> Result[dict]:
    locations = inspection_service.list_locations(db, args.jobId)
    context.work_order_id = args.jobId
    return Result.success({"locations": _rows(locations)})


def _get_tasks_for_location(db: Session, args: GetTasksForLocationArgs, context: ToolContext) -> Result[dict]:
    tasks = inspection_service.list_tasks(db, args.workOrderId, args.location)
    context.work_order_id = args.workOrderId
    if tasks:
        context.current_location = args.location
    return Result.success({"location": args.location, "tasks": _rows(tasks)})


def _resolve_task_id(db: Session, task_id: str, work_order_id: Optional[str], location: Optional[str]) -> str:
    """Inspectors answer with the number shown in the list; map it back to the task id."""
    if not task_id.isdigit() or not work_order_id or not location:
        return task_id
    for task in inspection_service.list_tasks(db, work_order_id, location):
        if task.display_index == int(task_id):
            return task.id
    return task_id


def _complete_task(db: Session, args: CompleteTaskArgs, context: ToolContext) -> Result[dict]:
    if args.taskId == COMPLETE_ALL_TASKS:
        location = args.location or context.current_location
        if not location:
            return Result.failure("Location is required to complete all tasks", "missing_location")
        inspection_service.complete_all_tasks(
            db, args.workOrderId, location, args.notes, inspector_id=context.inspector_id
        )
        context.current_location = location
        remaining = inspection_service.list_locations(db, args.workOrderId)
        return Result.success(
            {"message": f"All tasks in {location} completed", "location": location, "locations": _rows(remaining)}
        )

    condition = TaskCondition.from_number(args.conditionNumber) if args.conditionNumber else None
    task_id = _resolve_task_id(db, args.taskId, args.workOrderId, args.location or context.current_location)
    inspection_service.complete_task(
        db, task_id, args.notes, condition=condition, work_order_id=args.workOrderId
    )
    return Result.success({"message": "Task completed", "taskId": task_id})


def _set_location_condition(db: Session, args: SetLocationConditionArgs, context: ToolContext) -> Result[dict]:
    location = args.location or context.current_location
    if not location:
        return Result.failure("No location selected. Ask which location to rate.", "missing_location")
    condition = TaskCondition.from_number(args.conditionNumber)
    inspection_service.set_location_condition(db, args.workOrderId, location, condition)
    context.work_order_id = args.workOrderId
    context.current_location = location
    return Result.success(
        {
            "location": location,
            "condition": condition.value,
            "mediaRequired": condition in MEDIA_REQUIRED_CONDITIONS,
            "locations": _rows(inspection_service.list_locations(db, args.workOrderId)),
        }
    )


def _add_location_remarks(db: Session, args: AddLocationRemarksArgs, context: ToolContext) -> Result[dict]:
    work_order_id = args.workOrderId or context.work_order_id
    location = args.location or context.current_location
    if not work_order_id or not location:
        return Result.failure("Select a job and a location before adding remarks", "missing_location")
    inspection_service.add_location_remarks(
        db, work_order_id, location, args.remarks, inspector_id=context.inspector_id
    )
    return Result.success(
        {
            "message": f"Remarks saved for {location}",
            "location": location,
            "locations": _rows(inspection_service.list_locations(db, work_order_id)),
        }
    )


def _collect_inspector_info(db: Session, args: CollectInspectorInfoArgs, context: ToolContext) -> Result[dict]:
    phone = with_country_code(args.phone)
    inspector = inspection_service.find_inspector(db, args.name, phone)
    if not inspector:
        return Result.failure(
            f"No active inspector found for {args.name} ({phone}). Please contact the office.",
            "inspector_not_found",
        )
    context.inspector_id = inspector.id
    context.inspector_name = inspector.name
    return Result.success({"inspector": asdict(inspector)})


def _complete_job(db: Session, args: CompleteJobArgs, context: ToolContext) -> Result[dict]:
    job = inspection_service.complete_job(db, args.jobId)
    if context.work_order_id == args.jobId:
        context.work_order_id = None
        context.current_location = None
    return Result.success({"job": asdict(job)})


def _get_job_progress(db: Session, args: GetJobProgressArgs, context: ToolContext) -> Result[dict]:
    progress = inspection_service.get_work_order_progress(db, args.jobId)
    return Result.success({"progress": asdict(progress)})


def _update_job_details(db: Session, args: UpdateJobDetailsArgs, context: ToolContext) -> Result[dict]:
    job = inspection_service.update_job_details(db, args.jobId, JobUpdateType(args.updateType), args.newValue)
    return Result.success({"message": f"Updated {args.updateType} to: {args.newValue}", "job": asdict(job)})


def _get_task_media(db: Session, args: GetTaskMediaArgs, context: ToolContext) -> Result[dict]:
    task_id = _resolve_task_id(
        db, args.taskId, args.workOrderId or context.work_order_id, args.location or context.current_location
    )
    return Result.success({"media": asdict(inspection_service.get_task_media(db, task_id))})


HANDLERS: dict[str, Callable[[Session, Any, ToolContext], Result[dict]]] = {
    "getTodayJobs": _get_today_jobs,
    "selectJob": _select_job,
    "getJobLocations": _get_job_locations,
    "getTasksForLocation": _get_tasks_for_location,
    "completeTask": _complete_task,
    "setLocationCondition": _set_location_condition,
    "addLocationRemarks": _add_location_remarks,
    "collectInspectorInfo": _collect_inspector_info,
    "completeJob": _complete_job,
    "getJobProgress": _get_job_progress,
    "updateJobDetails": _update_job_details,
    "getTaskMedia": _get_task_media,
}


def parse_arguments(name: str, raw_arguments: str | dict | None) -> ToolArguments:
    """Validate raw tool arguments against the tool's model. Raises ValueError/ValidationError."""
    if raw_arguments is None or raw_arguments == "":
        payload: Any = {}
    elif isinstance(raw_arguments, str):
        try:
            payload = json.loads(raw_arguments)
        except json.JSONDecodeError as e:
            raise ValueError(f"Arguments are not valid JSON: {e.msg}") from e
    else:
        payload = raw_arguments
    if not isinstance(payload, dict):
        raise ValueError("Arguments must be a JSON object")
    return TOOL_ARGUMENTS[name].model_validate(payload)


def _validation_message(name: str, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{field}: {item['msg']}")
    return f"Invalid arguments for {name}: " + "; ".join(problems)


def dispatch_tool(db: Session, name: str, raw_arguments, *, context: ToolContext) -> dict[str, Any]:
    """Validate and execute one tool call. Always returns a JSON-serializable envelope."""
    if name not in HANDLERS:
        logger.warning("Unknown tool requested", extra={"context": {"tool": name}})
        return Result.failure(f"Unknown tool: {name}", "unknown_tool").to_envelope()

    try:
        args = parse_arguments(name, raw_arguments)
    except ValidationError as e:
        return Result.failure(_validation_message(name, e), "invalid_arguments").to_envelope()
    except ValueError as e:
        return Result.failure(f"Invalid arguments for {name}: {e}", "invalid_arguments").to_envelope()

    log_context = {"tool": name, "phone": context.phone}
    try:
        result = HANDLERS[name](db, args, context)
    except (NotFoundError, InvalidTransitionError, ValueError) as e:
        db.rollback()
        logger.info(f"Tool rejected: {e}", extra={"context": log_context})
        result = Result.failure(str(e), type(e).__name__)
    except Exception as e:
        db.rollback()
        logger.error(f"Tool failed: {e}", extra={"context": log_context}, exc_info=True)
        result = Result.failure(f"{name} failed due to an internal error", "internal_error")

    if result.ok:
        logger.info("Tool executed", extra={"context": log_context})
    return result.to_envelope()
