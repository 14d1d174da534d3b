"""Argument models for the assistant's function tools.

Field names are the camelCase names the assistant sends. The same models
generate the JSON schemas registered on the assistant.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

COMPLETE_ALL_TASKS = "complete_all_tasks"


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GetTodayJobsArgs(ToolArguments):
    """List the inspection jobs scheduled today for the inspector."""

    inspectorPhone: Optional[str] = Field(
        default=None, description="Inspector's phone number. Defaults to the sender's number."
    )


class SelectJobArgs(ToolArguments):
    """Select a job to work on. Starts the job and returns its locations."""

    jobId: str = Field(min_length=1, description="Work order id from getTodayJobs")


class GetJobLocationsArgs(ToolArguments):
    """List the locations (rooms/areas) of a job with their completion status."""

    jobId: str = Field(min_length=1)


class GetTasksForLocationArgs(ToolArguments):
    """List the tasks to inspect in one location of a job."""

    workOrderId: str = Field(min_length=1)
    location: str = Field(min_length=1, description="Location name as returned by getJobLocations")


class CompleteTaskArgs(ToolArguments):
    """Mark a task as completed. Use taskId "complete_all_tasks" to complete every task in the location."""

    taskId: str = Field(min_length=1, description='Task id, or "complete_all_tasks" for the whole location')
    workOrderId: str = Field(min_length=1)
    notes: Optional[str] = Field(default=None, description="Inspector's remarks")
    location: Optional[str] = Field(
        default=None, description="Location name; required with complete_all_tasks unless one is already open"
    )
    conditionNumber: Optional[int] = Field(
        default=None,
        ge=1,
        le=5,
        description="1 Good, 2 Fair, 3 Un-Satisfactory, 4 Un-Observable, 5 Not Applicable",
    )


class SetLocationConditionArgs(ToolArguments):
    """Rate the overall condition of a location."""

    workOrderId: str = Field(min_length=1)
    location: Optional[str] = Field(default=None, description="Location name; defaults to the open location")
    conditionNumber: int = Field(
        ge=1,
        le=5,
        description="1 Good, 2 Fair, 3 Un-Satisfactory, 4 Un-Observable, 5 Not Applicable",
    )


class AddLocationRemarksArgs(ToolArguments):
    """Save the inspector's remarks for a location."""

    remarks: str = Field(min_length=1)
    workOrderId: Optional[str] = Field(default=None, description="Defaults to the selected job")
    location: Optional[str] = Field(default=None, description="Location name; defaults to the open location")


class UpdateJobDetailsArgs(ToolArguments):
    """Correct a job's customer name, address ("street, postal code"), start time or status."""

    jobId: str = Field(min_length=1)
    updateType: Literal["customer", "address", "time", "status"]
    newValue: str = Field(min_length=1, description='New value, e.g. "2:30pm" for time or "CANCELLED" for status')


class GetTaskMediaArgs(ToolArguments):
    """List the photos and videos recorded for a task."""

    taskId: str = Field(min_length=1, description="Task id, or its number in the current task list")
    workOrderId: Optional[str] = None
    location: Optional[str] = None


class CollectInspectorInfoArgs(ToolArguments):
    """Identify an inspector whose phone number is not registered, from their name and phone."""

    name: str = Field(min_length=1)
    phone: str = Field(min_length=1, description="Phone number; local numbers are assumed to be +65")


class CompleteJobArgs(ToolArguments):
    """Mark the whole job as completed once every location is done."""

    jobId: str = Field(min_length=1)


class GetJobProgressArgs(ToolArguments):
    """Show how many tasks of a job are completed and pending."""

    jobId: str = Field(min_length=1)


TOOL_ARGUMENTS: dict[str, type[ToolArguments]] = {
    "getTodayJobs": GetTodayJobsArgs,
    "selectJob": SelectJobArgs,
    "getJobLocations": GetJobLocationsArgs,
    "getTasksForLocation": GetTasksForLocationArgs,
    "completeTask": CompleteTaskArgs,
    "setLocationCondition": SetLocationConditionArgs,
    "addLocationRemarks": AddLocationRemarksArgs,
    "collectInspectorInfo": CollectInspectorInfoArgs,
    "completeJob": CompleteJobArgs,
    "getJobProgress": GetJobProgressArgs,
    "updateJobDetails": UpdateJobDetailsArgs,
    "getTaskMedia": GetTaskMediaArgs,
}


def build_tool_definitions() -> list[dict[str, Any]]:
    """Function tool definitions for the Assistants API."""
    definitions = []
    for name, model in TOOL_ARGUMENTS.items():
        parameters = model.model_json_schema()
        description = parameters.pop("description", "")
        parameters.pop("title", None)
        definitions.append(
            {
                "type": "function",
                "function": {"name": name, "description": description, "parameters": parameters},
            }
        )
    return definitions
