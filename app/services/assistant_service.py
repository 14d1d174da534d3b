"""Assistant definition and one-time bootstrap on the AI service."""

import hashlib
import json
from typing import Optional

from app.config import settings
from app.logging_config import get_logger
from app.schemas.tools import build_tool_definitions
from app.services.llm import AssistantsProvider, OpenAIAssistantsProvider
from app.services.redis_client import get_redis

logger = get_logger("assistant_service")

ASSISTANT_NAME = "Property Inspection Assistant"
ASSISTANT_CACHE_PREFIX = "inspector:assistant:"

INSTRUCTIONS = """You are a property inspection assistant. Field inspectors chat with you on WhatsApp to work through their inspection jobs for the day.

Identifying the inspector:
- Call getTodayJobs first; the sender's phone number is used automatically.
- If the inspector is not found, ask for their full name and phone number (assume +65 when no country code is given) and call collectInspectorInfo.

Jobs:
- Greet the inspector by name and number each job [1], [2], [3] with address, time, customer and status.
- When the inspector answers with a number, map it to that job's id and call selectJob with the id, never the number.
- selectJob starts the job and returns its locations.

Locations and tasks:
- Show locations numbered [1], [2], ... using display_name, which already carries "(Done)" for finished locations.
- If a finished location is picked, say so and offer the pending ones.
- Show tasks numbered by display_index, mark completed ones with (done), and always add a last option "Mark ALL tasks complete".
- For one task, call completeTask with that task's id. For the last option call completeTask once with taskId "complete_all_tasks", the workOrderId and the location name.
- Pass any remarks as notes. A 1-5 rating is conditionNumber: 1 Good, 2 Fair, 3 Un-Satisfactory, 4 Un-Observable, 5 Not Applicable.
- After a location's tasks, the inspector may rate the whole location (setLocationCondition, 1-5) and add remarks (addLocationRemarks). Ask for remarks and photos when mediaRequired is true.
- getTaskMedia lists the photos and videos recorded for a task.
- If the inspector corrects the customer name, address, start time or status of a job, call updateJobDetails.
- When every location is done, offer to complete the job with completeJob. getJobProgress reports how far along the job is.

Style: short WhatsApp messages, numbered options in brackets, friendly and professional. If a tool returns success false, explain the error briefly and suggest the next step."""

_assistant_id: Optional[str] = None
_provider: Optional[AssistantsProvider] = None


def get_assistants_provider() -> AssistantsProvider:
    """Get or create the AI service client."""
    global _provider
    if _provider is None:
        _provider = OpenAIAssistantsProvider(
            api_key=settings.openai_api_key or "",
            base_url=settings.openai_base_url,
            timeout_seconds=settings.openai_timeout_seconds,
        )
    return _provider


def instructions_version() -> str:
    """Short hash of the instructions and tool schemas; a new version gets a new assistant."""
    payload = json.dumps(
        {"instructions": INSTRUCTIONS, "tools": build_tool_definitions(), "model": settings.openai_model},
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]


async def ensure_assistant_id(provider: AssistantsProvider, redis_client=None) -> str:
    """Return the assistant id, creating the assistant once per instructions version."""
    global _assistant_id

    if settings.openai_assistant_id:
        return settings.openai_assistant_id
    if _assistant_id:
        return _assistant_id

    redis_client = redis_client or get_redis()
    key = ASSISTANT_CACHE_PREFIX + instructions_version()
    cached = await redis_client.get(key)
    if cached:
        _assistant_id = cached
        return cached

    created = await provider.create_assistant(
        name=ASSISTANT_NAME,
        instructions=INSTRUCTIONS,
        tools=build_tool_definitions(),
        model=settings.openai_model,
    )
    if not await redis_client.set(key, created, nx=True):
        # Another instance registered one first; use theirs
        created = await redis_client.get(key) or created
    _assistant_id = created
    logger.info("Assistant ready", extra={"context": {"assistant_id": created, "key": key}})
    return created


def reset_assistant_cache() -> None:
    global _assistant_id
    _assistant_id = None
