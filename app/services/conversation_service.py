"""One inspector turn: session lookup, assistant run, context bookkeeping."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.logging_config import TurnLogger, get_logger
from app.services import inspection_service
from app.services.llm import AssistantsProvider, LLMServiceError
from app.services.result import Result
from app.services.run_controller import FALLBACK_REPLY, RunController
from app.services.session_store import SessionStore
from app.services.tool_dispatcher import ToolContext

logger = get_logger("conversation_service")


@dataclass
class TurnReply:
    thread_id: Optional[str]
    text: str
    result: Result[str]


async def get_or_create_thread(
    provider: AssistantsProvider, store: SessionStore, phone: str, log: TurnLogger
) -> tuple[str, bool]:
    """Return (thread_id, created). Concurrent first messages converge on one thread."""
    thread_id = await store.resolve(phone)
    if thread_id:
        return thread_id, False

    new_thread_id = await provider.create_thread(metadata={"phone": phone})
    winner = await store.create(phone, new_thread_id)
    if winner != new_thread_id:
        log.info("Lost session race, discarding thread", context={"orphan_thread_id": new_thread_id})
        try:
            await provider.delete_thread(new_thread_id)
        except LLMServiceError as e:
            log.warning(f"Orphan thread cleanup failed: {e}", context={"orphan_thread_id": new_thread_id})
        return winner, False
    return new_thread_id, True


async def handle_inspector_message(
    db: Session,
    provider: AssistantsProvider,
    store: SessionStore,
    *,
    assistant_id: str,
    phone: str,
    text: str,
    message_id: str,
    controller: Optional[RunController] = None,
) -> TurnReply:
    """Run one assistant turn for an inbound message and return the text to send back."""
    log = TurnLogger(logger, {"message_id": message_id, "phone": phone})

    try:
        thread_id, created = await get_or_create_thread(provider, store, phone, log)
    except LLMServiceError as e:
        log.error(f"Could not open conversation thread: {e}")
        return TurnReply(thread_id=None, text=FALLBACK_REPLY, result=Result.failure(str(e), "llm_error"))

    log = TurnLogger(logger, {**log.extra, "thread_id": thread_id})
    context = ToolContext.from_session(phone, await store.get_context(phone))
    if created or not context.inspector_id:
        inspector = inspection_service.get_inspector_by_phone(db, phone)
        if inspector:
            context.inspector_id = inspector.id
            context.inspector_name = inspector.name

    controller = controller or RunController(provider, db, assistant_id=assistant_id)
    result = await controller.run_turn(thread_id, text, context, log)
    await store.update_context(phone, **context.to_session())

    if not result.ok:
        log.warning("Turn ended with fallback reply", context={"error_code": result.error_code})
        return TurnReply(thread_id=thread_id, text=FALLBACK_REPLY, result=result)
    return TurnReply(thread_id=thread_id, text=result.value, result=result)
