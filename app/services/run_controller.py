"""Drives one assistant run per inbound message.

queued/in_progress are polled on a fixed interval with a bounded attempt
budget. requires_action dispatches every tool call and submits all outputs in
one batch. completed yields the newest assistant text. Anything else ends the
turn with a failure Result and the caller sends FALLBACK_REPLY.
"""

import asyncio
import json
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import TurnLogger, get_logger
from app.services.alert_service import alert_warning
from app.services.llm import AssistantsProvider, LLMServiceError, Run, RunStatus
from app.services.result import Result
from app.services.tool_dispatcher import ToolContext, dispatch_tool

logger = get_logger("run_controller")

FALLBACK_REPLY = "Sorry, I encountered an issue processing your request. Please try again."


class RunController:
    def __init__(
        self,
        provider: AssistantsProvider,
        db: Session,
        *,
        assistant_id: str,
        poll_interval_seconds: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
        max_tool_rounds: Optional[int] = None,
        sleep_func=asyncio.sleep,
    ):
        self.provider = provider
        self.db = db
        self.assistant_id = assistant_id
        self.poll_interval_seconds = (
            settings.run_poll_interval_seconds if poll_interval_seconds is None else poll_interval_seconds
        )
        self.max_poll_attempts = max_poll_attempts or settings.run_poll_max_attempts
        self.max_tool_rounds = max_tool_rounds or settings.max_tool_rounds
        self.sleep_func = sleep_func

    async def run_turn(
        self, thread_id: str, text: str, context: ToolContext, log: Optional[TurnLogger] = None
    ) -> Result[str]:
        """Append the inspector's message and advance the thread by one assistant turn."""
        log = log or TurnLogger(logger, {"thread_id": thread_id})
        try:
            await self.provider.add_message(thread_id, text)
            run = await self.provider.create_run(thread_id, self.assistant_id)
        except LLMServiceError as e:
            log.error(f"Could not start run: {e}")
            return Result.failure(str(e), "llm_error")

        log.info("Run created", context={"run_id": run.id, "status": run.status.value})
        try:
            return await self._drive(thread_id, run, context, log)
        except LLMServiceError as e:
            log.error(f"Run aborted: {e}", context={"run_id": run.id})
            return Result.failure(str(e), "llm_error")
        except asyncio.CancelledError:
            # The thread rejects new runs while this one is active
            log.warning("Turn cancelled, cancelling run", context={"run_id": run.id})
            await asyncio.shield(self._cancel(thread_id, run, log))
            raise

    async def _drive(self, thread_id: str, run: Run, context: ToolContext, log: TurnLogger) -> Result[str]:
        attempts = 0
        tool_rounds = 0

        while True:
            if run.status == RunStatus.REQUIRES_ACTION:
                if tool_rounds >= self.max_tool_rounds:
                    log.warning("Tool round limit reached", context={"run_id": run.id, "rounds": tool_rounds})
                    await self._cancel(thread_id, run, log)
                    return Result.failure("Too many tool rounds", "tool_rounds_exceeded")
                tool_rounds += 1
                outputs = self._execute_tool_calls(run, context, log)
                try:
                    run = await self.provider.submit_tool_outputs(thread_id, run.id, outputs)
                except LLMServiceError as e:
                    log.error(f"Tool output submission failed: {e}", context={"run_id": run.id})
                    return Result.failure(str(e), "tool_submission_failed")
                continue

            if run.status == RunStatus.COMPLETED:
                return await self._latest_reply(thread_id, run, log)

            if not run.status.is_pending:
                log.error(
                    "Run ended without a reply",
                    context={"run_id": run.id, "status": run.status.value, "last_error": run.last_error},
                )
                await alert_warning(
                    "Assistant run did not complete",
                    {"run_id": run.id, "status": run.status.value, "last_error": run.last_error},
                )
                return Result.failure(run.last_error or run.status.value, f"run_{run.status.value}")

            if attempts >= self.max_poll_attempts:
                log.warning("Run polling budget exhausted", context={"run_id": run.id, "attempts": attempts})
                await self._cancel(thread_id, run, log)
                return Result.failure("Run did not finish in time", "run_expired")

            attempts += 1
            await self.sleep_func(self.poll_interval_seconds)
            try:
                run = await self.provider.retrieve_run(thread_id, run.id)
            except LLMServiceError as e:
                if not e.is_transient:
                    raise
                log.warning(f"Run status check failed, retrying: {e}", context={"run_id": run.id, "attempt": attempts})

    def _execute_tool_calls(self, run: Run, context: ToolContext, log: TurnLogger) -> list[dict]:
        outputs = []
        for call in run.tool_calls:
            result = dispatch_tool(self.db, call.name, call.arguments, context=context)
            log.info(
                "Tool call handled",
                context={"run_id": run.id, "tool": call.name, "tool_call_id": call.id, "success": result["success"]},
            )
            outputs.append({"tool_call_id": call.id, "output": json.dumps(result, default=str)})
        return outputs

    async def _latest_reply(self, thread_id: str, run: Run, log: TurnLogger) -> Result[str]:
        messages = await self.provider.list_messages(thread_id, limit=10)
        for message in messages:
            if message.role == "assistant" and message.run_id in (None, run.id) and message.text.strip():
                log.info("Run completed", context={"run_id": run.id, "reply_length": len(message.text)})
                return Result.success(message.text)
        log.warning("Run completed without assistant text", context={"run_id": run.id})
        return Result.failure("No assistant reply in thread", "empty_reply")

    async def _cancel(self, thread_id: str, run: Run, log: TurnLogger) -> None:
        try:
            await self.provider.cancel_run(thread_id, run.id)
        except LLMServiceError as e:
            log.warning(f"Run cancel failed: {e}", context={"run_id": run.id})
