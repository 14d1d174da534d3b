from app.services.llm.base import AssistantsProvider, LLMServiceError, Run, RunStatus, ThreadMessage, ToolCall
from app.services.llm.openai_provider import OpenAIAssistantsProvider

__all__ = [
    "AssistantsProvider",
    "LLMServiceError",
    "OpenAIAssistantsProvider",
    "Run",
    "RunStatus",
    "ThreadMessage",
    "ToolCall",
]
