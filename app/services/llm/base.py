from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    EXPIRED = "expired"

    @property
    def is_pending(self) -> bool:
        return self in (RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.CANCELLING)


class LLMServiceError(Exception):
    """The AI service rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass
class Run:
    id: str
    thread_id: str
    status: RunStatus
    tool_calls: List[ToolCall] = field(default_factory=list)
    last_error: Optional[str] = None


@dataclass
class ThreadMessage:
    id: str
    role: str
    text: str
    run_id: Optional[str] = None


class AssistantsProvider(ABC):
    """Thread/run based tool-calling AI service."""

    @abstractmethod
    async def create_thread(self, metadata: Optional[dict] = None) -> str:
        """Create a conversation thread and return its id."""

    @abstractmethod
    async def delete_thread(self, thread_id: str) -> None:
        pass

    @abstractmethod
    async def add_message(self, thread_id: str, content: str) -> str:
        """Append a user message to the thread."""

    @abstractmethod
    async def create_run(self, thread_id: str, assistant_id: str, instructions: Optional[str] = None) -> Run:
        pass

    @abstractmethod
    async def retrieve_run(self, thread_id: str, run_id: str) -> Run:
        pass

    @abstractmethod
    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: List[dict]) -> Run:
        """Submit every output of a requires_action round in one call."""

    @abstractmethod
    async def cancel_run(self, thread_id: str, run_id: str) -> None:
        pass

    @abstractmethod
    async def list_messages(self, thread_id: str, limit: int = 10) -> List[ThreadMessage]:
        """Most recent messages first."""

    @abstractmethod
    async def create_assistant(self, name: str, instructions: str, tools: List[dict], model: str) -> str:
        pass
