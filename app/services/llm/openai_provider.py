from typing import List, Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import AssistantsProvider, LLMServiceError, Run, RunStatus, ThreadMessage, ToolCall

logger = get_logger("llm.openai")


def _parse_run(data: dict) -> Run:
    tool_calls = []
    required = data.get("required_action") or {}
    for call in (required.get("submit_tool_outputs") or {}).get("tool_calls", []):
        function = call.get("function") or {}
        tool_calls.append(ToolCall(id=call["id"], name=function.get("name", ""), arguments=function.get("arguments") or "{}"))

    last_error = data.get("last_error") or {}
    return Run(
        id=data["id"],
        thread_id=data.get("thread_id", ""),
        status=RunStatus(data["status"]),
        tool_calls=tool_calls,
        last_error=last_error.get("message"),
    )


def _message_text(data: dict) -> str:
    parts = []
    for part in data.get("content", []):
        if part.get("type") == "text":
            parts.append(part["text"]["value"])
    return "\n".join(parts)


class OpenAIAssistantsProvider(AssistantsProvider):
    """OpenAI Assistants API (v2) over httpx."""

    def __init__(self, api_key: str, base_url: str = "https://api.openai.com/v1", timeout_seconds: float = 30.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    async def _request(self, method: str, path: str, json: Optional[dict] = None, params: Optional[dict] = None) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                        "OpenAI-Beta": "assistants=v2",
                    },
                    json=json,
                    params=params,
                )
        except httpx.HTTPError as e:
            raise LLMServiceError(f"OpenAI request failed: {type(e).__name__}: {e}") from e

        logger.debug(f"OpenAI {method} {path} -> {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text}")
            raise LLMServiceError(
                f"OpenAI API error: {response.status_code} - {response.text}", status_code=response.status_code
            )
        return response.json()

    async def create_thread(self, metadata: Optional[dict] = None) -> str:
        data = await self._request("POST", "/threads", json={"metadata": metadata or {}})
        return data["id"]

    async def delete_thread(self, thread_id: str) -> None:
        await self._request("DELETE", f"/threads/{thread_id}")

    async def add_message(self, thread_id: str, content: str) -> str:
        data = await self._request("POST", f"/threads/{thread_id}/messages", json={"role": "user", "content": content})
        return data["id"]

    async def create_run(self, thread_id: str, assistant_id: str, instructions: Optional[str] = None) -> Run:
        payload = {"assistant_id": assistant_id}
        if instructions:
            payload["additional_instructions"] = instructions
        return _parse_run(await self._request("POST", f"/threads/{thread_id}/runs", json=payload))

    async def retrieve_run(self, thread_id: str, run_id: str) -> Run:
        return _parse_run(await self._request("GET", f"/threads/{thread_id}/runs/{run_id}"))

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: List[dict]) -> Run:
        data = await self._request(
            "POST",
            f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
            json={"tool_outputs": outputs},
        )
        return _parse_run(data)

    async def cancel_run(self, thread_id: str, run_id: str) -> None:
        await self._request("POST", f"/threads/{thread_id}/runs/{run_id}/cancel")

    async def list_messages(self, thread_id: str, limit: int = 10) -> List[ThreadMessage]:
        data = await self._request("GET", f"/threads/{thread_id}/messages", params={"order": "desc", "limit": limit})
        return [
            ThreadMessage(id=item["id"], role=item.get("role", ""), text=_message_text(item), run_id=item.get("run_id"))
            for item in data.get("data", [])
        ]

    async def create_assistant(self, name: str, instructions: str, tools: List[dict], model: str) -> str:
        data = await self._request(
            "POST",
            "/assistants",
            json={"name": name, "instructions": instructions, "tools": tools, "model": model},
        )
        logger.info(f"Created assistant {data['id']}")
        return data["id"]
