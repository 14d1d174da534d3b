from app.schemas.tools import TOOL_ARGUMENTS, build_tool_definitions
from app.schemas.webhook import WassengerEvent, WassengerMessageData, WebhookAck

__all__ = ["WassengerEvent", "WassengerMessageData", "WebhookAck", "TOOL_ARGUMENTS", "build_tool_definitions"]
