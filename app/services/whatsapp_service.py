"""Outbound WhatsApp delivery through the Wassenger API."""

import asyncio
from typing import Optional

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.services.alert_service import alert_critical
from app.services.errors import DeliveryError

logger = get_logger("whatsapp_service")

WASSENGER_API_URL = settings.wassenger_api_url
WASSENGER_API_KEY = settings.wassenger_api_key


def split_message(text: str, max_length: Optional[int] = None) -> list[str]:
    """Split text into chunks of at most max_length characters.

    Prefers the last newline in the window, then the last whitespace, and
    only then cuts hard. Slicing is by code point so characters stay whole.
    """
    max_length = max_length or settings.outbound_max_chunk_length
    chunks = []
    remaining = text.strip()
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        window = remaining[: max_length + 1]
        cut = window.rfind("\n", 0, max_length + 1)
        if cut <= 0:
            cut = max((window.rfind(ws, 0, max_length + 1) for ws in (" ", "\t")), default=-1)
        if cut <= 0:
            cut = max_length

        chunk = remaining[:cut].rstrip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[cut:].lstrip()
    return chunks


async def send_whatsapp_message(phone: str, message: str) -> bool:
    """Send one text message via Wassenger. Returns False on any failure."""
    if not WASSENGER_API_KEY:
        logger.error("Wassenger API key is missing (WASSENGER_API_KEY env var not set)")
        return False
    if not phone or not message:
        logger.warning(f"send_whatsapp_message: missing phone={phone!r} or message")
        return False

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                WASSENGER_API_URL,
                headers={"Token": WASSENGER_API_KEY, "Content-Type": "application/json"},
                json={"phone": f"+{phone}", "message": message},
            )
        logger.info(f"Wassenger response: status={response.status_code}, phone={phone}, body={response.text[:200]}")
        return response.status_code in (200, 201)
    except Exception as e:
        logger.error(f"Error sending WhatsApp message: {e}")
        return False


async def deliver_reply(phone: str, text: str, *, message_id: Optional[str] = None, sleep_func=asyncio.sleep) -> int:
    """Send a reply in order, chunk by chunk. Returns the number of chunks sent.

    The first failed chunk aborts delivery with DeliveryError.
    """
    chunks = split_message(text)
    for index, chunk in enumerate(chunks):
        if index > 0:
            await sleep_func(settings.outbound_pacing_seconds)
        if not await send_whatsapp_message(phone, chunk):
            context = {"phone": phone, "message_id": message_id, "chunk_index": index, "chunks": len(chunks)}
            logger.error("WhatsApp delivery failed", extra={"context": context})
            await alert_critical("WhatsApp send failed", context)
            raise DeliveryError(phone, index, "gateway rejected the message")
    return len(chunks)
