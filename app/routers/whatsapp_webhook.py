"""Wassenger webhook: inbound inspector messages in, assistant replies out."""

import asyncio
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.logging_config import get_logger
from app.schemas.webhook import NEW_MESSAGE_EVENT, WassengerEvent, WebhookAck
from app.services.alert_service import alert_error
from app.services.assistant_service import ensure_assistant_id, get_assistants_provider
from app.services.conversation_service import handle_inspector_message
from app.services.dedup_service import mark_if_new
from app.services.errors import DeliveryError
from app.services.llm import AssistantsProvider
from app.services.phone import normalize_phone
from app.services.run_controller import FALLBACK_REPLY
from app.services.session_store import SessionStore
from app.services.whatsapp_service import deliver_reply, send_whatsapp_message

logger = get_logger("whatsapp_webhook")

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])


@dataclass
class InboundText:
    message_id: str
    phone: str
    text: str


def get_session_store() -> SessionStore:
    return SessionStore()


def _secret_matches(provided: Optional[str]) -> bool:
    expected = settings.whatsapp_webhook_secret
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def _request_secret(request: Request) -> Optional[str]:
    secret = request.query_params.get("secret") or request.headers.get("X-Webhook-Secret")
    if secret:
        return secret
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


def extract_inbound_message(event: WassengerEvent) -> Optional[InboundText]:
    """Normalize a Wassenger event; None for anything that is not a new inbound text."""
    if event.event != NEW_MESSAGE_EVENT or not event.data:
        return None
    data = event.data
    if data.is_outbound:
        return None
    text = (data.body or "").strip()
    phone = normalize_phone(data.fromNumber or "")
    if not text or not phone or not data.id:
        return None
    return InboundText(message_id=data.id, phone=phone, text=text)


async def process_inbound_message(
    db: Session, message: InboundText, provider: AssistantsProvider, store: SessionStore
) -> None:
    assistant_id = await ensure_assistant_id(provider)
    reply = await handle_inspector_message(
        db,
        provider,
        store,
        assistant_id=assistant_id,
        phone=message.phone,
        text=message.text,
        message_id=message.message_id,
    )
    await deliver_reply(message.phone, reply.text, message_id=message.message_id)


async def _send_apology(message: InboundText) -> None:
    if not await send_whatsapp_message(message.phone, FALLBACK_REPLY):
        logger.warning(
            "Apology could not be delivered",
            extra={"context": {"message_id": message.message_id, "phone": message.phone}},
        )


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(secret: Optional[str] = None) -> str:
    """Verification handshake used when registering the webhook."""
    if not _secret_matches(secret):
        raise HTTPException(status_code=403, detail="Forbidden")
    return "OK"


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider: AssistantsProvider = Depends(get_assistants_provider),
    store: SessionStore = Depends(get_session_store),
) -> WebhookAck:
    if not _secret_matches(_request_secret(request)):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    try:
        event = WassengerEvent.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unparseable webhook payload: {e}")
        return WebhookAck()

    message = extract_inbound_message(event)
    if message is None:
        logger.debug(f"Ignoring webhook event: {event.event}")
        return WebhookAck()

    log_context = {"message_id": message.message_id, "phone": message.phone}
    try:
        if not await mark_if_new(message.message_id, db=db):
            return WebhookAck()
    except Exception as e:
        logger.error(f"Dedup gate failed: {e}", extra={"context": log_context}, exc_info=True)
        return WebhookAck()

    logger.info("Inbound inspector message", extra={"context": {**log_context, "length": len(message.text)}})
    try:
        await asyncio.wait_for(
            process_inbound_message(db, message, provider, store),
            timeout=settings.turn_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.error("Turn deadline exceeded", extra={"context": log_context})
        await _send_apology(message)
    except DeliveryError as e:
        logger.error(f"Reply not delivered: {e}", extra={"context": log_context})
    except Exception as e:
        logger.error(f"Unhandled error processing message: {e}", extra={"context": log_context}, exc_info=True)
        await alert_error(f"Unhandled error processing message: {e}", log_context)
        await _send_apology(message)

    return WebhookAck()
