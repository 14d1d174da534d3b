"""Inbound message id gate: the first delivery wins, redeliveries are dropped."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import get_logger
from app.models.inbound_message import InboundMessage
from app.services.redis_client import get_redis

logger = get_logger("dedup_service")

DEDUP_PREFIX = "inspector:dedup:"

_DIALECT_INSERT = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _mark_in_db(db: Session, message_id: str, ttl_seconds: int) -> bool:
    now = datetime.now(timezone.utc)
    insert = _DIALECT_INSERT[db.get_bind().dialect.name]
    stmt = (
        insert(InboundMessage)
        .values(message_id=message_id, received_at=now)
        .on_conflict_do_nothing(index_elements=["message_id"])
    )
    if db.execute(stmt).rowcount > 0:
        db.commit()
        return True

    # Row is older than the window: claim it again
    rearmed = db.execute(
        update(InboundMessage)
        .where(
            InboundMessage.message_id == message_id,
            InboundMessage.received_at < now - timedelta(seconds=ttl_seconds),
        )
        .values(received_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return rearmed.rowcount > 0


async def mark_if_new(
    message_id: str,
    *,
    db: Optional[Session] = None,
    redis_client=None,
    ttl_seconds: Optional[int] = None,
) -> bool:
    """Atomically record message_id. True only for the first sighting within the TTL."""
    ttl_seconds = ttl_seconds or settings.dedup_ttl_seconds
    key = DEDUP_PREFIX + message_id

    try:
        redis_client = redis_client or get_redis()
        was_set = await redis_client.set(key, datetime.now(timezone.utc).isoformat(), ex=ttl_seconds, nx=True)
        if not was_set:
            logger.info("Duplicate message_id (redis)", extra={"context": {"message_id": message_id}})
        return bool(was_set)
    except Exception as e:
        logger.warning(f"Dedup redis unavailable, falling back to DB: {e}")

    if db is None:
        return True

    try:
        is_new = _mark_in_db(db, message_id, ttl_seconds)
    except Exception as e:
        db.rollback()
        logger.error(
            "DB dedup check failed, processing message",
            extra={"context": {"message_id": message_id, "error": str(e)}},
        )
        return True

    if not is_new:
        logger.info("Duplicate message_id (DB)", extra={"context": {"message_id": message_id}})
    return is_new
