from sqlalchemy import Column, DateTime, Text

from app.database import Base


class InboundMessage(Base):
    """Durable dedup ledger, used when Redis is unreachable."""

    __tablename__ = "inbound_messages"

    message_id = Column(Text, primary_key=True)
    received_at = Column(DateTime(timezone=True), nullable=False)
