import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Table, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base

work_order_inspectors = Table(
    "work_order_inspectors",
    Base.metadata,
    Column("work_order_id", Text, ForeignKey("work_orders.id"), primary_key=True),
    Column("inspector_id", Text, ForeignKey("inspectors.id"), primary_key=True),
)


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id = Column(Text, primary_key=True, default=lambda: uuid.uuid4().hex)
    contract_id = Column(Text, ForeignKey("contracts.id"), nullable=False)
    status = Column(Text, nullable=False, default="SCHEDULED")  # SCHEDULED, STARTED, COMPLETED, CANCELLED
    scheduled_start = Column(DateTime(timezone=True), nullable=False)
    scheduled_end = Column(DateTime(timezone=True), nullable=False)
    actual_start = Column(DateTime(timezone=True))
    actual_end = Column(DateTime(timezone=True))
    remarks = Column(Text)
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    contract = relationship("Contract", back_populates="work_orders")
    inspectors = relationship("Inspector", secondary=work_order_inspectors, back_populates="work_orders")
