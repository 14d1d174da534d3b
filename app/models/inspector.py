import uuid

from sqlalchemy import Column, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Inspector(Base):
    __tablename__ = "inspectors"

    id = Column(Text, primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(Text, nullable=False)
    mobile_phone = Column(Text, unique=True)
    status = Column(Text, nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    work_orders = relationship("WorkOrder", secondary="work_order_inspectors", back_populates="inspectors")
