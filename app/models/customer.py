import uuid

from sqlalchemy import Column, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Text, primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(Text, nullable=False)
    phone = Column(Text)
    email = Column(Text)
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    contracts = relationship("Contract", back_populates="customer")
