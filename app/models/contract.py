import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(Text, primary_key=True, default=lambda: uuid.uuid4().hex)
    customer_id = Column(Text, ForeignKey("customers.id"), nullable=False)
    address = Column(Text, nullable=False)
    postal_code = Column(Text)
    property_type = Column(Text)  # HDB, CONDO, LANDED
    status = Column(Text, nullable=False, default="CONFIRMED")
    created_on = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    customer = relationship("Customer", back_populates="contracts")
    work_orders = relationship("WorkOrder", back_populates="contract")
    checklist_items = relationship(
        "ContractChecklistItem",
        back_populates="contract",
        order_by="ContractChecklistItem.order",
    )

    @property
    def full_address(self) -> str:
        if self.postal_code:
            return f"{self.address}, {self.postal_code}"
        return self.address
