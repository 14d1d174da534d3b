import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContractChecklistItem(Base):
    __tablename__ = "contract_checklist_items"

    id = Column(Text, primary_key=True, default=lambda: uuid.uuid4().hex)
    contract_id = Column(Text, ForeignKey("contracts.id"), nullable=False)
    name = Column(Text, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    remarks = Column(Text)
    entered_on = Column(DateTime(timezone=True))
    entered_by_id = Column(Text, ForeignKey("inspectors.id"))

    contract = relationship("Contract", back_populates="checklist_items")
    entered_by = relationship("Inspector")
    locations = relationship("ChecklistLocation", back_populates="item", order_by="ChecklistLocation.order")


class ChecklistLocation(Base):
    __tablename__ = "checklist_locations"

    id = Column(Text, primary_key=True, default=lambda: uuid.uuid4().hex)
    item_id = Column(Text, ForeignKey("contract_checklist_items.id"), nullable=False)
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")  # PENDING, DONE
    condition = Column(Text)  # same values as ChecklistTask.condition
    order = Column(Integer, nullable=False, default=0)

    item = relationship("ContractChecklistItem", back_populates="locations")
    tasks = relationship("ChecklistTask", back_populates="location", order_by="ChecklistTask.created_on")


class ChecklistTask(Base):
    __tablename__ = "checklist_tasks"

    id = Column(Text, primary_key=True, default=lambda: uuid.uuid4().hex)
    location_id = Column(Text, ForeignKey("checklist_locations.id"), nullable=False)
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")  # PENDING, COMPLETED
    condition = Column(Text)  # GOOD, FAIR, UNSATISFACTORY, UN_OBSERVABLE, NOT_APPLICABLE
    notes = Column(Text)
    photos = Column(JSON, nullable=False, default=list)
    videos = Column(JSON, nullable=False, default=list)
    entered_on = Column(DateTime(timezone=True))
    created_on = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    location = relationship("ChecklistLocation", back_populates="tasks")
