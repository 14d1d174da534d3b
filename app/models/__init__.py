from app.models.checklist import ChecklistLocation, ChecklistTask, ContractChecklistItem
from app.models.contract import Contract
from app.models.customer import Customer
from app.models.inbound_message import InboundMessage
from app.models.inspector import Inspector
from app.models.work_order import WorkOrder, work_order_inspectors

__all__ = [
    "Customer",
    "Contract",
    "Inspector",
    "WorkOrder",
    "work_order_inspectors",
    "ContractChecklistItem",
    "ChecklistLocation",
    "ChecklistTask",
    "InboundMessage",
]
