"""Support ticket data models and status lifecycle."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class TicketCategory(str, Enum):
    LEAK = "leak"
    CLARIFICATIONS = "clarifications"
    PAYMENT = "payment"
    METER_READING = "meter_reading"
    RECEIPT_REVIEW = "receipt_review"
    DIGITAL_RECEIPT = "digital_receipt"
    URGENT = "urgent"

    @property
    def code(self) -> str:
        """Fixed 3-letter folio code for the category."""
        return CATEGORY_CODES[self]

    @property
    def service_type(self) -> str:
        return SERVICE_TYPES[self]


CATEGORY_CODES: dict[TicketCategory, str] = {
    TicketCategory.LEAK: "FUG",
    TicketCategory.CLARIFICATIONS: "ACL",
    TicketCategory.PAYMENT: "PAG",
    TicketCategory.METER_READING: "LEC",
    TicketCategory.RECEIPT_REVIEW: "REV",
    TicketCategory.DIGITAL_RECEIPT: "DIG",
    TicketCategory.URGENT: "URG",
}

SERVICE_TYPES: dict[TicketCategory, str] = {
    TicketCategory.LEAK: "leak_report",
    TicketCategory.CLARIFICATIONS: "clarifications",
    TicketCategory.PAYMENT: "payment",
    TicketCategory.METER_READING: "report_reading",
    TicketCategory.RECEIPT_REVIEW: "receipt_review",
    TicketCategory.DIGITAL_RECEIPT: "digital_receipt",
    TicketCategory.URGENT: "human_agent",
}


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING_CLIENT = "waiting_client"
    WAITING_INTERNAL = "waiting_internal"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TicketStatus.CLOSED, TicketStatus.CANCELLED)


_WORKING = {
    TicketStatus.IN_PROGRESS,
    TicketStatus.WAITING_CLIENT,
    TicketStatus.WAITING_INTERNAL,
    TicketStatus.ESCALATED,
    TicketStatus.RESOLVED,
    TicketStatus.CANCELLED,
}

ALLOWED_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.OPEN: frozenset(_WORKING),
    TicketStatus.IN_PROGRESS: frozenset(_WORKING - {TicketStatus.IN_PROGRESS}),
    TicketStatus.WAITING_CLIENT: frozenset(_WORKING - {TicketStatus.WAITING_CLIENT}),
    TicketStatus.WAITING_INTERNAL: frozenset(_WORKING - {TicketStatus.WAITING_INTERNAL}),
    TicketStatus.ESCALATED: frozenset(
        {TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CANCELLED}
    ),
    # resolved tickets may be reopened, closed or cancelled
    TicketStatus.RESOLVED: frozenset(
        {TicketStatus.CLOSED, TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}
    ),
    TicketStatus.CLOSED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return target == current or target in ALLOWED_TRANSITIONS[current]


class NewTicket(BaseModel):
    """Ticket data before a folio is assigned."""

    category: TicketCategory
    title: str
    description: str
    priority: TicketPriority = TicketPriority.MEDIUM
    contract_number: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    location: Optional[str] = None
    channel: str = "whatsapp"
    metadata: dict[str, Any] = Field(default_factory=dict)


class Ticket(NewTicket):
    """A persisted (or locally created) support case."""

    id: Optional[int] = None
    folio: str
    status: TicketStatus = TicketStatus.OPEN
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None

    def summary(self) -> dict[str, Any]:
        """Compact representation returned to personas."""
        return {
            "folio": self.folio,
            "title": self.title,
            "category": self.category.value,
            "status": self.status.value,
            "priority": self.priority.value,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


class TicketUpdate(BaseModel):
    """Partial update; ``None`` fields are left unchanged."""

    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    notes: Optional[str] = None


class Customer(BaseModel):
    """Customer record from the contact store."""

    id: Optional[int] = None
    name: str
    contract_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
