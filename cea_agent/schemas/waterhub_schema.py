"""Water-delivery hub records: providers, orders, incidents, alerts, predictions."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class IncidentCategory(str, Enum):
    LEAK = "leak"
    NO_WATER = "no_water"
    CONTAMINATION = "contamination"
    INFRASTRUCTURE = "infrastructure"
    OTHER = "other"


class IncidentStatus(str, Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class AlertType(str, Enum):
    SHORTAGE = "shortage"
    CONSERVATION = "conservation"
    PROGRAM = "program"
    EMERGENCY = "emergency"


class Provider(BaseModel):
    id: str
    name: str
    rating: float = 0.0
    price_per_liter: float = 0.0
    available: bool = True
    locality: Optional[str] = None
    phone: Optional[str] = None
    certifications: list[str] = Field(default_factory=list)
    estimated_arrival: Optional[str] = None
    fleet_size: int = 0


class Order(BaseModel):
    id: str
    provider_id: str = ""
    citizen_name: str = ""
    liters: int = 0
    total_price: float = 0.0
    subsidy_applied: float = 0.0
    status: OrderStatus = OrderStatus.PENDING
    address: Optional[str] = None
    colonia: Optional[str] = None
    locality: Optional[str] = None
    created_at: str = ""
    accepted_at: Optional[str] = None
    delivered_at: Optional[str] = None


class Incident(BaseModel):
    id: str
    category: IncidentCategory = IncidentCategory.OTHER
    status: IncidentStatus = IncidentStatus.PENDING
    description: str = ""
    address: Optional[str] = None
    colonia: Optional[str] = None
    locality: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    households_affected: int = 1
    created_at: str = ""


class Alert(BaseModel):
    title: str = ""
    message: str = ""
    type: AlertType = AlertType.CONSERVATION
    zones: list[str] = Field(default_factory=list)
    sent_at: str = ""


class Prediction(BaseModel):
    locality: str
    predicted_demand: float = 0.0
    intensity: str = ""
    confidence: float = 0.0
    factors: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)


class IncidentReport(BaseModel):
    """Creation payload for an incident, shared by every incident backend."""

    category: IncidentCategory
    description: str
    address: Optional[str] = None
    colonia: Optional[str] = None
    locality: Optional[str] = None
    households_affected: int = 1
    duration: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def summary_text(self) -> str:
        """Description and address joined the way incident stores expect."""
        return ". ".join(p for p in (self.description, self.address) if p)
