"""Workflow envelope and per-conversation state."""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator


class SharedLocation(BaseModel):
    """A location pin shared by the citizen."""

    latitude: float
    longitude: float
    name: Optional[str] = None
    address: Optional[str] = None


class WorkflowInput(BaseModel):
    """One inbound message as delivered by the messaging layer.

    ``input_as_text`` may arrive as a list of strings or as a stringified
    JSON list; the workflow keeps only the first string in that case.
    """

    input_as_text: Union[str, list[Any]] = ""
    image_url: Optional[str] = None
    location: Optional[SharedLocation] = None
    audio: Optional[bytes] = None
    conversation_id: Optional[str] = None
    contact_id: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WorkflowOutput(BaseModel):
    """Normalized response envelope returned for every turn."""

    output_text: str
    conversation_id: str
    classification: Optional[str] = None
    tools_invoked: list[str] = Field(default_factory=list)
    ticket_folio: Optional[str] = None
    error: Optional[str] = None
    processing_time_ms: float = 0.0


class ClassificationResult(BaseModel):
    """Structured output of the classification step."""

    classification: str
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    extracted_contract: Optional[str] = None
    extracted_locality: Optional[str] = None

    @field_validator("extracted_contract", "extracted_locality", mode="before")
    @classmethod
    def _coerce_slot(cls, value: Any) -> Optional[str]:
        # Numbers become text; non-scalar values are dropped.
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, (int, float, str)):
            return str(value).strip() or None
        return None


@dataclass
class ConversationState:
    """Mutable state kept per conversation id."""

    history: list[dict[str, Any]] = field(default_factory=list)
    last_access: float = 0.0
    classification: Optional[str] = None
    contract_number: Optional[str] = None
    locality: Optional[str] = None
    customer_name: Optional[str] = None
