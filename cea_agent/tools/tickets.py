"""Ticket creation, lookup and update, plus customer search."""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from cea_agent.logging_context import get_current_context
from cea_agent.schemas.ticket_schema import (
    NewTicket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TicketUpdate,
)
from cea_agent.schemas.upstream_schema import ErrorKind
from cea_agent.tickets.store import retry_read
from cea_agent.tools.billing import ContractInput
from cea_agent.tools.registry import Tool, failure
from cea_agent.utils import normalize_contract

logger = logging.getLogger(__name__)

CREATE_TICKET = "create_ticket"


class CreateTicketInput(BaseModel):
    category: TicketCategory = Field(description="Ticket category")
    title: str = Field(min_length=1, max_length=200, description="Short summary of the case")
    description: str = Field(min_length=1, description="Full description in the citizen's words")
    contract_number: Optional[str] = Field(default=None, description="Contract number if known")
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    location: Optional[str] = Field(default=None, description="Address or place of the issue")
    priority: TicketPriority = TicketPriority.MEDIUM

    @field_validator("title", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("contract_number")
    @classmethod
    def _normalize_contract(cls, value: Optional[str]) -> Optional[str]:
        return normalize_contract(value) or None if value else None


class UpdateTicketInput(BaseModel):
    folio: str = Field(description="Ticket folio, e.g. FUG-20250303-0001")
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    notes: Optional[str] = None

    @field_validator("folio")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


async def create_ticket_from(services: Any, params: CreateTicketInput) -> dict[str, Any]:
    """Create a ticket; shared by the tool and the human-handoff path.

    Store trouble never fails the call: a degraded creation still returns
    ``success`` with the provisional folio and a ``warning``.
    """
    context = get_current_context()
    new_ticket = NewTicket(
        category=params.category,
        title=params.title,
        description=params.description,
        priority=params.priority,
        contract_number=params.contract_number or context.contract_number,
        client_name=params.client_name,
        client_email=params.client_email,
        location=params.location,
        channel=context.channel or "whatsapp",
        metadata={"conversation_id": context.conversation_id} if context.conversation_id else {},
    )
    outcome = await services.folio_generator.insert_with_folio(new_ticket, services.clock())

    result: dict[str, Any] = {
        "success": True,
        "folio": outcome.ticket.folio,
        "ticket_id": outcome.ticket.id,
        "category": outcome.ticket.category.value,
        "priority": outcome.ticket.priority.value,
        "status": outcome.ticket.status.value,
    }
    if outcome.degraded:
        result["warning"] = outcome.warning
    return result


def build_ticket_tools(services: Any) -> list[Tool]:
    store = services.ticket_store

    async def create_ticket(params: CreateTicketInput) -> dict[str, Any]:
        logger.info("create_ticket category=%s", params.category.value)
        return await create_ticket_from(services, params)

    async def get_client_tickets(params: ContractInput) -> dict[str, Any]:
        tickets = await retry_read(
            lambda: store.list_by_contract(params.contract_number), backoff=services.read_backoff
        )
        return {
            "success": True,
            "contract_number": params.contract_number,
            "tickets": [t.summary() for t in tickets],
            "count": len(tickets),
        }

    async def update_ticket(params: UpdateTicketInput) -> dict[str, Any]:
        if params.status is None and params.priority is None and not params.notes:
            return failure("Nothing to update", ErrorKind.VALIDATION)
        update = TicketUpdate(status=params.status, priority=params.priority, notes=params.notes)
        ticket = await store.update_by_folio(params.folio, update, services.clock())
        logger.info("Ticket %s updated (status=%s)", ticket.folio, ticket.status.value)
        return {"success": True, **ticket.summary()}

    async def search_customer_by_contract(params: ContractInput) -> dict[str, Any]:
        customer = await retry_read(
            lambda: store.find_customer(params.contract_number), backoff=services.read_backoff
        )
        if customer is None:
            return {"success": True, "found": False, "contract_number": params.contract_number}
        return {"success": True, "found": True, "customer": customer.model_dump()}

    return [
        Tool(
            name=CREATE_TICKET,
            description=(
                "Open a support ticket (leak, clarifications, payment, meter_reading, "
                "receipt_review, digital_receipt, urgent). Returns the folio to share "
                "with the citizen. Call once per case; do not retry blindly."
            ),
            input_model=CreateTicketInput,
            handler=create_ticket,
            read_only=False,
        ),
        Tool(
            name="get_client_tickets",
            description="List the tickets on file for a contract, newest first.",
            input_model=ContractInput,
            handler=get_client_tickets,
        ),
        Tool(
            name="update_ticket",
            description=(
                "Update a ticket by folio. Only the fields given are changed; "
                "setting status to 'resolved' records the resolution time."
            ),
            input_model=UpdateTicketInput,
            handler=update_ticket,
            read_only=False,
        ),
        Tool(
            name="search_customer_by_contract",
            description="Look up the customer registered for a contract number.",
            input_model=ContractInput,
            handler=search_customer_by_contract,
        ),
    ]
