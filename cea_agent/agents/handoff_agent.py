"""
Human handoff: the one route that skips the model.

Asking for a person always produces an urgent ticket and a folio, no matter
what a model would have done with the request.
"""

from dataclasses import dataclass
from typing import Any, Optional

from cea_agent.logging_context import get_conversation_logger
from cea_agent.prompts.prompt_templates import build_handoff_message
from cea_agent.schemas.conversation_schema import ConversationState
from cea_agent.schemas.ticket_schema import TicketCategory, TicketPriority
from cea_agent.tools.tickets import CREATE_TICKET, CreateTicketInput, create_ticket_from

logger = get_conversation_logger(__name__)

HANDOFF_TITLE = "Solicitud de asesor humano"
DEFAULT_DESCRIPTION = "El ciudadano solicito hablar con un asesor humano."


@dataclass
class HandoffOutcome:
    text: str
    folio: str
    ticket: dict[str, Any]
    tool_name: str = CREATE_TICKET


class HumanHandoff:
    """Creates the urgent ticket and builds the acknowledgement."""

    name = "human_handoff"

    async def complete_handoff(
        self, services: Any, state: ConversationState, message: Optional[str] = None
    ) -> HandoffOutcome:
        params = CreateTicketInput(
            category=TicketCategory.URGENT,
            title=HANDOFF_TITLE,
            description=(message or "").strip() or DEFAULT_DESCRIPTION,
            priority=TicketPriority.URGENT,
            contract_number=state.contract_number,
            client_name=state.customer_name,
            location=state.locality,
        )
        ticket = await create_ticket_from(services, params)
        folio = ticket["folio"]
        logger.info("Human handoff ticket %s created", folio)
        return HandoffOutcome(
            text=build_handoff_message(folio, ticket.get("warning")),
            folio=folio,
            ticket=ticket,
        )
