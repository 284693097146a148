"""
Collaborators shared by all tools, and the registry factory.

Tools never import clients or stores directly; they receive a
``ToolServices`` so tests can swap in in-memory stores and mocked HTTP
transports.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from cea_agent.config import settings
from cea_agent.tickets.folio import FolioGenerator
from cea_agent.tickets.store import InMemoryTicketStore, PostgresTicketStore, TicketStore
from cea_agent.tools.alerts import build_alert_tools
from cea_agent.tools.billing import build_billing_tools
from cea_agent.tools.incidents import IncidentBackend, build_incident_backends, build_incident_tools
from cea_agent.tools.orders import build_order_tools
from cea_agent.tools.registry import ToolRegistry
from cea_agent.tools.tickets import build_ticket_tools
from cea_agent.upstream.soap import CeaSoapClient
from cea_agent.upstream.waterhub import WaterHubClient

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ToolServices:
    ticket_store: TicketStore
    cea: CeaSoapClient
    waterhub: WaterHubClient
    incident_backends: list[IncidentBackend] = field(default_factory=list)
    folio_generator: Optional[FolioGenerator] = None
    clock: Callable[[], datetime] = _utcnow
    read_backoff: Optional[float] = None

    def __post_init__(self) -> None:
        if self.folio_generator is None:
            self.folio_generator = FolioGenerator(self.ticket_store)

    @classmethod
    def from_settings(cls) -> "ToolServices":
        """Wire real clients from configuration."""
        if settings.store.ticket_database_url:
            store: TicketStore = PostgresTicketStore()
        else:
            logger.warning("TICKETS_DATABASE_URL not set, tickets are kept in memory")
            store = InMemoryTicketStore()
        waterhub = WaterHubClient()
        return cls(
            ticket_store=store,
            cea=CeaSoapClient(),
            waterhub=waterhub,
            incident_backends=build_incident_backends(waterhub),
        )

    async def aclose(self) -> None:
        await self.cea.aclose()
        await self.waterhub.aclose()
        await self.ticket_store.close()


def build_tool_registry(services: ToolServices) -> ToolRegistry:
    """Every tool, bound to ``services``."""
    registry = ToolRegistry()
    for builder in (
        build_billing_tools,
        build_ticket_tools,
        build_incident_tools,
        build_order_tools,
        build_alert_tools,
    ):
        for tool in builder(services):
            registry.register(tool)
    return registry
