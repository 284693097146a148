"""Shared test fixtures."""

import pytest

from cea_agent.tickets.store import InMemoryTicketStore
from tests.helpers import make_services


@pytest.fixture
def ticket_store():
    return InMemoryTicketStore()


@pytest.fixture
def services(ticket_store):
    return make_services(ticket_store)
