"""Tests for ticket updates and the in-memory ticket store."""

from datetime import timedelta

import pytest

from cea_agent.errors import InvalidTransitionError, StoreUnavailableError, TicketNotFoundError
from cea_agent.schemas.ticket_schema import (
    Customer,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TicketUpdate,
    can_transition,
)
from cea_agent.tickets.store import InMemoryTicketStore, apply_update, retry_read
from tests.helpers import FIXED_NOW


def _ticket(folio="FUG-20250303-0001", contract="523160", status=TicketStatus.OPEN, created=FIXED_NOW) -> Ticket:
    return Ticket(
        category=TicketCategory.LEAK,
        title="Fuga",
        description="Fuga en la toma",
        contract_number=contract,
        folio=folio,
        status=status,
        created_at=created,
        updated_at=created,
    )


class TestStatusTransitions:
    def test_open_can_move_to_in_progress(self):
        assert can_transition(TicketStatus.OPEN, TicketStatus.IN_PROGRESS)

    def test_closed_is_terminal(self):
        assert TicketStatus.CLOSED.is_terminal
        assert not can_transition(TicketStatus.CLOSED, TicketStatus.OPEN)

    def test_resolved_can_reopen_or_close(self):
        assert can_transition(TicketStatus.RESOLVED, TicketStatus.IN_PROGRESS)
        assert can_transition(TicketStatus.RESOLVED, TicketStatus.CLOSED)
        assert not can_transition(TicketStatus.RESOLVED, TicketStatus.WAITING_CLIENT)

    def test_cancel_from_any_open_status(self):
        for status in TicketStatus:
            if status.is_terminal:
                continue
            assert can_transition(status, TicketStatus.CANCELLED), status

    def test_cancel_resolved_ticket(self):
        updated = apply_update(
            _ticket(status=TicketStatus.RESOLVED), TicketUpdate(status=TicketStatus.CANCELLED), FIXED_NOW
        )
        assert updated.status == TicketStatus.CANCELLED


class TestApplyUpdate:
    def setup_method(self):
        self.later = FIXED_NOW + timedelta(hours=2)

    def test_resolving_stamps_resolved_at(self):
        updated = apply_update(_ticket(), TicketUpdate(status=TicketStatus.RESOLVED), self.later)
        assert updated.status == TicketStatus.RESOLVED
        assert updated.resolved_at == self.later
        assert updated.updated_at == self.later

    def test_priority_only(self):
        updated = apply_update(_ticket(), TicketUpdate(priority=TicketPriority.HIGH), self.later)
        assert updated.priority == TicketPriority.HIGH
        assert updated.status == TicketStatus.OPEN
        assert updated.resolved_at is None

    def test_notes_accumulate(self):
        first = apply_update(_ticket(), TicketUpdate(notes="Cuadrilla asignada"), self.later)
        second = apply_update(first, TicketUpdate(notes="Reparado"), self.later)
        assert [n["text"] for n in second.metadata["notes"]] == ["Cuadrilla asignada", "Reparado"]

    def test_invalid_transition_raises(self):
        closed = _ticket(status=TicketStatus.CLOSED)
        with pytest.raises(InvalidTransitionError):
            apply_update(closed, TicketUpdate(status=TicketStatus.IN_PROGRESS), self.later)

    def test_original_is_not_mutated(self):
        original = _ticket()
        apply_update(original, TicketUpdate(status=TicketStatus.RESOLVED), self.later)
        assert original.status == TicketStatus.OPEN


class TestInMemoryTicketStore:
    def setup_method(self):
        self.store = InMemoryTicketStore()

    @pytest.mark.asyncio
    async def test_list_newest_first(self):
        await self.store.insert(_ticket("FUG-20250301-0001", created=FIXED_NOW - timedelta(days=2)))
        await self.store.insert(_ticket("FUG-20250303-0001"))
        await self.store.insert(_ticket("FUG-20250302-0001", created=FIXED_NOW - timedelta(days=1)))
        await self.store.insert(_ticket("FUG-20250303-0002", contract="999999"))
        tickets = await self.store.list_by_contract("523160")
        assert [t.folio for t in tickets] == [
            "FUG-20250303-0001",
            "FUG-20250302-0001",
            "FUG-20250301-0001",
        ]

    @pytest.mark.asyncio
    async def test_list_unknown_contract_is_empty(self):
        assert await self.store.list_by_contract("000000") == []

    @pytest.mark.asyncio
    async def test_update_missing_ticket(self):
        with pytest.raises(TicketNotFoundError):
            await self.store.update_by_folio("FUG-20250303-0404", TicketUpdate(notes="x"), FIXED_NOW)

    @pytest.mark.asyncio
    async def test_update_persists(self):
        await self.store.insert(_ticket())
        await self.store.update_by_folio(
            "FUG-20250303-0001", TicketUpdate(status=TicketStatus.IN_PROGRESS), FIXED_NOW
        )
        stored = await self.store.get_by_folio("FUG-20250303-0001")
        assert stored.status == TicketStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_find_customer(self):
        self.store.add_customer(Customer(id=7, name="Maria Lopez", contract_number="523160"))
        customer = await self.store.find_customer("523160")
        assert customer.name == "Maria Lopez"
        assert await self.store.find_customer("111111") is None

    @pytest.mark.asyncio
    async def test_unreachable_raises(self):
        self.store.unreachable = True
        with pytest.raises(StoreUnavailableError):
            await self.store.list_by_contract("523160")


class TestRetryRead:
    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StoreUnavailableError("down")
            return "ok"

        assert await retry_read(flaky, attempts=3, backoff=0) == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = []

        async def down():
            calls.append(1)
            raise StoreUnavailableError("down")

        with pytest.raises(StoreUnavailableError):
            await retry_read(down, attempts=2, backoff=0)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        calls = []

        async def broken():
            calls.append(1)
            raise TicketNotFoundError("FUG-20250303-0001")

        with pytest.raises(TicketNotFoundError):
            await retry_read(broken, attempts=3, backoff=0)
        assert len(calls) == 1
