"""
Persistent ticket and customer store.

``TicketStore`` is the contract the folio generator and ticket tools rely
on. Two implementations ship here: ``PostgresTicketStore`` backed by an
asyncpg pool (schema in ``docs/tickets.sql``) and ``InMemoryTicketStore``
for local runs and tests.

Both surface an unreachable backend as ``StoreUnavailableError`` and a
folio collision as ``DuplicateFolioError``.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

import asyncpg
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from cea_agent.config import settings
from cea_agent.errors import (
    DuplicateFolioError,
    InvalidTransitionError,
    StoreUnavailableError,
    TicketNotFoundError,
)
from cea_agent.schemas.ticket_schema import (
    Customer,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TicketUpdate,
    can_transition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def apply_update(ticket: Ticket, update: TicketUpdate, now: datetime) -> Ticket:
    """Return ``ticket`` with the non-empty fields of ``update`` applied.

    Moving to ``resolved`` stamps ``resolved_at``. Notes are appended to
    ``metadata["notes"]``.

    Raises:
        InvalidTransitionError: If the status change is not allowed.
    """
    changes: dict[str, Any] = {"updated_at": now}

    if update.status is not None and update.status != ticket.status:
        if not can_transition(ticket.status, update.status):
            raise InvalidTransitionError(
                f"Ticket {ticket.folio} cannot move from "
                f"'{ticket.status.value}' to '{update.status.value}'"
            )
        changes["status"] = update.status
        if update.status == TicketStatus.RESOLVED:
            changes["resolved_at"] = now

    if update.priority is not None:
        changes["priority"] = update.priority

    if update.notes:
        metadata = dict(ticket.metadata)
        notes = list(metadata.get("notes", []))
        notes.append({"at": now.isoformat(), "text": update.notes})
        metadata["notes"] = notes
        changes["metadata"] = metadata

    return ticket.model_copy(update=changes)


class TicketStore(ABC):
    """Storage contract for tickets and customers."""

    @abstractmethod
    async def insert(self, ticket: Ticket) -> Ticket:
        """Insert ``ticket``; raises ``DuplicateFolioError`` if the folio exists."""

    @abstractmethod
    async def max_folio_with_prefix(self, prefix: str) -> Optional[str]:
        """Greatest stored folio starting with ``prefix``, or ``None``."""

    @abstractmethod
    async def list_by_contract(self, contract_number: str, limit: int = 10) -> list[Ticket]:
        """Tickets for a contract, newest first."""

    @abstractmethod
    async def get_by_folio(self, folio: str) -> Optional[Ticket]:
        ...

    @abstractmethod
    async def update_by_folio(
        self, folio: str, update: TicketUpdate, now: datetime
    ) -> Ticket:
        """Apply a partial update; raises ``TicketNotFoundError`` if absent."""

    @abstractmethod
    async def find_customer(self, contract_number: str) -> Optional[Customer]:
        ...

    async def close(self) -> None:
        return None


class PendingSyncBuffer:
    """Tickets created while the store was unreachable, oldest first."""

    def __init__(self) -> None:
        self._tickets: list[Ticket] = []

    def add(self, ticket: Ticket) -> None:
        self._tickets.append(ticket)

    def drain(self) -> list[Ticket]:
        """Return and clear the buffered tickets."""
        tickets, self._tickets = self._tickets, []
        return tickets

    def folios(self) -> list[str]:
        return [t.folio for t in self._tickets]

    def __len__(self) -> int:
        return len(self._tickets)


class InMemoryTicketStore(TicketStore):
    """Dict-backed store enforcing folio uniqueness.

    ``max_folio_with_prefix`` yields to the event loop after reading, the
    same window a network round trip opens, so concurrent creations really
    do race for the same sequence number.
    """

    def __init__(self) -> None:
        self._tickets: dict[str, Ticket] = {}
        self._customers: dict[str, Customer] = {}
        self._next_id = 1
        self.rejected_duplicates = 0
        self.unreachable = False

    def _check_reachable(self) -> None:
        if self.unreachable:
            raise StoreUnavailableError("Ticket store unreachable")

    async def insert(self, ticket: Ticket) -> Ticket:
        self._check_reachable()
        if ticket.folio in self._tickets:
            self.rejected_duplicates += 1
            raise DuplicateFolioError(ticket.folio)
        stored = ticket.model_copy(update={"id": self._next_id})
        self._next_id += 1
        self._tickets[stored.folio] = stored
        return stored

    async def max_folio_with_prefix(self, prefix: str) -> Optional[str]:
        self._check_reachable()
        matching = [f for f in self._tickets if f.startswith(prefix)]
        result = max(matching) if matching else None
        await asyncio.sleep(0)
        return result

    async def list_by_contract(self, contract_number: str, limit: int = 10) -> list[Ticket]:
        self._check_reachable()
        tickets = [t for t in self._tickets.values() if t.contract_number == contract_number]
        tickets.sort(key=lambda t: (t.created_at, t.folio), reverse=True)
        return tickets[:limit]

    async def get_by_folio(self, folio: str) -> Optional[Ticket]:
        self._check_reachable()
        return self._tickets.get(folio)

    async def update_by_folio(self, folio: str, update: TicketUpdate, now: datetime) -> Ticket:
        self._check_reachable()
        current = self._tickets.get(folio)
        if current is None:
            raise TicketNotFoundError(folio)
        updated = apply_update(current, update, now)
        self._tickets[folio] = updated
        return updated

    async def find_customer(self, contract_number: str) -> Optional[Customer]:
        self._check_reachable()
        return self._customers.get(contract_number)

    def add_customer(self, customer: Customer) -> None:
        """Seed a customer record (used by fixtures and the console)."""
        if customer.contract_number:
            self._customers[customer.contract_number] = customer

    def __len__(self) -> int:
        return len(self._tickets)


CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.InterfaceError,
)

_TICKET_COLUMNS = (
    "id, folio, category, title, description, status, priority, contract_number, "
    "client_name, client_email, location, channel, metadata, created_at, updated_at, "
    "resolved_at"
)


def _row_to_ticket(row: Any) -> Ticket:
    metadata = row["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return Ticket(
        id=row["id"],
        folio=row["folio"],
        category=TicketCategory(row["category"]),
        title=row["title"],
        description=row["description"] or "",
        status=TicketStatus(row["status"]),
        priority=TicketPriority(row["priority"]),
        contract_number=row["contract_number"],
        client_name=row["client_name"],
        client_email=row["client_email"],
        location=row["location"],
        channel=row["channel"],
        metadata=metadata or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        resolved_at=row["resolved_at"],
    )


class PostgresTicketStore(TicketStore):
    """asyncpg-backed store; the ``UNIQUE (folio)`` constraint arbitrates races."""

    def __init__(self, dsn: Optional[str] = None, account_id: Optional[int] = None) -> None:
        self.dsn = dsn or settings.store.ticket_database_url
        self.account_id = account_id if account_id is not None else settings.store.ticket_account_id
        self.pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self) -> asyncpg.Pool:
        if self.pool is not None:
            return self.pool
        async with self._pool_lock:
            if self.pool is None:
                try:
                    self.pool = await asyncpg.create_pool(
                        dsn=self.dsn,
                        min_size=1,
                        max_size=10,
                        command_timeout=settings.store.command_timeout_sec,
                    )
                except CONNECTION_ERRORS as e:
                    raise StoreUnavailableError(f"Cannot connect to ticket store: {e}") from e
                logger.info("Ticket store pool created")
        return self.pool

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                yield conn
        except CONNECTION_ERRORS as e:
            raise StoreUnavailableError(f"Ticket store error: {e}") from e

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Ticket store pool closed")

    async def insert(self, ticket: Ticket) -> Ticket:
        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(
                    """
                    INSERT INTO tickets (
                        account_id, folio, category, service_type, title, description,
                        status, priority, contract_number, client_name, client_email,
                        location, channel, metadata, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
                              $14::jsonb, $15, $16)
                    RETURNING id
                    """,
                    self.account_id,
                    ticket.folio,
                    ticket.category.value,
                    ticket.category.service_type,
                    ticket.title,
                    ticket.description,
                    ticket.status.value,
                    ticket.priority.value,
                    ticket.contract_number,
                    ticket.client_name,
                    ticket.client_email,
                    ticket.location,
                    ticket.channel,
                    json.dumps(ticket.metadata),
                    ticket.created_at,
                    ticket.updated_at,
                )
            except asyncpg.exceptions.UniqueViolationError as e:
                raise DuplicateFolioError(ticket.folio) from e
        return ticket.model_copy(update={"id": row["id"]})

    async def max_folio_with_prefix(self, prefix: str) -> Optional[str]:
        async with self._connection() as conn:
            return await conn.fetchval(
                "SELECT folio FROM tickets WHERE folio LIKE $1 ORDER BY folio DESC LIMIT 1",
                prefix + "%",
            )

    async def list_by_contract(self, contract_number: str, limit: int = 10) -> list[Ticket]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT {_TICKET_COLUMNS} FROM tickets "
                "WHERE contract_number = $1 ORDER BY created_at DESC LIMIT $2",
                contract_number,
                limit,
            )
        return [_row_to_ticket(r) for r in rows]

    async def get_by_folio(self, folio: str) -> Optional[Ticket]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_TICKET_COLUMNS} FROM tickets WHERE folio = $1", folio
            )
        return _row_to_ticket(row) if row else None

    async def update_by_folio(self, folio: str, update: TicketUpdate, now: datetime) -> Ticket:
        async with self._connection() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"SELECT {_TICKET_COLUMNS} FROM tickets WHERE folio = $1 FOR UPDATE",
                    folio,
                )
                if row is None:
                    raise TicketNotFoundError(folio)
                updated = apply_update(_row_to_ticket(row), update, now)
                await conn.execute(
                    """
                    UPDATE tickets
                    SET status = $2, priority = $3, metadata = $4::jsonb,
                        updated_at = $5, resolved_at = $6
                    WHERE folio = $1
                    """,
                    folio,
                    updated.status.value,
                    updated.priority.value,
                    json.dumps(updated.metadata),
                    updated.updated_at,
                    updated.resolved_at,
                )
        return updated

    async def find_customer(self, contract_number: str) -> Optional[Customer]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT id, name, contract_number, email, phone FROM customers "
                "WHERE contract_number = $1 LIMIT 1",
                contract_number,
            )
        if row is None:
            return None
        return Customer(
            id=row["id"],
            name=row["name"],
            contract_number=row["contract_number"],
            email=row["email"],
            phone=row["phone"],
        )


async def retry_read(
    call: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    backoff: Optional[float] = None,
) -> T:
    """Run a store read, retrying while the store is unavailable."""
    delay = settings.upstream.backoff_sec if backoff is None else backoff
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts or settings.upstream.max_attempts),
        wait=wait_incrementing(start=delay, increment=delay),
        retry=retry_if_exception_type(StoreUnavailableError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await call()
    raise StoreUnavailableError("Store read failed")
