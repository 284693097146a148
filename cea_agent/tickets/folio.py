"""
Ticket folio generation.

A folio looks like ``FUG-20250303-0007``: the category code, the creation
date in the business timezone, and a per-category-per-day sequence. The
sequence is derived from the greatest folio already stored under the same
prefix, so two concurrent creations can compute the same value. The store
rejects the second insert through its uniqueness constraint and the
generator recomputes and tries again.

When the store cannot be reached the ticket is still created locally with a
fallback folio whose sequence comes from the millisecond clock. Fallback
folios match the same format but carry no ordering guarantee, and the
ticket is parked in a ``PendingSyncBuffer`` for later reconciliation.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from cea_agent.config import settings
from cea_agent.errors import DuplicateFolioError, StoreUnavailableError
from cea_agent.schemas.ticket_schema import NewTicket, Ticket, TicketCategory
from cea_agent.tickets.store import PendingSyncBuffer, TicketStore
from cea_agent.utils import business_now

logger = logging.getLogger(__name__)

FOLIO_PATTERN = re.compile(r"^([A-Z]{3})-(\d{8})-(\d{4})$")
MAX_SEQUENCE = 9999

DEGRADED_WARNING = (
    "Ticket store unavailable; ticket recorded locally with a provisional folio "
    "pending synchronization"
)


def folio_prefix(category: TicketCategory, day: date) -> str:
    return f"{category.code}-{day:%Y%m%d}-"


def format_folio(category: TicketCategory, day: date, sequence: int) -> str:
    """Build a folio string.

    Raises:
        ValueError: If ``sequence`` is outside 0..9999.
    """
    if not 0 <= sequence <= MAX_SEQUENCE:
        raise ValueError(f"Folio sequence out of range: {sequence}")
    return f"{folio_prefix(category, day)}{sequence:04d}"


def parse_sequence(folio: str) -> int:
    """Return the trailing 4-digit sequence of ``folio``.

    Raises:
        ValueError: If ``folio`` does not match the folio format.
    """
    match = FOLIO_PATTERN.match(folio)
    if not match:
        raise ValueError(f"Not a folio: {folio!r}")
    return int(match.group(3))


def is_valid_folio(folio: str) -> bool:
    return FOLIO_PATTERN.match(folio) is not None


@dataclass
class FolioOutcome:
    """Result of creating a ticket with a freshly generated folio."""

    ticket: Ticket
    degraded: bool = False
    warning: Optional[str] = None
    attempts: int = 1


class FolioGenerator:
    """Assigns folios to new tickets and inserts them into the store."""

    def __init__(
        self,
        store: TicketStore,
        pending: Optional[PendingSyncBuffer] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._store = store
        self.pending = pending if pending is not None else PendingSyncBuffer()
        self._max_attempts = max_attempts or settings.store.folio_max_attempts

    async def next_folio(self, category: TicketCategory, now: Optional[datetime] = None) -> str:
        """Compute the next sequential folio for ``category`` on the business day of ``now``.

        Raises:
            StoreUnavailableError: If the sequence lookup fails.
        """
        local = business_now(now)
        prefix = folio_prefix(category, local.date())
        last = await self._store.max_folio_with_prefix(prefix)

        sequence = 1
        if last:
            try:
                sequence = parse_sequence(last) + 1
            except ValueError:
                logger.warning("Ignoring malformed stored folio %r for prefix %s", last, prefix)

        if sequence > MAX_SEQUENCE:
            logger.warning("Daily sequence exhausted for %s, using timestamp folio", prefix)
            return self.fallback_folio(category, now)
        return format_folio(category, local.date(), sequence)

    def fallback_folio(self, category: TicketCategory, now: Optional[datetime] = None) -> str:
        """Folio whose sequence is taken from the epoch milliseconds.

        The sequence stays within 1..9999 and is bumped past any folio
        already waiting in the pending buffer.
        """
        local = business_now(now)
        millis = int(local.timestamp() * 1000)
        start = millis % MAX_SEQUENCE
        taken = set(self.pending.folios())
        for offset in range(MAX_SEQUENCE):
            folio = format_folio(category, local.date(), (start + offset) % MAX_SEQUENCE + 1)
            if folio not in taken:
                return folio
        raise StoreUnavailableError(f"No provisional folio left for {folio_prefix(category, local.date())}")

    async def insert_with_folio(
        self, new_ticket: NewTicket, now: Optional[datetime] = None
    ) -> FolioOutcome:
        """Generate a folio, insert the ticket, and retry on folio collisions.

        Never raises for store problems: an unreachable store, or running out
        of attempts, yields a locally built ticket with ``degraded=True``. The
        only exception is a pending buffer already holding every provisional
        folio of the day, which raises ``StoreUnavailableError``.
        """
        created_at = business_now(now)

        for attempt in range(1, self._max_attempts + 1):
            try:
                folio = await self.next_folio(new_ticket.category, created_at)
            except StoreUnavailableError as e:
                logger.warning("Folio lookup failed: %s", e)
                return self._degrade(new_ticket, created_at, attempt)

            ticket = _build_ticket(new_ticket, folio, created_at)
            try:
                stored = await self._store.insert(ticket)
            except DuplicateFolioError as e:
                logger.info(
                    "Folio collision on %s (attempt %d/%d), recomputing",
                    e.folio, attempt, self._max_attempts,
                )
                continue
            except StoreUnavailableError as e:
                logger.warning("Ticket insert failed: %s", e)
                return self._degrade(new_ticket, created_at, attempt)

            logger.info("Ticket created: %s (%s)", stored.folio, stored.category.value)
            return FolioOutcome(ticket=stored, attempts=attempt)

        logger.error(
            "Could not allocate a unique folio after %d attempts", self._max_attempts
        )
        return self._degrade(new_ticket, created_at, self._max_attempts)

    def _degrade(self, new_ticket: NewTicket, created_at: datetime, attempts: int) -> FolioOutcome:
        folio = self.fallback_folio(new_ticket.category, created_at)
        ticket = _build_ticket(new_ticket, folio, created_at)
        self.pending.add(ticket)
        logger.warning("Ticket %s kept for later sync (%d pending)", folio, len(self.pending))
        return FolioOutcome(
            ticket=ticket, degraded=True, warning=DEGRADED_WARNING, attempts=attempts
        )


def _build_ticket(new_ticket: NewTicket, folio: str, created_at: datetime) -> Ticket:
    return Ticket(
        **new_ticket.model_dump(),
        folio=folio,
        created_at=created_at,
        updated_at=created_at,
    )
