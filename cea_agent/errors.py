"""Domain exceptions.

These are raised inside clients and stores and caught at the tool boundary
(converted to tagged failure results) or at the workflow boundary (converted
to a natural-language response).
"""

from typing import Optional


class StoreUnavailableError(Exception):
    """The persistent store could not be reached or timed out."""


class DuplicateFolioError(Exception):
    """An insert violated the folio uniqueness constraint."""

    def __init__(self, folio: str) -> None:
        super().__init__(f"Folio already exists: {folio}")
        self.folio = folio


class TicketNotFoundError(Exception):
    def __init__(self, folio: str) -> None:
        super().__init__(f"Ticket {folio} not found")
        self.folio = folio


class InvalidTransitionError(Exception):
    """Raised when a ticket status change is not allowed from its current status."""


class UpstreamError(Exception):
    """An upstream domain API call failed after retries."""


class UpstreamHTTPError(UpstreamError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"API error {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500 or self.status_code == 429


class UpstreamParseError(Exception):
    """An upstream payload could not be transformed into a typed result."""


class ClassificationError(Exception):
    """The classification step produced no usable label."""


class InvalidInboundError(Exception):
    """The inbound message is empty or otherwise unusable."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field
