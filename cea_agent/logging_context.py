"""Conversation-scoped logging and request context.

Provides a conversation-aware logger that attaches the conversation ID to
every log message, plus a per-request context object that any module can
read during a turn without threading it through every call.

Usage:
    from cea_agent.logging_context import get_conversation_logger, use_context

    with use_context(RequestContext(conversation_id="wa-5215512345678")):
        logger = get_conversation_logger(__name__)
        logger.info("Processing turn")  # -> [wa-5215512345678] Processing turn
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s [%(name)s] [%(conversation_id)s] %(levelname)s: %(message)s"

_conversation_id: ContextVar[str] = ContextVar("conversation_id", default="-")


@dataclass(frozen=True)
class RequestContext:
    """Per-turn context visible to tools and stores."""

    conversation_id: Optional[str] = None
    contact_id: Optional[int] = None
    channel: Optional[str] = None
    contract_number: Optional[str] = None
    locality: Optional[str] = None


_request_context: ContextVar[RequestContext] = ContextVar(
    "request_context", default=RequestContext()
)


def get_conversation_id() -> str:
    """Retrieve the current correlation ID."""
    return _conversation_id.get()


def get_current_context() -> RequestContext:
    return _request_context.get()


@contextmanager
def use_context(context: RequestContext) -> Iterator[RequestContext]:
    """Install ``context`` for the duration of the block."""
    token = _request_context.set(context)
    id_token = _conversation_id.set(context.conversation_id or "-")
    try:
        yield context
    finally:
        _conversation_id.reset(id_token)
        _request_context.reset(token)


async def run_with_context(
    context: RequestContext, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
) -> T:
    """Await ``fn`` with ``context`` installed."""
    with use_context(context):
        return await fn(*args, **kwargs)


def update_context(**changes: Any) -> RequestContext:
    """Replace fields of the current context in place for the rest of the turn."""
    updated = replace(_request_context.get(), **changes)
    _request_context.set(updated)
    return updated


class ConversationIdFilter(logging.Filter):
    """Injects conversation_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.conversation_id = _conversation_id.get()  # type: ignore[attr-defined]
        return True


def get_conversation_logger(name: str) -> logging.Logger:
    """Return a logger with the ConversationIdFilter attached.

    The filter adds ``conversation_id`` to each record so formatters can
    include ``%(conversation_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, ConversationIdFilter) for f in logger.filters):
        logger.addFilter(ConversationIdFilter())
    return logger


def configure_logging(level: str = "INFO") -> None:
    """Configure the root handler with the conversation-aware format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, ConversationIdFilter) for f in handler.filters):
            handler.addFilter(ConversationIdFilter())
