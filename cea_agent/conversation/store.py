"""
In-memory conversation store with idle-time eviction.

One ``ConversationState`` per conversation id, created lazily on first
access. Every read or write refreshes ``last_access``; a background task
removes entries idle longer than the TTL. History is windowed to the most
recent N messages after each turn.

The store is process-local and lock-free: callers are expected to
serialize turns for the same conversation id. For a multi-process
deployment replace it with an external keyed store exposing the same
``get``/``set``/``touch``/``delete`` interface.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Iterator, Optional

from cea_agent.config import settings
from cea_agent.schemas.conversation_schema import ConversationState

logger = logging.getLogger(__name__)


def bound_history(history: list[dict[str, Any]], cap: int) -> list[dict[str, Any]]:
    """Keep the last ``cap`` messages, preserving their order."""
    if cap <= 0:
        return []
    if len(history) <= cap:
        return history
    return history[-cap:]


class ConversationStore:
    """Conversation id -> state, with TTL sweep."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        sweep_interval_seconds: Optional[float] = None,
        max_history: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = settings.conversation
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else cfg.ttl_seconds
        self.sweep_interval_seconds = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else cfg.sweep_interval_seconds
        )
        self.max_history = max_history if max_history is not None else cfg.max_history_messages
        self._clock = clock
        self._entries: dict[str, ConversationState] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def get(self, conversation_id: str) -> ConversationState:
        """Return the state for ``conversation_id``, creating it if needed."""
        state = self._entries.get(conversation_id)
        if state is None:
            state = ConversationState()
            self._entries[conversation_id] = state
            logger.debug("Conversation %s created", conversation_id)
        state.last_access = self._clock()
        return state

    def set(self, conversation_id: str, state: ConversationState) -> None:
        state.history = bound_history(state.history, self.max_history)
        state.last_access = self._clock()
        self._entries[conversation_id] = state

    def touch(self, conversation_id: str) -> bool:
        state = self._entries.get(conversation_id)
        if state is None:
            return False
        state.last_access = self._clock()
        return True

    def delete(self, conversation_id: str) -> bool:
        return self._entries.pop(conversation_id, None) is not None

    def append(self, conversation_id: str, messages: list[dict[str, Any]]) -> ConversationState:
        """Append a turn's messages and apply the history window."""
        state = self.get(conversation_id)
        state.history = bound_history(state.history + list(messages), self.max_history)
        return state

    def sweep(self, now: Optional[float] = None) -> int:
        """Evict conversations idle for longer than the TTL. Returns the count removed."""
        now = self._clock() if now is None else now
        expired = [
            cid for cid, state in self._entries.items()
            if now - state.last_access > self.ttl_seconds
        ]
        for cid in expired:
            del self._entries[cid]
        if expired:
            logger.info("Evicted %d idle conversation(s), %d active", len(expired), len(self._entries))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.sweep()

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.debug("Conversation sweeper started (every %ss)", self.sweep_interval_seconds)

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))
