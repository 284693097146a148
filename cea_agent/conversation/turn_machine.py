"""
Stage machine for a single workflow turn.

    Receive -> Classify -> (ShortCircuit | Route) -> Persist -> Respond

``Error`` is reachable from every working stage and leads straight to
``Respond``, skipping ``Persist``: a failed turn never lands in history.

Usage:
    turn = TurnMachine()
    turn.advance(TurnStage.CLASSIFY)
    assert turn.stage == TurnStage.CLASSIFY
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class TurnStage(str, Enum):
    RECEIVE = "receive"
    CLASSIFY = "classify"
    SHORT_CIRCUIT = "short_circuit"
    ROUTE = "route"
    PERSIST = "persist"
    RESPOND = "respond"
    ERROR = "error"


TRANSITIONS: dict[TurnStage, frozenset[TurnStage]] = {
    TurnStage.RECEIVE: frozenset({TurnStage.CLASSIFY, TurnStage.ERROR}),
    TurnStage.CLASSIFY: frozenset({TurnStage.SHORT_CIRCUIT, TurnStage.ROUTE, TurnStage.ERROR}),
    TurnStage.SHORT_CIRCUIT: frozenset({TurnStage.PERSIST, TurnStage.ERROR}),
    TurnStage.ROUTE: frozenset({TurnStage.PERSIST, TurnStage.ERROR}),
    TurnStage.PERSIST: frozenset({TurnStage.RESPOND}),
    TurnStage.ERROR: frozenset({TurnStage.RESPOND}),
    TurnStage.RESPOND: frozenset(),
}


@dataclass
class StageEntry:
    stage: TurnStage
    entered_at: datetime


class InvalidStageTransition(Exception):
    """Raised when a turn tries to skip or revisit a stage."""


class TurnMachine:
    """Tracks the stages one turn passes through."""

    def __init__(self) -> None:
        self._stage = TurnStage.RECEIVE
        self._history: list[StageEntry] = [
            StageEntry(TurnStage.RECEIVE, datetime.now(timezone.utc))
        ]
        self.failed_stage: Optional[TurnStage] = None

    @property
    def stage(self) -> TurnStage:
        return self._stage

    def advance(self, target: TurnStage) -> TurnStage:
        """Move to ``target``.

        Raises:
            InvalidStageTransition: If ``target`` is not reachable from the current stage.
        """
        if target not in TRANSITIONS[self._stage]:
            allowed = sorted(s.value for s in TRANSITIONS[self._stage])
            raise InvalidStageTransition(
                f"Cannot go from '{self._stage.value}' to '{target.value}'. Allowed: {allowed}"
            )
        if target == TurnStage.ERROR:
            self.failed_stage = self._stage
        logger.debug("Turn stage: %s -> %s", self._stage.value, target.value)
        self._stage = target
        self._history.append(StageEntry(target, datetime.now(timezone.utc)))
        return target

    def fail(self) -> TurnStage:
        """Jump to ``ERROR`` from wherever the turn is."""
        return self.advance(TurnStage.ERROR)

    def trace(self) -> list[str]:
        return [entry.stage.value for entry in self._history]

    def is_done(self) -> bool:
        return self._stage == TurnStage.RESPOND
