"""
Model-invocation boundary.

The workflow only ever talks to a ``ModelRunner``: one call to classify a
history into a label, one call to run a persona turn with a tool subset.
``OpenAIModelRunner`` is the production implementation; tests script a
runner that returns canned results.

History items are chat-completions messages (plain dicts with ``role``,
``content`` and, for tool traffic, ``tool_calls`` / ``tool_call_id``).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from cea_agent.schemas.conversation_schema import ClassificationResult

if TYPE_CHECKING:
    from cea_agent.agents.base import ClassifierSpec, Persona
    from cea_agent.tools.registry import Tool


@dataclass(frozen=True)
class ModelSettings:
    model: str
    temperature: float
    max_tokens: int


@dataclass
class ToolInvocation:
    """One tool call made during a persona turn."""

    name: str
    arguments: Any
    result: dict[str, Any]
    call_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return bool(self.result.get("success"))


@dataclass
class TurnResult:
    """What a persona turn produced.

    ``final_output`` is ``None`` when the model stopped without a final
    message (e.g. it ran out of tool rounds). ``new_items`` holds every
    message the turn added, in order, ready to be appended to history.
    """

    final_output: Optional[str]
    new_items: list[dict[str, Any]] = field(default_factory=list)
    invocations: list[ToolInvocation] = field(default_factory=list)


class ModelRunner(ABC):
    @abstractmethod
    async def classify(
        self, classifier: "ClassifierSpec", history: list[dict[str, Any]]
    ) -> Optional[ClassificationResult]:
        """Label the latest message. ``None`` means no usable output."""

    @abstractmethod
    async def run_turn(
        self,
        persona: "Persona",
        history: list[dict[str, Any]],
        tools: list["Tool"],
    ) -> TurnResult:
        """Run one persona turn over ``history`` with ``tools`` available."""


def drop_orphan_tool_messages(history: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop tool results at the head of ``history`` whose calls were windowed out."""
    start = 0
    while start < len(history) and history[start].get("role") == "tool":
        start += 1
    return history[start:]


def text_only(history: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """User and assistant messages that carry text, without tool traffic."""
    messages = []
    for item in history:
        role = item.get("role")
        content = item.get("content")
        if role in ("user", "assistant") and isinstance(content, str) and content.strip():
            messages.append({"role": role, "content": content})
    return messages
