"""
Persona and classifier definitions.

A persona is data: instructions, the names of the tools it may call, and
model settings. Running it means handing that bundle, the working history
and the resolved tool subset to a ``ModelRunner``.
"""

from dataclasses import dataclass
from typing import Any

from cea_agent.config import settings
from cea_agent.llm.interfaces import ModelRunner, ModelSettings, TurnResult
from cea_agent.logging_context import get_conversation_logger
from cea_agent.tools.registry import ToolRegistry

logger = get_conversation_logger(__name__)


def classifier_settings() -> ModelSettings:
    cfg = settings.model
    return ModelSettings(cfg.classifier_model, cfg.classifier_temperature, cfg.classifier_max_tokens)


def specialist_settings() -> ModelSettings:
    cfg = settings.model
    return ModelSettings(cfg.specialist_model, cfg.specialist_temperature, cfg.specialist_max_tokens)


def info_settings() -> ModelSettings:
    """Lighter model with a warmer temperature for general questions."""
    cfg = settings.model
    return ModelSettings(cfg.info_model, cfg.info_temperature, cfg.info_max_tokens)


@dataclass(frozen=True)
class ClassifierSpec:
    name: str
    instructions: str
    labels: tuple[str, ...]
    settings: ModelSettings


@dataclass(frozen=True)
class Persona:
    """A specialist bound to a tool subset."""

    name: str
    instructions: str
    tool_names: tuple[str, ...]
    settings: ModelSettings

    async def run(
        self, runner: ModelRunner, registry: ToolRegistry, history: list[dict[str, Any]]
    ) -> TurnResult:
        tools = registry.subset(self.tool_names)
        logger.info("Running %s with %d tool(s)", self.name, len(tools))
        return await runner.run_turn(self, history, tools)
