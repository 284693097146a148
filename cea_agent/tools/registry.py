"""
Named, schema-validated operations that personas can invoke.

A ``Tool`` pairs a pydantic input model with an async handler. ``execute``
is the boundary: it validates arguments, runs the handler, and converts
every exception into a failure dict, so callers always get a result of the
shape ``{"success": bool, ...}`` and never an exception.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Union

from pydantic import BaseModel, ValidationError

from cea_agent.errors import (
    InvalidTransitionError,
    StoreUnavailableError,
    TicketNotFoundError,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamParseError,
)
from cea_agent.schemas.upstream_schema import ErrorKind

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Awaitable[dict[str, Any]]]


def failure(error: str, kind: ErrorKind, **extra: Any) -> dict[str, Any]:
    """Build the failure shape every tool returns."""
    return {"success": False, "error": error, "error_kind": kind.value, **extra}


def _classify_exception(exc: Exception) -> ErrorKind:
    if isinstance(exc, StoreUnavailableError):
        return ErrorKind.STORE_UNAVAILABLE
    if isinstance(exc, UpstreamHTTPError):
        return ErrorKind.NOT_FOUND if exc.status_code == 404 else ErrorKind.HTTP_STATUS
    if isinstance(exc, UpstreamError):
        return ErrorKind.NETWORK
    if isinstance(exc, UpstreamParseError):
        return ErrorKind.PARSE_ERROR
    if isinstance(exc, TicketNotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, InvalidTransitionError):
        return ErrorKind.REJECTED
    return ErrorKind.INTERNAL


@dataclass(frozen=True)
class Tool:
    """A single invocable operation."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler
    read_only: bool = True

    def openai_schema(self) -> dict[str, Any]:
        """Function-tool definition for the chat completions API."""
        parameters = self.input_model.model_json_schema()
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }

    async def execute(self, arguments: Union[str, dict[str, Any], None]) -> dict[str, Any]:
        """Validate ``arguments`` and run the handler. Never raises."""
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                return failure(f"Arguments for {self.name} are not valid JSON: {e}", ErrorKind.VALIDATION)
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return failure(f"Arguments for {self.name} must be an object", ErrorKind.VALIDATION)

        try:
            params = self.input_model.model_validate(arguments)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
                for err in e.errors()
            )
            logger.info("Rejected %s call: %s", self.name, problems)
            return failure(f"Invalid input for {self.name}: {problems}", ErrorKind.VALIDATION)

        try:
            result = await self.handler(params)
        except Exception as e:
            kind = _classify_exception(e)
            if kind == ErrorKind.INTERNAL:
                logger.exception("Tool %s crashed", self.name)
            else:
                logger.warning("Tool %s failed (%s): %s", self.name, kind.value, e)
            return failure(f"{self.name} failed: {e}", kind)

        logger.debug("Tool %s -> success=%s", self.name, result.get("success"))
        return result


class ToolRegistry:
    """Holds every tool by name; personas receive subsets."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """Raises:
            KeyError: If no tool has that name.
        """
        if name not in self._tools:
            raise KeyError(f"Tool '{name}' not registered. Available: {self.names()}")
        return self._tools[name]

    def subset(self, names: Iterable[str]) -> list[Tool]:
        return [self.get(name) for name in names]

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
