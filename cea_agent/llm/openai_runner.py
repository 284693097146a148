"""OpenAI chat-completions implementation of ``ModelRunner``."""

import json
import logging
from typing import Any, Optional

from openai import AsyncOpenAI
from pydantic import ValidationError

from cea_agent.config import settings
from cea_agent.llm.interfaces import (
    ModelRunner,
    ToolInvocation,
    TurnResult,
    drop_orphan_tool_messages,
    text_only,
)
from cea_agent.schemas.conversation_schema import ClassificationResult
from cea_agent.schemas.upstream_schema import ErrorKind
from cea_agent.tools.registry import failure

logger = logging.getLogger(__name__)


def _parse_arguments(raw: str) -> Any:
    try:
        return json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return raw


class OpenAIModelRunner(ModelRunner):
    """Classifier in JSON mode; personas with a sequential tool-call loop.

    The client is built with ``max_retries=0``: a timed-out or failed
    model call fails the turn instead of being retried.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        max_tool_rounds: Optional[int] = None,
    ) -> None:
        cfg = settings.model
        self._client = client or AsyncOpenAI(
            api_key=settings.openai_api_key or None,
            timeout=cfg.request_timeout_sec,
            max_retries=0,
        )
        self.max_tool_rounds = max_tool_rounds or cfg.max_tool_rounds

    async def classify(self, classifier, history):
        messages = [{"role": "system", "content": classifier.instructions}, *text_only(history)]
        response = await self._client.chat.completions.create(
            model=classifier.settings.model,
            temperature=classifier.settings.temperature,
            max_tokens=classifier.settings.max_tokens,
            messages=messages,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            logger.warning("Classifier returned no content")
            return None
        try:
            return ClassificationResult.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Classifier output unusable: %s", e)
            return None

    async def run_turn(self, persona, history, tools):
        tool_map = {tool.name: tool for tool in tools}
        tool_schemas = [tool.openai_schema() for tool in tools]
        base = [{"role": "system", "content": persona.instructions}, *drop_orphan_tool_messages(history)]
        new_items: list[dict[str, Any]] = []
        invocations: list[ToolInvocation] = []

        for round_number in range(1, self.max_tool_rounds + 1):
            request: dict[str, Any] = {
                "model": persona.settings.model,
                "temperature": persona.settings.temperature,
                "max_tokens": persona.settings.max_tokens,
                "messages": base + new_items,
            }
            if tool_schemas:
                request["tools"] = tool_schemas
            response = await self._client.chat.completions.create(**request)
            message = response.choices[0].message

            item: dict[str, Any] = {"role": "assistant", "content": message.content}
            if message.tool_calls:
                item["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments},
                    }
                    for call in message.tool_calls
                ]
            new_items.append(item)

            if not message.tool_calls:
                return TurnResult(final_output=message.content, new_items=new_items, invocations=invocations)

            for call in message.tool_calls:
                name = call.function.name
                tool = tool_map.get(name)
                if tool is None:
                    logger.warning("%s requested tool %s outside its toolset", persona.name, name)
                    result = failure(f"Tool '{name}' is not available here", ErrorKind.VALIDATION)
                else:
                    result = await tool.execute(call.function.arguments)
                invocations.append(
                    ToolInvocation(
                        name=name,
                        arguments=_parse_arguments(call.function.arguments),
                        result=result,
                        call_id=call.id,
                    )
                )
                new_items.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(result, ensure_ascii=False, default=str),
                })
            logger.debug("%s tool round %d: %s", persona.name, round_number,
                         [c.function.name for c in message.tool_calls])

        logger.warning("%s stopped after %d tool rounds without a final answer",
                       persona.name, self.max_tool_rounds)
        return TurnResult(final_output=None, new_items=new_items, invocations=invocations)
