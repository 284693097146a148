"""
Turn orchestration: the single entry point for inbound messages.

    payload -> normalize -> validate -> annotate -> classify
            -> (human handoff | persona turn) -> persist history -> output

Every turn returns a ``WorkflowOutput``. Invalid input gets a deterministic
reply; any failure after that is logged and answered with a generic
apology, and the failed turn is not written to history.
"""

import json
import time
import uuid
from typing import Any, Optional

from cea_agent.agents.handoff_agent import HumanHandoff
from cea_agent.agents.registry import Deployment, classify, get_deployment, route
from cea_agent.config import settings
from cea_agent.conversation.slots import apply_extraction, known_slots
from cea_agent.conversation.store import ConversationStore, bound_history
from cea_agent.conversation.turn_machine import TurnMachine, TurnStage
from cea_agent.enrichment import NominatimGeocoder, WhisperTranscriber
from cea_agent.errors import InvalidInboundError
from cea_agent.llm.interfaces import ModelRunner, ToolInvocation
from cea_agent.logging_context import RequestContext, get_conversation_logger, run_with_context, update_context
from cea_agent.prompts.prompt_templates import build_context_header
from cea_agent.schemas.conversation_schema import ConversationState, WorkflowInput, WorkflowOutput
from cea_agent.tools.registry import ToolRegistry
from cea_agent.tools.services import ToolServices, build_tool_registry
from cea_agent.tools.tickets import CREATE_TICKET

logger = get_conversation_logger(__name__)

ERROR_RESPONSE = "Lo siento, tuve un problema procesando tu mensaje. ¿Podrías intentar de nuevo?"
EMPTY_INPUT_RESPONSE = "No recibí ningún mensaje. ¿En qué puedo ayudarte?"
TOO_LONG_RESPONSE = "Tu mensaje es demasiado largo. ¿Podrías resumirlo en un mensaje más corto?"


def normalize_message(value: Any) -> str:
    """Plain text from whatever the channel delivered.

    Lists, and strings that hold a JSON list, collapse to their first
    string element.

    Examples:
        >>> normalize_message(["hola", "otro"])
        'hola'
        >>> normalize_message('["hola"]')
        'hola'
    """
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except json.JSONDecodeError:
                return stripped
            if isinstance(decoded, list):
                return normalize_message(decoded)
        return stripped
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str):
                return item.strip()
        return ""
    return "" if value is None else str(value).strip()


def validate_inbound(text: str, payload: WorkflowInput, max_length: Optional[int] = None) -> None:
    """Raises:
        InvalidInboundError: If there is nothing to process or the text is too long.
    """
    limit = max_length or settings.conversation.max_message_length
    has_attachment = bool(payload.image_url or payload.location or payload.audio)
    if not text and not has_attachment:
        raise InvalidInboundError("Message is empty", field="input_as_text")
    if len(text) > limit:
        raise InvalidInboundError(f"Message exceeds {limit} characters", field="input_as_text")


async def annotate_modalities(
    text: str,
    payload: WorkflowInput,
    geocoder: Optional[NominatimGeocoder] = None,
    transcriber: Optional[WhisperTranscriber] = None,
) -> str:
    """Fold voice notes, shared locations and images into the message text."""
    parts: list[str] = []

    if payload.audio:
        transcript = await transcriber.transcribe(payload.audio) if transcriber else None
        if transcript:
            parts.append(f"[Nota de voz transcrita] {transcript}")
        else:
            parts.append("[El ciudadano envió una nota de voz que no se pudo transcribir]")

    location = payload.location
    if location is not None:
        coords = f"{location.latitude}, {location.longitude}"
        address = location.address
        if not address and geocoder is not None:
            address = await geocoder.reverse(location.latitude, location.longitude)
        label = ", ".join(p for p in (location.name, address) if p)
        parts.append(f"[Ubicación compartida: {coords}" + (f" ({label})]" if label else "]"))

    if payload.image_url:
        parts.append(f"[Imagen adjunta: {payload.image_url}]")

    if text:
        parts.append(text)
    return "\n".join(parts)


def extract_tools_invoked(items: list[dict[str, Any]]) -> list[str]:
    """Tool names from assistant tool-call records, first-seen order."""
    names: list[str] = []
    for item in items:
        if item.get("role") != "assistant":
            continue
        for call in item.get("tool_calls") or []:
            name = (call.get("function") or {}).get("name")
            if name and name not in names:
                names.append(name)
    return names


def fallback_text(items: list[dict[str, Any]]) -> str:
    """Last assistant-authored text in ``items``, or ''."""
    for item in reversed(items):
        if item.get("role") != "assistant":
            continue
        content = item.get("content")
        if isinstance(content, str) and content.strip():
            return content
        if isinstance(content, list):
            text = "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
            if text.strip():
                return text
    return ""


def extract_ticket_folio(invocations: list[ToolInvocation]) -> Optional[str]:
    for invocation in reversed(invocations):
        if invocation.name == CREATE_TICKET and invocation.succeeded:
            return invocation.result.get("folio")
    return None


def _remember_customer(state: ConversationState, invocations: list[ToolInvocation]) -> None:
    for invocation in invocations:
        if invocation.name == "search_customer_by_contract" and invocation.result.get("found"):
            name = (invocation.result.get("customer") or {}).get("name")
            if name:
                state.customer_name = name


class WorkflowRunner:
    """Drives classify -> route -> persist for one deployment."""

    def __init__(
        self,
        runner: ModelRunner,
        services: ToolServices,
        registry: Optional[ToolRegistry] = None,
        store: Optional[ConversationStore] = None,
        deployment: Optional[str] = None,
        geocoder: Optional[NominatimGeocoder] = None,
        transcriber: Optional[WhisperTranscriber] = None,
    ) -> None:
        self.runner = runner
        self.services = services
        self.registry = registry if registry is not None else build_tool_registry(services)
        self.store = store if store is not None else ConversationStore()
        self.deployment: Deployment = get_deployment(deployment or settings.service.deployment)
        self.geocoder = geocoder
        self.transcriber = transcriber

    async def run(self, payload: WorkflowInput) -> WorkflowOutput:
        conversation_id = payload.conversation_id or str(uuid.uuid4())
        state = self.store.get(conversation_id)
        context = RequestContext(
            conversation_id=conversation_id,
            contact_id=payload.contact_id,
            channel=payload.metadata.get("channel") or settings.service.default_channel,
            contract_number=state.contract_number,
            locality=state.locality,
        )
        return await run_with_context(context, self._run_turn, conversation_id, state, payload)

    async def _run_turn(
        self, conversation_id: str, state: ConversationState, payload: WorkflowInput
    ) -> WorkflowOutput:
        started = time.perf_counter()
        turn = TurnMachine()

        def finish(text: str, **fields: Any) -> WorkflowOutput:
            turn.advance(TurnStage.RESPOND)
            elapsed = (time.perf_counter() - started) * 1000
            logger.info("Turn finished in %.0fms (%s)", elapsed, " -> ".join(turn.trace()))
            return WorkflowOutput(
                output_text=text,
                conversation_id=conversation_id,
                processing_time_ms=round(elapsed, 2),
                **fields,
            )

        text = normalize_message(payload.input_as_text)
        try:
            validate_inbound(text, payload)
        except InvalidInboundError as e:
            logger.info("Rejected inbound message: %s", e)
            turn.fail()
            reply = TOO_LONG_RESPONSE if text else EMPTY_INPUT_RESPONSE
            return finish(reply, error=str(e))

        tools_invoked: list[str] = []
        label: Optional[str] = None
        try:
            annotated = await annotate_modalities(text, payload, self.geocoder, self.transcriber)
            header = build_context_header(self.services.clock(), known_slots(state))
            user_message = {"role": "user", "content": f"{header}\n{annotated}"}
            working = [*state.history, user_message]

            turn.advance(TurnStage.CLASSIFY)
            result = await classify(self.runner, self.deployment, working)
            label = result.classification
            logger.info("Classification: %s", label)
            if apply_extraction(state, result):
                update_context(contract_number=state.contract_number, locality=state.locality)
            state.classification = label

            handler = route(self.deployment, label)
            ticket_folio: Optional[str] = None
            if isinstance(handler, HumanHandoff):
                turn.advance(TurnStage.SHORT_CIRCUIT)
                outcome = await handler.complete_handoff(self.services, state, annotated)
                output_text = outcome.text
                ticket_folio = outcome.folio
                tools_invoked = [outcome.tool_name]
                new_items = [{"role": "assistant", "content": output_text}]
            else:
                turn.advance(TurnStage.ROUTE)
                turn_result = await handler.run(self.runner, self.registry, working)
                output_text = turn_result.final_output or fallback_text(turn_result.new_items)
                tools_invoked = extract_tools_invoked(turn_result.new_items)
                ticket_folio = extract_ticket_folio(turn_result.invocations)
                _remember_customer(state, turn_result.invocations)
                new_items = list(turn_result.new_items)
                if not new_items and output_text:
                    new_items = [{"role": "assistant", "content": output_text}]
        except Exception as e:
            logger.exception("Turn failed at stage %s", turn.stage.value)
            turn.fail()
            return finish(ERROR_RESPONSE, classification=label, tools_invoked=tools_invoked, error=str(e))

        turn.advance(TurnStage.PERSIST)
        state.history = bound_history([*state.history, user_message, *new_items], self.store.max_history)
        self.store.set(conversation_id, state)

        return finish(
            output_text,
            classification=label,
            tools_invoked=tools_invoked,
            ticket_folio=ticket_folio,
        )

    def agent_health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "deployment": self.deployment.name,
            "agents": [self.deployment.classifier().name, *self.deployment.persona_names(), HumanHandoff.name],
            "conversation_count": len(self.store),
        }

    async def aclose(self) -> None:
        await self.store.stop_sweeper()
        if self.geocoder is not None:
            await self.geocoder.aclose()
        await self.services.aclose()


_default_workflow: Optional[WorkflowRunner] = None


def build_default_workflow(deployment: Optional[str] = None) -> WorkflowRunner:
    """Production wiring: OpenAI runner, configured clients and stores."""
    from cea_agent.llm.openai_runner import OpenAIModelRunner

    return WorkflowRunner(
        runner=OpenAIModelRunner(),
        services=ToolServices.from_settings(),
        deployment=deployment,
        geocoder=NominatimGeocoder(),
        transcriber=WhisperTranscriber(),
    )


def get_default_workflow() -> WorkflowRunner:
    global _default_workflow
    if _default_workflow is None:
        _default_workflow = build_default_workflow()
    return _default_workflow


async def run_workflow(payload: WorkflowInput) -> WorkflowOutput:
    """Process one inbound message with the default workflow."""
    workflow = get_default_workflow()
    workflow.store.start_sweeper()
    return await workflow.run(payload)


def agent_health() -> dict[str, Any]:
    return get_default_workflow().agent_health()
