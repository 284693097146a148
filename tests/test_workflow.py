"""End-to-end turn tests with a scripted model runner."""

import re

import httpx
import pytest

from cea_agent.conversation.store import ConversationStore
from cea_agent.enrichment import NominatimGeocoder
from cea_agent.llm.interfaces import ToolInvocation, TurnResult
from cea_agent.schemas.conversation_schema import SharedLocation, WorkflowInput
from cea_agent.schemas.ticket_schema import Customer, TicketPriority
from cea_agent.workflow import (
    EMPTY_INPUT_RESPONSE,
    ERROR_RESPONSE,
    TOO_LONG_RESPONSE,
    annotate_modalities,
    extract_ticket_folio,
    extract_tools_invoked,
    fallback_text,
    normalize_message,
)
from tests.helpers import (
    ScriptedRunner,
    classified,
    debt_xml,
    make_services,
    make_workflow,
    mock_client,
    soap_handler,
    tool_turn,
)

FOLIO_RE = re.compile(r"^[A-Z]{3}-\d{8}-\d{4}$")


def _say(text: str):
    return tool_turn([], text)


class FakeTranscriber:
    def __init__(self, text):
        self.text = text
        self.calls = 0

    async def transcribe(self, audio, filename="voice.ogg"):
        self.calls += 1
        return self.text


class TestNormalizeMessage:
    def test_plain_text_is_stripped(self):
        assert normalize_message("  hola  ") == "hola"

    def test_list_takes_first_string(self):
        assert normalize_message([None, "hola", "adios"]) == "hola"

    def test_stringified_list(self):
        assert normalize_message('["quiero pagar"]') == "quiero pagar"

    def test_bracket_text_that_is_not_json(self):
        assert normalize_message("[urgente] fuga") == "[urgente] fuga"

    def test_empty_values(self):
        assert normalize_message([]) == ""
        assert normalize_message(None) == ""


class TestHistoryHelpers:
    def test_tools_invoked_dedupes_in_order(self):
        items = [
            {"role": "assistant", "content": None, "tool_calls": [
                {"id": "1", "type": "function", "function": {"name": "get_debt", "arguments": "{}"}},
                {"id": "2", "type": "function", "function": {"name": "create_ticket", "arguments": "{}"}},
            ]},
            {"role": "tool", "tool_call_id": "1", "content": "{}"},
            {"role": "assistant", "content": None, "tool_calls": [
                {"id": "3", "type": "function", "function": {"name": "get_debt", "arguments": "{}"}},
            ]},
        ]
        assert extract_tools_invoked(items) == ["get_debt", "create_ticket"]

    def test_fallback_text_uses_last_assistant_text(self):
        items = [
            {"role": "assistant", "content": "primero"},
            {"role": "tool", "tool_call_id": "1", "content": "{}"},
            {"role": "assistant", "content": [{"type": "text", "text": "segundo"}]},
            {"role": "assistant", "content": None, "tool_calls": []},
        ]
        assert fallback_text(items) == "segundo"

    def test_fallback_text_empty(self):
        assert fallback_text([{"role": "user", "content": "hola"}]) == ""

    def test_ticket_folio_ignores_failed_creations(self):
        invocations = [
            ToolInvocation("create_ticket", {}, {"success": True, "folio": "FUG-20250303-0001"}),
            ToolInvocation("create_ticket", {}, {"success": False, "error": "x"}),
            ToolInvocation("get_debt", {}, {"success": True}),
        ]
        assert extract_ticket_folio(invocations) == "FUG-20250303-0001"


class TestAnnotateModalities:
    @pytest.mark.asyncio
    async def test_location_with_geocoded_address(self):
        def handler(request):
            assert request.url.params["lat"] == "19.43"
            return httpx.Response(200, json={"display_name": "Calle 5, Coyoacan"})

        geocoder = NominatimGeocoder(base_url="http://geo.test", http_client=mock_client(handler))
        payload = WorkflowInput(location=SharedLocation(latitude=19.43, longitude=-99.13))
        text = await annotate_modalities("", payload, geocoder=geocoder)
        assert text == "[Ubicación compartida: 19.43, -99.13 (Calle 5, Coyoacan)]"

    @pytest.mark.asyncio
    async def test_location_without_geocoder(self):
        payload = WorkflowInput(location=SharedLocation(latitude=1.5, longitude=2.5, name="Casa"))
        text = await annotate_modalities("aqui", payload)
        assert text == "[Ubicación compartida: 1.5, 2.5 (Casa)]\naqui"

    @pytest.mark.asyncio
    async def test_voice_note_and_image(self):
        payload = WorkflowInput(audio=b"ogg", image_url="http://img.test/fuga.jpg")
        text = await annotate_modalities("", payload, transcriber=FakeTranscriber("hay una fuga"))
        assert text == "[Nota de voz transcrita] hay una fuga\n[Imagen adjunta: http://img.test/fuga.jpg]"

    @pytest.mark.asyncio
    async def test_untranscribable_voice_note(self):
        payload = WorkflowInput(audio=b"ogg")
        text = await annotate_modalities("", payload, transcriber=FakeTranscriber(None))
        assert "no se pudo transcribir" in text


class TestBalanceInquiry:
    def setup_method(self):
        services = make_services(cea_handler=soap_handler({"InterfazGenericaGestionDeudaWS": debt_xml()}))
        self.runner = ScriptedRunner(
            classifications=[classified("billing", contract="123456"), classified("billing")],
            turns=[
                tool_turn(
                    [("get_debt", {"contract_number": "123456"})],
                    lambda results: f"Tu saldo total es de ${results[0]['total_debt']:.0f} pesos.",
                ),
                _say("Puedes pagar en linea o en cualquier oficina."),
            ],
        )
        self.workflow = make_workflow(self.runner, services)

    @pytest.mark.asyncio
    async def test_balance_turn(self):
        output = await self.workflow.run(
            WorkflowInput(input_as_text="cuanto debo? contrato 123456", conversation_id="c1")
        )
        assert "150" in output.output_text
        assert output.classification == "billing"
        assert output.tools_invoked == ["get_debt"]
        assert output.error is None
        assert output.ticket_folio is None

    @pytest.mark.asyncio
    async def test_contract_is_sticky_across_turns(self):
        await self.workflow.run(WorkflowInput(input_as_text="cuanto debo? contrato 123456", conversation_id="c1"))
        await self.workflow.run(WorkflowInput(input_as_text="donde pago?", conversation_id="c1"))

        second_user_message = self.runner.classify_calls[1][-1]
        assert second_user_message["role"] == "user"
        assert "contrato: 123456" in second_user_message["content"]
        assert second_user_message["content"].endswith("donde pago?")
        assert self.workflow.store.get("c1").contract_number == "123456"

    @pytest.mark.asyncio
    async def test_header_carries_business_time(self):
        await self.workflow.run(WorkflowInput(input_as_text="cuanto debo?", conversation_id="c1"))
        first = self.runner.classify_calls[0][-1]["content"]
        assert first.startswith("[Fecha y hora: lunes 3 de marzo de 2025, 12:00")

    @pytest.mark.asyncio
    async def test_history_keeps_tool_traffic(self):
        await self.workflow.run(WorkflowInput(input_as_text="cuanto debo?", conversation_id="c1"))
        roles = [m["role"] for m in self.workflow.store.get("c1").history]
        assert roles == ["user", "assistant", "tool", "assistant"]


class TestHumanHandoff:
    @pytest.mark.asyncio
    async def test_handoff_creates_urgent_ticket(self):
        services = make_services()
        runner = ScriptedRunner(classifications=[classified("request_human_agent", contract="523160")])
        workflow = make_workflow(runner, services)

        output = await workflow.run(WorkflowInput(
            input_as_text="quiero hablar con una persona",
            conversation_id="c2",
            metadata={"channel": "web"},
        ))

        assert FOLIO_RE.match(output.ticket_folio)
        assert output.ticket_folio.startswith("URG-")
        assert output.ticket_folio in output.output_text
        assert output.tools_invoked == ["create_ticket"]
        assert runner.turn_calls == []

        ticket = await services.ticket_store.get_by_folio(output.ticket_folio)
        assert ticket.priority == TicketPriority.URGENT
        assert ticket.contract_number == "523160"
        assert ticket.channel == "web"
        assert "quiero hablar con una persona" in ticket.description

    @pytest.mark.asyncio
    async def test_handoff_with_store_down_still_has_folio(self):
        services = make_services()
        services.ticket_store.unreachable = True
        workflow = make_workflow(ScriptedRunner(classifications=[classified("request_human_agent")]), services)

        output = await workflow.run(WorkflowInput(input_as_text="un asesor por favor", conversation_id="c3"))

        assert FOLIO_RE.match(output.ticket_folio)
        assert "provisional" in output.output_text
        assert output.error is None

    @pytest.mark.asyncio
    async def test_handoff_in_waterhub_deployment(self):
        workflow = make_workflow(
            ScriptedRunner(classifications=[classified("request_human_agent")]), deployment="waterhub"
        )
        output = await workflow.run(WorkflowInput(input_as_text="agente humano", conversation_id="c4"))
        assert output.ticket_folio.startswith("URG-")


class TestFailures:
    @pytest.mark.asyncio
    async def test_classification_without_output(self):
        workflow = make_workflow(ScriptedRunner(classifications=[None]))
        output = await workflow.run(WorkflowInput(input_as_text="hola", conversation_id="c5"))
        assert output.output_text == ERROR_RESPONSE
        assert "Classification failed" in output.error
        assert output.classification is None
        assert workflow.store.get("c5").history == []

    @pytest.mark.asyncio
    async def test_classifier_exception(self):
        workflow = make_workflow(ScriptedRunner(classifications=[TimeoutError("model timed out")]))
        output = await workflow.run(WorkflowInput(input_as_text="hola", conversation_id="c5"))
        assert output.output_text == ERROR_RESPONSE
        assert output.error == "model timed out"

    @pytest.mark.asyncio
    async def test_persona_exception_keeps_classification(self):
        runner = ScriptedRunner(classifications=[classified("billing")], turns=[RuntimeError("model down")])
        workflow = make_workflow(runner)
        output = await workflow.run(WorkflowInput(input_as_text="cuanto debo", conversation_id="c6"))
        assert output.output_text == ERROR_RESPONSE
        assert output.classification == "billing"
        assert workflow.store.get("c6").history == []

    @pytest.mark.asyncio
    async def test_empty_input(self):
        runner = ScriptedRunner()
        output = await make_workflow(runner).run(WorkflowInput(input_as_text="   ", conversation_id="c7"))
        assert output.output_text == EMPTY_INPUT_RESPONSE
        assert output.error
        assert runner.classify_calls == []

    @pytest.mark.asyncio
    async def test_too_long_input(self):
        output = await make_workflow(ScriptedRunner()).run(
            WorkflowInput(input_as_text="a" * 10001, conversation_id="c8")
        )
        assert output.output_text == TOO_LONG_RESPONSE

    @pytest.mark.asyncio
    async def test_failed_turn_does_not_erase_earlier_history(self):
        runner = ScriptedRunner(
            classifications=[classified("general_info"), None],
            turns=[_say("Hola, soy el asistente de CEA.")],
        )
        workflow = make_workflow(runner)
        await workflow.run(WorkflowInput(input_as_text="hola", conversation_id="c9"))
        await workflow.run(WorkflowInput(input_as_text="???", conversation_id="c9"))
        assert len(workflow.store.get("c9").history) == 2


class TestTurnDetails:
    @pytest.mark.asyncio
    async def test_image_only_message_is_processed(self):
        runner = ScriptedRunner(classifications=[classified("leak")], turns=[_say("Recibi tu foto.")])
        output = await make_workflow(runner).run(
            WorkflowInput(image_url="http://img.test/fuga.jpg", conversation_id="c10")
        )
        assert output.output_text == "Recibi tu foto."
        assert "[Imagen adjunta: http://img.test/fuga.jpg]" in runner.classify_calls[0][-1]["content"]

    @pytest.mark.asyncio
    async def test_voice_note_reaches_classifier(self):
        runner = ScriptedRunner(classifications=[classified("leak")], turns=[_say("Entendido.")])
        workflow = make_workflow(runner, transcriber=FakeTranscriber("se rompio un tubo"))
        await workflow.run(WorkflowInput(audio=b"ogg", conversation_id="c11"))
        assert "[Nota de voz transcrita] se rompio un tubo" in runner.classify_calls[0][-1]["content"]

    @pytest.mark.asyncio
    async def test_persona_ticket_folio_is_reported(self):
        runner = ScriptedRunner(
            classifications=[classified("leak")],
            turns=[tool_turn(
                [("create_ticket", {"category": "leak", "title": "Fuga", "description": "Fuga en la toma"})],
                lambda results: f"Tu folio es {results[0]['folio']}",
            )],
        )
        output = await make_workflow(runner).run(WorkflowInput(input_as_text="hay una fuga", conversation_id="c12"))
        assert output.ticket_folio == "FUG-20250303-0001"
        assert output.tools_invoked == ["create_ticket"]

    @pytest.mark.asyncio
    async def test_fallback_when_no_final_output(self):
        runner = ScriptedRunner(
            classifications=[classified("billing")],
            turns=[TurnResult(final_output=None, new_items=[{"role": "assistant", "content": "Texto parcial"}])],
        )
        output = await make_workflow(runner).run(WorkflowInput(input_as_text="saldo", conversation_id="c13"))
        assert output.output_text == "Texto parcial"

    @pytest.mark.asyncio
    async def test_customer_name_is_remembered(self):
        services = make_services()
        services.ticket_store.add_customer(Customer(id=1, name="Maria Lopez", contract_number="523160"))
        runner = ScriptedRunner(
            classifications=[classified("contract")],
            turns=[tool_turn([("search_customer_by_contract", {"contract_number": "523160"})], "Listo")],
        )
        workflow = make_workflow(runner, services)
        await workflow.run(WorkflowInput(input_as_text="mi contrato 523160", conversation_id="c14"))
        assert workflow.store.get("c14").customer_name == "Maria Lopez"

    @pytest.mark.asyncio
    async def test_persona_receives_only_its_tools(self):
        runner = ScriptedRunner(classifications=[classified("leak")], turns=[_say("ok")])
        await make_workflow(runner).run(WorkflowInput(input_as_text="fuga", conversation_id="c15"))
        persona, _, tools = runner.turn_calls[0]
        assert [t.name for t in tools] == list(persona.tool_names)

    @pytest.mark.asyncio
    async def test_history_is_capped(self):
        turns = 12
        runner = ScriptedRunner(
            classifications=[classified("general_info") for _ in range(turns)],
            turns=[_say(f"respuesta {i}") for i in range(turns)],
        )
        store = ConversationStore(max_history=20, clock=lambda: 0.0)
        workflow = make_workflow(runner, store=store)
        for i in range(turns):
            await workflow.run(WorkflowInput(input_as_text=f"pregunta {i}", conversation_id="c16"))
        history = store.get("c16").history
        assert len(history) == 20
        assert history[-1]["content"] == "respuesta 11"

    @pytest.mark.asyncio
    async def test_conversation_id_is_generated(self):
        runner = ScriptedRunner(classifications=[classified("general_info")], turns=[_say("hola")])
        output = await make_workflow(runner).run(WorkflowInput(input_as_text="hola"))
        assert output.conversation_id


class TestAgentHealth:
    def test_health_report(self):
        workflow = make_workflow(ScriptedRunner())
        workflow.store.get("c1")
        health = workflow.agent_health()
        assert health["status"] == "healthy"
        assert health["deployment"] == "cea"
        assert "human_handoff" in health["agents"]
        assert "CEA - Fugas" in health["agents"]
        assert health["conversation_count"] == 1
