"""Test doubles and payload builders shared across the suite."""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

import httpx

from cea_agent.conversation.store import ConversationStore
from cea_agent.llm.interfaces import ModelRunner, ToolInvocation, TurnResult
from cea_agent.schemas.conversation_schema import ClassificationResult
from cea_agent.tickets.folio import FolioGenerator
from cea_agent.tickets.store import InMemoryTicketStore
from cea_agent.tools.services import ToolServices, build_tool_registry
from cea_agent.upstream.soap import CeaSoapClient
from cea_agent.upstream.waterhub import WaterHubClient
from cea_agent.workflow import WorkflowRunner

# 12:00 in Mexico City, business date 2025-03-03
FIXED_NOW = datetime(2025, 3, 3, 18, 0, tzinfo=timezone.utc)

CEA_URL = "http://cea.test/services"
HUB_URL = "http://hub.test"

Handler = Callable[[httpx.Request], httpx.Response]


def not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, text="not found")


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def mock_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# SOAP payload builders
# ---------------------------------------------------------------------------

def soap_body(inner: str) -> str:
    return (
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        f"<soap:Body>{inner}</soap:Body></soap:Envelope>"
    )


def debt_xml(
    total: str = "150.00",
    overdue: str = "50.00",
    upcoming: str = "100.00",
    holder: str = "MARIA LOPEZ",
    receipts: Optional[list[tuple[str, str, str, str]]] = None,
) -> str:
    """``receipts``: (periodo, importe, fechaVencimiento, vencido) tuples."""
    blocks = "".join(
        f"<Recibo><periodo>{p}</periodo><importe>{a}</importe>"
        f"<fechaVencimiento>{d}</fechaVencimiento><vencido>{v}</vencido></Recibo>"
        for p, a, d, v in (receipts or [])
    )
    return soap_body(
        "<ns2:getDeudaResponse xmlns:ns2=\"http://interfazgenericagestiondeuda\"><return>"
        f"<deudaTotal>{total}</deudaTotal><saldoAnterior>{overdue}</saldoAnterior>"
        f"<deuda>{upcoming}</deuda><nombreCliente>{holder}</nombreCliente>"
        f"{blocks}</return></ns2:getDeudaResponse>"
    )


def consumption_xml(records: list[tuple[str, str, str]]) -> str:
    """``records``: (periodo, año, metrosCubicos), newest first."""
    blocks = "".join(
        f"<Consumo><periodo>{p}</periodo><año>{y}</año>"
        f"<metrosCubicos>{m}</metrosCubicos><fechaLectura>{y}-01-15</fechaLectura>"
        "<estimado>false</estimado></Consumo>"
        for p, y, m in records
    )
    return soap_body(f"<getConsumosResponse><return>{blocks}</return></getConsumosResponse>")


def contract_xml(status: str = "ALTA") -> str:
    return soap_body(
        "<consultaDetalleContratoResponse><return>"
        "<numeroContrato>523160</numeroContrato><titular>JUAN PEREZ</titular>"
        "<calle>AV. UNIVERSIDAD</calle><numero>100</numero><municipio>QUERETARO</municipio>"
        "<provincia>QRO</provincia><descUso>DOMESTICO</descUso>"
        f"<estadoContrato>{status}</estadoContrato><numeroContador>M-778</numeroContador>"
        "</return></consultaDetalleContratoResponse>"
    )


def fault_xml(message: str = "Contrato no encontrado") -> str:
    return soap_body(
        f"<soap:Fault><faultcode>soap:Server</faultcode><faultstring>{message}</faultstring></soap:Fault>"
    )


def soap_handler(routes: dict[str, Union[str, httpx.Response]]) -> Handler:
    """Answer by endpoint name; unknown endpoints get 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        answer = routes.get(endpoint)
        if answer is None:
            return httpx.Response(404, text="unknown endpoint")
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, text=answer)

    return handler


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

def make_services(
    ticket_store: Optional[InMemoryTicketStore] = None,
    cea_handler: Handler = not_found,
    hub_handler: Handler = not_found,
    incident_backends: Optional[list] = None,
    folio_attempts: Optional[int] = None,
) -> ToolServices:
    store = ticket_store if ticket_store is not None else InMemoryTicketStore()
    return ToolServices(
        ticket_store=store,
        cea=CeaSoapClient(base_url=CEA_URL, http_client=mock_client(cea_handler), backoff=0),
        waterhub=WaterHubClient(base_url=HUB_URL, http_client=mock_client(hub_handler), backoff=0),
        incident_backends=incident_backends or [],
        folio_generator=FolioGenerator(store, max_attempts=folio_attempts),
        clock=lambda: FIXED_NOW,
        read_backoff=0,
    )


# ---------------------------------------------------------------------------
# Scripted model runner
# ---------------------------------------------------------------------------

def classified(label: str, contract: Optional[str] = None, locality: Optional[str] = None) -> ClassificationResult:
    return ClassificationResult(
        classification=label, confidence=0.9, extracted_contract=contract, extracted_locality=locality
    )


def tool_turn(
    calls: list[tuple[str, dict[str, Any]]],
    final: Union[str, Callable[[list[dict[str, Any]]], str], None],
):
    """A persona turn that calls ``calls`` in order, then answers ``final``.

    ``final`` may be a function of the tool results.
    """

    async def script(persona, history, tools) -> TurnResult:
        tool_map = {t.name: t for t in tools}
        new_items: list[dict[str, Any]] = []
        invocations: list[ToolInvocation] = []
        results: list[dict[str, Any]] = []
        for index, (name, arguments) in enumerate(calls):
            call_id = f"call_{index}"
            new_items.append({
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": call_id,
                    "type": "function",
                    "function": {"name": name, "arguments": json.dumps(arguments)},
                }],
            })
            result = await tool_map[name].execute(arguments)
            results.append(result)
            invocations.append(ToolInvocation(name=name, arguments=arguments, result=result, call_id=call_id))
            new_items.append({"role": "tool", "tool_call_id": call_id, "content": json.dumps(result)})
        text = final(results) if callable(final) else final
        if text is not None:
            new_items.append({"role": "assistant", "content": text})
        return TurnResult(final_output=text, new_items=new_items, invocations=invocations)

    return script


class ScriptedRunner(ModelRunner):
    """Replays queued classifications and persona turns.

    A queued ``Exception`` is raised instead of returned.
    """

    def __init__(self, classifications=None, turns=None) -> None:
        self.classifications = list(classifications or [])
        self.turns = list(turns or [])
        self.classify_calls: list[list[dict[str, Any]]] = []
        self.turn_calls: list[tuple[Any, list[dict[str, Any]], list[Any]]] = []

    async def classify(self, classifier, history):
        self.classify_calls.append(list(history))
        item = self.classifications.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def run_turn(self, persona, history, tools):
        self.turn_calls.append((persona, list(history), list(tools)))
        script = self.turns.pop(0)
        if isinstance(script, Exception):
            raise script
        if isinstance(script, TurnResult):
            return script
        return await script(persona, history, tools)


def make_workflow(
    runner: ScriptedRunner,
    services: Optional[ToolServices] = None,
    deployment: str = "cea",
    store: Optional[ConversationStore] = None,
    **kwargs: Any,
) -> WorkflowRunner:
    services = services or make_services()
    return WorkflowRunner(
        runner=runner,
        services=services,
        registry=build_tool_registry(services),
        store=store if store is not None else ConversationStore(clock=lambda: 0.0),
        deployment=deployment,
        **kwargs,
    )

