"""Personas for the water-hub deployment: ordering water, incidents, providers and alerts."""

from enum import Enum

from cea_agent.agents.base import (
    ClassifierSpec,
    Persona,
    classifier_settings,
    info_settings,
    specialist_settings,
)
from cea_agent.prompts import system_prompts as prompts


class WaterHubIntent(str, Enum):
    REQUEST_WATER = "request_water"
    REPORT_INCIDENT = "report_incident"
    ORDER_STATUS = "order_status"
    ALERTS = "alerts"
    PROVIDERS = "providers"
    REQUEST_HUMAN_AGENT = "request_human_agent"
    GENERAL_INFO = "general_info"


def waterhub_classifier() -> ClassifierSpec:
    return ClassifierSpec(
        name="AquaHub - Clasificador",
        instructions=prompts.WATERHUB_CLASSIFIER_PROMPT,
        labels=tuple(i.value for i in WaterHubIntent),
        settings=classifier_settings(),
    )


def _specialist(name: str, instructions: str, *tool_names: str) -> Persona:
    return Persona(
        name=f"AquaHub - {name}",
        instructions=instructions,
        tool_names=tool_names,
        settings=specialist_settings(),
    )


def info_persona() -> Persona:
    return Persona(
        name="AquaHub - Informacion",
        instructions=prompts.WATERHUB_INFO_PROMPT,
        tool_names=("get_alerts", "get_prediction"),
        settings=info_settings(),
    )


PERSONA_FACTORIES = {
    WaterHubIntent.REQUEST_WATER.value: lambda: _specialist(
        "Pedir Agua", prompts.WATERHUB_REQUEST_WATER_PROMPT, "list_providers", "create_order"
    ),
    WaterHubIntent.REPORT_INCIDENT.value: lambda: _specialist(
        "Reportar Incidente", prompts.WATERHUB_INCIDENT_PROMPT, "report_incident", "consult_incidents"
    ),
    WaterHubIntent.ORDER_STATUS.value: lambda: _specialist(
        "Consultar Pedido", prompts.WATERHUB_ORDER_STATUS_PROMPT, "get_order", "list_orders", "cancel_order"
    ),
    WaterHubIntent.PROVIDERS.value: lambda: _specialist(
        "Proveedores", prompts.WATERHUB_PROVIDERS_PROMPT, "list_providers", "create_order", "get_prediction"
    ),
    WaterHubIntent.ALERTS.value: lambda: _specialist(
        "Alertas", prompts.WATERHUB_ALERTS_PROMPT, "get_alerts", "get_prediction", "consult_incidents"
    ),
    WaterHubIntent.GENERAL_INFO.value: info_persona,
}
