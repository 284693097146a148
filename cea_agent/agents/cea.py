"""Personas for the CEA deployment: billing, consumption, contracts, leaks and tickets."""

from enum import Enum

from cea_agent.agents.base import (
    ClassifierSpec,
    Persona,
    classifier_settings,
    info_settings,
    specialist_settings,
)
from cea_agent.prompts import system_prompts as prompts


class CeaIntent(str, Enum):
    LEAK = "leak"
    BILLING = "billing"
    CONSUMPTION = "consumption"
    CONTRACT = "contract"
    TICKETS = "tickets"
    REQUEST_HUMAN_AGENT = "request_human_agent"
    GENERAL_INFO = "general_info"


def cea_classifier() -> ClassifierSpec:
    return ClassifierSpec(
        name="CEA - Clasificador",
        instructions=prompts.CEA_CLASSIFIER_PROMPT,
        labels=tuple(i.value for i in CeaIntent),
        settings=classifier_settings(),
    )


def leak_persona() -> Persona:
    return Persona(
        name="CEA - Fugas",
        instructions=prompts.LEAK_SYSTEM_PROMPT,
        tool_names=("create_ticket", "get_client_tickets"),
        settings=specialist_settings(),
    )


def billing_persona() -> Persona:
    return Persona(
        name="CEA - Pagos y adeudos",
        instructions=prompts.BILLING_SYSTEM_PROMPT,
        tool_names=("get_debt", "get_contract_details", "create_ticket"),
        settings=specialist_settings(),
    )


def consumption_persona() -> Persona:
    return Persona(
        name="CEA - Consumo",
        instructions=prompts.CONSUMPTION_SYSTEM_PROMPT,
        tool_names=("get_consumption", "create_ticket"),
        settings=specialist_settings(),
    )


def contract_persona() -> Persona:
    return Persona(
        name="CEA - Contratos",
        instructions=prompts.CONTRACT_SYSTEM_PROMPT,
        tool_names=("get_contract_details", "search_customer_by_contract", "create_ticket"),
        settings=specialist_settings(),
    )


def tickets_persona() -> Persona:
    return Persona(
        name="CEA - Tickets",
        instructions=prompts.TICKETS_SYSTEM_PROMPT,
        tool_names=("get_client_tickets", "update_ticket", "create_ticket"),
        settings=specialist_settings(),
    )


def general_info_persona() -> Persona:
    return Persona(
        name="CEA - Informacion",
        instructions=prompts.GENERAL_INFO_SYSTEM_PROMPT,
        tool_names=("search_customer_by_contract",),
        settings=info_settings(),
    )


PERSONA_FACTORIES = {
    CeaIntent.LEAK.value: leak_persona,
    CeaIntent.BILLING.value: billing_persona,
    CeaIntent.CONSUMPTION.value: consumption_persona,
    CeaIntent.CONTRACT.value: contract_persona,
    CeaIntent.TICKETS.value: tickets_persona,
    CeaIntent.GENERAL_INFO.value: general_info_persona,
}
