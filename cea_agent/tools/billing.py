"""Billing lookups against the CEA commercial services."""

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator

from cea_agent.schemas.upstream_schema import to_tool_result
from cea_agent.tools.registry import Tool
from cea_agent.utils import normalize_contract

logger = logging.getLogger(__name__)


class ContractInput(BaseModel):
    """Arguments shared by every contract lookup."""

    contract_number: str = Field(description="Contract number, digits only (e.g. '523160')")

    @field_validator("contract_number")
    @classmethod
    def _digits_only(cls, value: str) -> str:
        digits = normalize_contract(value)
        if not digits:
            raise ValueError("contract number must contain digits")
        return digits


def build_billing_tools(services: Any) -> list[Tool]:
    cea = services.cea

    async def get_debt(params: ContractInput) -> dict[str, Any]:
        logger.info("get_debt contract=%s", params.contract_number)
        return to_tool_result(await cea.get_debt(params.contract_number))

    async def get_consumption(params: ContractInput) -> dict[str, Any]:
        logger.info("get_consumption contract=%s", params.contract_number)
        return to_tool_result(await cea.get_consumption(params.contract_number))

    async def get_contract_details(params: ContractInput) -> dict[str, Any]:
        logger.info("get_contract_details contract=%s", params.contract_number)
        return to_tool_result(await cea.get_contract(params.contract_number))

    return [
        Tool(
            name="get_debt",
            description=(
                "Get the outstanding balance for a contract: total debt, overdue amount, "
                "upcoming amount and the most recent receipts."
            ),
            input_model=ContractInput,
            handler=get_debt,
        ),
        Tool(
            name="get_consumption",
            description=(
                "Get water consumption history for a contract (m3 per period, most recent "
                "first), the monthly average and whether usage is increasing, stable or decreasing."
            ),
            input_model=ContractInput,
            handler=get_consumption,
        ),
        Tool(
            name="get_contract_details",
            description=(
                "Get contract details: holder name, service address, rate type, meter "
                "number and status (active, suspended or cut_off)."
            ),
            input_model=ContractInput,
            handler=get_contract_details,
        ),
    ]
