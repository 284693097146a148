"""Typed results for billing, consumption and contract lookups."""

from enum import Enum
from typing import Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why an upstream call or tool failed."""

    UPSTREAM_FAULT = "upstream_fault"
    PARSE_ERROR = "parse_error"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    NOT_FOUND = "not_found"
    STORE_UNAVAILABLE = "store_unavailable"
    VALIDATION = "validation"
    REJECTED = "rejected"
    INTERNAL = "internal"


class UpstreamOk(BaseModel, Generic[T]):
    success: Literal[True] = True
    data: T


class UpstreamFailure(BaseModel):
    """Failure variant; ``raw_response`` keeps the untransformed payload for diagnostics."""

    success: Literal[False] = False
    error: str
    kind: ErrorKind = ErrorKind.UPSTREAM_FAULT
    raw_response: Optional[str] = None


class DebtLineItem(BaseModel):
    period: str = ""
    amount: float = 0.0
    due_date: str = ""
    overdue: bool = False


class DebtData(BaseModel):
    contract_number: str
    total_debt: float = 0.0
    overdue: float = 0.0
    upcoming: float = 0.0
    holder: str = ""
    line_items: list[DebtLineItem] = Field(default_factory=list)


class ConsumptionTrend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class ConsumptionPeriod(BaseModel):
    period: str = ""
    cubic_meters: float = 0.0
    reading_date: str = ""
    estimated: bool = False


class ConsumptionData(BaseModel):
    contract_number: str
    monthly_average: float = 0.0
    trend: ConsumptionTrend = ConsumptionTrend.STABLE
    history: list[ConsumptionPeriod] = Field(default_factory=list)


class ContractStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CUT_OFF = "cut_off"


class ContractData(BaseModel):
    contract_number: str
    holder: str = ""
    address: str = ""
    rate: str = ""
    status: ContractStatus = ContractStatus.ACTIVE
    meter_number: str = ""


UpstreamResult = Union[UpstreamOk[Any], UpstreamFailure]
DebtResult = Union[UpstreamOk[DebtData], UpstreamFailure]
ConsumptionResult = Union[UpstreamOk[ConsumptionData], UpstreamFailure]
ContractResult = Union[UpstreamOk[ContractData], UpstreamFailure]


def to_tool_result(result: UpstreamResult) -> dict[str, Any]:
    """Flatten a tagged upstream result into the dict shape tools return."""
    if isinstance(result, UpstreamFailure):
        return {
            "success": False,
            "error": result.error,
            "error_kind": result.kind.value,
        }
    payload = result.data.model_dump(mode="json")
    return {"success": True, **payload}
