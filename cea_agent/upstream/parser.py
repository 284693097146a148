"""
Parsers for CEA SOAP responses (debt, consumption, contract detail).

Every parser returns ``UpstreamOk`` or ``UpstreamFailure`` and never raises.
A payload carrying a SOAP fault short-circuits to failure before any field
is read. Otherwise each field is extracted on its own: a missing field
becomes 0 or "" instead of aborting the parse, and an empty payload is a
valid "no data" success. A field that is present but unreadable (e.g. a
non-numeric amount) turns the whole result into a failure that keeps the
raw payload for diagnostics.
"""

import html
import logging
import re
from typing import Optional, Sequence

from pydantic import ValidationError

from cea_agent.config import settings
from cea_agent.errors import UpstreamParseError
from cea_agent.schemas.upstream_schema import (
    ConsumptionData,
    ConsumptionPeriod,
    ConsumptionResult,
    ConsumptionTrend,
    ContractData,
    ContractResult,
    ContractStatus,
    DebtData,
    DebtLineItem,
    DebtResult,
    ErrorKind,
    UpstreamFailure,
    UpstreamOk,
)
from cea_agent.utils import coerce_float

logger = logging.getLogger(__name__)

TREND_BAND = 0.10
TREND_WINDOW = 3

_TRUE_VALUES = {"true", "s", "si", "y", "yes", "1"}


def _tag_regex(tag: str) -> re.Pattern:
    return re.compile(
        rf"<(?:[\w-]+:)?{re.escape(tag)}(?:\s[^>]*)?>(.*?)</(?:[\w-]+:)?{re.escape(tag)}>",
        re.DOTALL,
    )


def extract(xml: str, tag: str) -> str:
    """Text of the first ``<tag>`` element (any namespace prefix), or ""."""
    match = _tag_regex(tag).search(xml or "")
    if not match:
        return ""
    return html.unescape(match.group(1)).strip()


def extract_blocks(xml: str, tag: str) -> list[str]:
    """Inner XML of every ``<tag>`` element, in document order."""
    return _tag_regex(tag).findall(xml or "")


def detect_fault(xml: str) -> Optional[str]:
    """Return the fault message if the payload is a SOAP fault."""
    if not xml:
        return None
    message = extract(xml, "faultstring")
    if message:
        return message
    if re.search(r"<(?:[\w-]+:)?Fault[\s>]", xml):
        return "Upstream service returned a fault"
    return None


def _number(xml: str, tag: str) -> float:
    raw = extract(xml, tag)
    try:
        return coerce_float(raw)
    except ValueError:
        raise UpstreamParseError(f"Non-numeric value for {tag}: {raw!r}") from None


def _flag(xml: str, tag: str) -> bool:
    return extract(xml, tag).lower() in _TRUE_VALUES


def _failure(kind: str, error: str, xml: str) -> UpstreamFailure:
    logger.warning("%s response rejected: %s", kind, error)
    return UpstreamFailure(error=error, kind=ErrorKind.PARSE_ERROR, raw_response=xml)


def _fault(kind: str, message: str, xml: str) -> UpstreamFailure:
    logger.warning("%s request faulted: %s", kind, message)
    return UpstreamFailure(
        error=f"Upstream error: {message}", kind=ErrorKind.UPSTREAM_FAULT, raw_response=xml
    )


def parse_debt_response(
    xml: str, contract_number: str, max_items: Optional[int] = None
) -> DebtResult:
    """Parse a ``getDeuda`` response.

    ``total_debt`` is ``deudaTotal``, ``overdue`` the carried-over balance
    (``saldoAnterior``) and ``upcoming`` the current period (``deuda``).
    Line items come from ``<Recibo>`` blocks, most recent due date first.
    """
    fault = detect_fault(xml)
    if fault:
        return _fault("Debt", fault, xml)

    limit = settings.upstream.max_debt_items if max_items is None else max_items
    try:
        items = [
            DebtLineItem(
                period=extract(block, "periodo"),
                amount=_number(block, "importe"),
                due_date=extract(block, "fechaVencimiento"),
                overdue=_flag(block, "vencido"),
            )
            for block in extract_blocks(xml, "Recibo")
        ]
        items.sort(key=lambda item: item.due_date, reverse=True)
        data = DebtData(
            contract_number=contract_number,
            total_debt=_number(xml, "deudaTotal"),
            overdue=_number(xml, "saldoAnterior"),
            upcoming=_number(xml, "deuda"),
            holder=extract(xml, "nombreCliente") or extract(xml, "titular"),
            line_items=items[:limit],
        )
    except (UpstreamParseError, ValidationError) as e:
        return _failure("Debt", f"Could not read debt data: {e}", xml)
    return UpstreamOk[DebtData](data=data)


def compute_trend(values: Sequence[float]) -> ConsumptionTrend:
    """Compare the mean of the newest three periods with the oldest three.

    ``values`` is ordered most recent first. Changes within +/-10% of the
    older mean are stable.
    """
    if len(values) < 2:
        return ConsumptionTrend.STABLE
    recent = values[:TREND_WINDOW]
    oldest = values[-TREND_WINDOW:]
    recent_mean = sum(recent) / len(recent)
    oldest_mean = sum(oldest) / len(oldest)
    if oldest_mean == 0:
        return ConsumptionTrend.INCREASING if recent_mean > 0 else ConsumptionTrend.STABLE
    change = (recent_mean - oldest_mean) / oldest_mean
    if change > TREND_BAND:
        return ConsumptionTrend.INCREASING
    if change < -TREND_BAND:
        return ConsumptionTrend.DECREASING
    return ConsumptionTrend.STABLE


def parse_consumption_response(
    xml: str, contract_number: str, window: Optional[int] = None
) -> ConsumptionResult:
    """Parse a ``getConsumos`` response.

    ``<Consumo>`` records arrive newest first; only the first ``window`` are kept.
    """
    fault = detect_fault(xml)
    if fault:
        return _fault("Consumption", fault, xml)

    size = settings.upstream.consumption_window if window is None else window
    try:
        periods = []
        for block in extract_blocks(xml, "Consumo")[:size]:
            label = extract(block, "periodo").replace("<", "").replace(">", "").strip()
            year = extract(block, "año") or extract(block, "anio")
            periods.append(
                ConsumptionPeriod(
                    period=f"{label} {year}".strip(),
                    cubic_meters=_number(block, "metrosCubicos"),
                    reading_date=extract(block, "fechaLectura"),
                    estimated=_flag(block, "estimado"),
                )
            )
        volumes = [p.cubic_meters for p in periods]
        average = round(sum(volumes) / len(volumes), 2) if volumes else 0.0
        data = ConsumptionData(
            contract_number=contract_number,
            monthly_average=average,
            trend=compute_trend(volumes),
            history=periods,
        )
    except (UpstreamParseError, ValidationError) as e:
        return _failure("Consumption", f"Could not read consumption data: {e}", xml)
    return UpstreamOk[ConsumptionData](data=data)


def contract_status_from_text(text: str) -> ContractStatus:
    upper = (text or "").upper()
    if "BAJA" in upper or "CORT" in upper:
        return ContractStatus.CUT_OFF
    if "SUSP" in upper:
        return ContractStatus.SUSPENDED
    return ContractStatus.ACTIVE


def parse_contract_response(xml: str, contract_number: str) -> ContractResult:
    """Parse a ``consultaDetalleContrato`` response."""
    fault = detect_fault(xml)
    if fault:
        return _fault("Contract", fault, xml)

    try:
        street = " ".join(p for p in (extract(xml, "calle"), extract(xml, "numero")) if p)
        address = ", ".join(
            p for p in (street, extract(xml, "municipio"), extract(xml, "provincia")) if p
        )
        data = ContractData(
            contract_number=extract(xml, "numeroContrato") or contract_number,
            holder=extract(xml, "titular"),
            address=address,
            rate=extract(xml, "descUso"),
            status=contract_status_from_text(
                extract(xml, "estadoContrato") or extract(xml, "estado")
            ),
            meter_number=extract(xml, "numeroContador"),
        )
    except ValidationError as e:
        return _failure("Contract", f"Could not read contract data: {e}", xml)
    return UpstreamOk[ContractData](data=data)
