"""Shared utilities used across the citizen agent."""

import re
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from cea_agent.config import settings

_WEEKDAYS_ES = ["lunes", "martes", "miercoles", "jueves", "viernes", "sabado", "domingo"]
_MONTHS_ES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.service.timezone)


def business_now(now: Optional[datetime] = None) -> datetime:
    """Return ``now`` (default: current UTC time) in the business timezone."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(business_tz())


def format_business_datetime(now: Optional[datetime] = None) -> str:
    """Human-readable local date and time, e.g. 'lunes 3 de marzo de 2025, 14:05'."""
    local = business_now(now)
    return (
        f"{_WEEKDAYS_ES[local.weekday()]} {local.day} de {_MONTHS_ES[local.month - 1]} "
        f"de {local.year}, {local:%H:%M}"
    )


def normalize_contract(value: str) -> str:
    """Strip everything except digits from a contract number.

    Examples:
        >>> normalize_contract(" 523-160 ")
        '523160'
        >>> normalize_contract("Contrato #123456")
        '123456'
    """
    return re.sub(r"[^\d]", "", value or "")


def coerce_float(value: Any, default: float = 0.0) -> float:
    """Parse a number that upstream systems may send as text with separators.

    Raises:
        ValueError: If ``value`` is non-empty and not numeric.
    """
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "").replace("$", "")
    if not text:
        return default
    return float(text)


def coerce_int(value: Any, default: int = 0) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return int(coerce_float(value, float(default)))
