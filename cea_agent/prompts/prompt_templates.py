"""Dynamic prompt construction for per-turn context."""

from datetime import datetime
from typing import Optional

from cea_agent.config import settings
from cea_agent.utils import format_business_datetime


def build_context_header(now: Optional[datetime] = None, slots: Optional[dict[str, str]] = None) -> str:
    """Bracketed header prepended to the citizen's message each turn."""
    parts = [f"Fecha y hora: {format_business_datetime(now)} ({settings.service.timezone})"]
    for key, value in (slots or {}).items():
        parts.append(f"{key}: {value}")
    return "[" + " | ".join(parts) + "]"


def build_handoff_message(folio: str, warning: Optional[str] = None) -> str:
    """Acknowledgement for the human-agent path; always carries the folio."""
    svc = settings.service
    lines = [
        "Entiendo que deseas hablar con una persona.",
        f"Registre tu solicitud con el folio {folio}.",
        f"Un asesor te contactara en un plazo maximo de {svc.human_response_hours} horas.",
        f"Si es urgente, llama a nuestra linea de atencion: {svc.support_line}.",
    ]
    if warning:
        lines.append("Tu folio es provisional; lo confirmaremos en cuanto nuestro sistema se restablezca.")
    return "\n".join(lines)
