"""
Incident reporting with an ordered chain of storage backends.

Backends are tried in configuration order (Postgres ``quejas`` table, then
Supabase's REST interface to the same table, then the water-hub API). The
first backend that accepts the report wins. When no backend is configured
at all the report is acknowledged without persistence and flagged as such.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import asyncpg
import httpx
from pydantic import BaseModel, Field

from cea_agent.config import StoreConfig, settings
from cea_agent.errors import StoreUnavailableError, UpstreamError
from cea_agent.schemas.upstream_schema import ErrorKind
from cea_agent.schemas.waterhub_schema import Incident, IncidentCategory, IncidentReport
from cea_agent.tickets.store import CONNECTION_ERRORS
from cea_agent.tools.registry import Tool, failure
from cea_agent.upstream.http import fetch_with_retry
from cea_agent.upstream.waterhub import WaterHubClient

logger = logging.getLogger(__name__)

UNPERSISTED_WARNING = "No incident store is configured; the report was accepted but not saved"

# incident category -> tipo_queja enum value in the quejas table
QUEJA_TYPES = {
    IncidentCategory.LEAK: "fuga",
    IncidentCategory.NO_WATER: "sin_agua",
    IncidentCategory.CONTAMINATION: "agua_contaminada",
    IncidentCategory.INFRASTRUCTURE: "otro",
    IncidentCategory.OTHER: "otro",
}
_QUEJA_TO_CATEGORY = {
    "fuga": IncidentCategory.LEAK,
    "sin_agua": IncidentCategory.NO_WATER,
    "agua_contaminada": IncidentCategory.CONTAMINATION,
}


def _incident_from_queja(row: Any) -> Incident:
    created = row["created_at"]
    return Incident(
        id=str(row["id"]),
        category=_QUEJA_TO_CATEGORY.get(row["tipo"], IncidentCategory.OTHER),
        description=row["texto"] or "",
        colonia=row["colonia"],
        locality=row["alcaldia"],
        latitude=row["latitud"],
        longitude=row["longitud"],
        created_at=created.isoformat() if hasattr(created, "isoformat") else str(created or ""),
    )


class IncidentBackend(ABC):
    """One place incident reports can be written to and read from."""

    name: str = "backend"

    @abstractmethod
    async def create(self, report: IncidentReport) -> str:
        """Persist ``report`` and return its id."""

    @abstractmethod
    async def recent(
        self, locality: Optional[str], category: Optional[IncidentCategory], limit: int
    ) -> list[Incident]:
        ...

    async def stats(self, incidents: list[Incident]) -> dict[str, Any]:
        return {"total": len(incidents)}


class PostgresIncidentBackend(IncidentBackend):
    name = "postgres"

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self.pool: Optional[asyncpg.Pool] = None

    async def _get_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            try:
                self.pool = await asyncpg.create_pool(
                    dsn=self.dsn,
                    min_size=1,
                    max_size=5,
                    command_timeout=settings.store.command_timeout_sec,
                )
            except CONNECTION_ERRORS as e:
                raise StoreUnavailableError(f"Cannot connect to incident store: {e}") from e
        return self.pool

    async def create(self, report: IncidentReport) -> str:
        pool = await self._get_pool()
        row_id = await pool.fetchval(
            """
            INSERT INTO public.quejas (texto, tipo, alcaldia, colonia, latitud, longitud)
            VALUES ($1, $2::tipo_queja, $3, $4, $5, $6)
            RETURNING id
            """,
            report.summary_text(),
            QUEJA_TYPES[report.category],
            report.locality,
            report.colonia,
            report.latitude,
            report.longitude,
        )
        return str(row_id)

    async def recent(
        self, locality: Optional[str], category: Optional[IncidentCategory], limit: int
    ) -> list[Incident]:
        conditions: list[str] = []
        params: list[Any] = []
        if locality:
            params.append(locality)
            conditions.append(f"alcaldia = ${len(params)}")
        if category is not None:
            params.append(QUEJA_TYPES[category])
            conditions.append(f"tipo = ${len(params)}::tipo_queja")
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        pool = await self._get_pool()
        rows = await pool.fetch(
            "SELECT id, texto, tipo, alcaldia, colonia, latitud, longitud, created_at "
            f"FROM public.quejas{where} ORDER BY created_at DESC LIMIT ${len(params)}",
            *params,
        )
        return [_incident_from_queja(r) for r in rows]


class SupabaseIncidentBackend(IncidentBackend):
    """Writes to the ``quejas`` table through Supabase's PostgREST endpoint."""

    name = "supabase"

    def __init__(self, url: str, key: str, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.endpoint = f"{url.rstrip('/')}/rest/v1/quejas"
        self._headers = {"apikey": key, "Authorization": f"Bearer {key}"}
        self._client = http_client or httpx.AsyncClient()

    async def create(self, report: IncidentReport) -> str:
        row = {
            "texto": report.summary_text(),
            "tipo": QUEJA_TYPES[report.category],
            "alcaldia": report.locality,
            "colonia": report.colonia,
            "latitud": report.latitude,
            "longitud": report.longitude,
            "tweet_id": None,
            "username": None,
            "user_name": None,
        }
        response = await fetch_with_retry(
            self._client,
            "POST",
            self.endpoint,
            json=row,
            headers={**self._headers, "Prefer": "return=representation"},
            retry=False,
        )
        created = response.json()
        if isinstance(created, list):
            created = created[0] if created else {}
        return str(created.get("id", ""))

    async def recent(
        self, locality: Optional[str], category: Optional[IncidentCategory], limit: int
    ) -> list[Incident]:
        params = {
            "select": "id,texto,tipo,alcaldia,colonia,latitud,longitud,created_at",
            "order": "created_at.desc",
            "limit": str(limit),
        }
        if locality:
            params["alcaldia"] = f"eq.{locality}"
        if category is not None:
            params["tipo"] = f"eq.{QUEJA_TYPES[category]}"
        response = await fetch_with_retry(
            self._client, "GET", self.endpoint, params=params, headers=self._headers
        )
        return [_incident_from_queja(r) for r in response.json() or []]


class WaterHubIncidentBackend(IncidentBackend):
    name = "waterhub"

    def __init__(self, client: WaterHubClient) -> None:
        self.client = client

    async def create(self, report: IncidentReport) -> str:
        incident = await self.client.report_incident(report)
        return incident.id

    async def recent(
        self, locality: Optional[str], category: Optional[IncidentCategory], limit: int
    ) -> list[Incident]:
        return await self.client.list_incidents(locality=locality, category=category, limit=limit)

    async def stats(self, incidents: list[Incident]) -> dict[str, Any]:
        return await self.client.incident_stats()


def build_incident_backends(
    waterhub: Optional[WaterHubClient], store_config: Optional[StoreConfig] = None
) -> list[IncidentBackend]:
    """Configured backends in preference order."""
    cfg = store_config or settings.store
    backends: list[IncidentBackend] = []
    if cfg.incident_database_url.startswith(("postgresql://", "postgres://")):
        backends.append(PostgresIncidentBackend(cfg.incident_database_url))
    if cfg.supabase_url and cfg.supabase_key:
        backends.append(SupabaseIncidentBackend(cfg.supabase_url, cfg.supabase_key))
    if waterhub is not None and waterhub.base_url:
        backends.append(WaterHubIncidentBackend(waterhub))
    return backends


_BACKEND_ERRORS = (StoreUnavailableError, UpstreamError, asyncpg.exceptions.PostgresError, *CONNECTION_ERRORS)


class ReportIncidentInput(BaseModel):
    category: IncidentCategory = Field(description="leak, no_water, contamination, infrastructure or other")
    description: str = Field(min_length=1, description="What is happening, in the citizen's words")
    address: Optional[str] = None
    colonia: Optional[str] = None
    locality: Optional[str] = Field(default=None, description="Municipality / alcaldia")
    households_affected: int = Field(default=1, ge=1)
    duration: Optional[str] = Field(default=None, description="How long it has been happening, e.g. '3 days'")
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class ConsultIncidentsInput(BaseModel):
    locality: Optional[str] = None
    category: Optional[IncidentCategory] = None


def build_incident_tools(services: Any) -> list[Tool]:
    async def report_incident(params: ReportIncidentInput) -> dict[str, Any]:
        report = IncidentReport(**params.model_dump())
        backends: list[IncidentBackend] = services.incident_backends
        if not backends:
            logger.warning("report_incident: no backend configured, accepting without persistence")
            return {
                "success": True,
                "incident_id": None,
                "persisted": False,
                "status": "received",
                "warning": UNPERSISTED_WARNING,
            }

        errors: list[str] = []
        for backend in backends:
            try:
                incident_id = await backend.create(report)
            except _BACKEND_ERRORS as e:
                logger.warning("report_incident: %s backend failed: %s", backend.name, e)
                errors.append(f"{backend.name}: {e}")
                continue
            logger.info("Incident %s saved via %s", incident_id, backend.name)
            return {
                "success": True,
                "incident_id": incident_id,
                "persisted": True,
                "status": "reported",
                "backend": backend.name,
            }
        return failure(
            "Could not save the report: " + "; ".join(errors), ErrorKind.STORE_UNAVAILABLE
        )

    async def consult_incidents(params: ConsultIncidentsInput) -> dict[str, Any]:
        errors: list[str] = []
        for backend in services.incident_backends:
            try:
                incidents = await backend.recent(params.locality, params.category, 10)
                stats = await backend.stats(incidents)
            except _BACKEND_ERRORS as e:
                logger.warning("consult_incidents: %s backend failed: %s", backend.name, e)
                errors.append(f"{backend.name}: {e}")
                continue
            return {
                "success": True,
                "incidents": [i.model_dump(mode="json") for i in incidents],
                "statistics": stats,
                "count": len(incidents),
            }
        if not errors:
            return {"success": True, "incidents": [], "statistics": {"total": 0}, "count": 0}
        return failure("Could not query incidents: " + "; ".join(errors), ErrorKind.NETWORK)

    return [
        Tool(
            name="report_incident",
            description=(
                "Report a water incident (leak, no_water, contamination, infrastructure, "
                "other) with its location. Include latitude/longitude when the citizen "
                "shared a location."
            ),
            input_model=ReportIncidentInput,
            handler=report_incident,
            read_only=False,
        ),
        Tool(
            name="consult_incidents",
            description="List recently reported incidents in an area, with statistics.",
            input_model=ConsultIncidentsInput,
            handler=consult_incidents,
        ),
    ]
