"""
Water-hub REST API client (providers, orders, incidents, alerts, predictions).

The API speaks Spanish field names and status values; this module maps
them onto the English models in ``waterhub_schema``. Reads go through the
retry policy, writes are sent once.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from cea_agent.config import settings
from cea_agent.schemas.waterhub_schema import (
    Alert,
    AlertType,
    Incident,
    IncidentCategory,
    IncidentReport,
    IncidentStatus,
    Order,
    OrderStatus,
    Prediction,
    Provider,
)
from cea_agent.upstream.http import fetch_with_retry
from cea_agent.utils import coerce_float, coerce_int

logger = logging.getLogger(__name__)

ORDER_STATUS_API = {
    "pendiente": OrderStatus.PENDING,
    "aceptado": OrderStatus.ACCEPTED,
    "en_transito": OrderStatus.IN_TRANSIT,
    "entregado": OrderStatus.DELIVERED,
    "cancelado": OrderStatus.CANCELLED,
}

INCIDENT_CATEGORY_API = {
    "fuga": IncidentCategory.LEAK,
    "sin_agua": IncidentCategory.NO_WATER,
    "contaminacion": IncidentCategory.CONTAMINATION,
    "infraestructura": IncidentCategory.INFRASTRUCTURE,
    "otro": IncidentCategory.OTHER,
}

INCIDENT_STATUS_API = {
    "pendiente": IncidentStatus.PENDING,
    "reconocido": IncidentStatus.ACKNOWLEDGED,
    "en_progreso": IncidentStatus.IN_PROGRESS,
    "resuelto": IncidentStatus.RESOLVED,
}

ALERT_TYPE_API = {
    "escasez": AlertType.SHORTAGE,
    "conservacion": AlertType.CONSERVATION,
    "programa": AlertType.PROGRAM,
    "emergencia": AlertType.EMERGENCY,
}


def _api_value(mapping: dict[str, Any], value: Any) -> str:
    """Reverse lookup: English enum member to the API's Spanish value."""
    for api_value, member in mapping.items():
        if member == value:
            return api_value
    raise KeyError(value)


def provider_from_api(data: dict[str, Any]) -> Provider:
    return Provider(
        id=str(data.get("id", "")),
        name=data.get("nombre") or "",
        rating=coerce_float(data.get("calificacion")),
        price_per_liter=coerce_float(data.get("precio_por_litro")),
        available=bool(data.get("disponible", True)),
        locality=data.get("alcaldia"),
        phone=data.get("telefono"),
        certifications=data.get("certificaciones") or [],
        estimated_arrival=data.get("tiempo_estimado_llegada"),
        fleet_size=coerce_int(data.get("tamano_flota")),
    )


def order_from_api(data: dict[str, Any]) -> Order:
    return Order(
        id=str(data.get("id", "")),
        provider_id=str(data.get("proveedor_id") or ""),
        citizen_name=data.get("nombre_ciudadano") or "",
        liters=coerce_int(data.get("cantidad_litros")),
        total_price=coerce_float(data.get("precio_total")),
        subsidy_applied=coerce_float(data.get("subsidio_aplicado")),
        status=ORDER_STATUS_API.get(data.get("estado", ""), OrderStatus.PENDING),
        address=data.get("direccion"),
        colonia=data.get("colonia"),
        locality=data.get("alcaldia"),
        created_at=data.get("creado_en") or "",
        accepted_at=data.get("aceptado_en"),
        delivered_at=data.get("entregado_en"),
    )


def incident_from_api(data: dict[str, Any]) -> Incident:
    return Incident(
        id=str(data.get("id", "")),
        category=INCIDENT_CATEGORY_API.get(data.get("tipo", ""), IncidentCategory.OTHER),
        status=INCIDENT_STATUS_API.get(data.get("estado", ""), IncidentStatus.PENDING),
        description=data.get("descripcion") or "",
        address=data.get("direccion"),
        colonia=data.get("colonia"),
        locality=data.get("alcaldia"),
        latitude=data.get("latitud"),
        longitude=data.get("longitud"),
        households_affected=coerce_int(data.get("hogares_afectados"), 1) or 1,
        created_at=data.get("creado_en") or "",
    )


def alert_from_api(data: dict[str, Any]) -> Alert:
    return Alert(
        title=data.get("titulo") or "",
        message=data.get("mensaje") or "",
        type=ALERT_TYPE_API.get(data.get("tipo", ""), AlertType.CONSERVATION),
        zones=data.get("zonas_objetivo") or [],
        sent_at=data.get("enviado_en") or "",
    )


def prediction_from_api(data: dict[str, Any]) -> Prediction:
    return Prediction(
        locality=data.get("alcaldia") or "",
        predicted_demand=coerce_float(data.get("demanda_predicha")),
        intensity=data.get("intensidad") or "",
        confidence=coerce_float(data.get("confianza")),
        factors=data.get("factores") or {},
        recommendations=data.get("recomendaciones") or [],
    )


class WaterHubClient:
    """JSON client for the water-hub coordination API.

    Errors surface as ``UpstreamError``/``UpstreamHTTPError``; the tools
    turn them into failure results.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        backoff: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.upstream.waterhub_base_url).rstrip("/")
        self.backoff = backoff
        self._client = http_client or httpx.AsyncClient()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        response = await fetch_with_retry(
            self._client, "GET", f"{self.base_url}{path}", params=params, backoff=self.backoff
        )
        return response.json()

    async def _post(self, path: str, payload: Optional[dict[str, Any]] = None) -> Any:
        response = await fetch_with_retry(
            self._client,
            "POST",
            f"{self.base_url}{path}",
            json=payload,
            retry=False,
        )
        return response.json()

    async def list_providers(
        self, locality: Optional[str] = None, only_available: bool = True
    ) -> list[Provider]:
        params: dict[str, Any] = {}
        if locality:
            params["alcaldia"] = locality
        if only_available:
            params["disponible"] = "true"
        data = await self._get("/api/proveedores", params)
        return [provider_from_api(p) for p in data or []]

    async def create_order(
        self,
        provider_id: str,
        citizen_name: str,
        liters: int,
        total_price: float,
        address: str,
        colonia: Optional[str] = None,
        locality: Optional[str] = None,
        subsidy_applied: float = 0.0,
    ) -> Order:
        data = await self._post(
            "/api/pedidos",
            {
                "proveedor_id": provider_id,
                "nombre_ciudadano": citizen_name,
                "cantidad_litros": liters,
                "precio_total": total_price,
                "direccion": address,
                "colonia": colonia,
                "alcaldia": locality,
                "subsidio_aplicado": subsidy_applied,
            },
        )
        return order_from_api(data)

    async def get_order(self, order_id: str) -> Order:
        return order_from_api(await self._get(f"/api/pedidos/{quote(order_id, safe='')}"))

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        locality: Optional[str] = None,
        limit: int = 10,
    ) -> list[Order]:
        params: dict[str, Any] = {"limit": limit}
        if status is not None:
            params["estado"] = _api_value(ORDER_STATUS_API, status)
        if locality:
            params["alcaldia"] = locality
        data = await self._get("/api/pedidos", params)
        return [order_from_api(o) for o in data or []]

    async def cancel_order(self, order_id: str) -> Order:
        data = await self._post(f"/api/pedidos/{quote(order_id, safe='')}/cancelar")
        return order_from_api(data)

    async def report_incident(self, report: IncidentReport) -> Incident:
        data = await self._post(
            "/api/incidentes",
            {
                "tipo": _api_value(INCIDENT_CATEGORY_API, report.category),
                "descripcion": report.description,
                "direccion": report.address,
                "colonia": report.colonia,
                "alcaldia": report.locality,
                "hogares_afectados": report.households_affected,
                "duracion": report.duration,
            },
        )
        return incident_from_api(data)

    async def list_incidents(
        self,
        locality: Optional[str] = None,
        category: Optional[IncidentCategory] = None,
        limit: int = 10,
    ) -> list[Incident]:
        params: dict[str, Any] = {"limit": limit}
        if locality:
            params["alcaldia"] = locality
        if category is not None:
            params["tipo"] = _api_value(INCIDENT_CATEGORY_API, category)
        data = await self._get("/api/incidentes", params)
        return [incident_from_api(i) for i in data or []]

    async def incident_stats(self) -> dict[str, Any]:
        return await self._get("/api/incidentes/estadisticas") or {}

    async def list_alerts(self, alert_type: Optional[AlertType] = None, limit: int = 10) -> list[Alert]:
        params: dict[str, Any] = {"limit": limit}
        if alert_type is not None:
            params["tipo"] = _api_value(ALERT_TYPE_API, alert_type)
        data = await self._get("/api/alertas", params)
        return [alert_from_api(a) for a in data or []]

    async def get_prediction(self, locality: str) -> Prediction:
        data = await self._get(f"/api/predicciones/demanda/{quote(locality, safe='')}")
        return prediction_from_api(data)
