"""Water-situation alerts and demand predictions."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from cea_agent.schemas.waterhub_schema import AlertType
from cea_agent.tools.registry import Tool

# traffic-light level shown to citizens for each demand intensity
INTENSITY_LEVELS = {"baja": "green", "media": "yellow", "alta": "orange", "critica": "red"}


class AlertsInput(BaseModel):
    alert_type: Optional[AlertType] = None


class PredictionInput(BaseModel):
    locality: str = Field(min_length=1, description="Municipality / alcaldia")


def build_alert_tools(services: Any) -> list[Tool]:
    hub = services.waterhub

    async def get_alerts(params: AlertsInput) -> dict[str, Any]:
        alerts = await hub.list_alerts(params.alert_type)
        result: dict[str, Any] = {
            "success": True,
            "alerts": [a.model_dump(mode="json") for a in alerts],
            "count": len(alerts),
        }
        if not alerts:
            result["message"] = "No active alerts right now"
        return result

    async def get_prediction(params: PredictionInput) -> dict[str, Any]:
        prediction = await hub.get_prediction(params.locality)
        return {
            "success": True,
            **prediction.model_dump(),
            "level": INTENSITY_LEVELS.get(prediction.intensity.lower(), prediction.intensity),
        }

    return [
        Tool(
            name="get_alerts",
            description=(
                "Active alerts: shortage, conservation tips, support programs, emergencies."
            ),
            input_model=AlertsInput,
            handler=get_alerts,
        ),
        Tool(
            name="get_prediction",
            description="Water demand prediction and recommendations for a locality.",
            input_model=PredictionInput,
            handler=get_prediction,
        ),
    ]
