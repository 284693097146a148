"""Water-delivery providers and orders (water-hub deployment)."""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from cea_agent.schemas.upstream_schema import ErrorKind
from cea_agent.schemas.waterhub_schema import OrderStatus
from cea_agent.tools.registry import Tool, failure

logger = logging.getLogger(__name__)

STATUS_DESCRIPTIONS = {
    OrderStatus.PENDING: "Waiting for the provider to accept the order",
    OrderStatus.ACCEPTED: "The provider accepted the order and is preparing it",
    OrderStatus.IN_TRANSIT: "The water is on its way",
    OrderStatus.DELIVERED: "The order was delivered",
    OrderStatus.CANCELLED: "The order was cancelled",
}


class ListProvidersInput(BaseModel):
    locality: Optional[str] = Field(default=None, description="Filter by municipality / alcaldia")
    only_available: bool = True


class CreateOrderInput(BaseModel):
    provider_id: str = Field(min_length=1, description="Provider id from list_providers")
    citizen_name: str = Field(min_length=1)
    liters: int = Field(gt=0)
    total_price: float = Field(gt=0, description="liters x price_per_liter")
    address: str = Field(min_length=1, description="Delivery address")
    colonia: Optional[str] = None
    locality: Optional[str] = None
    subsidy_applied: float = Field(default=0.0, ge=0)


class OrderIdInput(BaseModel):
    order_id: str = Field(min_length=1)


class ListOrdersInput(BaseModel):
    status: Optional[OrderStatus] = None
    locality: Optional[str] = None


def build_order_tools(services: Any) -> list[Tool]:
    hub = services.waterhub

    async def list_providers(params: ListProvidersInput) -> dict[str, Any]:
        providers = await hub.list_providers(params.locality, params.only_available)
        result: dict[str, Any] = {
            "success": True,
            "providers": [p.model_dump() for p in providers],
            "count": len(providers),
        }
        if not providers:
            where = f" in {params.locality}" if params.locality else ""
            result["message"] = f"No providers available{where} right now"
        return result

    async def create_order(params: CreateOrderInput) -> dict[str, Any]:
        order = await hub.create_order(**params.model_dump())
        logger.info("Order %s created for provider %s", order.id, params.provider_id)
        return {"success": True, "order_id": order.id, "status": order.status.value}

    async def get_order(params: OrderIdInput) -> dict[str, Any]:
        order = await hub.get_order(params.order_id)
        return {
            "success": True,
            **order.model_dump(mode="json"),
            "status_description": STATUS_DESCRIPTIONS[order.status],
        }

    async def list_orders(params: ListOrdersInput) -> dict[str, Any]:
        orders = await hub.list_orders(params.status, params.locality)
        return {
            "success": True,
            "orders": [o.model_dump(mode="json") for o in orders],
            "count": len(orders),
        }

    async def cancel_order(params: OrderIdInput) -> dict[str, Any]:
        current = await hub.get_order(params.order_id)
        if current.status == OrderStatus.DELIVERED:
            return failure(
                f"Order {params.order_id} was already delivered and cannot be cancelled",
                ErrorKind.REJECTED,
            )
        if current.status == OrderStatus.CANCELLED:
            return {"success": True, "order_id": current.id, "status": current.status.value}
        order = await hub.cancel_order(params.order_id)
        logger.info("Order %s cancelled", order.id)
        return {"success": True, "order_id": order.id, "status": order.status.value}

    return [
        Tool(
            name="list_providers",
            description=(
                "List water delivery providers (tanker trucks) with rating, price per "
                "liter, certifications and contact. Use before create_order."
            ),
            input_model=ListProvidersInput,
            handler=list_providers,
        ),
        Tool(
            name="create_order",
            description="Place a water delivery order with a provider. Confirm details first.",
            input_model=CreateOrderInput,
            handler=create_order,
            read_only=False,
        ),
        Tool(
            name="get_order",
            description="Get the status of a water order by id.",
            input_model=OrderIdInput,
            handler=get_order,
        ),
        Tool(
            name="list_orders",
            description="List recent water orders, optionally filtered by status or locality.",
            input_model=ListOrdersInput,
            handler=list_orders,
        ),
        Tool(
            name="cancel_order",
            description="Cancel a water order. Orders already delivered cannot be cancelled.",
            input_model=OrderIdInput,
            handler=cancel_order,
            read_only=False,
        ),
    ]
