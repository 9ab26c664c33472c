"""Pydantic request/response schemas for the Commerce API.

These are external contracts (anti-corruption layer), separate from the
internal aggregates and store records.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from commerce.inventory.reservation import ReleaseReason


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
class StockRequest(BaseModel):
    tenant_id: str
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=0)
    reorder_point: int = Field(ge=0, default=5)
    operation: Literal["initialize", "restock"] = "initialize"
    reference: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "tenant_id": "store-001",
                    "product_id": "prod-001",
                    "variant_id": None,
                    "quantity": 25,
                    "reorder_point": 5,
                    "operation": "initialize",
                }
            ]
        }
    }


class StockLevelResponse(BaseModel):
    tenant_id: str
    product_id: str
    variant_id: str | None = None
    stock: int
    reorder_point: int
    is_low: bool


class ReservationLineSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=1)


class ReserveRequest(BaseModel):
    tenant_id: str
    order_id: str
    items: list[ReservationLineSchema] = Field(min_length=1)
    ttl_minutes: int | None = Field(default=None, ge=1)


class ReservationResponse(BaseModel):
    reservation_id: str
    state: str
    expires_at: datetime | None = None


class ReleaseReservationRequest(BaseModel):
    reason: ReleaseReason = ReleaseReason.CANCELLED


class ExpirySweepRequest(BaseModel):
    as_of: datetime | None = None


class ExpirySweepResponse(BaseModel):
    cancelled_orders: list[str]


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    title: str | None = None
    category: str | None = None
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)


class PricingSchema(BaseModel):
    shipping_cost: float = Field(ge=0, default=0.0)
    tax_total: float = Field(ge=0, default=0.0)
    discount_total: float = Field(ge=0, default=0.0)
    grand_total: float | None = Field(default=None, ge=0)
    currency: str = "USD"


class PlaceOrderRequest(BaseModel):
    tenant_id: str
    customer_id: str
    items: list[OrderItemSchema] = Field(min_length=1)
    pricing: PricingSchema | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "tenant_id": "store-001",
                    "customer_id": "cust-001",
                    "items": [
                        {
                            "product_id": "prod-001",
                            "sku": "TSHIRT-M",
                            "title": "T-Shirt",
                            "quantity": 2,
                            "unit_price": 20.0,
                        }
                    ],
                    "pricing": {"shipping_cost": 5.0, "tax_total": 0.0},
                }
            ]
        }
    }


class PlaceOrderResponse(BaseModel):
    order_id: str
    reservation_id: str


class OrderLineResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str | None = None
    quantity: int
    unit_price: float


class OrderResponse(BaseModel):
    order_id: str
    tenant_id: str
    customer_id: str
    status: str
    payment_status: str
    grand_total: float
    refunded_total: float
    reservation_id: str | None = None
    requires_attention: bool
    attention_reason: str | None = None
    items: list[OrderLineResponse]


class CancelOrderRequest(BaseModel):
    reason: str = Field(min_length=1)


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str
    payment_status: str


class WebhookResponse(BaseModel):
    received: bool = True
    outcome: str


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------
class ReturnItemRequest(BaseModel):
    order_item_id: str
    quantity: int = Field(ge=1)


class OpenReturnRequest(BaseModel):
    tenant_id: str
    order_id: str
    reason: str = Field(min_length=1)
    items: list[ReturnItemRequest] = Field(min_length=1)
    customer_id: str | None = None


class ReturnIdResponse(BaseModel):
    return_request_id: str


class ApproveReturnRequest(BaseModel):
    note: str | None = None


class RejectReturnRequest(BaseModel):
    reason: str = Field(min_length=1)


class DecisionSchema(BaseModel):
    item_id: str
    accepted: bool
    rejection_reason: str | None = None


class InspectReturnRequest(BaseModel):
    decisions: list[DecisionSchema] = Field(default_factory=list)


class ReturnLineResponse(BaseModel):
    item_id: str
    order_item_id: str
    quantity: int
    unit_price: float
    accepted: bool | None = None
    rejection_reason: str | None = None
    refund_price: float | None = None


class ReturnResponse(BaseModel):
    return_request_id: str
    order_id: str
    status: str
    reason: str
    label_url: str | None = None
    refund_id: str | None = None
    refund_amount: float | None = None
    items: list[ReturnLineResponse]
