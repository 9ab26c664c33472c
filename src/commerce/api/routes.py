"""FastAPI routes for Commerce: inventory, orders and returns."""

import json
from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from commerce.api.schemas import (
    ApproveReturnRequest,
    CancelOrderRequest,
    DecisionSchema,
    ExpirySweepRequest,
    ExpirySweepResponse,
    InspectReturnRequest,
    OpenReturnRequest,
    OrderLineResponse,
    OrderResponse,
    OrderStatusResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    RejectReturnRequest,
    ReleaseReservationRequest,
    ReservationResponse,
    ReserveRequest,
    ReturnIdResponse,
    ReturnLineResponse,
    ReturnResponse,
    StatusResponse,
    StockLevelResponse,
    StockRequest,
    WebhookResponse,
)
from commerce.inventory.store.port import StockKey
from commerce.order.webhook import parse_payment_event
from commerce.services import Services

logger = structlog.get_logger(__name__)


def get_services(request: Request) -> Services:
    return request.app.state.services


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        tenant_id=str(order.tenant_id),
        customer_id=str(order.customer_id),
        status=order.status,
        payment_status=order.payment_status,
        grand_total=order.grand_total,
        refunded_total=order.refunded_total or 0.0,
        reservation_id=str(order.reservation_id) if order.reservation_id else None,
        requires_attention=bool(order.requires_attention),
        attention_reason=order.attention_reason,
        items=[
            OrderLineResponse(
                item_id=str(i.id),
                product_id=str(i.product_id),
                variant_id=str(i.variant_id) if i.variant_id else None,
                quantity=i.quantity,
                unit_price=i.unit_price,
            )
            for i in order.items
        ],
    )


def _return_response(return_request) -> ReturnResponse:
    return ReturnResponse(
        return_request_id=str(return_request.id),
        order_id=str(return_request.order_id),
        status=return_request.status,
        reason=return_request.reason,
        label_url=return_request.label_url,
        refund_id=return_request.refund_id,
        refund_amount=return_request.refund_amount,
        items=[
            ReturnLineResponse(
                item_id=str(i.id),
                order_item_id=str(i.order_item_id),
                quantity=i.quantity,
                unit_price=i.unit_price,
                accepted=i.accepted,
                rejection_reason=i.rejection_reason,
                refund_price=i.refund_price,
            )
            for i in return_request.items
        ],
    )


def _order_status(order) -> OrderStatusResponse:
    return OrderStatusResponse(order_id=str(order.id), status=order.status, payment_status=order.payment_status)


# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.post("/stock", status_code=201, response_model=StockLevelResponse)
async def set_stock(body: StockRequest, services: Services = Depends(get_services)) -> StockLevelResponse:
    """Initialize a stock record, or receive new units into an existing one."""
    key = StockKey(body.tenant_id, body.product_id, body.variant_id)
    if body.operation == "restock":
        services.ledger.restock(key, body.quantity, reference=body.reference)
    else:
        services.ledger.initialize(key, body.quantity, reorder_point=body.reorder_point)
    level = services.ledger.level(key)
    return StockLevelResponse(
        tenant_id=key.tenant_id,
        product_id=key.product_id,
        variant_id=key.variant_id,
        stock=level.stock,
        reorder_point=level.reorder_point,
        is_low=level.is_low,
    )


@inventory_router.get("/stock/{product_id}", response_model=StockLevelResponse)
async def get_stock(
    product_id: str,
    tenant_id: str,
    variant_id: str | None = None,
    services: Services = Depends(get_services),
) -> StockLevelResponse:
    key = StockKey(tenant_id, product_id, variant_id)
    level = services.ledger.level(key)
    if level is None:
        raise HTTPException(status_code=404, detail=f"No stock record for {key}")
    return StockLevelResponse(
        tenant_id=tenant_id,
        product_id=product_id,
        variant_id=variant_id,
        stock=level.stock,
        reorder_point=level.reorder_point,
        is_low=level.is_low,
    )


@inventory_router.post("/reservations", status_code=201, response_model=ReservationResponse)
async def reserve(body: ReserveRequest, services: Services = Depends(get_services)) -> ReservationResponse:
    reservation = services.reservations.reserve(
        body.tenant_id,
        body.order_id,
        [item.model_dump() for item in body.items],
        ttl=timedelta(minutes=body.ttl_minutes) if body.ttl_minutes else None,
    )
    return ReservationResponse(
        reservation_id=reservation.id,
        state=reservation.state.value,
        expires_at=reservation.expires_at,
    )


@inventory_router.post("/reservations/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation(reservation_id: str, services: Services = Depends(get_services)) -> ReservationResponse:
    reservation = services.reservations.confirm(reservation_id)
    return ReservationResponse(reservation_id=reservation.id, state=reservation.state.value)


@inventory_router.post("/reservations/{reservation_id}/release", response_model=ReservationResponse)
async def release_reservation(
    reservation_id: str,
    body: ReleaseReservationRequest | None = None,
    services: Services = Depends(get_services),
) -> ReservationResponse:
    body = body or ReleaseReservationRequest()
    reservation = services.reservations.release(reservation_id, reason=body.reason)
    return ReservationResponse(reservation_id=reservation.id, state=reservation.state.value)


# ---------------------------------------------------------------------------
# Maintenance Router (triggered by an external scheduler)
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/inventory/maintenance", tags=["maintenance"])


@maintenance_router.post("/expire-reservations", response_model=ExpirySweepResponse)
async def expire_reservations(
    body: ExpirySweepRequest | None = None,
    services: Services = Depends(get_services),
) -> ExpirySweepResponse:
    as_of = body.as_of if body else None
    cancelled = services.orders.sweep_expired(as_of)
    return ExpirySweepResponse(cancelled_orders=[str(order_id) for order_id in cancelled])


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=PlaceOrderResponse)
async def place_order(body: PlaceOrderRequest, services: Services = Depends(get_services)) -> PlaceOrderResponse:
    order = services.orders.place_order(
        tenant_id=body.tenant_id,
        customer_id=body.customer_id,
        items=[item.model_dump() for item in body.items],
        pricing=body.pricing.model_dump(exclude_none=True) if body.pricing else None,
    )
    return PlaceOrderResponse(order_id=str(order.id), reservation_id=str(order.reservation_id))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, services: Services = Depends(get_services)) -> OrderResponse:
    return _order_response(services.orders.get(order_id))


@order_router.post("/{order_id}/cancel", response_model=OrderStatusResponse)
async def cancel_order(
    order_id: str, body: CancelOrderRequest, services: Services = Depends(get_services)
) -> OrderStatusResponse:
    return _order_status(services.orders.cancel(order_id, body.reason))


@order_router.post("/{order_id}/pack", response_model=OrderStatusResponse)
async def pack_order(order_id: str, services: Services = Depends(get_services)) -> OrderStatusResponse:
    return _order_status(services.orders.mark_packed(order_id))


@order_router.post("/{order_id}/ship", response_model=OrderStatusResponse)
async def ship_order(order_id: str, services: Services = Depends(get_services)) -> OrderStatusResponse:
    return _order_status(services.orders.mark_shipped(order_id))


@order_router.post("/{order_id}/deliver", response_model=OrderStatusResponse)
async def deliver_order(order_id: str, services: Services = Depends(get_services)) -> OrderStatusResponse:
    return _order_status(services.orders.mark_delivered(order_id))


@order_router.post("/webhooks/payment", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    stripe_signature: str = Header(default=""),
    services: Services = Depends(get_services),
) -> WebhookResponse:
    """Apply a payment provider event. Replays and stale events are acknowledged.

    The signature covers the body exactly as sent, so it is checked on the raw
    bytes before anything is parsed.
    """
    raw = await request.body()
    if not services.gateway.verify_webhook_signature(raw, stripe_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    event = parse_payment_event(payload)
    outcome = services.orders.handle_payment_event(event)
    logger.info("Payment webhook handled", event_id=payload.get("id"), outcome=outcome.value)
    return WebhookResponse(outcome=outcome.value)


# ---------------------------------------------------------------------------
# Return Router
# ---------------------------------------------------------------------------
return_router = APIRouter(prefix="/returns", tags=["returns"])


@return_router.post("", status_code=201, response_model=ReturnIdResponse)
async def open_return(body: OpenReturnRequest, services: Services = Depends(get_services)) -> ReturnIdResponse:
    return_request = services.returns.open_return(
        tenant_id=body.tenant_id,
        order_id=body.order_id,
        reason=body.reason,
        items=[item.model_dump() for item in body.items],
        customer_id=body.customer_id,
    )
    return ReturnIdResponse(return_request_id=str(return_request.id))


@return_router.get("/{return_id}", response_model=ReturnResponse)
async def get_return(return_id: str, services: Services = Depends(get_services)) -> ReturnResponse:
    return _return_response(services.returns.get(return_id))


@return_router.post("/{return_id}/approve", response_model=ReturnResponse)
async def approve_return(
    return_id: str,
    body: ApproveReturnRequest | None = None,
    services: Services = Depends(get_services),
) -> ReturnResponse:
    note = body.note if body else None
    return _return_response(services.returns.approve(return_id, note=note))


@return_router.post("/{return_id}/reject", response_model=ReturnResponse)
async def reject_return(
    return_id: str, body: RejectReturnRequest, services: Services = Depends(get_services)
) -> ReturnResponse:
    return _return_response(services.returns.reject(return_id, body.reason))


@return_router.post("/{return_id}/receive", response_model=ReturnResponse)
async def receive_return(return_id: str, services: Services = Depends(get_services)) -> ReturnResponse:
    return _return_response(services.returns.mark_received(return_id))


@return_router.post("/{return_id}/decisions", response_model=StatusResponse)
async def record_decision(
    return_id: str, body: DecisionSchema, services: Services = Depends(get_services)
) -> StatusResponse:
    services.returns.record_decision(return_id, body.item_id, body.accepted, rejection_reason=body.rejection_reason)
    return StatusResponse(status="recorded")


@return_router.post("/{return_id}/inspect", response_model=ReturnResponse)
async def inspect_return(
    return_id: str, body: InspectReturnRequest, services: Services = Depends(get_services)
) -> ReturnResponse:
    decisions = [decision.model_dump() for decision in body.decisions]
    return _return_response(services.returns.inspect(return_id, decisions))


@return_router.post("/{return_id}/refund", response_model=ReturnResponse)
async def refund_return(return_id: str, services: Services = Depends(get_services)) -> ReturnResponse:
    return _return_response(services.returns.refund(return_id))
