"""FastAPI routes for the commerce core."""

from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, Header, HTTPException, Query, Request
from pydantic import ValidationError as SchemaValidationError
from protean.utils.globals import current_domain

from commerce.api.schemas import (
    AdjustStockRequest,
    AttentionItemResponse,
    CancelOrderRequest,
    CreateOrderRequest,
    CreateOrderResponse,
    OrderListItemResponse,
    OrderResponse,
    OrderStatusResponse,
    PaymentAttemptResponse,
    PaymentStatusResponse,
    ProductStockResponse,
    RegisterProductRequest,
    StatusChangeResponse,
    StockMovementResponse,
    SweepRequest,
    SweepResponse,
    UpdateOrderStatusRequest,
    UpdateProductRequest,
    WebhookEventRequest,
)
from commerce.checkout.service import checkout, open_payment_attempt
from commerce.inventory import ledger
from commerce.order.abandonment import sweep_abandoned_orders
from commerce.order.order import ActorRole, Order, OrderStatus
from commerce.order.transitions import change_order_status
from commerce.payment.gateway import get_gateway
from commerce.payment.reconciliation import confirm_payment
from commerce.payment.webhook import handle_gateway_event
from commerce.projections.order_summary import (
    OrderSummary,
    find_by_number,
    orders_by_status,
    orders_for_customer,
    orders_needing_attention,
)


def _order_status(order_id: str) -> OrderStatusResponse:
    summary = current_domain.repository_for(OrderSummary).get(order_id)
    return OrderStatusResponse(
        order_id=str(summary.order_id),
        order_number=summary.order_number,
        status=summary.status,
        payment_status=summary.payment_status,
        needs_attention=bool(summary.needs_attention),
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=CreateOrderResponse)
async def create_order(body: CreateOrderRequest) -> CreateOrderResponse:
    """Snapshot the cart into a pending order and open a payment intent."""
    billing = body.billing_address.model_dump()
    shipping = body.shipping_address.model_dump() if body.shipping_address else billing
    result = checkout(
        customer_ref=body.customer_ref,
        lines=[line.model_dump() for line in body.lines],
        billing_address=billing,
        shipping_address=shipping,
    )
    return CreateOrderResponse(
        order_id=result.order_id,
        order_number=result.order_number,
        grand_total=result.grand_total,
        currency=result.currency,
        payment=PaymentAttemptResponse(**result.payment) if result.payment else None,
    )


@order_router.get("", response_model=list[OrderListItemResponse])
async def list_customer_orders(customer_ref: str = Query(min_length=1)) -> list[OrderListItemResponse]:
    """A customer's orders, newest first."""
    return [OrderListItemResponse.from_summary(s) for s in orders_for_customer(customer_ref)]


@order_router.get("/by-number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(order_number: str) -> OrderResponse:
    summary = find_by_number(order_number)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"Order {order_number} not found")
    return OrderResponse.from_order(current_domain.repository_for(Order).get(str(summary.order_id)))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return OrderResponse.from_order(current_domain.repository_for(Order).get(order_id))


@order_router.get("/{order_id}/status", response_model=OrderStatusResponse)
async def get_order_status(order_id: str) -> OrderStatusResponse:
    """Cheap status poll for the checkout return page."""
    return _order_status(order_id)


@order_router.get("/{order_id}/history", response_model=list[StatusChangeResponse])
async def get_order_history(order_id: str) -> list[StatusChangeResponse]:
    order = current_domain.repository_for(Order).get(order_id)
    entries = sorted(order.history, key=lambda entry: entry.changed_at)
    return [
        StatusChangeResponse(
            from_status=entry.from_status,
            to_status=entry.to_status,
            actor_role=entry.actor_role,
            actor_id=entry.actor_id,
            comment=entry.comment,
            changed_at=entry.changed_at,
        )
        for entry in entries
    ]


@order_router.post("/{order_id}/payment/confirm", response_model=PaymentStatusResponse)
async def confirm_order_payment(order_id: str) -> PaymentStatusResponse:
    """Client-side confirmation after the gateway redirect. Safe to repeat."""
    return PaymentStatusResponse(**asdict(confirm_payment(order_id)))


@order_router.post("/{order_id}/payment-attempts", status_code=201, response_model=PaymentAttemptResponse)
async def retry_payment(order_id: str) -> PaymentAttemptResponse:
    """Open a fresh payment attempt; any unpaid earlier attempt is superseded."""
    return PaymentAttemptResponse(**open_payment_attempt(order_id))


@order_router.post("/{order_id}/cancel", response_model=OrderStatusResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> OrderStatusResponse:
    order = current_domain.repository_for(Order).get(order_id)
    change_order_status(
        order_id,
        OrderStatus.CANCELLED.value,
        ActorRole.CUSTOMER.value,
        actor_id=order.customer_ref,
        comment=body.comment or "Cancelled by customer",
    )
    return _order_status(order_id)


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=PaymentStatusResponse)
async def gateway_webhook(request: Request, x_gateway_signature: str = Header(default="")) -> PaymentStatusResponse:
    """Gateway callback. Authenticated by HMAC signature, idempotent per event id."""
    payload = await request.body()
    if not get_gateway().verify_webhook_signature(payload, x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        event = WebhookEventRequest.model_validate_json(payload)
    except SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc

    result = handle_gateway_event(
        event_id=event.id,
        event_type=event.type,
        intent_id=event.data.intent_id,
        status=event.data.status,
        occurred_at=event.created,
        failure_reason=event.data.failure_reason,
    )
    return PaymentStatusResponse(**asdict(result))


# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.get("/low-stock", response_model=list[ProductStockResponse])
async def list_low_stock() -> list[ProductStockResponse]:
    return [ProductStockResponse.from_record(p) for p in ledger.low_stock()]


@inventory_router.get("/out-of-stock", response_model=list[ProductStockResponse])
async def list_out_of_stock() -> list[ProductStockResponse]:
    return [ProductStockResponse.from_record(p) for p in ledger.out_of_stock()]


@inventory_router.get("/{product_id}", response_model=ProductStockResponse)
async def get_stock(product_id: str) -> ProductStockResponse:
    return ProductStockResponse.from_record(ledger.current_stock(product_id))


@inventory_router.get("/{product_id}/movements", response_model=list[StockMovementResponse])
async def get_movements(product_id: str) -> list[StockMovementResponse]:
    return [StockMovementResponse.from_movement(m) for m in ledger.movement_history(product_id)]


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.put("/orders/{order_id}/status", response_model=OrderStatusResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> OrderStatusResponse:
    """Admin status change. Cannot move a pending order to processing."""
    change_order_status(order_id, body.status, ActorRole.ADMIN.value, actor_id=body.admin_id, comment=body.comment)
    return _order_status(order_id)


@admin_router.get("/orders", response_model=list[OrderListItemResponse])
async def list_orders(
    status: Literal["pending", "processing", "shipped", "delivered", "cancelled"] | None = None,
) -> list[OrderListItemResponse]:
    return [OrderListItemResponse.from_summary(s) for s in orders_by_status(status)]


@admin_router.get("/orders/needs-attention", response_model=list[AttentionItemResponse])
async def list_orders_needing_attention() -> list[AttentionItemResponse]:
    return [
        AttentionItemResponse(
            order_id=str(summary.order_id),
            order_number=summary.order_number,
            status=summary.status,
            payment_status=summary.payment_status,
            attention_reason=summary.attention_reason,
            grand_total=summary.grand_total,
            currency=summary.currency,
        )
        for summary in orders_needing_attention()
    ]


@admin_router.post("/orders/sweep-abandoned", response_model=SweepResponse)
async def sweep_abandoned(body: SweepRequest) -> SweepResponse:
    return SweepResponse(cancelled=sweep_abandoned_orders(older_than_minutes=body.older_than_minutes))


@admin_router.post("/products", status_code=201, response_model=ProductStockResponse)
async def register_product(body: RegisterProductRequest) -> ProductStockResponse:
    return ProductStockResponse.from_record(ledger.register_product(**body.model_dump()))


@admin_router.patch("/products/{product_id}", response_model=ProductStockResponse)
async def update_product(product_id: str, body: UpdateProductRequest) -> ProductStockResponse:
    return ProductStockResponse.from_record(ledger.update_product(product_id, **body.model_dump(exclude_none=True)))


@admin_router.get("/inventory/movements", response_model=list[StockMovementResponse])
async def list_recent_movements(limit: int = Query(default=20, ge=1, le=500)) -> list[StockMovementResponse]:
    return [StockMovementResponse.from_movement(m) for m in ledger.recent_movements(limit)]


@admin_router.post("/inventory/adjust", status_code=201, response_model=StockMovementResponse)
async def adjust_stock(body: AdjustStockRequest) -> StockMovementResponse:
    movement = ledger.adjust_stock(
        body.product_id,
        body.quantity,
        body.type,
        actor_id=body.admin_id,
        reference=body.reference,
        note=body.note,
    )
    return StockMovementResponse.from_movement(movement)
