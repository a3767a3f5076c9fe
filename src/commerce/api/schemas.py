"""Pydantic request/response schemas for the commerce API.

These are external contracts, kept separate from internal Protean commands.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str | None = None
    phone: str | None = None
    address_line1: str = Field(min_length=1)
    address_line2: str | None = None
    city: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=2, max_length=2)


class CartLineSchema(BaseModel):
    product_id: str
    quantity: int


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Checkout & payment
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    customer_ref: str = Field(min_length=1, description="Customer id or guest email")
    lines: list[CartLineSchema]
    billing_address: AddressSchema
    shipping_address: AddressSchema | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_ref": "guest@example.com",
                    "lines": [{"product_id": "prod-001", "quantity": 2}],
                    "billing_address": {
                        "first_name": "Ada",
                        "last_name": "Lovelace",
                        "email": "guest@example.com",
                        "address_line1": "12 Rue de la Paix",
                        "city": "Paris",
                        "postal_code": "75002",
                        "country": "FR",
                    },
                }
            ]
        }
    }


class PaymentAttemptResponse(BaseModel):
    attempt_id: str
    intent_id: str
    client_secret: str
    redirect_url: str | None = None


class CreateOrderResponse(BaseModel):
    order_id: str
    order_number: str
    grand_total: float
    currency: str
    payment: PaymentAttemptResponse | None = None


class PaymentStatusResponse(BaseModel):
    outcome: str
    order_id: str | None = None
    order_status: str | None = None
    payment_status: str | None = None


class OrderStatusResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    payment_status: str | None = None
    needs_attention: bool = False


class OrderListItemResponse(BaseModel):
    order_id: str
    order_number: str
    customer_ref: str
    status: str
    payment_status: str | None = None
    item_count: int = 0
    grand_total: float | None = None
    currency: str | None = None
    needs_attention: bool = False
    created_at: datetime | None = None

    @classmethod
    def from_summary(cls, summary) -> "OrderListItemResponse":
        return cls(
            order_id=str(summary.order_id),
            order_number=summary.order_number,
            customer_ref=summary.customer_ref,
            status=summary.status,
            payment_status=summary.payment_status,
            item_count=summary.item_count or 0,
            grand_total=summary.grand_total,
            currency=summary.currency,
            needs_attention=bool(summary.needs_attention),
            created_at=summary.created_at,
        )


class WebhookData(BaseModel):
    intent_id: str
    status: str | None = None
    failure_reason: str | None = None


class WebhookEventRequest(BaseModel):
    id: str
    type: str
    created: datetime
    data: WebhookData


class CancelOrderRequest(BaseModel):
    comment: str | None = None


# ---------------------------------------------------------------------------
# Orders (read)
# ---------------------------------------------------------------------------
class OrderLineResponse(BaseModel):
    product_id: str
    sku: str
    title: str
    quantity: int
    unit_price: float
    line_total: float


class StatusChangeResponse(BaseModel):
    from_status: str | None = None
    to_status: str
    actor_role: str
    actor_id: str | None = None
    comment: str | None = None
    changed_at: datetime


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_ref: str
    status: str
    payment_status: str | None = None
    payment_intent_id: str | None = None
    needs_attention: bool = False
    attention_reason: str | None = None
    lines: list[OrderLineResponse]
    subtotal: float
    shipping_cost: float
    tax_total: float
    discount_total: float
    grand_total: float
    currency: str
    billing_address: AddressSchema
    shipping_address: AddressSchema
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            order_id=str(order.id),
            order_number=order.order_number,
            customer_ref=order.customer_ref,
            status=order.status,
            payment_status=order.payment_status,
            payment_intent_id=order.payment_intent_id,
            needs_attention=bool(order.needs_attention),
            attention_reason=order.attention_reason,
            lines=[
                OrderLineResponse(
                    product_id=str(line.product_id),
                    sku=line.sku,
                    title=line.title,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                )
                for line in order.lines
            ],
            subtotal=order.pricing.subtotal,
            shipping_cost=order.pricing.shipping_cost,
            tax_total=order.pricing.tax_total,
            discount_total=order.pricing.discount_total,
            grand_total=order.pricing.grand_total,
            currency=order.pricing.currency,
            billing_address=AddressSchema(**order.billing_address.to_dict()),
            shipping_address=AddressSchema(**order.shipping_address.to_dict()),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
class UpdateOrderStatusRequest(BaseModel):
    status: Literal["pending", "processing", "shipped", "delivered", "cancelled"]
    admin_id: str = Field(min_length=1)
    comment: str | None = Field(default=None, max_length=500)


class SweepRequest(BaseModel):
    older_than_minutes: int | None = Field(default=None, ge=0)


class SweepResponse(BaseModel):
    cancelled: list[str]


class AttentionItemResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    payment_status: str | None = None
    attention_reason: str | None = None
    grand_total: float | None = None
    currency: str | None = None


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
class RegisterProductRequest(BaseModel):
    product_id: str = Field(min_length=1)
    sku: str = Field(min_length=1)
    title: str = Field(min_length=1)
    unit_price: float = Field(ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    initial_stock: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=5, ge=0)
    track_inventory: bool = True
    allow_backorder: bool = False


class UpdateProductRequest(BaseModel):
    title: str | None = None
    unit_price: float | None = Field(default=None, ge=0)
    is_active: bool | None = None
    low_stock_threshold: int | None = Field(default=None, ge=0)
    allow_backorder: bool | None = None


class AdjustStockRequest(BaseModel):
    product_id: str
    quantity: int
    type: Literal["restock", "adjustment", "return", "damaged", "lost"]
    admin_id: str = Field(min_length=1)
    reference: str | None = None
    note: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-001",
                    "quantity": -3,
                    "type": "damaged",
                    "admin_id": "admin-7",
                    "note": "Water damage in aisle 4",
                }
            ]
        }
    }


class ProductStockResponse(BaseModel):
    product_id: str
    sku: str
    title: str
    unit_price: float
    currency: str
    is_active: bool
    track_inventory: bool
    stock_quantity: int
    low_stock_threshold: int
    allow_backorder: bool

    @classmethod
    def from_record(cls, record) -> "ProductStockResponse":
        return cls(
            product_id=record.product_id,
            sku=record.sku,
            title=record.title,
            unit_price=float(record.unit_price),
            currency=record.currency,
            is_active=record.is_active,
            track_inventory=record.track_inventory,
            stock_quantity=record.stock_quantity,
            low_stock_threshold=record.low_stock_threshold,
            allow_backorder=record.allow_backorder,
        )


class StockMovementResponse(BaseModel):
    movement_id: str
    product_id: str
    delta: int
    type: str
    order_id: str | None = None
    reference: str | None = None
    note: str | None = None
    actor: str
    created_at: datetime

    @classmethod
    def from_movement(cls, movement) -> "StockMovementResponse":
        return cls(
            movement_id=movement.movement_id,
            product_id=movement.product_id,
            delta=movement.delta,
            type=movement.movement_type.value,
            order_id=movement.order_id,
            reference=movement.reference,
            note=movement.note,
            actor=movement.actor_id,
            created_at=movement.created_at,
        )
