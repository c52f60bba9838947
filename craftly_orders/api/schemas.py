"""API schemas for Craftly orders.

Pydantic models for request/response validation and serialization.
JSON keys are camelCase on the wire; money is integer centavos.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from craftly_orders.domain.state_machines import OrderStatus, PaymentStatus
from craftly_orders.domain.value_objects import PaymentMethod, ShippingMethod


class CamelModel(BaseModel):
    """Base model with camelCase aliases that also accepts field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    success: bool = Field(default=False)
    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional error context")
    request_id: str | None = Field(default=None, description="Request ID for correlation")


# ============================================================================
# Order Creation Schemas
# ============================================================================


class CartItemSchema(CamelModel):
    """One cart line submitted at checkout."""

    product_id: str = Field(..., description="Catalog product id")
    product_name: str = Field(..., description="Product name at checkout")
    quantity: int = Field(..., description="Units ordered")
    price: int = Field(..., description="Unit price in centavos")
    seller_id: str = Field(..., description="Seller who owns the product")
    image: str | None = Field(default=None, description="Product image URL")
    stock: int | None = Field(default=None, description="Units in stock when the cart was read")


class ShippingAddressSchema(CamelModel):
    """Delivery address; required fields depend on the shipping method."""

    street_address: str | None = None
    barangay: str | None = None
    city: str | None = None
    postal_code: str | None = None
    landmark: str | None = None
    email: str | None = None


class CreateOrderRequest(CamelModel):
    """Request to place an order for the whole cart."""

    items: list[CartItemSchema] = Field(default_factory=list)
    shipping_address: ShippingAddressSchema = Field(default_factory=ShippingAddressSchema)
    recipient_name: str = Field(default="", description="Who receives the parcel")
    recipient_phone: str = Field(default="", description="Recipient contact number")
    shipping_method: ShippingMethod
    payment_method: PaymentMethod
    receipt_image_url: str | None = Field(
        default=None, description="GCash receipt uploaded during checkout"
    )
    total_amount: int | None = Field(
        default=None, description="Total shown to the buyer, checked against the server total"
    )
    checkout_token: str | None = Field(
        default=None, description="Checkout session token; makes retries return the same order"
    )


# ============================================================================
# Transition Requests
# ============================================================================


class StatusUpdateRequest(CamelModel):
    """Request to change an order's fulfillment status."""

    status: OrderStatus
    reason: str | None = None


class PaymentStatusUpdateRequest(CamelModel):
    """Request to review or refund a payment."""

    payment_status: PaymentStatus
    reason: str | None = None


class ReceiptUploadRequest(CamelModel):
    """Request to attach a GCash receipt."""

    receipt_image_url: str


# ============================================================================
# Order Response Schemas
# ============================================================================


class OrderItemSchema(CamelModel):
    """Order line item."""

    product_id: str
    product_name: str
    quantity: int
    price: int
    line_total: int
    seller_id: str
    image: str | None = None


class StatusHistorySchema(CamelModel):
    """One audit trail entry."""

    field: str
    from_status: str | None
    to_status: str
    actor: str
    reason: str | None = None
    lock_bypassed: bool = False
    at: datetime


class EditLockSchema(CamelModel):
    """Edit window state computed at read time."""

    locked: bool
    lock_expires_at: datetime
    hours_remaining: int


class OrderSchema(CamelModel):
    """Full order representation."""

    id: str
    buyer_id: str
    seller_ids: list[str]
    items: list[OrderItemSchema]
    shipping_address: ShippingAddressSchema
    recipient_name: str
    recipient_phone: str
    shipping_method: ShippingMethod
    payment_method: PaymentMethod
    currency: str
    delivery_fee: int
    total_amount: int
    order_status: OrderStatus
    payment_status: PaymentStatus
    status_color: str
    receipt_image_url: str | None = None
    edit_lock: EditLockSchema
    status_history: list[StatusHistorySchema]
    version: int
    created_at: datetime
    updated_at: datetime


class SellerOrderSchema(OrderSchema):
    """Order as seen by one seller, with that seller's share."""

    seller_items: list[OrderItemSchema]
    seller_item_count: int
    seller_total: int
    commission: int
    net_payout: int


class OrderListSchema(CamelModel):
    """A buyer's orders, newest first."""

    user_id: str
    orders: list[OrderSchema]
    count: int
    total: int
    has_more: bool


class SellerOrderListSchema(CamelModel):
    """A seller's orders, newest first."""

    seller_id: str
    orders: list[SellerOrderSchema]
    count: int
    total: int
    has_more: bool


class RevenueSchema(CamelModel):
    """Seller revenue report (centavos)."""

    seller_id: str
    currency: str
    gross: int
    commission: int
    net_payout: int
    today_earnings: int
    order_count: int
    items_sold: int
    by_status: dict[str, int]


# ============================================================================
# Envelopes
# ============================================================================


class OrderEnvelope(BaseModel):
    success: bool = True
    data: OrderSchema


class OrderListEnvelope(BaseModel):
    success: bool = True
    data: OrderListSchema


class SellerOrderListEnvelope(BaseModel):
    success: bool = True
    data: SellerOrderListSchema


class TransitionEnvelope(CamelModel):
    """The order after a status or payment change.

    ``changed`` is false when the request repeated a change that had
    already been made.
    """

    success: bool = True
    data: OrderSchema
    previous_status: str
    new_status: str
    changed: bool


class RevenueEnvelope(BaseModel):
    success: bool = True
    data: RevenueSchema
