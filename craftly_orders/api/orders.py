"""Order API endpoints.

Provides endpoints for the order lifecycle:
- POST /api/orders - place an order for the whole cart
- GET /api/orders/{user_id} - a buyer's orders
- GET /api/orders/{order_id}/details - one order
- GET /api/orders/seller/{seller_id} - a seller's orders with their share
- GET /api/orders/seller/{seller_id}/revenue - seller revenue report
- POST /api/orders/{order_id}/status - change fulfillment status
- POST /api/orders/{order_id}/payment-status - review or refund payment
- POST /api/orders/{order_id}/receipt - attach a GCash receipt
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from craftly_orders.api.schemas import (
    CreateOrderRequest,
    EditLockSchema,
    ErrorResponse,
    OrderEnvelope,
    OrderItemSchema,
    OrderListEnvelope,
    OrderListSchema,
    OrderSchema,
    PaymentStatusUpdateRequest,
    ReceiptUploadRequest,
    RevenueEnvelope,
    RevenueSchema,
    SellerOrderListEnvelope,
    SellerOrderListSchema,
    SellerOrderSchema,
    ShippingAddressSchema,
    StatusHistorySchema,
    StatusUpdateRequest,
    TransitionEnvelope,
)
from craftly_orders.application.order_service import (
    DEFAULT_LIST_LIMIT,
    MAX_LIST_LIMIT,
    OrderService,
    SellerOrderView,
    TransitionResult,
    get_order_service,
)
from craftly_orders.domain.entities import Order, OrderItem
from craftly_orders.domain.exceptions import ValidationError
from craftly_orders.domain.value_objects import (
    CartLine,
    CheckoutSelections,
    Money,
    ShippingAddress,
)
from craftly_orders.infrastructure.config import settings

router = APIRouter(prefix="/api/orders", tags=["Orders"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}

TRANSITION_ERROR_RESPONSES = {
    **ERROR_RESPONSES,
    409: {"model": ErrorResponse},
    423: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ============================================================================
# Dependencies
# ============================================================================


def get_service(request: Request) -> OrderService:
    """Get order service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_order_service(request_id=request_id)


def get_actor_id(request: Request) -> str:
    """Acting user resolved by the identity middleware."""
    return request.state.user_id


# ============================================================================
# Converters
# ============================================================================


def item_to_schema(item: OrderItem) -> OrderItemSchema:
    return OrderItemSchema(
        product_id=item.product_id,
        product_name=item.product_name,
        quantity=item.quantity,
        price=item.price.amount_cents,
        line_total=item.line_total.amount_cents,
        seller_id=item.seller_id,
        image=item.image,
    )


def _order_fields(order: Order, service: OrderService) -> dict:
    lock = service.lock_state(order)
    address = order.shipping_address
    return {
        "id": order.id,
        "buyer_id": order.buyer_id,
        "seller_ids": order.seller_ids,
        "items": [item_to_schema(item) for item in order.items],
        "shipping_address": ShippingAddressSchema(
            street_address=address.street_address,
            barangay=address.barangay,
            city=address.city,
            postal_code=address.postal_code,
            landmark=address.landmark,
            email=address.email,
        ),
        "recipient_name": order.recipient_name,
        "recipient_phone": order.recipient_phone,
        "shipping_method": order.shipping_method,
        "payment_method": order.payment_method,
        "currency": order.currency,
        "delivery_fee": order.delivery_fee.amount_cents,
        "total_amount": order.total_amount.amount_cents,
        "order_status": order.order_status,
        "payment_status": order.payment_status,
        "status_color": order.order_status.display_color,
        "receipt_image_url": order.receipt_image_url,
        "edit_lock": EditLockSchema(
            locked=lock.locked,
            lock_expires_at=lock.lock_expires_at,
            hours_remaining=lock.hours_remaining,
        ),
        "status_history": [
            StatusHistorySchema(
                field=entry.field,
                from_status=entry.from_status,
                to_status=entry.to_status,
                actor=entry.actor_id,
                reason=entry.reason,
                lock_bypassed=entry.lock_bypassed,
                at=entry.at,
            )
            for entry in order.status_history
        ],
        "version": order.version,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


def order_to_schema(order: Order, service: OrderService) -> OrderSchema:
    """Convert an Order to its API representation."""
    return OrderSchema(**_order_fields(order, service))


def seller_view_to_schema(view: SellerOrderView, service: OrderService) -> SellerOrderSchema:
    """Convert a seller's view of an order, adding the seller's share."""
    partition = view.partition
    return SellerOrderSchema(
        **_order_fields(view.order, service),
        seller_items=[item_to_schema(item) for item in partition.items],
        seller_item_count=partition.item_count,
        seller_total=partition.seller_total.amount_cents,
        commission=partition.commission.amount_cents,
        net_payout=partition.net_payout.amount_cents,
    )


def transition_to_envelope(result: TransitionResult, service: OrderService) -> TransitionEnvelope:
    return TransitionEnvelope(
        data=order_to_schema(result.order, service),
        previous_status=result.previous_status,
        new_status=result.new_status,
        changed=result.changed,
    )


def request_to_checkout(body: CreateOrderRequest) -> tuple[list[CartLine], CheckoutSelections]:
    """Build domain inputs from the create-order request."""
    currency = settings.currency
    lines = []
    for index, item in enumerate(body.items):
        if item.price < 0:
            raise ValidationError(
                "Item price cannot be negative", field=f"items[{index}].price"
            )
        lines.append(
            CartLine(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=Money(item.price, currency),
                seller_id=item.seller_id,
                image=item.image,
                stock=item.stock,
            )
        )

    if body.total_amount is not None and body.total_amount < 0:
        raise ValidationError("Total amount cannot be negative", field="totalAmount")

    address = body.shipping_address
    selections = CheckoutSelections(
        shipping_method=body.shipping_method,
        payment_method=body.payment_method,
        shipping_address=ShippingAddress(
            street_address=address.street_address,
            barangay=address.barangay,
            city=address.city,
            postal_code=address.postal_code,
            landmark=address.landmark,
            email=address.email,
        ),
        recipient_name=body.recipient_name,
        recipient_phone=body.recipient_phone,
        receipt_image_url=body.receipt_image_url,
        expected_total=(
            Money(body.total_amount, currency) if body.total_amount is not None else None
        ),
    )
    return lines, selections


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=OrderEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Place order",
    description="Create one order for the whole cart; items may come from several sellers.",
)
async def create_order(
    body: CreateOrderRequest,
    request: Request,
    response: Response,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> OrderEnvelope:
    """Place an order.

    The same checkout token (or Idempotency-Key header) always resolves
    to the same order, so a double submit never creates a duplicate.

    Returns:
        The created order (201), or the existing one (200) on a repeat.
    """
    lines, selections = request_to_checkout(body)
    result = await service.create_order(
        buyer_id=actor_id,
        lines=lines,
        selections=selections,
        idempotency_key=body.checkout_token or request.headers.get("Idempotency-Key"),
    )
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return OrderEnvelope(data=order_to_schema(result.order, service))


@router.get(
    "/seller/{seller_id}",
    response_model=SellerOrderListEnvelope,
    responses=ERROR_RESPONSES,
    summary="List seller orders",
    description="Orders containing the seller's items, with the seller's items and share.",
)
async def list_seller_orders(
    seller_id: str,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
) -> SellerOrderListEnvelope:
    page = await service.list_seller_orders(seller_id, actor_id, limit=limit)
    return SellerOrderListEnvelope(
        data=SellerOrderListSchema(
            seller_id=seller_id,
            orders=[seller_view_to_schema(view, service) for view in page],
            count=page.count,
            total=page.total,
            has_more=page.has_more,
        )
    )


@router.get(
    "/seller/{seller_id}/revenue",
    response_model=RevenueEnvelope,
    responses=ERROR_RESPONSES,
    summary="Seller revenue",
    description="Gross, commission, net payout and today's earnings for a seller.",
)
async def seller_revenue(
    seller_id: str,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> RevenueEnvelope:
    report = await service.seller_revenue(seller_id, actor_id)
    return RevenueEnvelope(
        data=RevenueSchema(
            seller_id=report.seller_id,
            currency=report.currency,
            gross=report.gross,
            commission=report.commission,
            net_payout=report.net_payout,
            today_earnings=report.today_earnings,
            order_count=report.order_count,
            items_sold=report.items_sold,
            by_status=report.by_status,
        )
    )


@router.get(
    "/{order_id}/details",
    response_model=OrderEnvelope,
    responses=ERROR_RESPONSES,
    summary="Get order details",
)
async def get_order(
    order_id: str,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> OrderEnvelope:
    """Get one order visible to the buyer, a seller in it, or an admin."""
    order = await service.get_order(order_id, actor_id)
    return OrderEnvelope(data=order_to_schema(order, service))


@router.get(
    "/{user_id}",
    response_model=OrderListEnvelope,
    responses=ERROR_RESPONSES,
    summary="List buyer orders",
    description="Newest-first orders placed by a buyer.",
)
async def list_buyer_orders(
    user_id: str,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
) -> OrderListEnvelope:
    page = await service.list_buyer_orders(user_id, actor_id, limit=limit)
    return OrderListEnvelope(
        data=OrderListSchema(
            user_id=user_id,
            orders=[order_to_schema(order, service) for order in page],
            count=page.count,
            total=page.total,
            has_more=page.has_more,
        )
    )


@router.post(
    "/{order_id}/status",
    response_model=TransitionEnvelope,
    responses=TRANSITION_ERROR_RESPONSES,
    summary="Change order status",
    description="Sellers and admins move the order forward; buyers may cancel while pending.",
)
async def update_status(
    order_id: str,
    body: StatusUpdateRequest,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> TransitionEnvelope:
    result = await service.transition_status(order_id, body.status, actor_id, reason=body.reason)
    return transition_to_envelope(result, service)


@router.post(
    "/{order_id}/payment-status",
    response_model=TransitionEnvelope,
    responses=TRANSITION_ERROR_RESPONSES,
    summary="Review or refund payment",
    description="Sellers and admins approve or reject a receipt; admins refund.",
)
async def update_payment_status(
    order_id: str,
    body: PaymentStatusUpdateRequest,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> TransitionEnvelope:
    result = await service.update_payment_status(
        order_id, body.payment_status, actor_id, reason=body.reason
    )
    return transition_to_envelope(result, service)


@router.post(
    "/{order_id}/receipt",
    response_model=TransitionEnvelope,
    responses=TRANSITION_ERROR_RESPONSES,
    summary="Upload GCash receipt",
    description="Attach the buyer's GCash receipt and queue the payment for review.",
)
async def upload_receipt(
    order_id: str,
    body: ReceiptUploadRequest,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> TransitionEnvelope:
    result = await service.upload_receipt(order_id, body.receipt_image_url, actor_id)
    return transition_to_envelope(result, service)
