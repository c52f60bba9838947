"""Order partitioner.

Turns a cart snapshot plus the buyer's checkout choices into a single
Order. Items keep their own seller id, so one order can span several
sellers; per-seller views are derived later by the revenue module.
"""

from collections.abc import Sequence
from datetime import datetime

from craftly_orders.domain.entities import Order, OrderItem
from craftly_orders.domain.exceptions import StockExceededError, ValidationError
from craftly_orders.domain.value_objects import (
    CartLine,
    CheckoutSelections,
    Money,
    ShippingMethod,
)


def delivery_fee_for(method: ShippingMethod, local_delivery_fee: Money) -> Money:
    """Delivery fee charged for a shipping method."""
    if method == ShippingMethod.LOCAL_DELIVERY:
        return local_delivery_fee
    return Money.zero(local_delivery_fee.currency)


def validate_cart(lines: Sequence[CartLine], currency: str) -> None:
    """Check every cart line before an order is built.

    Raises:
        ValidationError: On an empty cart or a malformed line.
        StockExceededError: If a line asks for more than its recorded stock.
    """
    if not lines:
        raise ValidationError("Order must contain at least one item", field="items")

    for index, line in enumerate(lines):
        where = f"items[{index}]"
        if not (line.product_id or "").strip():
            raise ValidationError("Each item must have a productId", field=f"{where}.productId")
        if not (line.product_name or "").strip():
            raise ValidationError("Each item must have a productName", field=f"{where}.productName")
        if not (line.seller_id or "").strip():
            raise ValidationError("Each item must have a sellerId", field=f"{where}.sellerId")
        if line.quantity <= 0:
            raise ValidationError("Item quantity must be greater than 0", field=f"{where}.quantity")
        if line.unit_price.currency != currency:
            raise ValidationError(
                f"Item price must be in {currency}",
                field=f"{where}.price",
                details={"currency": line.unit_price.currency},
            )
        if line.stock is not None and line.quantity > line.stock:
            raise StockExceededError(
                product_id=line.product_id,
                product_name=line.product_name,
                requested=line.quantity,
                available=line.stock,
            )


def partition_cart(
    *,
    order_id: str,
    buyer_id: str,
    lines: Sequence[CartLine],
    selections: CheckoutSelections,
    local_delivery_fee: Money,
    now: datetime,
) -> Order:
    """Build an order from a cart snapshot.

    Pure: the same arguments always produce an equal order, which is what
    lets a deterministic ``order_id`` make double submits harmless.

    Args:
        order_id: Identifier to assign.
        buyer_id: Buyer placing the order.
        lines: Cart snapshot lines.
        selections: Shipping, payment and recipient choices.
        local_delivery_fee: Fee configured for local delivery.
        now: Creation timestamp.

    Returns:
        New Order in its initial state.

    Raises:
        ValidationError: On invalid cart or checkout fields.
        StockExceededError: If a line exceeds its recorded stock.
    """
    if not (buyer_id or "").strip():
        raise ValidationError("Buyer id is required", field="x-user-id")

    currency = local_delivery_fee.currency
    validate_cart(lines, currency)
    selections.validate()

    items = [
        OrderItem(
            product_id=line.product_id,
            product_name=line.product_name,
            quantity=line.quantity,
            price=line.unit_price,
            seller_id=line.seller_id,
            image=line.image,
        )
        for line in lines
    ]

    order = Order.place(
        order_id=order_id,
        buyer_id=buyer_id,
        items=items,
        shipping_method=selections.shipping_method,
        payment_method=selections.payment_method,
        shipping_address=selections.shipping_address,
        recipient_name=selections.recipient_name,
        recipient_phone=selections.recipient_phone,
        delivery_fee=delivery_fee_for(selections.shipping_method, local_delivery_fee),
        receipt_image_url=selections.receipt_image_url,
        now=now,
    )

    expected = selections.expected_total
    if expected is not None and expected != order.total_amount:
        raise ValidationError(
            "Order total does not match the cart; refresh the cart and try again",
            field="totalAmount",
            details={
                "expected_total": expected.amount_cents,
                "computed_total": order.total_amount.amount_cents,
            },
        )

    return order
