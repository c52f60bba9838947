"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Self
from uuid import NAMESPACE_URL, uuid4, uuid5

from craftly_orders.domain.base import ValueObject
from craftly_orders.domain.exceptions import (
    CurrencyMismatchError,
    NegativeMoneyError,
    ValidationError,
)

DEFAULT_CURRENCY = "PHP"

# Fixed namespace so the same (buyer, checkout token) always maps to the same order id
ORDER_ID_NAMESPACE = uuid5(NAMESPACE_URL, "https://craftly.app/orders")

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


# ============================================================================
# Identifiers
# ============================================================================


def new_order_id(buyer_id: str, idempotency_key: str | None = None) -> str:
    """Build an order identifier.

    With an idempotency key the id is deterministic, so a double-submitted
    checkout resolves to the same order document.

    Args:
        buyer_id: Buyer placing the order.
        idempotency_key: Client checkout-session token, if any.

    Returns:
        Order id string.
    """
    if idempotency_key:
        return str(uuid5(ORDER_ID_NAMESPACE, f"{buyer_id}:{idempotency_key}"))
    return str(uuid4())


# ============================================================================
# Checkout Choices
# ============================================================================


class ShippingMethod(str, Enum):
    """How the order reaches the buyer."""

    LOCAL_DELIVERY = "local-delivery"
    STORE_PICKUP = "store-pickup"


class PaymentMethod(str, Enum):
    """Manual payment methods; there is no gateway integration."""

    COD = "cod"
    GCASH = "gcash"


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Represents monetary value with currency.

    Money is stored in the smallest currency unit (centavos for PHP)
    to avoid floating-point drift.

    Attributes:
        amount_cents: Amount in smallest currency unit.
        currency: ISO 4217 currency code.
    """

    amount_cents: int
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        """Validate money constraints."""
        if self.amount_cents < 0:
            raise NegativeMoneyError(self.amount_cents)
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> Self:
        """Create zero amount money."""
        return cls(amount_cents=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount: Decimal, currency: str = DEFAULT_CURRENCY) -> Self:
        """Create money from a decimal amount in major units (pesos).

        Args:
            amount: Decimal amount in major units.
            currency: Currency code.

        Returns:
            Money instance.
        """
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return cls(amount_cents=cents, currency=currency)

    def to_decimal(self) -> Decimal:
        """Convert to decimal amount in major units."""
        return Decimal(self.amount_cents) / 100

    def share_bps(self, basis_points: int) -> "Money":
        """Take a basis-point share of this amount, rounding half up.

        Args:
            basis_points: Share in 1/100 of a percent (250 = 2.5%).

        Returns:
            The share as Money.
        """
        raw = Decimal(self.amount_cents) * Decimal(basis_points) / Decimal(10_000)
        cents = int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return Money(amount_cents=cents, currency=self.currency)

    def __add__(self, other: "Money") -> "Money":
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return Money(
            amount_cents=self.amount_cents + other.amount_cents,
            currency=self.currency,
        )

    def __sub__(self, other: "Money") -> "Money":
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return Money(
            amount_cents=self.amount_cents - other.amount_cents,
            currency=self.currency,
        )

    def __mul__(self, quantity: int) -> "Money":
        return Money(
            amount_cents=self.amount_cents * quantity,
            currency=self.currency,
        )

    def __rmul__(self, quantity: int) -> "Money":
        return self.__mul__(quantity)

    def __str__(self) -> str:
        """Return formatted string representation (e.g. '₱12.99 PHP')."""
        symbol = {"PHP": "₱", "USD": "$"}.get(self.currency, "")
        return f"{symbol}{self.to_decimal():.2f} {self.currency}"

    def is_zero(self) -> bool:
        return self.amount_cents == 0


# ============================================================================
# Cart Snapshot
# ============================================================================


@dataclass(frozen=True)
class CartLine(ValueObject):
    """One line of the cart snapshot captured at checkout.

    Attributes:
        product_id: Catalog product identifier.
        product_name: Product name at checkout.
        quantity: Units requested.
        unit_price: Unit price at checkout.
        seller_id: Seller who owns the product.
        image: Product image URL, if any.
        stock: Units in stock at checkout, when the cart recorded it.
    """

    product_id: str
    product_name: str
    quantity: int
    unit_price: Money
    seller_id: str
    image: str | None = None
    stock: int | None = None

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity


# ============================================================================
# Shipping Address
# ============================================================================


@dataclass(frozen=True)
class ShippingAddress(ValueObject):
    """Buyer-entered delivery address, snapshotted at checkout.

    Every field is optional here; which ones are required depends on
    the shipping method and is checked by ``validate_for``.
    """

    street_address: str | None = None
    barangay: str | None = None
    city: str | None = None
    postal_code: str | None = None
    landmark: str | None = None
    email: str | None = None

    def validate_for(self, method: ShippingMethod) -> None:
        """Check the fields the chosen shipping method needs.

        Raises:
            ValidationError: If a required field is missing or malformed.
        """
        if self.email and not _EMAIL_RE.match(self.email):
            raise ValidationError("Invalid email address in shipping address", field="shippingAddress.email")

        if method != ShippingMethod.LOCAL_DELIVERY:
            return

        street = (self.street_address or "").strip()
        if not street:
            raise ValidationError(
                "Street address is required for local delivery",
                field="shippingAddress.streetAddress",
            )
        if not (re.search(r"\d", street) and re.search(r"[a-zA-Z]", street)):
            raise ValidationError(
                "Street address must include both house/building number and street name "
                '(e.g., "123 Main Street")',
                field="shippingAddress.streetAddress",
            )
        if not (self.barangay or "").strip():
            raise ValidationError(
                "Barangay is required for local delivery",
                field="shippingAddress.barangay",
            )

    def format_single_line(self) -> str:
        parts = [p for p in (self.street_address, self.barangay, self.city, self.postal_code) if p]
        return ", ".join(parts)


# ============================================================================
# Checkout Selections
# ============================================================================


@dataclass(frozen=True)
class CheckoutSelections(ValueObject):
    """Buyer choices made on the checkout form.

    Attributes:
        shipping_method: Delivery or pickup.
        payment_method: Cash on delivery or GCash transfer.
        shipping_address: Address snapshot.
        recipient_name: Who receives the parcel.
        recipient_phone: Contact number.
        receipt_image_url: GCash receipt uploaded during checkout, if any.
        expected_total: Total the client displayed, checked against ours.
    """

    shipping_method: ShippingMethod
    payment_method: PaymentMethod
    shipping_address: ShippingAddress
    recipient_name: str
    recipient_phone: str
    receipt_image_url: str | None = None
    expected_total: Money | None = None

    def validate(self) -> None:
        """Validate recipient and address fields.

        Raises:
            ValidationError: On missing or malformed fields.
        """
        if not (self.recipient_name or "").strip():
            raise ValidationError("Recipient name is required", field="recipientName")
        if not (self.recipient_phone or "").strip():
            raise ValidationError("Recipient phone is required", field="recipientPhone")
        digits = re.sub(r"\D", "", self.recipient_phone)
        if len(digits) < 10:
            raise ValidationError("Invalid recipient phone number", field="recipientPhone")
        self.shipping_address.validate_for(self.shipping_method)
