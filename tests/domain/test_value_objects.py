"""Tests for value objects."""

from decimal import Decimal

import pytest

from craftly_orders.domain.exceptions import (
    CurrencyMismatchError,
    NegativeMoneyError,
    ValidationError,
)
from craftly_orders.domain.value_objects import (
    Money,
    ShippingAddress,
    ShippingMethod,
    new_order_id,
)


class TestMoney:
    """Tests for Money value object."""

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(NegativeMoneyError):
            Money(-1)

    def test_currency_is_normalised(self) -> None:
        assert Money(100, "php").currency == "PHP"

    def test_addition_requires_same_currency(self) -> None:
        with pytest.raises(CurrencyMismatchError):
            Money(100, "PHP") + Money(100, "USD")

    def test_subtraction_below_zero_rejected(self) -> None:
        with pytest.raises(NegativeMoneyError):
            Money(100) - Money(101)

    def test_multiplication(self) -> None:
        assert Money(45000) * 2 == Money(90000)
        assert 3 * Money(100) == Money(300)

    def test_from_decimal_rounds_half_up(self) -> None:
        assert Money.from_decimal(Decimal("12.345")).amount_cents == 1235
        assert Money.from_decimal(Decimal("450")).amount_cents == 45000

    def test_share_bps(self) -> None:
        """250 basis points is 2.5 percent, rounded half up."""
        assert Money(10000).share_bps(250) == Money(250)
        assert Money(101).share_bps(500) == Money(5)
        assert Money(110).share_bps(500) == Money(6)
        assert Money(10000).share_bps(0).is_zero()

    def test_str(self) -> None:
        assert str(Money(125000)) == "₱1250.00 PHP"


class TestShippingAddress:
    """Tests for address validation per shipping method."""

    def test_local_delivery_requires_street(self) -> None:
        address = ShippingAddress(street_address="", barangay="San Roque")

        with pytest.raises(ValidationError) as exc_info:
            address.validate_for(ShippingMethod.LOCAL_DELIVERY)

        assert exc_info.value.field == "shippingAddress.streetAddress"

    def test_street_needs_number_and_name(self) -> None:
        address = ShippingAddress(street_address="Mabini Street", barangay="San Roque")

        with pytest.raises(ValidationError) as exc_info:
            address.validate_for(ShippingMethod.LOCAL_DELIVERY)

        assert "house/building number" in exc_info.value.message

    def test_local_delivery_requires_barangay(self) -> None:
        address = ShippingAddress(street_address="123 Mabini Street", barangay="  ")

        with pytest.raises(ValidationError) as exc_info:
            address.validate_for(ShippingMethod.LOCAL_DELIVERY)

        assert exc_info.value.field == "shippingAddress.barangay"

    def test_store_pickup_needs_no_address(self) -> None:
        ShippingAddress().validate_for(ShippingMethod.STORE_PICKUP)

    def test_invalid_email_rejected_for_any_method(self) -> None:
        with pytest.raises(ValidationError):
            ShippingAddress(email="not-an-email").validate_for(ShippingMethod.STORE_PICKUP)

    def test_format_single_line(self) -> None:
        address = ShippingAddress(street_address="123 Mabini Street", barangay="San Roque", city="Marikina")
        assert address.format_single_line() == "123 Mabini Street, San Roque, Marikina"


class TestCheckoutSelections:
    def test_phone_needs_ten_digits(self, make_selections) -> None:
        with pytest.raises(ValidationError) as exc_info:
            make_selections(recipient_phone="0917-123").validate()
        assert exc_info.value.field == "recipientPhone"

    def test_phone_formatting_characters_ignored(self, make_selections) -> None:
        make_selections(recipient_phone="+63 917 123 4567").validate()

    def test_recipient_name_required(self, make_selections) -> None:
        with pytest.raises(ValidationError) as exc_info:
            make_selections(recipient_name="   ").validate()
        assert exc_info.value.field == "recipientName"


class TestOrderIds:
    def test_same_key_gives_same_id(self) -> None:
        assert new_order_id("buyer-1", "token-1") == new_order_id("buyer-1", "token-1")

    def test_key_is_scoped_to_buyer(self) -> None:
        assert new_order_id("buyer-1", "token-1") != new_order_id("buyer-2", "token-1")

    def test_without_key_ids_are_random(self) -> None:
        assert new_order_id("buyer-1") != new_order_id("buyer-1")
