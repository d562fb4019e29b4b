"""Tests for domain value objects."""

from decimal import Decimal

import pytest

from marketcart.domain import (
    Actor,
    ActorRole,
    CustomerId,
    DeliveryAddress,
    Money,
    OrderId,
    OrderNumber,
    Pricing,
    Rating,
    SellerRating,
)
from marketcart.domain.exceptions import InvalidIdentifierError, InvalidRatingError, NegativeMoneyError


class _FixedRng:
    def __init__(self, value: int) -> None:
        self.value = value

    def randint(self, a: int, b: int) -> int:
        return self.value


class TestMoney:
    """Tests for Money value object."""

    def test_arithmetic(self) -> None:
        assert Money(1500) + Money(250) == Money(1750)
        assert Money(1500) - Money(500) == Money(1000)
        assert Money(1250) * 3 == Money(3750)
        assert 2 * Money(100) == Money(200)

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(NegativeMoneyError):
            Money(-1)

    def test_subtraction_below_zero_rejected(self) -> None:
        with pytest.raises(NegativeMoneyError):
            Money(100) - Money(101)

    def test_from_decimal_rounds_half_up(self) -> None:
        assert Money.from_decimal(Decimal("19.995")) == Money(2000)
        assert Money.from_decimal(Decimal("120")) == Money(12000)

    def test_str_has_two_decimals(self) -> None:
        assert str(Money(12050)) == "120.50"
        assert str(Money.zero()) == "0.00"


class TestOrderNumber:
    """Tests for order number generation."""

    def test_format(self) -> None:
        number = OrderNumber.generate("MLM", now_ms=1700000123456, rng=_FixedRng(7))
        assert str(number) == "MLM123456007"

    def test_custom_prefix(self) -> None:
        number = OrderNumber.generate("ABC", now_ms=42, rng=_FixedRng(999))
        assert str(number) == "ABC42999"

    def test_generated_numbers_match_pattern(self) -> None:
        value = str(OrderNumber.generate())
        assert value.startswith("MLM")
        assert value[3:].isdigit()
        assert len(value) == 12


class TestIdentifiers:
    """Tests for typed identifiers."""

    def test_empty_string_id_rejected(self) -> None:
        with pytest.raises(InvalidIdentifierError) as exc_info:
            CustomerId("  ")

        assert exc_info.value.error_code == "INVALID_ID"
        assert exc_info.value.details["kind"] == "CustomerId"
        assert isinstance(exc_info.value, ValueError)

    def test_order_id_round_trips_through_string(self) -> None:
        order_id = OrderId.generate()
        assert OrderId.from_string(str(order_id)) == order_id

    def test_order_id_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            OrderId.from_string("not-a-uuid")


class TestRating:
    """Tests for order ratings."""

    @pytest.mark.parametrize("value", [0, 6, -1])
    def test_out_of_range_rejected(self, value: int) -> None:
        with pytest.raises(InvalidRatingError):
            Rating(value=value)

    def test_rated_at_is_filled(self) -> None:
        rating = Rating(value=4, review="Fresh")
        assert rating.rated_at is not None
        assert rating.review == "Fresh"


class TestSellerRating:
    """Tests for the running seller rating."""

    def test_first_rating(self) -> None:
        rating = SellerRating().fold(5)
        assert rating.average == Decimal("5.00")
        assert rating.count == 1

    def test_average_is_rounded_to_two_places(self) -> None:
        rating = SellerRating(average=Decimal("4.00"), count=2).fold(5)
        assert rating.average == Decimal("4.33")
        assert rating.count == 3

    def test_folding_sequence(self) -> None:
        rating = SellerRating()
        for value in (5, 4, 3):
            rating = rating.fold(value)
        assert rating.average == Decimal("4.00")
        assert rating.count == 3


class TestPricing:
    def test_total_adds_fee_and_tax_minus_discount(self) -> None:
        pricing = Pricing(subtotal=Money(10000), delivery_fee=Money(4000), tax=Money(500), discount=Money(1000))
        assert pricing.total == Money(13500)


class TestDeliveryAddress:
    """Tests for delivery addresses."""

    def test_valid_address(self) -> None:
        address = DeliveryAddress(street="12 MG Road", city="Pune", state="MH", pincode="411001")
        assert address.coordinates is None

    @pytest.mark.parametrize("field_name", ["street", "city", "pincode"])
    def test_blank_required_field_rejected(self, field_name: str) -> None:
        values = {"street": "12 MG Road", "city": "Pune", "state": "MH", "pincode": "411001"}
        values[field_name] = "  "
        with pytest.raises(ValueError):
            DeliveryAddress(**values)


def test_actor_roles() -> None:
    customer = Actor(id="cust-1", role=ActorRole.CUSTOMER)
    seller = Actor(id="fresh-mart", role=ActorRole.SELLER)
    assert customer.is_customer and not customer.is_seller
    assert seller.is_seller and not seller.is_customer
