"""Unit tests for Money."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from restaurant_pos_service.errors import CurrencyMismatch, InvalidAmount
from restaurant_pos_service.models import money
from restaurant_pos_service.models.money import Money


@pytest.mark.unit
class TestMoneyConstruction:
    """Tests for creating Money values."""

    def test_currency_is_normalized(self) -> None:
        """Test that the currency code is upper-cased."""
        assert Money(amount=100, currency="brl").currency == "BRL"

    def test_default_currency_is_brl(self) -> None:
        """Test the default currency."""
        assert Money(amount=1).currency == "BRL"

    def test_rejects_invalid_currency(self) -> None:
        """Test that malformed currency codes are rejected."""
        with pytest.raises(ValidationError):
            Money(amount=100, currency="REAL")

    def test_rejects_float_amount(self) -> None:
        """Test that amounts must be integers in minor units."""
        with pytest.raises(ValidationError):
            Money(amount=20.5, currency="BRL")  # type: ignore[arg-type]

    def test_from_decimal_string(self) -> None:
        """Test conversion from a major-unit string."""
        assert Money.from_decimal("20.50", "BRL") == Money(amount=2050, currency="BRL")

    def test_from_decimal_zero_exponent_currency(self) -> None:
        """Test conversion for a currency without minor units."""
        assert Money.from_decimal("1500", "JPY") == Money(amount=1500, currency="JPY")

    def test_from_decimal_rejects_extra_precision(self) -> None:
        """Test that a fractional minor unit is rejected instead of truncated."""
        with pytest.raises(InvalidAmount) as exc_info:
            Money.from_decimal("20.005", "BRL")

        assert "BRL" in exc_info.value.message

    def test_from_decimal_rejects_garbage(self) -> None:
        """Test that non-numeric input is rejected."""
        with pytest.raises(InvalidAmount):
            Money.from_decimal("twenty", "BRL")

    def test_from_decimal_accepts_decimal(self) -> None:
        """Test conversion from a Decimal."""
        assert Money.from_decimal(Decimal("12.99"), "USD").amount == 1299

    def test_total_of_empty_iterable_is_zero(self) -> None:
        """Test that summing nothing gives zero in the requested currency."""
        assert Money.total([], "USD") == Money.zero("USD")

    def test_dynamodb_round_trip_with_decimal_amount(self) -> None:
        """Test that DynamoDB Decimal numbers are read back as ints."""
        stored = {"amount": Decimal("2800"), "currency": "BRL"}

        value = Money.from_dynamodb(stored)

        assert value.amount == 2800
        assert isinstance(value.amount, int)


@pytest.mark.unit
class TestMoneyArithmetic:
    """Tests for Money arithmetic."""

    def test_add(self) -> None:
        """Test addition of same-currency amounts."""
        assert money.add(Money(amount=2000), Money(amount=800)) == Money(amount=2800)

    def test_operators(self) -> None:
        """Test the arithmetic and comparison operators."""
        a = Money(amount=1000)
        b = Money(amount=300)

        assert a + b == Money(amount=1300)
        assert a - b == Money(amount=700)
        assert -b == Money(amount=-300)
        assert b < a
        assert a >= b

    def test_scale(self) -> None:
        """Test multiplication by an integer quantity."""
        assert money.scale(Money(amount=2800), 2) == Money(amount=5600)

    def test_scale_rejects_non_int(self) -> None:
        """Test that scaling by a float is refused."""
        with pytest.raises(TypeError):
            Money(amount=100).scale(1.5)  # type: ignore[arg-type]

    def test_currency_mismatch(self) -> None:
        """Test that mixing currencies raises CurrencyMismatch."""
        with pytest.raises(CurrencyMismatch) as exc_info:
            Money(amount=100, currency="BRL").add(Money(amount=100, currency="USD"))

        assert exc_info.value.details() == {"left": "BRL", "right": "USD"}

    def test_compare_mismatch(self) -> None:
        """Test that comparison across currencies raises CurrencyMismatch."""
        with pytest.raises(CurrencyMismatch):
            money.compare(Money(amount=1, currency="BRL"), Money(amount=1, currency="EUR"))

    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [(100, 200, -1), (200, 200, 0), (300, 200, 1)],
    )
    def test_compare(self, a: int, b: int, expected: int) -> None:
        """Test three-way comparison."""
        assert money.compare(Money(amount=a), Money(amount=b)) == expected

    def test_is_zero(self) -> None:
        """Test the zero predicate."""
        assert Money.zero().is_zero
        assert not Money(amount=1).is_zero


@pytest.mark.unit
class TestPercentOf:
    """Tests for percent_of, the single rounding point."""

    def test_exact_percentage(self) -> None:
        """Test a percentage that needs no rounding."""
        assert money.percent_of(Money(amount=10000), 1000) == Money(amount=1000)

    def test_rounds_half_up(self) -> None:
        """Test that a half minor unit rounds up."""
        # 10% of 1005 = 100.5
        assert Money(amount=1005).percent_of(1000) == Money(amount=101)

    def test_rounds_down_below_half(self) -> None:
        """Test that less than half a minor unit rounds down."""
        # 10% of 1004 = 100.4
        assert Money(amount=1004).percent_of(1000) == Money(amount=100)

    def test_negative_half_rounds_away_from_zero(self) -> None:
        """Test rounding of a negative half value."""
        assert Money(amount=-1005).percent_of(1000) == Money(amount=-101)

    def test_rejects_non_int_bps(self) -> None:
        """Test that basis points must be an int."""
        with pytest.raises(TypeError):
            Money(amount=100).percent_of(10.0)  # type: ignore[arg-type]


@pytest.mark.unit
class TestFormat:
    """Tests for human-readable formatting."""

    def test_format_brl(self) -> None:
        """Test pt-BR separators for BRL."""
        assert Money(amount=123450, currency="BRL").format() == "R$ 1.234,50"

    def test_format_usd(self) -> None:
        """Test US separators for USD."""
        assert Money(amount=1299, currency="USD").format() == "$12.99"

    def test_format_negative(self) -> None:
        """Test the sign of negative amounts."""
        assert Money(amount=-2000, currency="BRL").format() == "-R$ 20,00"

    def test_format_unknown_currency_uses_code(self) -> None:
        """Test currencies without a symbol."""
        assert Money(amount=500, currency="CHF").format() == "CHF 5.00"
