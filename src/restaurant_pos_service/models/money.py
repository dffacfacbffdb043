"""Fixed-precision money.

Amounts are integers in the currency's minor unit (centavos for BRL). Every
operation works on the integer representation, so there is no binary floating
point anywhere in price, total or change computation.

``percent_of`` is the single rounding point in the system (round-half-up on
the minor unit). Converting a major-unit decimal that carries more precision
than the currency allows is rejected instead of truncated.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from restaurant_pos_service.errors import CurrencyMismatch, InvalidAmount

DEFAULT_CURRENCY = "BRL"

# Minor unit exponents; anything not listed uses 2
CURRENCY_EXPONENT = {
    "BRL": 2,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "JPY": 0,
    "CLP": 0,
    "KWD": 3,
}

CURRENCY_SYMBOLS = {
    "BRL": "R$ ",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

BASIS_POINTS = 10_000


def currency_exponent(currency: str) -> int:
    """Number of decimal places of a currency's minor unit."""
    return CURRENCY_EXPONENT.get(currency.upper(), 2)


class Money(BaseModel):
    """An integer minor-unit amount tagged with its currency."""

    model_config = ConfigDict(frozen=True)

    amount: StrictInt = Field(..., description="Amount in minor units (e.g. cents)")
    currency: str = Field(default=DEFAULT_CURRENCY, description="ISO 4217 currency code")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Normalize and validate the currency code."""
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"invalid currency code: {v!r}")
        return code

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(amount=0, currency=currency)

    @classmethod
    def total(cls, values: Iterable["Money"], currency: str = DEFAULT_CURRENCY) -> "Money":
        """Sum an iterable of Money values; an empty iterable sums to zero."""
        result = cls.zero(currency)
        for value in values:
            result = result.add(value)
        return result

    @classmethod
    def from_decimal(
        cls, value: Decimal | str | int | float, currency: str = DEFAULT_CURRENCY
    ) -> "Money":
        """Convert a major-unit amount (e.g. ``"20.50"``) to Money.

        Args:
            value: Amount in major units
            currency: ISO 4217 currency code

        Returns:
            Money in minor units

        Raises:
            InvalidAmount: If the value is not a number or carries more decimal
                places than the currency's minor unit
        """
        if isinstance(value, float):
            value = str(value)

        try:
            decimal_value = Decimal(value)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise InvalidAmount(value, "not a decimal number") from e

        if not decimal_value.is_finite():
            raise InvalidAmount(value, "not a finite number")

        scaled = decimal_value.scaleb(currency_exponent(currency))
        if scaled != scaled.to_integral_value():
            raise InvalidAmount(
                value, f"more precision than {currency.upper()} minor units allow"
            )

        return cls(amount=int(scaled), currency=currency)

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "Money":
        """Parse the ``{"amount", "currency"}`` map stored in DynamoDB."""
        return cls(amount=int(item["amount"]), currency=item["currency"])

    def to_dynamodb(self) -> dict[str, Any]:
        return {"amount": self.amount, "currency": self.currency}

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def add(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def scale(self, factor: int) -> "Money":
        """Multiply by an integer factor (e.g. a line item quantity)."""
        if isinstance(factor, bool) or not isinstance(factor, int):
            raise TypeError(f"Money can only be scaled by an int, got {type(factor).__name__}")
        return Money(amount=self.amount * factor, currency=self.currency)

    def percent_of(self, bps: int) -> "Money":
        """Return ``bps`` basis points of this amount, rounded half-up.

        This is the only place where a fractional minor unit can appear, and
        therefore the only rounding point in the system. Ties round away from
        zero (1.5 -> 2, -1.5 -> -2).

        Args:
            bps: Basis points (1000 = 10%)

        Returns:
            Rounded Money in the same currency
        """
        if isinstance(bps, bool) or not isinstance(bps, int):
            raise TypeError(f"bps must be an int, got {type(bps).__name__}")

        exact = Decimal(self.amount * bps) / Decimal(BASIS_POINTS)
        rounded = exact.quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return Money(amount=int(rounded), currency=self.currency)

    def compare(self, other: "Money") -> int:
        """Three-way comparison: -1, 0 or 1."""
        self._check_currency(other)
        if self.amount < other.amount:
            return -1
        if self.amount > other.amount:
            return 1
        return 0

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def to_decimal(self) -> Decimal:
        return Decimal(self.amount).scaleb(-currency_exponent(self.currency))

    def format(self) -> str:
        """Human-readable amount, e.g. ``R$ 1.234,50`` or ``$12.99``."""
        exponent = currency_exponent(self.currency)
        symbol = CURRENCY_SYMBOLS.get(self.currency, f"{self.currency} ")
        text = f"{abs(self.to_decimal()):,.{exponent}f}"

        # pt-BR uses "." for thousands and "," for decimals
        if self.currency == "BRL":
            text = text.replace(",", "_").replace(".", ",").replace("_", ".")

        sign = "-" if self.amount < 0 else ""
        return f"{sign}{symbol}{text}"

    def __add__(self, other: "Money") -> "Money":
        return self.add(other)

    def __sub__(self, other: "Money") -> "Money":
        return self.subtract(other)

    def __neg__(self) -> "Money":
        return Money(amount=-self.amount, currency=self.currency)

    def __lt__(self, other: "Money") -> bool:
        return self.compare(other) < 0

    def __le__(self, other: "Money") -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: "Money") -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: "Money") -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        return self.format()


def add(a: Money, b: Money) -> Money:
    return a.add(b)


def scale(a: Money, factor: int) -> Money:
    return a.scale(factor)


def percent_of(a: Money, bps: int) -> Money:
    return a.percent_of(bps)


def compare(a: Money, b: Money) -> int:
    return a.compare(b)
