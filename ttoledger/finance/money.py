"""Mini README: Fixed-precision money value used for every ledger amount.

Structure:
    * Money - immutable wrapper around ``decimal.Decimal``.
    * CENT - the quantum amounts are reported in.

Money never holds a binary float. Floats handed to ``Money.of`` are routed
through ``str`` first, so ``Money.of(0.1)`` is exactly ``0.1``. Arithmetic
keeps full decimal precision; rounding happens only when ``quantize`` is
called, which the summary calculator does once per reported field. The
system is single-currency, so no currency code is carried.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union

CENT = Decimal("0.01")

Scalar = Union[int, Decimal]
MoneyLike = Union["Money", int, str, Decimal, float]


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, bool):
        raise TypeError("Booleans are not monetary amounts")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as error:
            raise ValueError(f"Not a monetary amount: {value!r}") from error
    else:
        raise TypeError(f"Cannot build Money from {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"Monetary amounts must be finite, got {value!r}")
    return result


def _scalar(value: object) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        raise TypeError("Money can only be scaled by int or Decimal factors")
    return Decimal(value)


@dataclass(frozen=True, slots=True)
class Money:
    """Exact decimal amount in the ledger's single currency."""

    amount: Decimal

    def __post_init__(self) -> None:
        """Accept non-Decimal amounts passed straight to the constructor."""

        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", _to_decimal(self.amount))

    @classmethod
    def of(cls, value: MoneyLike) -> "Money":
        """Coerce ``value`` into Money without losing precision."""

        if isinstance(value, Money):
            return value
        return cls(_to_decimal(value))

    @classmethod
    def zero(cls) -> "Money":
        """Return a zero amount."""

        return cls(Decimal("0"))

    @classmethod
    def sum(cls, values: Iterable["Money"]) -> "Money":
        """Add up ``values``; an empty iterable sums to zero."""

        total = Decimal("0")
        for value in values:
            total += value.amount
        return cls(total)

    def __add__(self, other: "Money") -> "Money":
        """Exact sum of two amounts."""

        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount + other.amount)

    def __sub__(self, other: "Money") -> "Money":
        """Exact difference of two amounts."""

        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount - other.amount)

    def __mul__(self, factor: Scalar) -> "Money":
        """Scale by an int or Decimal factor."""

        return Money(self.amount * _scalar(factor))

    __rmul__ = __mul__

    def __truediv__(self, divisor: Scalar) -> "Money":
        """Divide by an int or Decimal, keeping full precision."""

        divisor_value = _scalar(divisor)
        if divisor_value == 0:
            raise ZeroDivisionError("Money cannot be divided by zero")
        return Money(self.amount / divisor_value)

    def __neg__(self) -> "Money":
        """Flip the sign."""

        return Money(-self.amount)

    def __abs__(self) -> "Money":
        """Drop the sign."""

        return Money(abs(self.amount))

    def __eq__(self, other: object) -> bool:
        """Equal when the exact amounts are equal."""

        if not isinstance(other, Money):
            return NotImplemented
        return self.amount == other.amount

    def __hash__(self) -> int:
        return hash(self.amount)

    def __lt__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount >= other.amount

    def percent(self, rate: Scalar) -> "Money":
        """Return ``rate`` percent of this amount."""

        return Money(self.amount * _scalar(rate) / Decimal(100))

    def ratio_of(self, other: "Money") -> Decimal:
        """Return ``self / other``, or zero when ``other`` is zero."""

        if other.is_zero:
            return Decimal("0")
        return self.amount / other.amount

    def quantize(self) -> "Money":
        """Round half-up to whole cents."""

        return Money(self.amount.quantize(CENT, rounding=ROUND_HALF_UP))

    def clamp_non_negative(self) -> "Money":
        """Return zero for negative amounts, the amount itself otherwise."""

        return self if self.amount >= 0 else Money.zero()

    def within(self, other: "Money", tolerance: Decimal = CENT) -> bool:
        """True when both amounts differ by at most ``tolerance``."""

        return abs(self.amount - other.amount) <= tolerance

    @property
    def is_zero(self) -> bool:
        """True for exactly zero."""

        return self.amount == 0

    @property
    def is_negative(self) -> bool:
        """True below zero."""

        return self.amount < 0

    @property
    def is_positive(self) -> bool:
        """True above zero."""

        return self.amount > 0

    def __str__(self) -> str:
        """Render rounded to cents, e.g. ``1234.50``."""

        return f"{self.quantize().amount:.2f}"

    def __repr__(self) -> str:
        """Show the exact, unrounded amount."""

        return f"Money('{self.amount}')"
