"""Mini README: Tests for the Money value type.

Structure:
    * Construction - floats go through ``str``, garbage is rejected.
    * Arithmetic - exact, float factors refused, comparisons only with Money.
    * Rounding - half-up to cents, only when asked.
    * Properties (Hypothesis) - addition and subtraction stay exact.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ttoledger.finance import CENT, Money

amounts = st.decimals(
    min_value=Decimal("-1000000000"),
    max_value=Decimal("1000000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


def test_float_input_is_read_through_its_string_form() -> None:
    """0.1 + 0.2 should be exactly 0.3 once both pass through Money."""

    assert Money.of(0.1) + Money.of(0.2) == Money.of("0.3")
    assert Money.of(0.1).amount == Decimal("0.1")


@pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", ""])
def test_non_numeric_strings_are_rejected(value: str) -> None:
    """Only finite decimal strings are monetary amounts."""

    with pytest.raises(ValueError):
        Money.of(value)


def test_booleans_and_unknown_types_are_rejected() -> None:
    with pytest.raises(TypeError):
        Money.of(True)
    with pytest.raises(TypeError):
        Money.of([1, 2])


def test_scaling_refuses_float_factors() -> None:
    """Multiplying by a float would reintroduce binary rounding."""

    with pytest.raises(TypeError):
        Money.of(10) * 1.5
    assert Money.of(10) * Decimal("1.5") == Money.of(15)
    assert 3 * Money.of("0.10") == Money.of("0.30")


def test_money_does_not_mix_with_plain_numbers() -> None:
    with pytest.raises(TypeError):
        Money.of(1) + 1
    with pytest.raises(TypeError):
        Money.of(1) < 2
    assert Money.of(1) != 1


def test_division_by_zero_is_an_error() -> None:
    with pytest.raises(ZeroDivisionError):
        Money.of(10) / 0


def test_quantize_rounds_half_up_to_cents() -> None:
    """Half-cent values round away from zero and nothing else is rounded early."""

    assert Money.of("2.345").quantize() == Money.of("2.35")
    assert Money.of("-2.345").quantize() == Money.of("-2.35")
    assert Money.of("2.344").quantize() == Money.of("2.34")
    assert Money.of("2.345").amount == Decimal("2.345")
    assert str(Money.of("2.345")) == "2.35"
    assert str(Money.of(5)) == "5.00"


def test_percent_and_ratio_helpers() -> None:
    assert Money.of(1000).percent(15) == Money.of(150)
    assert Money.of(500).ratio_of(Money.of(1000)) == Decimal("0.5")
    assert Money.of(500).ratio_of(Money.zero()) == Decimal("0")


def test_clamp_and_tolerance_helpers() -> None:
    assert Money.of(-100).clamp_non_negative() == Money.zero()
    assert Money.of(100).clamp_non_negative() == Money.of(100)
    assert Money.of("999.99").within(Money.of(1000), CENT)
    assert not Money.of("999.98").within(Money.of(1000), CENT)


@given(first=amounts, second=amounts)
def test_addition_then_subtraction_is_exact(first: Decimal, second: Decimal) -> None:
    """(a + b) - b == a for any two cent amounts."""

    a, b = Money.of(first), Money.of(second)
    assert (a + b) - b == a


@given(values=st.lists(amounts, max_size=50))
def test_sum_matches_decimal_sum(values) -> None:
    """Money.sum is the exact decimal sum; no drift over many terms."""

    assert Money.sum(Money.of(value) for value in values).amount == sum(values, Decimal("0"))
