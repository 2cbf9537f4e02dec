"""Yen and hour rounding rules shared by the calculators."""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

YEN = Decimal("1")
TENTH = Decimal("0.1")


def floor_yen(value: Decimal) -> Decimal:
    return value.quantize(YEN, rounding=ROUND_FLOOR)


def ceil_yen(value: Decimal) -> Decimal:
    return value.quantize(YEN, rounding=ROUND_CEILING)


def round_tens(value: Decimal) -> Decimal:
    return (value / 10).quantize(YEN, rounding=ROUND_HALF_UP) * 10


def minutes_to_hours(minutes: Decimal) -> Decimal:
    return (minutes / Decimal("60")).quantize(TENTH, rounding=ROUND_HALF_UP)


def round_rate(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
