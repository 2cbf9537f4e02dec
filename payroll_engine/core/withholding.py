"""Monthly withholding tax estimate (single dependents column)."""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from payroll_engine.core.rounding import floor_yen
from payroll_engine.core.schema import ZERO, TaxBracket


def select_bracket(amount: Decimal, brackets: Sequence[TaxBracket]) -> TaxBracket | None:
    selected: TaxBracket | None = None
    for bracket in brackets:
        if bracket.threshold <= amount and (selected is None or bracket.threshold > selected.threshold):
            selected = bracket
    return selected


def estimate_withholding(
    taxable: Decimal,
    brackets: Sequence[TaxBracket],
    override: Decimal | None = None,
) -> Decimal:
    """Return the income tax to withhold for ``taxable``.

    A non-null ``override`` is returned verbatim. Otherwise the highest
    bracket whose threshold does not exceed the amount applies.
    """

    if override is not None:
        return Decimal(override)
    if taxable <= 0:
        return ZERO

    bracket = select_bracket(taxable, brackets)
    if bracket is None:
        return ZERO
    tax = floor_yen((taxable - bracket.base) * bracket.rate + bracket.intercept)
    return max(tax, ZERO)
