from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from payroll_engine.core.rounding import floor_yen
from payroll_engine.core.schema import ZERO, YearEndDeductions, YearEndResult

THOUSAND = Decimal("1000")
DEPENDENT_DEDUCTION = Decimal("380000")
LIFE_INSURANCE_CAP = Decimal("120000")
EARTHQUAKE_INSURANCE_CAP = Decimal("50000")
RECONSTRUCTION_RATE = Decimal("0.021")

# (upper bound of taxable base, rate, amount subtracted)
ANNUAL_TAX_TABLE = (
    (Decimal("1950000"), Decimal("0.05"), ZERO),
    (Decimal("3300000"), Decimal("0.10"), Decimal("97500")),
    (Decimal("6950000"), Decimal("0.20"), Decimal("427500")),
    (Decimal("9000000"), Decimal("0.23"), Decimal("636000")),
    (Decimal("18000000"), Decimal("0.33"), Decimal("1536000")),
    (Decimal("40000000"), Decimal("0.40"), Decimal("2796000")),
    (None, Decimal("0.45"), Decimal("4796000")),
)


def employment_income_deduction(income: Decimal) -> Decimal:
    if income <= Decimal("1625000"):
        deduction = Decimal("550000")
    elif income <= Decimal("1800000"):
        deduction = income * Decimal("0.40") - Decimal("100000")
    elif income <= Decimal("3600000"):
        deduction = income * Decimal("0.30") + Decimal("80000")
    elif income <= Decimal("6600000"):
        deduction = income * Decimal("0.20") + Decimal("440000")
    elif income <= Decimal("8500000"):
        deduction = income * Decimal("0.10") + Decimal("1100000")
    else:
        deduction = Decimal("1950000")
    return floor_yen(deduction)


def basic_deduction(income_amount: Decimal) -> Decimal:
    if income_amount <= Decimal("24000000"):
        return Decimal("480000")
    if income_amount <= Decimal("24500000"):
        return Decimal("320000")
    if income_amount <= Decimal("25000000"):
        return Decimal("160000")
    return ZERO


def annual_income_tax(taxable_base: Decimal) -> Decimal:
    for upper, rate, subtract in ANNUAL_TAX_TABLE:
        if upper is None or taxable_base <= upper:
            return floor_yen(taxable_base * rate - subtract)
    return ZERO


def calculate_year_end_adjustment(
    annual_gross: Decimal,
    annual_social: Decimal,
    annual_commute: Decimal,
    annual_withheld: Decimal,
    dependents: int = 0,
    deductions: YearEndDeductions | None = None,
) -> YearEndResult:
    """Simplified year-end adjustment.

    Recomputes the annual income tax (with the 2.1% reconstruction surtax)
    and compares it with what was withheld month by month. A positive
    ``adjustment`` is refunded, a negative one collected.
    """

    deductions = deductions or YearEndDeductions()
    taxable_income = Decimal(annual_gross) - Decimal(annual_commute)
    income_deduction = employment_income_deduction(taxable_income)
    income_amount = max(taxable_income - income_deduction, ZERO)

    basic = basic_deduction(income_amount)
    dependent = DEPENDENT_DEDUCTION * dependents
    life = min(deductions.life_insurance, LIFE_INSURANCE_CAP)
    earthquake = min(deductions.earthquake_insurance, EARTHQUAKE_INSURANCE_CAP)
    total_deductions = (
        basic + dependent + Decimal(annual_social) + life + earthquake + deductions.spouse + deductions.other
    )

    taxable_base = max(
        ((income_amount - total_deductions) / THOUSAND).to_integral_value(rounding=ROUND_FLOOR) * THOUSAND,
        ZERO,
    )
    annual_tax = annual_income_tax(taxable_base)
    reconstruction = floor_yen(annual_tax * RECONSTRUCTION_RATE)
    tax_due = annual_tax + reconstruction

    return YearEndResult(
        annual_gross=annual_gross,
        commute_allowance=annual_commute,
        taxable_income=taxable_income,
        income_deduction=income_deduction,
        income_amount=income_amount,
        basic_deduction=basic,
        dependent_deduction=dependent,
        social_insurance_deduction=annual_social,
        life_insurance_deduction=life,
        earthquake_insurance_deduction=earthquake,
        spouse_deduction=deductions.spouse,
        other_deductions=deductions.other,
        total_deductions=total_deductions,
        taxable_base=taxable_base,
        annual_tax=annual_tax,
        reconstruction_tax=reconstruction,
        annual_tax_due=tax_due,
        annual_withheld=annual_withheld,
        adjustment=Decimal(annual_withheld) - tax_due,
    )
