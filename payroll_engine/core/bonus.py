from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal
from typing import Sequence

from payroll_engine.core.rates import RateConfig
from payroll_engine.core.rounding import floor_yen, round_tens
from payroll_engine.core.schema import ZERO, BonusRateBand, BonusResult, Employee

THOUSAND = Decimal("1000")


def standard_bonus(amount: Decimal) -> Decimal:
    return (amount / THOUSAND).to_integral_value(rounding=ROUND_FLOOR) * THOUSAND


def bonus_tax_rate(previous_taxable: Decimal, bands: Sequence[BonusRateBand]) -> Decimal:
    for band in bands:
        if band.upper is None or previous_taxable < band.upper:
            return band.rate
    return ZERO


def _insurance(employee: Employee, base: Decimal, employment_base: Decimal, config: RateConfig) -> tuple[Decimal, ...]:
    rates = config.employee
    insured = employee.standard_monthly > 0
    health = floor_yen(base * rates.health) if insured else ZERO
    nursing = floor_yen(base * rates.nursing_care) if insured and employee.has_nursing_care else ZERO
    pension = floor_yen(base * rates.pension) if insured and employee.has_pension else ZERO
    employment = (
        floor_yen(employment_base * rates.employment)
        if employee.has_employment_insurance and not employee.officer
        else ZERO
    )
    return health, nursing, pension, employment


def calculate_bonus(
    employee: Employee,
    bonus_amount: Decimal,
    previous_gross: Decimal,
    config: RateConfig,
) -> BonusResult:
    """Insurance and withholding on a bonus payment.

    The withholding rate is looked up with the previous month's gross less
    that month's social insurance.
    """

    bonus_amount = Decimal(bonus_amount)
    previous_gross = Decimal(previous_gross)
    previous_social = sum(
        _insurance(employee, employee.standard_monthly, previous_gross, config), ZERO
    )
    previous_taxable = previous_gross - previous_social

    if bonus_amount <= 0:
        return BonusResult(
            employee_id=employee.id,
            bonus_amount=bonus_amount,
            standard_bonus=ZERO,
            previous_month_taxable=previous_taxable,
            net_bonus=bonus_amount,
        )

    std_bonus = standard_bonus(bonus_amount)
    health, nursing, pension, employment = _insurance(employee, std_bonus, bonus_amount, config)
    social = health + nursing + pension + employment

    taxable = max(bonus_amount - social, ZERO)
    rate = bonus_tax_rate(previous_taxable, config.bonus_withholding) if taxable > 0 else ZERO
    income_tax = round_tens(taxable * rate)
    total = social + income_tax

    return BonusResult(
        employee_id=employee.id,
        bonus_amount=bonus_amount,
        standard_bonus=std_bonus,
        health_insurance=health,
        nursing_care_insurance=nursing,
        pension=pension,
        employment_insurance=employment,
        social_insurance_total=social,
        previous_month_taxable=previous_taxable,
        tax_rate=rate,
        taxable_amount=taxable,
        income_tax=income_tax,
        total_deduction=total,
        net_bonus=bonus_amount - total,
    )
