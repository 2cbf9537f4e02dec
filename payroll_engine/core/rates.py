"""Versioned rate and bracket tables.

Each file under ``config/rates`` is one immutable snapshot of the insurance
rates, overtime multipliers and withholding tables in effect from its
``effective_from`` month. Grade tables live under ``config/grades`` and are
referenced by name so several rate versions can share one table.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, constr

from payroll_engine.core.periods import MONTH_PATTERN
from payroll_engine.core.schema import BonusRateBand, InsuranceGrade, TaxBracket

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
RATES_DIR = CONFIG_DIR / "rates"
GRADES_DIR = CONFIG_DIR / "grades"


class InsuranceRates(BaseModel):
    model_config = ConfigDict(frozen=True)

    health: Decimal
    nursing_care: Decimal
    pension: Decimal
    employment: Decimal


class EmployerRates(InsuranceRates):
    child_support: Decimal


class OvertimeMultipliers(BaseModel):
    model_config = ConfigDict(frozen=True)

    statutory: Decimal = Decimal("1.25")
    non_statutory: Decimal = Decimal("1.00")
    late_night: Decimal = Decimal("1.25")
    holiday: Decimal = Decimal("1.35")


class RateConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str
    effective_from: constr(pattern=MONTH_PATTERN)
    employee: InsuranceRates
    employer: EmployerRates
    overtime: OvertimeMultipliers = OvertimeMultipliers()
    overtime_warning_hours: Decimal = Decimal("45")
    overtime_limit_hours: Decimal = Decimal("80")
    withholding: tuple[TaxBracket, ...]
    bonus_withholding: tuple[BonusRateBand, ...] = ()
    grade_table: str
    grades: tuple[InsuranceGrade, ...]


def _read_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as fp:
        return yaml.safe_load(fp) or {}


def available_versions() -> list[str]:
    return sorted(path.stem for path in RATES_DIR.glob("*.yaml"))


@lru_cache(maxsize=None)
def load_grade_table(name: str) -> tuple[InsuranceGrade, ...]:
    path = GRADES_DIR / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"grade table {name} not found at {path}")
    rows = _read_yaml(path).get("grades", [])
    grades = sorted((InsuranceGrade(**row) for row in rows), key=lambda item: item.lower_bound)
    return tuple(grades)


@lru_cache(maxsize=None)
def load_rate_config(version: str) -> RateConfig:
    path = RATES_DIR / f"{version}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"rate version {version} not found at {path}")
    data = _read_yaml(path)
    data.setdefault("version", version)
    data["grades"] = load_grade_table(data["grade_table"])
    data["withholding"] = sorted(data.get("withholding", []), key=lambda row: Decimal(str(row["threshold"])))
    return RateConfig(**data)


def rate_config_for_month(month: str) -> RateConfig:
    """Return the newest rate version whose ``effective_from`` is not after ``month``."""

    selected: RateConfig | None = None
    for version in available_versions():
        config = load_rate_config(version)
        if config.effective_from > month:
            continue
        if selected is None or config.effective_from > selected.effective_from:
            selected = config
    if selected is None:
        raise LookupError(f"no rate version in effect for {month}")
    return selected
