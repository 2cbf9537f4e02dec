from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pandas as pd

from payroll_engine.core.schema import PayrollResult

LEDGER_COLUMNS = [
    "employee_id",
    "employee_name",
    "period_month",
    "gross_pay",
    "commute_allowance",
    "social_insurance_total",
    "taxable_amount",
    "income_tax",
    "resident_tax",
    "net_pay",
    "rate_version",
]


def export_withholding_ledger(path: Path, rows: Iterable[PayrollResult]) -> Path:
    df = pd.DataFrame([row.model_dump() for row in rows], columns=LEDGER_COLUMNS)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8-sig")
    return path


def export_payroll_register(path: Path, rows: Iterable[PayrollResult]) -> Path:
    """Every computed column, one line per employee."""

    df = pd.DataFrame([row.model_dump() for row in rows])
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8-sig")
    return path
