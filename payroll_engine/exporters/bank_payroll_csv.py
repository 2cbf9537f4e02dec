from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pandas as pd

from payroll_engine.core.schema import Employee, PayrollResult


def export_bank_payroll(path: Path, rows: Iterable[PayrollResult], employees: Iterable[Employee] = ()) -> Path:
    departments = {employee.id: employee.department or "" for employee in employees}
    records = []
    for row in rows:
        records.append({
            "employee_id": row.employee_id,
            "employee": row.employee_name,
            "department": departments.get(row.employee_id, ""),
            "amount": row.net_pay,
            "period": row.period_month,
        })
    df = pd.DataFrame(records, columns=["employee_id", "employee", "department", "amount", "period"])
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8-sig")
    return path
