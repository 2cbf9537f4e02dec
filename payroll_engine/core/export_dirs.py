from __future__ import annotations

import os
from pathlib import Path


def _base_root() -> Path:
    env_root = os.getenv("PAYROLL_EXPORT_ROOT")
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path(__file__).resolve().parents[2] / "exports"


def ensure_month_root(month: str) -> Path:
    """Ensure the export folder of ``month`` exists and return it."""

    root = _base_root() / month
    root.mkdir(parents=True, exist_ok=True)
    return root
