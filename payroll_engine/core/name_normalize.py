from __future__ import annotations

import unicodedata
from typing import Any


def normalize(name: str) -> str:
    normalized = unicodedata.normalize("NFKC", name).strip().lower()
    return "".join(normalized.split())


def normalize_external_id(value: Any) -> str:
    """Canonical form of a timekeeping employee number ("" when blank)."""

    if value is None:
        return ""
    return normalize(str(value))
