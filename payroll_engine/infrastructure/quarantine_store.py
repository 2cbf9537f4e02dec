"""Persistence for the quarantine queue, kept apart from the roster."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from payroll_engine.core.logging import get_logger
from payroll_engine.core.quarantine import QuarantineQueue

logger = get_logger(__name__)


class QuarantineStore(Protocol):
    """Persistence contract for quarantine bookkeeping."""

    def load(self) -> QuarantineQueue: ...

    def save(self, queue: QuarantineQueue) -> None: ...

    def reset(self) -> None: ...


class InMemoryQuarantineStore:
    def __init__(self) -> None:
        self._payload: dict = {}

    def load(self) -> QuarantineQueue:
        return QuarantineQueue.from_dict(self._payload)

    def save(self, queue: QuarantineQueue) -> None:
        self._payload = queue.to_dict()

    def reset(self) -> None:
        self._payload = {}


class JsonQuarantineStore:
    """Stores the queue as a single JSON document on disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> QuarantineQueue:
        if not self._path.exists():
            return QuarantineQueue()
        with self._path.open("r", encoding="utf-8") as fp:
            payload = json.load(fp)
        return QuarantineQueue.from_dict(payload)

    def save(self, queue: QuarantineQueue) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fp:
            json.dump(queue.to_dict(), fp, ensure_ascii=False, indent=2)
        tmp_path.replace(self._path)
        logger.debug("quarantine.saved", path=str(self._path), entries=len(queue))

    def reset(self) -> None:
        if self._path.exists():
            self._path.unlink()
