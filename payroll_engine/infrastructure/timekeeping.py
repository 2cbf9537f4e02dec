"""Integration with the external timekeeping (attendance) HTTP API."""
from __future__ import annotations

from typing import Any, Iterator
from urllib.parse import urlparse

import httpx

from payroll_engine.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://ieyasu.co"


class TimekeepingError(RuntimeError):
    """Raised when the timekeeping service cannot deliver a month."""

    def __init__(self, message: str, *, page: int | None = None, records_retrieved: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.page = page
        self.records_retrieved = records_retrieved

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "page": self.page, "records_retrieved": self.records_retrieved}


class TimekeepingAuthError(TimekeepingError):
    """Raised when the token exchange is refused."""


class TimekeepingFetchError(TimekeepingError):
    """Raised when a monthly attendance page cannot be read."""


class TimekeepingClient:
    """Client for the paginated monthly work-output API."""

    def __init__(
        self,
        base_url: str,
        company: str,
        api_key: str,
        *,
        page_size: int = 100,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("base_url must include scheme and host")
        if not company:
            raise ValueError("company must be provided")

        self._base_url = base_url.rstrip("/")
        self._company = company
        self._api_key = api_key
        self._page_size = page_size
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self._base_url}/api/{self._company}/v1/{path.lstrip('/')}"

    @staticmethod
    def _describe(response: httpx.Response) -> str:
        body = response.text.strip()
        reason = response.reason_phrase or ""
        detail = f"{response.status_code} {reason}".strip()
        return f"{detail} - {body}" if body else detail

    @staticmethod
    def _total_pages(response: httpx.Response) -> int:
        raw = response.headers.get("X-Total-Page") or "1"
        try:
            return int(raw)
        except ValueError:
            return 1

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def authenticate(self) -> str:
        try:
            response = self._client.get(
                self._url("authentication/token"),
                headers={"Authorization": f"Basic {self._api_key}", "Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TimekeepingAuthError(f"authentication request failed: {exc}") from exc

        if response.is_error:
            raise TimekeepingAuthError(f"authentication failed: {self._describe(response)}")

        token = (response.json() or {}).get("token")
        if not token:
            raise TimekeepingAuthError("authentication response did not include a token")
        return str(token)

    def iter_pages(self, token: str, month: str) -> Iterator[list[dict[str, Any]]]:
        """Yield each page of daily records for ``month`` in order."""

        url = self._url(f"work_outputs/monthly/{month}")
        headers = {"Authorization": f"Token {token}", "Content-Type": "application/json"}
        page = 1
        retrieved = 0
        while True:
            try:
                response = self._client.get(url, params={"limit": self._page_size, "page": page}, headers=headers)
            except httpx.HTTPError as exc:
                raise TimekeepingFetchError(
                    f"attendance request failed: {exc}", page=page, records_retrieved=retrieved
                ) from exc

            if response.is_error:
                raise TimekeepingFetchError(
                    f"attendance fetch failed: {self._describe(response)}",
                    page=page,
                    records_retrieved=retrieved,
                )

            try:
                data = response.json()
            except ValueError as exc:
                raise TimekeepingFetchError(
                    "attendance page was not valid JSON", page=page, records_retrieved=retrieved
                ) from exc

            if not isinstance(data, list) or not data:
                break

            retrieved += len(data)
            total_pages = self._total_pages(response)
            logger.info(
                "timekeeping.page_fetched",
                month=month,
                page=page,
                total_pages=total_pages,
                records=len(data),
                total_count=response.headers.get("X-Total-Count"),
            )
            yield data

            if page >= total_pages:
                break
            page += 1

    def fetch_month(self, month: str) -> list[dict[str, Any]]:
        token = self.authenticate()
        records: list[dict[str, Any]] = []
        for page in self.iter_pages(token, month):
            records.extend(page)
        logger.info("timekeeping.month_fetched", month=month, records=len(records))
        return records

    def close(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            self._client.close()


__all__ = [
    "DEFAULT_BASE_URL",
    "TimekeepingAuthError",
    "TimekeepingClient",
    "TimekeepingError",
    "TimekeepingFetchError",
]
