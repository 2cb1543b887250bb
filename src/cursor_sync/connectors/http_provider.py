"""
HTTP Record Provider.

Fetches the records of a sync window from a JSON endpoint:
- Window passed as ISO-8601 query parameters
- Retry with backoff on transport errors, 429 and 5xx
- 4xx mapped to PermanentFetchError, exhausted retries to TransientFetchError
- Response items mapped to UpstreamRecord via configurable field names
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from cursor_sync.config import ProviderConfig
from cursor_sync.core.errors import PermanentFetchError, TransientFetchError
from cursor_sync.core.models import SyncWindow, UpstreamRecord
from cursor_sync.utils.logger import get_logger

logger = get_logger(__name__)


class HttpRecordProvider:
    """
    Provider client for a JSON-over-HTTP upstream.

    Example:
        config = ProviderConfig(base_url="https://api.example.com/trips")
        async with HttpRecordProvider(config) as provider:
            records = await provider.fetch(window)
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize HTTP provider.

        Args:
            config: Provider settings
            transport: Optional transport (tests pass httpx.MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self.config.api_token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._get_headers(),
                timeout=httpx.Timeout(self.config.timeout_seconds, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpRecordProvider":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def fetch(self, window: SyncWindow) -> list[UpstreamRecord]:
        """Fetch every record overlapping ``window``."""
        params = {
            self.config.start_param: window.start.isoformat(),
            self.config.end_param: window.end.isoformat(),
        }
        data = await self._request(params)
        items = self._extract_items(data)

        records: list[UpstreamRecord] = []
        for item in items:
            if not isinstance(item, dict):
                raise PermanentFetchError(f"Expected an object per record, got {type(item).__name__}")
            try:
                records.append(
                    UpstreamRecord.from_mapping(
                        item,
                        id_field=self.config.id_field,
                        start_field=self.config.start_field,
                        end_field=self.config.end_field,
                    )
                )
            except ValueError as e:
                raise PermanentFetchError(f"Unparseable record: {e}") from e

        logger.debug(
            "Fetched %d records for %s..%s",
            len(records),
            params[self.config.start_param],
            params[self.config.end_param],
        )
        return records

    async def _request(self, params: dict[str, str]) -> Any:
        """
        GET the endpoint with retries.

        Handles:
        - Rate limiting (honoring Retry-After)
        - Server errors and transport errors with linear backoff
        """
        client = await self._get_client()
        max_retries = self.config.max_retries
        retry_delay = self.config.retry_delay_seconds
        last_error = "no attempt made"

        for attempt in range(max_retries):
            is_last = attempt == max_retries - 1
            try:
                response = await client.get(self.config.base_url, params=params)
            except httpx.TransportError as e:
                last_error = f"Connection error: {e}"
                if not is_last:
                    await asyncio.sleep(retry_delay * (attempt + 1))
                    continue
                break

            if response.status_code == 429:
                last_error = "Rate limit exceeded"
                if not is_last:
                    retry_after = _retry_after(response, retry_delay * (attempt + 1))
                    await asyncio.sleep(retry_after)
                    continue
                break

            if response.status_code >= 500:
                last_error = f"Server error {response.status_code}"
                if not is_last:
                    await asyncio.sleep(retry_delay * (attempt + 1))
                    continue
                break

            if response.status_code >= 400:
                raise PermanentFetchError(
                    f"Provider rejected request: {response.status_code} {response.text[:200]}",
                    status=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                raise PermanentFetchError(f"Provider returned invalid JSON: {e}") from e

        raise TransientFetchError(
            f"{last_error} after {max_retries} attempts",
            attempts=max_retries,
        )

    def _extract_items(self, data: Any) -> list[Any]:
        """Follow ``records_path`` down to the record list."""
        node = data
        if self.config.records_path:
            for part in self.config.records_path.split("."):
                if not isinstance(node, dict) or part not in node:
                    raise PermanentFetchError(
                        f"Response has no '{self.config.records_path}' list"
                    )
                node = node[part]
        if not isinstance(node, list):
            raise PermanentFetchError("Provider response is not a list of records")
        return node


def _retry_after(response: httpx.Response, default: float) -> float:
    value = response.headers.get("Retry-After")
    if value is None:
        return default
    try:
        return max(float(value), 0.0)
    except ValueError:
        return default
