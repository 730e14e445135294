"""
Base Market Data Source - Abstract interface for price providers.

A source answers two questions: the market record of one asset,
and the market records of many assets in a single request.

Contract:
- One call is one HTTP request; no retries, no backoff
- A fixed call-level timeout bounds every request
- Failures surface as FetchError subclasses only
- Health is tracked per source and exposed for /health
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence, TypeVar

import aiohttp

from data_sources.exceptions import (
    DecodeError,
    FetchError,
    TransportError,
    UpstreamStatusError,
)
from data_sources.health import HealthTracker, SourceHealth
from data_sources.models import ProviderRecord


logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseMarketDataSource(ABC):
    """
    Abstract base class for all market data sources.

    Subclasses implement ``name``, ``fetch_one()`` and
    ``fetch_many()`` and issue requests through ``_get_json()``,
    which owns the session, the timeout, error mapping and health.
    """

    DEFAULT_TIMEOUT = 30.0
    MAX_ERROR_BODY = 1000
    ENCODING = "utf-8"
    USER_AGENT = "MarketPriceCache/1.0"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self._health = HealthTracker(self.name)

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this data source."""

    @abstractmethod
    async def fetch_one(self, asset_id: str, currency: str) -> ProviderRecord:
        """
        Fetch the market record of a single asset.

        Raises:
            NotFoundError: If the provider has no record for asset_id
            FetchError: On transport, status or decode failures
        """

    @abstractmethod
    async def fetch_many(
        self,
        asset_ids: Sequence[str],
        currency: str,
        include_7d_change: bool = False,
    ) -> list[ProviderRecord]:
        """
        Fetch market records for several assets in one request.

        Identifiers unknown to the provider are simply missing from
        the returned list.

        Raises:
            FetchError: On transport, status or decode failures
        """

    # =========================================================
    # HTTP
    # =========================================================

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Accept": "application/json", "User-Agent": self.USER_AGENT},
            )
            self._owns_session = True
        return self._session

    async def _get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        transform: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """
        GET ``url`` and decode its JSON body, recording the outcome.

        ``transform`` runs on the decoded payload before health is
        recorded, so a payload it rejects counts as a failed call.
        """
        started = time.monotonic()
        try:
            body = await self._read_body(url, params, headers)
            payload = self._decode(url, body)
            if transform is not None:
                payload = transform(payload)
        except FetchError as e:
            self._health.record_failure(e)
            logger.warning(f"[{self.name}] Request failed: {e}")
            raise

        latency_ms = (time.monotonic() - started) * 1000
        self._health.record_success(latency_ms)
        logger.debug(f"[{self.name}] GET {url} in {latency_ms:.1f}ms")
        return payload

    async def _read_body(
        self,
        url: str,
        params: Optional[dict[str, Any]],
        headers: Optional[dict[str, str]],
    ) -> bytes:
        try:
            async with self._client().get(
                url,
                params=params,
                headers=headers,
                timeout=self._timeout,
            ) as response:
                body = await response.read()
                status = response.status
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Request timed out after {self._timeout.total}s",
                source_name=self.name,
                request_url=url,
                timeout=True,
                original_error=e,
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(
                f"Connection error: {e}",
                source_name=self.name,
                request_url=url,
                original_error=e,
            ) from e

        if status < 200 or status >= 300:
            raise UpstreamStatusError(
                f"HTTP {status}",
                status_code=status,
                response_body=self._preview(body),
                source_name=self.name,
                request_url=url,
            )
        return body

    def _decode(self, url: str, body: bytes) -> Any:
        try:
            return json.loads(body.decode(self.ENCODING))
        except UnicodeDecodeError as e:
            raise DecodeError(
                f"Response is not valid {self.ENCODING}: {e}",
                source_name=self.name,
                raw_data=self._preview(body),
                request_url=url,
                original_error=e,
            ) from e
        except ValueError as e:
            raise DecodeError(
                f"Response is not valid JSON: {e}",
                source_name=self.name,
                raw_data=self._preview(body),
                request_url=url,
                original_error=e,
            ) from e

    def _preview(self, body: bytes) -> str:
        return body[:self.MAX_ERROR_BODY].decode(self.ENCODING, errors="replace")

    # =========================================================
    # HEALTH & LIFECYCLE
    # =========================================================

    def get_health(self) -> SourceHealth:
        """Snapshot of the current health."""
        return self._health.snapshot()

    async def close(self) -> None:
        """Close the HTTP session if this source created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseMarketDataSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name={self.name}, status={self._health.status.value})>"
