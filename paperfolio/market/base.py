"""
Paperfolio Market Data HTTP Base
Shared aiohttp session handling and upstream status policy for REST clients.

Status policy:
- 2xx: JSON body returned
- 429: retried after a fixed delay a bounded number of times, then ApiRateLimitError
- 401/403: credentials rejected, MarketDataUnavailableError
- 5xx and any other non-2xx: MarketDataUnavailableError
- Transport failures and timeouts: MarketDataUnavailableError
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from paperfolio.exceptions import ApiRateLimitError, MarketDataUnavailableError

logger = logging.getLogger(__name__)


class MarketDataHttpClient:
    """Base class for upstream REST clients."""

    provider: str = "market-data"

    def __init__(
        self,
        base_url: str,
        request_timeout: float = 30.0,
        rate_limit_retries: int = 2,
        rate_limit_delay_seconds: float = 1.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.rate_limit_retries = max(0, rate_limit_retries)
        self.rate_limit_delay_seconds = rate_limit_delay_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _headers(self) -> Dict[str, str]:
        return {}

    async def _fetch(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Any]:
        """
        Perform one GET request.

        Returns:
            Tuple of HTTP status and decoded JSON body (None for error statuses).
        """
        session = await self._get_session()

        async with session.get(url, params=params, headers=self._headers()) as response:
            if response.status >= 400:
                body = await response.text()
                logger.debug(f"{self.provider} {url} -> {response.status}: {body[:200]}")
                return response.status, None

            return response.status, await response.json(content_type=None)

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a JSON resource, applying the upstream status policy.

        Raises:
            ApiRateLimitError: When 429 persists past the retry budget.
            MarketDataUnavailableError: On server, auth or transport failures.
        """
        url = f"{self.base_url}{path}"

        for attempt in range(self.rate_limit_retries + 1):
            try:
                status, payload = await self._fetch(url, params)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"{self.provider} request to {path} failed: {e}")
                raise MarketDataUnavailableError(self.provider, f"request failed: {e}") from e

            if status == 429:
                if attempt < self.rate_limit_retries:
                    logger.warning(
                        f"{self.provider} rate limit hit on {path}, "
                        f"retrying in {self.rate_limit_delay_seconds}s "
                        f"({attempt + 1}/{self.rate_limit_retries})"
                    )
                    await asyncio.sleep(self.rate_limit_delay_seconds)
                    continue
                raise ApiRateLimitError(self.provider, retry_after=self.rate_limit_delay_seconds)

            if status in (401, 403):
                raise MarketDataUnavailableError(
                    self.provider, f"authentication failed ({status}), check credentials"
                )

            if status >= 500:
                raise MarketDataUnavailableError(self.provider, f"server error: {status}")

            if status >= 400:
                raise MarketDataUnavailableError(self.provider, f"request failed: {status}")

            return payload

        # Unreachable: the loop either returns or raises
        raise ApiRateLimitError(self.provider, retry_after=self.rate_limit_delay_seconds)

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
