"""
Paperfolio Finnhub Client
REST client for the Finnhub endpoints used by the symbol import and quotes.

Endpoints:
- /stock/symbol: symbol metadata by exchange
- /index/constituents: tickers of an index
- /quote: last quote for one ticker
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from paperfolio.config.settings import settings
from paperfolio.market.base import MarketDataHttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FinnhubSymbol:
    """One item of /stock/symbol."""
    symbol: Optional[str]
    description: Optional[str] = None
    currency: Optional[str] = None
    mic: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinnhubSymbol":
        return cls(
            symbol=data.get("symbol"),
            description=data.get("description"),
            currency=data.get("currency"),
            mic=data.get("mic"),
            type=data.get("type"),
        )


@dataclass
class FinnhubQuote:
    """Last quote as returned by /quote."""
    current: float
    change: Optional[float]
    percent_change: Optional[float]
    high: Optional[float]
    low: Optional[float]
    open: Optional[float]
    previous_close: Optional[float]
    timestamp: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinnhubQuote":
        return cls(
            current=float(data.get("c") or 0.0),
            change=data.get("d"),
            percent_change=data.get("dp"),
            high=data.get("h"),
            low=data.get("l"),
            open=data.get("o"),
            previous_close=data.get("pc"),
            timestamp=int(data.get("t") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current,
            "change": self.change,
            "percentChange": self.percent_change,
            "high": self.high,
            "low": self.low,
            "open": self.open,
            "previousClose": self.previous_close,
            "timestamp": self.timestamp,
        }


class FinnhubClient(MarketDataHttpClient):
    """
    Finnhub REST client.

    The API token travels as the `token` query parameter. Callers that issue
    many requests in a row can pace them with `throttled`.
    """

    provider = "Finnhub"

    def __init__(
        self,
        api_base: Optional[str] = None,
        token: Optional[str] = None,
        throttle_seconds: Optional[float] = None,
        request_timeout: Optional[float] = None,
        rate_limit_retries: Optional[int] = None,
        rate_limit_delay_seconds: Optional[float] = None,
    ):
        cfg = settings.finnhub
        super().__init__(
            base_url=api_base or cfg.api_base,
            request_timeout=request_timeout if request_timeout is not None else cfg.request_timeout,
            rate_limit_retries=rate_limit_retries if rate_limit_retries is not None else cfg.rate_limit_retries,
            rate_limit_delay_seconds=(
                rate_limit_delay_seconds if rate_limit_delay_seconds is not None
                else cfg.rate_limit_delay_seconds
            ),
        )
        self.token = token if token is not None else cfg.token
        self.throttle_seconds = throttle_seconds if throttle_seconds is not None else cfg.throttle_seconds

    def _params(self, **params: Any) -> Dict[str, Any]:
        if self.token:
            params["token"] = self.token
        return params

    async def list_symbols_by_exchange(self, exchange: str = "US") -> List[FinnhubSymbol]:
        """List symbol metadata for an exchange code (e.g. US)."""
        data = await self._get_json("/stock/symbol", self._params(exchange=exchange))
        if not isinstance(data, list):
            return []

        items = [FinnhubSymbol.from_dict(item) for item in data if isinstance(item, dict)]
        logger.info(f"Finnhub returned {len(items)} symbols for exchange {exchange}")
        return items

    async def get_index_constituents(self, index_symbol: str) -> List[str]:
        """Tickers of an index such as ^GSPC; empty when the API returns none."""
        data = await self._get_json("/index/constituents", self._params(symbol=index_symbol))
        if not isinstance(data, dict):
            return []
        return list(data.get("constituents") or [])

    async def get_quote(self, symbol: str) -> FinnhubQuote:
        """Last quote for a ticker."""
        data = await self._get_json("/quote", self._params(symbol=symbol))
        return FinnhubQuote.from_dict(data if isinstance(data, dict) else {})

    async def throttled(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Sleep `throttle_seconds` and then run the operation."""
        await asyncio.sleep(self.throttle_seconds)
        return await operation()
