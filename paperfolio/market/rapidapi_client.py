"""
Paperfolio RapidAPI Client
Yahoo Finance quotes and charts via RapidAPI.
"""

import asyncio
import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from paperfolio.config.settings import settings
from paperfolio.market.base import MarketDataHttpClient
from paperfolio.utils.helpers import chunk_list

logger = logging.getLogger(__name__)

USER_AGENT = "Paperfolio-Backend/1.0"

CHART_QUERY = {
    "region": "US",
    "includePrePost": "false",
    "useYfid": "true",
    "includeAdjustedClose": "true",
    "events": "capitalGain,div,split",
}


@dataclass
class Quote:
    """Market quote for one symbol."""
    symbol: str
    price: float
    change: Optional[float] = None
    change_percent: Optional[float] = None
    day_high: Optional[float] = None
    day_low: Optional[float] = None
    open_price: Optional[float] = None
    previous_close: Optional[float] = None

    @classmethod
    def from_result(cls, result: Dict[str, Any]) -> Optional["Quote"]:
        """Parse one quoteResponse.result item; None without symbol or positive price."""
        symbol = result.get("symbol")
        try:
            price = float(result["regularMarketPrice"])
        except (KeyError, TypeError, ValueError):
            return None
        if not symbol or not math.isfinite(price) or price <= 0:
            return None

        return cls(
            symbol=symbol,
            price=price,
            change=result.get("regularMarketChange"),
            change_percent=result.get("regularMarketChangePercent"),
            day_high=result.get("regularMarketDayHigh"),
            day_low=result.get("regularMarketDayLow"),
            open_price=result.get("regularMarketOpen"),
            previous_close=result.get("regularMarketPreviousClose"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def interval_for_range(chart_range: str) -> str:
    """Chart bar size for a range: weekly for multi-year ranges, daily otherwise."""
    return "1wk" if chart_range in ("2y", "5y") else "1d"


class RapidApiClient(MarketDataHttpClient):
    """
    RapidAPI Yahoo Finance client.

    Quotes are requested in batches with a short pause between batches.
    """

    provider = "RapidAPI Yahoo Finance"

    def __init__(
        self,
        base_url: Optional[str] = None,
        key: Optional[str] = None,
        host: Optional[str] = None,
        batch_size: Optional[int] = None,
        batch_delay_seconds: Optional[float] = None,
        request_timeout: Optional[float] = None,
        rate_limit_retries: Optional[int] = None,
        rate_limit_delay_seconds: Optional[float] = None,
    ):
        cfg = settings.rapidapi
        super().__init__(
            base_url=base_url or cfg.base_url,
            request_timeout=request_timeout if request_timeout is not None else cfg.request_timeout,
            rate_limit_retries=rate_limit_retries if rate_limit_retries is not None else cfg.rate_limit_retries,
            rate_limit_delay_seconds=(
                rate_limit_delay_seconds if rate_limit_delay_seconds is not None
                else cfg.rate_limit_delay_seconds
            ),
        )
        self.key = key if key is not None else cfg.key
        self.host = host or cfg.host
        self.batch_size = batch_size or cfg.batch_size
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None else cfg.batch_delay_seconds
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "x-rapidapi-key": self.key or "",
            "x-rapidapi-host": self.host,
            "User-Agent": USER_AGENT,
        }

    async def get_quotes(self, symbols: List[str]) -> List[Quote]:
        """
        Fetch quotes for many symbols.

        Args:
            symbols: Tickers to quote.

        Returns:
            List[Quote]: Quotes with a symbol and a positive price, in response order.
        """
        if not symbols:
            return []

        quotes: List[Quote] = []
        batches = chunk_list(list(symbols), self.batch_size)

        for index, batch in enumerate(batches):
            data = await self._get_json(
                "/market/v2/get-quotes",
                {"region": "US", "symbols": ",".join(batch)},
            )

            results = ((data or {}).get("quoteResponse") or {}).get("result") or []
            for result in results:
                quote = Quote.from_result(result)
                if quote is not None:
                    quotes.append(quote)

            if index < len(batches) - 1:
                await asyncio.sleep(self.batch_delay_seconds)

        logger.info(f"Fetched {len(quotes)} quotes from RapidAPI out of {len(symbols)} requested")
        return quotes

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        """Quote for one symbol, None when the upstream has none."""
        quotes = await self.get_quotes([symbol])
        return quotes[0] if quotes else None

    async def get_chart(self, symbol: str, chart_range: str = "1d") -> Dict[str, Any]:
        """
        Raw chart payload for a symbol, tagged with symbol, range and interval.
        """
        interval = interval_for_range(chart_range)
        params = {"interval": interval, "symbol": symbol, "range": chart_range, **CHART_QUERY}

        data = await self._get_json("/stock/v3/get-chart", params)
        chart = dict(data) if isinstance(data, dict) else {}
        chart.update(symbol=symbol, range=chart_range, interval=interval)
        return chart
