"""
Paperfolio Price Services
Current quotes for catalog symbols and portfolio charts.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.database.models import Portfolio, Symbol
from paperfolio.market.rapidapi_client import Quote, RapidApiClient
from paperfolio.utils.helpers import normalize_symbol, to_decimal

logger = logging.getLogger(__name__)


class PriceService:
    """
    Quotes for symbols in the catalog.

    Only enabled symbols are quoted. Upstream errors propagate as typed
    market-data exceptions.
    """

    def __init__(self, session: AsyncSession, client: RapidApiClient):
        self.session = session
        self.client = client

    async def _find_symbol(self, symbol: str) -> Optional[Symbol]:
        result = await self.session.execute(
            select(Symbol).where(Symbol.symbol == normalize_symbol(symbol))
        )
        return result.scalar_one_or_none()

    async def get_current_price(self, symbol: str) -> Optional[Quote]:
        """
        Get the current quote for one symbol.

        Returns:
            Optional[Quote]: None when the symbol is unknown, disabled or unquoted.
        """
        entity = await self._find_symbol(symbol)
        if entity is None:
            logger.warning(f"Symbol {symbol} not found in database")
            return None

        if not entity.enabled:
            logger.warning(f"Symbol {symbol} is disabled")
            return None

        quote = await self.client.get_quote(entity.symbol)
        if quote is None:
            logger.warning(f"No quote returned for symbol: {entity.symbol}")
        return quote

    async def get_price_value(self, symbol: str) -> Optional[Decimal]:
        """Current price as Decimal, or None."""
        quote = await self.get_current_price(symbol)
        return to_decimal(quote.price) if quote is not None else None

    async def get_all_current_prices(self) -> Dict[str, Quote]:
        """Quotes for every enabled symbol, keyed by symbol."""
        result = await self.session.execute(
            select(Symbol.symbol).where(Symbol.enabled.is_(True)).order_by(Symbol.symbol)
        )
        symbols = list(result.scalars().all())

        if not symbols:
            logger.warning("No enabled symbols found in database")
            return {}

        quotes = await self.client.get_quotes(symbols)

        missing = len(symbols) - len(quotes)
        if missing > 0:
            logger.warning(f"Missing {missing} quotes from RapidAPI response")

        return {quote.symbol: quote for quote in quotes}


class ChartService:
    """Charts for the symbols a user currently holds."""

    def __init__(self, session: AsyncSession, client: RapidApiClient):
        self.session = session
        self.client = client

    async def get_charts(self, user_id: int, chart_range: str = "1d") -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(Symbol.symbol)
            .join(Portfolio, Portfolio.symbol_id == Symbol.id)
            .where(Portfolio.user_id == user_id, Portfolio.shares_owned > 0)
            .distinct()
            .order_by(Symbol.symbol)
        )
        symbols = list(result.scalars().all())

        if not symbols:
            logger.info(f"No active positions found for user {user_id}")
            return []

        charts = []
        for symbol in symbols:
            try:
                charts.append(await self.client.get_chart(symbol, chart_range))
            except Exception as e:
                logger.error(f"Failed to fetch chart for {symbol} with range {chart_range}: {e}")

        logger.info(
            f"Retrieved charts for {len(charts)} of {len(symbols)} symbols "
            f"for user {user_id} with range {chart_range}"
        )
        return charts
