"""
Market Data Router

Current prices for catalog symbols (RapidAPI), the last Finnhub quote and
charts for a user's holdings.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..dependencies.auth import get_token_payload, require_user
from ..dependencies.services import get_chart_service, get_finnhub_client, get_price_service
from ..exceptions import QuoteNotFoundError
from ..market.finnhub_client import FinnhubClient
from ..market.prices import ChartService, PriceService
from ..market.rapidapi_client import Quote
from ..utils.helpers import normalize_symbol

router = APIRouter(tags=["Market Data"], dependencies=[Depends(get_token_payload)])


# Response Models
class QuoteResponse(BaseModel):
    symbol: str
    price: float
    change: Optional[float] = None
    change_percent: Optional[float] = None
    day_high: Optional[float] = None
    day_low: Optional[float] = None
    open_price: Optional[float] = None
    previous_close: Optional[float] = None


class LastQuoteResponse(BaseModel):
    symbol: str
    current: float
    change: Optional[float] = None
    percentChange: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None
    previousClose: Optional[float] = None
    timestamp: int


def _quote_response(quote: Quote) -> QuoteResponse:
    return QuoteResponse(**quote.to_dict())


@router.get("/prices/current", response_model=Dict[str, QuoteResponse])
async def get_all_current_prices(service: PriceService = Depends(get_price_service)):
    """Quotes for every enabled symbol, keyed by symbol."""
    quotes = await service.get_all_current_prices()
    return {symbol: _quote_response(quote) for symbol, quote in quotes.items()}


@router.get("/prices/current/{symbol}", response_model=QuoteResponse)
async def get_current_price(symbol: str, service: PriceService = Depends(get_price_service)):
    quote = await service.get_current_price(symbol)
    if quote is None:
        raise QuoteNotFoundError(normalize_symbol(symbol))
    return _quote_response(quote)


@router.get("/quotes/last", response_model=LastQuoteResponse)
async def get_last_quote(
    symbol: str = Query(..., min_length=1),
    client: FinnhubClient = Depends(get_finnhub_client),
):
    """Last trade quote straight from Finnhub."""
    ticker = normalize_symbol(symbol)
    quote = await client.get_quote(ticker)
    return LastQuoteResponse(symbol=ticker, **quote.to_dict())


@router.get(
    "/market/charts/user/{user_id}",
    response_model=List[Dict[str, Any]],
    dependencies=[Depends(require_user)],
)
async def get_user_charts(
    user_id: int,
    chart_range: str = Query("1d", alias="range"),
    service: ChartService = Depends(get_chart_service),
):
    """One chart per symbol the user holds; symbols whose chart fails are omitted."""
    return await service.get_charts(user_id, chart_range)
