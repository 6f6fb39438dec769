"""
Paperfolio Service Dependencies
Process-wide upstream clients and the price stream hub, plus per-request
service factories. Tests replace any of these through
`app.dependency_overrides`.
"""

from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.database.connection import get_db_session
from paperfolio.market.finnhub_client import FinnhubClient
from paperfolio.market.prices import ChartService, PriceService
from paperfolio.market.rapidapi_client import RapidApiClient
from paperfolio.market.stream import PriceStreamHub
from paperfolio.services.mystery_pages import MysteryPageService, WikipediaClient
from paperfolio.services.trading import TradingService

_finnhub_client: Optional[FinnhubClient] = None
_rapidapi_client: Optional[RapidApiClient] = None
_stream_hub: Optional[PriceStreamHub] = None
_wikipedia_client: Optional[WikipediaClient] = None


def get_finnhub_client() -> FinnhubClient:
    global _finnhub_client
    if _finnhub_client is None:
        _finnhub_client = FinnhubClient()
    return _finnhub_client


def get_rapidapi_client() -> RapidApiClient:
    global _rapidapi_client
    if _rapidapi_client is None:
        _rapidapi_client = RapidApiClient()
    return _rapidapi_client


def get_stream_hub() -> PriceStreamHub:
    global _stream_hub
    if _stream_hub is None:
        _stream_hub = PriceStreamHub()
    return _stream_hub


def get_wikipedia_client() -> WikipediaClient:
    global _wikipedia_client
    if _wikipedia_client is None:
        _wikipedia_client = WikipediaClient()
    return _wikipedia_client


async def close_clients() -> None:
    """Close shared HTTP sessions; called on application shutdown."""
    global _finnhub_client, _rapidapi_client, _wikipedia_client

    if _finnhub_client is not None:
        await _finnhub_client.close()
        _finnhub_client = None
    if _rapidapi_client is not None:
        await _rapidapi_client.close()
        _rapidapi_client = None
    if _wikipedia_client is not None:
        await _wikipedia_client.close()
        _wikipedia_client = None


def get_price_service(
    db: AsyncSession = Depends(get_db_session),
    client: RapidApiClient = Depends(get_rapidapi_client),
) -> PriceService:
    return PriceService(db, client)


def get_chart_service(
    db: AsyncSession = Depends(get_db_session),
    client: RapidApiClient = Depends(get_rapidapi_client),
) -> ChartService:
    return ChartService(db, client)


def get_trading_service(
    db: AsyncSession = Depends(get_db_session),
    price_service: PriceService = Depends(get_price_service),
) -> TradingService:
    return TradingService(db, price_service)


def get_mystery_page_service(
    db: AsyncSession = Depends(get_db_session),
    wikipedia: WikipediaClient = Depends(get_wikipedia_client),
) -> MysteryPageService:
    return MysteryPageService(db, wikipedia)


__all__ = [
    "get_finnhub_client",
    "get_rapidapi_client",
    "get_stream_hub",
    "get_wikipedia_client",
    "close_clients",
    "get_price_service",
    "get_chart_service",
    "get_trading_service",
    "get_mystery_page_service",
]
