"""
Paperfolio Market Data Package
Upstream REST clients, price services and the live price stream.
"""

from paperfolio.market.finnhub_client import FinnhubClient, FinnhubQuote, FinnhubSymbol
from paperfolio.market.prices import ChartService, PriceService
from paperfolio.market.rapidapi_client import Quote, RapidApiClient
from paperfolio.market.stream import (
    PriceEvent,
    PriceStreamHub,
    format_sse,
    parse_symbols,
    price_event_stream,
)

__all__ = [
    "FinnhubClient",
    "FinnhubQuote",
    "FinnhubSymbol",
    "RapidApiClient",
    "Quote",
    "PriceService",
    "ChartService",
    "PriceEvent",
    "PriceStreamHub",
    "format_sse",
    "parse_symbols",
    "price_event_stream",
]
