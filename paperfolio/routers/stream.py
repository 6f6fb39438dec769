"""
Price Stream Router

Server-Sent Events feed of live trade prices relayed from the Finnhub
websocket. Browsers' EventSource cannot send headers, so the access token
is taken from the query string.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ..config.settings import settings
from ..dependencies.auth import validate_stream_token
from ..dependencies.services import get_stream_hub
from ..market.stream import PriceStreamHub, parse_symbols, price_event_stream

router = APIRouter(prefix="/stream", tags=["Streaming"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@router.get("/prices")
async def stream_prices(
    symbols: Optional[str] = Query(None, description="Comma-separated tickers"),
    token: Optional[str] = Query(None, description="Access token"),
    hub: PriceStreamHub = Depends(get_stream_hub),
):
    """
    Stream `price` and `heartbeat` events for the requested symbols.

    An empty symbol list yields a single `error` event and the stream ends.
    """
    validate_stream_token(token)
    requested = parse_symbols(symbols, limit=settings.stream.max_symbols)

    return StreamingResponse(
        price_event_stream(hub, requested),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
