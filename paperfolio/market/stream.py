"""
Paperfolio Price Stream
In-process fan-out of Finnhub trade ticks to server-sent event connections.

Features:
- Listener registry keyed by symbol
- Upstream websocket with re-subscribe on connect and exponential backoff
- Percent change relative to the first price seen in this process
- SSE frame generator with snapshot, live ticks and periodic heartbeats
"""

import asyncio
import json
import logging
import random
from dataclasses import asdict, dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed

from paperfolio.config.settings import settings
from paperfolio.utils.helpers import unique_in_order, utc_timestamp_ms

logger = logging.getLogger(__name__)

PriceListener = Callable[[str, float, Optional[float]], None]

SYMBOLS_REQUIRED = {"status": 400, "message": "At least one symbol is required"}
SUBSCRIPTION_FAILED = {"status": 500, "message": "Subscription failed"}


@dataclass
class PriceEvent:
    """Payload of `price` and `heartbeat` events."""
    type: str
    symbol: str
    price: float
    percentChange: Optional[float]
    ts: int

    @classmethod
    def price_tick(cls, symbol: str, price: float, percent_change: Optional[float]) -> "PriceEvent":
        return cls("price", symbol, price, percent_change, utc_timestamp_ms())

    @classmethod
    def heartbeat(cls) -> "PriceEvent":
        return cls("heartbeat", "", 0.0, None, utc_timestamp_ms())

    def to_dict(self) -> Dict:
        return asdict(self)


def parse_symbols(csv: Optional[str], limit: Optional[int] = None) -> List[str]:
    """Split on commas, trim, drop blanks, dedupe in order and cap."""
    if limit is None:
        limit = settings.stream.max_symbols
    if not csv or not csv.strip():
        return []

    parts = [part.strip() for part in csv.split(",")]
    return unique_in_order(part for part in parts if part)[:limit]


def format_sse(event: str, data) -> str:
    """Render one server-sent event frame."""
    if isinstance(data, PriceEvent):
        data = data.to_dict()
    payload = data if isinstance(data, str) else json.dumps(data, separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n"


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 60.0) -> float:
    """Exponential reconnect delay, capped, with up to one second of jitter."""
    return min(cap, base * (2 ** min(attempt, 10))) + random.uniform(0, 1)


class PriceStreamHub:
    """
    Fan-out of upstream trade ticks to local listeners.

    Listener registration and tick delivery are synchronous. Upstream
    subscribe/unsubscribe frames are sent in the background when the
    websocket is connected and replayed on every reconnect.
    """

    def __init__(
        self,
        ws_url: Optional[str] = None,
        token: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        self.ws_url = ws_url or settings.finnhub.ws_url
        self.token = token if token is not None else settings.finnhub.token
        self.enabled = enabled if enabled is not None else settings.finnhub.stream_enabled

        self._listeners: Dict[str, List[PriceListener]] = {}
        self._last_prices: Dict[str, float] = {}
        self._first_prices: Dict[str, float] = {}

        self._websocket = None
        self._should_run = False
        self._reconnect_count = 0
        self._task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        return self._websocket is not None

    # ------------------------------------------------------------------
    # Listener registry
    # ------------------------------------------------------------------

    def add_listener(self, symbol: str, listener: PriceListener) -> None:
        """Register a listener and subscribe upstream to the symbol."""
        self._listeners.setdefault(symbol, []).append(listener)
        self._send_in_background({"type": "subscribe", "symbol": symbol})

    def remove_listener(self, symbol: str, listener: PriceListener) -> None:
        """Unregister a listener; the last one out unsubscribes upstream."""
        listeners = self._listeners.get(symbol)
        if listeners is None:
            return

        if listener in listeners:
            listeners.remove(listener)

        if not listeners:
            del self._listeners[symbol]
            self._send_in_background({"type": "unsubscribe", "symbol": symbol})

    def subscribed_symbols(self) -> List[str]:
        return list(self._listeners)

    def listener_count(self, symbol: str) -> int:
        return len(self._listeners.get(symbol, []))

    # ------------------------------------------------------------------
    # Price state
    # ------------------------------------------------------------------

    def get_last_price(self, symbol: str) -> Optional[float]:
        return self._last_prices.get(symbol)

    def get_percent_change(self, symbol: str) -> Optional[float]:
        first = self._first_prices.get(symbol)
        last = self._last_prices.get(symbol)
        if first is None or last is None or first == 0:
            return None
        return round((last - first) / first * 100, 4)

    def handle_message(self, raw) -> None:
        """
        Process one upstream frame.

        Only `trade` frames are used; each item carries `s` (symbol) and `p`
        (price). Malformed frames and items are ignored.
        """
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")

        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.debug(f"Failed to parse Finnhub message: {e}")
            return

        if not isinstance(message, dict) or message.get("type") != "trade":
            return

        data = message.get("data")
        if not isinstance(data, list):
            return

        for item in data:
            if not isinstance(item, dict):
                continue
            symbol = item.get("s")
            try:
                price = float(item.get("p"))
            except (TypeError, ValueError):
                continue
            if not symbol:
                continue

            self._record_price(symbol, price)
            self._dispatch(symbol, price, self.get_percent_change(symbol))

    def _record_price(self, symbol: str, price: float) -> None:
        self._first_prices.setdefault(symbol, price)
        self._last_prices[symbol] = price

    def _dispatch(self, symbol: str, price: float, percent_change: Optional[float]) -> None:
        for listener in list(self._listeners.get(symbol, [])):
            try:
                listener(symbol, price, percent_change)
            except Exception as e:
                logger.warning(f"Price listener for {symbol} failed: {e}")

    # ------------------------------------------------------------------
    # Upstream websocket
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the upstream connection loop in the background."""
        if not self.enabled or not self.token:
            logger.info(
                f"Finnhub streaming disabled (enabled={self.enabled} token_present={bool(self.token)})"
            )
            return

        if self._task is not None and not self._task.done():
            return

        self._should_run = True
        self._task = asyncio.create_task(self._connect_with_retry())
        logger.info("Finnhub stream started")

    async def stop(self) -> None:
        """Stop the upstream connection and pending sends."""
        self._should_run = False

        for task in list(self._tasks):
            task.cancel()

        if self._websocket is not None:
            try:
                await self._websocket.close()
            except Exception as e:
                logger.debug(f"Error closing Finnhub websocket: {e}")
            self._websocket = None

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Finnhub stream stopped")

    async def _connect_with_retry(self) -> None:
        """Connect with exponential backoff retry."""
        url = f"{self.ws_url}?token={self.token}"

        while self._should_run:
            try:
                async with websockets.connect(url) as websocket:
                    self._websocket = websocket
                    self._reconnect_count = 0
                    logger.info("Connected to Finnhub websocket")

                    for symbol in self.subscribed_symbols():
                        await websocket.send(json.dumps({"type": "subscribe", "symbol": symbol}))

                    async for message in websocket:
                        self.handle_message(message)

            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                logger.warning(f"Finnhub websocket closed: {e}")
            except Exception as e:
                logger.error(f"Finnhub websocket error: {e}")
            finally:
                self._websocket = None

            if not self._should_run:
                break

            delay = backoff_delay(
                self._reconnect_count,
                base=settings.stream.reconnect_delay_base,
                cap=settings.stream.reconnect_delay_max,
            )
            self._reconnect_count += 1
            logger.info(f"Reconnecting to Finnhub in {delay:.1f}s (attempt {self._reconnect_count})")
            await asyncio.sleep(delay)

    def _send_in_background(self, payload: Dict) -> None:
        if self._websocket is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        task = loop.create_task(self._send(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, payload: Dict) -> None:
        websocket = self._websocket
        if websocket is None:
            return
        try:
            await websocket.send(json.dumps(payload))
        except ConnectionClosed as e:
            logger.warning(f"Finnhub send of {payload.get('type')} failed: {e}")


async def price_event_stream(
    hub: PriceStreamHub,
    symbols: List[str],
    heartbeat_seconds: Optional[float] = None,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for one client connection.

    Sends a snapshot for every symbol with a known last price, then live
    ticks and a heartbeat every `heartbeat_seconds`. Every listener this
    connection registered is removed when the generator exits.
    """
    if heartbeat_seconds is None:
        heartbeat_seconds = settings.stream.heartbeat_seconds

    if not symbols:
        yield format_sse("error", SYMBOLS_REQUIRED)
        return

    queue: "asyncio.Queue[PriceEvent]" = asyncio.Queue()
    attached: List[str] = []

    def listener(symbol: str, price: float, percent_change: Optional[float]) -> None:
        queue.put_nowait(PriceEvent.price_tick(symbol, price, percent_change))

    try:
        snapshots: List[PriceEvent] = []
        try:
            for symbol in symbols:
                last_price = hub.get_last_price(symbol)
                if last_price is not None:
                    snapshots.append(
                        PriceEvent.price_tick(symbol, last_price, hub.get_percent_change(symbol))
                    )
                hub.add_listener(symbol, listener)
                attached.append(symbol)
                logger.debug(f"Subscribed to {symbol}")
        except Exception as e:
            logger.error(f"Subscription failed for {symbols}: {e}")
            yield format_sse("error", SUBSCRIPTION_FAILED)
            return

        for snapshot in snapshots:
            yield format_sse("price", snapshot)

        yield format_sse("heartbeat", PriceEvent.heartbeat())

        loop = asyncio.get_running_loop()
        next_heartbeat = loop.time() + heartbeat_seconds

        while True:
            timeout = max(0.0, next_heartbeat - loop.time())
            try:
                event = await asyncio.wait_for(queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                next_heartbeat = loop.time() + heartbeat_seconds
                yield format_sse("heartbeat", PriceEvent.heartbeat())
                continue

            yield format_sse("price", event)

    finally:
        for symbol in attached:
            hub.remove_listener(symbol, listener)
        logger.debug(f"Price stream closed for {attached}")
