"""
Tests for the price stream hub and the SSE frame generator.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from paperfolio.market.stream import (
    SUBSCRIPTION_FAILED,
    SYMBOLS_REQUIRED,
    PriceEvent,
    PriceStreamHub,
    backoff_delay,
    format_sse,
    parse_symbols,
    price_event_stream,
)


def trade(*ticks):
    return json.dumps({"type": "trade", "data": [{"s": s, "p": p, "t": 1, "v": 10} for s, p in ticks]})


def parse_frame(frame):
    event_line, data_line, *_ = frame.split("\n")
    assert event_line.startswith("event: ")
    assert data_line.startswith("data: ")
    return event_line[len("event: "):], json.loads(data_line[len("data: "):])


@pytest.fixture
def hub():
    return PriceStreamHub(ws_url="wss://stream.test", token=None, enabled=False)


class TestParsing:
    def test_parse_symbols_trims_dedupes_and_caps(self):
        assert parse_symbols(" AAPL, MSFT,,AAPL , TSLA ", limit=2) == ["AAPL", "MSFT"]

    @pytest.mark.parametrize("csv", [None, "", "  ", ", ,"])
    def test_parse_symbols_empty(self, csv):
        assert parse_symbols(csv, limit=50) == []

    def test_format_sse_frame(self):
        frame = format_sse("price", {"symbol": "AAPL", "price": 1.5})
        assert frame == 'event: price\ndata: {"symbol":"AAPL","price":1.5}\n\n'

    def test_format_sse_price_event(self):
        event, data = parse_frame(format_sse("heartbeat", PriceEvent.heartbeat()))
        assert event == "heartbeat"
        assert data["type"] == "heartbeat"
        assert data["symbol"] == ""
        assert data["percentChange"] is None
        assert data["ts"] > 0

    @pytest.mark.parametrize("attempt, low, high", [(0, 1, 2), (3, 8, 9), (20, 60, 61)])
    def test_backoff_delay(self, attempt, low, high):
        delay = backoff_delay(attempt, base=1.0, cap=60.0)
        assert low <= delay <= high


class TestPriceStreamHub:
    def test_percent_change_against_first_price(self, hub):
        received = []
        hub.add_listener("AAPL", lambda *args: received.append(args))

        hub.handle_message(trade(("AAPL", 100.0)))
        hub.handle_message(trade(("AAPL", 110.0)))

        assert received == [("AAPL", 100.0, 0.0), ("AAPL", 110.0, 10.0)]
        assert hub.get_last_price("AAPL") == 110.0

    def test_unknown_symbol_has_no_state(self, hub):
        assert hub.get_last_price("NOPE") is None
        assert hub.get_percent_change("NOPE") is None

    @pytest.mark.parametrize("raw", [
        "not json",
        b"\xff\xfe",
        json.dumps({"type": "ping"}),
        json.dumps({"type": "trade", "data": "oops"}),
        json.dumps({"type": "trade", "data": [{"s": "AAPL"}, {"p": 5}, "x", {"s": "AAPL", "p": "abc"}]}),
        json.dumps([1, 2, 3]),
    ])
    def test_malformed_messages_are_ignored(self, hub, raw):
        hub.handle_message(raw)
        assert hub.get_last_price("AAPL") is None

    def test_bytes_frames_are_decoded(self, hub):
        hub.handle_message(trade(("MSFT", 300.0)).encode())
        assert hub.get_last_price("MSFT") == 300.0

    def test_failing_listener_does_not_block_others(self, hub):
        received = []

        def broken(*args):
            raise RuntimeError("boom")

        hub.add_listener("AAPL", broken)
        hub.add_listener("AAPL", lambda *args: received.append(args))

        hub.handle_message(trade(("AAPL", 1.0)))

        assert len(received) == 1

    def test_last_listener_out_clears_symbol(self, hub):
        first, second = (lambda *a: None), (lambda *a: None)
        hub.add_listener("AAPL", first)
        hub.add_listener("AAPL", second)

        hub.remove_listener("AAPL", first)
        assert hub.listener_count("AAPL") == 1

        hub.remove_listener("AAPL", second)
        assert hub.subscribed_symbols() == []
        hub.remove_listener("AAPL", second)

    async def test_upstream_subscribe_and_unsubscribe(self, hub):
        websocket = AsyncMock()
        hub._websocket = websocket
        listener = lambda *a: None  # noqa: E731

        hub.add_listener("AAPL", listener)
        hub.add_listener("AAPL", listener)
        hub.remove_listener("AAPL", listener)
        hub.remove_listener("AAPL", listener)
        await asyncio.sleep(0)

        sent = [json.loads(call.args[0]) for call in websocket.send.await_args_list]
        assert sent.count({"type": "subscribe", "symbol": "AAPL"}) == 2
        assert sent.count({"type": "unsubscribe", "symbol": "AAPL"}) == 1

    async def test_start_without_token_stays_idle(self, hub):
        hub.enabled = True
        await hub.start()

        assert hub.is_connected is False
        assert hub._task is None
        await hub.stop()


class TestPriceEventStream:
    async def test_no_symbols_yields_error(self, hub):
        frames = [frame async for frame in price_event_stream(hub, [], heartbeat_seconds=60)]

        assert len(frames) == 1
        assert parse_frame(frames[0]) == ("error", SYMBOLS_REQUIRED)

    async def test_snapshot_heartbeat_then_ticks(self, hub):
        hub.handle_message(trade(("AAPL", 100.0)))
        hub.handle_message(trade(("AAPL", 105.0)))
        stream = price_event_stream(hub, ["AAPL", "MSFT"], heartbeat_seconds=60)

        event, snapshot = parse_frame(await stream.__anext__())
        assert event == "price"
        assert (snapshot["symbol"], snapshot["price"], snapshot["percentChange"]) == ("AAPL", 105.0, 5.0)

        event, _ = parse_frame(await stream.__anext__())
        assert event == "heartbeat"
        assert hub.listener_count("AAPL") == 1
        assert hub.listener_count("MSFT") == 1

        hub.handle_message(trade(("MSFT", 50.0)))
        event, tick = parse_frame(await stream.__anext__())
        assert event == "price"
        assert tick["type"] == "price"
        assert (tick["symbol"], tick["price"], tick["percentChange"]) == ("MSFT", 50.0, 0.0)

        await stream.aclose()
        assert hub.subscribed_symbols() == []

    async def test_periodic_heartbeat(self, hub):
        stream = price_event_stream(hub, ["AAPL"], heartbeat_seconds=0.01)

        first = parse_frame(await stream.__anext__())[0]
        second = parse_frame(await asyncio.wait_for(stream.__anext__(), timeout=1))[0]

        assert (first, second) == ("heartbeat", "heartbeat")
        await stream.aclose()
        assert hub.listener_count("AAPL") == 0

    async def test_registration_failure_yields_error_and_cleans_up(self, hub):
        real_add = hub.add_listener
        calls = []

        def flaky_add(symbol, listener):
            calls.append(symbol)
            if symbol == "MSFT":
                raise RuntimeError("registry unavailable")
            real_add(symbol, listener)

        with patch.object(hub, "add_listener", side_effect=flaky_add):
            frames = [frame async for frame in price_event_stream(hub, ["AAPL", "MSFT"], heartbeat_seconds=60)]

        assert calls == ["AAPL", "MSFT"]
        assert [parse_frame(frame) for frame in frames] == [("error", SUBSCRIPTION_FAILED)]
        assert hub.subscribed_symbols() == []
