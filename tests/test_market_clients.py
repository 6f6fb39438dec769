"""
Tests for the market data REST clients and the price/chart services.

HTTP is never touched: `_fetch` is patched to return (status, payload).
"""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from paperfolio.database.models import Portfolio
from paperfolio.exceptions import ApiRateLimitError, MarketDataUnavailableError
from paperfolio.market.finnhub_client import FinnhubClient, FinnhubQuote, FinnhubSymbol
from paperfolio.market.prices import ChartService, PriceService
from paperfolio.market.rapidapi_client import Quote, RapidApiClient, interval_for_range


def quote_result(symbol, price, **extra):
    return {"symbol": symbol, "regularMarketPrice": price, **extra}


def quotes_payload(*results):
    return {"quoteResponse": {"result": list(results)}}


@pytest.fixture
def rapidapi():
    return RapidApiClient(
        base_url="https://rapid.test",
        key="k",
        batch_size=10,
        batch_delay_seconds=0,
        rate_limit_retries=2,
        rate_limit_delay_seconds=0,
    )


@pytest.fixture
def finnhub():
    return FinnhubClient(
        api_base="https://finnhub.test/api/v1",
        token="secret",
        throttle_seconds=0,
        rate_limit_retries=1,
        rate_limit_delay_seconds=0,
    )


class TestStatusPolicy:
    """How upstream statuses map to exceptions."""

    async def test_rate_limit_is_retried_then_raised(self, rapidapi):
        with patch.object(rapidapi, "_fetch", AsyncMock(return_value=(429, None))) as fetch:
            with pytest.raises(ApiRateLimitError) as exc_info:
                await rapidapi.get_quotes(["AAPL"])

        assert fetch.await_count == 3
        assert exc_info.value.status_code == 429

    async def test_rate_limit_recovers(self, rapidapi):
        responses = [(429, None), (200, quotes_payload(quote_result("AAPL", 150.0)))]
        with patch.object(rapidapi, "_fetch", AsyncMock(side_effect=responses)):
            quotes = await rapidapi.get_quotes(["AAPL"])

        assert [q.symbol for q in quotes] == ["AAPL"]

    @pytest.mark.parametrize("status", [401, 403, 404, 500, 503])
    async def test_error_statuses_are_unavailable(self, rapidapi, status):
        with patch.object(rapidapi, "_fetch", AsyncMock(return_value=(status, None))) as fetch:
            with pytest.raises(MarketDataUnavailableError) as exc_info:
                await rapidapi.get_quote("AAPL")

        fetch.assert_awaited_once()
        assert exc_info.value.status_code == 503

    async def test_transport_failure_is_unavailable(self, finnhub):
        failing = AsyncMock(side_effect=aiohttp.ClientConnectionError("connection refused"))
        with patch.object(finnhub, "_fetch", failing):
            with pytest.raises(MarketDataUnavailableError):
                await finnhub.get_quote("AAPL")


class TestRapidApiClient:
    async def test_quotes_are_batched(self, rapidapi):
        symbols = [f"S{i:02d}" for i in range(23)]
        payload = quotes_payload(quote_result("S00", 1.0))

        with patch.object(rapidapi, "_fetch", AsyncMock(return_value=(200, payload))) as fetch, \
                patch("paperfolio.market.rapidapi_client.asyncio.sleep", AsyncMock()) as sleep:
            await rapidapi.get_quotes(symbols)

        assert fetch.await_count == 3
        sent = [call.args[1]["symbols"].split(",") for call in fetch.await_args_list]
        assert [len(batch) for batch in sent] == [10, 10, 3]
        assert fetch.await_args_list[0].args[0] == "https://rapid.test/market/v2/get-quotes"
        # pause between batches, none after the last
        assert sleep.await_count == 2

    async def test_quotes_without_positive_price_are_dropped(self, rapidapi):
        payload = quotes_payload(
            quote_result("AAPL", 150.5, regularMarketChange=1.5, regularMarketChangePercent=1.0),
            quote_result("ZERO", 0),
            quote_result("NEG", -3),
            {"symbol": "NOPRICE"},
            quote_result(None, 10.0),
        )
        with patch.object(rapidapi, "_fetch", AsyncMock(return_value=(200, payload))):
            quotes = await rapidapi.get_quotes(["AAPL", "ZERO", "NEG", "NOPRICE"])

        assert quotes == [Quote(symbol="AAPL", price=150.5, change=1.5, change_percent=1.0)]

    @pytest.mark.parametrize("price", ["N/A", "", "NaN", {"raw": 150.5}, [150.5], None])
    def test_non_numeric_price_is_dropped(self, price):
        assert Quote.from_result(quote_result("AAPL", price)) is None

    def test_numeric_string_price_is_accepted(self):
        assert Quote.from_result(quote_result("AAPL", "150.25")).price == 150.25

    async def test_no_symbols_makes_no_request(self, rapidapi):
        with patch.object(rapidapi, "_fetch", AsyncMock()) as fetch:
            assert await rapidapi.get_quotes([]) == []
        fetch.assert_not_awaited()

    async def test_single_quote_missing(self, rapidapi):
        with patch.object(rapidapi, "_fetch", AsyncMock(return_value=(200, {}))):
            assert await rapidapi.get_quote("AAPL") is None

    @pytest.mark.parametrize("chart_range, interval", [
        ("1d", "1d"), ("5d", "1d"), ("1y", "1d"), ("2y", "1wk"), ("5y", "1wk"),
    ])
    def test_interval_for_range(self, chart_range, interval):
        assert interval_for_range(chart_range) == interval

    async def test_chart_is_tagged(self, rapidapi):
        payload = {"chart": {"result": [{"timestamp": [1, 2]}]}}
        with patch.object(rapidapi, "_fetch", AsyncMock(return_value=(200, payload))) as fetch:
            chart = await rapidapi.get_chart("MSFT", "5y")

        params = fetch.await_args.args[1]
        assert params["interval"] == "1wk"
        assert params["range"] == "5y"
        assert params["region"] == "US"
        assert chart["symbol"] == "MSFT"
        assert chart["interval"] == "1wk"
        assert chart["chart"] == payload["chart"]

    def test_headers_carry_credentials(self, rapidapi):
        headers = rapidapi._headers()
        assert headers["x-rapidapi-key"] == "k"
        assert headers["x-rapidapi-host"]


class TestFinnhubClient:
    async def test_symbols_by_exchange_sends_token(self, finnhub):
        payload = [
            {"symbol": "AAPL", "description": "APPLE INC", "currency": "USD", "mic": "XNAS", "type": "Common Stock"},
            "garbage",
        ]
        with patch.object(finnhub, "_fetch", AsyncMock(return_value=(200, payload))) as fetch:
            items = await finnhub.list_symbols_by_exchange("US")

        url, params = fetch.await_args.args
        assert url == "https://finnhub.test/api/v1/stock/symbol"
        assert params == {"exchange": "US", "token": "secret"}
        assert items == [FinnhubSymbol("AAPL", "APPLE INC", "USD", "XNAS", "Common Stock")]

    async def test_non_list_symbol_payload(self, finnhub):
        with patch.object(finnhub, "_fetch", AsyncMock(return_value=(200, {"error": "x"}))):
            assert await finnhub.list_symbols_by_exchange() == []

    async def test_index_constituents(self, finnhub):
        payload = {"symbol": "^NDX", "constituents": ["AAPL", "MSFT"]}
        with patch.object(finnhub, "_fetch", AsyncMock(return_value=(200, payload))):
            assert await finnhub.get_index_constituents("^NDX") == ["AAPL", "MSFT"]

    async def test_quote_parsing(self, finnhub):
        payload = {"c": 189.5, "d": 1.2, "dp": 0.64, "h": 190, "l": 187, "o": 188, "pc": 188.3, "t": 1700000000}
        with patch.object(finnhub, "_fetch", AsyncMock(return_value=(200, payload))):
            quote = await finnhub.get_quote("AAPL")

        assert quote.to_dict() == {
            "current": 189.5,
            "change": 1.2,
            "percentChange": 0.64,
            "high": 190,
            "low": 187,
            "open": 188,
            "previousClose": 188.3,
            "timestamp": 1700000000,
        }

    def test_empty_quote_defaults(self):
        quote = FinnhubQuote.from_dict({})
        assert quote.current == 0.0
        assert quote.timestamp == 0

    async def test_throttled_sleeps_before_running(self, finnhub):
        operation = AsyncMock(return_value="done")
        with patch("paperfolio.market.finnhub_client.asyncio.sleep", AsyncMock()) as sleep:
            assert await finnhub.throttled(operation) == "done"

        sleep.assert_awaited_once_with(0)
        operation.assert_awaited_once()


class TestPriceService:
    @pytest.fixture
    def client(self):
        client = AsyncMock(spec=RapidApiClient)
        client.get_quote.return_value = Quote(symbol="AAPL", price=150.0)
        return client

    async def test_quotes_enabled_symbol(self, session, make_symbol, client):
        await make_symbol("AAPL")

        quote = await PriceService(session, client).get_current_price(" aapl ")

        assert quote.price == 150.0
        client.get_quote.assert_awaited_once_with("AAPL")

    async def test_unknown_or_disabled_symbol(self, session, make_symbol, client):
        await make_symbol("MSFT", enabled=False)
        service = PriceService(session, client)

        assert await service.get_current_price("NOPE") is None
        assert await service.get_current_price("MSFT") is None
        client.get_quote.assert_not_awaited()

    async def test_price_value_is_decimal(self, session, make_symbol, client):
        await make_symbol("AAPL")
        value = await PriceService(session, client).get_price_value("AAPL")
        assert value == Decimal("150.0")

    async def test_all_prices_keyed_by_symbol(self, session, make_symbol, client):
        await make_symbol("AAPL")
        await make_symbol("MSFT")
        await make_symbol("OFF", enabled=False)
        client.get_quotes.return_value = [Quote(symbol="AAPL", price=1.0), Quote(symbol="MSFT", price=2.0)]

        prices = await PriceService(session, client).get_all_current_prices()

        assert set(prices) == {"AAPL", "MSFT"}
        client.get_quotes.assert_awaited_once_with(["AAPL", "MSFT"])

    async def test_all_prices_with_empty_catalog(self, session, client):
        assert await PriceService(session, client).get_all_current_prices() == {}
        client.get_quotes.assert_not_awaited()

    async def test_upstream_errors_propagate(self, session, make_symbol, client):
        await make_symbol("AAPL")
        client.get_quote.side_effect = MarketDataUnavailableError("RapidAPI", "server error: 500")

        with pytest.raises(MarketDataUnavailableError):
            await PriceService(session, client).get_current_price("AAPL")


class TestChartService:
    async def test_charts_for_held_symbols_skip_failures(self, session, make_user, make_symbol):
        user = await make_user()
        for ticker, shares in (("AAPL", 3), ("MSFT", 1), ("IBM", 0)):
            symbol = await make_symbol(ticker)
            session.add(Portfolio(user_id=user.id, symbol_id=symbol.id, shares_owned=shares))
        await session.flush()

        client = AsyncMock(spec=RapidApiClient)
        client.get_chart.side_effect = [
            {"symbol": "AAPL", "range": "1mo"},
            MarketDataUnavailableError("RapidAPI", "server error: 502"),
        ]

        charts = await ChartService(session, client).get_charts(user.id, "1mo")

        assert charts == [{"symbol": "AAPL", "range": "1mo"}]
        assert [call.args for call in client.get_chart.await_args_list] == [("AAPL", "1mo"), ("MSFT", "1mo")]

    async def test_no_positions(self, session, make_user):
        user = await make_user()
        client = AsyncMock(spec=RapidApiClient)

        assert await ChartService(session, client).get_charts(user.id) == []
        client.get_chart.assert_not_awaited()
