"""
Tests for the symbol catalog: import filters, capacity limits, the
single-import guard, search and enable/disable.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select

from paperfolio.database.models import Portfolio, Symbol
from paperfolio.exceptions import ImportInProgressError, SymbolInUseError, SymbolNotFoundError
from paperfolio.market.finnhub_client import FinnhubSymbol
from paperfolio.services import symbols as symbols_module
from paperfolio.services.symbols import (
    SymbolService,
    allowed_mics_for,
    is_allowed_exchange,
    is_valid_symbol_item,
    select_symbols,
)


def item(symbol, description=None, mic="XNAS", currency="USD", type_="Common Stock"):
    return FinnhubSymbol(
        symbol=symbol,
        description=description if description is not None else f"{symbol} HOLDINGS INC",
        currency=currency,
        mic=mic,
        type=type_,
    )


def finnhub_returning(items):
    client = MagicMock()
    client.list_symbols_by_exchange = AsyncMock(return_value=items)
    return client


class TestSymbolFilters:
    """Which provider items are importable."""

    def test_accepts_plain_common_stock(self):
        assert is_valid_symbol_item(item("AAPL", "APPLE INC"))

    @pytest.mark.parametrize("candidate", [
        item("", "EMPTY"),
        item("ABCD", ""),
        item("ABCD", type_="ETP"),
        item("ABCD", currency="CAD"),
        item("ABCD", "ALPHA ACQUISITION CORP"),
        item("ABCD", "BETA SPAC HOLDINGS"),
        item("ABCD", "GAMMA SPECIAL PURPOSE TRUST"),
        item("ABCD", "DELTA CORP-A"),
        item("ABC1"),
        item("ABCW"),
        item("ABCU"),
        item("BRK.B"),
        item("X"),
    ])
    def test_rejects(self, candidate):
        assert not is_valid_symbol_item(candidate)

    def test_universe_mics(self):
        assert allowed_mics_for("NDX") == frozenset({"XNAS"})
        assert allowed_mics_for("ndx") == frozenset({"XNAS"})
        assert allowed_mics_for("GSPC") == frozenset({"XNAS", "XNYS"})
        assert allowed_mics_for(None) == frozenset({"XNAS", "XNYS"})
        assert allowed_mics_for("OTHER") == frozenset({"XNAS", "XNYS"})

    def test_missing_mic_is_allowed(self):
        assert is_allowed_exchange(item("AAPL", mic=None), frozenset({"XNAS"}))
        assert not is_allowed_exchange(item("IBM", mic="XNYS"), frozenset({"XNAS"}))

    def test_select_dedupes_sorts_and_caps_new_symbols(self):
        items = [item("MSFT"), item("msft"), item("AAPL"), item("ZZZZ"), item("IBM", mic="XNYS")]

        selected = select_symbols(items, existing={"ZZZZ"}, allowed_mics=frozenset({"XNAS"}), capacity=1)

        assert [ticker for ticker, _ in selected] == ["ZZZZ", "AAPL"]


class TestImportUniverse:
    async def test_imports_new_and_updates_existing(self, session, make_symbol):
        await make_symbol("MSFT", name="old name")
        finnhub = finnhub_returning([
            item("MSFT", "MICROSOFT CORP"),
            item("AAPL", "APPLE INC"),
            item("SPCX", "SPACE ACQUISITION CORP"),
        ])

        summary = await SymbolService(session, finnhub).import_universe("NDX")

        assert (summary.imported, summary.updated, summary.skipped) == (1, 1, 1)
        finnhub.list_symbols_by_exchange.assert_awaited_once_with("US")

        msft = (await session.execute(select(Symbol).where(Symbol.symbol == "MSFT"))).scalar_one()
        assert msft.name == "MICROSOFT CORP"
        aapl = (await session.execute(select(Symbol).where(Symbol.symbol == "AAPL"))).scalar_one()
        assert aapl.enabled is True
        assert aapl.mic == "XNAS"

    async def test_new_symbols_limited_per_import(self, session):
        finnhub = finnhub_returning([item(f"T{chr(65 + i)}{chr(65 + j)}") for i in range(3) for j in range(10)])

        summary = await SymbolService(session, finnhub).import_universe()

        assert summary.imported == 25
        assert summary.skipped == 5

    async def test_total_catalog_size_is_capped(self, session, make_symbol):
        for i in range(45):
            await make_symbol(f"E{chr(65 + i // 26)}{chr(65 + i % 26)}", mic="XNYS")
        finnhub = finnhub_returning([item(f"N{chr(65 + i)}A") for i in range(10)])

        summary = await SymbolService(session, finnhub).import_universe("NDX")

        assert summary.imported == 5
        assert await session.scalar(select(func.count()).select_from(Symbol)) == 50

    async def test_records_status(self, session):
        finnhub = finnhub_returning([item("AAPL")])

        summary = await SymbolService(session, finnhub).import_universe()
        status = SymbolService.import_status()

        assert status.running is False
        assert status.last_summary == summary
        assert status.last_imported_at is not None

    async def test_concurrent_import_is_rejected(self, session):
        finnhub = finnhub_returning([item("AAPL")])
        service = SymbolService(session, finnhub)

        async with symbols_module._import_state.lock:
            assert SymbolService.import_status().running is True
            with pytest.raises(ImportInProgressError):
                await service.import_universe()

        finnhub.list_symbols_by_exchange.assert_not_awaited()


class TestCatalog:
    async def test_search_is_case_insensitive_and_paged(self, session, make_symbol):
        await make_symbol("AAPL", name="Apple Inc")
        await make_symbol("MSFT", name="Microsoft Corp")
        await make_symbol("APPN", name="Appian Corp")

        page = await SymbolService(session).list_symbols(q="app", page=0, size=1)

        assert page.total == 2
        assert [s.symbol for s in page.items] == ["AAPL"]

        second = await SymbolService(session).list_symbols(q="APP", page=1, size=1)
        assert [s.symbol for s in second.items] == ["APPN"]

    async def test_filter_by_enabled(self, session, make_symbol):
        await make_symbol("AAPL")
        await make_symbol("MSFT", enabled=False)

        page = await SymbolService(session).list_symbols(enabled=False)

        assert [s.symbol for s in page.items] == ["MSFT"]

    async def test_set_enabled(self, session, make_symbol):
        symbol = await make_symbol("AAPL")

        updated = await SymbolService(session).set_enabled(symbol.id, False)

        assert updated.enabled is False

    async def test_cannot_disable_held_symbol(self, session, make_user, make_symbol):
        user = await make_user()
        symbol = await make_symbol("AAPL")
        session.add(Portfolio(user_id=user.id, symbol_id=symbol.id, shares_owned=3))
        await session.flush()

        with pytest.raises(SymbolInUseError):
            await SymbolService(session).set_enabled(symbol.id, False)

        # re-enabling is always allowed
        assert (await SymbolService(session).set_enabled(symbol.id, True)).enabled is True

    async def test_unknown_symbol(self, session):
        with pytest.raises(SymbolNotFoundError):
            await SymbolService(session).set_enabled(999, True)
