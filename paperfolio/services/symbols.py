"""
Paperfolio Symbol Catalog Service

Imports the tradable universe from Finnhub, searches the catalog and toggles
symbol availability. Only one import runs at a time per process; a second
request while one is running fails immediately with ImportInProgressError.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.config.settings import settings
from paperfolio.database.models import Portfolio, Symbol
from paperfolio.exceptions import ImportInProgressError, SymbolInUseError, SymbolNotFoundError
from paperfolio.market.finnhub_client import FinnhubClient, FinnhubSymbol
from paperfolio.utils.helpers import is_blank, normalize_symbol, utc_now

logger = logging.getLogger(__name__)

EXCLUDED_DESCRIPTION_TERMS = ("ACQUISITION", "SPAC", "SPECIAL PURPOSE", "-A", "CORP-A", "INC-A")
DEFAULT_MICS = frozenset({"XNAS", "XNYS"})
UNIVERSE_MICS = {
    "NDX": frozenset({"XNAS"}),
    "GSPC": DEFAULT_MICS,
}

_DIGIT = re.compile(r"\d")


@dataclass
class ImportSummary:
    imported: int
    updated: int
    skipped: int


@dataclass
class ImportStatus:
    running: bool
    last_imported_at: Optional[datetime]
    last_summary: Optional[ImportSummary]


@dataclass
class SymbolPage:
    items: List[Symbol]
    total: int
    page: int
    size: int


class _ImportState:
    def __init__(self):
        self.lock = asyncio.Lock()
        self.last_imported_at: Optional[datetime] = None
        self.last_summary: Optional[ImportSummary] = None


_import_state = _ImportState()


def allowed_mics_for(universe: Optional[str]) -> frozenset:
    if is_blank(universe):
        return DEFAULT_MICS
    return UNIVERSE_MICS.get(universe.strip().upper(), DEFAULT_MICS)


def is_valid_symbol_item(item: FinnhubSymbol) -> bool:
    """
    USD common stock with a plain ticker.

    Rejects SPAC/acquisition vehicles, class suffixes, warrants and units,
    tickers with digits or dots, and one-letter tickers.
    """
    if is_blank(item.symbol) or is_blank(item.description):
        return False

    if item.type is not None and item.type.lower() != "common stock":
        return False
    if item.currency is not None and item.currency.upper() != "USD":
        return False

    description = item.description.upper()
    if any(term in description for term in EXCLUDED_DESCRIPTION_TERMS):
        return False

    symbol = item.symbol.upper()
    if _DIGIT.search(symbol):
        return False
    if symbol.endswith("W") or symbol.endswith("U") or "." in symbol:
        return False
    if len(symbol) < 2:
        return False

    return True


def is_allowed_exchange(item: FinnhubSymbol, allowed_mics: frozenset) -> bool:
    if is_blank(item.mic):
        return True
    return not allowed_mics or item.mic in allowed_mics


def select_symbols(
    items: List[FinnhubSymbol],
    existing: Set[str],
    allowed_mics: frozenset,
    capacity: int,
) -> List[tuple]:
    """
    Filter, normalize and dedupe provider items.

    Returns (ticker, item) pairs: existing tickers first in provider order,
    then new tickers sorted and limited to `capacity`.
    """
    unique: Dict[str, FinnhubSymbol] = {}
    for item in items:
        if item is None or not is_valid_symbol_item(item) or not is_allowed_exchange(item, allowed_mics):
            continue
        ticker = normalize_symbol(item.symbol)
        if ticker and ticker not in unique:
            unique[ticker] = item

    updates = [(ticker, item) for ticker, item in unique.items() if ticker in existing]
    new = sorted(
        ((ticker, item) for ticker, item in unique.items() if ticker not in existing),
        key=lambda pair: pair[0],
    )
    return updates + new[:max(0, capacity)]


class SymbolService:
    """Symbol catalog operations."""

    def __init__(self, session: AsyncSession, finnhub: Optional[FinnhubClient] = None):
        self.session = session
        self.finnhub = finnhub

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def import_universe(self, universe: Optional[str] = None) -> ImportSummary:
        """
        Import US common stocks for a universe (NDX, GSPC or default).

        Raises:
            ImportInProgressError: If another import is running.
            MarketDataError: On upstream failures.
        """
        if _import_state.lock.locked():
            raise ImportInProgressError()

        async with _import_state.lock:
            summary = await self._import_from_free_universe(universe)
            _import_state.last_imported_at = utc_now()
            _import_state.last_summary = summary
            return summary

    async def _import_from_free_universe(self, universe: Optional[str]) -> ImportSummary:
        items = await self.finnhub.list_symbols_by_exchange("US")
        allowed_mics = allowed_mics_for(universe)

        selected = select_symbols(
            items,
            existing=await self._existing_symbols(allowed_mics),
            allowed_mics=allowed_mics,
            capacity=await self._remaining_capacity(),
        )

        imported = updated = 0
        for ticker, item in selected:
            result = await self.session.execute(select(Symbol).where(Symbol.symbol == ticker))
            entity = result.scalar_one_or_none()

            if entity is None:
                entity = Symbol(symbol=ticker, enabled=True)
                self.session.add(entity)
                imported += 1
            else:
                updated += 1

            entity.name = item.description
            entity.exchange = item.mic or "US"
            entity.currency = item.currency
            entity.mic = item.mic

        await self.session.flush()

        summary = ImportSummary(imported=imported, updated=updated, skipped=max(0, len(items) - len(selected)))
        logger.info(
            f"Symbol import ({universe or 'default'}): imported={summary.imported} "
            f"updated={summary.updated} skipped={summary.skipped}"
        )
        return summary

    async def _existing_symbols(self, allowed_mics: frozenset) -> Set[str]:
        result = await self.session.execute(select(Symbol.symbol, Symbol.mic))
        return {
            symbol for symbol, mic in result.all()
            if not allowed_mics or mic in allowed_mics
        }

    async def _remaining_capacity(self) -> int:
        count = await self.session.scalar(select(func.count()).select_from(Symbol)) or 0
        remaining = max(0, settings.symbols.total_limit - count)
        return min(settings.symbols.max_per_import, remaining)

    @staticmethod
    def import_status() -> ImportStatus:
        return ImportStatus(
            running=_import_state.lock.locked(),
            last_imported_at=_import_state.last_imported_at,
            last_summary=_import_state.last_summary,
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_symbols(
        self,
        q: Optional[str] = None,
        enabled: Optional[bool] = None,
        page: int = 0,
        size: Optional[int] = None,
    ) -> SymbolPage:
        """Case-insensitive search on ticker or name, sorted by ticker, zero-based pages."""
        size = size or settings.symbols.page_size
        page = max(0, page)

        conditions = []
        if not is_blank(q):
            pattern = f"%{q.strip().lower()}%"
            conditions.append(or_(func.lower(Symbol.symbol).like(pattern), func.lower(Symbol.name).like(pattern)))
        if enabled is not None:
            conditions.append(Symbol.enabled.is_(enabled))

        total = await self.session.scalar(select(func.count()).select_from(Symbol).where(*conditions)) or 0
        result = await self.session.execute(
            select(Symbol).where(*conditions).order_by(Symbol.symbol).offset(page * size).limit(size)
        )
        return SymbolPage(items=list(result.scalars().all()), total=total, page=page, size=size)

    async def set_enabled(self, symbol_id: int, enabled: bool) -> Symbol:
        """
        Raises:
            SymbolNotFoundError: Unknown id.
            SymbolInUseError: Disabling a symbol that someone holds.
        """
        entity = await self.session.get(Symbol, symbol_id)
        if entity is None:
            raise SymbolNotFoundError(symbol_id)

        if not enabled and entity.enabled:
            held = await self.session.scalar(
                select(func.count()).select_from(Portfolio).where(
                    Portfolio.symbol_id == symbol_id, Portfolio.shares_owned > 0
                )
            )
            if held:
                raise SymbolInUseError(entity.symbol)

        entity.enabled = enabled
        await self.session.flush()
        logger.info(f"Symbol {entity.symbol} enabled={enabled}")
        return entity
