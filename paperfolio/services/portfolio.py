"""
Paperfolio Portfolio Service
Holdings at cost and a mark-to-market summary.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.database.models import Portfolio, Symbol
from paperfolio.exceptions import MarketDataError, PriceUnavailableError
from paperfolio.services.wallets import WalletService
from paperfolio.utils.helpers import money, normalize_symbol, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class Holding:
    symbol: str
    name: Optional[str]
    shares_owned: int
    average_cost_basis: Decimal
    total_invested: Decimal

    @classmethod
    def from_portfolio(cls, portfolio: Portfolio) -> "Holding":
        return cls(
            symbol=portfolio.symbol.symbol,
            name=portfolio.symbol.name,
            shares_owned=portfolio.shares_owned,
            average_cost_basis=portfolio.average_cost_basis,
            total_invested=money(portfolio.total_cost),
        )

    @classmethod
    def empty(cls, symbol: str) -> "Holding":
        return cls(
            symbol=symbol,
            name=None,
            shares_owned=0,
            average_cost_basis=Decimal("0"),
            total_invested=Decimal("0.00"),
        )


@dataclass
class PortfolioView:
    holdings: List[Holding]
    cash_balance: Decimal
    total_invested: Decimal
    total_value: Decimal


@dataclass
class PositionSummary:
    symbol: str
    shares_owned: int
    average_cost_basis: Decimal
    current_price: Optional[Decimal]
    market_value: Decimal
    unrealized_gain: Decimal


@dataclass
class PortfolioSummary:
    cash_balance: Decimal
    total_market_value: Decimal
    total_unrealized_gain: Decimal
    total_value: Decimal
    positions: List[PositionSummary] = field(default_factory=list)


class PortfolioService:
    """Read models over a user's holdings."""

    def __init__(self, session: AsyncSession, price_service=None):
        self.session = session
        self.price_service = price_service
        self.wallets = WalletService(session)

    async def _holdings(self, user_id: int) -> List[Portfolio]:
        result = await self.session.execute(
            select(Portfolio)
            .join(Symbol, Portfolio.symbol_id == Symbol.id)
            .where(Portfolio.user_id == user_id)
            .order_by(Symbol.symbol)
        )
        return list(result.scalars().unique().all())

    async def get_portfolio(self, user_id: int) -> PortfolioView:
        """
        Holdings at cost plus cash.

        Raises:
            UserNotFoundError / WalletNotFoundError
        """
        wallet = await self.wallets.get_wallet(user_id)
        holdings = [Holding.from_portfolio(p) for p in await self._holdings(user_id)]

        total_invested = money(sum((h.total_invested for h in holdings), Decimal("0")))
        return PortfolioView(
            holdings=holdings,
            cash_balance=wallet.cash_balance,
            total_invested=total_invested,
            total_value=money(wallet.cash_balance + total_invested),
        )

    async def get_holding(self, user_id: int, symbol: str) -> Holding:
        """A single holding; zero shares when the symbol is not held."""
        normalized = normalize_symbol(symbol)
        await self.wallets.users.get_user(user_id)

        result = await self.session.execute(
            select(Portfolio)
            .join(Symbol, Portfolio.symbol_id == Symbol.id)
            .where(Portfolio.user_id == user_id, Symbol.symbol == normalized)
        )
        portfolio = result.scalars().unique().one_or_none()

        if portfolio is None:
            logger.debug(f"No holding found for user {user_id} and symbol {normalized}")
            return Holding.empty(normalized)
        return Holding.from_portfolio(portfolio)

    async def _current_prices(self, symbols: List[str]) -> Dict[str, Decimal]:
        if not symbols or self.price_service is None:
            return {}
        try:
            quotes = await self.price_service.get_all_current_prices()
        except MarketDataError as e:
            logger.error(f"Failed to get current prices for symbols {symbols}: {e}")
            raise PriceUnavailableError("multiple symbols", e) from e

        return {symbol: to_decimal(quotes[symbol].price) for symbol in symbols if symbol in quotes}

    async def get_summary(self, user_id: int) -> PortfolioSummary:
        """
        Mark-to-market view. Positions without a quote are valued at cost.
        """
        wallet = await self.wallets.get_wallet(user_id)
        holdings = await self._holdings(user_id)
        prices = await self._current_prices([h.symbol.symbol for h in holdings])

        positions = []
        for holding in holdings:
            price = prices.get(holding.symbol.symbol)
            if price is not None:
                market_value = money(holding.market_value(price))
                gain = money(holding.unrealized_gain(price))
            else:
                market_value = money(holding.total_cost)
                gain = Decimal("0.00")

            positions.append(PositionSummary(
                symbol=holding.symbol.symbol,
                shares_owned=holding.shares_owned,
                average_cost_basis=holding.average_cost_basis,
                current_price=price,
                market_value=market_value,
                unrealized_gain=gain,
            ))

        total_market_value = money(sum((p.market_value for p in positions), Decimal("0")))
        return PortfolioSummary(
            cash_balance=wallet.cash_balance,
            total_market_value=total_market_value,
            total_unrealized_gain=money(sum((p.unrealized_gain for p in positions), Decimal("0"))),
            total_value=money(wallet.cash_balance + total_market_value),
            positions=positions,
        )
