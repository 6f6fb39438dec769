"""
Paperfolio Trading Service
Market buy and sell execution against the user's wallet.

Buys update the weighted-average cost basis. Sells realize profit/loss by
matching the sold quantity against earlier buy lots, oldest first. All
validation happens before the first write, so a rejected order leaves
wallet, holdings and history untouched.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.config.settings import settings
from paperfolio.database.models import Portfolio, Symbol, Transaction, TransactionType
from paperfolio.exceptions import (
    InsufficientFundsError,
    InsufficientSharesError,
    InvalidAmountError,
    PositionNotFoundError,
    PriceSlippageError,
    PriceUnavailableError,
    SymbolNotFoundError,
)
from paperfolio.services.notifications import NotificationService
from paperfolio.services.portfolio import PortfolioService, PortfolioSummary
from paperfolio.services.wallets import WalletService
from paperfolio.utils.helpers import money, normalize_symbol, to_decimal, utc_now

logger = logging.getLogger(__name__)

COST_BASIS_QUANTUM = Decimal("0.0001")


@dataclass
class TradeExecution:
    transaction: Transaction
    cash_balance: Decimal
    shares_owned: int


def weighted_average_cost(
    average_cost: Decimal,
    shares_owned: int,
    total_amount: Decimal,
    quantity: int,
) -> Decimal:
    """New cost basis after buying `quantity` shares for `total_amount`."""
    total_cost = average_cost * shares_owned + total_amount
    return (total_cost / (shares_owned + quantity)).quantize(COST_BASIS_QUANTUM, rounding=ROUND_HALF_UP)


def fifo_profit_loss(
    buy_lots: List[Transaction],
    already_sold: int,
    quantity: int,
    sale_price: Decimal,
) -> Optional[Decimal]:
    """
    Realized P/L of selling `quantity` at `sale_price`.

    Lots are consumed oldest first after skipping the `already_sold` shares
    matched by earlier sells. None when there is no lot to match against.
    """
    to_skip = already_sold
    to_match = quantity
    profit_loss = Decimal("0")
    matched = False

    for lot in buy_lots:
        available = lot.quantity
        if to_skip > 0:
            skipped = min(to_skip, available)
            available -= skipped
            to_skip -= skipped
        if available <= 0:
            continue

        consumed = min(available, to_match)
        profit_loss += (sale_price - to_decimal(lot.price_per_share)) * consumed
        to_match -= consumed
        matched = True

        if to_match == 0:
            break

    return money(profit_loss) if matched else None


class TradingService:
    """Execute trades and expose trade history."""

    def __init__(self, session: AsyncSession, price_service, notifications: Optional[NotificationService] = None):
        self.session = session
        self.price_service = price_service
        self.notifications = notifications or NotificationService(session)
        self.wallets = WalletService(session)
        self.portfolios = PortfolioService(session, price_service)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _tradable_symbol(self, symbol: str) -> Symbol:
        result = await self.session.execute(select(Symbol).where(Symbol.symbol == symbol))
        entity = result.scalar_one_or_none()
        if entity is None or not entity.enabled:
            raise SymbolNotFoundError(symbol)
        return entity

    # Holdings are read FOR UPDATE OF portfolios only: the eager-loaded symbol
    # sits on the nullable side of an outer join, which Postgres cannot lock.
    async def _holding(self, user_id: int, symbol_id: int) -> Optional[Portfolio]:
        result = await self.session.execute(
            select(Portfolio)
            .where(Portfolio.user_id == user_id, Portfolio.symbol_id == symbol_id)
            .with_for_update(of=Portfolio)
            .execution_options(populate_existing=True)
        )
        return result.scalars().unique().one_or_none()

    async def _holding_by_ticker(self, user_id: int, symbol: str) -> Optional[Portfolio]:
        result = await self.session.execute(
            select(Portfolio)
            .join(Symbol, Portfolio.symbol_id == Symbol.id)
            .where(Portfolio.user_id == user_id, Symbol.symbol == symbol)
            .with_for_update(of=Portfolio)
            .execution_options(populate_existing=True)
        )
        return result.scalars().unique().one_or_none()

    async def _current_price(self, symbol: str) -> Decimal:
        try:
            quote = await self.price_service.get_current_price(symbol)
        except Exception as e:
            logger.error(f"Failed to get current price for symbol {symbol}: {e}")
            raise PriceUnavailableError(symbol, e) from e

        if quote is None:
            raise PriceUnavailableError(symbol)
        return money(to_decimal(quote.price))

    def _check_slippage(self, symbol: str, expected_price, actual: Decimal) -> None:
        tolerance = settings.trading.slippage_tolerance_pct
        if expected_price is None or tolerance is None:
            return

        expected = to_decimal(expected_price)
        if expected <= 0:
            return

        deviation_pct = abs(actual - expected) / expected * 100
        if deviation_pct > tolerance:
            raise PriceSlippageError(symbol, money(expected), actual)

    async def _record(
        self,
        user_id: int,
        symbol: Symbol,
        trade_type: TransactionType,
        quantity: int,
        price: Decimal,
        total: Decimal,
        profit_loss: Optional[Decimal] = None,
    ) -> Transaction:
        transaction = Transaction(
            user_id=user_id,
            symbol_id=symbol.id,
            type=trade_type,
            quantity=quantity,
            price_per_share=price,
            total_amount=total,
            profit_loss=profit_loss,
            executed_at=utc_now(),
        )
        self.session.add(transaction)
        await self.session.flush()
        transaction.symbol = symbol
        return transaction

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def buy(self, user_id: int, symbol: str, quantity: int, expected_price=None) -> TradeExecution:
        """
        Buy `quantity` shares at the current market price.

        Raises:
            SymbolNotFoundError: Unknown or disabled symbol.
            PriceUnavailableError: No quote could be obtained.
            PriceSlippageError: Quote moved beyond the configured tolerance.
            InsufficientFundsError: Cash does not cover the order.
        """
        if quantity < 1:
            raise InvalidAmountError("Quantity must be at least 1")

        ticker = normalize_symbol(symbol)
        user = await self.wallets.users.get_user(user_id)
        logger.info(f"Executing buy order for user: {user.username}, symbol: {ticker}, quantity: {quantity}")

        entity = await self._tradable_symbol(ticker)
        price = await self._current_price(ticker)
        self._check_slippage(ticker, expected_price, price)

        total = money(price * quantity)
        wallet = await self.wallets.get_wallet(user_id, user.username, for_update=True)
        if wallet.cash_balance < total:
            raise InsufficientFundsError(user.username, total, wallet.cash_balance)

        wallet.cash_balance = money(wallet.cash_balance - total)

        holding = await self._holding(user_id, entity.id)
        if holding is None:
            holding = Portfolio(
                user_id=user_id,
                symbol_id=entity.id,
                shares_owned=0,
                average_cost_basis=Decimal("0"),
            )
            holding.symbol = entity
            self.session.add(holding)

        holding.average_cost_basis = weighted_average_cost(
            to_decimal(holding.average_cost_basis), holding.shares_owned, total, quantity
        )
        holding.shares_owned += quantity

        transaction = await self._record(user_id, entity, TransactionType.BUY, quantity, price, total)

        logger.info(
            f"Buy order executed for user: {user.username}, symbol: {ticker}, "
            f"quantity: {quantity}, price: {price}"
        )
        await self.notifications.notify_quietly(
            user_id,
            f"Buy order executed: {ticker}",
            f"Bought {quantity} shares of {ticker} at ${price} for a total of ${total}.",
        )
        return TradeExecution(transaction, wallet.cash_balance, holding.shares_owned)

    async def sell(self, user_id: int, symbol: str, quantity: int, expected_price=None) -> TradeExecution:
        """
        Sell `quantity` shares at the current market price.

        Raises:
            PositionNotFoundError: The user holds no shares of the symbol.
            InsufficientSharesError: The user holds fewer shares than requested.
            PriceUnavailableError: No quote could be obtained.
            PriceSlippageError: Quote moved beyond the configured tolerance.
        """
        if quantity < 1:
            raise InvalidAmountError("Quantity must be at least 1")

        ticker = normalize_symbol(symbol)
        user = await self.wallets.users.get_user(user_id)
        logger.info(f"Executing sell order for user: {user.username}, symbol: {ticker}, quantity: {quantity}")

        # wallet before holding, same lock order as buy
        wallet = await self.wallets.get_wallet(user_id, user.username, for_update=True)
        holding = await self._holding_by_ticker(user_id, ticker)
        if holding is None:
            raise PositionNotFoundError(ticker)

        if holding.shares_owned < quantity:
            raise InsufficientSharesError(ticker, holding.shares_owned, quantity)

        price = await self._current_price(ticker)
        self._check_slippage(ticker, expected_price, price)

        entity = holding.symbol
        proceeds = money(price * quantity)
        profit_loss = await self._realized_profit_loss(user_id, entity.id, quantity, price)

        wallet.cash_balance = money(wallet.cash_balance + proceeds)

        holding.shares_owned -= quantity
        remaining = holding.shares_owned
        if remaining == 0:
            await self.session.delete(holding)

        transaction = await self._record(
            user_id, entity, TransactionType.SELL, quantity, price, proceeds, profit_loss
        )

        logger.info(
            f"Sell order executed for user: {user.username}, symbol: {ticker}, "
            f"quantity: {quantity}, price: {price}, profit_loss: {profit_loss}"
        )
        await self.notifications.notify_quietly(
            user_id,
            f"Sell order executed: {ticker}",
            f"Sold {quantity} shares of {ticker} at ${price} for a total of ${proceeds}.",
        )
        return TradeExecution(transaction, wallet.cash_balance, remaining)

    async def _realized_profit_loss(
        self,
        user_id: int,
        symbol_id: int,
        quantity: int,
        sale_price: Decimal,
    ) -> Optional[Decimal]:
        buys = await self.session.execute(
            select(Transaction)
            .where(
                Transaction.user_id == user_id,
                Transaction.symbol_id == symbol_id,
                Transaction.type == TransactionType.BUY,
            )
            .order_by(Transaction.executed_at, Transaction.id)
        )
        already_sold = await self.session.scalar(
            select(func.coalesce(func.sum(Transaction.quantity), 0)).where(
                Transaction.user_id == user_id,
                Transaction.symbol_id == symbol_id,
                Transaction.type == TransactionType.SELL,
            )
        )
        return fifo_profit_loss(list(buys.scalars().unique().all()), int(already_sold or 0), quantity, sale_price)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def history(self, user_id: int) -> List[Transaction]:
        """Transactions, newest first."""
        user = await self.wallets.users.get_user(user_id)
        logger.info(f"Getting transaction history for user: {user.username}")

        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.executed_at.desc(), Transaction.id.desc())
        )
        return list(result.scalars().unique().all())

    async def summary(self, user_id: int) -> PortfolioSummary:
        return await self.portfolios.get_summary(user_id)
