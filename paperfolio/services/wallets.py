"""
Paperfolio Wallet Service
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.database.models import Portfolio, Wallet
from paperfolio.exceptions import InvalidAmountError, WalletNotFoundError
from paperfolio.services.users import UserService
from paperfolio.utils.helpers import money, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class WalletBalance:
    cash_balance: Decimal
    invested: Decimal
    total: Decimal


class WalletService:
    """Cash balances. Trades move cash through TradingService."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserService(session)

    async def get_wallet(self, user_id: int, username: Optional[str] = None, for_update: bool = False) -> Wallet:
        """
        With `for_update` the row is read with SELECT ... FOR UPDATE and stays
        locked until the surrounding transaction ends.

        Raises:
            UserNotFoundError: If the user does not exist.
            WalletNotFoundError: If the user has no wallet.
        """
        if username is None:
            username = (await self.users.get_user(user_id)).username

        wallet = await self.session.get(Wallet, user_id, with_for_update=True if for_update else None)
        if wallet is None:
            raise WalletNotFoundError(username)
        return wallet

    async def get_balance(self, user_id: int) -> WalletBalance:
        """Cash, invested capital at cost, and their sum."""
        wallet = await self.get_wallet(user_id)

        result = await self.session.execute(select(Portfolio).where(Portfolio.user_id == user_id))
        invested = sum((holding.total_cost for holding in result.scalars().all()), Decimal("0"))
        invested = money(invested)

        return WalletBalance(
            cash_balance=wallet.cash_balance,
            invested=invested,
            total=money(wallet.cash_balance + invested),
        )

    async def add_cash(self, user_id: int, amount, reason: Optional[str] = None) -> Wallet:
        amount = money(to_decimal(amount))
        if amount <= 0:
            raise InvalidAmountError("Amount must be greater than zero")

        user = await self.users.get_user(user_id)
        wallet = await self.get_wallet(user_id, user.username, for_update=True)
        wallet.cash_balance = money(wallet.cash_balance + amount)
        await self.session.flush()

        logger.info(
            f"Added ${amount} to wallet of {user.username} "
            f"(reason={reason or 'n/a'}), new balance ${wallet.cash_balance}"
        )
        return wallet
