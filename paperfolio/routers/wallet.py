"""
Wallet Router

Cash balances and admin top-ups.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db_session
from ..dependencies.auth import get_token_payload, require_admin
from ..services.wallets import WalletService

router = APIRouter(prefix="/wallet", tags=["Wallet"])


# Request/Response Models
class AddCashRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=255)


class BalanceResponse(BaseModel):
    user_id: int
    cash_balance: Decimal
    invested: Decimal
    total: Decimal


class WalletResponse(BaseModel):
    user_id: int
    cash_balance: Decimal


def get_wallet_service(db: AsyncSession = Depends(get_db_session)) -> WalletService:
    return WalletService(db)


@router.get("/{user_id}/balance", response_model=BalanceResponse, dependencies=[Depends(get_token_payload)])
async def get_balance(user_id: int, service: WalletService = Depends(get_wallet_service)):
    """Cash, capital invested at cost, and their total."""
    balance = await service.get_balance(user_id)
    return BalanceResponse(
        user_id=user_id,
        cash_balance=balance.cash_balance,
        invested=balance.invested,
        total=balance.total,
    )


@router.post("/{user_id}/add-cash", response_model=WalletResponse, dependencies=[Depends(require_admin)])
async def add_cash(
    user_id: int,
    request: AddCashRequest,
    service: WalletService = Depends(get_wallet_service),
):
    wallet = await service.add_cash(user_id, request.amount, request.reason)
    return WalletResponse(user_id=wallet.user_id, cash_balance=wallet.cash_balance)
