"""
Trading Router

Market buy/sell orders at the current quote, the mark-to-market summary
and transaction history.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..database.models import Transaction
from ..dependencies.auth import get_token_payload, require_user
from ..dependencies.services import get_trading_service
from ..services.trading import TradingService

router = APIRouter(prefix="/trades", tags=["Trading"])


# Request/Response Models
class TradeRequest(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=20)
    quantity: int = Field(..., ge=1)
    expected_price: Optional[Decimal] = Field(None, gt=0)


class TransactionResponse(BaseModel):
    id: int
    symbol: str
    type: str
    quantity: int
    price_per_share: Decimal
    total_amount: Decimal
    profit_loss: Optional[Decimal]
    executed_at: datetime


class TradeResponse(BaseModel):
    transaction: TransactionResponse
    cash_balance: Decimal
    shares_owned: int


class PositionResponse(BaseModel):
    symbol: str
    shares_owned: int
    average_cost_basis: Decimal
    current_price: Optional[Decimal]
    market_value: Decimal
    unrealized_gain: Decimal


class PortfolioSummaryResponse(BaseModel):
    user_id: int
    cash_balance: Decimal
    total_market_value: Decimal
    total_unrealized_gain: Decimal
    total_value: Decimal
    positions: List[PositionResponse]


def transaction_response(transaction: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        symbol=transaction.symbol.symbol,
        type=transaction.type.value,
        quantity=transaction.quantity,
        price_per_share=transaction.price_per_share,
        total_amount=transaction.total_amount,
        profit_loss=transaction.profit_loss,
        executed_at=transaction.executed_at,
    )


@router.post("/{user_id}/buy", response_model=TradeResponse, dependencies=[Depends(require_user)])
async def buy(
    user_id: int,
    request: TradeRequest,
    service: TradingService = Depends(get_trading_service),
):
    """Buy shares at the current market price."""
    execution = await service.buy(user_id, request.symbol, request.quantity, request.expected_price)
    return TradeResponse(
        transaction=transaction_response(execution.transaction),
        cash_balance=execution.cash_balance,
        shares_owned=execution.shares_owned,
    )


@router.post("/{user_id}/sell", response_model=TradeResponse, dependencies=[Depends(require_user)])
async def sell(
    user_id: int,
    request: TradeRequest,
    service: TradingService = Depends(get_trading_service),
):
    """Sell shares at the current market price; realized P/L is computed FIFO."""
    execution = await service.sell(user_id, request.symbol, request.quantity, request.expected_price)
    return TradeResponse(
        transaction=transaction_response(execution.transaction),
        cash_balance=execution.cash_balance,
        shares_owned=execution.shares_owned,
    )


@router.get(
    "/{user_id}/portfolio",
    response_model=PortfolioSummaryResponse,
    dependencies=[Depends(get_token_payload)],
)
async def portfolio_summary(user_id: int, service: TradingService = Depends(get_trading_service)):
    summary = await service.summary(user_id)
    return PortfolioSummaryResponse(
        user_id=user_id,
        cash_balance=summary.cash_balance,
        total_market_value=summary.total_market_value,
        total_unrealized_gain=summary.total_unrealized_gain,
        total_value=summary.total_value,
        positions=[
            PositionResponse(
                symbol=p.symbol,
                shares_owned=p.shares_owned,
                average_cost_basis=p.average_cost_basis,
                current_price=p.current_price,
                market_value=p.market_value,
                unrealized_gain=p.unrealized_gain,
            )
            for p in summary.positions
        ],
    )


@router.get(
    "/{user_id}/history",
    response_model=List[TransactionResponse],
    dependencies=[Depends(get_token_payload)],
)
async def history(user_id: int, service: TradingService = Depends(get_trading_service)):
    return [transaction_response(t) for t in await service.history(user_id)]
