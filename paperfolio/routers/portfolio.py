"""
Portfolio Router

Holdings at cost for a user.
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db_session
from ..dependencies.auth import get_token_payload
from ..services.portfolio import Holding, PortfolioService

router = APIRouter(
    prefix="/portfolio",
    tags=["Portfolio"],
    dependencies=[Depends(get_token_payload)],
)


# Response Models
class HoldingResponse(BaseModel):
    symbol: str
    name: Optional[str]
    shares_owned: int
    average_cost_basis: Decimal
    total_invested: Decimal


class PortfolioResponse(BaseModel):
    user_id: int
    holdings: List[HoldingResponse]
    cash_balance: Decimal
    total_invested: Decimal
    total_value: Decimal


def get_portfolio_service(db: AsyncSession = Depends(get_db_session)) -> PortfolioService:
    return PortfolioService(db)


def holding_response(holding: Holding) -> HoldingResponse:
    return HoldingResponse(
        symbol=holding.symbol,
        name=holding.name,
        shares_owned=holding.shares_owned,
        average_cost_basis=holding.average_cost_basis,
        total_invested=holding.total_invested,
    )


@router.get("/{user_id}", response_model=PortfolioResponse)
async def get_portfolio(user_id: int, service: PortfolioService = Depends(get_portfolio_service)):
    view = await service.get_portfolio(user_id)
    return PortfolioResponse(
        user_id=user_id,
        holdings=[holding_response(h) for h in view.holdings],
        cash_balance=view.cash_balance,
        total_invested=view.total_invested,
        total_value=view.total_value,
    )


@router.get("/{user_id}/holdings/{symbol}", response_model=HoldingResponse)
async def get_holding(
    user_id: int,
    symbol: str,
    service: PortfolioService = Depends(get_portfolio_service),
):
    """A single position; zero shares when the symbol is not held."""
    return holding_response(await service.get_holding(user_id, symbol))
