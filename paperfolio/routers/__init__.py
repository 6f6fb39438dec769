"""
Paperfolio API Routers

All API route handlers, mounted under /api.
"""

from fastapi import APIRouter

from .auth import router as auth_router
from .market import router as market_router
from .notifications import router as notifications_router
from .portfolio import router as portfolio_router
from .stream import router as stream_router
from .symbols import router as symbols_router
from .trading import router as trading_router
from .users import router as users_router
from .wallet import router as wallet_router

api_router = APIRouter(prefix="/api")
api_router.include_router(auth_router)
api_router.include_router(users_router)
api_router.include_router(wallet_router)
api_router.include_router(portfolio_router)
api_router.include_router(trading_router)
api_router.include_router(symbols_router)
api_router.include_router(notifications_router)
api_router.include_router(market_router)
api_router.include_router(stream_router)

__all__ = [
    "api_router",
    "auth_router",
    "users_router",
    "wallet_router",
    "portfolio_router",
    "trading_router",
    "symbols_router",
    "notifications_router",
    "market_router",
    "stream_router",
]
