"""
Paperfolio Services Package
Domain services operating on an AsyncSession.
"""

from paperfolio.services.auth import AuthService, AuthTokens, Registration, normalize_role
from paperfolio.services.mystery_pages import MysteryPageService, WikipediaClient
from paperfolio.services.notifications import SYSTEM_SENDER_ID, NotificationService
from paperfolio.services.passcodes import PasscodeService
from paperfolio.services.portfolio import PortfolioService
from paperfolio.services.refresh_tokens import RefreshTokenService
from paperfolio.services.symbols import ImportStatus, ImportSummary, SymbolService
from paperfolio.services.trading import TradeExecution, TradingService
from paperfolio.services.users import UserService
from paperfolio.services.wallets import WalletBalance, WalletService

__all__ = [
    "AuthService",
    "AuthTokens",
    "Registration",
    "normalize_role",
    "MysteryPageService",
    "WikipediaClient",
    "NotificationService",
    "SYSTEM_SENDER_ID",
    "PasscodeService",
    "PortfolioService",
    "RefreshTokenService",
    "SymbolService",
    "ImportStatus",
    "ImportSummary",
    "TradingService",
    "TradeExecution",
    "UserService",
    "WalletService",
    "WalletBalance",
]
