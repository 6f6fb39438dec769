"""
Paperfolio Domain Exceptions
Typed errors raised by services and translated to HTTP responses by the app.
"""

from typing import Optional

from fastapi import status


class PaperfolioError(Exception):
    """Base exception for domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    title: str = "Bad request"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ============================================================================
# Users / Auth
# ============================================================================

class UserNotFoundError(PaperfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "User not found"

    def __init__(self, ident):
        super().__init__(f"User not found: {ident}")


class UserAlreadyExistsError(PaperfolioError):
    status_code = status.HTTP_409_CONFLICT
    title = "User already exists"

    def __init__(self, username: str):
        super().__init__(f"Username already taken: {username}")


class EmailAlreadyExistsError(PaperfolioError):
    status_code = status.HTTP_409_CONFLICT
    title = "Email already exists"

    def __init__(self, email: str):
        super().__init__(f"Email already registered: {email}")


class WeakPasswordError(PaperfolioError):
    title = "Weak password"

    def __init__(self):
        super().__init__("Password must be 8-128 characters and contain a letter and a digit")


class InvalidPasscodeError(PaperfolioError):
    status_code = status.HTTP_403_FORBIDDEN
    title = "Invalid passcode"

    def __init__(self):
        super().__init__("Invalid registration passcode")


class InvalidCredentialsError(PaperfolioError):
    status_code = status.HTTP_401_UNAUTHORIZED
    title = "Invalid credentials"

    def __init__(self):
        super().__init__("Invalid username or password")


class RoleNotAssignedError(PaperfolioError):
    status_code = status.HTTP_403_FORBIDDEN
    title = "Role not assigned"

    def __init__(self, role: str):
        super().__init__(f"Role not assigned to user: {role}")


class InvalidRefreshTokenError(PaperfolioError):
    status_code = status.HTTP_401_UNAUTHORIZED
    title = "Invalid refresh token"

    def __init__(self, reason: str = "Refresh token is invalid, revoked or expired"):
        super().__init__(reason)


class StreamAuthenticationError(PaperfolioError):
    status_code = status.HTTP_401_UNAUTHORIZED
    title = "Stream authentication failed"


# ============================================================================
# Trading
# ============================================================================

class WalletNotFoundError(PaperfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Wallet not found"

    def __init__(self, username: str):
        super().__init__(f"Wallet not found for user: {username}")


class InvalidAmountError(PaperfolioError):
    title = "Invalid amount"


class PositionNotFoundError(PaperfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Position not found"

    def __init__(self, symbol: str):
        super().__init__(f"No position held in {symbol}")


class SymbolNotFoundError(PaperfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Symbol not found"

    def __init__(self, ident):
        super().__init__(f"Symbol not found: {ident}")


class InsufficientFundsError(PaperfolioError):
    title = "Insufficient funds"

    def __init__(self, username: str, required, available):
        super().__init__(
            f"Insufficient funds for {username}: required ${required}, available ${available}"
        )
        self.required = required
        self.available = available


class InsufficientSharesError(PaperfolioError):
    title = "Insufficient shares"

    def __init__(self, symbol: str, owned: int, requested: int):
        super().__init__(f"Insufficient shares of {symbol}: owned {owned}, requested {requested}")
        self.owned = owned
        self.requested = requested


class PriceUnavailableError(PaperfolioError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    title = "Price unavailable"

    def __init__(self, symbol: str, cause: Optional[Exception] = None):
        message = f"Current price unavailable for {symbol}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class PriceSlippageError(PaperfolioError):
    status_code = status.HTTP_409_CONFLICT
    title = "Price moved"

    def __init__(self, symbol: str, expected, actual):
        super().__init__(f"Price of {symbol} moved from expected ${expected} to ${actual}")


# ============================================================================
# Symbols
# ============================================================================

class SymbolInUseError(PaperfolioError):
    status_code = status.HTTP_409_CONFLICT
    title = "Symbol in use"

    def __init__(self, symbol: str):
        super().__init__(f"Symbol {symbol} is held in at least one portfolio and cannot be disabled")


class ImportInProgressError(PaperfolioError):
    status_code = status.HTTP_409_CONFLICT
    title = "Import in progress"

    def __init__(self):
        super().__init__("A symbol import is already running")


# ============================================================================
# Notifications
# ============================================================================

class EmptyNotificationSubjectError(PaperfolioError):
    title = "Empty subject"

    def __init__(self):
        super().__init__("Notification subject must not be blank")


class EmptyNotificationBodyError(PaperfolioError):
    title = "Empty body"

    def __init__(self):
        super().__init__("Notification body must not be blank")


class NotificationNotFoundError(PaperfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Notification not found"

    def __init__(self, notification_id: int):
        super().__init__(f"Notification not found: {notification_id}")


# ============================================================================
# Mystery pages
# ============================================================================

class MysteryPageNotFoundError(PaperfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Mystery page not found"

    def __init__(self, user_id: int):
        super().__init__(f"No mystery page for user {user_id}")


# ============================================================================
# Market data
# ============================================================================

class MarketDataError(PaperfolioError):
    """Base exception for upstream market data failures."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    title = "Market data unavailable"

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class MarketDataUnavailableError(MarketDataError):
    pass


class ApiRateLimitError(MarketDataError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    title = "Upstream rate limit"

    def __init__(self, provider: str, retry_after: float = 1.0):
        super().__init__(provider, "rate limit exceeded")
        self.retry_after = retry_after


class QuoteNotFoundError(PaperfolioError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Quote not found"

    def __init__(self, symbol: str):
        super().__init__(f"No current price for {symbol}")


__all__ = [
    "PaperfolioError",
    "UserNotFoundError",
    "UserAlreadyExistsError",
    "EmailAlreadyExistsError",
    "WeakPasswordError",
    "InvalidPasscodeError",
    "InvalidCredentialsError",
    "RoleNotAssignedError",
    "InvalidRefreshTokenError",
    "StreamAuthenticationError",
    "WalletNotFoundError",
    "InvalidAmountError",
    "PositionNotFoundError",
    "SymbolNotFoundError",
    "InsufficientFundsError",
    "InsufficientSharesError",
    "PriceUnavailableError",
    "PriceSlippageError",
    "SymbolInUseError",
    "ImportInProgressError",
    "EmptyNotificationSubjectError",
    "EmptyNotificationBodyError",
    "NotificationNotFoundError",
    "MysteryPageNotFoundError",
    "MarketDataError",
    "MarketDataUnavailableError",
    "ApiRateLimitError",
    "QuoteNotFoundError",
]
