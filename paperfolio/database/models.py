"""
Paperfolio Database Models
All SQLAlchemy 2.0 async models for the paper-trading simulator.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paperfolio.database.connection import Base
from paperfolio.utils.helpers import utc_now


# ============================================================================
# Enums
# ============================================================================

class Role(str, enum.Enum):
    """Authorities a user can hold and authenticate as."""
    ROLE_USER = "ROLE_USER"
    ROLE_ADMIN = "ROLE_ADMIN"


class TransactionType(str, enum.Enum):
    """Trade direction."""
    BUY = "BUY"
    SELL = "SELL"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """
    Platform user. Owns one wallet and at most one mystery page.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Stored as a JSON list of Role values; reassign rather than mutate in place
    roles: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    is_fake: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"


class Wallet(Base):
    """
    Cash account, one per user. Debited on buys, credited on sells.
    """
    __tablename__ = "wallets"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    cash_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<Wallet(user_id={self.user_id}, cash_balance={self.cash_balance})>"


class Symbol(Base):
    """
    Tradable instrument. The enabled flag gates new trading.
    """
    __tablename__ = "symbols"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    exchange: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    mic: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_symbols_enabled", "enabled"),
    )

    def __repr__(self) -> str:
        return f"<Symbol(id={self.id}, symbol={self.symbol}, enabled={self.enabled})>"


class Portfolio(Base):
    """
    Holding of one symbol by one user. Exists only while shares_owned > 0.
    """
    __tablename__ = "portfolios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    symbol_id: Mapped[int] = mapped_column(ForeignKey("symbols.id"), nullable=False)
    shares_owned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    average_cost_basis: Mapped[Decimal] = mapped_column(Numeric(15, 4), default=Decimal("0"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    symbol: Mapped["Symbol"] = relationship("Symbol", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "symbol_id", name="uq_portfolios_user_symbol"),
    )

    @property
    def total_cost(self) -> Decimal:
        return self.average_cost_basis * self.shares_owned

    def market_value(self, current_price: Decimal) -> Decimal:
        return current_price * self.shares_owned

    def unrealized_gain(self, current_price: Decimal) -> Decimal:
        return self.market_value(current_price) - self.total_cost

    def __repr__(self) -> str:
        return (
            f"<Portfolio(user_id={self.user_id}, symbol_id={self.symbol_id}, "
            f"shares={self.shares_owned}, avg={self.average_cost_basis})>"
        )


class Transaction(Base):
    """
    Immutable trade record. profit_loss is only set on sells with lot history.
    """
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    symbol_id: Mapped[int] = mapped_column(ForeignKey("symbols.id"), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, name="transaction_type"),
        nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_share: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    profit_loss: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    executed_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    symbol: Mapped["Symbol"] = relationship("Symbol", lazy="joined")

    __table_args__ = (
        Index("ix_transactions_user_symbol_time", "user_id", "symbol_id", "executed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, type={self.type}, qty={self.quantity}, "
            f"price={self.price_per_share})>"
        )


class RefreshToken(Base):
    """
    Opaque refresh token. Active until revoked or expired; both are terminal.
    """
    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    authenticated_as: Mapped[str] = mapped_column(String(32), default=Role.ROLE_USER.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    user: Mapped["User"] = relationship("User", lazy="joined")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def __repr__(self) -> str:
        return f"<RefreshToken(id={self.id}, user_id={self.user_id}, revoked={self.revoked})>"


class Notification(Base):
    """
    Message from one user to another.
    """
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    receiver_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, receiver={self.receiver_user_id}, read={self.is_read})>"


class Passcode(Base):
    """
    Hashed registration passcode. The first active row is the one checked.
    """
    __tablename__ = "passcodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)


class MysteryPage(Base):
    """
    Encyclopedia summary a user pinned to their profile.
    """
    __tablename__ = "mystery_pages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)


__all__ = [
    "Role",
    "TransactionType",
    "User",
    "Wallet",
    "Symbol",
    "Portfolio",
    "Transaction",
    "RefreshToken",
    "Notification",
    "Passcode",
    "MysteryPage",
]
