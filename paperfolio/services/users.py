"""
Paperfolio User Service
User accounts and their wallets.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.config.settings import settings
from paperfolio.database.models import (
    MysteryPage,
    Notification,
    Portfolio,
    RefreshToken,
    Role,
    Transaction,
    User,
    Wallet,
)
from paperfolio.dependencies.auth import hash_password, is_password_strong
from paperfolio.exceptions import (
    EmailAlreadyExistsError,
    UserAlreadyExistsError,
    UserNotFoundError,
    WeakPasswordError,
)
from paperfolio.utils.helpers import is_blank, money

logger = logging.getLogger(__name__)


def _encode_password(raw_password: Optional[str]) -> str:
    if not is_password_strong(raw_password):
        raise WeakPasswordError()
    return hash_password(raw_password)


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if is_blank(email):
        return None
    return email.strip().lower()


class UserService:
    """Create, read, update and delete users."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        username: str,
        password: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        roles: Optional[Iterable[str]] = None,
        is_fake: bool = False,
    ) -> User:
        """
        Create a user and its wallet in the current transaction.

        Raises:
            UserAlreadyExistsError: If the username is taken.
            EmailAlreadyExistsError: If the email is registered.
            WeakPasswordError: If the password fails the strength rule.
        """
        username = username.strip()
        email = _normalize_email(email)

        if await self.get_by_username(username) is not None:
            raise UserAlreadyExistsError(username)

        if email is not None and await self.get_by_email(email) is not None:
            raise EmailAlreadyExistsError(email)

        role_values = sorted({Role(role).value for role in roles}) if roles else [Role.ROLE_USER.value]

        user = User(
            username=username,
            email=email,
            hashed_password=_encode_password(password),
            first_name=first_name,
            last_name=last_name,
            roles=role_values,
            is_fake=is_fake,
        )
        self.session.add(user)
        await self.session.flush()

        self.session.add(Wallet(user_id=user.id, cash_balance=money(settings.wallet.initial_balance)))
        await self.session.flush()

        logger.info(f"Created user {user.username} (id={user.id}, roles={role_values})")
        return user

    async def list_users(self) -> List[User]:
        result = await self.session.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def get_user(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def update_user(
        self,
        user_id: int,
        username: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """Apply the non-blank fields, keeping username and email unique."""
        user = await self.get_user(user_id)

        if not is_blank(username):
            new_username = username.strip()
            if new_username != user.username and await self.get_by_username(new_username) is not None:
                raise UserAlreadyExistsError(new_username)
            user.username = new_username

        new_email = _normalize_email(email)
        if new_email is not None:
            if new_email != user.email and await self.get_by_email(new_email) is not None:
                raise EmailAlreadyExistsError(new_email)
            user.email = new_email

        if not is_blank(password):
            user.hashed_password = _encode_password(password)

        if first_name is not None:
            user.first_name = first_name
        if last_name is not None:
            user.last_name = last_name

        await self.session.flush()
        return user

    async def delete_user(self, user_id: int) -> None:
        """Delete a user together with everything it owns."""
        user = await self.get_user(user_id)

        for model in (Portfolio, Transaction, RefreshToken, MysteryPage, Wallet):
            await self.session.execute(delete(model).where(model.user_id == user_id))
        await self.session.execute(
            delete(Notification).where(Notification.receiver_user_id == user_id)
        )

        await self.session.delete(user)
        await self.session.flush()
        logger.info(f"Deleted user {user_id}")
