"""
Paperfolio Auth Service
Registration, login, token refresh and logout.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.database.models import Role, User
from paperfolio.dependencies.auth import create_access_token, verify_password
from paperfolio.exceptions import InvalidCredentialsError, RoleNotAssignedError
from paperfolio.services.notifications import NotificationService
from paperfolio.services.passcodes import PasscodeService
from paperfolio.services.refresh_tokens import RefreshTokenService
from paperfolio.services.users import UserService

logger = logging.getLogger(__name__)

WELCOME_SUBJECT = "Welcome to Paperfolio"
WELCOME_BODY = (
    "Your account is ready. Your wallet has been funded with virtual cash, "
    "so you can start building a paper portfolio right away."
)


@dataclass
class Registration:
    id: int
    username: str
    roles: List[str]


@dataclass
class AuthTokens:
    access_token: str
    refresh_token: str
    token_type: str
    username: str
    roles: List[str]
    authenticated_as: str


def normalize_role(raw: Optional[str]) -> str:
    """Trim, upper-case and add the ROLE_ prefix when missing."""
    value = (raw or "").strip().upper()
    if not value.startswith("ROLE_"):
        value = f"ROLE_{value}"
    return value


class AuthService:
    """Authentication flows backed by JWT access tokens and opaque refresh tokens."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserService(session)
        self.passcodes = PasscodeService(session)
        self.refresh_tokens = RefreshTokenService(session)
        self.notifications = NotificationService(session)

    async def register(
        self,
        username: str,
        password: str,
        passcode: str,
        email: Optional[str] = None,
    ) -> Registration:
        """
        Create a self-registered account holding both user and admin roles.

        Raises:
            InvalidPasscodeError: If the passcode is wrong.
        """
        await self.passcodes.validate(passcode)

        user = await self.users.create_user(
            username=username,
            password=password,
            email=email,
            roles=[Role.ROLE_USER.value, Role.ROLE_ADMIN.value],
            is_fake=False,
        )

        await self.notifications.notify_quietly(user.id, WELCOME_SUBJECT, WELCOME_BODY)

        logger.info(f"Registered user {user.username}")
        return Registration(id=user.id, username=user.username, roles=list(user.roles))

    async def login(self, username: str, password: str, chosen_role: Optional[str]) -> AuthTokens:
        """
        Raises:
            InvalidCredentialsError: On unknown user or wrong password.
            RoleNotAssignedError: If the chosen role is unknown or not held.
        """
        user = await self.users.get_by_username(username)
        if user is None or not verify_password(password, user.hashed_password):
            raise InvalidCredentialsError()

        role = normalize_role(chosen_role)
        if role not in {r.value for r in Role} or not user.has_role(role):
            raise RoleNotAssignedError(role)

        refresh_token = await self.refresh_tokens.create(user, role)
        logger.info(f"User {user.username} logged in as {role}")
        return self._tokens(user, refresh_token.token, role)

    async def refresh(self, token: Optional[str]) -> AuthTokens:
        """
        Exchange a usable refresh token for a new access/refresh pair.

        Raises:
            InvalidRefreshTokenError: If the token is unknown, revoked or expired.
        """
        old = await self.refresh_tokens.validate_usable(token)
        fresh = await self.refresh_tokens.rotate(old)
        return self._tokens(fresh.user, fresh.token, fresh.authenticated_as)

    async def logout(self, token: Optional[str]) -> None:
        await self.refresh_tokens.revoke(token)

    @staticmethod
    def _tokens(user: User, refresh_token: str, role: str) -> AuthTokens:
        return AuthTokens(
            access_token=create_access_token(user.id, user.username, role),
            refresh_token=refresh_token,
            token_type="Bearer",
            username=user.username,
            roles=list(user.roles),
            authenticated_as=role,
        )
