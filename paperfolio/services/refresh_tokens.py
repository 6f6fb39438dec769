"""
Paperfolio Refresh Token Service

Refresh tokens are opaque random strings persisted server-side. A token is
active until it is revoked or expires; both states are terminal. Every use
rotates the token: the presented one is revoked and a new one is issued for
the same user and role.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.config.settings import settings
from paperfolio.database.models import RefreshToken, Role, User
from paperfolio.exceptions import InvalidRefreshTokenError
from paperfolio.utils.helpers import is_blank, utc_now

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """64 random bytes, URL-safe base64 without padding."""
    return secrets.token_urlsafe(64)


class RefreshTokenService:
    """Create, validate, rotate and revoke refresh tokens."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, token: Optional[str]) -> Optional[RefreshToken]:
        if is_blank(token):
            return None
        result = await self.session.execute(select(RefreshToken).where(RefreshToken.token == token))
        return result.scalar_one_or_none()

    async def create(self, user: User, authenticated_as: str = Role.ROLE_USER.value) -> RefreshToken:
        refresh_token = RefreshToken(
            token=generate_token(),
            user_id=user.id,
            expires_at=utc_now() + timedelta(days=settings.jwt.refresh_token_expire_days),
            revoked=False,
            authenticated_as=authenticated_as,
        )
        self.session.add(refresh_token)
        await self.session.flush()
        # populate the joined user relationship for callers
        refresh_token.user = user
        return refresh_token

    async def validate_usable(self, token: Optional[str]) -> RefreshToken:
        """
        Raises:
            InvalidRefreshTokenError: If the token is unknown, revoked or expired.
        """
        refresh_token = await self.find(token)
        if refresh_token is None:
            raise InvalidRefreshTokenError("Invalid refresh token")

        if refresh_token.revoked or refresh_token.is_expired():
            raise InvalidRefreshTokenError("Expired or revoked refresh token")

        return refresh_token

    async def rotate(self, old: RefreshToken) -> RefreshToken:
        """Revoke `old` and issue a new token for the same user and role."""
        old.revoked = True
        await self.session.flush()

        user = old.user or await self.session.get(User, old.user_id)
        fresh = await self.create(user, old.authenticated_as or Role.ROLE_USER.value)
        logger.debug(f"Rotated refresh token for user {old.user_id}")
        return fresh

    async def revoke(self, token: Optional[str]) -> None:
        """Revoke the token if it exists."""
        refresh_token = await self.find(token)
        if refresh_token is None:
            return
        refresh_token.revoked = True
        await self.session.flush()

    async def revoke_all_for_user(self, user_id: int) -> int:
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .values(revoked=True)
        )
        return result.rowcount or 0
