"""
Paperfolio Registration Passcode Service
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.database.models import Passcode
from paperfolio.dependencies.auth import hash_password, verify_password
from paperfolio.exceptions import InvalidPasscodeError
from paperfolio.utils.helpers import is_blank

logger = logging.getLogger(__name__)


class PasscodeService:
    """Registration is gated by a shared passcode stored as a bcrypt hash."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _active(self) -> Optional[Passcode]:
        result = await self.session.execute(
            select(Passcode).where(Passcode.active.is_(True)).order_by(Passcode.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def validate(self, raw_passcode: Optional[str]) -> None:
        """
        Raises:
            InvalidPasscodeError: If blank, no passcode is active, or it does not match.
        """
        if is_blank(raw_passcode):
            raise InvalidPasscodeError()

        active = await self._active()
        if active is None or not verify_password(raw_passcode, active.code_hash):
            raise InvalidPasscodeError()

    async def seed(self, raw_passcode: Optional[str]) -> bool:
        """Store the first passcode when none exists. Returns True if one was added."""
        count = await self.session.scalar(select(func.count()).select_from(Passcode))
        if count:
            return False

        if is_blank(raw_passcode):
            logger.warning("No registration passcode configured (REG_PASSCODE). Registration will be blocked.")
            return False

        self.session.add(Passcode(code_hash=hash_password(raw_passcode), active=True))
        await self.session.flush()
        logger.info("Seeded initial registration passcode")
        return True
