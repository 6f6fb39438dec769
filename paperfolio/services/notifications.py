"""
Paperfolio Notification Service
In-app messages between users, plus best-effort system notices.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.database.models import Notification, Role, User
from paperfolio.exceptions import (
    EmptyNotificationBodyError,
    EmptyNotificationSubjectError,
    NotificationNotFoundError,
    UserNotFoundError,
)
from paperfolio.utils.helpers import is_blank

logger = logging.getLogger(__name__)

# Sender id used for messages generated by the platform itself
SYSTEM_SENDER_ID = 0


def _validate_content(subject: Optional[str], body: Optional[str]) -> None:
    if is_blank(subject):
        raise EmptyNotificationSubjectError()
    if is_blank(body):
        raise EmptyNotificationBodyError()


class NotificationService:
    """Send, list and acknowledge notifications."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def send_to_user(
        self,
        sender_user_id: int,
        receiver_user_id: int,
        subject: str,
        body: str,
    ) -> Notification:
        """
        Raises:
            UserNotFoundError: If the receiver does not exist.
            EmptyNotificationSubjectError / EmptyNotificationBodyError: On blank content.
        """
        if await self.session.get(User, receiver_user_id) is None:
            raise UserNotFoundError(receiver_user_id)
        _validate_content(subject, body)

        notification = Notification(
            sender_user_id=sender_user_id,
            receiver_user_id=receiver_user_id,
            subject=subject,
            body=body,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def _send_to_many(self, sender_user_id: int, users: List[User], subject: str, body: str) -> List[Notification]:
        created = [
            Notification(sender_user_id=sender_user_id, receiver_user_id=user.id, subject=subject, body=body)
            for user in users
        ]
        self.session.add_all(created)
        await self.session.flush()
        return created

    async def send_to_role(self, sender_user_id: int, role: Role, subject: str, body: str) -> List[Notification]:
        """One notification per user holding `role`."""
        _validate_content(subject, body)

        result = await self.session.execute(select(User).order_by(User.id))
        users = [user for user in result.scalars().all() if user.has_role(Role(role).value)]
        created = await self._send_to_many(sender_user_id, users, subject, body)
        logger.info(f"Sent notification to {len(created)} users with {Role(role).value}")
        return created

    async def send_to_all(self, sender_user_id: int, subject: str, body: str) -> List[Notification]:
        _validate_content(subject, body)

        result = await self.session.execute(select(User).order_by(User.id))
        created = await self._send_to_many(sender_user_id, list(result.scalars().all()), subject, body)
        logger.info(f"Sent notification to all {len(created)} users")
        return created

    async def list_for_user(self, user_id: int) -> List[Notification]:
        """Newest first."""
        result = await self.session.execute(
            select(Notification)
            .where(Notification.receiver_user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        return list(result.scalars().all())

    async def mark_read(self, notification_id: int) -> Notification:
        notification = await self.session.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        notification.is_read = True
        await self.session.flush()
        return notification

    async def notify_quietly(self, receiver_user_id: int, subject: str, body: str) -> Optional[Notification]:
        """
        Send a system notification without letting a failure escape.

        Runs in a SAVEPOINT so a failed insert does not poison the caller's
        transaction.
        """
        try:
            async with self.session.begin_nested():
                return await self.send_to_user(SYSTEM_SENDER_ID, receiver_user_id, subject, body)
        except Exception as e:
            logger.warning(f"Failed to send notification to user {receiver_user_id}: {e}")
            return None
