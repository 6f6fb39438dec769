"""
Notifications Router

Admin broadcasts and per-user inboxes.
"""

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db_session
from ..database.models import Notification, Role, User
from ..dependencies.auth import get_token_payload, require_admin
from ..services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


# Request/Response Models
class SendRequest(BaseModel):
    subject: str = Field(..., max_length=255)
    body: str


class SendToRoleRequest(SendRequest):
    role: Role


class NotificationResponse(BaseModel):
    id: int
    sender_user_id: int
    receiver_user_id: int
    subject: str
    body: str
    is_read: bool
    created_at: datetime


class SendResultResponse(BaseModel):
    sent: int


def get_notification_service(db: AsyncSession = Depends(get_db_session)) -> NotificationService:
    return NotificationService(db)


def _response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        sender_user_id=notification.sender_user_id,
        receiver_user_id=notification.receiver_user_id,
        subject=notification.subject,
        body=notification.body,
        is_read=notification.is_read,
        created_at=notification.created_at,
    )


@router.post("/user/{receiver_id}", response_model=NotificationResponse)
async def send_to_user(
    receiver_id: int,
    request: SendRequest,
    admin: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.send_to_user(admin.id, receiver_id, request.subject, request.body)
    return _response(notification)


@router.post("/role", response_model=SendResultResponse)
async def send_to_role(
    request: SendToRoleRequest,
    admin: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    """Send to every user holding the given role."""
    created = await service.send_to_role(admin.id, request.role, request.subject, request.body)
    return SendResultResponse(sent=len(created))


@router.post("/all", response_model=SendResultResponse)
async def send_to_all(
    request: SendRequest,
    admin: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
):
    created = await service.send_to_all(admin.id, request.subject, request.body)
    return SendResultResponse(sent=len(created))


@router.get(
    "/user/{user_id}",
    response_model=List[NotificationResponse],
    dependencies=[Depends(get_token_payload)],
)
async def list_for_user(user_id: int, service: NotificationService = Depends(get_notification_service)):
    """Inbox, newest first."""
    return [_response(n) for n in await service.list_for_user(user_id)]


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    dependencies=[Depends(get_token_payload)],
)
async def mark_read(notification_id: int, service: NotificationService = Depends(get_notification_service)):
    return _response(await service.mark_read(notification_id))
