"""
Users Router

User administration and the per-user mystery page.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db_session
from ..database.models import MysteryPage, Role, User
from ..dependencies.auth import get_token_payload
from ..dependencies.services import get_mystery_page_service
from ..exceptions import MysteryPageNotFoundError
from ..services.mystery_pages import MysteryPageService
from ..services.users import UserService

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(get_token_payload)],
)


# Request/Response Models
class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    roles: Optional[List[Role]] = None
    is_fake: bool = False


class UpdateUserRequest(BaseModel):
    username: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class UserResponse(BaseModel):
    id: int
    username: str
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    roles: List[str]
    is_fake: bool
    created_at: datetime


class MysteryPageRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)


class MysteryPageResponse(BaseModel):
    user_id: int
    title: str
    content: str
    updated_at: datetime


def get_user_service(db: AsyncSession = Depends(get_db_session)) -> UserService:
    return UserService(db)


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        roles=list(user.roles),
        is_fake=user.is_fake,
        created_at=user.created_at,
    )


def _page_response(page: MysteryPage) -> MysteryPageResponse:
    return MysteryPageResponse(
        user_id=page.user_id,
        title=page.title,
        content=page.content,
        updated_at=page.updated_at,
    )


@router.get("", response_model=List[UserResponse])
async def list_users(service: UserService = Depends(get_user_service)):
    return [_user_response(user) for user in await service.list_users()]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(request: CreateUserRequest, service: UserService = Depends(get_user_service)):
    """Create a user with a funded wallet."""
    user = await service.create_user(
        username=request.username,
        password=request.password,
        email=request.email,
        first_name=request.first_name,
        last_name=request.last_name,
        roles=[role.value for role in request.roles] if request.roles else None,
        is_fake=request.is_fake,
    )
    return _user_response(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, service: UserService = Depends(get_user_service)):
    return _user_response(await service.get_user(user_id))


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    request: UpdateUserRequest,
    service: UserService = Depends(get_user_service),
):
    """Update the supplied fields; blank values are ignored."""
    user = await service.update_user(
        user_id,
        username=request.username,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
    )
    return _user_response(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: int, service: UserService = Depends(get_user_service)):
    await service.delete_user(user_id)


@router.get("/{user_id}/mystery-page", response_model=MysteryPageResponse)
async def get_mystery_page(
    user_id: int,
    service: MysteryPageService = Depends(get_mystery_page_service),
):
    page = await service.get(user_id)
    if page is None:
        raise MysteryPageNotFoundError(user_id)
    return _page_response(page)


@router.put("/{user_id}/mystery-page", response_model=MysteryPageResponse)
async def set_mystery_page(
    user_id: int,
    request: MysteryPageRequest,
    service: MysteryPageService = Depends(get_mystery_page_service),
):
    """Point the user's mystery page at a Wikipedia title and refresh its summary."""
    page = await service.create_or_update(user_id, request.title)
    return _page_response(page)
