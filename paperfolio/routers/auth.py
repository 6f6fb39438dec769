"""
Authentication Router

Handles registration, login, refresh-token rotation and logout.
All routes are public.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db_session
from ..services.auth import AuthService, AuthTokens

router = APIRouter(prefix="/auth", tags=["Authentication"])


# Request/Response Models
class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    passcode: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None


class RegisterResponse(BaseModel):
    id: int
    username: str
    roles: List[str]


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    role: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    username: str
    roles: List[str]
    authenticated_as: str


def get_auth_service(db: AsyncSession = Depends(get_db_session)) -> AuthService:
    return AuthService(db)


def _token_response(tokens: AuthTokens) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        username=tokens.username,
        roles=tokens.roles,
        authenticated_as=tokens.authenticated_as,
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    """Register a new account; requires the shared registration passcode."""
    registration = await service.register(
        username=request.username,
        password=request.password,
        passcode=request.passcode,
        email=request.email,
    )
    return RegisterResponse(id=registration.id, username=registration.username, roles=registration.roles)


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """Authenticate and issue an access/refresh token pair for the chosen role."""
    tokens = await service.login(request.username, request.password, request.role)
    return _token_response(tokens)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(request: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    """Rotate a refresh token. The presented token is revoked."""
    tokens = await service.refresh(request.refresh_token)
    return _token_response(tokens)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(request: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    await service.logout(request.refresh_token)
