"""Auth API: registration, login, token refresh.

Learn: Routes for user authentication:
- POST /auth/register → create a regular account (+ optional contributor request)
- POST /auth/login → email/password → JWT access/refresh tokens
- POST /auth/refresh → refresh token → new token pair
- GET /auth/me → current user info
- POST /auth/logout → acknowledgement (tokens are stateless; the client drops them)
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.auth.dependencies import get_current_account, get_current_user
from genremnant.auth.jwt import TokenError, create_access_token, create_refresh_token, verify_token
from genremnant.db.engine import get_db
from genremnant.db.models import User
from genremnant.schemas.base import MessageResponse
from genremnant.schemas.user import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    RefreshRequest,
    RegisterRequest,
    UserRead,
)
from genremnant.services.user_service import (
    AccountSuspendedError,
    DuplicateEmailError,
    InvalidCredentialsError,
    RegistrationError,
    UserService,
)

router = APIRouter(prefix="/auth")


def _svc(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def _token_pair(user: User, message: str) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=create_access_token(str(user.id), user.email, user.role),
        refresh_token=create_refresh_token(str(user.id)),
        user=UserRead.model_validate(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(body: RegisterRequest, svc: UserService = Depends(_svc)):
    """Create a new account. Every account starts as an active regular user."""
    try:
        user = await svc.register(
            email=body.email,
            display_name=body.display_name,
            password=body.password,
            confirm_password=body.confirm_password,
            request_to_contribute=body.request_to_contribute,
        )
    except RegistrationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateEmailError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _token_pair(user, "User registered successfully")


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, svc: UserService = Depends(_svc)):
    try:
        user = await svc.authenticate(body.email, body.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except AccountSuspendedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return _token_pair(user, "Login successful")


@router.post("/refresh", response_model=AuthResponse)
async def refresh(body: RefreshRequest, svc: UserService = Depends(_svc)):
    """Trade a refresh token for a fresh pair. Role/email come from the DB."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
        user_id = uuid.UUID(payload["sub"])
    except (TokenError, ValueError) as e:
        raise HTTPException(status_code=401, detail=str(e))

    user = await svc.get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid token")
    if user.status != "active":
        raise HTTPException(status_code=403, detail="User account is suspended or inactive")
    return _token_pair(user, "Token refreshed")


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_account)):
    return MeResponse(user=UserRead.model_validate(user))


@router.post("/logout", response_model=MessageResponse, dependencies=[Depends(get_current_user)])
async def logout():
    return MessageResponse(message="Logged out successfully")
