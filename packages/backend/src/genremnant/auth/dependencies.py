"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current identity from the request.

Layers, each building on the previous one:
1. get_current_user_optional: decode the Bearer token if present
2. get_current_user: same, but 401 without a token
3. get_current_account: load the User row (401 if it vanished)
4. get_active_user: 403 for suspended/inactive accounts
5. require_roles(...): 403 unless the account has one of the roles
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Header
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.auth.jwt import TokenError, verify_token
from genremnant.db.engine import get_db
from genremnant.db.models import User


@dataclass
class TokenIdentity:
    """Claims carried by a verified access token."""

    user_id: uuid.UUID
    email: str
    role: str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[TokenIdentity]:
    """Extract the token identity (optional: returns None if no auth).

    Learn: This is the "soft" auth dependency. Used for endpoints that
    work both authenticated and unauthenticated (e.g. reading a post
    that might be the caller's own pending draft).
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None

    token = authorization[7:]
    try:
        payload = verify_token(token, expected_type="access")
        return TokenIdentity(
            user_id=uuid.UUID(payload["sub"]),
            email=payload.get("email", ""),
            role=payload.get("role", "regular"),
        )
    except (TokenError, ValueError) as e:
        raise _unauthorized(str(e))


async def get_current_user(
    identity: Optional[TokenIdentity] = Depends(get_current_user_optional),
) -> TokenIdentity:
    """Extract the token identity (required: 401 if no auth)."""
    if not identity:
        raise _unauthorized("No token provided")
    return identity


async def get_current_account(
    identity: TokenIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Load the authenticated user's row."""
    user = await db.get(User, identity.user_id)
    if not user:
        raise _unauthorized("Invalid token")
    return user


async def get_active_user(user: User = Depends(get_current_account)) -> User:
    """Require an active account. Role and status come from the DB, not the token."""
    if user.status != "active":
        raise HTTPException(
            status_code=403, detail="User account is suspended or inactive"
        )
    return user


def require_roles(*roles: str):
    """Dependency factory: active user holding one of `roles`.

    Usage: user: User = Depends(require_roles("admin"))
    """

    async def _check(user: User = Depends(get_active_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return _check


async def get_optional_account(
    identity: Optional[TokenIdentity] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Load the caller's row when a token is present, else None."""
    if identity is None:
        return None
    return await db.get(User, identity.user_id)
