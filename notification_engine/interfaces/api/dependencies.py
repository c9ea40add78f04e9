"""FastAPI dependency utilities."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import User
from notification_engine.infrastructure.database import get_db
from notification_engine.infrastructure.repositories import UserRepository
from notification_engine.infrastructure.security import resolve_token_subject
from notification_engine.runtime import NotificationRuntime

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Invalid credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_runtime(request: Request) -> NotificationRuntime:
    """Return the runtime attached to the running application."""

    return request.app.state.runtime


async def resolve_current_user(token: str | None, db: AsyncSession) -> User:
    """Resolve the authenticated user for the provided token."""

    try:
        user_id = resolve_token_subject(token)
    except ValueError as exc:
        raise _unauthorized() from exc

    user = await UserRepository(db).get(user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Return the authenticated user from the bearer token."""

    if credentials is None:
        raise _unauthorized("Not authenticated")
    return await resolve_current_user(credentials.credentials, db)


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """Ensure the authenticated user is active."""

    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user",
        )
    return current_user


def require_admin(current_user: User = Depends(get_current_active_user)) -> User:
    """Ensure the authenticated user has administrator privileges."""

    if not current_user.is_admin():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized",
        )
    return current_user
