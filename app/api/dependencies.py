"""API dependencies for authentication and database access."""

from datetime import datetime
from typing import Annotated, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import Role, User, verify_token
from app.services.notification_service import NotificationService
from app.utils.timezone import now_utc

# Security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> User:
    """Get current authenticated user from the bearer token."""
    token_data = verify_token(credentials.credentials)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return User(
        username=token_data.username,
        school_id=token_data.school_id,
        role=token_data.role,
        user_id=token_data.user_id,
        parent_id=token_data.parent_id,
        teacher_id=token_data.teacher_id,
    )


async def get_current_admin_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """Admins only."""
    if current_user.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


async def get_current_staff_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """Admins and teachers."""
    if current_user.role not in (Role.ADMIN, Role.TEACHER):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return current_user


async def get_current_parent_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """Parents with a parent record."""
    if current_user.role != Role.PARENT or current_user.parent_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Parent access required")
    return current_user


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_clock():
    return now_utc


# Dependency aliases for easier use
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(get_current_admin_user)]
StaffUser = Annotated[User, Depends(get_current_staff_user)]
ParentUser = Annotated[User, Depends(get_current_parent_user)]
Notifications = Annotated[NotificationService, Depends(get_notification_service)]
Clock = Annotated[Callable[[], datetime], Depends(get_clock)]
