"""Security utilities for the request authorization context.

Tokens are issued by the identity service; this module only decodes them into
the caller's school, role and (for parents) parent id.
"""

import enum
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from app.core.settings import settings


class Role(str, enum.Enum):
    """Caller roles known to the scheduling core."""

    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    PARENT = "PARENT"


class TokenData(BaseModel):
    """Token data model."""

    username: str
    school_id: int
    role: Role
    user_id: Optional[int] = None
    parent_id: Optional[int] = None
    teacher_id: Optional[int] = None


class User(BaseModel):
    """Authorized caller."""

    username: str
    school_id: int
    role: Role
    user_id: Optional[int] = None
    parent_id: Optional[int] = None
    teacher_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create access token (used by tooling and tests)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=12))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> Optional[TokenData]:
    """Verify access token."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    username = payload.get("sub")
    school_id = payload.get("school_id")
    role = payload.get("role")
    if username is None or school_id is None or role is None:
        return None

    try:
        return TokenData(
            username=username,
            school_id=school_id,
            role=role,
            user_id=payload.get("user_id"),
            parent_id=payload.get("parent_id"),
            teacher_id=payload.get("teacher_id"),
        )
    except ValueError:
        return None
