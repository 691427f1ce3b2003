"""Audit log API endpoints."""

from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import func, or_, select

from app.api.dependencies import AdminUser, DbSession
from app.core.errors import NotFoundError
from app.models import AuditLog

router = APIRouter(prefix="/audit", tags=["audit"])


class AuditLogResponse(BaseModel):
    """Response model for audit log."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    user_type: str
    user_name: str
    action_type: str
    entity_type: str
    entity_id: Optional[int] = None
    entity_name: Optional[str] = None
    description: str
    changes_json: Optional[dict] = None


class AuditLogsListResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


@router.get("/logs", response_model=AuditLogsListResponse)
async def get_audit_logs(
    db: DbSession,
    user: AdminUser,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    search: Optional[str] = Query(None, description="Search by entity name, description or user"),
    action_type: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> AuditLogsListResponse:
    """Audit trail of lesson and booking changes in the caller's school, newest first."""
    filters = [AuditLog.school_id == user.school_id]

    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(
                AuditLog.entity_name.ilike(pattern),
                AuditLog.description.ilike(pattern),
                AuditLog.user_name.ilike(pattern),
            )
        )
    if action_type:
        filters.append(AuditLog.action_type == action_type)
    if entity_type:
        filters.append(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        filters.append(AuditLog.entity_id == entity_id)
    if date_from:
        filters.append(AuditLog.timestamp >= date_from)
    if date_to:
        # Whole day of date_to is included
        filters.append(AuditLog.timestamp < date_to + timedelta(days=1))

    total = await db.scalar(select(func.count()).select_from(AuditLog).where(*filters))

    result = await db.execute(
        select(AuditLog)
        .where(*filters)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    logs = result.scalars().all()

    return AuditLogsListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=(total + page_size - 1) // page_size,
    )


@router.get("/logs/{log_id}", response_model=AuditLogResponse)
async def get_audit_log_detail(log_id: int, db: DbSession, user: AdminUser) -> AuditLogResponse:
    log = await db.scalar(
        select(AuditLog).where(AuditLog.id == log_id, AuditLog.school_id == user.school_id)
    )
    if not log:
        raise NotFoundError("Audit log not found.")
    return AuditLogResponse.model_validate(log)
