"""Audit trail for lesson and booking changes."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def diff_changes(before: Mapping[str, Any], after: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Keep only the fields whose value changed; None when nothing did."""
    changed = [key for key in after if before.get(key) != after[key]]
    if not changed:
        return None
    return {
        "before": {key: before.get(key) for key in changed},
        "after": {key: after[key] for key in changed},
    }


async def log_audit(
    db: AsyncSession,
    school_id: int,
    action_type: str,
    entity_type: str,
    entity_id: Optional[int],
    entity_name: str,
    description: str,
    user_name: str = "Administrator",
    user_type: str = "admin",
    user_id: Optional[int] = None,
    changes: Optional[Dict[str, Any]] = None,
) -> Optional[AuditLog]:
    """
    Stage an audit row in the caller's session.

    Nothing is committed here; the row lands in the same transaction as the
    lesson or booking change it records, so a rolled back change leaves no
    audit trace.

    action_type is one of CREATE, UPDATE, DELETE, RESCHEDULE, CANCEL, ENROLL
    or UNENROLL; entity_type is lesson, enrollment,
    hybrid_booking or hybrid_pattern. user_type names the actor kind
    (admin, teacher, parent, system).
    """
    try:
        entry = AuditLog(
            timestamp=datetime.now(timezone.utc),
            school_id=school_id,
            user_type=user_type,
            user_id=user_id,
            user_name=user_name,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            description=description,
            changes_json=changes,
        )
        db.add(entry)
    except Exception as e:
        logger.error(f"❌ Could not stage audit row for {entity_type} {entity_id}: {e}")
        return None

    logger.info(f"📝 {action_type} {entity_type} #{entity_id} '{entity_name}' by {user_type} {user_name}")
    return entry
