from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.user import User

logger = logging.getLogger(__name__)

CLASS_ENTITY = "class"


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_id: str | None = None,
    entity_type: str = CLASS_ENTITY,
    details: dict | None = None,
) -> ActivityLog:
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)
    logger.info(
        "%s %s=%s user=%s",
        action,
        entity_type,
        entity_id,
        user.id if user is not None else None,
    )
    return record


def list_activity(db: Session, *, entity_id: str, entity_type: str = CLASS_ENTITY) -> list[ActivityLog]:
    statement = (
        select(ActivityLog)
        .where(ActivityLog.entity_type == entity_type, ActivityLog.entity_id == entity_id)
        .order_by(ActivityLog.created_at, ActivityLog.id)
    )
    return list(db.execute(statement).scalars())
