import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sitelog.db.models.activity import ActivityLog

logger = logging.getLogger(__name__)

def log_activity(
    db: Session,
    user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: int = None,
    details: str = None
):
    """
    Records an activity in the audit log.

    :param db: Database session
    :param user_id: ID of the user performing the action (None for system writes)
    :param action: String describing action (e.g. CREATE, UPDATE, UPLOAD)
    :param entity_type: String describing resource (e.g. LOG, PHOTO)
    :param entity_id: ID of the resource
    :param details: Optional string with more info
    """
    try:
        activity = ActivityLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )
        db.add(activity)
        db.commit()
    except SQLAlchemyError as e:
        # Audit rows must not break the write they describe
        logger.error(f"Error logging activity: {e}")
        db.rollback()
