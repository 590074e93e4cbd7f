import logging

from sqlalchemy.orm import Session

from backend.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id,
    details: str,
    user_id: int | None,
) -> AuditLog:
    """Append an audit row in its own commit.

    Called after the audited change has been committed; a failure here
    leaves that change in place.
    """
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=details,
        user_id=user_id,
    )
    db.add(entry)
    db.commit()
    logger.info("AUDIT %s %s %s by user %s", action, entity_type, entity_id, user_id)
    return entry
