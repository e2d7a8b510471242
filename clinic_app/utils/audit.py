"""
Audit logging for create, update, cancel, complete, payment and delete actions.
"""
import json
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from clinic_app.extensions import db
from clinic_app.models import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    entity_type: str,
    action: str,
    user_id: Optional[int] = None,
    entity_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> None:
    """Append an audit log entry. Runs after the audited write has committed."""
    try:
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            user_id=user_id,
            details=json.dumps(details, default=str) if details else None,
        )
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError as e:
        logger.warning("Audit log failed: %s", e)
        db.session.rollback()
