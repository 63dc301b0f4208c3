"""
Audit trail for administrative access changes.
"""
from typing import Optional
from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog


def record_action(
    db: Session,
    action_type: str,
    actor_user_id: Optional[int] = None,
    target_user_id: Optional[int] = None,
    details: Optional[dict] = None,
) -> AuditLog:
    """
    Add an audit entry to the current transaction.

    The caller commits (or rolls back) together with the change being audited.
    """
    entry = AuditLog(
        action_type=action_type,
        actor_user_id=actor_user_id,
        target_user_id=target_user_id,
        details=details or {},
    )
    db.add(entry)
    return entry
