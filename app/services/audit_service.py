import json
import uuid

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

AUDIT_LOG_LIMIT = 500


def log_audit(db: Session, actor_user_id: str, action: str, entity_type: str, entity_id: str,
              details: dict | None = None, commit: bool = True) -> AuditLog:
    """Record an action. Pass ``commit=False`` to ride along in the caller's transaction."""
    entry = AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    )
    db.add(entry)
    if commit:
        db.commit()
    return entry


def to_audit_out(a: AuditLog) -> dict:
    return {
        "id": a.id,
        "actorUserId": a.actor_user_id,
        "action": a.action,
        "entityType": a.entity_type,
        "entityId": a.entity_id,
        "details": a.details,
        "createdAt": a.created_at.isoformat() if a.created_at else None,
    }


def list_audit_logs(db: Session, entity_type: str = "", entity_id: str = "", limit: int = AUDIT_LOG_LIMIT) -> list[dict]:
    """Newest first, capped at ``AUDIT_LOG_LIMIT`` rows."""
    q = db.query(AuditLog)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)
    limit = min(max(limit, 1), AUDIT_LOG_LIMIT)
    return [to_audit_out(a) for a in q.order_by(AuditLog.created_at.desc()).limit(limit)]
