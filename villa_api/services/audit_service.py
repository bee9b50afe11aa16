import uuid, json
from sqlalchemy.orm import Session
from villa_api.models.audit_log import AuditLog

def log_audit(db: Session, actor: str, action: str, entity_type: str, entity_id: str, details: dict | None = None) -> AuditLog:
    """Add an audit row to the current transaction; the caller commits."""
    row = AuditLog(
        id=str(uuid.uuid4()),
        actor=actor or "system",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    )
    db.add(row)
    return row
