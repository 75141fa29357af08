"""
Audit logging service.
Append-only audit log with integrity hashing.
"""
import hashlib
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import AuditLog


def integrity_hash_for(payload: Dict[str, Any], secret: str) -> str:
    """SHA256 over the canonical (sorted, None-free) JSON payload and the secret."""
    canonical = {k: v for k, v in payload.items() if v is not None}
    canonical_json = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.sha256(f"{canonical_json}:{secret}".encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id,
    action: str,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
    commit: bool = True,
) -> AuditLog:
    """
    Append an audit row for an attendance action (CREATE, UPDATE, APPROVE,
    UNAPPROVE, DELETE).

    The hash covers entity, action, source, timestamp, changes and context, keyed
    with AUDIT_SECRET unless integrity_secret is given. Pass commit=False to join
    the caller's transaction.
    """
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        source=source or "system",
        changes_json=changes_json,
        timestamp_utc=datetime.utcnow(),
        context=context,
    )
    secret = settings.audit_secret if integrity_secret is None else integrity_secret
    if secret:
        entry.integrity_hash = integrity_hash_for(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "source": entry.source,
                "timestamp_utc": entry.timestamp_utc.isoformat(),
                "changes": changes_json,
                "context": context,
            },
            secret,
        )

    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id=None,
    limit: int = 100,
    offset: int = 0,
) -> List[AuditLog]:
    query = db.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    return query.order_by(AuditLog.timestamp_utc.desc()).offset(offset).limit(limit).all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """{field: {"before": old, "after": new}} for every field whose value changed."""
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in sorted(set(before) | set(after))
        if before.get(key) != after.get(key)
    }
