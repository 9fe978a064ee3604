"""Database CRUD operations for the decision audit log."""
import json
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import desc
from forum_authz.models import AuditLog
from forum_authz import schemas
from forum_authz.services.opa import is_evaluation_error
from forum_authz.core.logging_config import logger


def create_audit_log(db: Session, log: dict):
    """Create an audit log entry."""
    db_log = AuditLog(**log)
    db.add(db_log)
    db.commit()
    db.refresh(db_log)
    return db_log


def _decision_entry(
    uid: Optional[str],
    action: str,
    resource: Mapping[str, Any],
    decision: schemas.OpaDecision,
    client_ip: Optional[str] = None,
) -> dict:
    return {
        "subject": uid or "anonymous",
        "action": action,
        "resource": json.dumps(resource, sort_keys=True, default=str),
        "decision": decision.allow,
        "explanation": decision.reason,
        "evaluation_error": is_evaluation_error(decision),
        "client_ip": client_ip,
    }


def record_decision(
    db: Session,
    uid: Optional[str],
    action: str,
    resource: Mapping[str, Any],
    decision: schemas.OpaDecision,
    client_ip: Optional[str] = None,
):
    """Write one authorization decision to the audit log."""
    db_log = create_audit_log(db, _decision_entry(uid, action, resource, decision, client_ip))
    logger.debug(f"Audit log created: trace_id={db_log.id}")
    return db_log


def record_decisions(
    db: Session,
    entries: Iterable[Tuple[Optional[str], str, Mapping[str, Any], schemas.OpaDecision]],
    client_ip: Optional[str] = None,
) -> List[AuditLog]:
    """Write a batch of (uid, action, resource, decision) rows in one commit.

    Rows come back in input order, with their ids assigned.
    """
    db_logs = [AuditLog(**_decision_entry(*entry, client_ip=client_ip)) for entry in entries]
    if not db_logs:
        return []
    db.add_all(db_logs)
    db.commit()
    for db_log in db_logs:
        db.refresh(db_log)
    logger.debug(f"Audit logs created: trace_ids={[db_log.id for db_log in db_logs]}")
    return db_logs


def get_audit_logs(db: Session, skip: int = 0, limit: int = 100, subject: Optional[str] = None):
    """Retrieve recent audit log entries, newest first."""
    query = db.query(AuditLog)
    if subject:
        query = query.filter(AuditLog.subject == subject)
    return query.order_by(desc(AuditLog.id)).offset(skip).limit(limit).all()
