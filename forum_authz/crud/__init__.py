"""Database CRUD operations."""
from forum_authz.crud.crud import (
    create_audit_log,
    record_decision,
    record_decisions,
    get_audit_logs
)

__all__ = [
    "create_audit_log",
    "record_decision",
    "record_decisions",
    "get_audit_logs"
]
