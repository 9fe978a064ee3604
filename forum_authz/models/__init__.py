"""SQLAlchemy models."""
from forum_authz.models.models import AuditLog
from forum_authz.core.database import Base

__all__ = ["AuditLog", "Base"]
