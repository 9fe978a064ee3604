"""SQLAlchemy database models."""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from forum_authz.core.database import Base


# Logs every non-dry-run authorization decision for auditing and debugging.
# Fields:
# 1. subject: uid of the caller, "anonymous" when no/invalid token
# 2. resource: canonical (sorted-key) JSON of the resource
# 3. evaluation_error: True when the deny came from an OPA failure, not policy
class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True, index=True)
    subject = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False)
    resource = Column(Text, nullable=False)
    decision = Column(Boolean, nullable=False)  # allow or deny (true or false)
    explanation = Column(String, nullable=True)  # reason returned with the decision
    evaluation_error = Column(Boolean, nullable=False, default=False)
    client_ip = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
