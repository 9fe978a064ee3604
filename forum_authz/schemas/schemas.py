"""Pydantic schemas for policy engine I/O and request/response validation."""
from pydantic import BaseModel, Field, JsonValue, StrictBool
from typing import List, Optional, Dict, Any
from datetime import datetime


# --- Policy Engine Schemas (OPA I/O) ---
class OpaEnv(BaseModel):
    now: str  # ISO-8601, UTC
    ip: Optional[str] = None


class OpaInput(BaseModel):
    """The envelope sent to OPA as ``{"input": ...}``."""
    subject_id: str = Field(alias="subjectId")
    claims: Dict[str, JsonValue] = Field(default_factory=dict)
    action: str
    resource: Dict[str, JsonValue] = Field(default_factory=dict)
    env: OpaEnv

    class Config:
        populate_by_name = True


class OpaDecision(BaseModel):
    """A decision document as returned by the policy engine.

    Only ``allow`` and ``reason`` are interpreted; any other fields the
    policy returns are kept as-is.
    """
    allow: StrictBool
    reason: Optional[str] = None

    class Config:
        extra = "allow"


class OpaBatchItem(BaseModel):
    action: str
    resource: Dict[str, JsonValue] = Field(default_factory=dict)


class OpaBatchResult(BaseModel):
    index: int
    allow: bool
    decision: OpaDecision


# --- Authorization Schemas (what route handlers see) ---
class AuthResult(BaseModel):
    allow: bool
    decision: OpaDecision
    uid: Optional[str] = None
    claims: Dict[str, Any] = Field(default_factory=dict)


class BatchAuthRequest(BaseModel):
    action: str
    resource: Dict[str, JsonValue] = Field(default_factory=dict)
    context: Optional[Dict[str, JsonValue]] = None


class BatchAuthResult(AuthResult):
    index: int


# --- HTTP API Schemas ---
class AccessRequest(BaseModel):
    action: str
    resource: Dict[str, JsonValue] = Field(default_factory=dict)
    context: Optional[Dict[str, JsonValue]] = None
    dry_run: bool = False  # skip the audit log write


class BatchAccessRequest(BaseModel):
    requests: List[BatchAuthRequest]
    context: Optional[Dict[str, JsonValue]] = None
    dry_run: bool = False


class AuthResponse(AuthResult):
    trace_id: Optional[int] = None


class BatchAuthResponse(BatchAuthResult):
    trace_id: Optional[int] = None


class AllAllowedResponse(BaseModel):
    all_allowed: bool
    results: List[BatchAuthResponse]


class AnyAllowedResponse(BaseModel):
    any_allowed: bool
    results: List[BatchAuthResponse]


class CacheClearResponse(BaseModel):
    cleared: int


class AuditLogResponse(BaseModel):
    id: int
    subject: str
    action: str
    resource: str
    decision: bool
    explanation: Optional[str] = None
    evaluation_error: bool
    client_ip: Optional[str] = None
    timestamp: Optional[datetime] = None

    class Config:
        from_attributes = True
