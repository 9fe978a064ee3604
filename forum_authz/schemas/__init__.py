"""Pydantic schemas."""
from forum_authz.schemas.schemas import (
    OpaEnv, OpaInput, OpaDecision, OpaBatchItem, OpaBatchResult,
    AuthResult, BatchAuthRequest, BatchAuthResult,
    AccessRequest, BatchAccessRequest, AuthResponse, BatchAuthResponse,
    AllAllowedResponse, AnyAllowedResponse,
    CacheClearResponse, AuditLogResponse
)

__all__ = [
    "OpaEnv", "OpaInput", "OpaDecision", "OpaBatchItem", "OpaBatchResult",
    "AuthResult", "BatchAuthRequest", "BatchAuthResult",
    "AccessRequest", "BatchAccessRequest", "AuthResponse", "BatchAuthResponse",
    "AllAllowedResponse", "AnyAllowedResponse",
    "CacheClearResponse", "AuditLogResponse"
]
