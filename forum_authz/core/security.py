"""Security and authentication utilities."""
from typing import Any, Dict, Optional, Tuple

import jwt
from fastapi import Security, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from forum_authz.core import config
from forum_authz.core.logging_config import logger

security_scheme = HTTPBearer()

# Identity tokens are optional on /access: a missing token is a "no-token" deny
id_token_scheme = HTTPBearer(auto_error=False)


class TokenVerificationError(Exception):
    """Raised when an identity token cannot be verified."""


def verify_admin_key(credentials: HTTPAuthorizationCredentials = Security(security_scheme)):
    """Verifies the admin key provided in the Authorization header."""
    if credentials.credentials != config.ADMIN_API_KEY:
        raise HTTPException(
            status_code=403,
            detail="Invalid or missing API Key for management access."
        )
    return True


def get_id_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(id_token_scheme),
) -> Optional[str]:
    """Extracts the caller's identity token, or None when absent."""
    if credentials is None:
        return None
    return credentials.credentials


def verify_id_token(id_token: str) -> Tuple[str, Dict[str, Any]]:
    """Verify an identity token and return (uid, claims).

    Signature and expiry are always checked; the audience only when
    JWT_AUDIENCE is configured. The uid comes from ``sub``, falling back to
    ``uid`` or ``user_id`` for tokens minted by older issuers.
    """
    try:
        payload = jwt.decode(
            id_token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
            options={"verify_exp": True, "verify_aud": config.JWT_AUDIENCE is not None},
        )
    except jwt.PyJWTError as e:
        logger.info(f"Token verification failed: {e}")
        raise TokenVerificationError("Invalid ID token") from e

    uid = payload.get("sub") or payload.get("uid") or payload.get("user_id")
    if not uid:
        logger.info("Token verification failed: no subject claim")
        raise TokenVerificationError("Invalid ID token")

    claims = {
        "email": payload.get("email"),
        "email_verified": payload.get("email_verified"),
        "name": payload.get("name"),
        "picture": payload.get("picture"),
        **payload,
    }
    return str(uid), claims
