"""API dependencies."""
from fastapi import Request
from forum_authz.core.database import get_db
from forum_authz.core.security import get_id_token
from forum_authz.services.authorization import Authorizer


def get_authorizer(request: Request) -> Authorizer:
    """The Authorizer built at startup (see forum_authz.main)."""
    return request.app.state.authorizer


__all__ = ["get_db", "get_id_token", "get_authorizer"]
