"""Authorization entry points used by route handlers."""
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from forum_authz import schemas
from forum_authz.core.logging_config import logger
from forum_authz.core.security import TokenVerificationError, verify_id_token
from forum_authz.services.opa import OpaService

NO_TOKEN_REASON = "no-token"

TokenVerifier = Callable[[str], Tuple[str, Dict[str, Any]]]


def get_client_ip(headers: Mapping[str, str]) -> Optional[str]:
    """Client IP from proxy headers: first X-Forwarded-For hop, then X-Real-IP."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return headers.get("x-real-ip") or None


def _context_ip(context: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not context:
        return None
    ip = context.get("ip")
    return ip if isinstance(ip, str) else None


def _deny(reason: str) -> schemas.OpaDecision:
    return schemas.OpaDecision(allow=False, reason=reason)


class Authorizer:
    """Verifies identity tokens and asks OPA, one check or many at a time.

    Never raises for a missing/invalid token or a policy engine failure;
    callers always get ``allow=False`` with a reason instead.
    """

    def __init__(self, opa_service: OpaService, token_verifier: TokenVerifier = verify_id_token):
        self.opa = opa_service
        self.verify_token = token_verifier

    async def authorize(
        self,
        id_token: Optional[str],
        action: str,
        resource: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None,
    ) -> schemas.AuthResult:
        """Authorize a single action."""
        if not id_token:
            return schemas.AuthResult(allow=False, decision=_deny(NO_TOKEN_REASON))

        try:
            uid, claims = self.verify_token(id_token)
        except TokenVerificationError as e:
            return schemas.AuthResult(allow=False, decision=_deny(str(e)))

        allow, decision = await self.opa.is_allowed(uid, claims, action, resource, _context_ip(context))
        logger.info(f"Authorization decision: uid={uid}, action={action}, allow={allow}")
        return schemas.AuthResult(allow=allow, decision=decision, uid=uid, claims=claims)

    async def authorize_batch(
        self,
        id_token: Optional[str],
        requests: List[schemas.BatchAuthRequest],
        context: Optional[Mapping[str, Any]] = None,
    ) -> List[schemas.BatchAuthResult]:
        """Authorize several actions for one caller, verifying the token once.

        The env block is shared by the whole batch: ``context`` when given,
        otherwise the first request's own context.
        """
        if not id_token:
            return [
                schemas.BatchAuthResult(index=i, allow=False, decision=_deny(NO_TOKEN_REASON))
                for i in range(len(requests))
            ]

        try:
            uid, claims = self.verify_token(id_token)
        except TokenVerificationError as e:
            return [
                schemas.BatchAuthResult(index=i, allow=False, decision=_deny(str(e)))
                for i in range(len(requests))
            ]

        if context is None and requests:
            context = requests[0].context

        items = [schemas.OpaBatchItem(action=r.action, resource=r.resource) for r in requests]
        opa_results = await self.opa.query_batch(uid, claims, items, _context_ip(context))

        allowed = sum(1 for r in opa_results if r.allow)
        logger.info(f"Batch authorization: uid={uid}, items={len(items)}, allowed={allowed}")
        return [
            schemas.BatchAuthResult(
                index=r.index, allow=r.allow, decision=r.decision, uid=uid, claims=claims
            )
            for r in opa_results
        ]

    async def authorize_all(
        self,
        id_token: Optional[str],
        requests: List[schemas.BatchAuthRequest],
        context: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[bool, List[schemas.BatchAuthResult]]:
        """Check if all batch requests are allowed."""
        results = await self.authorize_batch(id_token, requests, context)
        return all(r.allow for r in results), results

    async def authorize_any(
        self,
        id_token: Optional[str],
        requests: List[schemas.BatchAuthRequest],
        context: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[bool, List[schemas.BatchAuthResult]]:
        """Check if any batch request is allowed."""
        results = await self.authorize_batch(id_token, requests, context)
        return any(r.allow for r in results), results
