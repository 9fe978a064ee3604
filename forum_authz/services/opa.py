"""Client for the Open Policy Agent decision endpoint.

Supports single and batch queries. Every decision goes through the
DecisionCache; misses are sent to OPA, concurrently for batches. Failures
never escape ``is_allowed``/``query_batch``: they come back as deny
decisions whose reason starts with ``evaluation-error:``.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from pydantic import ValidationError

from forum_authz.core import config
from forum_authz.core.logging_config import logger
from forum_authz.schemas import OpaBatchItem, OpaBatchResult, OpaDecision, OpaEnv, OpaInput
from forum_authz.services.cache import DecisionCache, make_key

EVALUATION_ERROR_PREFIX = "evaluation-error: "
NO_DECISION_REASON = "no decision returned"


class PolicyEvaluationError(Exception):
    """OPA could not be reached, or its answer could not be read."""


def is_evaluation_error(decision: OpaDecision) -> bool:
    """True when a deny came from an OPA failure rather than from policy."""
    return not decision.allow and (decision.reason or "").startswith(EVALUATION_ERROR_PREFIX)


def evaluation_error_decision(message: str) -> OpaDecision:
    return OpaDecision(allow=False, reason=f"{EVALUATION_ERROR_PREFIX}{message}")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class OpaService:
    """Service for interacting with Open Policy Agent."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: DecisionCache,
        base_url: Optional[str] = None,
        decision_path: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.client = client
        self.cache = cache
        self.base_url = (base_url or config.OPA_URL).rstrip("/")
        self.decision_path = (decision_path or config.OPA_DECISION_PATH).strip("/")
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else config.OPA_TIMEOUT_SECONDS

    @property
    def decision_url(self) -> str:
        return f"{self.base_url}/v1/data/{self.decision_path}"

    @staticmethod
    def build_input(
        subject_id: str,
        claims: Mapping[str, Any],
        action: str,
        resource: Mapping[str, Any],
        ip: Optional[str] = None,
        now: Optional[str] = None,
    ) -> OpaInput:
        return OpaInput(
            subject_id=subject_id,
            claims=dict(claims),
            action=action,
            resource=dict(resource),
            env=OpaEnv(now=now or utc_now_iso(), ip=ip),
        )

    async def _evaluate(self, opa_input: OpaInput) -> OpaDecision:
        """Ask OPA once. Raises PolicyEvaluationError on any failure."""
        payload = {"input": opa_input.model_dump(by_alias=True)}
        try:
            response = await asyncio.wait_for(
                self.client.post(self.decision_url, json=payload, timeout=self.timeout_seconds),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise PolicyEvaluationError(f"OPA call timed out after {self.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            raise PolicyEvaluationError(f"OPA call failed: {e}") from e

        if not response.is_success:
            raise PolicyEvaluationError(f"OPA call failed {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            raise PolicyEvaluationError("OPA returned an unparsable body") from e
        if not isinstance(body, dict):
            raise PolicyEvaluationError("OPA response is not an object")

        result = body.get("result")
        if result is None:
            # Undefined decision document: a policy outcome, fail closed
            return OpaDecision(allow=False, reason=NO_DECISION_REASON)
        if not isinstance(result, dict):
            raise PolicyEvaluationError("OPA result is not a decision object")

        try:
            return OpaDecision.model_validate(result)
        except ValidationError as e:
            raise PolicyEvaluationError(f"OPA returned a malformed decision ({e.error_count()} error(s))") from e

    async def query(self, opa_input: OpaInput) -> OpaDecision:
        """Cache-aware single query. Raises PolicyEvaluationError; failures are not cached."""
        key = make_key(opa_input.subject_id, opa_input.action, opa_input.resource)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        decision = await self._evaluate(opa_input)
        self.cache.put(key, decision, subject_id=opa_input.subject_id)
        return decision

    async def is_allowed(
        self,
        subject_id: str,
        claims: Mapping[str, Any],
        action: str,
        resource: Mapping[str, Any],
        ip: Optional[str] = None,
    ) -> Tuple[bool, OpaDecision]:
        """Check if a subject may perform an action on a resource."""
        opa_input = self.build_input(subject_id, claims, action, resource, ip)
        try:
            decision = await self.query(opa_input)
        except PolicyEvaluationError as e:
            logger.warning(f"Policy evaluation failed: uid={subject_id}, action={action}: {e}")
            decision = evaluation_error_decision(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error evaluating uid={subject_id}, action={action}")
            decision = evaluation_error_decision(f"unexpected error: {e}")
        return decision.allow is True, decision

    async def _resolve_slot(
        self,
        slots: List[Optional[OpaBatchResult]],
        index: int,
        opa_input: OpaInput,
    ) -> None:
        try:
            decision = await self.query(opa_input)
        except PolicyEvaluationError as e:
            logger.warning(f"Policy evaluation failed: uid={opa_input.subject_id}, "
                           f"action={opa_input.action}, index={index}: {e}")
            decision = evaluation_error_decision(str(e))
        except Exception as e:
            # One broken item must not take the rest of the batch with it
            logger.exception(f"Unexpected error evaluating batch item {index}")
            decision = evaluation_error_decision(f"unexpected error: {e}")
        slots[index] = OpaBatchResult(index=index, allow=decision.allow is True, decision=decision)

    async def query_batch(
        self,
        subject_id: str,
        claims: Mapping[str, Any],
        items: List[OpaBatchItem],
        ip: Optional[str] = None,
    ) -> List[OpaBatchResult]:
        """Resolve many checks for one subject; results keep the input order."""
        now = utc_now_iso()
        slots: List[Optional[OpaBatchResult]] = [None] * len(items)
        pending: List[Tuple[int, OpaInput]] = []

        # 1. Serve what we can from the cache
        for index, item in enumerate(items):
            opa_input = self.build_input(subject_id, claims, item.action, item.resource, ip, now)
            cached = self.cache.get(make_key(subject_id, item.action, opa_input.resource))
            if cached is not None:
                slots[index] = OpaBatchResult(index=index, allow=cached.allow is True, decision=cached)
            else:
                pending.append((index, opa_input))

        # 2. Ask OPA for the rest, all at once
        if pending:
            logger.debug(f"Batch for uid={subject_id}: {len(items) - len(pending)} cached, "
                         f"{len(pending)} sent to OPA")
            await asyncio.gather(*(
                self._resolve_slot(slots, index, opa_input) for index, opa_input in pending
            ))

        return slots

    async def is_all_allowed(
        self,
        subject_id: str,
        claims: Mapping[str, Any],
        items: List[OpaBatchItem],
        ip: Optional[str] = None,
    ) -> Tuple[bool, List[OpaBatchResult]]:
        """True only if ALL checks are allowed."""
        results = await self.query_batch(subject_id, claims, items, ip)
        return all(r.allow for r in results), results

    async def is_any_allowed(
        self,
        subject_id: str,
        claims: Mapping[str, Any],
        items: List[OpaBatchItem],
        ip: Optional[str] = None,
    ) -> Tuple[bool, List[OpaBatchResult]]:
        """True if ANY check is allowed."""
        results = await self.query_batch(subject_id, claims, items, ip)
        return any(r.allow for r in results), results

    async def health(self) -> Dict[str, Any]:
        """Reachability of OPA's own /health endpoint."""
        try:
            response = await self.client.get(f"{self.base_url}/health", timeout=self.timeout_seconds)
        except httpx.HTTPError as e:
            return {"status": "unhealthy", "message": f"OPA unreachable: {e}"}
        if response.is_success:
            return {"status": "healthy", "message": "OPA reachable"}
        return {"status": "unhealthy", "message": f"OPA health returned {response.status_code}"}
