"""Access/Authorization API endpoints.

Audit writes use a blocking SQLAlchemy session, so they run in the
threadpool rather than on the event loop.
"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from forum_authz import schemas
from forum_authz import crud
from forum_authz.api.deps import get_db, get_id_token, get_authorizer
from forum_authz.services.authorization import Authorizer, get_client_ip

router = APIRouter()


def _with_client_ip(request: Request, context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Request context, with the IP taken from proxy headers unless the caller supplied one."""
    context = dict(context or {})
    if not context.get("ip"):
        context["ip"] = get_client_ip(request.headers)
    return context


async def _audit_batch(
    db: Session,
    body: schemas.BatchAccessRequest,
    results: List[schemas.BatchAuthResult],
    client_ip: Optional[str],
) -> List[schemas.BatchAuthResponse]:
    trace_ids: List[Optional[int]] = [None] * len(results)
    if not body.dry_run and results:
        entries = [
            (r.uid, body.requests[r.index].action, body.requests[r.index].resource, r.decision)
            for r in results
        ]
        db_logs = await run_in_threadpool(crud.record_decisions, db, entries, client_ip)
        trace_ids = [db_log.id for db_log in db_logs]
    return [
        schemas.BatchAuthResponse(**result.model_dump(), trace_id=trace_id)
        for result, trace_id in zip(results, trace_ids)
    ]


def _shared_context(request: Request, body: schemas.BatchAccessRequest) -> Dict[str, Any]:
    context = body.context
    if context is None and body.requests:
        context = body.requests[0].context
    return _with_client_ip(request, context)


@router.post("/access", response_model=schemas.AuthResponse)
async def authorize(
    body: schemas.AccessRequest,
    request: Request,
    id_token: Optional[str] = Depends(get_id_token),
    authorizer: Authorizer = Depends(get_authorizer),
    db: Session = Depends(get_db),
):
    """Single authorization check for the caller identified by the bearer token."""
    context = _with_client_ip(request, body.context)
    result = await authorizer.authorize(id_token, body.action, body.resource, context)

    trace_id = None
    if not body.dry_run:
        db_log = await run_in_threadpool(
            crud.record_decision, db, result.uid, body.action, body.resource, result.decision, context.get("ip")
        )
        trace_id = db_log.id
    return schemas.AuthResponse(**result.model_dump(), trace_id=trace_id)


@router.post("/access/batch", response_model=List[schemas.BatchAuthResponse])
async def authorize_batch(
    body: schemas.BatchAccessRequest,
    request: Request,
    id_token: Optional[str] = Depends(get_id_token),
    authorizer: Authorizer = Depends(get_authorizer),
    db: Session = Depends(get_db),
):
    """Several checks in one call; results are in request order."""
    context = _shared_context(request, body)
    results = await authorizer.authorize_batch(id_token, body.requests, context)
    return await _audit_batch(db, body, results, context.get("ip"))


@router.post("/access/all", response_model=schemas.AllAllowedResponse)
async def authorize_all(
    body: schemas.BatchAccessRequest,
    request: Request,
    id_token: Optional[str] = Depends(get_id_token),
    authorizer: Authorizer = Depends(get_authorizer),
    db: Session = Depends(get_db),
):
    """Allowed only if every check in the batch is allowed."""
    context = _shared_context(request, body)
    all_allowed, results = await authorizer.authorize_all(id_token, body.requests, context)
    return schemas.AllAllowedResponse(
        all_allowed=all_allowed,
        results=await _audit_batch(db, body, results, context.get("ip")),
    )


@router.post("/access/any", response_model=schemas.AnyAllowedResponse)
async def authorize_any(
    body: schemas.BatchAccessRequest,
    request: Request,
    id_token: Optional[str] = Depends(get_id_token),
    authorizer: Authorizer = Depends(get_authorizer),
    db: Session = Depends(get_db),
):
    """Allowed if at least one check in the batch is allowed."""
    context = _shared_context(request, body)
    any_allowed, results = await authorizer.authorize_any(id_token, body.requests, context)
    return schemas.AnyAllowedResponse(
        any_allowed=any_allowed,
        results=await _audit_batch(db, body, results, context.get("ip")),
    )
