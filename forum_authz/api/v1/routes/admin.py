"""Admin API endpoints (decision cache and audit log)."""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from forum_authz import schemas
from forum_authz import crud
from forum_authz.api.deps import get_db, get_authorizer
from forum_authz.core.security import verify_admin_key
from forum_authz.core.logging_config import logger
from forum_authz.services.authorization import Authorizer

router = APIRouter()


@router.delete("/cache", response_model=schemas.CacheClearResponse)
def clear_cache_api(
    authorizer: Authorizer = Depends(get_authorizer),
    verified: bool = Depends(verify_admin_key)
):
    """Drop every cached decision. Requires Admin API Key."""
    cleared = authorizer.opa.cache.clear()
    logger.info(f"Decision cache cleared: {cleared} entries")
    return schemas.CacheClearResponse(cleared=cleared)


@router.delete("/cache/subjects/{subject_id}", response_model=schemas.CacheClearResponse)
def invalidate_subject_api(
    subject_id: str,
    authorizer: Authorizer = Depends(get_authorizer),
    verified: bool = Depends(verify_admin_key)
):
    """Drop cached decisions of one subject, e.g. after a ban. Requires Admin API Key."""
    cleared = authorizer.opa.cache.invalidate_subject(subject_id)
    logger.info(f"Decision cache invalidated for uid={subject_id}: {cleared} entries")
    return schemas.CacheClearResponse(cleared=cleared)


@router.post("/cache/prune", response_model=schemas.CacheClearResponse)
def prune_cache_api(
    authorizer: Authorizer = Depends(get_authorizer),
    verified: bool = Depends(verify_admin_key)
):
    """Remove expired decisions. Requires Admin API Key."""
    return schemas.CacheClearResponse(cleared=authorizer.opa.cache.prune())


@router.get("/audit-logs", response_model=List[schemas.AuditLogResponse])
def list_audit_logs_api(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    subject: Optional[str] = None,
    db: Session = Depends(get_db),
    verified: bool = Depends(verify_admin_key)
):
    """Recent authorization decisions, newest first. Requires Admin API Key."""
    return crud.get_audit_logs(db, skip=skip, limit=limit, subject=subject)
