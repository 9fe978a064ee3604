"""Main API router that includes all v1 routes."""
from fastapi import APIRouter
from forum_authz.api.v1.routes import access, admin

api_router = APIRouter()

# Decision endpoints are public (token optional); admin ones need ADMIN_API_KEY
api_router.include_router(access.router, tags=["access"])
api_router.include_router(admin.router, tags=["admin"])
