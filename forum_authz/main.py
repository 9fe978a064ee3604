"""FastAPI application entry point and composition root."""
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
import httpx
from forum_authz.core import config
from forum_authz.core.database import engine, Base, SessionLocal
from forum_authz.core.logging_config import logger
from forum_authz.api.v1.router import api_router
from forum_authz.services.authorization import Authorizer
from forum_authz.services.cache import DecisionCache
from forum_authz.services.opa import OpaService

logger.info("Starting Forum Authorization Service")

# Create database tables
try:
    Base.metadata.create_all(bind=engine)
    logger.info("Audit log tables initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize database tables: {e}")
    raise

app = FastAPI(
    title="Forum Authorization Service",
    description="Caching, batching front for Open Policy Agent decisions",
    version="1.0.0"
)

# CORS (enable for the local forum frontend)
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)
logger.info("API routes registered successfully")


def build_authorizer(client: httpx.AsyncClient) -> Authorizer:
    """Wire cache -> OPA client -> authorizer from configuration."""
    cache = DecisionCache(
        ttl_seconds=config.AUTHZ_CACHE_TTL_SECONDS,
        enabled=config.AUTHZ_CACHE_ENABLED,
    )
    opa_service = OpaService(
        client,
        cache,
        base_url=config.OPA_URL,
        decision_path=config.OPA_DECISION_PATH,
        timeout_seconds=config.OPA_TIMEOUT_SECONDS,
    )
    return Authorizer(opa_service)


@app.on_event("startup")
async def startup_event():
    """Create the shared HTTP client and the authorizer."""
    app.state.http_client = httpx.AsyncClient(timeout=config.OPA_TIMEOUT_SECONDS)
    app.state.authorizer = build_authorizer(app.state.http_client)
    logger.info(
        f"Application startup complete (OPA={config.OPA_URL}, "
        f"cache_ttl={config.AUTHZ_CACHE_TTL_SECONDS}s, cache_enabled={config.AUTHZ_CACHE_ENABLED})"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Close the OPA HTTP client."""
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()
    logger.info("Application shutting down")


@app.get("/", tags=["Health"])
def read_root():
    """Basic liveness endpoint."""
    return {"status": "Forum Authorization Service is Operational", "docs": "/docs"}


@app.get("/health", tags=["Health"], status_code=status.HTTP_200_OK)
async def health_check():
    """Detailed health check: audit database, decision cache, policy engine."""
    health_status = {
        "status": "healthy",
        "service": "Forum Authorization Service",
        "version": "1.0.0",
        "checks": {}
    }

    # Database connectivity check
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}"
        }
        logger.error(f"Database health check failed: {e}")

    authorizer = getattr(app.state, "authorizer", None)
    if authorizer is None:
        health_status["status"] = "degraded"
        health_status["checks"]["authorizer"] = {
            "status": "unhealthy",
            "message": "Authorizer not initialized"
        }
    else:
        cache = authorizer.opa.cache
        health_status["checks"]["cache"] = {
            "status": "healthy",
            "enabled": cache.enabled,
            "entries": len(cache),
            "ttl_seconds": cache.ttl_seconds
        }

        # Policy engine reachability; decisions fail closed while it is down
        opa_health = await authorizer.opa.health()
        health_status["checks"]["opa"] = opa_health
        if opa_health["status"] != "healthy":
            health_status["status"] = "degraded"
            logger.error(f"OPA health check failed: {opa_health['message']}")

    status_code = status.HTTP_200_OK
    if health_status["status"] == "degraded":
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(content=health_status, status_code=status_code)
