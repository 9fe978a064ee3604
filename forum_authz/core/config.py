"""Application configuration and settings."""
import os
from dotenv import load_dotenv

# Load environment variables from .env (if present)
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Database configuration (decision audit log)
SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./authz_audit.db")

# Policy engine (OPA) configuration
OPA_URL = os.getenv("OPA_URL", "http://localhost:8181").rstrip("/")
OPA_DECISION_PATH = os.getenv("OPA_DECISION_PATH", "authz/decision").strip("/")
OPA_TIMEOUT_SECONDS = float(os.getenv("OPA_TIMEOUT_SECONDS", "2.0"))

# Decision cache configuration
AUTHZ_CACHE_ENABLED = _env_bool("AUTHZ_CACHE_ENABLED", True)
AUTHZ_CACHE_TTL_SECONDS = float(os.getenv("AUTHZ_CACHE_TTL_SECONDS", "30"))

# Identity token configuration - secret is REQUIRED
JWT_SECRET = os.environ.get("JWT_SECRET")
if not JWT_SECRET:
    raise ValueError(
        "JWT_SECRET environment variable is required. "
        "Please set it in your .env file or environment variables."
    )
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE") or None

# Security configuration - REQUIRED, no default for security
ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY")
if not ADMIN_API_KEY:
    raise ValueError(
        "ADMIN_API_KEY environment variable is required. "
        "Please set it in your .env file or environment variables."
    )
