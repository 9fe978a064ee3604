"""Pytest configuration and fixtures."""
import os

# Required settings must exist before forum_authz modules are imported
os.environ["ADMIN_API_KEY"] = "SUPER_SECRET_ADMIN_KEY_2404"
os.environ["JWT_SECRET"] = "test-jwt-secret-with-enough-bytes-for-hs256"
os.environ["OPA_URL"] = "http://opa.test"
os.environ["DATABASE_URL"] = "sqlite:///./test_audit.db"

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from forum_authz.core.database import Base, get_db
from forum_authz.main import app
from forum_authz.services.authorization import Authorizer
from forum_authz.services.cache import DecisionCache
from forum_authz.services.opa import OpaService
from tests.helpers import OPA_URL, FakeClock

# Setup temporary database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_audit.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="module", autouse=True)
def setup_db():
    """Create tables before tests and drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return DecisionCache(ttl_seconds=30, clock=clock)


@pytest_asyncio.fixture
async def opa_service(cache):
    async with httpx.AsyncClient() as http_client:
        yield OpaService(http_client, cache, base_url=OPA_URL, timeout_seconds=1.0)


@pytest.fixture
def authorizer(opa_service):
    return Authorizer(opa_service)


@pytest.fixture
def client():
    """TestClient with startup/shutdown run, so every test gets a fresh cache."""
    with TestClient(app=app) as test_client:
        yield test_client
